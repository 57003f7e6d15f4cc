"""
Configuration loader (``donation_config.loader``).

Responsibility
--------------
Loads the portal YAML and parses it into the typed ``donation_config.schema``
dataclasses.  Callers outside this package use
``donation_config.get_active_config()`` instead.

Invariants enforced
-------------------
* Required keys (config_id, version, system_actor_id) raise ``KeyError``
  when absent; there are no silent defaults for them.
* Amounts are parsed from strings into Decimal, never through float.
* ``compute_checksum`` is deterministic over the parsed source data.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Invalid values  -> ``ValueError`` from the schema's validation.
"""

from __future__ import annotations

import hashlib
import json
from decimal import Decimal
from pathlib import Path
from typing import Any
from uuid import UUID

import yaml

from donation_config.schema import (
    DatabaseConfig,
    IntakeConfig,
    InventoryConfig,
    PaymentsConfig,
    PortalConfig,
)
from donation_kernel.db.types import money_from_str
from donation_kernel.domain.values import DonationChannel


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def parse_amount(value: Any) -> Decimal:
    if isinstance(value, float):
        raise ValueError(f"Amounts must be quoted strings or integers, got {value!r}")
    return money_from_str(value)


def parse_intake(data: dict[str, Any]) -> IntakeConfig:
    defaults = IntakeConfig()
    minimums = dict(defaults.minimum_amounts)
    for channel_name, amount in (data.get("minimum_amounts") or {}).items():
        minimums[DonationChannel(channel_name)] = parse_amount(amount)
    return IntakeConfig(
        currency=data.get("currency", defaults.currency),
        confirm_on_create=bool(data.get("confirm_on_create", False)),
        minimum_amounts=minimums,
    )


def parse_payments(data: dict[str, Any]) -> PaymentsConfig:
    defaults = PaymentsConfig()
    return PaymentsConfig(
        mode=data.get("mode", defaults.mode),
        public_key=data.get("public_key") or "",
        secret_key=data.get("secret_key") or "",
        hosted_page_url=data.get("hosted_page_url", defaults.hosted_page_url),
        api_url=data.get("api_url", defaults.api_url),
        callback_url=data.get("callback_url") or "",
        return_url=data.get("return_url") or "",
        checkout_title=data.get("checkout_title", defaults.checkout_title),
        gateway_timeout_seconds=float(
            data.get("gateway_timeout_seconds", defaults.gateway_timeout_seconds)
        ),
    )


def parse_inventory(data: dict[str, Any]) -> InventoryConfig:
    defaults = InventoryConfig()
    return InventoryConfig(
        default_location=str(data.get("default_location", defaults.default_location)),
        default_threshold=int(data.get("default_threshold", defaults.default_threshold)),
    )


def parse_database(data: dict[str, Any]) -> DatabaseConfig:
    defaults = DatabaseConfig()
    return DatabaseConfig(
        url=data.get("url", defaults.url),
        echo=bool(data.get("echo", defaults.echo)),
        pool_size=int(data.get("pool_size", defaults.pool_size)),
        max_overflow=int(data.get("max_overflow", defaults.max_overflow)),
    )


def parse_portal_config(data: dict[str, Any]) -> PortalConfig:
    """
    Parse the whole configuration document.

    Raises:
        KeyError: if a required top-level key is missing.
        ValueError: if any section fails validation.
    """
    return PortalConfig(
        config_id=data["config_id"],
        version=int(data["version"]),
        system_actor_id=UUID(str(data["system_actor_id"])),
        intake=parse_intake(data.get("intake") or {}),
        payments=parse_payments(data.get("payments") or {}),
        inventory=parse_inventory(data.get("inventory") or {}),
        database=parse_database(data.get("database") or {}),
        checksum=compute_checksum(data),
    )


def load_portal_config(path: Path) -> PortalConfig:
    return parse_portal_config(load_yaml_file(path))


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 over the canonical JSON serialization of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
