"""
PortalConfig schema.

The typed model of the portal's YAML configuration.  The loader parses the
YAML into these frozen dataclasses; bridges.py turns them into the kernel's
own settings objects.  Every section validates itself on construction, so
a PortalConfig that exists is a usable one.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from uuid import UUID

from donation_kernel.db.types import validate_currency
from donation_kernel.domain.values import DonationChannel

PAYMENT_MODES = ("hosted_page", "api")


@dataclass(frozen=True)
class IntakeConfig:
    """Donation intake rules."""

    currency: str = "MWK"
    confirm_on_create: bool = False
    minimum_amounts: dict[DonationChannel, Decimal] = field(
        default_factory=lambda: {
            DonationChannel.DONOR: Decimal("1"),
            DonationChannel.GUEST: Decimal("1"),
            DonationChannel.CAMPAIGN: Decimal("100"),
            DonationChannel.ANONYMOUS_CAMPAIGN: Decimal("100"),
        }
    )

    def __post_init__(self) -> None:
        object.__setattr__(self, "currency", validate_currency(self.currency))
        missing = [c.value for c in DonationChannel if c not in self.minimum_amounts]
        if missing:
            raise ValueError(f"intake.minimum_amounts missing channels: {missing}")
        for channel, amount in self.minimum_amounts.items():
            if amount <= 0:
                raise ValueError(
                    f"intake.minimum_amounts.{channel.value} must be positive, got {amount}"
                )


@dataclass(frozen=True)
class PaymentsConfig:
    """Payment gateway settings."""

    mode: str = "hosted_page"
    public_key: str = ""
    secret_key: str = ""
    hosted_page_url: str = "https://api.paychangu.com/hosted-payment-page"
    api_url: str = "https://api.paychangu.com/payment"
    callback_url: str = ""
    return_url: str = ""
    checkout_title: str = "Donation"
    gateway_timeout_seconds: float = 10.0

    def __post_init__(self) -> None:
        if self.mode not in PAYMENT_MODES:
            raise ValueError(
                f"payments.mode must be one of {PAYMENT_MODES}, got {self.mode!r}"
            )
        if self.gateway_timeout_seconds <= 0:
            raise ValueError("payments.gateway_timeout_seconds must be positive")
        if self.mode == "api" and not self.secret_key:
            raise ValueError("payments.secret_key is required in api mode")


@dataclass(frozen=True)
class InventoryConfig:
    default_location: str = "main"
    default_threshold: int = 20

    def __post_init__(self) -> None:
        if not self.default_location.strip():
            raise ValueError("inventory.default_location must be non-empty")
        if self.default_threshold < 0:
            raise ValueError("inventory.default_threshold must not be negative")


@dataclass(frozen=True)
class DatabaseConfig:
    url: str = "sqlite:///donation_ledger.db"
    echo: bool = False
    pool_size: int = 5
    max_overflow: int = 10

    def __post_init__(self) -> None:
        if not self.url:
            raise ValueError("database.url is required")
        if self.pool_size < 1:
            raise ValueError("database.pool_size must be at least 1")


@dataclass(frozen=True)
class PortalConfig:
    """
    The whole portal configuration.

    checksum identifies the source data it was parsed from; two configs
    with the same checksum were loaded from identical YAML content.
    """

    config_id: str
    version: int
    system_actor_id: UUID
    intake: IntakeConfig = field(default_factory=IntakeConfig)
    payments: PaymentsConfig = field(default_factory=PaymentsConfig)
    inventory: InventoryConfig = field(default_factory=InventoryConfig)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    checksum: str = ""
