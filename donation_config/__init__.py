"""
donation_config -- single public entrypoint for portal configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  No other component reads the YAML directly.

Architecture position:
    Configuration.  Sits above ``donation_kernel`` and below
    ``donation_services``.  The kernel MUST NEVER import from
    ``donation_config``; ``bridges`` translates the config into kernel
    settings objects.

Failure modes:
    - ``FileNotFoundError`` -- the configuration file does not exist.
    - ``KeyError`` / ``ValueError`` -- missing or invalid settings.

Audit relevance:
    Every successful ``get_active_config()`` call emits a
    ``PORTAL_CONFIG_TRACE`` log entry with the config id, version and
    checksum, tying each run to the exact configuration that governed it.
"""

from __future__ import annotations

from pathlib import Path

from donation_config.loader import load_portal_config
from donation_config.schema import PortalConfig
from donation_kernel.logging_config import get_logger

_logger = get_logger("config")

DEFAULT_CONFIG_PATH = Path(__file__).parent / "defaults.yaml"

__all__ = ["DEFAULT_CONFIG_PATH", "PortalConfig", "get_active_config"]


def get_active_config(path: Path | str | None = None) -> PortalConfig:
    """The ONLY public configuration entrypoint.

    Args:
        path: YAML file to load.  Defaults to the packaged defaults.yaml.

    Returns:
        A validated, frozen PortalConfig.

    Raises:
        FileNotFoundError: If the file does not exist.
        KeyError: If a required key is missing.
        ValueError: If validation fails.
    """
    config_path = Path(path) if path is not None else DEFAULT_CONFIG_PATH
    config = load_portal_config(config_path)

    _logger.info(
        "PORTAL_CONFIG_TRACE",
        extra={
            "trace_type": "PORTAL_CONFIG_TRACE",
            "config_id": config.config_id,
            "config_version": config.version,
            "checksum": config.checksum,
            "config_path": str(config_path),
            "payment_mode": config.payments.mode,
            "confirm_on_create": config.intake.confirm_on_create,
        },
    )
    return config
