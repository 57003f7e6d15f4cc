"""
Config -> Kernel bridges.

Functions that turn a PortalConfig into the settings objects kernel
services take.  They live here because the kernel must never import
donation_config.

Usage:
    config = get_active_config()
    policy = build_intake_policy(config)
    settings = build_checkout_settings(config)
"""

from __future__ import annotations

from donation_config.schema import PortalConfig
from donation_kernel.services.intake_service import IntakePolicy
from donation_kernel.services.reference_issuer import CheckoutSettings


def build_intake_policy(config: PortalConfig) -> IntakePolicy:
    return IntakePolicy(
        currency=config.intake.currency,
        confirm_on_create=config.intake.confirm_on_create,
        minimum_amounts=dict(config.intake.minimum_amounts),
    )


def build_checkout_settings(config: PortalConfig) -> CheckoutSettings:
    return CheckoutSettings(
        public_key=config.payments.public_key,
        callback_url=config.payments.callback_url,
        return_url=config.payments.return_url,
        currency=config.intake.currency,
        title=config.payments.checkout_title,
    )
