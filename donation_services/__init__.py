"""
donation_services -- Package init and public API.

Responsibility:
    The outward layer over the donation kernel: the DonationPortal facade,
    the per-transaction service wiring, payment gateway adapters and
    receipt dispatch collaborators.  This is the only layer that commits
    transactions or talks to the network.

Architecture position:
    Dependency direction:
        donation_services/ -> donation_config/, donation_kernel/  (allowed)
        donation_kernel/   -> donation_services/                  (FORBIDDEN)
"""

from donation_services.gateway import (
    ApiCheckoutGateway,
    HostedPageGateway,
    PaymentGateway,
)
from donation_services.orchestrator import DonationOrchestrator
from donation_services.portal import CreateDonationResult, DonationPortal, build_gateway
from donation_services.receipts import (
    NullReceiptDispatcher,
    ReceiptDispatcher,
    RecordingReceiptDispatcher,
)

__all__ = [
    "ApiCheckoutGateway",
    "CreateDonationResult",
    "DonationOrchestrator",
    "DonationPortal",
    "HostedPageGateway",
    "NullReceiptDispatcher",
    "PaymentGateway",
    "ReceiptDispatcher",
    "RecordingReceiptDispatcher",
    "build_gateway",
]
