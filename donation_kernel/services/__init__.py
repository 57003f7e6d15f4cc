"""Services for the donation kernel (write side)."""

from donation_kernel.services.campaign_service import CampaignService
from donation_kernel.services.intake_service import IntakePolicy, IntakeService
from donation_kernel.services.inventory_service import InventoryService
from donation_kernel.services.reconciliation_service import (
    ReconciliationService,
    map_reported_status,
)
from donation_kernel.services.reference_issuer import CheckoutSettings, ReferenceIssuer
from donation_kernel.services.sequence_service import SequenceService

__all__ = [
    "CampaignService",
    "CheckoutSettings",
    "IntakePolicy",
    "IntakeService",
    "InventoryService",
    "ReconciliationService",
    "ReferenceIssuer",
    "SequenceService",
    "map_reported_status",
]
