"""SQLAlchemy ORM models for the donation ledger."""

from donation_kernel.models.campaign import CampaignImage, DonationCampaign
from donation_kernel.models.donation import DonatedItem, Donation
from donation_kernel.models.inventory import InventoryAdjustment, InventoryItem
from donation_kernel.models.sequence import SequenceCounter

__all__ = [
    "CampaignImage",
    "DonatedItem",
    "Donation",
    "DonationCampaign",
    "InventoryAdjustment",
    "InventoryItem",
    "SequenceCounter",
]
