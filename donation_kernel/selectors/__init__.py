"""Selectors for the donation kernel (read side)."""

from donation_kernel.selectors.campaign_selector import (
    CampaignSelector,
    campaign_to_record,
)
from donation_kernel.selectors.donation_selector import (
    DonationSelector,
    donation_to_record,
)
from donation_kernel.selectors.inventory_selector import (
    InventorySelector,
    adjustment_to_record,
    item_to_view,
)

__all__ = [
    "CampaignSelector",
    "DonationSelector",
    "InventorySelector",
    "adjustment_to_record",
    "campaign_to_record",
    "donation_to_record",
    "item_to_view",
]
