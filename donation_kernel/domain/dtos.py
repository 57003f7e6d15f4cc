"""
DTOs -- immutable records crossing the kernel boundary.

Responsibility:
    Services and selectors return these frozen dataclasses, never ORM
    instances, so callers cannot mutate persisted state by accident and
    results stay valid after the session closes.

Architecture position:
    Kernel > Domain -- pure data, zero I/O.

Data flow:
    DonationRequest -> DonationReceipt -> CheckoutRequest -> CheckoutSession
    callback payload -> CallbackResult / VerificationResult
    adjust() -> AdjustmentResult(AdjustmentRecord)
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from donation_kernel.db.types import format_amount
from donation_kernel.domain.values import (
    AdjustmentType,
    DonationChannel,
    DonationStatus,
    DonationType,
    InventoryKey,
    StockStatus,
)

# ---------------------------------------------------------------------------
# Donations
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DonatedItemRecord:
    line_number: int
    item_name: str
    quantity: int
    description: str | None
    estimated_value: Decimal | None


@dataclass(frozen=True)
class DonationRecord:
    """Read view of one donation."""

    id: UUID
    checkout_ref: str | None
    donation_type: DonationType
    amount: Decimal | None
    currency: str | None
    status: DonationStatus
    channel: DonationChannel
    donor_user_id: UUID | None
    donor_name: str | None
    donor_email: str | None
    is_anonymous: bool
    child_id: UUID | None
    campaign_id: UUID | None
    description: str | None
    created_at: datetime
    status_changed_at: datetime | None
    receipt_dispatched_at: datetime | None
    items: tuple[DonatedItemRecord, ...] = ()


@dataclass(frozen=True)
class DonationReceipt:
    """Acknowledgement returned by intake."""

    donation_id: UUID
    donation_type: DonationType
    status: DonationStatus
    checkout_ref: str | None
    amount: Decimal | None
    item_count: int = 0
    total_quantity: int = 0


@dataclass(frozen=True)
class CallbackResult:
    """
    Outcome of a gateway callback.

    applied is False when the donation was already terminal and the call
    was an idempotent no-op.
    """

    donation_id: UUID
    checkout_ref: str
    status: DonationStatus
    applied: bool


@dataclass(frozen=True)
class VerificationResult:
    donation_id: UUID
    checkout_ref: str
    status: DonationStatus
    already_processed: bool
    redirect_target: str | None = None


# ---------------------------------------------------------------------------
# Checkout
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CheckoutRequest:
    """Everything the payment gateway needs to open a checkout."""

    donation_id: UUID
    tx_ref: str
    amount: Decimal
    currency: str
    email: str
    first_name: str
    last_name: str
    title: str
    description: str
    callback_url: str
    return_url: str
    public_key: str
    meta: dict[str, str] = field(default_factory=dict)

    def form_fields(self) -> list[tuple[str, str]]:
        """Flatten to the name/value pairs a hosted payment form posts."""
        fields = [
            ("public_key", self.public_key),
            ("callback_url", self.callback_url),
            ("return_url", self.return_url),
            ("tx_ref", self.tx_ref),
            ("amount", format_amount(self.amount)),
            ("currency", self.currency),
            ("email", self.email),
            ("first_name", self.first_name),
            ("last_name", self.last_name),
            ("title", self.title),
            ("description", self.description),
        ]
        fields.extend((f"meta[{key}]", value) for key, value in self.meta.items())
        return fields

    def api_payload(self) -> dict[str, Any]:
        """JSON body for a direct gateway API call."""
        return {
            "tx_ref": self.tx_ref,
            "amount": format_amount(self.amount),
            "currency": self.currency,
            "email": self.email,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "callback_url": self.callback_url,
            "return_url": self.return_url,
            "customization": {
                "title": self.title,
                "description": self.description,
            },
            "meta": dict(self.meta),
        }


@dataclass(frozen=True)
class CheckoutSession:
    """
    Where to send the donor.

    Exactly one of checkout_url (API gateway) or document (auto-submitting
    redirect page) is set.
    """

    tx_ref: str
    checkout_url: str | None = None
    document: str | None = None


# ---------------------------------------------------------------------------
# Inventory
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AdjustmentRecord:
    id: UUID
    sequence: int
    inventory_item_id: UUID
    item_name: str
    category: str
    location: str
    adjustment_type: AdjustmentType
    quantity_change: int
    quantity_before: int
    quantity_after: int
    reason: str
    notes: str | None
    actor_id: UUID
    source_donation_id: UUID | None
    created_at: datetime

    @property
    def key(self) -> InventoryKey:
        return InventoryKey(self.item_name, self.category, self.location)


@dataclass(frozen=True)
class AdjustmentResult:
    inventory_item_id: UUID
    new_quantity: int
    adjustment: AdjustmentRecord


@dataclass(frozen=True)
class InventoryItemView:
    id: UUID
    item_name: str
    category: str
    location: str
    quantity: int
    threshold: int
    status: StockStatus


@dataclass(frozen=True)
class InventoryStatistics:
    total_units: int
    item_types: int
    critical_items: int
    low_stock_items: int


@dataclass(frozen=True)
class LedgerDiscrepancy:
    inventory_item_id: UUID
    key: InventoryKey
    stored_quantity: int
    replayed_quantity: int


@dataclass(frozen=True)
class NewItemEntry:
    """A requisition line that stocks an item for the first time."""

    item_name: str
    category: str
    location: str
    quantity: int
    reason: str
    threshold: int | None = None
    notes: str | None = None


@dataclass(frozen=True)
class AdjustmentEntry:
    """A requisition line that changes an existing item."""

    inventory_item_id: UUID
    quantity_change: int
    reason: str
    notes: str | None = None


@dataclass(frozen=True)
class RequisitionError:
    section: str  # "new_items" or "adjustments"
    index: int
    code: str
    message: str


@dataclass(frozen=True)
class RequisitionResult:
    new_items_created: int
    adjustments_made: int
    errors: tuple[RequisitionError, ...]

    @property
    def has_errors(self) -> bool:
        return bool(self.errors)


# ---------------------------------------------------------------------------
# Campaigns and donors
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CampaignImageSpec:
    image_path: str
    original_name: str | None = None


@dataclass(frozen=True)
class CampaignRecord:
    id: UUID
    message: str
    target_amount: Decimal | None
    is_completed: bool
    image_paths: tuple[str, ...]
    created_by_id: UUID
    created_at: datetime


@dataclass(frozen=True)
class CampaignStatistics:
    total_donations: int
    total_cash_amount: Decimal
    goods_donations: int
    total_items: int


@dataclass(frozen=True)
class DonorStatistics:
    total_donated: Decimal
    total_donations: int
    children_helped: int
    this_month: Decimal
