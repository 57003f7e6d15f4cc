"""
Values -- enumerations and small value objects shared by every layer.

Responsibility:
    Names the closed vocabularies of the donation ledger (donation type,
    status, channel, adjustment type, stock status) and the InventoryKey
    value object that identifies a stock row.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.  Models import these
    enums for their String columns; nothing here imports models.

Invariants enforced:
    - Terminal donation statuses are ``received`` and ``failed``; only
      ``pending`` may transition.
    - InventoryKey fields are trimmed and non-empty.
"""

from dataclasses import dataclass
from enum import Enum


class DonationType(str, Enum):
    CASH = "cash"
    GOODS = "goods"


class DonationStatus(str, Enum):
    """Donation lifecycle: pending -> received | failed. Both are terminal."""

    PENDING = "pending"
    RECEIVED = "received"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self is not DonationStatus.PENDING


class DonationChannel(str, Enum):
    """
    Entry path a donation came through.

    The channel decides which donor identity is required, the minimum cash
    amount and the checkout reference prefix.
    """

    DONOR = "donor"  # Authenticated donor, optionally for a child
    GUEST = "guest"  # Public form, name + email
    CAMPAIGN = "campaign"  # Authenticated donor to a campaign
    ANONYMOUS_CAMPAIGN = "anonymous_campaign"  # Unauthenticated campaign gift


class AdjustmentType(str, Enum):
    INCREASE = "increase"
    DECREASE = "decrease"
    NEW_ITEM = "new_item"


class StockStatus(str, Enum):
    CRITICAL = "Critical"
    LOW = "Low"
    GOOD = "Good"


@dataclass(frozen=True)
class InventoryKey:
    """Identity of a stock row: item name x category x location."""

    item_name: str
    category: str
    location: str

    def __post_init__(self) -> None:
        for field_name in ("item_name", "category", "location"):
            value = getattr(self, field_name)
            if not isinstance(value, str) or not value.strip():
                raise ValueError(f"InventoryKey.{field_name} must be non-empty")
            object.__setattr__(self, field_name, value.strip())

    def __str__(self) -> str:
        return f"{self.item_name}/{self.category}/{self.location}"
