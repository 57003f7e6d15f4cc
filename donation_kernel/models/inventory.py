"""
Module: donation_kernel.models.inventory
Responsibility: ORM persistence for stock rows and the append-only inventory
    adjustment ledger.
Architecture position: Kernel > Models.  May import from db/ and
    domain/values.py only.

Invariants enforced:
    - One stock row per (item_name, category, location)
      (uq_inventory_item_key).
    - quantity never negative (ck_inventory_quantity_non_negative).
    - Every ledger row satisfies quantity_after = quantity_before +
      quantity_change (ck_adjustment_arithmetic) and never goes negative.
    - Ledger rows are immutable and never deleted (db/immutability.py).
    - Ledger sequence numbers are unique and strictly increasing, allocated
      from a locked counter row (services/sequence_service.py).

Failure modes:
    - IntegrityError on a racing insert of the same item key; the inventory
      service recovers inside a savepoint.

Audit relevance:
    Replaying an item's ledger rows in sequence order by summing
    quantity_change from zero reproduces the stored quantity.  Rows created
    from a goods donation point back to it through source_donation_id.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    ForeignKey,
    Index,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from donation_kernel.db.base import Base, TrackedBase
from donation_kernel.domain.values import AdjustmentType, InventoryKey

DEFAULT_LOW_STOCK_THRESHOLD = 20


class InventoryItem(TrackedBase):
    """
    Aggregate stock row.

    Contract:
        quantity is written only by InventoryService.adjust, together with
        a ledger row in the same flush.
    """

    __tablename__ = "inventory_items"

    __table_args__ = (
        UniqueConstraint(
            "item_name", "category", "location", name="uq_inventory_item_key"
        ),
        CheckConstraint("quantity >= 0", name="ck_inventory_quantity_non_negative"),
        CheckConstraint("threshold >= 0", name="ck_inventory_threshold_non_negative"),
        Index("idx_inventory_category", "category"),
    )

    item_name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )

    category: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
    )

    location: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
    )

    quantity: Mapped[int] = mapped_column(
        nullable=False,
        default=0,
    )

    threshold: Mapped[int] = mapped_column(
        nullable=False,
        default=DEFAULT_LOW_STOCK_THRESHOLD,
    )

    @property
    def key(self) -> InventoryKey:
        return InventoryKey(self.item_name, self.category, self.location)

    def __repr__(self) -> str:
        return f"<InventoryItem {self.key} qty={self.quantity}>"


class InventoryAdjustment(Base):
    """
    One append-only ledger entry per inventory quantity change.

    The item key is denormalized next to the foreign key so that the ledger
    reads on its own in reports.
    """

    __tablename__ = "inventory_adjustments"

    __table_args__ = (
        UniqueConstraint("sequence", name="uq_adjustment_sequence"),
        CheckConstraint(
            "quantity_after = quantity_before + quantity_change",
            name="ck_adjustment_arithmetic",
        ),
        CheckConstraint("quantity_after >= 0", name="ck_adjustment_after_non_negative"),
        CheckConstraint("quantity_change <> 0", name="ck_adjustment_change_non_zero"),
        CheckConstraint(
            "adjustment_type IN ('increase', 'decrease', 'new_item')",
            name="ck_adjustment_type",
        ),
        Index("idx_adjustment_item_sequence", "inventory_item_id", "sequence"),
        Index("idx_adjustment_source_donation", "source_donation_id"),
    )

    inventory_item_id: Mapped[UUID] = mapped_column(
        ForeignKey("inventory_items.id"),
        nullable=False,
    )

    item_name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )

    category: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
    )

    location: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
    )

    adjustment_type: Mapped[AdjustmentType] = mapped_column(
        String(20),
        nullable=False,
    )

    quantity_change: Mapped[int] = mapped_column(
        nullable=False,
    )

    quantity_before: Mapped[int] = mapped_column(
        nullable=False,
    )

    quantity_after: Mapped[int] = mapped_column(
        nullable=False,
    )

    reason: Mapped[str] = mapped_column(
        String(500),
        nullable=False,
    )

    notes: Mapped[str | None] = mapped_column(
        String(1000),
        nullable=True,
    )

    actor_id: Mapped[UUID] = mapped_column(
        nullable=False,
    )

    source_donation_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("donations.id"),
        nullable=True,
    )

    sequence: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
    )

    created_at: Mapped[datetime] = mapped_column(
        nullable=False,
    )

    def __repr__(self) -> str:
        return (
            f"<InventoryAdjustment #{self.sequence} {self.item_name} "
            f"{self.quantity_before}->{self.quantity_after}>"
        )
