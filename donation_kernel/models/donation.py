"""
Module: donation_kernel.models.donation
Responsibility: ORM persistence for donations and their goods line items.
Architecture position: Kernel > Models.  May import from db/ and
    domain/values.py only.  MUST NOT import from services/, selectors/, or
    outer layers.

Invariants enforced:
    - amount is set and positive iff donation_type = cash
      (ck_donation_amount_matches_type).
    - Exactly one donor origin: registered user id, anonymous name+email, or
      guest name+email (ck_donation_single_origin).
    - checkout_ref is unique across the store (uq_donation_checkout_ref).
    - status is one of pending/received/failed; the pending -> terminal
      transition is applied by compare-and-swap in the reconciliation
      service and guarded by db/immutability.py for ORM writes.
    - DonatedItem rows are append-only and owned by exactly one donation.

Failure modes:
    - IntegrityError on duplicate checkout_ref (issuer re-mints and retries).
    - IntegrityError on a CHECK violation (a bug upstream of validation).

Audit relevance:
    Donations are never deleted.  The row plus status_changed_at and
    receipt_dispatched_at is the audit trail for a gift from submission to
    reconciliation.  DonatedItem rows are referenced by the inventory ledger
    through source_donation_id.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    ForeignKey,
    Index,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from donation_kernel.db.base import Base, TrackedBase
from donation_kernel.domain.values import (
    DonationChannel,
    DonationStatus,
    DonationType,
)


class Donation(TrackedBase):
    """
    A single gift of cash or goods.

    Contract:
        Created once by the intake service.  Afterwards only the status
        columns (status, status_changed_at) and receipt_dispatched_at may
        change, and only through the reconciliation service.

    Guarantees:
        - Cash donations carry a checkout_ref minted at creation.
        - Goods donations carry no amount and at least one DonatedItem.
    """

    __tablename__ = "donations"

    __table_args__ = (
        UniqueConstraint("checkout_ref", name="uq_donation_checkout_ref"),
        CheckConstraint(
            "(donation_type = 'cash' AND amount IS NOT NULL AND amount > 0)"
            " OR (donation_type = 'goods' AND amount IS NULL)",
            name="ck_donation_amount_matches_type",
        ),
        CheckConstraint(
            "status IN ('pending', 'received', 'failed')",
            name="ck_donation_status",
        ),
        CheckConstraint(
            "(CASE WHEN donor_user_id IS NOT NULL THEN 1 ELSE 0 END)"
            " + (CASE WHEN anonymous_email IS NOT NULL THEN 1 ELSE 0 END)"
            " + (CASE WHEN guest_email IS NOT NULL THEN 1 ELSE 0 END) = 1",
            name="ck_donation_single_origin",
        ),
        Index("idx_donation_campaign_status", "campaign_id", "donation_type", "status"),
        Index("idx_donation_donor", "donor_user_id"),
        Index("idx_donation_child", "child_id"),
    )

    # Externally visible payment correlation key (cash only)
    checkout_ref: Mapped[str | None] = mapped_column(
        String(100),
        nullable=True,
    )

    donation_type: Mapped[DonationType] = mapped_column(
        String(10),
        nullable=False,
    )

    amount: Mapped[Decimal | None] = mapped_column(
        nullable=True,
    )

    currency: Mapped[str | None] = mapped_column(
        String(3),
        nullable=True,
    )

    status: Mapped[DonationStatus] = mapped_column(
        String(20),
        nullable=False,
        default=DonationStatus.PENDING,
    )

    channel: Mapped[DonationChannel] = mapped_column(
        String(30),
        nullable=False,
    )

    description: Mapped[str | None] = mapped_column(
        String(1000),
        nullable=True,
    )

    # Donor origin: exactly one of the three groups below is populated
    donor_user_id: Mapped[UUID | None] = mapped_column(
        nullable=True,
    )

    anonymous_name: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )

    anonymous_email: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )

    guest_name: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )

    guest_email: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )

    is_anonymous: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
    )

    # Beneficiary child; children live outside this store
    child_id: Mapped[UUID | None] = mapped_column(
        nullable=True,
    )

    campaign_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("donation_campaigns.id", ondelete="SET NULL"),
        nullable=True,
    )

    status_changed_at: Mapped[datetime | None] = mapped_column(
        nullable=True,
    )

    receipt_dispatched_at: Mapped[datetime | None] = mapped_column(
        nullable=True,
    )

    items: Mapped[list["DonatedItem"]] = relationship(
        back_populates="donation",
        order_by="DonatedItem.line_number",
    )

    @property
    def is_cash(self) -> bool:
        return self.donation_type == DonationType.CASH

    @property
    def is_terminal(self) -> bool:
        return DonationStatus(self.status).is_terminal

    @property
    def donor_name(self) -> str | None:
        return self.anonymous_name or self.guest_name

    @property
    def donor_email(self) -> str | None:
        return self.anonymous_email or self.guest_email

    def __repr__(self) -> str:
        return (
            f"<Donation {self.id} {self.donation_type}:{self.status} "
            f"ref={self.checkout_ref}>"
        )


class DonatedItem(Base):
    """
    One goods line item of a donation.

    Contract:
        Inserted in the same transaction as its parent donation and never
        updated or deleted afterwards.
    """

    __tablename__ = "donated_items"

    __table_args__ = (
        UniqueConstraint("donation_id", "line_number", name="uq_donated_item_line"),
        CheckConstraint("quantity >= 1", name="ck_donated_item_quantity"),
        Index("idx_donated_item_donation", "donation_id"),
    )

    donation_id: Mapped[UUID] = mapped_column(
        ForeignKey("donations.id"),
        nullable=False,
    )

    line_number: Mapped[int] = mapped_column(
        nullable=False,
    )

    item_name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )

    quantity: Mapped[int] = mapped_column(
        nullable=False,
    )

    description: Mapped[str | None] = mapped_column(
        String(500),
        nullable=True,
    )

    estimated_value: Mapped[Decimal | None] = mapped_column(
        nullable=True,
    )

    created_at: Mapped[datetime] = mapped_column(
        nullable=False,
    )

    donation: Mapped[Donation] = relationship(back_populates="items")

    def __repr__(self) -> str:
        return f"<DonatedItem {self.item_name} x{self.quantity}>"
