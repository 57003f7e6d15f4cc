"""
Module: donation_kernel.models.campaign
Responsibility: ORM persistence for fundraising campaigns and their images.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - target_amount, when set, is positive (ck_campaign_target_positive).
    - Image positions are unique per campaign (uq_campaign_image_position).
    - message and target_amount never change after creation
      (db/immutability.py).

Audit relevance:
    Funding progress is never stored here.  total_raised and the other
    summary figures are derived on read from received cash donations, see
    domain/funding.py.  is_completed is the one persisted flag and is kept
    in sync with goal attainment when a donation to the campaign is received.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    ForeignKey,
    Index,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from donation_kernel.db.base import Base, TrackedBase


class DonationCampaign(TrackedBase):
    """A staff-authored appeal that donations can target."""

    __tablename__ = "donation_campaigns"

    __table_args__ = (
        CheckConstraint(
            "target_amount IS NULL OR target_amount > 0",
            name="ck_campaign_target_positive",
        ),
        Index("idx_campaign_completed", "is_completed"),
    )

    message: Mapped[str] = mapped_column(
        Text,
        nullable=False,
    )

    target_amount: Mapped[Decimal | None] = mapped_column(
        nullable=True,
    )

    is_completed: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
    )

    images: Mapped[list["CampaignImage"]] = relationship(
        back_populates="campaign",
        order_by="CampaignImage.position",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<DonationCampaign {self.id} target={self.target_amount}>"


class CampaignImage(Base):
    """Opaque storage path of one campaign image, in display order."""

    __tablename__ = "campaign_images"

    __table_args__ = (
        UniqueConstraint("campaign_id", "position", name="uq_campaign_image_position"),
    )

    campaign_id: Mapped[UUID] = mapped_column(
        ForeignKey("donation_campaigns.id", ondelete="CASCADE"),
        nullable=False,
    )

    position: Mapped[int] = mapped_column(
        nullable=False,
    )

    image_path: Mapped[str] = mapped_column(
        String(500),
        nullable=False,
    )

    original_name: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )

    campaign: Mapped[DonationCampaign] = relationship(back_populates="images")
