"""
Module: donation_kernel.selectors.campaign_selector
Responsibility: Read-only campaign queries: campaign records, the derived
    funding summary and per-campaign donation statistics.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - total_raised counts cash donations with status ``received`` only.
      Pending, failed and goods donations never contribute.
    - Funding figures are derived on every read through
      domain.funding.compute_funding_summary; nothing here is cached.

Failure modes:
    - CampaignNotFoundError for an unknown campaign id.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import case, func, select

from donation_kernel.domain.dtos import CampaignRecord, CampaignStatistics
from donation_kernel.domain.funding import FundingSummary, compute_funding_summary
from donation_kernel.domain.values import DonationStatus, DonationType
from donation_kernel.exceptions import CampaignNotFoundError
from donation_kernel.models.campaign import DonationCampaign
from donation_kernel.models.donation import DonatedItem, Donation
from donation_kernel.selectors.base import BaseSelector


def campaign_to_record(campaign: DonationCampaign) -> CampaignRecord:
    return CampaignRecord(
        id=campaign.id,
        message=campaign.message,
        target_amount=campaign.target_amount,
        is_completed=campaign.is_completed,
        image_paths=tuple(image.image_path for image in campaign.images),
        created_by_id=campaign.created_by_id,
        created_at=campaign.created_at,
    )


def _as_decimal(value) -> Decimal:
    # SUM over no rows is NULL; SQLite may hand back a float or int
    if value is None:
        return Decimal("0")
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


class CampaignSelector(BaseSelector[DonationCampaign]):
    """Campaign reads and funding aggregation."""

    def get(self, campaign_id: UUID) -> CampaignRecord:
        campaign = self.session.get(DonationCampaign, campaign_id)
        if campaign is None:
            raise CampaignNotFoundError(str(campaign_id))
        return campaign_to_record(campaign)

    def list_campaigns(self, include_completed: bool = True) -> list[CampaignRecord]:
        """Campaigns, newest first."""
        query = select(DonationCampaign).order_by(DonationCampaign.created_at.desc())
        if not include_completed:
            query = query.where(DonationCampaign.is_completed.is_(False))
        return [
            campaign_to_record(campaign)
            for campaign in self.session.execute(query).scalars()
        ]

    def total_raised(self, campaign_id: UUID) -> Decimal:
        """Sum of received cash donations to the campaign."""
        total = self.session.execute(
            select(func.sum(Donation.amount)).where(
                Donation.campaign_id == campaign_id,
                Donation.donation_type == DonationType.CASH.value,
                Donation.status == DonationStatus.RECEIVED.value,
            )
        ).scalar_one()
        return _as_decimal(total)

    def funding_summary(self, campaign_id: UUID) -> FundingSummary:
        """
        Derived funding figures for one campaign.

        Raises:
            CampaignNotFoundError: If the campaign does not exist.
        """
        target = self.session.execute(
            select(DonationCampaign.target_amount).where(
                DonationCampaign.id == campaign_id
            )
        ).one_or_none()
        if target is None:
            raise CampaignNotFoundError(str(campaign_id))
        return compute_funding_summary(target[0], self.total_raised(campaign_id))

    def campaign_statistics(self, campaign_id: UUID) -> CampaignStatistics:
        """
        Donation counts for the campaign detail view.

        total_donations counts every donation whatever its status;
        total_cash_amount is the received cash only.
        """
        if self.session.get(DonationCampaign, campaign_id) is None:
            raise CampaignNotFoundError(str(campaign_id))

        total_donations, goods_donations = self.session.execute(
            select(
                func.count(Donation.id),
                func.sum(
                    case((Donation.donation_type == DonationType.GOODS.value, 1), else_=0)
                ),
            ).where(Donation.campaign_id == campaign_id)
        ).one()

        total_items = self.session.execute(
            select(func.sum(DonatedItem.quantity))
            .join(Donation, DonatedItem.donation_id == Donation.id)
            .where(
                Donation.campaign_id == campaign_id,
                Donation.donation_type == DonationType.GOODS.value,
            )
        ).scalar_one()

        return CampaignStatistics(
            total_donations=total_donations or 0,
            total_cash_amount=self.total_raised(campaign_id),
            goods_donations=int(goods_donations or 0),
            total_items=int(total_items or 0),
        )
