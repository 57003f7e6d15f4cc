"""
Module: donation_kernel.selectors.donation_selector
Responsibility: Read-only donation queries: lookup by id or checkout
    reference, a donor's history and dashboard statistics, and the list of
    received cash donations whose receipt has not gone out yet.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - Amount totals include cash donations with status ``received`` only.
    - outstanding_receipts returns received cash donations with
      receipt_dispatched_at unset, oldest first, so a resend run processes
      them in the order they were confirmed.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import selectinload

from donation_kernel.domain.dtos import (
    DonatedItemRecord,
    DonationRecord,
    DonorStatistics,
)
from donation_kernel.domain.values import DonationChannel, DonationStatus, DonationType
from donation_kernel.exceptions import DonationNotFoundError
from donation_kernel.models.donation import Donation
from donation_kernel.selectors.base import BaseSelector


def donation_to_record(donation: Donation) -> DonationRecord:
    return DonationRecord(
        id=donation.id,
        checkout_ref=donation.checkout_ref,
        donation_type=DonationType(donation.donation_type),
        amount=donation.amount,
        currency=donation.currency,
        status=DonationStatus(donation.status),
        channel=DonationChannel(donation.channel),
        donor_user_id=donation.donor_user_id,
        donor_name=donation.donor_name,
        donor_email=donation.donor_email,
        is_anonymous=donation.is_anonymous,
        child_id=donation.child_id,
        campaign_id=donation.campaign_id,
        description=donation.description,
        created_at=donation.created_at,
        status_changed_at=donation.status_changed_at,
        receipt_dispatched_at=donation.receipt_dispatched_at,
        items=tuple(
            DonatedItemRecord(
                line_number=item.line_number,
                item_name=item.item_name,
                quantity=item.quantity,
                description=item.description,
                estimated_value=item.estimated_value,
            )
            for item in donation.items
        ),
    )


def _month_bounds(now: datetime) -> tuple[datetime, datetime]:
    start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    if start.month == 12:
        end = start.replace(year=start.year + 1, month=1)
    else:
        end = start.replace(month=start.month + 1)
    return start, end


class DonationSelector(BaseSelector[Donation]):
    def get(self, donation_id: UUID) -> DonationRecord:
        donation = self.session.get(Donation, donation_id)
        if donation is None:
            raise DonationNotFoundError(str(donation_id))
        return donation_to_record(donation)

    def get_by_reference(self, checkout_ref: str) -> DonationRecord:
        donation = self.session.execute(
            select(Donation).where(Donation.checkout_ref == checkout_ref)
        ).scalar_one_or_none()
        if donation is None:
            raise DonationNotFoundError(checkout_ref)
        return donation_to_record(donation)

    def list_for_donor(
        self,
        user_id: UUID,
        status: DonationStatus | None = None,
        donation_type: DonationType | None = None,
    ) -> list[DonationRecord]:
        """A registered donor's donations, newest first."""
        query = (
            select(Donation)
            .where(Donation.donor_user_id == user_id)
            .options(selectinload(Donation.items))
            .order_by(Donation.created_at.desc())
        )
        if status is not None:
            query = query.where(Donation.status == DonationStatus(status).value)
        if donation_type is not None:
            query = query.where(Donation.donation_type == DonationType(donation_type).value)
        return [donation_to_record(d) for d in self.session.execute(query).scalars()]

    def donor_statistics(self, user_id: UUID, now: datetime) -> DonorStatistics:
        """
        Dashboard figures for one donor.

        total_donations counts every donation the donor made, whatever its
        type or status.  this_month is received cash created in the calendar
        month containing ``now``.
        """
        received_cash = (
            Donation.donor_user_id == user_id,
            Donation.donation_type == DonationType.CASH.value,
            Donation.status == DonationStatus.RECEIVED.value,
        )

        total_donated = self.session.execute(
            select(func.sum(Donation.amount)).where(*received_cash)
        ).scalar_one()

        total_donations = self.session.execute(
            select(func.count(Donation.id)).where(Donation.donor_user_id == user_id)
        ).scalar_one()

        children_helped = self.session.execute(
            select(func.count(func.distinct(Donation.child_id))).where(
                Donation.donor_user_id == user_id,
                Donation.child_id.is_not(None),
            )
        ).scalar_one()

        start, end = _month_bounds(now)
        this_month = self.session.execute(
            select(func.sum(Donation.amount)).where(
                *received_cash,
                Donation.created_at >= start,
                Donation.created_at < end,
            )
        ).scalar_one()

        return DonorStatistics(
            total_donated=Decimal(str(total_donated or 0)),
            total_donations=total_donations or 0,
            children_helped=children_helped or 0,
            this_month=Decimal(str(this_month or 0)),
        )

    def outstanding_receipts(self, limit: int | None = None) -> list[DonationRecord]:
        """Received cash donations still waiting for their receipt."""
        query = (
            select(Donation)
            .where(
                Donation.donation_type == DonationType.CASH.value,
                Donation.status == DonationStatus.RECEIVED.value,
                Donation.receipt_dispatched_at.is_(None),
            )
            .order_by(Donation.status_changed_at, Donation.created_at)
        )
        if limit is not None:
            query = query.limit(limit)
        return [donation_to_record(d) for d in self.session.execute(query).scalars()]
