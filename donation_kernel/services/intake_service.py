"""
IntakeService -- persists validated donation requests.

Responsibility:
    Turns a DonationRequest into a Donation row (plus DonatedItem rows for
    goods) in the caller's transaction.  Cash donations get their checkout
    reference here, before any gateway call.  Goods donations are received
    on submission and stocked immediately.

Architecture position:
    Kernel > Services -- imperative shell.  Flush-only; DonationPortal owns
    the transaction.  Uses ReferenceIssuer, InventoryService and
    CampaignService.

Invariants enforced:
    - Cash donations start ``pending`` with a freshly minted checkout_ref.
      The degraded ``confirm_on_create`` policy (off by default) creates
      them ``received`` instead, for deployments the gateway cannot call
      back.
    - Goods donations start ``received``; the parent row is flushed before
      its items, and each line produces exactly one ledger increase.
    - A donation never exists without its declared items: any storage
      failure while writing items or stock raises PersistenceError and the
      caller's rollback discards the whole unit.
    - checkout_ref collisions on the unique index are re-minted inside a
      savepoint (bounded attempts).

Failure modes:
    - CampaignNotFoundError: campaign_id does not resolve.
    - PersistenceError: any storage failure after the first write, including
      a database error on the cash row and a lost stock compare-and-swap
      while stocking goods.

Audit relevance:
    ``donation_created`` is logged with channel, type, status and reference
    for every donation.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from donation_kernel.domain.clock import Clock, SystemClock
from donation_kernel.domain.dtos import DonationReceipt
from donation_kernel.domain.intake import (
    AnonymousDonor,
    CashGift,
    DonationRequest,
    GuestDonor,
    RegisteredDonor,
)
from donation_kernel.domain.values import DonationChannel, DonationStatus, DonationType
from donation_kernel.exceptions import (
    CampaignNotFoundError,
    OptimisticLockError,
    PersistenceError,
)
from donation_kernel.logging_config import LogContext, get_logger
from donation_kernel.models.campaign import DonationCampaign
from donation_kernel.models.donation import DonatedItem, Donation
from donation_kernel.services.base import BaseService
from donation_kernel.services.campaign_service import CampaignService
from donation_kernel.services.inventory_service import InventoryService
from donation_kernel.services.reference_issuer import ReferenceIssuer

logger = get_logger("services.intake")

MAX_REFERENCE_ATTEMPTS = 3


@dataclass(frozen=True)
class IntakePolicy:
    """Intake rules that vary by deployment."""

    currency: str = "MWK"
    confirm_on_create: bool = False
    minimum_amounts: dict[DonationChannel, Decimal] = field(
        default_factory=lambda: {
            DonationChannel.DONOR: Decimal("1"),
            DonationChannel.GUEST: Decimal("1"),
            DonationChannel.CAMPAIGN: Decimal("100"),
            DonationChannel.ANONYMOUS_CAMPAIGN: Decimal("100"),
        }
    )


class IntakeService(BaseService[Donation]):
    """Creates donations for every channel."""

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        issuer: ReferenceIssuer | None = None,
        inventory: InventoryService | None = None,
        campaigns: CampaignService | None = None,
        policy: IntakePolicy | None = None,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._issuer = issuer or ReferenceIssuer(self._clock)
        self._inventory = inventory or InventoryService(session, self._clock)
        self._campaigns = campaigns or CampaignService(session, self._clock)
        self._policy = policy or IntakePolicy()

    @property
    def policy(self) -> IntakePolicy:
        return self._policy

    def create_donation(self, request: DonationRequest, actor_id: UUID) -> DonationReceipt:
        """
        Persist a donation for a validated request.

        Returns:
            DonationReceipt with the new id, status and (cash) checkout_ref.
        """
        if request.campaign_id is not None:
            campaign = self.session.get(DonationCampaign, request.campaign_id)
            if campaign is None:
                raise CampaignNotFoundError(str(request.campaign_id))

        if isinstance(request.gift, CashGift):
            donation = self._create_cash(request, actor_id)
        else:
            donation = self._create_goods(request, actor_id)

        item_count = len(donation.items)
        total_quantity = sum(item.quantity for item in donation.items)

        with LogContext.bind(
            donation_id=str(donation.id),
            checkout_ref=donation.checkout_ref,
            channel=request.channel.value,
        ):
            logger.info(
                "donation_created",
                extra={
                    "donation_type": donation.donation_type,
                    "status": donation.status,
                    "amount": donation.amount,
                    "campaign_id": str(donation.campaign_id) if donation.campaign_id else None,
                    "child_id": str(donation.child_id) if donation.child_id else None,
                    "item_count": item_count,
                },
            )

        return DonationReceipt(
            donation_id=donation.id,
            donation_type=DonationType(donation.donation_type),
            status=DonationStatus(donation.status),
            checkout_ref=donation.checkout_ref,
            amount=donation.amount,
            item_count=item_count,
            total_quantity=total_quantity,
        )

    # ------------------------------------------------------------------

    def _new_donation(
        self, request: DonationRequest, actor_id: UUID, status: DonationStatus
    ) -> Donation:
        now = self._clock.now()
        donation = Donation(
            donation_type=request.donation_type.value,
            status=status.value,
            channel=request.channel.value,
            description=request.message,
            is_anonymous=request.is_anonymous,
            child_id=request.child_id,
            campaign_id=request.campaign_id,
            created_at=now,
            updated_at=now,
            created_by_id=actor_id,
            status_changed_at=now if status.is_terminal else None,
        )
        donor = request.donor
        if isinstance(donor, RegisteredDonor):
            donation.donor_user_id = donor.user_id
        elif isinstance(donor, AnonymousDonor):
            donation.anonymous_name = donor.name
            donation.anonymous_email = donor.email
        elif isinstance(donor, GuestDonor):
            donation.guest_name = donor.name
            donation.guest_email = donor.email
        return donation

    def _create_cash(self, request: DonationRequest, actor_id: UUID) -> Donation:
        status = (
            DonationStatus.RECEIVED if self._policy.confirm_on_create else DonationStatus.PENDING
        )

        for attempt in range(1, MAX_REFERENCE_ATTEMPTS + 1):
            donation = self._new_donation(request, actor_id, status)
            donation.amount = request.gift.amount
            donation.currency = self._policy.currency
            donation.checkout_ref = self._issuer.mint_reference(
                request.channel, request.campaign_id
            )

            savepoint = self.session.begin_nested()
            try:
                self.session.add(donation)
                self.session.flush()
                savepoint.commit()
                break
            except IntegrityError as exc:
                savepoint.rollback()
                if not self._reference_taken(donation.checkout_ref):
                    raise PersistenceError("create_donation", str(exc.orig)) from exc
                logger.warning(
                    "checkout_ref_collision",
                    extra={"checkout_ref": donation.checkout_ref, "attempt": attempt},
                )
            except SQLAlchemyError as exc:
                savepoint.rollback()
                logger.error(
                    "cash_donation_persist_failed",
                    extra={"checkout_ref": donation.checkout_ref, "error": str(exc)},
                )
                raise PersistenceError("create_donation", str(exc)) from exc
        else:
            raise PersistenceError(
                "create_donation",
                f"could not mint a unique checkout reference in "
                f"{MAX_REFERENCE_ATTEMPTS} attempts",
            )

        if status is DonationStatus.RECEIVED:
            logger.warning(
                "cash_donation_confirmed_on_create",
                extra={"donation_id": str(donation.id)},
            )
            if donation.campaign_id is not None:
                self._campaigns.sync_completion(donation.campaign_id)
        return donation

    def _create_goods(self, request: DonationRequest, actor_id: UUID) -> Donation:
        donation = self._new_donation(request, actor_id, DonationStatus.RECEIVED)
        now = donation.created_at

        try:
            # Parent first so it is never visible without its items
            self.session.add(donation)
            self.session.flush()

            for line_number, line in enumerate(request.gift.items, start=1):
                donation.items.append(
                    DonatedItem(
                        line_number=line_number,
                        item_name=line.name,
                        quantity=line.quantity,
                        description=line.description,
                        estimated_value=line.estimated_value,
                        created_at=now,
                    )
                )
            self.session.flush()

            self._inventory.stock_goods_donation(donation.id, actor_id)
        except (SQLAlchemyError, OptimisticLockError) as exc:
            logger.error(
                "goods_donation_persist_failed",
                extra={"donation_id": str(donation.id), "error": str(exc)},
            )
            raise PersistenceError("create_donation", str(exc)) from exc

        return donation

    def _reference_taken(self, checkout_ref: str) -> bool:
        return (
            self.session.execute(
                select(Donation.id).where(Donation.checkout_ref == checkout_ref)
            ).first()
            is not None
        )
