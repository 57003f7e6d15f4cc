"""
donation_services.portal -- DonationPortal, the outward facade.

Responsibility:
    The one surface web handlers, jobs and the CLI call.  Each operation
    validates its input, runs the kernel services in exactly one
    transaction (``session_scope``), and performs the side effects that
    must not hold a transaction open (gateway call, receipt dispatch)
    after commit.

Architecture position:
    Services -- top of the stack.  Builds a DonationOrchestrator per
    transaction; the kernel below never commits.

Invariants enforced:
    - A cash donation and its checkout_ref are committed before the
      gateway is called.  A gateway failure leaves a pending donation that
      retry_checkout re-opens under the same reference.
    - A goods donation, its items and its stock increases commit together
      or not at all.
    - Receipts go out after the status change commits, once per donation:
      the reconciliation compare-and-swap queues a donation only on the
      call that moved it out of pending, and receipt_dispatched_at is
      stamped only after a successful dispatch.
    - A failing receipt dispatch never fails the payment callback.  The
      donation stays in outstanding_receipts for resend_outstanding_receipts.

Failure modes:
    - ValidationError, NotFoundError subclasses, InvalidAdjustmentError,
      PersistenceError, OptimisticLockError: propagate with the
      transaction rolled back.
    - GatewayUnavailableError: propagates after the donation committed.
"""

from __future__ import annotations

import uuid
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session, sessionmaker

from donation_config.bridges import build_checkout_settings
from donation_config.schema import PaymentsConfig, PortalConfig
from donation_kernel.db.engine import get_session_factory, session_scope
from donation_kernel.db.immutability import register_immutability_listeners
from donation_kernel.domain.clock import Clock, SystemClock
from donation_kernel.domain.dtos import (
    AdjustmentEntry,
    AdjustmentResult,
    CallbackResult,
    CampaignImageSpec,
    CampaignRecord,
    CampaignStatistics,
    CheckoutRequest,
    DonationRecord,
    DonorStatistics,
    InventoryItemView,
    InventoryStatistics,
    LedgerDiscrepancy,
    NewItemEntry,
    RequisitionResult,
    VerificationResult,
)
from donation_kernel.domain.funding import FundingSummary
from donation_kernel.domain.intake import CurrentUser, parse_donation_request
from donation_kernel.domain.values import (
    DonationChannel,
    DonationStatus,
    DonationType,
    InventoryKey,
)
from donation_kernel.exceptions import (
    DonationNotFoundError,
    GatewayUnavailableError,
    ValidationError,
)
from donation_kernel.logging_config import LogContext, get_logger
from donation_kernel.models.donation import Donation
from donation_kernel.services.reconciliation_service import ReconciliationService
from donation_services.gateway import (
    ApiCheckoutGateway,
    HostedPageGateway,
    PaymentGateway,
)
from donation_services.orchestrator import DonationOrchestrator
from donation_services.receipts import NullReceiptDispatcher, ReceiptDispatcher

logger = get_logger("services.portal")


@dataclass(frozen=True)
class CreateDonationResult:
    """
    What the caller shows after a submission.

    Cash donations through the gateway carry either checkout_url (API
    mode) or checkout_document (hosted page mode).
    """

    donation_id: UUID
    donation_type: DonationType
    status: DonationStatus
    checkout_ref: str | None = None
    checkout_url: str | None = None
    checkout_document: str | None = None
    item_count: int = 0
    total_quantity: int = 0


def build_gateway(payments: PaymentsConfig) -> PaymentGateway:
    if payments.mode == "api":
        return ApiCheckoutGateway(
            secret_key=payments.secret_key,
            api_url=payments.api_url,
            timeout=payments.gateway_timeout_seconds,
        )
    return HostedPageGateway(page_url=payments.hosted_page_url)


class DonationPortal:
    """Facade over the donation kernel."""

    def __init__(
        self,
        config: PortalConfig,
        session_factory: sessionmaker[Session] | None = None,
        clock: Clock | None = None,
        gateway: PaymentGateway | None = None,
        receipt_dispatcher: ReceiptDispatcher | None = None,
    ):
        register_immutability_listeners()
        self._config = config
        self._session_factory = session_factory or get_session_factory()
        self._clock = clock or SystemClock()
        self._gateway = gateway or build_gateway(config.payments)
        self._receipts = receipt_dispatcher or NullReceiptDispatcher()
        self._checkout_settings = build_checkout_settings(config)

    @property
    def config(self) -> PortalConfig:
        return self._config

    def _kernel(self, session: Session) -> DonationOrchestrator:
        return DonationOrchestrator(session, self._config, self._clock)

    # ------------------------------------------------------------------
    # Intake
    # ------------------------------------------------------------------

    def create_donation(
        self,
        channel: DonationChannel | str,
        payload: Mapping[str, Any],
        current_user: CurrentUser | None = None,
    ) -> CreateDonationResult:
        """
        Validate and record a donation, then open its checkout (cash).

        Raises:
            ValidationError: Bad submission; nothing written.
            CampaignNotFoundError: Unknown campaign; nothing written.
            PersistenceError: Storage failure; nothing written.
            GatewayUnavailableError: The donation is committed and pending;
                ``donation_id`` on the error identifies it for retry.
        """
        minimums = self._config.intake.minimum_amounts
        request = parse_donation_request(channel, payload, current_user, minimums)
        actor_id = current_user.id if current_user else self._config.system_actor_id

        checkout: CheckoutRequest | None = None
        with LogContext.bind(correlation_id=str(uuid.uuid4()), actor_id=str(actor_id)):
            with session_scope(self._session_factory) as session:
                kernel = self._kernel(session)
                receipt = kernel.intake.create_donation(request, actor_id)
                if (
                    receipt.donation_type is DonationType.CASH
                    and receipt.status is DonationStatus.PENDING
                ):
                    donation = session.get(Donation, receipt.donation_id)
                    checkout = kernel.issuer.build_checkout_request(
                        donation,
                        request.donor.name,
                        request.donor.email,
                        self._checkout_settings,
                    )

            if (
                receipt.donation_type is DonationType.CASH
                and receipt.status is DonationStatus.RECEIVED
            ):
                self._dispatch_receipts([receipt.donation_id])

            result = CreateDonationResult(
                donation_id=receipt.donation_id,
                donation_type=receipt.donation_type,
                status=receipt.status,
                checkout_ref=receipt.checkout_ref,
                item_count=receipt.item_count,
                total_quantity=receipt.total_quantity,
            )
            if checkout is None:
                return result
            return self._open_checkout(checkout, result)

    def retry_checkout(
        self,
        donation_id: UUID,
        current_user: CurrentUser | None = None,
    ) -> CreateDonationResult:
        """
        Re-open the checkout of a pending cash donation, same reference.

        A registered donor's donation needs that donor as ``current_user``
        for the checkout's name and email.
        """
        with session_scope(self._session_factory) as session:
            kernel = self._kernel(session)
            donation = session.get(Donation, donation_id)
            if donation is None:
                raise DonationNotFoundError(str(donation_id))
            if not donation.is_cash or donation.status != DonationStatus.PENDING:
                raise ValidationError.single(
                    "donation", "Only pending cash donations can be checked out again."
                )

            if donation.donor_user_id is not None:
                if current_user is None or current_user.id != donation.donor_user_id:
                    raise ValidationError.single(
                        "current_user", "The donor must be signed in to retry."
                    )
                name, email = current_user.name, current_user.email
            else:
                name, email = donation.donor_name or "", donation.donor_email or ""

            checkout = kernel.issuer.build_checkout_request(
                donation, name, email, self._checkout_settings
            )
            result = CreateDonationResult(
                donation_id=donation.id,
                donation_type=DonationType.CASH,
                status=DonationStatus.PENDING,
                checkout_ref=donation.checkout_ref,
            )

        logger.info(
            "checkout_retry",
            extra={"donation_id": str(donation_id), "checkout_ref": checkout.tx_ref},
        )
        return self._open_checkout(checkout, result)

    def _open_checkout(
        self, checkout: CheckoutRequest, result: CreateDonationResult
    ) -> CreateDonationResult:
        try:
            session = self._gateway.open_checkout(checkout)
        except GatewayUnavailableError:
            logger.error(
                "checkout_open_failed",
                extra={
                    "donation_id": str(result.donation_id),
                    "checkout_ref": result.checkout_ref,
                },
                exc_info=True,
            )
            raise
        return CreateDonationResult(
            donation_id=result.donation_id,
            donation_type=result.donation_type,
            status=result.status,
            checkout_ref=result.checkout_ref,
            checkout_url=session.checkout_url,
            checkout_document=session.document,
            item_count=result.item_count,
            total_quantity=result.total_quantity,
        )

    # ------------------------------------------------------------------
    # Reconciliation
    # ------------------------------------------------------------------

    def handle_payment_callback(self, payload: Mapping[str, Any]) -> CallbackResult:
        """Apply a gateway callback or webhook.  Idempotent per reference."""
        reference, status = ReconciliationService.parse_callback(payload)
        with session_scope(self._session_factory) as session:
            reconciliation = self._kernel(session).reconciliation
            result = reconciliation.handle_callback(reference, status)
            due = list(reconciliation.receipts_due)
        self._dispatch_receipts(due)
        return result

    def handle_payment_return(self, payload: Mapping[str, Any]) -> CallbackResult:
        """Apply the donor's return from the gateway page."""
        reference, status = ReconciliationService.parse_return(payload)
        with session_scope(self._session_factory) as session:
            return self._kernel(session).reconciliation.handle_return(reference, status)

    def verify_donation(
        self, reference: str, user_id: UUID | None = None
    ) -> VerificationResult:
        """Manual verify: pending -> received, scoped to ``user_id`` if given."""
        with session_scope(self._session_factory) as session:
            reconciliation = self._kernel(session).reconciliation
            result = reconciliation.verify_transaction(reference, user_id)
            due = list(reconciliation.receipts_due)
        self._dispatch_receipts(due)
        return result

    # ------------------------------------------------------------------
    # Receipts
    # ------------------------------------------------------------------

    def resend_outstanding_receipts(self, limit: int | None = None) -> int:
        """Dispatch receipts that never went out.  Returns how many did now."""
        with session_scope(self._session_factory) as session:
            pending = self._kernel(session).donation_reader.outstanding_receipts(limit)
        return self._dispatch_receipts([record.id for record in pending])

    def _dispatch_receipts(self, donation_ids: Sequence[UUID]) -> int:
        sent = 0
        for donation_id in donation_ids:
            try:
                self._receipts.dispatch(donation_id)
            except Exception:
                # Left unstamped; resend_outstanding_receipts picks it up
                logger.error(
                    "receipt_dispatch_failed",
                    extra={"donation_id": str(donation_id)},
                    exc_info=True,
                )
                continue
            with session_scope(self._session_factory) as session:
                self._kernel(session).reconciliation.mark_receipt_dispatched(donation_id)
            logger.info("receipt_dispatched", extra={"donation_id": str(donation_id)})
            sent += 1
        return sent

    # ------------------------------------------------------------------
    # Inventory
    # ------------------------------------------------------------------

    def adjust_inventory(
        self,
        item_key: InventoryKey,
        delta: int,
        reason: str,
        actor_id: UUID,
        notes: str | None = None,
        source_donation_id: UUID | None = None,
    ) -> AdjustmentResult:
        with LogContext.bind(actor_id=str(actor_id)):
            with session_scope(self._session_factory) as session:
                return self._kernel(session).inventory.adjust(
                    item_key,
                    delta,
                    reason,
                    actor_id,
                    notes=notes,
                    source_donation_id=source_donation_id,
                )

    def adjust_inventory_item(
        self,
        item_id: UUID,
        delta: int,
        reason: str,
        actor_id: UUID,
        notes: str | None = None,
    ) -> AdjustmentResult:
        with session_scope(self._session_factory) as session:
            return self._kernel(session).inventory.adjust_by_id(
                item_id, delta, reason, actor_id, notes=notes
            )

    def process_requisition(
        self,
        new_items: Sequence[NewItemEntry],
        adjustments: Sequence[AdjustmentEntry],
        actor_id: UUID,
    ) -> RequisitionResult:
        """Apply a requisition batch; failed entries are reported, not fatal."""
        with LogContext.bind(actor_id=str(actor_id)):
            with session_scope(self._session_factory) as session:
                return self._kernel(session).inventory.process_requisition(
                    new_items, adjustments, actor_id
                )

    def list_inventory(self, **filters: Any) -> list[InventoryItemView]:
        with session_scope(self._session_factory) as session:
            return self._kernel(session).inventory_reader.list_items(**filters)

    def inventory_statistics(self) -> InventoryStatistics:
        with session_scope(self._session_factory) as session:
            return self._kernel(session).inventory_reader.inventory_statistics()

    def verify_ledger(self) -> list[LedgerDiscrepancy]:
        with session_scope(self._session_factory) as session:
            return self._kernel(session).inventory_reader.verify_ledger()

    # ------------------------------------------------------------------
    # Campaigns and donors
    # ------------------------------------------------------------------

    def create_campaign(
        self,
        message: str,
        images: Sequence[CampaignImageSpec],
        actor_id: UUID,
        target_amount: Decimal | None = None,
    ) -> CampaignRecord:
        with session_scope(self._session_factory) as session:
            return self._kernel(session).campaigns.create_campaign(
                message, images, actor_id, target_amount
            )

    def delete_campaign(self, campaign_id: UUID, actor_id: UUID) -> None:
        with session_scope(self._session_factory) as session:
            self._kernel(session).campaigns.delete_campaign(campaign_id, actor_id)

    def get_campaign_funding_summary(self, campaign_id: UUID) -> FundingSummary:
        with session_scope(self._session_factory) as session:
            return self._kernel(session).campaign_reader.funding_summary(campaign_id)

    def get_campaign_statistics(self, campaign_id: UUID) -> CampaignStatistics:
        with session_scope(self._session_factory) as session:
            return self._kernel(session).campaign_reader.campaign_statistics(campaign_id)

    def get_donation(self, donation_id: UUID) -> DonationRecord:
        with session_scope(self._session_factory) as session:
            return self._kernel(session).donation_reader.get(donation_id)

    def get_donor_statistics(
        self, user_id: UUID, now: datetime | None = None
    ) -> DonorStatistics:
        with session_scope(self._session_factory) as session:
            return self._kernel(session).donation_reader.donor_statistics(
                user_id, now or self._clock.now()
            )
