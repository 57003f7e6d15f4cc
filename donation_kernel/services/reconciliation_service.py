"""
ReconciliationService -- idempotent payment status transitions.

Responsibility:
    Consumes gateway callbacks, gateway return redirects and manual verify
    requests, maps the checkout reference to its donation and applies the
    pending -> received | failed transition exactly once.

Architecture position:
    Kernel > Services -- imperative shell.  Flush-only; DonationPortal owns
    the transaction and dispatches receipts after commit.

Invariants enforced:
    - The transition is a compare-and-swap:
      ``UPDATE donations SET status=... WHERE id=:id AND status='pending'``.
      Concurrent callbacks for one reference cannot both apply, and a
      repeat delivery of a terminal status changes nothing.
    - Only amount-free columns change here (status, status_changed_at,
      receipt_dispatched_at).
    - A cash donation that reaches ``received`` is queued in
      ``receipts_due`` exactly once, and its campaign's completion flag is
      resynced.

Failure modes:
    - ValidationError: malformed callback payload, rejected before lookup.
    - DonationNotFoundError: unknown reference (or not the requesting
      user's donation on verify).  Logged and reported, never retried.

Audit relevance:
    ``payment_callback_applied`` / ``payment_callback_duplicate`` /
    ``donation_verified`` log lines carry the reference and both statuses.
"""

from collections.abc import Mapping
from typing import Any
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from donation_kernel.domain.clock import Clock, SystemClock
from donation_kernel.domain.dtos import CallbackResult, VerificationResult
from donation_kernel.domain.values import DonationStatus, DonationType
from donation_kernel.exceptions import (
    DonationNotFoundError,
    FieldError,
    InvalidStatusTransitionError,
    ValidationError,
)
from donation_kernel.logging_config import LogContext, get_logger
from donation_kernel.models.donation import Donation
from donation_kernel.services.base import BaseService
from donation_kernel.services.campaign_service import CampaignService

logger = get_logger("services.reconciliation")

SUCCESS_STATUSES = frozenset({"success", "successful"})
FAILURE_STATUSES = frozenset({"failed", "failure", "cancelled", "canceled"})
REFERENCE_MAX_LENGTH = 100

REDIRECT_SUCCESS = "success"
REDIRECT_FAILED = "failed"
REDIRECT_PENDING = "verify"


def map_reported_status(reported_status: str) -> DonationStatus:
    """Gateway success maps to received; anything else to failed."""
    if reported_status.strip().lower() in SUCCESS_STATUSES:
        return DonationStatus.RECEIVED
    return DonationStatus.FAILED


def _reference_from(payload: Mapping[str, Any], errors: list[FieldError]) -> str:
    if not isinstance(payload, Mapping):
        raise ValidationError.single("payload", "Callback payload must be an object.")
    reference = payload.get("tx_ref") or payload.get("reference")
    if not isinstance(reference, str) or not reference.strip():
        errors.append(FieldError("tx_ref", "The tx_ref field is required."))
        return ""
    if len(reference.strip()) > REFERENCE_MAX_LENGTH:
        errors.append(FieldError("tx_ref", "The tx_ref is not a valid reference."))
    return reference.strip()


def redirect_for(status: DonationStatus) -> str:
    if status is DonationStatus.RECEIVED:
        return REDIRECT_SUCCESS
    if status is DonationStatus.FAILED:
        return REDIRECT_FAILED
    return REDIRECT_PENDING


class ReconciliationService(BaseService[Donation]):
    """Applies gateway outcomes to donations."""

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        campaigns: CampaignService | None = None,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._campaigns = campaigns or CampaignService(session, self._clock)
        self.receipts_due: list[UUID] = []

    # ------------------------------------------------------------------
    # Payload parsing
    # ------------------------------------------------------------------

    @staticmethod
    def parse_callback(payload: Mapping[str, Any]) -> tuple[str, str]:
        """
        Extract (reference, status) from a callback or webhook body.

        Accepts ``tx_ref`` (callback) or ``reference`` (webhook).

        Raises:
            ValidationError: Before any lookup, if either is missing.
        """
        errors: list[FieldError] = []
        reference = _reference_from(payload, errors)

        status = payload.get("status")
        if not isinstance(status, str) or not status.strip():
            errors.append(FieldError("status", "The status field is required."))

        if errors:
            raise ValidationError(errors)
        return reference, status.strip()

    @staticmethod
    def parse_return(payload: Mapping[str, Any]) -> tuple[str, str | None]:
        """Extract (reference, status) from a return redirect; status may be absent."""
        errors: list[FieldError] = []
        reference = _reference_from(payload, errors)
        if errors:
            raise ValidationError(errors)
        status = payload.get("status")
        return reference, status.strip() if isinstance(status, str) else None

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def handle_callback(self, reference: str, reported_status: str) -> CallbackResult:
        """
        Apply a gateway callback.

        A donation that is already terminal is left untouched and the call
        succeeds with ``applied=False``.
        """
        donation = self._get_by_reference(reference)
        target = map_reported_status(reported_status)

        with LogContext.bind(donation_id=str(donation.id), checkout_ref=reference):
            applied = self._transition(donation, target)
            if applied:
                logger.info(
                    "payment_callback_applied",
                    extra={
                        "reported_status": reported_status,
                        "from_status": DonationStatus.PENDING.value,
                        "to_status": target.value,
                    },
                )
            else:
                logger.info(
                    "payment_callback_duplicate",
                    extra={
                        "reported_status": reported_status,
                        "current_status": donation.status,
                    },
                )

        return CallbackResult(
            donation_id=donation.id,
            checkout_ref=reference,
            status=DonationStatus(donation.status),
            applied=applied,
        )

    def handle_return(self, reference: str, reported_status: str | None) -> CallbackResult:
        """
        Apply the gateway's return redirect.

        Only a reported failure changes anything (pending -> failed); a
        success on return waits for the callback or a verify.
        """
        donation = self._get_by_reference(reference)
        applied = False
        if (reported_status or "").strip().lower() in FAILURE_STATUSES:
            applied = self._transition(donation, DonationStatus.FAILED)
            if applied:
                logger.info(
                    "payment_return_marked_failed",
                    extra={"donation_id": str(donation.id), "checkout_ref": reference},
                )
        return CallbackResult(
            donation_id=donation.id,
            checkout_ref=reference,
            status=DonationStatus(donation.status),
            applied=applied,
        )

    def verify_transaction(
        self, reference: str, requesting_user_id: UUID | None = None
    ) -> VerificationResult:
        """
        Manually confirm a payment the callback may have missed.

        Only pending -> received.  When ``requesting_user_id`` is given the
        lookup is limited to that donor's own donations.
        """
        donation = self._get_by_reference(reference, requesting_user_id)

        if DonationStatus(donation.status).is_terminal:
            logger.info(
                "donation_already_processed",
                extra={"donation_id": str(donation.id), "status": donation.status},
            )
            status = DonationStatus(donation.status)
            return VerificationResult(
                donation_id=donation.id,
                checkout_ref=reference,
                status=status,
                already_processed=True,
                redirect_target=redirect_for(status),
            )

        applied = self._transition(donation, DonationStatus.RECEIVED)
        status = DonationStatus(donation.status)
        logger.info(
            "donation_verified",
            extra={
                "donation_id": str(donation.id),
                "checkout_ref": reference,
                "applied": applied,
                "status": status.value,
            },
        )
        return VerificationResult(
            donation_id=donation.id,
            checkout_ref=reference,
            status=status,
            already_processed=not applied,
            redirect_target=redirect_for(status),
        )

    def mark_receipt_dispatched(self, donation_id: UUID) -> bool:
        """Stamp receipt_dispatched_at once.  False if already stamped."""
        now = self._clock.now()
        result = self.session.execute(
            update(Donation)
            .where(
                Donation.id == donation_id,
                Donation.receipt_dispatched_at.is_(None),
            )
            .values(receipt_dispatched_at=now, updated_at=now)
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount == 1

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _get_by_reference(
        self, reference: str, requesting_user_id: UUID | None = None
    ) -> Donation:
        query = select(Donation).where(Donation.checkout_ref == reference)
        if requesting_user_id is not None:
            query = query.where(Donation.donor_user_id == requesting_user_id)
        donation = self.session.execute(
            query.execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if donation is None:
            logger.warning(
                "donation_reference_not_found",
                extra={
                    "checkout_ref": reference,
                    "scoped_to_user": requesting_user_id is not None,
                },
            )
            raise DonationNotFoundError(reference)
        return donation

    def _transition(self, donation: Donation, target: DonationStatus) -> bool:
        """
        Compare-and-swap pending -> target.

        Returns:
            True if this call moved the donation out of pending.
        """
        if not target.is_terminal:
            raise InvalidStatusTransitionError(
                str(donation.id), str(donation.status), target.value
            )

        now = self._clock.now()
        result = self.session.execute(
            update(Donation)
            .where(
                Donation.id == donation.id,
                Donation.status == DonationStatus.PENDING.value,
            )
            .values(status=target.value, status_changed_at=now, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        # Reload: either our write or the one that beat us
        self.session.refresh(donation)

        if result.rowcount != 1:
            return False

        if target is DonationStatus.RECEIVED and donation.donation_type == DonationType.CASH:
            self.receipts_due.append(donation.id)
            if donation.campaign_id is not None:
                self._campaigns.sync_completion(donation.campaign_id)
        return True
