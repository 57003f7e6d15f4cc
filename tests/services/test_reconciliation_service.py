"""
Payment reconciliation: callbacks, returns and manual verification.

The pending -> received | failed transition must apply at most once per
donation; every later delivery is a no-op that still reports success.
"""

from decimal import Decimal
from uuid import uuid4

import pytest

from donation_kernel.domain.intake import parse_donation_request
from donation_kernel.domain.values import DonationStatus
from donation_kernel.exceptions import DonationNotFoundError, ValidationError
from donation_kernel.models.campaign import DonationCampaign
from donation_kernel.models.donation import Donation
from donation_kernel.services.reconciliation_service import (
    ReconciliationService,
    map_reported_status,
)


@pytest.fixture
def pending_cash(intake_service, current_user):
    def _create(amount="2500", channel="donor", campaign_id=None):
        payload = {"donation_type": "cash", "amount": amount}
        if campaign_id is not None:
            payload["campaign_id"] = str(campaign_id)
        request = parse_donation_request(
            channel, payload, current_user, intake_service.policy.minimum_amounts
        )
        return intake_service.create_donation(request, current_user.id)

    return _create


class TestStatusMapping:
    @pytest.mark.parametrize("reported", ["success", "Successful", " SUCCESS "])
    def test_success_spellings(self, reported):
        assert map_reported_status(reported) is DonationStatus.RECEIVED

    @pytest.mark.parametrize("reported", ["failed", "cancelled", "pending", "weird"])
    def test_everything_else_fails(self, reported):
        assert map_reported_status(reported) is DonationStatus.FAILED


class TestParsing:
    def test_callback_fields(self):
        assert ReconciliationService.parse_callback(
            {"tx_ref": " donor-1-abc ", "status": "success"}
        ) == ("donor-1-abc", "success")

    def test_webhook_reference_field(self):
        assert ReconciliationService.parse_callback(
            {"reference": "donor-1-abc", "status": "failed"}
        ) == ("donor-1-abc", "failed")

    def test_missing_fields_reported_together(self):
        with pytest.raises(ValidationError) as exc_info:
            ReconciliationService.parse_callback({})
        assert set(exc_info.value.as_dict()) == {"tx_ref", "status"}

    def test_overlong_reference(self):
        with pytest.raises(ValidationError):
            ReconciliationService.parse_callback({"tx_ref": "x" * 101, "status": "success"})

    def test_non_mapping_payload(self):
        with pytest.raises(ValidationError) as exc_info:
            ReconciliationService.parse_callback(["tx_ref"])
        assert "payload" in exc_info.value.as_dict()

    def test_return_status_optional(self):
        assert ReconciliationService.parse_return({"tx_ref": "guest-1-x"}) == ("guest-1-x", None)


class TestCallback:
    def test_success_moves_pending_to_received(
        self, session, reconciliation_service, pending_cash, deterministic_clock
    ):
        receipt = pending_cash()
        deterministic_clock.advance(60)

        result = reconciliation_service.handle_callback(receipt.checkout_ref, "success")

        assert result.applied is True
        assert result.status is DonationStatus.RECEIVED
        donation = session.get(Donation, receipt.donation_id)
        assert donation.status == DonationStatus.RECEIVED.value
        assert donation.status_changed_at == deterministic_clock.now()
        assert reconciliation_service.receipts_due == [receipt.donation_id]

    def test_duplicate_callback_is_noop(self, reconciliation_service, pending_cash):
        receipt = pending_cash()
        reconciliation_service.handle_callback(receipt.checkout_ref, "success")

        again = reconciliation_service.handle_callback(receipt.checkout_ref, "success")
        opposite = reconciliation_service.handle_callback(receipt.checkout_ref, "failed")

        assert again.applied is False
        assert opposite.applied is False
        assert opposite.status is DonationStatus.RECEIVED
        assert reconciliation_service.receipts_due == [receipt.donation_id]

    def test_failure_queues_no_receipt(self, reconciliation_service, pending_cash):
        receipt = pending_cash()
        result = reconciliation_service.handle_callback(receipt.checkout_ref, "failed")

        assert result.status is DonationStatus.FAILED
        assert reconciliation_service.receipts_due == []

    def test_unknown_reference(self, reconciliation_service, captured_logs):
        with pytest.raises(DonationNotFoundError):
            reconciliation_service.handle_callback("donor-0-nothing", "success")
        assert any(
            r["message"] == "donation_reference_not_found" for r in captured_logs()
        )

    def test_applied_callback_is_logged_with_reference(
        self, reconciliation_service, pending_cash, captured_logs
    ):
        receipt = pending_cash()
        reconciliation_service.handle_callback(receipt.checkout_ref, "successful")

        applied = [r for r in captured_logs() if r["message"] == "payment_callback_applied"]
        assert len(applied) == 1
        assert applied[0]["checkout_ref"] == receipt.checkout_ref
        assert applied[0]["to_status"] == "received"

    def test_received_campaign_gift_completes_campaign(
        self, session, reconciliation_service, pending_cash, create_campaign
    ):
        campaign = create_campaign(target_amount=Decimal("300"))
        first = pending_cash(amount="200", channel="campaign", campaign_id=campaign.id)
        second = pending_cash(amount="100", channel="campaign", campaign_id=campaign.id)

        reconciliation_service.handle_callback(first.checkout_ref, "success")
        assert session.get(DonationCampaign, campaign.id).is_completed is False

        reconciliation_service.handle_callback(second.checkout_ref, "success")
        assert session.get(DonationCampaign, campaign.id).is_completed is True


class TestReturn:
    def test_reported_failure_marks_failed(self, reconciliation_service, pending_cash):
        receipt = pending_cash()
        result = reconciliation_service.handle_return(receipt.checkout_ref, "cancelled")
        assert result.applied is True
        assert result.status is DonationStatus.FAILED

    @pytest.mark.parametrize("reported", [None, "success", "pending"])
    def test_other_returns_change_nothing(self, reconciliation_service, pending_cash, reported):
        receipt = pending_cash()
        result = reconciliation_service.handle_return(receipt.checkout_ref, reported)
        assert result.applied is False
        assert result.status is DonationStatus.PENDING


class TestVerify:
    def test_verify_receives_pending(self, reconciliation_service, pending_cash, current_user):
        receipt = pending_cash()
        result = reconciliation_service.verify_transaction(
            receipt.checkout_ref, current_user.id
        )

        assert result.already_processed is False
        assert result.status is DonationStatus.RECEIVED
        assert result.redirect_target == "success"
        assert reconciliation_service.receipts_due == [receipt.donation_id]

    def test_verify_terminal_is_reported(self, reconciliation_service, pending_cash):
        receipt = pending_cash()
        reconciliation_service.handle_callback(receipt.checkout_ref, "failed")

        result = reconciliation_service.verify_transaction(receipt.checkout_ref)

        assert result.already_processed is True
        assert result.status is DonationStatus.FAILED
        assert result.redirect_target == "failed"

    def test_verify_scoped_to_owner(self, reconciliation_service, pending_cash):
        receipt = pending_cash()
        with pytest.raises(DonationNotFoundError):
            reconciliation_service.verify_transaction(receipt.checkout_ref, uuid4())


class TestReceiptStamp:
    def test_stamped_once(self, session, reconciliation_service, pending_cash, deterministic_clock):
        receipt = pending_cash()
        reconciliation_service.handle_callback(receipt.checkout_ref, "success")

        assert reconciliation_service.mark_receipt_dispatched(receipt.donation_id) is True
        assert reconciliation_service.mark_receipt_dispatched(receipt.donation_id) is False
        donation = session.get(Donation, receipt.donation_id)
        assert donation.receipt_dispatched_at == deterministic_clock.now()
