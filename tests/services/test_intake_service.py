"""Donation creation per channel and gift kind."""

import re
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import DataError

from donation_kernel.domain.intake import parse_donation_request
from donation_kernel.domain.values import DonationStatus, DonationType, InventoryKey
from donation_kernel.exceptions import (
    CampaignNotFoundError,
    OptimisticLockError,
    PersistenceError,
)
from donation_kernel.models.campaign import DonationCampaign
from donation_kernel.models.donation import DonatedItem, Donation
from donation_kernel.models.inventory import InventoryItem
from donation_kernel.services.intake_service import IntakePolicy, IntakeService

REF_PATTERN = re.compile(r"^(donor|guest|campaign-[0-9a-f]{8}|anon-campaign-[0-9a-f]{8})-\d+-[A-Za-z0-9]{12}$")


def _request(intake_service, channel, payload, user=None):
    return parse_donation_request(
        channel, payload, user, intake_service.policy.minimum_amounts
    )


class TestCashIntake:
    def test_donor_cash_is_pending_with_reference(
        self, session, intake_service, current_user
    ):
        receipt = intake_service.create_donation(
            _request(intake_service, "donor", {"donation_type": "cash", "amount": "2500"}, current_user),
            current_user.id,
        )

        assert receipt.donation_type is DonationType.CASH
        assert receipt.status is DonationStatus.PENDING
        assert receipt.amount == Decimal("2500")
        assert REF_PATTERN.match(receipt.checkout_ref)
        assert receipt.checkout_ref.startswith("donor-")

        donation = session.get(Donation, receipt.donation_id)
        assert donation.donor_user_id == current_user.id
        assert donation.currency == "MWK"
        assert donation.status_changed_at is None

    def test_guest_cash_stores_guest_identity(self, session, intake_service, test_actor_id):
        receipt = intake_service.create_donation(
            _request(
                intake_service,
                "guest",
                {
                    "donation_type": "cash",
                    "amount": "20",
                    "guest_name": "Mercy Tembo",
                    "guest_email": "mercy@example.org",
                },
            ),
            test_actor_id,
        )
        donation = session.get(Donation, receipt.donation_id)

        assert receipt.checkout_ref.startswith("guest-")
        assert donation.donor_user_id is None
        assert donation.guest_email == "mercy@example.org"
        assert donation.is_anonymous is False

    def test_anonymous_campaign_reference_prefix(
        self, session, intake_service, create_campaign, test_actor_id
    ):
        campaign = create_campaign()
        receipt = intake_service.create_donation(
            _request(
                intake_service,
                "anonymous_campaign",
                {
                    "donation_type": "cash",
                    "amount": "150",
                    "campaign_id": str(campaign.id),
                    "anonymous_name": "A friend",
                    "anonymous_email": "friend@example.org",
                },
            ),
            test_actor_id,
        )
        assert receipt.checkout_ref.startswith(f"anon-campaign-{campaign.id.hex[:8]}-")
        assert session.get(Donation, receipt.donation_id).is_anonymous is True

    def test_references_are_unique(self, intake_service, current_user):
        refs = {
            intake_service.create_donation(
                _request(intake_service, "donor", {"donation_type": "cash", "amount": "5"}, current_user),
                current_user.id,
            ).checkout_ref
            for _ in range(5)
        }
        assert len(refs) == 5

    def test_unknown_campaign(self, session, intake_service, current_user):
        request = _request(
            intake_service,
            "campaign",
            {"donation_type": "cash", "amount": "500", "campaign_id": str(uuid4())},
            current_user,
        )
        with pytest.raises(CampaignNotFoundError):
            intake_service.create_donation(request, current_user.id)
        assert session.execute(select(func.count(Donation.id))).scalar_one() == 0

    def test_confirm_on_create(
        self,
        session,
        deterministic_clock,
        reference_issuer,
        inventory_service,
        campaign_service,
        create_campaign,
        current_user,
    ):
        service = IntakeService(
            session,
            deterministic_clock,
            issuer=reference_issuer,
            inventory=inventory_service,
            campaigns=campaign_service,
            policy=IntakePolicy(confirm_on_create=True),
        )
        campaign = create_campaign(target_amount=Decimal("500"))
        receipt = service.create_donation(
            _request(
                service,
                "campaign",
                {"donation_type": "cash", "amount": "500", "campaign_id": str(campaign.id)},
                current_user,
            ),
            current_user.id,
        )

        assert receipt.status is DonationStatus.RECEIVED
        donation = session.get(Donation, receipt.donation_id)
        assert donation.status_changed_at == deterministic_clock.now()
        assert session.get(DonationCampaign, campaign.id).is_completed is True


class TestGoodsIntake:
    def test_goods_are_received_with_items_and_stock(
        self, session, intake_service, current_user
    ):
        receipt = intake_service.create_donation(
            _request(
                intake_service,
                "donor",
                {
                    "donation_type": "goods",
                    "items": [
                        {"name": "School Books", "quantity": 10, "estimated_value": "1500"},
                        {"name": "Blankets", "quantity": 3},
                    ],
                },
                current_user,
            ),
            current_user.id,
        )

        assert receipt.donation_type is DonationType.GOODS
        assert receipt.status is DonationStatus.RECEIVED
        assert receipt.checkout_ref is None
        assert receipt.amount is None
        assert receipt.item_count == 2
        assert receipt.total_quantity == 13

        items = session.execute(
            select(DonatedItem)
            .where(DonatedItem.donation_id == receipt.donation_id)
            .order_by(DonatedItem.line_number)
        ).scalars().all()
        assert [(i.line_number, i.item_name, i.quantity) for i in items] == [
            (1, "School Books", 10),
            (2, "Blankets", 3),
        ]

        stock = {
            item.item_name: item.quantity
            for item in session.execute(select(InventoryItem)).scalars()
        }
        assert stock == {"School Books": 10, "Blankets": 3}

    def test_goods_add_to_existing_stock(
        self, session, intake_service, inventory_service, current_user, test_actor_id
    ):
        inventory_service.adjust(
            InventoryKey("Blankets", "general", "main"), 7, "Opening stock", test_actor_id
        )
        intake_service.create_donation(
            _request(
                intake_service,
                "donor",
                {"donation_type": "goods", "items": [{"name": "Blankets", "quantity": 3}]},
                current_user,
            ),
            current_user.id,
        )
        blankets = session.execute(
            select(InventoryItem).where(InventoryItem.item_name == "Blankets")
        ).scalar_one()
        assert blankets.quantity == 10


class TestStorageFailures:
    def test_cash_data_error_becomes_persistence_error(
        self, monkeypatch, session, intake_service, current_user, captured_logs
    ):
        request = _request(
            intake_service, "donor", {"donation_type": "cash", "amount": "2500"}, current_user
        )

        real_flush = session.flush

        def overflow(*args, **kwargs):
            if any(isinstance(obj, Donation) for obj in session.new):
                raise DataError("INSERT INTO donations", {}, Exception("numeric field overflow"))
            return real_flush(*args, **kwargs)

        monkeypatch.setattr(session, "flush", overflow)
        with pytest.raises(PersistenceError) as exc_info:
            intake_service.create_donation(request, current_user.id)
        monkeypatch.undo()

        assert isinstance(exc_info.value.__cause__, DataError)
        assert exc_info.value.operation == "create_donation"
        assert any(r["message"] == "cash_donation_persist_failed" for r in captured_logs())
        assert session.execute(select(func.count(Donation.id))).scalar_one() == 0

    def test_lost_stock_race_becomes_persistence_error(
        self, monkeypatch, intake_service, inventory_service, current_user
    ):
        request = _request(
            intake_service,
            "donor",
            {"donation_type": "goods", "items": [{"name": "Blankets", "quantity": 3}]},
            current_user,
        )

        def lost_race(donation_id, actor_id):
            raise OptimisticLockError("InventoryItem", str(uuid4()))

        monkeypatch.setattr(inventory_service, "stock_goods_donation", lost_race)
        with pytest.raises(PersistenceError) as exc_info:
            intake_service.create_donation(request, current_user.id)

        assert isinstance(exc_info.value.__cause__, OptimisticLockError)
