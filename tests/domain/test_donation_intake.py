"""
Donation request parsing.

parse_donation_request is the only way raw submissions become
DonationRequest values.  Every channel's donor rules, the per-channel cash
minimums and the goods line rules are exercised here without a database.
"""

from decimal import Decimal
from uuid import uuid4

import pytest

from donation_kernel.domain.intake import (
    AnonymousDonor,
    CashGift,
    CurrentUser,
    DonationRequest,
    GoodsGift,
    GuestDonor,
    ItemLine,
    MAX_CASH_AMOUNT,
    RegisteredDonor,
    parse_donation_request,
)
from donation_kernel.domain.values import DonationChannel, DonationType
from donation_kernel.exceptions import ValidationError
from donation_kernel.services.intake_service import IntakePolicy

MINIMUMS = IntakePolicy().minimum_amounts


@pytest.fixture
def user():
    return CurrentUser(id=uuid4(), name="Chikondi Phiri", email="chikondi@example.org")


def _fields(exc_info) -> dict[str, list[str]]:
    return exc_info.value.as_dict()


class TestCashParsing:
    def test_donor_cash_with_child(self, user):
        child_id = uuid4()
        request = parse_donation_request(
            "donor",
            {"donation_type": "cash", "amount": "2500", "child_id": str(child_id)},
            user,
            MINIMUMS,
        )

        assert request.channel is DonationChannel.DONOR
        assert request.donation_type is DonationType.CASH
        assert request.gift == CashGift(Decimal("2500"))
        assert request.donor == RegisteredDonor(user.id, user.name, user.email)
        assert request.child_id == child_id
        assert request.is_anonymous is False

    def test_money_alias_is_cash(self, user):
        request = parse_donation_request(
            "donor", {"donation_type": "money", "amount": 10}, user, MINIMUMS
        )
        assert request.donation_type is DonationType.CASH
        assert request.gift.amount == Decimal("10")

    def test_float_amount_rejected(self, user):
        with pytest.raises(ValidationError) as exc_info:
            parse_donation_request(
                "donor", {"donation_type": "cash", "amount": 10.5}, user, MINIMUMS
            )
        assert "amount" in _fields(exc_info)

    def test_three_decimal_places_rejected(self, user):
        with pytest.raises(ValidationError) as exc_info:
            parse_donation_request(
                "donor", {"donation_type": "cash", "amount": "10.505"}, user, MINIMUMS
            )
        assert "amount" in _fields(exc_info)

    def test_missing_amount(self, user):
        with pytest.raises(ValidationError) as exc_info:
            parse_donation_request("donor", {"donation_type": "cash"}, user, MINIMUMS)
        assert _fields(exc_info)["amount"] == [
            "The amount field is required when donation type is cash."
        ]

    @pytest.mark.parametrize("amount", ["0", "-5", "abc"])
    def test_non_positive_or_garbage_amount(self, user, amount):
        with pytest.raises(ValidationError) as exc_info:
            parse_donation_request(
                "donor", {"donation_type": "cash", "amount": amount}, user, MINIMUMS
            )
        assert "amount" in _fields(exc_info)

    def test_amount_beyond_column_range_refused(self, user):
        too_large = "1" + "0" * 27
        with pytest.raises(ValidationError) as exc_info:
            parse_donation_request(
                "donor", {"donation_type": "cash", "amount": too_large}, user, MINIMUMS
            )
        assert _fields(exc_info)["amount"] == [
            f"The amount may not be greater than {MAX_CASH_AMOUNT}."
        ]

        request = parse_donation_request(
            "donor",
            {"donation_type": "cash", "amount": str(MAX_CASH_AMOUNT)},
            user,
            MINIMUMS,
        )
        assert request.gift.amount == MAX_CASH_AMOUNT

    def test_campaign_minimum_is_100(self, user):
        campaign_id = str(uuid4())
        with pytest.raises(ValidationError) as exc_info:
            parse_donation_request(
                "campaign",
                {"donation_type": "cash", "amount": "99.99", "campaign_id": campaign_id},
                user,
                MINIMUMS,
            )
        assert _fields(exc_info)["amount"] == ["The amount must be at least 100."]

        request = parse_donation_request(
            "campaign",
            {"donation_type": "cash", "amount": "100", "campaign_id": campaign_id},
            user,
            MINIMUMS,
        )
        assert request.gift.amount == Decimal("100")


class TestGoodsParsing:
    def test_goods_lines(self, user):
        request = parse_donation_request(
            "donor",
            {
                "donation_type": "goods",
                "items": [
                    {"name": "School Books", "quantity": 10, "estimated_value": "1500"},
                    {"name": "Pens", "quantity": "25", "description": "Blue ink"},
                ],
            },
            user,
            MINIMUMS,
        )

        assert request.donation_type is DonationType.GOODS
        assert request.gift.items == (
            ItemLine("School Books", 10, None, Decimal("1500")),
            ItemLine("Pens", 25, "Blue ink", None),
        )
        assert request.gift.total_quantity == 35

    def test_empty_items(self, user):
        with pytest.raises(ValidationError) as exc_info:
            parse_donation_request(
                "donor", {"donation_type": "goods", "items": []}, user, MINIMUMS
            )
        assert "items" in _fields(exc_info)

    def test_line_errors_are_indexed(self, user):
        with pytest.raises(ValidationError) as exc_info:
            parse_donation_request(
                "donor",
                {
                    "donation_type": "goods",
                    "items": [
                        {"name": "Blankets", "quantity": 2},
                        {"name": "", "quantity": 0},
                        {"name": "Soap", "quantity": 1, "estimated_value": "-3"},
                    ],
                },
                user,
                MINIMUMS,
            )
        fields = _fields(exc_info)
        assert "items.1.name" in fields
        assert "items.1.quantity" in fields
        assert "items.2.estimated_value" in fields
        assert not any(f.startswith("items.0") for f in fields)


class TestDonorRules:
    def test_donor_channel_requires_user(self):
        with pytest.raises(ValidationError) as exc_info:
            parse_donation_request(
                "donor", {"donation_type": "cash", "amount": "5"}, None, MINIMUMS
            )
        assert "current_user" in _fields(exc_info)

    def test_guest_needs_name_and_email(self):
        with pytest.raises(ValidationError) as exc_info:
            parse_donation_request(
                "guest",
                {"donation_type": "cash", "amount": "5", "guest_email": "not-an-email"},
                None,
                MINIMUMS,
            )
        fields = _fields(exc_info)
        assert "guest_name" in fields
        assert "guest_email" in fields

    def test_guest_form(self):
        request = parse_donation_request(
            "guest",
            {
                "donation_type": "cash",
                "amount": "5",
                "guest_name": " Mercy Tembo ",
                "guest_email": "mercy@example.org",
            },
            None,
            MINIMUMS,
        )
        assert request.donor == GuestDonor("Mercy Tembo", "mercy@example.org")

    def test_signed_in_guest_is_registered(self, user):
        request = parse_donation_request(
            "guest", {"donation_type": "cash", "amount": "5"}, user, MINIMUMS
        )
        assert isinstance(request.donor, RegisteredDonor)

    def test_anonymous_campaign(self):
        campaign_id = uuid4()
        request = parse_donation_request(
            "anonymous_campaign",
            {
                "donation_type": "cash",
                "amount": "150",
                "campaign_id": str(campaign_id),
                "anonymous_name": "A friend",
                "anonymous_email": "friend@example.org",
            },
            None,
            MINIMUMS,
        )
        assert request.donor == AnonymousDonor("A friend", "friend@example.org")
        assert request.campaign_id == campaign_id
        assert request.is_anonymous is True

    def test_campaign_id_required(self, user):
        with pytest.raises(ValidationError) as exc_info:
            parse_donation_request(
                "campaign", {"donation_type": "cash", "amount": "500"}, user, MINIMUMS
            )
        assert _fields(exc_info)["campaign_id"] == ["The campaign id field is required."]

    def test_all_errors_reported_together(self):
        with pytest.raises(ValidationError) as exc_info:
            parse_donation_request(
                "anonymous_campaign",
                {"donation_type": "bitcoin", "message": "x" * 1001},
                None,
                MINIMUMS,
            )
        fields = _fields(exc_info)
        assert {"donation_type", "anonymous_name", "anonymous_email", "campaign_id", "message"} <= set(fields)

    def test_unknown_channel(self, user):
        with pytest.raises(ValidationError) as exc_info:
            parse_donation_request("walk_in", {}, user, MINIMUMS)
        assert "channel" in _fields(exc_info)


class TestRequestConstruction:
    def test_donor_variant_must_fit_channel(self):
        with pytest.raises(ValueError):
            DonationRequest(
                channel=DonationChannel.DONOR,
                donor=GuestDonor("Guest", "guest@example.org"),
                gift=CashGift(Decimal("5")),
            )

    def test_campaign_channel_needs_campaign(self):
        with pytest.raises(ValueError):
            DonationRequest(
                channel=DonationChannel.ANONYMOUS_CAMPAIGN,
                donor=AnonymousDonor("A friend", "friend@example.org"),
                gift=CashGift(Decimal("500")),
            )

    def test_gift_invariants(self):
        with pytest.raises(ValueError):
            CashGift(Decimal("0"))
        with pytest.raises(ValueError):
            GoodsGift(items=())
        with pytest.raises(ValueError):
            GoodsGift(items=(ItemLine("Shoes", 0),))
