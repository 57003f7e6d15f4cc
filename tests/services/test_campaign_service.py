"""Campaign creation, completion sync and deletion."""

from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import select

from donation_kernel.domain.dtos import CampaignImageSpec
from donation_kernel.domain.intake import parse_donation_request
from donation_kernel.exceptions import CampaignNotFoundError, ValidationError
from donation_kernel.models.campaign import CampaignImage, DonationCampaign
from donation_kernel.models.donation import Donation


class TestCreateCampaign:
    def test_images_keep_order(self, session, campaign_service, test_actor_id):
        record = campaign_service.create_campaign(
            "Uniforms for the primary school",
            [CampaignImageSpec("a.jpg"), CampaignImageSpec("b.jpg", "B.JPG")],
            test_actor_id,
            target_amount=Decimal("5000"),
        )

        assert record.image_paths == ("a.jpg", "b.jpg")
        assert record.target_amount == Decimal("5000")
        assert record.is_completed is False
        positions = session.execute(
            select(CampaignImage.position).where(CampaignImage.campaign_id == record.id)
        ).scalars().all()
        assert sorted(positions) == [0, 1]

    def test_validation_errors(self, campaign_service, test_actor_id):
        with pytest.raises(ValidationError) as exc_info:
            campaign_service.create_campaign(
                "short", [], test_actor_id, target_amount=Decimal("0")
            )
        assert set(exc_info.value.as_dict()) == {"message", "images", "target_amount"}

    def test_too_many_images(self, campaign_service, test_actor_id):
        with pytest.raises(ValidationError):
            campaign_service.create_campaign(
                "Books for the library shelves",
                [CampaignImageSpec(f"{n}.jpg") for n in range(11)],
                test_actor_id,
            )

    def test_no_target_is_allowed(self, create_campaign):
        assert create_campaign(target_amount=None).target_amount is None


class TestSyncCompletion:
    def test_no_change_without_target(self, campaign_service, create_campaign):
        campaign = create_campaign(target_amount=None)
        assert campaign_service.sync_completion(campaign.id) is False

    def test_unknown_campaign(self, campaign_service):
        with pytest.raises(CampaignNotFoundError):
            campaign_service.sync_completion(uuid4())

    def test_flag_follows_received_total(
        self, session, campaign_service, intake_service, reconciliation_service,
        create_campaign, current_user,
    ):
        campaign = create_campaign(target_amount=Decimal("100"))
        request = parse_donation_request(
            "campaign",
            {"donation_type": "cash", "amount": "100", "campaign_id": str(campaign.id)},
            current_user,
            intake_service.policy.minimum_amounts,
        )
        receipt = intake_service.create_donation(request, current_user.id)

        # Pending cash does not count
        assert campaign_service.sync_completion(campaign.id) is False

        reconciliation_service.handle_callback(receipt.checkout_ref, "success")
        assert session.get(DonationCampaign, campaign.id).is_completed is True
        assert campaign_service.sync_completion(campaign.id) is False


class TestDeleteCampaign:
    def test_donations_survive_deletion(
        self, session, campaign_service, intake_service, create_campaign,
        current_user, test_actor_id,
    ):
        campaign = create_campaign()
        request = parse_donation_request(
            "campaign",
            {"donation_type": "cash", "amount": "250", "campaign_id": str(campaign.id)},
            current_user,
            intake_service.policy.minimum_amounts,
        )
        receipt = intake_service.create_donation(request, current_user.id)

        campaign_service.delete_campaign(campaign.id, test_actor_id)
        session.expire_all()

        assert session.get(DonationCampaign, campaign.id) is None
        assert session.execute(
            select(CampaignImage).where(CampaignImage.campaign_id == campaign.id)
        ).first() is None
        donation = session.get(Donation, receipt.donation_id)
        assert donation is not None
        assert donation.campaign_id is None

    def test_unknown_campaign(self, campaign_service, test_actor_id):
        with pytest.raises(CampaignNotFoundError):
            campaign_service.delete_campaign(uuid4(), test_actor_id)
