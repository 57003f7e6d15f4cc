"""
CampaignService -- campaign creation, completion sync and removal.

Responsibility:
    Creates campaigns with their ordered images, keeps the persisted
    ``is_completed`` flag in line with the derived goal-reached figure, and
    removes campaigns without touching the donations that referenced them.

Architecture position:
    Kernel > Services -- imperative shell.  Flush-only.

Invariants enforced:
    - message has at least 10 characters; 1..10 images; target, when set,
      is positive.
    - is_completed is recomputed from CampaignSelector.funding_summary with
      the campaign row locked, so two concurrent receipts for the same
      campaign see each other's committed totals.
    - Deleting a campaign keeps its donations; their campaign_id is set to
      NULL by the foreign key.

Failure modes:
    - ValidationError on bad campaign input.
    - CampaignNotFoundError on unknown ids.
"""

from collections.abc import Sequence
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from donation_kernel.domain.clock import Clock, SystemClock
from donation_kernel.domain.dtos import CampaignImageSpec, CampaignRecord
from donation_kernel.exceptions import (
    CampaignNotFoundError,
    FieldError,
    ValidationError,
)
from donation_kernel.logging_config import get_logger
from donation_kernel.models.campaign import CampaignImage, DonationCampaign
from donation_kernel.selectors.campaign_selector import (
    CampaignSelector,
    campaign_to_record,
)
from donation_kernel.services.base import BaseService

logger = get_logger("services.campaign")

MESSAGE_MIN_LENGTH = 10
MAX_IMAGES = 10


class CampaignService(BaseService[DonationCampaign]):
    def __init__(self, session: Session, clock: Clock | None = None):
        super().__init__(session)
        self._clock = clock or SystemClock()

    def create_campaign(
        self,
        message: str,
        images: Sequence[CampaignImageSpec],
        actor_id: UUID,
        target_amount: Decimal | None = None,
    ) -> CampaignRecord:
        errors: list[FieldError] = []
        message = (message or "").strip()
        if len(message) < MESSAGE_MIN_LENGTH:
            errors.append(
                FieldError(
                    "message",
                    f"The message must be at least {MESSAGE_MIN_LENGTH} characters.",
                )
            )
        if not images:
            errors.append(FieldError("images", "At least one image is required."))
        elif len(images) > MAX_IMAGES:
            errors.append(
                FieldError("images", f"No more than {MAX_IMAGES} images are allowed.")
            )
        if any(not (spec.image_path or "").strip() for spec in images or ()):
            errors.append(FieldError("images", "Every image needs a storage path."))
        if target_amount is not None and Decimal(target_amount) <= 0:
            errors.append(
                FieldError("target_amount", "The target amount must be greater than 0.")
            )
        if errors:
            raise ValidationError(errors)

        now = self._clock.now()
        campaign = DonationCampaign(
            message=message,
            target_amount=Decimal(target_amount) if target_amount is not None else None,
            is_completed=False,
            created_at=now,
            updated_at=now,
            created_by_id=actor_id,
            images=[
                CampaignImage(
                    position=position,
                    image_path=spec.image_path.strip(),
                    original_name=spec.original_name,
                )
                for position, spec in enumerate(images)
            ],
        )
        self.session.add(campaign)
        self.session.flush()

        logger.info(
            "campaign_created",
            extra={
                "campaign_id": str(campaign.id),
                "target_amount": campaign.target_amount,
                "image_count": len(images),
                "actor_id": str(actor_id),
            },
        )
        return campaign_to_record(campaign)

    def sync_completion(self, campaign_id: UUID) -> bool:
        """
        Set is_completed from the derived goal-reached figure.

        Returns:
            True if the flag changed.
        """
        campaign = self.session.execute(
            select(DonationCampaign)
            .where(DonationCampaign.id == campaign_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if campaign is None:
            raise CampaignNotFoundError(str(campaign_id))

        summary = CampaignSelector(self.session).funding_summary(campaign_id)
        if campaign.is_completed == summary.is_goal_reached:
            return False

        campaign.is_completed = summary.is_goal_reached
        self.session.flush()
        logger.info(
            "campaign_completion_changed",
            extra={
                "campaign_id": str(campaign_id),
                "is_completed": campaign.is_completed,
                "total_raised": summary.total_raised,
                "target_amount": summary.target_amount,
            },
        )
        return True

    def delete_campaign(self, campaign_id: UUID, actor_id: UUID) -> None:
        """Remove a campaign and its images.  Donations are retained."""
        campaign = self.session.get(DonationCampaign, campaign_id)
        if campaign is None:
            raise CampaignNotFoundError(str(campaign_id))
        self.session.delete(campaign)
        self.session.flush()
        logger.info(
            "campaign_deleted",
            extra={"campaign_id": str(campaign_id), "actor_id": str(actor_id)},
        )
