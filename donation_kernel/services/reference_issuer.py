"""
ReferenceIssuer -- checkout reference minting and checkout payload assembly.

Responsibility:
    Mints the globally unique ``checkout_ref`` that correlates a cash
    donation with its payment attempt, and renders the CheckoutRequest the
    payment gateway adapter sends out.

Architecture position:
    Kernel > Services.  Pure apart from the injected clock and the
    ``secrets`` random source; persistence of the reference (and the
    unique-index retry) lives in IntakeService.

Invariants enforced:
    - Reference shape: ``<prefix>-<epoch millis>-<12 random alphanumerics>``.
      The prefix names the channel (``donor``, ``guest``,
      ``campaign-<id8>``, ``anon-campaign-<id8>``), the millisecond
      component comes from the clock, and 62**12 random values make a
      collision implausible.  The unique index on donations.checkout_ref
      is the final guard.
    - The reference is minted once per donation and round-trips unchanged
      as ``tx_ref``.

Audit relevance:
    The meta block echoes the donation id and type so a gateway dashboard
    entry can be traced back to the donation without the reference.
"""

import secrets
import string
from dataclasses import dataclass
from uuid import UUID

from donation_kernel.domain.clock import Clock
from donation_kernel.domain.dtos import CheckoutRequest
from donation_kernel.domain.values import DonationChannel
from donation_kernel.logging_config import get_logger
from donation_kernel.models.donation import Donation

logger = get_logger("services.reference_issuer")

REFERENCE_RANDOM_LENGTH = 12
_ALPHABET = string.ascii_letters + string.digits

_META_TYPES = {
    DonationChannel.DONOR: "donor_donation",
    DonationChannel.GUEST: "guest_donation",
    DonationChannel.CAMPAIGN: "campaign_donation",
    DonationChannel.ANONYMOUS_CAMPAIGN: "campaign_donation",
}


@dataclass(frozen=True)
class CheckoutSettings:
    """Gateway-facing settings the issuer stamps onto every checkout."""

    public_key: str
    callback_url: str
    return_url: str
    currency: str
    title: str = "Donation"


class ReferenceIssuer:
    """Mints checkout references and builds checkout requests."""

    def __init__(self, clock: Clock, random_length: int = REFERENCE_RANDOM_LENGTH):
        if random_length < 8:
            raise ValueError("checkout references need at least 8 random characters")
        self._clock = clock
        self._random_length = random_length

    @staticmethod
    def prefix_for(channel: DonationChannel, campaign_id: UUID | None = None) -> str:
        if channel is DonationChannel.CAMPAIGN:
            return f"campaign-{campaign_id.hex[:8]}"
        if channel is DonationChannel.ANONYMOUS_CAMPAIGN:
            return f"anon-campaign-{campaign_id.hex[:8]}"
        return channel.value

    def mint_reference(
        self, channel: DonationChannel, campaign_id: UUID | None = None
    ) -> str:
        millis = self._clock.epoch_millis()
        random_part = "".join(
            secrets.choice(_ALPHABET) for _ in range(self._random_length)
        )
        return f"{self.prefix_for(channel, campaign_id)}-{millis}-{random_part}"

    def build_checkout_request(
        self,
        donation: Donation,
        donor_name: str,
        donor_email: str,
        settings: CheckoutSettings,
    ) -> CheckoutRequest:
        """
        Render the outbound checkout for a pending cash donation.

        The donor name is split on the first space into first/last name;
        an empty name is sent as "Anonymous".
        """
        if not donation.is_cash or donation.checkout_ref is None:
            raise ValueError(f"Donation {donation.id} has no checkout to open")

        first_name, _, last_name = (donor_name or "").strip().partition(" ")
        channel = DonationChannel(donation.channel)

        meta = {
            "donation_id": str(donation.id),
            "type": _META_TYPES[channel],
        }
        if donation.campaign_id is not None:
            meta["campaign_id"] = str(donation.campaign_id)
        if donation.donor_user_id is not None:
            meta["user_id"] = str(donation.donor_user_id)

        request = CheckoutRequest(
            donation_id=donation.id,
            tx_ref=donation.checkout_ref,
            amount=donation.amount,
            currency=donation.currency or settings.currency,
            email=donor_email,
            first_name=first_name or "Anonymous",
            last_name=last_name.strip(),
            title=settings.title,
            description=self._describe(donation),
            callback_url=settings.callback_url,
            return_url=settings.return_url,
            public_key=settings.public_key,
            meta=meta,
        )
        logger.debug(
            "checkout_request_built",
            extra={"donation_id": str(donation.id), "tx_ref": request.tx_ref},
        )
        return request

    @staticmethod
    def _describe(donation: Donation) -> str:
        if donation.campaign_id is not None:
            return "Donation to campaign"
        if donation.child_id is not None:
            return "Donation for child support"
        return "General donation"
