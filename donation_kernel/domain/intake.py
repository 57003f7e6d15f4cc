"""
Intake -- typed donation requests and their validation.

Responsibility:
    Models a donation submission as a tagged union (who gives x what they
    give x which channel) and turns the raw mapping a controller receives
    into that union, collecting every field-level problem before failing.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.  The per-channel
    minimum amounts come from configuration and are passed in.

Invariants enforced:
    - A DonationRequest is either a CashGift (positive amount with at most
      two decimal places) or a GoodsGift (one or more lines of quantity
      >= 1).  Nothing else is representable.
    - The donor variant matches the channel: donor and campaign channels
      take a RegisteredDonor, anonymous_campaign an AnonymousDonor, guest
      a GuestDonor (or a RegisteredDonor when someone is signed in).
    - Campaign channels always carry a campaign_id.

Failure modes:
    - ValidationError with one FieldError per problem from
      parse_donation_request().
    - ValueError when a DonationRequest is constructed in code with a donor
      variant that does not fit its channel.
"""

import re
from collections.abc import Mapping
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Union
from uuid import UUID

from donation_kernel.db.types import money_from_str
from donation_kernel.domain.values import DonationChannel, DonationType
from donation_kernel.exceptions import FieldError, ValidationError

NAME_MAX_LENGTH = 255
EMAIL_MAX_LENGTH = 255
ITEM_DESCRIPTION_MAX_LENGTH = 500
MESSAGE_MAX_LENGTH = 1000
# Stays inside the 29 integer digits of the Numeric(38, 9) amount column.
MAX_CASH_AMOUNT = Decimal("999999999999999999999999999.99")

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

# Both spellings reach the portal from different forms.
_TYPE_ALIASES = {
    "cash": DonationType.CASH,
    "money": DonationType.CASH,
    "goods": DonationType.GOODS,
    "items": DonationType.GOODS,
}


@dataclass(frozen=True)
class CurrentUser:
    """The authenticated identity resolved by the web layer."""

    id: UUID
    name: str
    email: str


# ---------------------------------------------------------------------------
# Gift variants
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ItemLine:
    name: str
    quantity: int
    description: str | None = None
    estimated_value: Decimal | None = None


@dataclass(frozen=True)
class CashGift:
    amount: Decimal

    def __post_init__(self) -> None:
        if self.amount <= 0:
            raise ValueError("CashGift amount must be positive")

    @property
    def donation_type(self) -> DonationType:
        return DonationType.CASH


@dataclass(frozen=True)
class GoodsGift:
    items: tuple[ItemLine, ...]

    def __post_init__(self) -> None:
        if not self.items:
            raise ValueError("GoodsGift requires at least one item")
        if any(line.quantity < 1 for line in self.items):
            raise ValueError("GoodsGift item quantities must be >= 1")

    @property
    def donation_type(self) -> DonationType:
        return DonationType.GOODS

    @property
    def total_quantity(self) -> int:
        return sum(line.quantity for line in self.items)


Gift = Union[CashGift, GoodsGift]


# ---------------------------------------------------------------------------
# Donor variants
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RegisteredDonor:
    user_id: UUID
    name: str
    email: str


@dataclass(frozen=True)
class AnonymousDonor:
    name: str
    email: str


@dataclass(frozen=True)
class GuestDonor:
    name: str
    email: str


Donor = Union[RegisteredDonor, AnonymousDonor, GuestDonor]

_ALLOWED_DONORS: dict[DonationChannel, tuple[type, ...]] = {
    DonationChannel.DONOR: (RegisteredDonor,),
    DonationChannel.CAMPAIGN: (RegisteredDonor,),
    DonationChannel.ANONYMOUS_CAMPAIGN: (AnonymousDonor,),
    DonationChannel.GUEST: (GuestDonor, RegisteredDonor),
}

CAMPAIGN_CHANNELS = frozenset(
    {DonationChannel.CAMPAIGN, DonationChannel.ANONYMOUS_CAMPAIGN}
)


@dataclass(frozen=True)
class DonationRequest:
    """A validated donation submission."""

    channel: DonationChannel
    donor: Donor
    gift: Gift
    child_id: UUID | None = None
    campaign_id: UUID | None = None
    message: str | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.donor, _ALLOWED_DONORS[self.channel]):
            raise ValueError(
                f"{type(self.donor).__name__} cannot give through "
                f"the {self.channel.value} channel"
            )
        if self.channel in CAMPAIGN_CHANNELS and self.campaign_id is None:
            raise ValueError(f"{self.channel.value} donations need a campaign_id")

    @property
    def donation_type(self) -> DonationType:
        return self.gift.donation_type

    @property
    def is_anonymous(self) -> bool:
        return isinstance(self.donor, AnonymousDonor)


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


class _Errors:
    def __init__(self) -> None:
        self.items: list[FieldError] = []

    def add(self, field: str, message: str) -> None:
        self.items.append(FieldError(field=field, message=message))

    def __bool__(self) -> bool:
        return bool(self.items)


def _text(
    payload: Mapping[str, Any],
    field: str,
    errors: _Errors,
    *,
    required: bool,
    max_length: int,
    label: str | None = None,
    error_field: str | None = None,
) -> str | None:
    label = label or field.replace("_", " ")
    error_field = error_field or field
    raw = payload.get(field)
    if raw is None or (isinstance(raw, str) and not raw.strip()):
        if required:
            errors.add(error_field, f"The {label} field is required.")
        return None
    if not isinstance(raw, str):
        errors.add(error_field, f"The {label} must be a string.")
        return None
    value = raw.strip()
    if len(value) > max_length:
        errors.add(
            error_field,
            f"The {label} may not be greater than {max_length} characters.",
        )
        return None
    return value


def _email(
    payload: Mapping[str, Any], field: str, errors: _Errors, *, required: bool
) -> str | None:
    value = _text(
        payload, field, errors, required=required, max_length=EMAIL_MAX_LENGTH
    )
    if value is not None and not _EMAIL_RE.match(value):
        errors.add(field, f"The {field.replace('_', ' ')} must be a valid email address.")
        return None
    return value


def _uuid(payload: Mapping[str, Any], field: str, errors: _Errors) -> UUID | None:
    raw = payload.get(field)
    if raw is None or raw == "":
        return None
    if isinstance(raw, UUID):
        return raw
    try:
        return UUID(str(raw))
    except ValueError:
        errors.add(field, f"The selected {field.replace('_', ' ')} is invalid.")
        return None


def _integer(raw: Any) -> int | None:
    if isinstance(raw, bool):
        return None
    if isinstance(raw, int):
        return raw
    if isinstance(raw, str) and re.fullmatch(r"\s*-?\d+\s*", raw):
        return int(raw)
    return None


def _parse_cash(
    payload: Mapping[str, Any], minimum: Decimal, errors: _Errors
) -> CashGift | None:
    raw = payload.get("amount")
    if raw is None or raw == "":
        errors.add("amount", "The amount field is required when donation type is cash.")
        return None
    if isinstance(raw, (bool, float)):
        # floats are rejected so that no binary rounding reaches the ledger
        errors.add("amount", "The amount must be a number.")
        return None
    try:
        amount = money_from_str(raw)
    except ValueError:
        errors.add("amount", "The amount must be a number.")
        return None
    if amount.as_tuple().exponent < -2:
        errors.add("amount", "The amount may not have more than 2 decimal places.")
        return None
    if amount < minimum or amount <= 0:
        errors.add("amount", f"The amount must be at least {minimum}.")
        return None
    if amount > MAX_CASH_AMOUNT:
        errors.add("amount", f"The amount may not be greater than {MAX_CASH_AMOUNT}.")
        return None
    return CashGift(amount=amount)


def _parse_goods(payload: Mapping[str, Any], errors: _Errors) -> GoodsGift | None:
    raw_items = payload.get("items")
    if not isinstance(raw_items, (list, tuple)) or not raw_items:
        errors.add("items", "At least one item is required when donation type is goods.")
        return None

    lines: list[ItemLine] = []
    error_count = len(errors.items)
    for index, raw in enumerate(raw_items):
        prefix = f"items.{index}"
        if not isinstance(raw, Mapping):
            errors.add(prefix, "Each item must be an object.")
            continue
        name = _text(
            raw,
            "name",
            errors,
            required=True,
            max_length=NAME_MAX_LENGTH,
            label="item name",
            error_field=f"{prefix}.name",
        )
        quantity = _integer(raw.get("quantity"))
        if quantity is None or quantity < 1:
            errors.add(
                f"{prefix}.quantity",
                "The item quantity must be an integer of at least 1.",
            )
        description = _text(
            raw,
            "description",
            errors,
            required=False,
            max_length=ITEM_DESCRIPTION_MAX_LENGTH,
            label="item description",
            error_field=f"{prefix}.description",
        )
        try:
            estimated_value = _estimated_value(raw.get("estimated_value"))
        except ValueError:
            errors.add(
                f"{prefix}.estimated_value",
                "The estimated value must be a non-negative number.",
            )
            continue
        if name is not None and quantity is not None and quantity >= 1:
            lines.append(
                ItemLine(
                    name=name,
                    quantity=quantity,
                    description=description,
                    estimated_value=estimated_value,
                )
            )

    if len(errors.items) > error_count:
        return None
    return GoodsGift(items=tuple(lines))


def _estimated_value(raw: Any) -> Decimal | None:
    if raw is None or raw == "":
        return None
    if isinstance(raw, (bool, float)):
        raise ValueError(f"Not a valid amount: {raw!r}")
    value = money_from_str(raw)
    if value < 0:
        raise ValueError(f"Negative amount: {raw!r}")
    return value


def _parse_donor(
    channel: DonationChannel,
    payload: Mapping[str, Any],
    current_user: CurrentUser | None,
    errors: _Errors,
) -> Donor | None:
    if channel in (DonationChannel.DONOR, DonationChannel.CAMPAIGN):
        if current_user is None:
            errors.add("current_user", "An authenticated donor is required.")
            return None
        return RegisteredDonor(
            user_id=current_user.id, name=current_user.name, email=current_user.email
        )

    if channel is DonationChannel.GUEST and current_user is not None:
        return RegisteredDonor(
            user_id=current_user.id, name=current_user.name, email=current_user.email
        )

    prefix = "anonymous" if channel is DonationChannel.ANONYMOUS_CAMPAIGN else "guest"
    name = _text(
        payload, f"{prefix}_name", errors, required=True, max_length=NAME_MAX_LENGTH
    )
    email = _email(payload, f"{prefix}_email", errors, required=True)
    if name is None or email is None:
        return None
    if channel is DonationChannel.ANONYMOUS_CAMPAIGN:
        return AnonymousDonor(name=name, email=email)
    return GuestDonor(name=name, email=email)


def parse_donation_type(raw: Any) -> DonationType | None:
    if not isinstance(raw, str):
        return None
    return _TYPE_ALIASES.get(raw.strip().lower())


def parse_donation_request(
    channel: DonationChannel | str,
    payload: Mapping[str, Any],
    current_user: CurrentUser | None,
    minimum_amounts: Mapping[DonationChannel, Decimal],
) -> DonationRequest:
    """
    Validate a raw submission into a DonationRequest.

    Every problem is collected before raising, so the caller can show all
    field messages at once.

    Raises:
        ValidationError: With one FieldError per problem.
    """
    errors = _Errors()
    try:
        channel = DonationChannel(channel)
    except ValueError:
        raise ValidationError.single("channel", f"Unknown donation channel: {channel}")

    gift: Gift | None = None
    raw_type = payload.get("donation_type")
    donation_type = parse_donation_type(raw_type)
    if raw_type in (None, ""):
        errors.add("donation_type", "The donation type field is required.")
    elif donation_type is None:
        errors.add("donation_type", "The selected donation type is invalid.")
    elif donation_type is DonationType.CASH:
        gift = _parse_cash(payload, minimum_amounts[channel], errors)
    else:
        gift = _parse_goods(payload, errors)

    donor = _parse_donor(channel, payload, current_user, errors)

    campaign_id = _uuid(payload, "campaign_id", errors)
    if channel in CAMPAIGN_CHANNELS and campaign_id is None and not any(
        e.field == "campaign_id" for e in errors.items
    ):
        errors.add("campaign_id", "The campaign id field is required.")
    child_id = _uuid(payload, "child_id", errors)

    message = _text(
        payload, "message", errors, required=False, max_length=MESSAGE_MAX_LENGTH
    )

    if errors:
        raise ValidationError(errors.items)

    return DonationRequest(
        channel=channel,
        donor=donor,
        gift=gift,
        child_id=child_id,
        campaign_id=campaign_id,
        message=message,
    )
