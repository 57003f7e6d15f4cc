"""
Module: donation_kernel.db.types
Responsibility: Money and currency helpers shared by the config loader,
    the request parser and the funding calculation, so they all use
    identical definitions.
Architecture position: Kernel > DB.  May be imported by models/, domain/,
    services/, and selectors/.  MUST NOT import from any of those layers.

Invariants enforced:
    - No floats for money.  Amounts are Decimal end to end and are rounded
      only through round_money().
    - Currency codes are three upper-case letters.

Failure modes:
    - ValueError on a non-numeric string passed to money_from_str().
    - InvalidCurrencyError on a malformed currency code.
"""

import re
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

MONEY_DECIMAL_PLACES = 2
DEFAULT_ROUNDING = ROUND_HALF_UP

_CURRENCY_RE = re.compile(r"^[A-Z]{3}$")


def money_from_str(value: str) -> Decimal:
    """
    Parse a donation amount from a string (or anything str() can render).

    Raises:
        ValueError: If value cannot be converted to a finite Decimal.
    """
    try:
        amount = Decimal(str(value).strip())
    except InvalidOperation as exc:
        raise ValueError(f"Not a valid amount: {value!r}") from exc
    if not amount.is_finite():
        raise ValueError(f"Not a valid amount: {value!r}")
    return amount


def round_money(
    value: Decimal,
    decimal_places: int = MONEY_DECIMAL_PLACES,
    rounding: str = DEFAULT_ROUNDING,
) -> Decimal:
    """
    Round a monetary value to the given number of decimal places.

    This is the only rounding function used for donation amounts and
    funding summaries.
    """
    quantize_str = "0." + "0" * decimal_places if decimal_places else "1"
    return value.quantize(Decimal(quantize_str), rounding=rounding)


def format_amount(value: Decimal) -> str:
    """
    Canonical string for an amount sent to the payment gateway.

    Whole amounts have no fraction ("2500"); anything else carries exactly
    two places ("2500.50").  The stored column scale never leaks through.
    """
    rounded = round_money(value)
    if rounded == rounded.to_integral_value():
        return str(rounded.quantize(Decimal("1")))
    return str(rounded)


class InvalidCurrencyError(ValueError):
    """Raised when a malformed currency code is provided."""

    def __init__(self, currency: str):
        self.currency = currency
        super().__init__(f"Invalid currency code: '{currency}'")


def validate_currency(currency: str) -> str:
    """
    Normalize and validate a currency code.

    Returns:
        The upper-cased, trimmed code.

    Raises:
        InvalidCurrencyError: If the code is not three letters.
    """
    if not currency or not isinstance(currency, str):
        raise InvalidCurrencyError(str(currency))
    normalized = currency.upper().strip()
    if not _CURRENCY_RE.match(normalized):
        raise InvalidCurrencyError(currency)
    return normalized
