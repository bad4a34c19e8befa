# Overview: Fixed-point money helpers; amounts live in integer cents, the API speaks "12345.67".

from __future__ import annotations

import re
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from .errors import ValidationError


# Maximum price: 99,999,999.99 (matches a NUMERIC(10, 2) column)
MAX_PRICE_CENTS = 9_999_999_999

_PRICE_RE = re.compile(r"^\d+(\.\d{1,2})?$")
_CENT = Decimal("0.01")


def parse_price(value, field: str = "price") -> int:
    """
    Parse a decimal price ("10000", "10000.5", "10000.50" or an int) into cents.

    Floats are accepted only when they carry at most two decimal places.
    """
    if isinstance(value, bool) or value is None:
        raise ValidationError(f"{field}: Invalid price format")

    if isinstance(value, int):
        text = str(value)
    elif isinstance(value, float):
        text = repr(value)
        if text.endswith(".0"):
            text = text[:-2]
    else:
        text = str(value).strip()

    if not _PRICE_RE.match(text):
        raise ValidationError(f"{field}: Invalid price format")

    cents = int((Decimal(text) * 100).to_integral_value())
    if cents > MAX_PRICE_CENTS:
        raise ValidationError(f"{field} cannot exceed {format_cents(MAX_PRICE_CENTS)}")
    return cents


def parse_decimal(value, field: str) -> Decimal:
    """Parse a non-negative decimal setting value."""
    try:
        number = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{field} must be a number")
    if not number.is_finite():
        raise ValidationError(f"{field} must be a number")
    if number < 0:
        raise ValidationError(f"{field} cannot be negative")
    return number


def decimal_to_cents(amount: Decimal) -> int:
    return int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def format_cents(cents: int | None) -> str | None:
    """12345 -> "123.45"."""
    if cents is None:
        return None
    return str((Decimal(cents) / 100).quantize(_CENT))


def percentage_of(cents: int, percentage: Decimal) -> int:
    """Percentage share of an amount, rounded half-up to the cent."""
    share = Decimal(cents) * percentage / Decimal(100)
    return int(share.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def proportional_share(part_cents: int, whole_cents: int, amount_cents: int) -> int:
    """amount * part / whole, rounded half-up; zero when whole is zero."""
    if not whole_cents:
        return 0
    share = Decimal(amount_cents) * Decimal(part_cents) / Decimal(whole_cents)
    return int(share.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def round_to_major_units(cents: int) -> int:
    """Whole currency units for gateways that reject fractions (27000.50 -> 27001)."""
    return int((Decimal(cents) / 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
