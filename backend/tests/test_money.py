"""Fixed-point money helpers."""

from decimal import Decimal

import pytest

from market.errors import ValidationError
from market.money import (
    MAX_PRICE_CENTS,
    format_cents,
    parse_decimal,
    parse_price,
    percentage_of,
    proportional_share,
    round_to_major_units,
)


@pytest.mark.parametrize("raw, cents", [
    ("10000", 1_000_000),
    ("10000.5", 1_000_050),
    ("10000.50", 1_000_050),
    (25000, 2_500_000),
    (19.99, 1999),
])
def test_parse_price_accepts_decimal_strings_and_numbers(raw, cents):
    assert parse_price(raw) == cents


@pytest.mark.parametrize("raw", ["", "abc", "-5", "1.234", "1e5", None, True])
def test_parse_price_rejects_malformed_values(raw):
    with pytest.raises(ValidationError):
        parse_price(raw)


def test_parse_price_enforces_upper_bound():
    assert parse_price("99999999.99") == MAX_PRICE_CENTS
    with pytest.raises(ValidationError):
        parse_price("100000000")


def test_format_cents_always_has_two_decimals():
    assert format_cents(2_500_000) == "25000.00"
    assert format_cents(5) == "0.05"
    assert format_cents(None) is None


def test_fee_arithmetic_matches_checkout_example():
    total = parse_price("25000.00")
    assert percentage_of(total, Decimal("5")) == parse_price("1250.00")
    assert round_to_major_units(total + parse_price("2000.00")) == 27000


def test_percentage_rounds_half_up():
    # 5% of 0.10 is 0.005 -> 0.01
    assert percentage_of(10, Decimal("5")) == 1
    assert percentage_of(10_000, Decimal("2.5")) == 250


def test_proportional_share_of_service_fee():
    assert proportional_share(1_000_000, 2_000_000, 100_000) == 50_000
    assert proportional_share(1, 3, 100) == 33
    assert proportional_share(100, 0, 100) == 0


def test_parse_decimal_rejects_negative_and_non_numbers():
    assert parse_decimal("2.5", "x") == Decimal("2.5")
    with pytest.raises(ValidationError):
        parse_decimal("-1", "x")
    with pytest.raises(ValidationError):
        parse_decimal("abc", "x")
    with pytest.raises(ValidationError):
        parse_decimal("NaN", "x")
