# Overview: Service-layer operations for platform settings (fee configuration).

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from ..extensions import db
from ..models import SystemSetting
from market.errors import ValidationError
from market.money import decimal_to_cents, parse_decimal


SERVICE_FEE_PERCENTAGE = "service_fee_percentage"
BUYER_SERVICE_FEE = "buyer_service_fee"

DEFAULT_SETTINGS = {
    SERVICE_FEE_PERCENTAGE: (
        "5",
        "Service fee percentage charged to sellers on each order",
    ),
    BUYER_SERVICE_FEE: (
        "2000",
        "Flat service fee added to every order for the buyer",
    ),
}

MAX_KEY_LENGTH = 191


@dataclass(frozen=True)
class FeeSettings:
    """Fee configuration captured once at the start of an operation."""
    service_fee_percentage: Decimal
    buyer_service_fee_cents: int


def get_setting(key: str) -> str | None:
    row = db.session.query(SystemSetting).filter_by(key=key).first()
    return row.value if row else None


def _ensure_setting(key: str) -> str:
    """Return the stored value, creating the default row when missing."""
    row = db.session.query(SystemSetting).filter_by(key=key).first()
    if row:
        return row.value

    default, description = DEFAULT_SETTINGS[key]
    db.session.add(SystemSetting(key=key, value=default, description=description))
    db.session.flush()
    return default


def _clamp_percentage(value: Decimal) -> Decimal:
    return max(Decimal(0), min(Decimal(100), value))


def _parse_stored_decimal(key: str, raw: str) -> Decimal:
    # Stored values are validated on write; a hand-edited row falls back to the default.
    try:
        return parse_decimal(raw, key)
    except ValidationError:
        return Decimal(DEFAULT_SETTINGS[key][0])


def get_fee_settings() -> FeeSettings:
    """
    Read both fee settings in one go.

    Missing rows are created with their defaults; the caller commits
    as part of its own transaction.
    """
    percentage = _parse_stored_decimal(SERVICE_FEE_PERCENTAGE, _ensure_setting(SERVICE_FEE_PERCENTAGE))
    buyer_fee = _parse_stored_decimal(BUYER_SERVICE_FEE, _ensure_setting(BUYER_SERVICE_FEE))

    return FeeSettings(
        service_fee_percentage=_clamp_percentage(percentage),
        buyer_service_fee_cents=decimal_to_cents(buyer_fee),
    )


def get_buyer_service_fee_cents() -> int:
    fee = get_fee_settings().buyer_service_fee_cents
    db.session.commit()
    return fee


def list_settings(key: str | None = None) -> list[SystemSetting]:
    """All settings ordered by key; both fee defaults are created on an empty table."""
    if db.session.query(SystemSetting).count() == 0:
        for default_key in DEFAULT_SETTINGS:
            _ensure_setting(default_key)
        db.session.commit()

    query = db.session.query(SystemSetting)
    if key:
        query = query.filter(SystemSetting.key == key)
    return query.order_by(SystemSetting.key.asc()).all()


def _validate_value(key: str, value) -> str:
    if value is None:
        raise ValidationError("value is required")
    if isinstance(value, bool) or not isinstance(value, (str, int, float)):
        raise ValidationError("value must be a string")
    text = str(value).strip()
    if not text:
        raise ValidationError("value is required")

    if key == SERVICE_FEE_PERCENTAGE:
        number = parse_decimal(text, key)
        if number > 100:
            raise ValidationError(f"{key} cannot exceed 100")
    elif key == BUYER_SERVICE_FEE:
        parse_decimal(text, key)
    return text


def upsert_setting(key: str, value, description: str | None = None) -> SystemSetting:
    if not isinstance(key, str) or not key.strip():
        raise ValidationError("key is required")
    key = key.strip()
    if len(key) > MAX_KEY_LENGTH:
        raise ValidationError(f"key exceeds max length {MAX_KEY_LENGTH}")

    text = _validate_value(key, value)

    row = db.session.query(SystemSetting).filter_by(key=key).first()
    if row:
        row.value = text
        if description is not None:
            row.description = description
    else:
        if description is None and key in DEFAULT_SETTINGS:
            description = DEFAULT_SETTINGS[key][1]
        row = SystemSetting(key=key, value=text, description=description)
        db.session.add(row)

    db.session.commit()
    return row
