# Overview: Service-layer operations for buyer addresses.

from __future__ import annotations

from ..extensions import db
from ..models import Address, Order
from market.errors import NotFoundError, ValidationError
from market.validation import ModelValidationPolicy, PHONE_RE, validate_payload


ADDRESS_POLICY = ModelValidationPolicy(
    writable_fields={
        "recipientName": "recipient_name",
        "phone": "phone",
        "street": "street",
        "city": "city",
        "province": "province",
        "postalCode": "postal_code",
        "isDefault": "is_default",
    },
    required_on_create={"recipientName", "street", "city", "province", "postalCode"},
)


def _check_phone(patch: dict) -> None:
    phone = patch.get("phone")
    if phone and not PHONE_RE.match(phone):
        raise ValidationError("Invalid phone number format")


def _clear_default(user_id: int, *, except_id: int | None = None) -> None:
    query = db.session.query(Address).filter(Address.user_id == user_id, Address.is_default.is_(True))
    if except_id is not None:
        query = query.filter(Address.id != except_id)
    query.update({Address.is_default: False}, synchronize_session="fetch")


def list_addresses(user_id: int) -> list[Address]:
    """Default address first, then newest."""
    return (
        db.session.query(Address)
        .filter(Address.user_id == user_id)
        .order_by(Address.is_default.desc(), Address.created_at.desc(), Address.id.desc())
        .all()
    )


def get_address(user_id: int, address_id: int) -> Address:
    """Addresses of other users are reported as missing."""
    address = db.session.query(Address).filter_by(id=address_id, user_id=user_id).first()
    if not address:
        raise NotFoundError("Address not found")
    return address


def create_address(user_id: int, payload: dict) -> Address:
    patch = validate_payload(model=Address, payload=payload, policy=ADDRESS_POLICY, partial=False)
    _check_phone(patch)

    if patch.get("is_default"):
        _clear_default(user_id)

    address = Address(user_id=user_id, is_default=False)
    for key, value in patch.items():
        setattr(address, key, value)

    db.session.add(address)
    db.session.commit()
    return address


def update_address(user_id: int, address_id: int, payload: dict) -> Address:
    address = get_address(user_id, address_id)

    patch = validate_payload(model=Address, payload=payload, policy=ADDRESS_POLICY, partial=True)
    _check_phone(patch)

    if patch.get("is_default"):
        _clear_default(user_id, except_id=address.id)

    for key, value in patch.items():
        setattr(address, key, value)

    db.session.commit()
    return address


def delete_address(user_id: int, address_id: int) -> None:
    """
    Delete an address. Orders keep a RESTRICT reference to their
    delivery address, so referenced rows are refused with a 400.
    """
    address = get_address(user_id, address_id)

    in_use = db.session.query(Order.id).filter(Order.address_id == address.id).first()
    if in_use:
        raise ValidationError("Address is used by an existing order and cannot be deleted")

    db.session.delete(address)
    db.session.commit()
