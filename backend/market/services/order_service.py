# Overview: Service-layer operations for orders; checkout, status transitions and order views.

"""
Order Service

Checkout turns a list of (product, quantity) pairs into an order:

1. Fee settings are captured once, before anything else is read.
2. Address ownership, product existence, availability and stock are all
   validated before the first write.
3. Order header, items, stock decrement and cart clear are written in a
   single transaction with the product rows locked, so a failure leaves
   no partial order behind and two buyers cannot both take the last unit.

Status changes follow ALLOWED_TRANSITIONS. Moving an order to "paid"
issues ticket QR codes as a best-effort side effect (see qr_service).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

from flask import current_app

from ..extensions import db
from ..models import Address, Cart, CartItem, Order, OrderItem, Product, Store
from ..models.orders import (
    ORDER_STATUS_CANCELLED,
    ORDER_STATUS_COMPLETED,
    ORDER_STATUS_PAID,
    ORDER_STATUS_PENDING,
    ORDER_STATUS_SHIPPED,
    VALID_ORDER_STATUSES,
)
from market.errors import ForbiddenError, MarketError, NotFoundError, ValidationError
from market.money import format_cents, percentage_of, proportional_share
from market.time_utils import to_utc_z
from market.validation import parse_id, parse_quantity
from . import qr_service, settings_service
from .concurrency import begin_immediate, lock_for_update, run_with_retry
from .store_service import require_user_store


ALLOWED_TRANSITIONS = {
    ORDER_STATUS_PENDING: {ORDER_STATUS_PAID, ORDER_STATUS_CANCELLED},
    # Tickets are consumed on site, so paid orders may complete without shipping.
    ORDER_STATUS_PAID: {ORDER_STATUS_SHIPPED, ORDER_STATUS_COMPLETED, ORDER_STATUS_CANCELLED},
    ORDER_STATUS_SHIPPED: {ORDER_STATUS_COMPLETED, ORDER_STATUS_CANCELLED},
    ORDER_STATUS_COMPLETED: set(),
    ORDER_STATUS_CANCELLED: set(),
}

MAX_ORDER_LINES = 100


@dataclass(frozen=True)
class OrderLineRequest:
    product_id: int
    quantity: int


@dataclass
class StatusChange:
    order: Order
    previous_status: str
    changed: bool
    qr_result: qr_service.IssueResult | None = None

    def to_dict(self) -> dict:
        body = {
            "order": self.order.to_dict(),
            "previousStatus": self.previous_status,
            "changed": self.changed,
        }
        if self.qr_result is not None:
            body["ticketQrs"] = self.qr_result.to_dict()
        return body


def can_transition(current: str, new: str) -> bool:
    return new in ALLOWED_TRANSITIONS.get(current, set())


# ---------------------------------------------------------------------------
# Checkout
# ---------------------------------------------------------------------------

def parse_order_lines(raw_items) -> list[OrderLineRequest]:
    """
    Validate the items array. Repeated products are merged into one line
    so the stock check sees the full requested quantity.
    """
    if not isinstance(raw_items, list) or not raw_items:
        raise ValidationError("At least one item is required")
    if len(raw_items) > MAX_ORDER_LINES:
        raise ValidationError(f"Too many items (max {MAX_ORDER_LINES})")

    merged: dict[int, int] = {}
    for index, raw in enumerate(raw_items):
        if not isinstance(raw, dict):
            raise ValidationError(f"items[{index}] must be an object")
        product_id = parse_id(raw.get("productId"), field_name=f"items[{index}].productId")
        quantity = parse_quantity(raw.get("quantity"), field_name=f"items[{index}].quantity")
        merged[product_id] = merged.get(product_id, 0) + quantity

    return [OrderLineRequest(product_id=pid, quantity=qty) for pid, qty in merged.items()]


def create_order(user_id: int, payload: dict) -> tuple[Order, list[OrderItem]]:
    """
    Create an order for the caller from addressId + items.

    Raises NotFoundError for a foreign/missing address or missing product,
    ValidationError for inactive products or insufficient stock. Nothing
    is written unless every line validates.
    """
    payload = payload or {}
    address_id = parse_id(payload.get("addressId"), field_name="addressId")
    lines = parse_order_lines(payload.get("items"))

    def _op():
        begin_immediate()
        try:
            fees = settings_service.get_fee_settings()

            address = db.session.query(Address).filter_by(id=address_id, user_id=user_id).first()
            if not address:
                raise NotFoundError("Address not found")

            product_ids = [line.product_id for line in lines]
            products = {
                p.id: p
                for p in lock_for_update(
                    db.session.query(Product).filter(Product.id.in_(product_ids))
                ).all()
            }

            total_cents = 0
            for line in lines:
                product = products.get(line.product_id)
                if product is None:
                    raise NotFoundError(f"Product {line.product_id} not found")
                if not product.is_active:
                    raise ValidationError(f"Product {line.product_id} is not available")
                if product.stock < line.quantity:
                    raise ValidationError(
                        f"Insufficient stock for product {line.product_id}",
                        details={"productId": line.product_id, "available": product.stock, "requested": line.quantity},
                    )
                total_cents += product.price_cents * line.quantity

            order = Order(
                buyer_id=user_id,
                address_id=address.id,
                status=ORDER_STATUS_PENDING,
                total_cents=total_cents,
                service_fee_cents=percentage_of(total_cents, fees.service_fee_percentage),
                buyer_service_fee_cents=fees.buyer_service_fee_cents,
            )
            db.session.add(order)
            db.session.flush()

            items = []
            for line in lines:
                product = products[line.product_id]
                item = OrderItem(
                    order_id=order.id,
                    product_id=product.id,
                    store_id=product.store_id,
                    quantity=line.quantity,
                    price_cents=product.price_cents,
                )
                db.session.add(item)
                items.append(item)
                product.stock -= line.quantity

            cart = db.session.query(Cart).filter_by(user_id=user_id).first()
            if cart:
                db.session.query(CartItem).filter(CartItem.cart_id == cart.id).delete(synchronize_session=False)

            db.session.commit()
            return order, items
        except MarketError:
            db.session.rollback()
            raise

    order, items = run_with_retry(_op)
    current_app.logger.info(
        "Order %s created by user %s: total=%s serviceFee=%s buyerServiceFee=%s",
        order.id, user_id,
        format_cents(order.total_cents),
        format_cents(order.service_fee_cents),
        format_cents(order.buyer_service_fee_cents),
    )
    return order, items


# ---------------------------------------------------------------------------
# Views
# ---------------------------------------------------------------------------

def _address_view(address: Address | None) -> dict | None:
    return address.to_summary() if address else None


def _items_of(order_id: int, store_id: int | None = None) -> list[OrderItem]:
    query = db.session.query(OrderItem).filter(OrderItem.order_id == order_id)
    if store_id is not None:
        query = query.filter(OrderItem.store_id == store_id)
    return query.order_by(OrderItem.id.asc()).all()


def order_view(order: Order, *, include_qrs: bool = False) -> dict:
    data = {
        **order.to_dict(),
        "grossAmount": format_cents(order.gross_amount_cents),
        "address": _address_view(order.address),
        "items": [item.to_view() for item in _items_of(order.id)],
    }
    if include_qrs:
        data["ticketQrs"] = [qr.to_dict() for qr in qr_service.list_order_qrs(order.id)]
    return data


def list_buyer_orders(user_id: int, *, page: int, limit: int) -> tuple[list[dict], int]:
    query = db.session.query(Order).filter(Order.buyer_id == user_id)
    total = query.count()
    orders = (
        query.order_by(Order.created_at.desc(), Order.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return [order_view(o) for o in orders], total


def _is_involved_seller(user_id: int, order_id: int) -> bool:
    return (
        db.session.query(OrderItem.id)
        .join(Store, Store.id == OrderItem.store_id)
        .filter(OrderItem.order_id == order_id, Store.owner_id == user_id)
        .first()
        is not None
    )


def get_order_for_user(user_id: int, order_id: int) -> dict:
    """
    Buyer or a seller with an item in the order may read it. Everyone
    else gets 404 so foreign order ids are not disclosed.
    """
    order = db.session.query(Order).filter_by(id=order_id).first()
    if not order:
        raise NotFoundError("Order not found")

    if order.buyer_id == user_id:
        return order_view(order, include_qrs=True)
    if _is_involved_seller(user_id, order.id):
        return order_view(order)
    raise NotFoundError("Order not found")


def seller_order_view(order: Order, store_id: int) -> dict:
    items = _items_of(order.id, store_id)
    seller_total = sum(item.line_total_cents for item in items)
    seller_fee = proportional_share(seller_total, order.total_cents, order.service_fee_cents)
    return {
        "id": order.id,
        "buyerId": order.buyer_id,
        "status": order.status,
        "total": format_cents(order.total_cents),
        "serviceFee": format_cents(order.service_fee_cents),
        "createdAt": to_utc_z(order.created_at),
        "updatedAt": to_utc_z(order.updated_at),
        "address": _address_view(order.address),
        "items": [item.to_view() for item in items],
        "sellerTotal": format_cents(seller_total),
        "sellerServiceFee": format_cents(seller_fee),
        "sellerEarnings": format_cents(seller_total - seller_fee),
    }


def list_seller_orders(user_id: int, *, page: int, limit: int) -> tuple[list[dict], int]:
    """Orders holding at least one item of the caller's store; 404 without a store."""
    store = require_user_store(user_id)

    store_order_ids = db.select(OrderItem.order_id).where(OrderItem.store_id == store.id)
    query = db.session.query(Order).filter(Order.id.in_(store_order_ids))
    total = query.count()
    orders = (
        query.order_by(Order.created_at.desc(), Order.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return [seller_order_view(o, store.id) for o in orders], total


# ---------------------------------------------------------------------------
# Status transitions
# ---------------------------------------------------------------------------

def validate_status(status, allowed=VALID_ORDER_STATUSES) -> str:
    if status not in allowed:
        raise ValidationError(f"Invalid status. Must be one of: {', '.join(allowed)}")
    return status


def transition_order(
    order_id: int,
    status: str,
    *,
    authorize: Callable[[Order], None] | None = None,
    qr_store_id: int | None = None,
) -> StatusChange:
    """
    Move an order to `status` under a row lock.

    `authorize` runs against the locked order and raises to refuse.
    Same-status updates are no-ops; anything outside ALLOWED_TRANSITIONS
    is a ValidationError. A change to "paid" then issues ticket QRs
    (limited to qr_store_id when given); QR problems never undo the change.
    """
    def _op():
        begin_immediate()
        try:
            order = lock_for_update(db.session.query(Order).filter_by(id=order_id)).first()
            if not order:
                raise NotFoundError("Order not found")
            if authorize is not None:
                authorize(order)

            previous = order.status
            if previous == status:
                db.session.commit()
                return order, previous, False
            if not can_transition(previous, status):
                raise ValidationError(f"Cannot change order status from {previous} to {status}")

            order.status = status
            db.session.commit()
            return order, previous, True
        except MarketError:
            db.session.rollback()
            raise

    order, previous, changed = run_with_retry(_op)
    change = StatusChange(order=order, previous_status=previous, changed=changed)

    if changed:
        current_app.logger.info("Order %s status %s -> %s", order.id, previous, status)
        if status == ORDER_STATUS_PAID:
            change.qr_result = qr_service.issue_ticket_qrs(order, store_id=qr_store_id)
            if change.qr_result.failed:
                current_app.logger.warning(
                    "Order %s paid with %s ticket QR(s) not issued",
                    order.id, change.qr_result.failed,
                )

    return change


def update_order_status(user_id: int, order_id: int, status) -> StatusChange:
    """Buyer or a seller with an item in the order may change its status (403 otherwise)."""
    status = validate_status(status)

    def _authorize(order: Order) -> None:
        if order.buyer_id != user_id and not _is_involved_seller(user_id, order.id):
            raise ForbiddenError("Unauthorized to update this order")

    return transition_order(order_id, status, authorize=_authorize)
