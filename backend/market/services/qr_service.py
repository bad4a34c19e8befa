# Overview: Ticket QR issuance; renders QR images through an external service.

"""
Ticket QR Service

Every purchased ticket unit gets its own TicketQr row once the order is
paid. Issuance is a best-effort side effect of the status change: a unit
whose image cannot be rendered is logged and skipped, and the order keeps
its new status. Skipped units are filled in later through
generate_missing_qrs (POST /api/orders/<id>/generate-qr), which issues
only what is still missing.
"""

from __future__ import annotations

import base64
import json
from dataclasses import dataclass

import httpx
from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import Order, OrderItem, Product, TicketQr
from ..models.orders import ORDER_STATUS_PAID
from ..models.stores import PRODUCT_TYPE_TICKET
from market.errors import NotFoundError, ForbiddenError, ValidationError
from market.time_utils import utcnow


QR_IMAGE_SIZE = "200x200"


class QrRenderError(Exception):
    """The render service answered with something other than an image."""
    pass


@dataclass
class IssueResult:
    issued: int = 0
    failed: int = 0

    def to_dict(self) -> dict:
        return {"issued": self.issued, "failed": self.failed}


def build_ticket_payload(order_id: int, order_item_id: int, product_name: str, ticket_number: int) -> str:
    """JSON encoded into each QR; ticketNumber is 1-based within the order item."""
    return json.dumps({
        "orderId": order_id,
        "orderItemId": order_item_id,
        "productName": product_name,
        "ticketNumber": ticket_number,
        "timestamp": utcnow().isoformat() + "Z",
        "type": "ticket",
    })


def render_qr_image(data: str) -> str:
    """Fetch a PNG for `data` and return it as a data URI."""
    config = current_app.config
    with httpx.Client(transport=config["QR_RENDER_TRANSPORT"], timeout=config["QR_RENDER_TIMEOUT"]) as client:
        response = client.get(config["QR_RENDER_URL"], params={"size": QR_IMAGE_SIZE, "data": data})
    if response.status_code != 200 or not response.content:
        raise QrRenderError(f"QR render service returned {response.status_code}")

    encoded = base64.b64encode(response.content).decode("ascii")
    return f"data:image/png;base64,{encoded}"


def _ticket_items(order_id: int, store_id: int | None = None) -> list[OrderItem]:
    query = (
        db.session.query(OrderItem)
        .join(Product, Product.id == OrderItem.product_id)
        .filter(OrderItem.order_id == order_id, Product.type == PRODUCT_TYPE_TICKET)
    )
    if store_id is not None:
        query = query.filter(OrderItem.store_id == store_id)
    return query.order_by(OrderItem.id.asc()).all()


def _issued_numbers(order_id: int) -> dict[int, set[int]]:
    """Ticket numbers already issued, per order item."""
    rows = (
        db.session.query(TicketQr.order_item_id, TicketQr.qr_data)
        .filter(TicketQr.order_id == order_id)
        .all()
    )
    issued: dict[int, set[int]] = {}
    for item_id, qr_data in rows:
        issued.setdefault(item_id, set()).add(json.loads(qr_data)["ticketNumber"])
    return issued


def count_missing(order_id: int, store_id: int | None = None) -> int:
    issued = _issued_numbers(order_id)
    return sum(
        max(item.quantity - len(issued.get(item.id, ())), 0)
        for item in _ticket_items(order_id, store_id)
    )


def issue_ticket_qrs(order: Order, store_id: int | None = None) -> IssueResult:
    """
    Issue the QR rows still missing for the order's ticket items.

    Restricted to one store's items when store_id is given. Never raises:
    render and storage failures are logged and counted in `failed`.
    """
    result = IssueResult()
    issued = _issued_numbers(order.id)

    for item in _ticket_items(order.id, store_id):
        taken = issued.get(item.id, set())
        product_name = item.product.name

        for ticket_number in range(1, item.quantity + 1):
            if ticket_number in taken:
                continue
            qr_data = build_ticket_payload(order.id, item.id, product_name, ticket_number)
            try:
                qr_code = render_qr_image(qr_data)
            except (httpx.HTTPError, QrRenderError):
                current_app.logger.warning(
                    "Failed to render ticket QR for order %s item %s (ticket %s)",
                    order.id, item.id, ticket_number, exc_info=True,
                )
                result.failed += 1
                continue

            db.session.add(TicketQr(
                order_id=order.id,
                order_item_id=item.id,
                qr_code=qr_code,
                qr_data=qr_data,
                is_used=False,
            ))
            result.issued += 1

    if not result.issued:
        return result

    try:
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Failed to store ticket QR codes for order %s", order.id)
        result.failed += result.issued
        result.issued = 0

    return result


def list_order_qrs(order_id: int, store_id: int | None = None) -> list[TicketQr]:
    query = db.session.query(TicketQr).filter(TicketQr.order_id == order_id)
    if store_id is not None:
        query = query.join(OrderItem, OrderItem.id == TicketQr.order_item_id).filter(OrderItem.store_id == store_id)
    return query.order_by(TicketQr.id.asc()).all()


def generate_missing_qrs(user_id: int, order_id: int) -> IssueResult:
    """
    Buyer-triggered retry of QR issuance.

    The order must belong to the caller, be paid, contain tickets and
    still lack at least one QR.
    """
    order = db.session.query(Order).filter_by(id=order_id).first()
    if not order:
        raise NotFoundError("Order not found")
    if order.buyer_id != user_id:
        raise ForbiddenError("Forbidden")
    if order.status != ORDER_STATUS_PAID:
        raise ValidationError("QR codes can only be generated for paid orders")
    if not _ticket_items(order.id):
        raise ValidationError("No ticket items found in this order")
    if count_missing(order.id) == 0:
        raise ValidationError("QR codes already exist for this order")

    result = issue_ticket_qrs(order)
    current_app.logger.info(
        "Generated missing QR codes for order %s: issued=%s failed=%s",
        order.id, result.issued, result.failed,
    )
    return result
