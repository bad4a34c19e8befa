# Overview: Service-layer operations for payment; encapsulates business logic and database work.

"""
Payment Service (hosted checkout)

Buyers pay through the gateway's hosted checkout page (Midtrans Snap):
we create a transaction, store the returned token as a Payment row and
hand the redirect URL back to the client. The gateway later reports the
outcome through a signed notification (webhook).

DESIGN PRINCIPLES:
- A pending payment younger than 24 hours is reused instead of creating
  a second gateway transaction
- The gateway order id is "{order_id}_{epoch_millis}" so retries never
  collide on the gateway side
- The gateway is called outside the write lock; the lookup is repeated
  under the lock before inserting
- Amounts sent to the gateway are whole currency units
"""

from __future__ import annotations

import hashlib
import hmac
from datetime import timedelta

import httpx
from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import Order, Payment, User
from ..models.orders import ORDER_STATUS_CANCELLED, ORDER_STATUS_PAID, ORDER_STATUS_PENDING
from market.errors import ForbiddenError, MarketError, NotFoundError, ServiceUnavailableError, ValidationError
from market.money import format_cents, round_to_major_units
from market.time_utils import as_naive_utc, epoch_millis, utcnow
from market.validation import parse_id
from .concurrency import begin_immediate, lock_for_update, run_with_retry
from .order_service import transition_order


class PaymentGatewayError(ServiceUnavailableError):
    """The gateway refused the transaction or could not be reached."""
    pass


class WebhookSignatureError(MarketError):
    """Notification signature does not match."""
    status_code = 401


# =============================================================================
# PAYMENT STATUS (CONSTANTS)
# =============================================================================

PAYMENT_STATUS_PENDING = "pending"
PAYMENT_STATUS_SETTLEMENT = "settlement"
PAYMENT_STATUS_DENY = "deny"

PAYMENT_REUSE_WINDOW = timedelta(hours=24)

# gateway transaction_status -> (stored payment status, order status or None)
NOTIFICATION_STATUS_MAP = {
    "capture": (PAYMENT_STATUS_SETTLEMENT, ORDER_STATUS_PAID),
    "settlement": (PAYMENT_STATUS_SETTLEMENT, ORDER_STATUS_PAID),
    "pending": (PAYMENT_STATUS_PENDING, None),
    "deny": (PAYMENT_STATUS_DENY, ORDER_STATUS_CANCELLED),
    "cancel": ("cancel", ORDER_STATUS_CANCELLED),
    "expire": ("expire", ORDER_STATUS_CANCELLED),
}

NOTIFICATION_FIELDS = ("order_id", "status_code", "gross_amount", "signature_key", "transaction_status")


def map_notification_status(transaction_status: str) -> tuple[str, str | None]:
    """Unknown gateway statuses are stored verbatim and leave the order alone."""
    return NOTIFICATION_STATUS_MAP.get(transaction_status, (transaction_status, None))


# =============================================================================
# GATEWAY CLIENT
# =============================================================================

def _server_key() -> str:
    key = current_app.config.get("PAYMENT_GATEWAY_SERVER_KEY")
    if not key:
        current_app.logger.error("PAYMENT_GATEWAY_SERVER_KEY is not set")
        raise ServiceUnavailableError("Payment service not configured")
    return key


def build_gateway_request(order: Order, buyer: User, gateway_order_id: str) -> dict:
    """
    Snap transaction body: one line for the items, one for the buyer fee.

    The gateway only takes whole units and rejects bodies whose lines do not
    add up to gross_amount, so the fee line absorbs the rounding difference.
    """
    gross_amount = round_to_major_units(order.gross_amount_cents)
    items_amount = round_to_major_units(order.total_cents)
    return {
        "transaction_details": {
            "order_id": gateway_order_id,
            "gross_amount": gross_amount,
        },
        "customer_details": {
            "first_name": buyer.name or "Customer",
            "last_name": "",
            "email": buyer.email,
            "phone": "",
        },
        "item_details": [
            {
                "id": f"{order.id}_items",
                "price": items_amount,
                "quantity": 1,
                "name": f"Order #{str(order.id)[-8:]} - Items",
            },
            {
                "id": f"{order.id}_service_fee",
                "price": gross_amount - items_amount,
                "quantity": 1,
                "name": "Service Fee",
            },
        ],
        "callbacks": {
            "finish": f"{current_app.config['APP_BASE_URL'].rstrip('/')}/orders/{order.id}",
        },
    }


def create_gateway_transaction(body: dict) -> dict:
    """
    POST the transaction to the gateway (basic auth, server key as username).

    Returns the decoded response holding `token` and `redirect_url`.
    """
    config = current_app.config
    server_key = _server_key()

    try:
        with httpx.Client(transport=config["PAYMENT_GATEWAY_TRANSPORT"], timeout=config["PAYMENT_GATEWAY_TIMEOUT"]) as client:
            response = client.post(
                config["PAYMENT_GATEWAY_URL"],
                json=body,
                auth=(server_key, ""),
                headers={"Accept": "application/json"},
            )
    except httpx.HTTPError as exc:
        current_app.logger.error(
            "Payment gateway unreachable for %s: %s",
            body["transaction_details"]["order_id"], exc,
        )
        raise PaymentGatewayError(f"Failed to create midtrans transaction: {exc}")

    try:
        data = response.json()
    except ValueError:
        data = {}
    if not isinstance(data, dict):
        data = {}

    if response.is_error or not data.get("token"):
        current_app.logger.error(
            "Payment gateway error: status=%s response=%s transaction_details=%s",
            response.status_code, data, body["transaction_details"],
        )
        message = data.get("error_message") or data.get("message") or "Unknown error"
        if isinstance(message, list):
            message = ", ".join(str(m) for m in message)
        raise PaymentGatewayError(f"Failed to create midtrans transaction: {message}")

    return data


# =============================================================================
# PAYMENT CREATION
# =============================================================================

def _latest_payment(order_id: int) -> Payment | None:
    return (
        db.session.query(Payment)
        .filter(Payment.order_id == order_id)
        .order_by(Payment.created_at.desc(), Payment.id.desc())
        .first()
    )


def _reusable_payment(order_id: int) -> Payment | None:
    payment = _latest_payment(order_id)
    if payment and payment.status == PAYMENT_STATUS_PENDING and utcnow() - as_naive_utc(payment.created_at) < PAYMENT_REUSE_WINDOW:
        return payment
    return None


def _redirect_url(payment: Payment) -> str:
    if payment.redirect_url:
        return payment.redirect_url
    return f"{current_app.config['PAYMENT_REDIRECT_BASE_URL'].rstrip('/')}/{payment.transaction_id}"


def _reuse_response(payment: Payment) -> dict:
    return {
        "payment": payment.to_dict(),
        "redirectUrl": _redirect_url(payment),
        "token": payment.transaction_id,
        "message": "Using existing payment",
    }


def create_payment(user: User, payload: dict) -> tuple[dict, bool]:
    """
    Start (or resume) hosted checkout for one of the caller's pending orders.

    Returns (response body, created). `created` is False when an existing
    pending payment was reused.
    """
    payload = payload or {}
    _server_key()
    order_id = parse_id(payload.get("orderId"), field_name="orderId")
    payment_type = payload.get("paymentType")
    if payment_type is not None and not isinstance(payment_type, str):
        raise ValidationError("paymentType must be a string")

    order = db.session.query(Order).filter_by(id=order_id, buyer_id=user.id).first()
    if not order:
        raise NotFoundError("Order not found")
    if order.status != ORDER_STATUS_PENDING:
        raise ValidationError("Order is not pending payment")

    existing = _reusable_payment(order.id)
    if existing:
        return _reuse_response(existing), False

    gateway_order_id = f"{order.id}_{epoch_millis()}"
    gateway_response = create_gateway_transaction(build_gateway_request(order, user, gateway_order_id))
    token = gateway_response["token"]

    def _op():
        begin_immediate()
        try:
            locked = lock_for_update(db.session.query(Order).filter_by(id=order_id)).first()
            if locked.status != ORDER_STATUS_PENDING:
                raise ValidationError("Order is not pending payment")

            concurrent = _reusable_payment(locked.id)
            if concurrent:
                db.session.commit()
                return concurrent, False

            payment = Payment(
                order_id=locked.id,
                transaction_id=token,
                gateway_order_id=gateway_order_id,
                redirect_url=gateway_response.get("redirect_url"),
                status=PAYMENT_STATUS_PENDING,
                gross_amount_cents=locked.gross_amount_cents,
                payment_type=payment_type,
            )
            db.session.add(payment)
            db.session.commit()
            return payment, True
        except MarketError:
            db.session.rollback()
            raise

    try:
        payment, created = run_with_retry(_op)
    except SQLAlchemyError:
        # The buyer now holds a live gateway transaction without a local record.
        current_app.logger.exception(
            "Gateway transaction %s (token %s) created but payment record could not be stored",
            gateway_order_id, token,
        )
        raise

    if not created:
        current_app.logger.warning(
            "Concurrent payment request for order %s; gateway transaction %s left unused",
            order_id, gateway_order_id,
        )
        return _reuse_response(payment), False

    current_app.logger.info(
        "Payment %s created for order %s: gross=%s gateway_order_id=%s",
        payment.id, order_id, format_cents(payment.gross_amount_cents), gateway_order_id,
    )
    return {
        "payment": payment.to_dict(),
        "redirectUrl": _redirect_url(payment),
        "token": token,
    }, True


# =============================================================================
# QUERIES
# =============================================================================

def _payment_view(payment: Payment) -> dict:
    order = payment.order
    return {
        **payment.to_dict(),
        "order": {
            "id": order.id,
            "status": order.status,
            "total": format_cents(order.total_cents),
        },
    }


def list_payments(user_id: int) -> list[dict]:
    payments = (
        db.session.query(Payment)
        .join(Order, Order.id == Payment.order_id)
        .filter(Order.buyer_id == user_id)
        .order_by(Payment.created_at.asc(), Payment.id.asc())
        .all()
    )
    return [_payment_view(p) for p in payments]


def get_payment(user_id: int, payment_id: int) -> dict:
    payment = db.session.query(Payment).filter_by(id=payment_id).first()
    if not payment:
        raise NotFoundError("Payment not found")
    if payment.order.buyer_id != user_id:
        raise ForbiddenError("Unauthorized to view this payment")
    return _payment_view(payment)


# =============================================================================
# NOTIFICATIONS (WEBHOOK)
# =============================================================================

def notification_signature(order_id: str, status_code: str, gross_amount: str, server_key: str) -> str:
    raw = f"{order_id}{status_code}{gross_amount}{server_key}"
    return hashlib.sha512(raw.encode("utf-8")).hexdigest()


def _find_notified_payment(gateway_order_id: str) -> Payment | None:
    payment = db.session.query(Payment).filter_by(gateway_order_id=gateway_order_id).first()
    if payment:
        return payment

    prefix = gateway_order_id.split("_", 1)[0]
    if not prefix.isdigit():
        return None
    return _latest_payment(int(prefix))


def handle_notification(payload: dict) -> dict:
    """
    Apply a signed gateway notification.

    The payment row is updated with the mapped status; the order is moved
    through the regular status transitions (so "paid" issues ticket QRs).
    Cancellations only touch the order when they concern its latest
    payment, and transitions the order no longer allows are logged and
    skipped so the gateway does not keep retrying.
    """
    server_key = current_app.config.get("PAYMENT_GATEWAY_SERVER_KEY")
    if not server_key:
        current_app.logger.error("Webhook received but PAYMENT_GATEWAY_SERVER_KEY is not set")
        raise ServiceUnavailableError("Server key not configured")

    if not isinstance(payload, dict):
        raise ValidationError("Invalid notification payload")
    fields = {}
    for name in NOTIFICATION_FIELDS:
        value = payload.get(name)
        if value is None or isinstance(value, (dict, list)):
            raise ValidationError(f"Missing notification field: {name}")
        fields[name] = str(value)

    expected = notification_signature(
        fields["order_id"], fields["status_code"], fields["gross_amount"], server_key
    )
    if not hmac.compare_digest(expected, fields["signature_key"]):
        current_app.logger.error("Webhook invalid signature, order=%s", fields["order_id"])
        raise WebhookSignatureError("Invalid signature")

    payment_status, order_status = map_notification_status(fields["transaction_status"])
    payment_type = payload.get("payment_type")

    def _op():
        begin_immediate()
        payment = _find_notified_payment(fields["order_id"])
        if not payment:
            db.session.rollback()
            raise NotFoundError("Payment not found")
        payment = lock_for_update(db.session.query(Payment).filter_by(id=payment.id)).first()
        payment.status = payment_status
        if isinstance(payment_type, str) and payment_type:
            payment.payment_type = payment_type
        is_latest = _latest_payment(payment.order_id).id == payment.id
        db.session.commit()
        return payment.id, payment.order_id, is_latest

    try:
        payment_id, order_id, is_latest = run_with_retry(_op)
    except NotFoundError:
        current_app.logger.error("Webhook payment not found, gateway_order_id=%s", fields["order_id"])
        raise

    resulting_status = None
    if order_status == ORDER_STATUS_CANCELLED and not is_latest:
        current_app.logger.info(
            "Webhook %s for superseded payment %s; order %s left unchanged",
            payment_status, payment_id, order_id,
        )
    elif order_status:
        try:
            change = transition_order(order_id, order_status)
            resulting_status = change.order.status
        except ValidationError as exc:
            current_app.logger.warning("Webhook for order %s not applied: %s", order_id, exc.message)

    current_app.logger.info(
        "Webhook processed: gateway_order_id=%s payment_status=%s order_status=%s",
        fields["order_id"], payment_status, resulting_status,
    )
    return {
        "message": "Webhook processed successfully",
        "paymentStatus": payment_status,
        "orderStatus": resulting_status,
    }
