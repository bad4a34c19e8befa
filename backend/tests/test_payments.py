"""
Payment initiation (hosted checkout) and signed gateway notifications.
"""

import base64
import hashlib
from datetime import timedelta

from market.models import Order, Payment, TicketQr
from market.services import settings_service
from market.services.settings_service import BUYER_SERVICE_FEE
from market.time_utils import utcnow

from conftest import SERVER_KEY, login, make_product, place_order


def _signed_notification(gateway_order_id: str, transaction_status: str, *,
                         status_code: str = "200", gross_amount: str = "27000.00", key: str = SERVER_KEY) -> dict:
    signature = hashlib.sha512(f"{gateway_order_id}{status_code}{gross_amount}{key}".encode()).hexdigest()
    return {
        "order_id": gateway_order_id,
        "status_code": status_code,
        "gross_amount": gross_amount,
        "signature_key": signature,
        "transaction_status": transaction_status,
        "payment_type": "bank_transfer",
    }


def _stale_payment(db_session, order_id: int) -> Payment:
    """A pending payment from yesterday; too old to be reused."""
    payment = Payment(
        order_id=order_id,
        transaction_id="snap-token-old",
        gateway_order_id=f"{order_id}_1700000000000",
        status="pending",
        gross_amount_cents=2_700_000,
        created_at=utcnow() - timedelta(hours=25),
    )
    db_session.add(payment)
    db_session.commit()
    return payment


def _ticket_order(client, headers, address, ticket, quantity=1) -> int:
    body = place_order(client, headers, address.id, [{"productId": ticket.id, "quantity": quantity}])
    return body["order"]["id"]


def test_create_payment_calls_gateway(client, db_session, gateway, buyer, address, ticket):
    headers = login(client, buyer)
    order_id = _ticket_order(client, headers, address, ticket)

    response = client.post('/api/payments', json={"orderId": order_id}, headers=headers)

    assert response.status_code == 201
    assert response.json["token"] == "snap-token-1"
    assert response.json["redirectUrl"] == "https://gateway.test/snap/snap-token-1"
    payment = response.json["payment"]
    assert payment["status"] == "pending"
    assert payment["grossAmount"] == "27000.00"
    assert payment["gatewayOrderId"].startswith(f"{order_id}_")

    assert len(gateway.requests) == 1
    sent = gateway.requests[0]
    expected_auth = base64.b64encode(f"{SERVER_KEY}:".encode()).decode()
    assert sent["auth"] == f"Basic {expected_auth}"
    assert sent["body"]["transaction_details"] == {
        "order_id": payment["gatewayOrderId"],
        "gross_amount": 27000,
    }
    assert [line["price"] for line in sent["body"]["item_details"]] == [25000, 2000]
    assert sent["body"]["customer_details"]["email"] == "buyer@market.test"
    assert sent["body"]["callbacks"]["finish"] == f"http://shop.test/orders/{order_id}"


def test_gateway_lines_add_up_to_gross_amount_with_cents(client, db_session, gateway, buyer, address, store):
    settings_service.upsert_setting(BUYER_SERVICE_FEE, "2000.50")
    postcard = make_product(db_session, store, "Postcard", "postcard", 10_050, 5)
    headers = login(client, buyer)
    order_id = place_order(client, headers, address.id, [{"productId": postcard.id, "quantity": 1}])["order"]["id"]

    response = client.post('/api/payments', json={"orderId": order_id}, headers=headers)

    assert response.status_code == 201
    body = gateway.requests[0]["body"]
    assert body["transaction_details"]["gross_amount"] == 2101
    lines = body["item_details"]
    assert sum(line["price"] * line["quantity"] for line in lines) == 2101
    assert [line["price"] for line in lines] == [101, 2000]

def test_recent_pending_payment_is_reused(client, db_session, gateway, buyer, address, ticket):
    headers = login(client, buyer)
    order_id = _ticket_order(client, headers, address, ticket)

    first = client.post('/api/payments', json={"orderId": order_id}, headers=headers)
    second = client.post('/api/payments', json={"orderId": order_id}, headers=headers)

    assert first.status_code == 201
    assert second.status_code == 200
    assert second.json["message"] == "Using existing payment"
    assert second.json["token"] == first.json["token"]
    assert second.json["redirectUrl"] == first.json["redirectUrl"]
    assert len(gateway.requests) == 1
    assert db_session.query(Payment).count() == 1


def test_stale_pending_payment_is_not_reused(client, db_session, gateway, buyer, address, ticket):
    headers = login(client, buyer)
    order_id = _ticket_order(client, headers, address, ticket)
    _stale_payment(db_session, order_id)

    second = client.post('/api/payments', json={"orderId": order_id}, headers=headers)

    assert second.status_code == 201
    assert second.json["token"] == "snap-token-1"
    assert db_session.query(Payment).count() == 2


def test_payment_requires_own_pending_order(client, db_session, gateway, buyer, other_buyer, address, ticket):
    headers = login(client, buyer)
    order_id = _ticket_order(client, headers, address, ticket)

    foreign = client.post('/api/payments', json={"orderId": order_id}, headers=login(client, other_buyer))
    assert foreign.status_code == 404

    missing_id = client.post('/api/payments', json={}, headers=headers)
    assert missing_id.status_code == 400

    order = db_session.get(Order, order_id)
    order.status = "cancelled"
    db_session.commit()

    closed = client.post('/api/payments', json={"orderId": order_id}, headers=headers)
    assert closed.status_code == 400
    assert closed.json["error"] == "Order is not pending payment"
    assert gateway.requests == []


def test_gateway_error_is_surfaced(client, db_session, gateway, buyer, address, ticket):
    gateway.error = "transaction_details.gross_amount is not valid"
    headers = login(client, buyer)
    order_id = _ticket_order(client, headers, address, ticket)

    response = client.post('/api/payments', json={"orderId": order_id}, headers=headers)

    assert response.status_code == 500
    assert response.json["error"] == (
        "Failed to create midtrans transaction: transaction_details.gross_amount is not valid"
    )
    assert db_session.query(Payment).count() == 0


def test_missing_server_key(app, client, db_session, gateway, buyer, address, ticket):
    headers = login(client, buyer)
    order_id = _ticket_order(client, headers, address, ticket)

    app.config["PAYMENT_GATEWAY_SERVER_KEY"] = None
    try:
        response = client.post('/api/payments', json={"orderId": order_id}, headers=headers)
    finally:
        app.config["PAYMENT_GATEWAY_SERVER_KEY"] = SERVER_KEY

    assert response.status_code == 500
    assert response.json["error"] == "Payment service not configured"
    assert gateway.requests == []


def test_settlement_marks_order_paid_and_issues_tickets(client, db_session, gateway, qr_renderer,
                                                        buyer, address, ticket):
    headers = login(client, buyer)
    order_id = _ticket_order(client, headers, address, ticket, quantity=2)
    payment = client.post('/api/payments', json={"orderId": order_id}, headers=headers).json["payment"]

    response = client.post('/api/payments/webhook', json=_signed_notification(
        payment["gatewayOrderId"], "settlement", gross_amount="52000.00"
    ))

    assert response.status_code == 200
    assert response.json["paymentStatus"] == "settlement"
    assert response.json["orderStatus"] == "paid"

    db_session.expire_all()
    stored = db_session.get(Payment, payment["id"])
    assert stored.status == "settlement"
    assert stored.payment_type == "bank_transfer"
    assert db_session.get(Order, order_id).status == "paid"
    assert db_session.query(TicketQr).filter_by(order_id=order_id).count() == 2
    assert len(qr_renderer.requests) == 2


def test_invalid_signature_is_rejected(client, db_session, gateway, buyer, address, ticket):
    headers = login(client, buyer)
    order_id = _ticket_order(client, headers, address, ticket)
    payment = client.post('/api/payments', json={"orderId": order_id}, headers=headers).json["payment"]

    forged = _signed_notification(payment["gatewayOrderId"], "settlement", key="wrong-key")
    response = client.post('/api/payments/webhook', json=forged)

    assert response.status_code == 401
    assert response.json["error"] == "Invalid signature"
    db_session.expire_all()
    assert db_session.get(Order, order_id).status == "pending"
    assert db_session.get(Payment, payment["id"]).status == "pending"


def test_notification_for_unknown_payment(client, db_session):
    response = client.post('/api/payments/webhook', json=_signed_notification("987654_1700000000000", "settlement"))
    assert response.status_code == 404
    assert response.json["error"] == "Payment not found"


def test_notification_with_missing_fields(client, db_session):
    response = client.post('/api/payments/webhook', json={"order_id": "1_1"})
    assert response.status_code == 400


def test_expire_cancels_order(client, db_session, gateway, buyer, address, ticket):
    headers = login(client, buyer)
    order_id = _ticket_order(client, headers, address, ticket)
    payment = client.post('/api/payments', json={"orderId": order_id}, headers=headers).json["payment"]

    response = client.post('/api/payments/webhook', json=_signed_notification(payment["gatewayOrderId"], "expire"))

    assert response.status_code == 200
    assert response.json["paymentStatus"] == "expire"
    assert response.json["orderStatus"] == "cancelled"
    db_session.expire_all()
    assert db_session.get(Order, order_id).status == "cancelled"


def test_cancel_of_superseded_payment_leaves_order_pending(client, db_session, gateway, buyer, address, ticket):
    headers = login(client, buyer)
    order_id = _ticket_order(client, headers, address, ticket)
    old = _stale_payment(db_session, order_id)
    client.post('/api/payments', json={"orderId": order_id}, headers=headers)

    response = client.post('/api/payments/webhook', json=_signed_notification(old.gateway_order_id, "expire"))

    assert response.status_code == 200
    assert response.json["orderStatus"] is None
    db_session.expire_all()
    assert db_session.get(Payment, old.id).status == "expire"
    assert db_session.get(Order, order_id).status == "pending"


def test_late_settlement_after_cancel_is_acknowledged(client, db_session, gateway, buyer, address, ticket):
    headers = login(client, buyer)
    order_id = _ticket_order(client, headers, address, ticket)
    payment = client.post('/api/payments', json={"orderId": order_id}, headers=headers).json["payment"]
    client.post('/api/payments/webhook', json=_signed_notification(payment["gatewayOrderId"], "cancel"))

    response = client.post('/api/payments/webhook', json=_signed_notification(payment["gatewayOrderId"], "settlement"))

    assert response.status_code == 200
    assert response.json["orderStatus"] is None
    db_session.expire_all()
    assert db_session.get(Order, order_id).status == "cancelled"


def test_list_and_get_payments(client, db_session, gateway, buyer, other_buyer, address, ticket):
    headers = login(client, buyer)
    order_id = _ticket_order(client, headers, address, ticket)
    payment = client.post('/api/payments', json={"orderId": order_id}, headers=headers).json["payment"]

    listed = client.get('/api/payments', headers=headers)
    assert listed.status_code == 200
    assert [p["id"] for p in listed.json["payments"]] == [payment["id"]]
    assert listed.json["payments"][0]["order"]["status"] == "pending"

    own = client.get(f'/api/payments/{payment["id"]}', headers=headers)
    assert own.status_code == 200

    other_headers = login(client, other_buyer)
    assert client.get(f'/api/payments/{payment["id"]}', headers=other_headers).status_code == 403
    assert client.get('/api/payments/999999', headers=other_headers).status_code == 404
    assert client.get('/api/payments', headers=other_headers).json["payments"] == []
