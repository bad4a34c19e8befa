"""
Order creation: fee capture, all-or-nothing writes, stock and cart effects.
"""

from market.models import CartItem, Order, OrderItem, Product
from market.services import settings_service

from conftest import login, make_product, place_order


def test_checkout_example_amounts(client, db_session, buyer, address, store, ticket):
    headers = login(client, buyer)

    body = place_order(client, headers, address.id, [{"productId": ticket.id, "quantity": 1}])

    order = body["order"]
    assert order["status"] == "pending"
    assert order["total"] == "25000.00"
    assert order["serviceFee"] == "1250.00"
    assert order["buyerServiceFee"] == "2000.00"
    assert len(body["items"]) == 1
    assert body["items"][0]["price"] == "25000.00"
    assert body["items"][0]["storeId"] == store.id

    stored = db_session.get(Order, order["id"])
    assert stored.gross_amount_cents == 2_700_000


def test_order_decrements_stock_and_clears_cart(client, db_session, buyer, address, product, product_b):
    headers = login(client, buyer)
    client.post('/api/cart', json={"productId": product.id, "quantity": 2}, headers=headers)

    body = place_order(client, headers, address.id, [
        {"productId": product.id, "quantity": 3},
        {"productId": product_b.id, "quantity": 2},
    ])

    assert body["order"]["total"] == "40000.00"
    db_session.expire_all()
    assert db_session.get(Product, product.id).stock == 7
    assert db_session.get(Product, product_b.id).stock == 3
    assert db_session.query(CartItem).count() == 0


def test_duplicate_lines_are_merged(client, db_session, buyer, address, product):
    headers = login(client, buyer)

    body = place_order(client, headers, address.id, [
        {"productId": product.id, "quantity": 1},
        {"productId": product.id, "quantity": 2},
    ])

    assert len(body["items"]) == 1
    assert body["items"][0]["quantity"] == 3
    db_session.expire_all()
    assert db_session.get(Product, product.id).stock == 7


def test_insufficient_stock_writes_nothing(client, db_session, buyer, address, product, product_b):
    headers = login(client, buyer)

    response = client.post('/api/orders', json={
        "addressId": address.id,
        "items": [
            {"productId": product.id, "quantity": 2},
            {"productId": product_b.id, "quantity": 6},
        ],
    }, headers=headers)

    assert response.status_code == 400
    assert response.json["error"] == f"Insufficient stock for product {product_b.id}"
    assert response.json["details"] == {"productId": product_b.id, "available": 5, "requested": 6}

    db_session.expire_all()
    assert db_session.query(Order).count() == 0
    assert db_session.query(OrderItem).count() == 0
    assert db_session.get(Product, product.id).stock == 10
    assert db_session.get(Product, product_b.id).stock == 5


def test_inactive_product_is_rejected(client, db_session, buyer, address, store):
    hidden = make_product(db_session, store, "Retired Mug", "retired-mug", 100_000, 5, status="inactive")
    headers = login(client, buyer)

    response = client.post('/api/orders', json={
        "addressId": address.id,
        "items": [{"productId": hidden.id, "quantity": 1}],
    }, headers=headers)

    assert response.status_code == 400
    assert response.json["error"] == f"Product {hidden.id} is not available"


def test_missing_product_is_404(client, db_session, buyer, address):
    headers = login(client, buyer)

    response = client.post('/api/orders', json={
        "addressId": address.id,
        "items": [{"productId": 999999, "quantity": 1}],
    }, headers=headers)

    assert response.status_code == 404
    assert response.json["error"] == "Product 999999 not found"


def test_foreign_address_is_404(client, db_session, other_buyer, address, product):
    headers = login(client, other_buyer)

    response = client.post('/api/orders', json={
        "addressId": address.id,
        "items": [{"productId": product.id, "quantity": 1}],
    }, headers=headers)

    assert response.status_code == 404
    assert response.json["error"] == "Address not found"


def test_malformed_order_requests(client, db_session, buyer, address, product):
    headers = login(client, buyer)

    assert client.post('/api/orders', json={"items": [{"productId": product.id, "quantity": 1}]},
                       headers=headers).status_code == 400
    assert client.post('/api/orders', json={"addressId": address.id, "items": []},
                       headers=headers).status_code == 400
    assert client.post('/api/orders', json={"addressId": address.id, "items": [{"productId": product.id, "quantity": 0}]},
                       headers=headers).status_code == 400
    assert client.post('/api/orders', json={"addressId": address.id}, headers=headers).status_code == 400
    assert client.post('/api/orders', json={"addressId": "\u00b2", "items": [{"productId": product.id, "quantity": 1}]},
                       headers=headers).status_code == 400
    assert client.post('/api/orders', json={"addressId": address.id, "items": [{"productId": "\u00b2", "quantity": 1}]},
                       headers=headers).status_code == 400
    assert db_session.query(Order).count() == 0


def test_fee_settings_are_read_at_creation(client, db_session, buyer, address, product):
    settings_service.upsert_setting("service_fee_percentage", "10")
    settings_service.upsert_setting("buyer_service_fee", "1500.50")
    headers = login(client, buyer)

    first = place_order(client, headers, address.id, [{"productId": product.id, "quantity": 1}])
    settings_service.upsert_setting("service_fee_percentage", "0")
    second = place_order(client, headers, address.id, [{"productId": product.id, "quantity": 1}])

    assert first["order"]["serviceFee"] == "1000.00"
    assert first["order"]["buyerServiceFee"] == "1500.50"
    assert second["order"]["serviceFee"] == "0.00"

    # Stored orders keep the fees they were created with
    db_session.expire_all()
    assert db_session.get(Order, first["order"]["id"]).service_fee_cents == 100_000


def test_buyer_lists_and_reads_own_orders(client, db_session, buyer, other_buyer, address, product):
    headers = login(client, buyer)
    first = place_order(client, headers, address.id, [{"productId": product.id, "quantity": 1}])
    second = place_order(client, headers, address.id, [{"productId": product.id, "quantity": 2}])

    response = client.get('/api/orders?page=1&limit=1', headers=headers)
    assert response.status_code == 200
    assert response.json["pagination"]["total"] == 2
    assert response.json["pagination"]["hasNext"] is True
    assert [o["id"] for o in response.json["orders"]] == [second["order"]["id"]]

    detail = client.get(f'/api/orders/{first["order"]["id"]}', headers=headers)
    assert detail.status_code == 200
    assert detail.json["order"]["grossAmount"] == "12000.00"
    assert detail.json["order"]["address"]["city"] == "Denpasar"
    assert detail.json["order"]["items"][0]["product"]["name"] == "Woven Basket"
    assert detail.json["order"]["ticketQrs"] == []

    other = client.get(f'/api/orders/{first["order"]["id"]}', headers=login(client, other_buyer))
    assert other.status_code == 404


def test_seller_sees_only_own_lines_and_earnings(client, db_session, buyer, seller, other_seller,
                                                 address, product, product_b):
    headers = login(client, buyer)
    place_order(client, headers, address.id, [
        {"productId": product.id, "quantity": 1},      # 10000.00
        {"productId": product_b.id, "quantity": 2},    # 10000.00
    ])

    response = client.get('/api/orders/seller', headers=login(client, seller))
    assert response.status_code == 200
    orders = response.json["orders"]
    assert len(orders) == 1
    view = orders[0]
    assert [item["product"]["id"] for item in view["items"]] == [product.id]
    assert view["total"] == "20000.00"
    assert view["serviceFee"] == "1000.00"
    assert view["sellerTotal"] == "10000.00"
    assert view["sellerServiceFee"] == "500.00"
    assert view["sellerEarnings"] == "9500.00"

    # An involved seller can read the order itself
    detail = client.get(f'/api/orders/{view["id"]}', headers=login(client, other_seller))
    assert detail.status_code == 200
    assert "ticketQrs" not in detail.json["order"]


def test_seller_orders_without_store_is_404(client, db_session, buyer):
    response = client.get('/api/orders/seller', headers=login(client, buyer))
    assert response.status_code == 404
    assert response.json["error"] == "Store not found"


def test_orders_require_authentication(client, db_session):
    assert client.get('/api/orders').status_code == 401
    assert client.post('/api/orders', json={}).status_code == 401
