"""
Stores and products: ownership, slugs, public catalogue and seller dashboard.
"""

from market.models import CartItem, Product, Store

from conftest import login, make_product, place_order


def test_create_store_one_per_account(client, db_session, seller):
    headers = login(client, seller)

    created = client.post('/api/stores', json={"name": "Sari Crafts", "slug": "sari-crafts", "areaId": "2"},
                          headers=headers)
    assert created.status_code == 201
    assert created.json["store"]["ownerId"] == seller.id
    assert created.json["store"]["areaId"] == "2"

    second = client.post('/api/stores', json={"name": "Another", "slug": "another"}, headers=headers)
    assert second.status_code == 400
    assert second.json["error"] == "You can only have one store per account"

    mine = client.get('/api/stores/me', headers=headers)
    assert mine.json["hasStore"] is True
    assert mine.json["store"]["slug"] == "sari-crafts"


def test_store_slug_rules(client, db_session, store, buyer):
    headers = login(client, buyer)

    taken = client.post('/api/stores', json={"name": "Copy", "slug": "sari-crafts"}, headers=headers)
    assert taken.status_code == 400
    assert taken.json["error"] == "Store slug already exists"

    bad = client.post('/api/stores', json={"name": "Bad", "slug": "Bad Slug!"}, headers=headers)
    assert bad.status_code == 400

    missing = client.post('/api/stores', json={"name": "No slug"}, headers=headers)
    assert missing.status_code == 400
    assert missing.json["error"] == "Missing required fields: slug"


def test_store_writes_are_owner_only(client, db_session, store, other_seller):
    headers = login(client, other_seller)

    assert client.put(f'/api/stores/{store.id}', json={"name": "Mine now"}, headers=headers).status_code == 403
    assert client.delete(f'/api/stores/{store.id}', headers=headers).status_code == 403
    assert client.put('/api/stores/999999', json={"name": "x"}, headers=headers).status_code == 404


def test_owner_updates_and_deletes_store(client, db_session, seller, store, product, buyer):
    client.post('/api/cart', json={"productId": product.id, "quantity": 1}, headers=login(client, buyer))
    headers = login(client, seller)

    updated = client.put(f'/api/stores/{store.id}', json={"description": "New text"}, headers=headers)
    assert updated.status_code == 200
    assert updated.json["store"]["description"] == "New text"

    deleted = client.delete(f'/api/stores/{store.id}', headers=headers)
    assert deleted.status_code == 200
    assert db_session.query(Store).count() == 0
    assert db_session.query(Product).count() == 0
    assert db_session.query(CartItem).count() == 0


def test_store_with_orders_cannot_be_deleted(client, db_session, seller, store, product, buyer, address):
    place_order(client, login(client, buyer), address.id, [{"productId": product.id, "quantity": 1}])

    response = client.delete(f'/api/stores/{store.id}', headers=login(client, seller))

    assert response.status_code == 400
    assert response.json["error"] == "Store has orders and cannot be deleted"


def test_public_store_listing_and_slug_page(client, db_session, store, other_store, product):
    make_product(db_session, store, "Hidden Bowl", "hidden-bowl", 100, 1, status="inactive")

    listing = client.get('/api/stores?sortBy=name&sortOrder=asc')
    assert listing.status_code == 200
    assert [s["slug"] for s in listing.json["stores"]] == ["oka-batik", "sari-crafts"]
    assert listing.json["pagination"]["total"] == 2

    search = client.get('/api/stores?q=sari')
    assert [s["slug"] for s in search.json["stores"]] == ["sari-crafts"]

    page = client.get('/api/stores/slug/sari-crafts')
    assert page.status_code == 200
    assert page.json["store"]["id"] == store.id
    assert page.json["pagination"]["limit"] == 12
    assert len(page.json["products"]) == 2

    assert client.get('/api/stores/slug/nope').status_code == 404
    assert client.get(f'/api/stores/{store.id}').json["store"]["name"] == "Sari Crafts"
    assert len(client.get('/api/stores/areas').json["areas"]) == 4


def test_pagination_bounds(client, db_session):
    assert client.get('/api/stores?limit=0').status_code == 400
    assert client.get('/api/stores?limit=101').status_code == 400
    assert client.get('/api/products?page=0').status_code == 400


def test_create_product_defaults_to_own_store(client, db_session, seller, store):
    headers = login(client, seller)

    response = client.post('/api/products', json={
        "name": "Clay Pot", "slug": "clay-pot", "price": "15000.50", "stock": 4,
    }, headers=headers)

    assert response.status_code == 201
    product = response.json["product"]
    assert product["storeId"] == store.id
    assert product["price"] == "15000.50"
    assert product["status"] == "active"
    assert product["type"] is None
    assert product["store"]["slug"] == "sari-crafts"


def test_create_product_validation(client, db_session, seller, store, other_store, buyer):
    headers = login(client, seller)

    foreign = client.post('/api/products', json={
        "storeId": other_store.id, "name": "X", "slug": "x", "price": "1", "stock": 1,
    }, headers=headers)
    assert foreign.status_code == 403

    bad_price = client.post('/api/products', json={
        "name": "X", "slug": "x", "price": "1.999", "stock": 1,
    }, headers=headers)
    assert bad_price.status_code == 400

    negative = client.post('/api/products', json={
        "name": "X", "slug": "x", "price": "1", "stock": -1,
    }, headers=headers)
    assert negative.status_code == 400
    assert negative.json["error"] == "Stock cannot be negative"

    no_store = client.post('/api/products', json={
        "name": "X", "slug": "x", "price": "1", "stock": 1,
    }, headers=login(client, buyer))
    assert no_store.status_code == 404


def test_product_writes_are_owner_only(client, db_session, product, other_seller, seller):
    other = login(client, other_seller)
    assert client.put(f'/api/products/{product.id}', json={"stock": 1}, headers=other).status_code == 403
    assert client.delete(f'/api/products/{product.id}', headers=other).status_code == 403

    updated = client.put(f'/api/products/{product.id}', json={"status": "inactive", "price": 12000},
                         headers=login(client, seller))
    assert updated.status_code == 200
    assert updated.json["product"]["status"] == "inactive"
    assert updated.json["product"]["price"] == "12000.00"


def test_ordered_product_cannot_be_deleted(client, db_session, product, seller, buyer, address):
    place_order(client, login(client, buyer), address.id, [{"productId": product.id, "quantity": 1}])

    response = client.delete(f'/api/products/{product.id}', headers=login(client, seller))

    assert response.status_code == 400
    assert db_session.query(Product).count() == 1


def test_catalogue_search_shows_active_products_only(client, db_session, store, product, product_b):
    make_product(db_session, store, "Woven Hat", "woven-hat", 300_000, 3, status="inactive")

    everything = client.get('/api/products')
    assert everything.status_code == 200
    assert {p["slug"] for p in everything.json["products"]} == {"woven-basket", "batik-scarf"}
    assert everything.json["pagination"]["limit"] == 20

    woven = client.get('/api/products?q=woven')
    assert [p["slug"] for p in woven.json["products"]] == ["woven-basket"]

    cheap = client.get('/api/products?maxPrice=6000&sortBy=price&sortOrder=asc')
    assert [p["slug"] for p in cheap.json["products"]] == ["batik-scarf"]

    ranged = client.get('/api/products?minPrice=5000&maxPrice=10000&sortBy=price&sortOrder=desc')
    assert [p["slug"] for p in ranged.json["products"]] == ["woven-basket", "batik-scarf"]

    assert client.get('/api/products?minPrice=abc').status_code == 400

    assert client.get('/api/products/slug/woven-hat').status_code == 404
    assert client.get('/api/products/slug/woven-basket').json["product"]["store"]["name"] == "Sari Crafts"


def test_search_wildcards_match_literally(client, db_session, store, other_store, product, product_b):
    make_product(db_session, store, "100% Cotton Tote", "cotton-tote", 150_000, 4)

    percent = client.get('/api/products?q=%25')
    assert [p["slug"] for p in percent.json["products"]] == ["cotton-tote"]
    assert client.get('/api/products?q=_').json["products"] == []

    assert client.get('/api/stores?q=%25').json["stores"] == []
    assert client.get('/api/stores?q=_').json["pagination"]["total"] == 0

def test_my_products_include_inactive(client, db_session, seller, store, product):
    make_product(db_session, store, "Draft", "draft", 100, 0, status="inactive")

    response = client.get('/api/products/me', headers=login(client, seller))

    assert response.status_code == 200
    assert len(response.json["products"]) == 2


def test_dashboard_stats(client, db_session, seller, store, product, product_b, buyer, address):
    make_product(db_session, store, "Rare Vase", "rare-vase", 200_000, 2, status="inactive")
    headers = login(client, buyer)
    paid = place_order(client, headers, address.id, [
        {"productId": product.id, "quantity": 2},     # 20000.00 own
        {"productId": product_b.id, "quantity": 4},   # 20000.00 other store
    ])["order"]["id"]
    place_order(client, headers, address.id, [{"productId": product.id, "quantity": 1}])
    client.put(f'/api/orders/{paid}', json={"status": "paid"}, headers=headers)

    response = client.get('/api/stores/dashboard/stats', headers=login(client, seller))

    assert response.status_code == 200
    stats = response.json["stats"]
    assert stats["totalProducts"] == 2
    assert stats["activeProducts"] == 1
    assert stats["lowStockProducts"] == 2
    assert stats["totalOrders"] == 2
    assert stats["pendingOrders"] == 1
    assert stats["recentOrdersCount"] == 2
    assert stats["totalGrossRevenue"] == "20000.00"
    assert stats["totalServiceFeePaid"] == "1000.00"
    assert stats["totalRevenue"] == "19000.00"
