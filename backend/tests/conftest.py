"""
Pytest fixtures for marketplace backend tests.

Provides the test app, a wiped database per test, users for every role,
a store with products, and fake payment-gateway / QR-render transports.
"""

import json

import httpx
import pytest

from market import create_app
from market.extensions import db
from market.models import Address, Product, Store, User
from market.models.auth import ROLE_ADMIN, ROLE_TOURISM_MANAGER, ROLE_USER
from market.models.stores import PRODUCT_STATUS_ACTIVE, PRODUCT_TYPE_TICKET
from market.services.auth_service import hash_password


PASSWORD = "Password123!"
SERVER_KEY = "test-server-key"
PNG_BYTES = b"\x89PNG\r\n\x1a\nfake-qr"


class FakeGateway:
    """Records Snap requests and answers with a token, or with `error`."""

    def __init__(self):
        self.requests = []
        self.error = None
        self._counter = 0

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append({
            "url": str(request.url),
            "auth": request.headers.get("Authorization"),
            "body": json.loads(request.content),
        })
        if self.error is not None:
            return httpx.Response(400, json={"error_message": self.error})
        self._counter += 1
        token = f"snap-token-{self._counter}"
        return httpx.Response(201, json={
            "token": token,
            "redirect_url": f"https://gateway.test/snap/{token}",
        })


class FakeQrRenderer:
    """Serves a PNG, or fails the first `fail_next` requests."""

    def __init__(self):
        self.requests = []
        self.fail_next = 0

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request.url.params.get("data"))
        if self.fail_next:
            self.fail_next -= 1
            return httpx.Response(503)
        return httpx.Response(200, content=PNG_BYTES, headers={"Content-Type": "image/png"})


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'PAYMENT_GATEWAY_SERVER_KEY': SERVER_KEY,
        'PAYMENT_GATEWAY_URL': 'https://gateway.test/snap/v1/transactions',
        'QR_RENDER_URL': 'https://qr.test/create-qr-code/',
        'APP_BASE_URL': 'http://shop.test',
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def gateway(app):
    fake = FakeGateway()
    app.config['PAYMENT_GATEWAY_TRANSPORT'] = httpx.MockTransport(fake.handler)
    yield fake
    app.config['PAYMENT_GATEWAY_TRANSPORT'] = None


@pytest.fixture(scope='function')
def qr_renderer(app):
    fake = FakeQrRenderer()
    app.config['QR_RENDER_TRANSPORT'] = httpx.MockTransport(fake.handler)
    yield fake
    app.config['QR_RENDER_TRANSPORT'] = None


@pytest.fixture(scope='function')
def db_session(app, gateway, qr_renderer):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


def make_user(db_session, name: str, email: str, role: str = ROLE_USER) -> User:
    user = User(name=name, email=email, password_hash=hash_password(PASSWORD), role=role)
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def buyer(db_session):
    return make_user(db_session, "Budi Buyer", "buyer@market.test")


@pytest.fixture(scope='function')
def other_buyer(db_session):
    return make_user(db_session, "Other Buyer", "other@market.test")


@pytest.fixture(scope='function')
def seller(db_session):
    return make_user(db_session, "Sari Seller", "seller@market.test")


@pytest.fixture(scope='function')
def other_seller(db_session):
    return make_user(db_session, "Oka Seller", "seller2@market.test")


@pytest.fixture(scope='function')
def admin(db_session):
    return make_user(db_session, "Ari Admin", "admin@market.test", role=ROLE_ADMIN)


@pytest.fixture(scope='function')
def manager(db_session):
    return make_user(db_session, "Tari Manager", "manager@market.test", role=ROLE_TOURISM_MANAGER)


@pytest.fixture(scope='function')
def store(db_session, seller):
    store = Store(owner_id=seller.id, name="Sari Crafts", slug="sari-crafts", description="Handmade goods")
    db_session.add(store)
    db_session.commit()
    return store


@pytest.fixture(scope='function')
def other_store(db_session, other_seller):
    store = Store(owner_id=other_seller.id, name="Oka Batik", slug="oka-batik")
    db_session.add(store)
    db_session.commit()
    return store


def make_product(db_session, store, name: str, slug: str, price_cents: int, stock: int, **kwargs) -> Product:
    product = Product(
        store_id=store.id,
        name=name,
        slug=slug,
        price_cents=price_cents,
        stock=stock,
        status=kwargs.pop("status", PRODUCT_STATUS_ACTIVE),
        **kwargs,
    )
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def product(db_session, store):
    """10000.00 each, 10 in stock."""
    return make_product(db_session, store, "Woven Basket", "woven-basket", 1_000_000, 10)


@pytest.fixture(scope='function')
def product_b(db_session, other_store):
    """5000.00 each, 5 in stock."""
    return make_product(db_session, other_store, "Batik Scarf", "batik-scarf", 500_000, 5)


@pytest.fixture(scope='function')
def ticket(db_session, store):
    """Ticket product: 25000.00 each."""
    return make_product(
        db_session, store, "Waterfall Entry", "waterfall-entry", 2_500_000, 50, type=PRODUCT_TYPE_TICKET
    )


@pytest.fixture(scope='function')
def address(db_session, buyer):
    address = Address(
        user_id=buyer.id,
        recipient_name="Budi Buyer",
        phone="+62 812-0000",
        street="Jl. Merdeka 1",
        city="Denpasar",
        province="Bali",
        postal_code="80111",
        is_default=True,
    )
    db_session.add(address)
    db_session.commit()
    return address


def get_auth_token(client, email: str, password: str = PASSWORD) -> str:
    """Helper to get auth token for a user."""
    response = client.post('/api/auth/login', json={
        'email': email,
        'password': password
    })
    if response.status_code == 200:
        return response.json.get('token')
    return None


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


def login(client, user: User) -> dict:
    return auth_headers(get_auth_token(client, user.email))


def place_order(client, headers: dict, address_id: int, items: list) -> dict:
    response = client.post('/api/orders', json={'addressId': address_id, 'items': items}, headers=headers)
    assert response.status_code == 201, response.json
    return response.json
