# Overview: Service-layer operations for stores; encapsulates business logic and database work.

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta

from ..extensions import db
from ..models import CartItem, Order, OrderItem, Product, Store
from ..models.orders import ORDER_STATUS_COMPLETED, ORDER_STATUS_PAID, ORDER_STATUS_PENDING, ORDER_STATUS_SHIPPED
from ..models.stores import PRODUCT_STATUS_ACTIVE
from market.errors import ForbiddenError, NotFoundError, ValidationError
from market.money import format_cents, proportional_share
from market.time_utils import as_naive_utc, utcnow
from market.validation import LIKE_ESCAPE, ModelValidationPolicy, like_pattern, validate_payload, validate_slug


# Areas are a fixed list until area management exists.
STORE_AREAS = [
    {"id": "1", "name": "Masjid A"},
    {"id": "2", "name": "Pasar C"},
    {"id": "3", "name": "Alun-alun"},
    {"id": "4", "name": "Masjid B"},
]

LOW_STOCK_THRESHOLD = 10
RECENT_ORDER_WINDOW = timedelta(days=30)
REVENUE_STATUSES = (ORDER_STATUS_PAID, ORDER_STATUS_SHIPPED, ORDER_STATUS_COMPLETED)

STORE_SORT_COLUMNS = {
    "name": Store.name,
    "createdAt": Store.created_at,
}

STORE_POLICY = ModelValidationPolicy(
    writable_fields={
        "name": "name",
        "slug": "slug",
        "areaId": "area_id",
        "description": "description",
        "logo": "logo",
    },
    required_on_create={"name", "slug"},
)


@dataclass
class StoreQuery:
    q: str | None = None
    sort_by: str = "createdAt"
    sort_order: str = "desc"
    page: int = 1
    limit: int = 10


def get_store(store_id: int) -> Store:
    store = db.session.query(Store).filter_by(id=store_id).first()
    if not store:
        raise NotFoundError("Store not found")
    return store


def get_store_by_slug(slug: str) -> Store:
    store = db.session.query(Store).filter_by(slug=slug).first()
    if not store:
        raise NotFoundError("Store not found")
    return store


def get_user_store(user_id: int) -> Store | None:
    return db.session.query(Store).filter_by(owner_id=user_id).first()


def require_user_store(user_id: int) -> Store:
    store = get_user_store(user_id)
    if not store:
        raise NotFoundError("Store not found")
    return store


def list_stores(params: StoreQuery) -> tuple[list[Store], int]:
    query = db.session.query(Store)
    if params.q:
        query = query.filter(Store.name.ilike(like_pattern(params.q), escape=LIKE_ESCAPE))

    total = query.count()

    column = STORE_SORT_COLUMNS.get(params.sort_by, Store.created_at)
    ordering = column.asc() if params.sort_order == "asc" else column.desc()

    stores = (
        query.order_by(ordering, Store.id.desc())
        .offset((params.page - 1) * params.limit)
        .limit(params.limit)
        .all()
    )
    return stores, total


def _ensure_slug_available(slug: str, *, store_id: int | None = None) -> None:
    existing = db.session.query(Store.id).filter(Store.slug == slug).first()
    if existing and existing.id != store_id:
        raise ValidationError("Store slug already exists")


def create_store(owner_id: int, payload: dict) -> Store:
    """One store per account; slug must be unique and URL-safe."""
    patch = validate_payload(model=Store, payload=payload, policy=STORE_POLICY, partial=False)
    validate_slug(patch["slug"], 50)

    if get_user_store(owner_id):
        raise ValidationError("You can only have one store per account")
    _ensure_slug_available(patch["slug"])

    store = Store(owner_id=owner_id)
    for key, value in patch.items():
        setattr(store, key, value)

    db.session.add(store)
    db.session.commit()
    return store


def update_store(user_id: int, store_id: int, payload: dict) -> Store:
    store = get_store(store_id)
    if store.owner_id != user_id:
        raise ForbiddenError("Unauthorized to update this store")

    patch = validate_payload(model=Store, payload=payload, policy=STORE_POLICY, partial=True)
    if "slug" in patch:
        validate_slug(patch["slug"], 50)
        _ensure_slug_available(patch["slug"], store_id=store.id)

    for key, value in patch.items():
        setattr(store, key, value)

    db.session.commit()
    return store


def delete_store(user_id: int, store_id: int) -> None:
    """
    Delete a store and its products. Stores that already sold something
    keep their rows so order history stays intact.
    """
    store = get_store(store_id)
    if store.owner_id != user_id:
        raise ForbiddenError("Unauthorized to delete this store")

    has_orders = db.session.query(OrderItem.id).filter(OrderItem.store_id == store.id).first()
    if has_orders:
        raise ValidationError("Store has orders and cannot be deleted")

    product_ids = db.select(Product.id).where(Product.store_id == store.id)
    db.session.query(CartItem).filter(CartItem.product_id.in_(product_ids)).delete(synchronize_session=False)
    db.session.delete(store)
    db.session.commit()


def list_store_products(store: Store, *, page: int, limit: int) -> tuple[list[Product], int]:
    query = db.session.query(Product).filter(Product.store_id == store.id)
    total = query.count()
    products = (
        query.order_by(Product.created_at.desc(), Product.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return products, total


def get_dashboard_stats(user_id: int) -> dict:
    """
    Seller dashboard numbers.

    Revenue only counts orders that were paid (paid/shipped/completed).
    The platform fee is attributed to the seller proportionally to the
    seller's share of each order total.
    """
    store = require_user_store(user_id)

    products = db.session.query(Product.status, Product.stock).filter(Product.store_id == store.id).all()
    total_products = len(products)
    active_products = sum(1 for p in products if p.status == PRODUCT_STATUS_ACTIVE)
    low_stock_products = sum(1 for p in products if p.stock < LOW_STOCK_THRESHOLD)

    orders = (
        db.session.query(Order.id, Order.status, Order.created_at)
        .join(OrderItem, OrderItem.order_id == Order.id)
        .filter(OrderItem.store_id == store.id)
        .distinct()
        .all()
    )
    recent_cutoff = utcnow() - RECENT_ORDER_WINDOW
    total_orders = len(orders)
    pending_orders = sum(1 for o in orders if o.status == ORDER_STATUS_PENDING)
    recent_orders = sum(1 for o in orders if as_naive_utc(o.created_at) >= recent_cutoff)

    lines = (
        db.session.query(OrderItem.price_cents, OrderItem.quantity, Order.total_cents, Order.service_fee_cents)
        .join(Order, Order.id == OrderItem.order_id)
        .filter(OrderItem.store_id == store.id, Order.status.in_(REVENUE_STATUSES))
        .all()
    )

    gross_cents = 0
    fee_cents = 0
    for line in lines:
        line_total = line.price_cents * line.quantity
        gross_cents += line_total
        fee_cents += proportional_share(line_total, line.total_cents, line.service_fee_cents)

    return {
        "totalProducts": total_products,
        "activeProducts": active_products,
        "lowStockProducts": low_stock_products,
        "totalOrders": total_orders,
        "pendingOrders": pending_orders,
        "recentOrdersCount": recent_orders,
        "totalRevenue": format_cents(gross_cents - fee_cents),
        "totalGrossRevenue": format_cents(gross_cents),
        "totalServiceFeePaid": format_cents(fee_cents),
    }
