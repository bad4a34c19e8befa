# backend/market/services/products_service.py
"""
Products Service

Public catalogue reads only ever see active products; writes are limited
to the owner of the product's store.
"""
from __future__ import annotations

from dataclasses import dataclass

from ..extensions import db
from ..models import CartItem, OrderItem, Product, Store
from ..models.stores import PRODUCT_STATUS_ACTIVE, VALID_PRODUCT_STATUSES
from market.errors import ForbiddenError, NotFoundError, ValidationError
from market.money import parse_price
from market.validation import LIKE_ESCAPE, ModelValidationPolicy, like_pattern, validate_payload, validate_slug


MAX_STOCK = 1_000_000

PRODUCT_SORT_COLUMNS = {
    "name": Product.name,
    "price": Product.price_cents,
    "createdAt": Product.created_at,
}


def _parse_stock(value) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError("stock must be an integer")
    if value < 0:
        raise ValidationError("Stock cannot be negative")
    if value > MAX_STOCK:
        raise ValidationError(f"stock too large (max {MAX_STOCK})")
    return value


def _parse_status(value) -> str:
    if value not in VALID_PRODUCT_STATUSES:
        raise ValidationError(f"status must be one of: {', '.join(VALID_PRODUCT_STATUSES)}")
    return value


PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields={
        "name": "name",
        "slug": "slug",
        "description": "description",
        "price": "price_cents",
        "stock": "stock",
        "image": "image",
        "status": "status",
    },
    required_on_create={"name", "slug", "price", "stock"},
    converters={
        "price": parse_price,
        "stock": _parse_stock,
        "status": _parse_status,
    },
)


@dataclass
class ProductQuery:
    q: str | None = None
    min_price_cents: int | None = None
    max_price_cents: int | None = None
    sort_by: str = "createdAt"
    sort_order: str = "desc"
    page: int = 1
    limit: int = 20


def search_products(params: ProductQuery) -> tuple[list[Product], int]:
    """Active products only, with optional name/price filters."""
    query = db.session.query(Product).filter(Product.status == PRODUCT_STATUS_ACTIVE)

    if params.q:
        query = query.filter(Product.name.ilike(like_pattern(params.q), escape=LIKE_ESCAPE))
    if params.min_price_cents is not None:
        query = query.filter(Product.price_cents >= params.min_price_cents)
    if params.max_price_cents is not None:
        query = query.filter(Product.price_cents <= params.max_price_cents)

    total = query.count()

    column = PRODUCT_SORT_COLUMNS.get(params.sort_by, Product.created_at)
    ordering = column.asc() if params.sort_order == "asc" else column.desc()

    products = (
        query.order_by(ordering, Product.id.desc())
        .offset((params.page - 1) * params.limit)
        .limit(params.limit)
        .all()
    )
    return products, total


def get_product(product_id: int) -> Product:
    product = db.session.query(Product).filter_by(id=product_id).first()
    if not product:
        raise NotFoundError("Product not found")
    return product


def get_active_product_by_slug(slug: str) -> Product:
    product = db.session.query(Product).filter_by(slug=slug, status=PRODUCT_STATUS_ACTIVE).first()
    if not product:
        raise NotFoundError("Product not found")
    return product


def list_user_products(user_id: int) -> list[Product]:
    """All products (any status) of the caller's store; empty without a store."""
    return (
        db.session.query(Product)
        .join(Store, Store.id == Product.store_id)
        .filter(Store.owner_id == user_id)
        .order_by(Product.created_at.desc(), Product.id.desc())
        .all()
    )


def _ensure_slug_available(slug: str, *, product_id: int | None = None) -> None:
    existing = db.session.query(Product.id).filter(Product.slug == slug).first()
    if existing and existing.id != product_id:
        raise ValidationError("Product slug already exists")


def _owned_product(user_id: int, product_id: int, action: str) -> Product:
    product = get_product(product_id)
    if product.store.owner_id != user_id:
        raise ForbiddenError(f"Unauthorized to {action} this product")
    return product


def create_product(user_id: int, payload: dict, *, product_type: str | None = None) -> Product:
    """
    Create a product in a store owned by the caller.

    storeId defaults to the caller's own store.
    """
    payload = payload or {}
    store_id = payload.get("storeId")

    if store_id is None:
        store = db.session.query(Store).filter_by(owner_id=user_id).first()
    else:
        store = db.session.query(Store).filter_by(id=store_id).first()
    if not store:
        raise NotFoundError("Store not found")
    if store.owner_id != user_id:
        raise ForbiddenError("Unauthorized to create products in this store")

    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=False)
    validate_slug(patch["slug"], 100)
    _ensure_slug_available(patch["slug"])

    product = Product(store_id=store.id, status=PRODUCT_STATUS_ACTIVE, type=product_type)
    for key, value in patch.items():
        setattr(product, key, value)

    db.session.add(product)
    db.session.commit()
    return product


def update_product(user_id: int, product_id: int, payload: dict) -> Product:
    product = _owned_product(user_id, product_id, "update")

    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=True)
    if "slug" in patch:
        validate_slug(patch["slug"], 100)
        _ensure_slug_available(patch["slug"], product_id=product.id)

    for key, value in patch.items():
        setattr(product, key, value)

    db.session.commit()
    return product


def delete_product(user_id: int, product_id: int) -> None:
    """
    Delete a product and drop it from carts. Products that appear in an
    order cannot be deleted; set them inactive instead.
    """
    product = _owned_product(user_id, product_id, "delete")

    ordered = db.session.query(OrderItem.id).filter(OrderItem.product_id == product.id).first()
    if ordered:
        raise ValidationError("Product has been ordered and cannot be deleted; set it inactive instead")

    db.session.query(CartItem).filter(CartItem.product_id == product.id).delete(synchronize_session=False)
    db.session.delete(product)
    db.session.commit()
