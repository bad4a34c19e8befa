# Overview: Service-layer operations for the shopping cart.

"""
Cart Service

One cart per user, created lazily. Cart lines carry no price: totals are
recomputed from live product prices on every read, and stock is only
checked (never reserved) when lines are added or changed.
"""

from __future__ import annotations

from ..extensions import db
from ..models import Cart, CartItem, Product
from market.errors import NotFoundError, ValidationError
from market.money import format_cents
from market.validation import parse_id, parse_quantity
from .concurrency import lock_for_update, run_with_retry


MAX_CART_QUANTITY = 99


def get_cart(user_id: int) -> Cart | None:
    return db.session.query(Cart).filter_by(user_id=user_id).first()


def get_or_create_cart(user_id: int) -> Cart:
    cart = get_cart(user_id)
    if cart:
        return cart

    cart = Cart(user_id=user_id)
    db.session.add(cart)
    db.session.commit()
    return cart


def get_cart_summary(user_id: int) -> dict:
    """
    Cart with live product and store data.

    total = sum(current price x quantity), itemCount = sum(quantity).
    """
    cart = get_or_create_cart(user_id)

    items = (
        db.session.query(CartItem)
        .filter(CartItem.cart_id == cart.id)
        .order_by(CartItem.id.asc())
        .all()
    )

    lines = []
    total_cents = 0
    item_count = 0
    for item in items:
        product = item.product
        if product is not None:
            total_cents += product.price_cents * item.quantity
        item_count += item.quantity
        lines.append({
            "id": item.id,
            "quantity": item.quantity,
            "product": {
                "id": product.id,
                "name": product.name,
                "slug": product.slug,
                "price": format_cents(product.price_cents),
                "stock": product.stock,
                "image": product.image,
                "status": product.status,
            } if product else None,
            "store": product.store.to_summary() if product else None,
        })

    return {
        "id": cart.id,
        "items": lines,
        "total": format_cents(total_cents),
        "itemCount": item_count,
    }


def _load_sellable_product(product_id, quantity: int) -> Product:
    product = lock_for_update(db.session.query(Product).filter_by(id=product_id)).first()
    if not product:
        raise NotFoundError("Product not found")
    if not product.is_active:
        raise ValidationError("Product is not available")
    if product.stock < quantity:
        raise ValidationError("Insufficient stock")
    return product


def add_item(user_id: int, product_id, quantity) -> tuple[CartItem, bool]:
    """
    Add a product to the caller's cart, merging with an existing line.

    Returns (item, created). The merged quantity is re-checked against
    stock and the per-line cap.
    """
    product_id = parse_id(product_id, field_name="productId")
    quantity = parse_quantity(quantity, maximum=MAX_CART_QUANTITY)

    def _op():
        product = _load_sellable_product(product_id, quantity)
        cart = get_or_create_cart(user_id)

        existing = lock_for_update(
            db.session.query(CartItem).filter_by(cart_id=cart.id, product_id=product.id)
        ).first()

        if existing:
            merged = existing.quantity + quantity
            if product.stock < merged:
                raise ValidationError("Insufficient stock for requested quantity")
            if merged > MAX_CART_QUANTITY:
                raise ValidationError(f"quantity too large (max {MAX_CART_QUANTITY})")
            existing.quantity = merged
            db.session.commit()
            return existing, False

        item = CartItem(cart_id=cart.id, product_id=product.id, quantity=quantity)
        db.session.add(item)
        db.session.commit()
        return item, True

    return run_with_retry(_op)


def _get_own_item(user_id: int, item_id: int) -> CartItem:
    cart = get_cart(user_id)
    if not cart:
        raise NotFoundError("Cart not found")

    item = db.session.query(CartItem).filter_by(id=item_id, cart_id=cart.id).first()
    if not item:
        raise NotFoundError("Cart item not found")
    return item


def update_item(user_id: int, item_id: int, quantity) -> CartItem:
    quantity = parse_quantity(quantity, maximum=MAX_CART_QUANTITY)

    item = _get_own_item(user_id, item_id)
    _load_sellable_product(item.product_id, quantity)

    item.quantity = quantity
    db.session.commit()
    return item


def remove_item(user_id: int, item_id: int) -> None:
    item = _get_own_item(user_id, item_id)
    db.session.delete(item)
    db.session.commit()


def clear_cart(user_id: int) -> None:
    """Empty the cart. 404 when the user never had one."""
    cart = get_cart(user_id)
    if not cart:
        raise NotFoundError("Cart not found")

    db.session.query(CartItem).filter(CartItem.cart_id == cart.id).delete(synchronize_session=False)
    db.session.commit()
