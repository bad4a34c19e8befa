# Overview: Service-layer operations for tourism managers (ticket products and ticket orders).

"""
Tourism Service

A tourism manager is a store owner whose products are tickets
(Product.type == "ticket"). Every read and write here is limited to the
manager's own store and to ticket items; the manager's store is created
automatically with the first ticket.
"""

from __future__ import annotations

from sqlalchemy import func

from ..extensions import db
from ..models import CartItem, Order, OrderItem, Product, Store, User
from ..models.orders import ORDER_STATUS_CANCELLED, ORDER_STATUS_COMPLETED, ORDER_STATUS_PAID, ORDER_STATUS_PENDING
from ..models.stores import PRODUCT_STATUS_ACTIVE, PRODUCT_TYPE_TICKET
from market.errors import NotFoundError, ValidationError
from market.money import format_cents
from market.time_utils import start_of_month, to_utc_z
from market.validation import generate_slug, validate_payload
from . import order_service, qr_service
from .products_service import PRODUCT_POLICY
from .store_service import REVENUE_STATUSES


MANAGER_ORDER_STATUSES = (
    ORDER_STATUS_PENDING,
    ORDER_STATUS_PAID,
    ORDER_STATUS_COMPLETED,
    ORDER_STATUS_CANCELLED,
)

TOURISM_STORE_DESCRIPTION = "Tempat wisata yang dikelola"
POPULAR_TICKET_LIMIT = 5
RECENT_ORDER_LIMIT = 5


def _unique_slug(model, base: str, max_length: int) -> str:
    base = (base or "item")[:max_length].strip("-") or "item"
    slug = base
    n = 2
    while db.session.query(model.id).filter(model.slug == slug).first():
        suffix = f"-{n}"
        slug = f"{base[:max_length - len(suffix)]}{suffix}"
        n += 1
    return slug


def get_manager_store(user_id: int) -> Store | None:
    return db.session.query(Store).filter_by(owner_id=user_id).first()


def _require_manager_store(user_id: int) -> Store:
    store = get_manager_store(user_id)
    if not store:
        raise NotFoundError("Store not found")
    return store


def get_or_create_manager_store(user: User) -> Store:
    store = get_manager_store(user.id)
    if store:
        return store

    name = f"{user.name} Tourism"[:100]
    store = Store(
        owner_id=user.id,
        name=name,
        slug=_unique_slug(Store, generate_slug(name), 50),
        description=TOURISM_STORE_DESCRIPTION,
    )
    db.session.add(store)
    db.session.flush()
    return store


# ---------------------------------------------------------------------------
# Tickets
# ---------------------------------------------------------------------------

def _tickets_query(store_id: int):
    return db.session.query(Product).filter(Product.store_id == store_id, Product.type == PRODUCT_TYPE_TICKET)


def list_tickets(user_id: int) -> list[Product]:
    store = get_manager_store(user_id)
    if not store:
        return []
    return _tickets_query(store.id).order_by(Product.created_at.desc(), Product.id.desc()).all()


def get_ticket(user_id: int, ticket_id: int) -> Product:
    store = _require_manager_store(user_id)
    ticket = _tickets_query(store.id).filter(Product.id == ticket_id).first()
    if not ticket:
        raise NotFoundError("Ticket not found")
    return ticket


def create_ticket(user: User, payload: dict) -> Product:
    """
    Create an active ticket product; the slug is derived from the name.
    """
    payload = dict(payload or {})
    if not payload.get("name") or payload.get("price") in (None, "") or payload.get("stock") is None:
        raise ValidationError("Name, price, and stock are required")
    payload.pop("slug", None)
    payload.pop("status", None)

    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=True)

    store = get_or_create_manager_store(user)
    ticket = Product(
        store_id=store.id,
        slug=_unique_slug(Product, generate_slug(patch["name"]), 100),
        status=PRODUCT_STATUS_ACTIVE,
        type=PRODUCT_TYPE_TICKET,
    )
    for key, value in patch.items():
        setattr(ticket, key, value)

    db.session.add(ticket)
    db.session.commit()
    return ticket


def update_ticket(user_id: int, ticket_id: int, payload: dict) -> Product:
    ticket = get_ticket(user_id, ticket_id)

    payload = dict(payload or {})
    payload.pop("slug", None)
    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=True)

    for key, value in patch.items():
        setattr(ticket, key, value)

    db.session.commit()
    return ticket


def delete_ticket(user_id: int, ticket_id: int) -> None:
    ticket = get_ticket(user_id, ticket_id)

    sold = db.session.query(OrderItem.id).filter(OrderItem.product_id == ticket.id).first()
    if sold:
        raise ValidationError("Ticket has been ordered and cannot be deleted; set it inactive instead")

    db.session.query(CartItem).filter(CartItem.product_id == ticket.id).delete(synchronize_session=False)
    db.session.delete(ticket)
    db.session.commit()


# ---------------------------------------------------------------------------
# Orders
# ---------------------------------------------------------------------------

def _ticket_items(order_id: int, store_id: int) -> list[OrderItem]:
    return (
        db.session.query(OrderItem)
        .join(Product, Product.id == OrderItem.product_id)
        .filter(
            OrderItem.order_id == order_id,
            OrderItem.store_id == store_id,
            Product.type == PRODUCT_TYPE_TICKET,
        )
        .order_by(OrderItem.id.asc())
        .all()
    )


def _ticket_order_ids(store_id: int):
    return (
        db.select(OrderItem.order_id)
        .join(Product, Product.id == OrderItem.product_id)
        .where(OrderItem.store_id == store_id, Product.type == PRODUCT_TYPE_TICKET)
    )


def _ticket_item_view(item: OrderItem) -> dict:
    return {
        "id": item.id,
        "productId": item.product_id,
        "quantity": item.quantity,
        "price": format_cents(item.price_cents),
        "product": {"id": item.product.id, "name": item.product.name, "image": item.product.image},
    }


def _manager_order_view(order: Order, store_id: int) -> dict:
    buyer = order.buyer
    return {
        "id": order.id,
        "buyerId": order.buyer_id,
        "status": order.status,
        "total": format_cents(order.total_cents),
        "createdAt": to_utc_z(order.created_at),
        "buyer": {"id": buyer.id, "name": buyer.name, "email": buyer.email},
        "items": [_ticket_item_view(item) for item in _ticket_items(order.id, store_id)],
    }


def list_orders(user_id: int) -> list[dict]:
    """Orders with at least one of the manager's tickets, newest first."""
    store = get_manager_store(user_id)
    if not store:
        return []

    orders = (
        db.session.query(Order)
        .filter(Order.id.in_(_ticket_order_ids(store.id)))
        .order_by(Order.created_at.desc(), Order.id.desc())
        .all()
    )
    return [_manager_order_view(o, store.id) for o in orders]


def _get_ticket_order(store_id: int, order_id: int) -> Order:
    order = db.session.query(Order).filter_by(id=order_id).first()
    if not order or not _ticket_items(order.id, store_id):
        raise NotFoundError("Order not found")
    return order


def get_order(user_id: int, order_id: int) -> dict:
    """Order detail with the manager's ticket items and their QR codes only."""
    store = _require_manager_store(user_id)
    order = _get_ticket_order(store.id, order_id)

    qr_codes = []
    for qr in qr_service.list_order_qrs(order.id, store_id=store.id):
        item = qr.order_item
        qr_codes.append({
            "id": qr.id,
            "orderItemId": qr.order_item_id,
            "qrCode": qr.qr_code,
            "qrData": qr.qr_data,
            "isUsed": qr.is_used,
            "usedAt": to_utc_z(qr.used_at),
            "productName": item.product.name,
            "quantity": item.quantity,
        })

    return {**_manager_order_view(order, store.id), "qrCodes": qr_codes}


def update_order_status(user_id: int, order_id: int, status) -> order_service.StatusChange:
    """
    Manager-side status change. Only orders holding the manager's tickets
    are visible (404 otherwise); QR issuance on "paid" covers the
    manager's own ticket items.
    """
    status = order_service.validate_status(status, MANAGER_ORDER_STATUSES)
    store = _require_manager_store(user_id)

    def _authorize(order: Order) -> None:
        if not _ticket_items(order.id, store.id):
            raise NotFoundError("Order not found")

    return order_service.transition_order(order_id, status, authorize=_authorize, qr_store_id=store.id)


# ---------------------------------------------------------------------------
# Stats
# ---------------------------------------------------------------------------

def get_stats(user_id: int) -> dict:
    store = get_manager_store(user_id)
    if not store:
        return {
            "totalTickets": 0,
            "soldTickets": 0,
            "totalRevenue": format_cents(0),
            "monthlyOrders": 0,
            "popularTickets": [],
            "recentOrders": [],
        }

    total_tickets = _tickets_query(store.id).count()

    sold_lines = (
        db.session.query(
            func.coalesce(func.sum(OrderItem.quantity), 0),
            func.coalesce(func.sum(OrderItem.quantity * OrderItem.price_cents), 0),
        )
        .join(Product, Product.id == OrderItem.product_id)
        .join(Order, Order.id == OrderItem.order_id)
        .filter(
            OrderItem.store_id == store.id,
            Product.type == PRODUCT_TYPE_TICKET,
            Order.status.in_(REVENUE_STATUSES),
        )
        .one()
    )
    sold_tickets, revenue_cents = int(sold_lines[0]), int(sold_lines[1])

    ticket_orders = db.session.query(Order).filter(Order.id.in_(_ticket_order_ids(store.id)))
    monthly_orders = ticket_orders.filter(Order.created_at >= start_of_month()).count()

    sold_per_ticket = (
        db.session.query(OrderItem.product_id, func.sum(OrderItem.quantity).label("sold"))
        .join(Order, Order.id == OrderItem.order_id)
        .filter(OrderItem.store_id == store.id, Order.status.in_(REVENUE_STATUSES))
        .group_by(OrderItem.product_id)
        .subquery()
    )
    popular = (
        db.session.query(Product, func.coalesce(sold_per_ticket.c.sold, 0))
        .outerjoin(sold_per_ticket, sold_per_ticket.c.product_id == Product.id)
        .filter(Product.store_id == store.id, Product.type == PRODUCT_TYPE_TICKET)
        .order_by(func.coalesce(sold_per_ticket.c.sold, 0).desc(), Product.id.asc())
        .limit(POPULAR_TICKET_LIMIT)
        .all()
    )

    recent = ticket_orders.order_by(Order.created_at.desc(), Order.id.desc()).limit(RECENT_ORDER_LIMIT).all()

    return {
        "totalTickets": total_tickets,
        "soldTickets": sold_tickets,
        "totalRevenue": format_cents(revenue_cents),
        "monthlyOrders": monthly_orders,
        "popularTickets": [
            {
                "id": product.id,
                "name": product.name,
                "price": format_cents(product.price_cents),
                "soldCount": int(sold),
            }
            for product, sold in popular
        ],
        "recentOrders": [
            {
                "id": o.id,
                "total": format_cents(o.total_cents),
                "status": o.status,
                "createdAt": to_utc_z(o.created_at),
            }
            for o in recent
        ],
    }
