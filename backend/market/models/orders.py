from __future__ import annotations

from ..extensions import db
from market.money import format_cents
from market.time_utils import to_utc_z, utcnow


ORDER_STATUS_PENDING = "pending"
ORDER_STATUS_PAID = "paid"
ORDER_STATUS_SHIPPED = "shipped"
ORDER_STATUS_COMPLETED = "completed"
ORDER_STATUS_CANCELLED = "cancelled"

VALID_ORDER_STATUSES = (
    ORDER_STATUS_PENDING,
    ORDER_STATUS_PAID,
    ORDER_STATUS_SHIPPED,
    ORDER_STATUS_COMPLETED,
    ORDER_STATUS_CANCELLED,
)


class Order(db.Model):
    """
    Checkout header.

    Money columns are snapshots taken at creation time:
    - total_cents: sum of item price x quantity
    - service_fee_cents: platform cut charged to sellers (informational, not subtracted)
    - buyer_service_fee_cents: flat surcharge added on top of total for the buyer
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.Index("ix_orders_buyer_created", "buyer_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    buyer_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    address_id = db.Column(db.Integer, db.ForeignKey("addresses.id", ondelete="RESTRICT"), nullable=False, index=True)
    status = db.Column(db.String(16), nullable=False, default=ORDER_STATUS_PENDING, index=True)

    total_cents = db.Column(db.BigInteger, nullable=False)
    service_fee_cents = db.Column(db.BigInteger, nullable=False, default=0)
    buyer_service_fee_cents = db.Column(db.BigInteger, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, server_default=db.func.now(), index=True)
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        server_default=db.func.now(),
        onupdate=utcnow,
    )

    buyer = db.relationship("User", backref=db.backref("orders", lazy=True))
    address = db.relationship("Address")

    @property
    def gross_amount_cents(self) -> int:
        return self.total_cents + self.buyer_service_fee_cents

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "buyerId": self.buyer_id,
            "addressId": self.address_id,
            "status": self.status,
            "total": format_cents(self.total_cents),
            "serviceFee": format_cents(self.service_fee_cents),
            "buyerServiceFee": format_cents(self.buyer_service_fee_cents),
            "createdAt": to_utc_z(self.created_at),
            "updatedAt": to_utc_z(self.updated_at),
        }


class OrderItem(db.Model):
    """
    Immutable line of an order: price snapshot plus the seller's store_id,
    denormalized for per-seller filtering.
    """
    __tablename__ = "order_items"
    __table_args__ = (
        db.Index("ix_order_items_store_order", "store_id", "order_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id", ondelete="CASCADE"), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)
    price_cents = db.Column(db.BigInteger, nullable=False)

    order = db.relationship("Order", backref=db.backref("items", lazy=True, cascade="all, delete-orphan"))
    product = db.relationship("Product")
    store = db.relationship("Store")

    @property
    def line_total_cents(self) -> int:
        return self.price_cents * self.quantity

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "orderId": self.order_id,
            "productId": self.product_id,
            "storeId": self.store_id,
            "quantity": self.quantity,
            "price": format_cents(self.price_cents),
        }

    def to_view(self) -> dict:
        return {
            "id": self.id,
            "quantity": self.quantity,
            "price": format_cents(self.price_cents),
            "product": self.product.to_summary() if self.product else None,
            "store": self.store.to_summary() if self.store else None,
        }


class TicketQr(db.Model):
    """
    One redemption unit per purchased ticket: an order item with quantity 3
    yields three rows. Redemption (is_used/used_at) is tracked but not
    performed by this service.
    """
    __tablename__ = "ticket_qrs"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    order_item_id = db.Column(
        db.Integer,
        db.ForeignKey("order_items.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    qr_code = db.Column(db.Text, nullable=False)
    qr_data = db.Column(db.Text, nullable=False)
    is_used = db.Column(db.Boolean, nullable=False, default=False)
    used_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, server_default=db.func.now())

    order_item = db.relationship("OrderItem", backref=db.backref("ticket_qrs", lazy=True, cascade="all, delete-orphan"))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "orderId": self.order_id,
            "orderItemId": self.order_item_id,
            "qrCode": self.qr_code,
            "qrData": self.qr_data,
            "isUsed": self.is_used,
            "usedAt": to_utc_z(self.used_at),
            "createdAt": to_utc_z(self.created_at),
        }
