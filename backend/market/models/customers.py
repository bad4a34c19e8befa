from __future__ import annotations

from ..extensions import db
from market.time_utils import to_utc_z, utcnow


class Address(db.Model):
    """
    Delivery address of a buyer.

    Orders reference addresses with RESTRICT semantics: an address that
    any order points at cannot be deleted.
    """
    __tablename__ = "addresses"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    recipient_name = db.Column(db.String(100), nullable=False)
    phone = db.Column(db.String(32), nullable=True)
    street = db.Column(db.String(200), nullable=False)
    city = db.Column(db.String(100), nullable=False)
    province = db.Column(db.String(100), nullable=False)
    postal_code = db.Column(db.String(10), nullable=False)
    is_default = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, server_default=db.func.now())

    def to_summary(self) -> dict:
        return {
            "id": self.id,
            "recipientName": self.recipient_name,
            "phone": self.phone,
            "street": self.street,
            "city": self.city,
            "province": self.province,
            "postalCode": self.postal_code,
        }

    def to_dict(self) -> dict:
        return {
            **self.to_summary(),
            "isDefault": self.is_default,
            "createdAt": to_utc_z(self.created_at),
        }


class Cart(db.Model):
    """One cart per user, created on first access."""
    __tablename__ = "carts"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(
        db.Integer,
        db.ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
        index=True,
    )
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        server_default=db.func.now(),
        onupdate=utcnow,
    )


class CartItem(db.Model):
    """
    Product reference + quantity. No price snapshot: prices are read live
    from the product when the cart is shown and when an order is created.
    """
    __tablename__ = "cart_items"
    __table_args__ = (
        db.UniqueConstraint("cart_id", "product_id", name="uq_cart_items_cart_product"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    cart_id = db.Column(db.Integer, db.ForeignKey("carts.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)

    cart = db.relationship("Cart", backref=db.backref("items", lazy=True, cascade="all, delete-orphan"))
    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "cartId": self.cart_id,
            "productId": self.product_id,
            "quantity": self.quantity,
        }
