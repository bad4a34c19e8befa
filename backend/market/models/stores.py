from __future__ import annotations

from ..extensions import db
from market.money import format_cents
from market.time_utils import to_utc_z, utcnow


PRODUCT_STATUS_ACTIVE = "active"
PRODUCT_STATUS_INACTIVE = "inactive"
VALID_PRODUCT_STATUSES = (PRODUCT_STATUS_ACTIVE, PRODUCT_STATUS_INACTIVE)

PRODUCT_TYPE_TICKET = "ticket"


class Store(db.Model):
    """
    A seller's shop. Each user owns at most one store; the slug is the
    public address (/stores/<slug>).
    """
    __tablename__ = "stores"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    owner_id = db.Column(
        db.Integer,
        db.ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
        index=True,
    )
    name = db.Column(db.String(100), nullable=False)
    slug = db.Column(db.String(50), nullable=False, unique=True, index=True)
    area_id = db.Column(db.String(64), nullable=True)
    description = db.Column(db.Text, nullable=True)
    logo = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        server_default=db.func.now(),
        onupdate=utcnow,
    )

    owner = db.relationship("User", backref=db.backref("store", uselist=False, lazy=True))

    def to_summary(self) -> dict:
        return {"id": self.id, "name": self.name, "slug": self.slug}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "ownerId": self.owner_id,
            "name": self.name,
            "slug": self.slug,
            "areaId": self.area_id,
            "description": self.description,
            "logo": self.logo,
            "createdAt": to_utc_z(self.created_at),
            "updatedAt": to_utc_z(self.updated_at),
        }


class Product(db.Model):
    """
    Sellable item of a store. `type == "ticket"` marks tourism tickets,
    which get one QR code per unit once the order is paid.

    Stock is only decremented when an order is created; carts never reserve it.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.CheckConstraint("stock >= 0", name="ck_products_stock_non_negative"),
        db.Index("ix_products_store_status", "store_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id", ondelete="CASCADE"), nullable=False, index=True)
    name = db.Column(db.String(200), nullable=False)
    slug = db.Column(db.String(100), nullable=False, unique=True, index=True)
    description = db.Column(db.Text, nullable=True)
    price_cents = db.Column(db.BigInteger, nullable=False)
    stock = db.Column(db.Integer, nullable=False, default=0)
    image = db.Column(db.Text, nullable=True)
    status = db.Column(db.String(16), nullable=False, default=PRODUCT_STATUS_ACTIVE, index=True)
    type = db.Column(db.String(32), nullable=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        server_default=db.func.now(),
        onupdate=utcnow,
    )

    store = db.relationship("Store", backref=db.backref("products", lazy=True, cascade="all, delete-orphan"))

    @property
    def is_ticket(self) -> bool:
        return self.type == PRODUCT_TYPE_TICKET

    @property
    def is_active(self) -> bool:
        return self.status == PRODUCT_STATUS_ACTIVE

    def to_summary(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "slug": self.slug,
            "image": self.image,
        }

    def to_dict(self, include_store: bool = False) -> dict:
        data = {
            "id": self.id,
            "storeId": self.store_id,
            "name": self.name,
            "slug": self.slug,
            "description": self.description,
            "price": format_cents(self.price_cents),
            "stock": self.stock,
            "image": self.image,
            "status": self.status,
            "type": self.type,
            "createdAt": to_utc_z(self.created_at),
            "updatedAt": to_utc_z(self.updated_at),
        }
        if include_store and self.store is not None:
            data["store"] = {**self.store.to_summary(), "logo": self.store.logo}
        return data
