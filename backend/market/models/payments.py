from __future__ import annotations

from ..extensions import db
from market.money import format_cents
from market.time_utils import to_utc_z, utcnow


class Payment(db.Model):
    """
    Hosted-checkout attempt for an order.

    An order may accumulate several rows: a pending payment younger than
    24 hours is reused, anything older or failed gets a fresh row.
    Status mirrors the gateway: pending, settlement, deny, cancel, expire.
    """
    __tablename__ = "payments"
    __table_args__ = (
        db.Index("ix_payments_order_created", "order_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)

    # Snap token returned by the gateway
    transaction_id = db.Column(db.String(191), nullable=False, index=True)
    # order_id as sent to the gateway ("{order_id}_{epoch_millis}")
    gateway_order_id = db.Column(db.String(191), nullable=True, unique=True)
    redirect_url = db.Column(db.Text, nullable=True)

    status = db.Column(db.String(32), nullable=False, default="pending", index=True)
    gross_amount_cents = db.Column(db.BigInteger, nullable=False)
    payment_type = db.Column(db.String(191), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        server_default=db.func.now(),
        onupdate=utcnow,
    )

    order = db.relationship("Order", backref=db.backref("payments", lazy=True, cascade="all, delete-orphan"))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "orderId": self.order_id,
            "transactionId": self.transaction_id,
            "gatewayOrderId": self.gateway_order_id,
            "status": self.status,
            "grossAmount": format_cents(self.gross_amount_cents),
            "paymentType": self.payment_type,
            "createdAt": to_utc_z(self.created_at),
            "updatedAt": to_utc_z(self.updated_at),
        }
