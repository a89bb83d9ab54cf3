from __future__ import annotations

import uuid

from ..extensions import db
from kavara.time_utils import to_utc_z


ORDER_STATUS_PENDING = "pending"
ORDER_STATUS_PAID = "paid"
ORDER_STATUS_PROCESSING = "processing"
ORDER_STATUS_SHIPPED = "shipped"
ORDER_STATUS_DELIVERED = "delivered"
ORDER_STATUS_CANCELLED = "cancelled"

ORDER_STATUSES = (
    ORDER_STATUS_PENDING,
    ORDER_STATUS_PAID,
    ORDER_STATUS_PROCESSING,
    ORDER_STATUS_SHIPPED,
    ORDER_STATUS_DELIVERED,
    ORDER_STATUS_CANCELLED,
)

SETTLEMENT_SALE = "sale"
SETTLEMENT_REFUND = "refund"


class Order(db.Model):
    """
    Checkout document.

    An order references what was bought in up to three ways, in any
    combination: a single box (box_id), a single product (product_id), and
    a JSON-encoded cart (cart_items). Together they are exactly the set of
    line items to settle.

    Immutable after creation except for status (and payment_id, set once by
    the payment collaborator).
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.Index("ix_orders_status_created", "status", "created_at"),
    )

    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))

    # Human-readable number shown to customers and sent to 1C (e.g. "KB8259251234")
    order_number = db.Column(db.String(32), nullable=False, unique=True)

    user_id = db.Column(db.String(64), nullable=True, index=True)

    box_id = db.Column(db.String(36), nullable=True)
    product_id = db.Column(db.String(36), nullable=True)
    selected_size = db.Column(db.String(32), nullable=True)
    cart_items = db.Column(db.Text, nullable=True)

    customer_name = db.Column(db.String(255), nullable=False)
    customer_phone = db.Column(db.String(32), nullable=False)
    customer_email = db.Column(db.String(255), nullable=True)
    telegram_username = db.Column(db.String(64), nullable=True)

    delivery_method = db.Column(db.String(64), nullable=False)
    payment_method = db.Column(db.String(64), nullable=False)
    total_price = db.Column(db.Integer, nullable=False)

    status = db.Column(db.String(16), nullable=False, default=ORDER_STATUS_PENDING, index=True)
    payment_id = db.Column(db.String(128), nullable=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )
    version_id = db.Column(db.Integer, nullable=False, default=1)

    settlements = db.relationship("OrderSettlement", backref="order", lazy=True)
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Order {self.order_number} status={self.status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_number": self.order_number,
            "user_id": self.user_id,
            "box_id": self.box_id,
            "product_id": self.product_id,
            "selected_size": self.selected_size,
            "cart_items": self.cart_items,
            "customer_name": self.customer_name,
            "customer_phone": self.customer_phone,
            "customer_email": self.customer_email,
            "telegram_username": self.telegram_username,
            "delivery_method": self.delivery_method,
            "payment_method": self.payment_method,
            "total_price": self.total_price,
            "status": self.status,
            "payment_id": self.payment_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }


class OrderSettlement(db.Model):
    """
    Marker that a settlement direction has been applied to an order.

    One row per (order, direction). The unique constraint is what makes a
    second refund for the same order a no-op even if two cancellation
    handlers race.
    """
    __tablename__ = "order_settlements"
    __table_args__ = (
        db.UniqueConstraint("order_id", "direction", name="uq_order_settlements_order_direction"),
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.String(36), db.ForeignKey("orders.id"), nullable=False, index=True)
    direction = db.Column(db.String(16), nullable=False)  # sale, refund
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "direction": self.direction,
            "created_at": to_utc_z(self.created_at),
        }
