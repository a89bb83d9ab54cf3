from __future__ import annotations

from ..extensions import db
from kavara.time_utils import to_utc_z


OPERATION_SALE = "sale"
OPERATION_CORRECTION = "correction"


class InventoryHistory(db.Model):
    """
    Append-only audit row for every stock adjustment.

    Rows are never updated or deleted; they are the reconciliation trail for
    customer disputes and the 1C export.

    entity_kind/entity_id are not a foreign key: products and
    boxes live in different tables, and archiving or deleting a catalog item
    must never remove its history. entity_name is a snapshot taken at write
    time for the same reason.
    """
    __tablename__ = "inventory_history"
    __table_args__ = (
        db.Index("ix_invhist_entity", "entity_kind", "entity_id", "created_at"),
    )

    id = db.Column(db.Integer, primary_key=True)

    entity_kind = db.Column(db.String(16), nullable=False)  # product, box
    entity_id = db.Column(db.String(36), nullable=False)
    entity_name = db.Column(db.String(255), nullable=True)

    # Inventory key that was touched ("default" for sizeless items)
    size = db.Column(db.String(32), nullable=False)

    operation_type = db.Column(db.String(16), nullable=False, index=True)  # sale, correction

    quantity_delta = db.Column(db.Integer, nullable=False)
    balance_after = db.Column(db.Integer, nullable=False)

    order_id = db.Column(db.String(36), db.ForeignKey("orders.id"), nullable=True, index=True)
    note = db.Column(db.Text, nullable=True)

    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        index=True,
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "entity_kind": self.entity_kind,
            "entity_id": self.entity_id,
            "entity_name": self.entity_name,
            "size": self.size,
            "operation_type": self.operation_type,
            "quantity_delta": self.quantity_delta,
            "balance_after": self.balance_after,
            "order_id": self.order_id,
            "note": self.note,
            "created_at": to_utc_z(self.created_at),
        }
