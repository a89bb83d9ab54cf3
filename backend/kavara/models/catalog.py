from __future__ import annotations

import uuid

from ..extensions import db
from kavara.time_utils import to_utc_z


def _new_id() -> str:
    return str(uuid.uuid4())


class SellableMixin:
    """
    Columns shared by the two catalog types that carry stock.

    INVENTORY:
    - inventory is a JSON object mapping size label -> quantity on hand.
    - Sizeless items use the key "default".
    - inventory IS NULL means stock is not tracked at all; the settlement
      engine refuses to sell such an entity.
    - Only settlement_service (locked) and catalog_service (manual overwrite)
      write this column.
    """
    id = db.Column(db.String(36), primary_key=True, default=_new_id)

    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)

    # Whole rubles, as shown in the storefront
    price = db.Column(db.Integer, nullable=False, default=0)

    # Identifier in the 1C/ERP system, used by the stock sync endpoint
    external_id = db.Column(db.String(128), nullable=True, unique=True)

    # Soft delete: history rows keep pointing at archived entities
    is_available = db.Column(db.Boolean, nullable=False, default=True)

    inventory = db.Column(db.JSON, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "kind": self.KIND,
            "name": self.name,
            "description": self.description,
            "price": self.price,
            "external_id": self.external_id,
            "is_available": self.is_available,
            "inventory": dict(self.inventory) if self.inventory is not None else None,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Product(SellableMixin, db.Model):
    """Standalone catalog item (tee, leggings, ...)."""
    __tablename__ = "products"

    KIND = "product"

    category = db.Column(db.String(64), nullable=True)
    brand = db.Column(db.String(128), nullable=True)

    def __repr__(self) -> str:
        return f"<Product id={self.id} name={self.name!r}>"


class Box(SellableMixin, db.Model):
    """Curated bundle sold as a single unit with its own stock."""
    __tablename__ = "boxes"

    KIND = "box"

    category = db.Column(db.String(64), nullable=True)
    is_quiz_only = db.Column(db.Boolean, nullable=False, default=False)

    def __repr__(self) -> str:
        return f"<Box id={self.id} name={self.name!r}>"


SELLABLE_MODELS = {
    Product.KIND: Product,
    Box.KIND: Box,
}
