# Overview: Request payload checks for checkout and stock maps.

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import Integer, String, Text


# Upper bound on a single checkout total (rubles); guards against typos and overflow
MAX_ORDER_TOTAL = 10_000_000

# Upper bound on units of one cart line
MAX_LINE_QUANTITY = 1_000


class ValidationError(ValueError):
    """Client sent something we cannot accept (HTTP 400)."""


@dataclass(frozen=True)
class FieldPolicy:
    """
    Which model columns a client may send.

    allowed: anything else in the body is rejected
    required: must be present (may still be null where the column allows it)
    """
    allowed: frozenset[str]
    required: frozenset[str] = field(default_factory=frozenset)


def _to_int(key: str, value: Any) -> int:
    # JSON numbers arrive as int or float; form-ish clients send strings
    if isinstance(value, bool):
        raise ValidationError(f"{key} must be an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        raise ValidationError(f"{key} must be a whole number")
    if isinstance(value, str) and value.strip().lstrip("-").isdigit():
        return int(value.strip())
    raise ValidationError(f"{key} must be an integer")


def clean_payload(*, model, payload: dict, policy: FieldPolicy) -> dict:
    """
    Check a JSON body against the policy and the model's column metadata.

    Integer columns accept only whole numbers, string columns are stripped and
    length-checked, and NOT NULL string columns may not be blank. Returns a new
    dict holding only the submitted fields.
    """
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    missing = sorted(policy.required - set(payload))
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    columns = {c.key: c for c in model.__mapper__.columns}
    cleaned: dict = {}

    for key, value in payload.items():
        if key not in policy.allowed or key not in columns:
            raise ValidationError(f"Field not allowed: {key}")
        column = columns[key]

        if value is None:
            if not column.nullable:
                raise ValidationError(f"{key} cannot be null")
            cleaned[key] = None
            continue

        if isinstance(column.type, Integer):
            cleaned[key] = _to_int(key, value)
            continue

        if isinstance(column.type, (String, Text)):
            value = str(value).strip()
            if not value and not column.nullable:
                raise ValidationError(f"{key} cannot be blank")
            length = getattr(column.type, "length", None)
            if length and len(value) > length:
                raise ValidationError(f"{key} is longer than {length} characters")

        cleaned[key] = value

    return cleaned


def normalize_cart_items(raw: Any) -> str | None:
    """
    Validate checkout cart lines and serialize them for Order.cart_items.

    Accepts a list of {type, id, size?, quantity?} (or its JSON text). Stricter
    than the extractor: new orders are rejected up front, while
    already-stored orders are read leniently.
    """
    if raw is None or raw == "" or raw == []:
        return None
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except ValueError:
            raise ValidationError("cart_items must be valid JSON")
    if not isinstance(raw, list):
        raise ValidationError("cart_items must be a list")

    cleaned = []
    for idx, entry in enumerate(raw):
        if not isinstance(entry, dict):
            raise ValidationError(f"cart_items[{idx}] must be an object")
        kind = entry.get("type")
        if kind not in ("product", "box"):
            raise ValidationError(f"cart_items[{idx}].type must be 'product' or 'box'")
        entity_id = entry.get("id")
        if not entity_id or not isinstance(entity_id, (str, int)) or isinstance(entity_id, bool):
            raise ValidationError(f"cart_items[{idx}].id is required")
        quantity = entry.get("quantity", 1)
        if isinstance(quantity, bool) or not isinstance(quantity, int):
            raise ValidationError(f"cart_items[{idx}].quantity must be an integer")
        if quantity < 1 or quantity > MAX_LINE_QUANTITY:
            raise ValidationError(f"cart_items[{idx}].quantity must be between 1 and {MAX_LINE_QUANTITY}")
        line = {"type": kind, "id": str(entity_id), "quantity": quantity}
        size = entry.get("size") or entry.get("selectedSize")
        if size:
            line["size"] = str(size).strip()
        # Display fields the admin UI and 1C export read back
        for extra in ("name", "price"):
            if extra in entry:
                line[extra] = entry[extra]
        cleaned.append(line)

    return json.dumps(cleaned, ensure_ascii=False)


def enforce_rules_order_create(patch: dict) -> None:
    """Checkout rules beyond column metadata: something to buy, sane total."""
    if not (patch.get("box_id") or patch.get("product_id") or patch.get("cart_items")):
        raise ValidationError("order must reference box_id, product_id or cart_items")

    total = patch.get("total_price")
    if total is not None:
        if total < 0:
            raise ValidationError("total_price must be >= 0")
        if total > MAX_ORDER_TOTAL:
            raise ValidationError(f"total_price cannot exceed {MAX_ORDER_TOTAL}")


def enforce_rules_inventory_map(inventory: Any) -> dict[str, int]:
    """Manual stock maps: {size: non-negative int}."""
    if not isinstance(inventory, dict):
        raise ValidationError("inventory must be an object of size -> quantity")
    cleaned: dict[str, int] = {}
    for size, qty in inventory.items():
        label = str(size).strip()
        if not label:
            raise ValidationError("inventory size labels cannot be blank")
        if isinstance(qty, bool) or not isinstance(qty, int):
            raise ValidationError(f"inventory[{label}] must be an integer")
        if qty < 0:
            raise ValidationError(f"inventory[{label}] must be >= 0")
        cleaned[label] = qty
    return cleaned
