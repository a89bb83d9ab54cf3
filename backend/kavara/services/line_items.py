# Overview: Normalizes an order (or checkout payload) into settlement line items.

from __future__ import annotations

import json
import logging
import warnings
from dataclasses import dataclass
from typing import Any, Iterable, Mapping

from .errors import MalformedLineItemsWarning

logger = logging.getLogger(__name__)

KIND_PRODUCT = "product"
KIND_BOX = "box"
VALID_KINDS = {KIND_PRODUCT, KIND_BOX}

# Stock key for sizeless items; None and "default" are the same line
DEFAULT_SIZE = "default"


@dataclass(frozen=True)
class LineItem:
    kind: str
    entity_id: str
    size: str | None
    quantity: int

    @property
    def key(self) -> str:
        return f"{self.kind}|{self.entity_id}|{self.size or DEFAULT_SIZE}"


def _field(order_like: Any, *names: str) -> Any:
    """Read the first non-empty field from a mapping or an ORM row."""
    for name in names:
        if isinstance(order_like, Mapping):
            value = order_like.get(name)
        else:
            value = getattr(order_like, name, None)
        if value not in (None, ""):
            return value
    return None


def _malformed(message: str, order_ref: Any) -> None:
    logger.warning("Ignoring malformed cart data on order %s: %s", order_ref, message)
    warnings.warn(MalformedLineItemsWarning(message), stacklevel=3)


def _parse_quantity(raw: Any) -> int | None:
    # Falsy quantities (missing, 0, "") default to one unit
    if not raw:
        return 1
    if isinstance(raw, bool):
        return None
    try:
        qty = int(raw)
    except (TypeError, ValueError):
        return None
    if isinstance(raw, float) and raw != qty:
        return None
    return qty if qty >= 1 else None


def _cart_entries(raw: Any, order_ref: Any) -> list:
    if raw in (None, ""):
        return []
    if isinstance(raw, (str, bytes)):
        try:
            raw = json.loads(raw)
        except ValueError as exc:
            _malformed(f"cart_items is not valid JSON ({exc})", order_ref)
            return []
    if not isinstance(raw, list):
        _malformed("cart_items is not a list", order_ref)
        return []
    return raw


def extract_line_items(order_like: Any) -> list[LineItem]:
    """
    Flatten an order into deduplicated line items.

    Sources, in order:
    1. box_id (quantity 1, selected_size)
    2. product_id (quantity 1, selected_size)
    3. cart_items: list or JSON text of {type, id, size, quantity}

    Duplicates of the same (kind, id, size) are summed into one item;
    first-seen order is kept. Never raises: unusable cart data is dropped
    with a MalformedLineItemsWarning and a log line.
    """
    order_ref = _field(order_like, "order_number", "orderNumber", "id") or "<new>"
    selected_size = _field(order_like, "selected_size", "selectedSize")
    if selected_size is not None:
        selected_size = str(selected_size)

    raw_items: list[LineItem] = []

    box_id = _field(order_like, "box_id", "boxId")
    if box_id:
        raw_items.append(LineItem(KIND_BOX, str(box_id), selected_size, 1))

    product_id = _field(order_like, "product_id", "productId")
    if product_id:
        raw_items.append(LineItem(KIND_PRODUCT, str(product_id), selected_size, 1))

    for entry in _cart_entries(_field(order_like, "cart_items", "cartItems"), order_ref):
        if not isinstance(entry, Mapping):
            _malformed(f"cart entry is not an object: {entry!r}", order_ref)
            continue
        kind = entry.get("type")
        entity_id = entry.get("id")
        if kind not in VALID_KINDS or not entity_id:
            _malformed(f"cart entry has no usable type/id: {dict(entry)!r}", order_ref)
            continue
        quantity = _parse_quantity(entry.get("quantity"))
        if quantity is None:
            _malformed(f"cart entry has invalid quantity: {dict(entry)!r}", order_ref)
            continue
        # The 1C export writes selectedSize; the checkout writes size
        size = entry.get("size") or entry.get("selectedSize")
        size = str(size) if size not in (None, "") else None
        raw_items.append(LineItem(kind, str(entity_id), size, quantity))

    return aggregate_line_items(raw_items)


def aggregate_line_items(items: Iterable[LineItem]) -> list[LineItem]:
    aggregated: dict[str, LineItem] = {}
    for item in items:
        existing = aggregated.get(item.key)
        if existing is None:
            aggregated[item.key] = item
        else:
            aggregated[item.key] = LineItem(
                existing.kind,
                existing.entity_id,
                existing.size,
                existing.quantity + item.quantity,
            )
    return list(aggregated.values())


def sort_for_locking(items: Iterable[LineItem]) -> list[LineItem]:
    """Global lock order: every settler locks rows in the same sequence."""
    return sorted(items, key=lambda i: (i.kind, i.entity_id, i.size or ""))
