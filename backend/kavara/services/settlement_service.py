"""
Settlement Engine - applies an order's line items to the inventory ledger.

A settlement runs in one of two directions:
- sale:   stock goes down; untracked or insufficient stock aborts the call.
- refund: stock goes back up; never blocked by missing configuration.

TRANSACTION CONTRACT:
settle() never commits. It runs inside the caller's unit of work (the same
transaction that writes or updates the Order). Any SettlementError raised here
means the caller must roll back, which discards every decrement already applied
for earlier line items in this call.

LOCKING:
Line items are processed sorted by (kind, entity_id, size), so two concurrent
settlements touching overlapping entities acquire row locks in the same order
and cannot deadlock. The lock is per entity row, not per size.

IDEMPOTENCY:
An OrderSettlement marker (order_id, direction) is written before any stock
moves. If the marker already exists the call is a no-op, so a cancellation
handler firing twice cannot double-credit stock.
"""

from __future__ import annotations

import logging
from typing import Iterable

from ..extensions import db
from ..models import Order, OrderSettlement, InventoryHistory
from ..models.inventory import OPERATION_SALE, OPERATION_CORRECTION
from ..models.orders import SETTLEMENT_SALE, SETTLEMENT_REFUND
from . import ledger_service
from .errors import InsufficientStockError, NotTrackedError
from .line_items import LineItem, sort_for_locking

log = logging.getLogger(__name__)

MODE_SALE = SETTLEMENT_SALE
MODE_REFUND = SETTLEMENT_REFUND
VALID_MODES = {MODE_SALE, MODE_REFUND}


def has_settlement(order_id: str, direction: str) -> bool:
    return (
        db.session.query(OrderSettlement.id)
        .filter_by(order_id=order_id, direction=direction)
        .first()
        is not None
    )


def _claim_settlement(order: Order, mode: str) -> bool:
    """
    Insert the (order, mode) marker; False if it was already applied.

    Callers hold the order row lock, so check-then-insert does not race; the
    unique constraint still turns a lost race into an IntegrityError (and a
    rollback) rather than a second application.
    """
    if has_settlement(order.id, mode):
        return False
    db.session.add(OrderSettlement(order_id=order.id, direction=mode))
    db.session.flush()
    return True


def _note(mode: str, order: Order) -> str:
    if mode == MODE_SALE:
        return f"Sale for order {order.order_number}"
    return f"Refund on cancellation of order {order.order_number}"


def _settle_item(item: LineItem, mode: str, order: Order) -> InventoryHistory:
    entity = ledger_service.get_sellable(item.kind, item.entity_id, lock=True)

    if mode == MODE_SALE and entity.inventory is None:
        raise NotTrackedError(item.kind, entity.id, entity.name)

    size = ledger_service.resolve_size(item.size)
    current = ledger_service.read_quantity(entity, size) or 0

    delta = -item.quantity if mode == MODE_SALE else item.quantity
    new_qty = current + delta

    if mode == MODE_SALE and new_qty < 0:
        raise InsufficientStockError(
            kind=item.kind,
            entity_id=entity.id,
            entity_name=entity.name,
            size=size,
            available=current,
            requested=item.quantity,
        )

    balance = max(0, new_qty)
    ledger_service.write_quantity(entity, size, balance)

    return ledger_service.append_history(
        entity=entity,
        size=size,
        operation_type=OPERATION_SALE if mode == MODE_SALE else OPERATION_CORRECTION,
        quantity_delta=delta,
        balance_after=balance,
        order_id=order.id,
        note=_note(mode, order),
    )


def settle(
    line_items: Iterable[LineItem],
    mode: str,
    order: Order,
    *,
    logger: logging.Logger | None = None,
) -> list[InventoryHistory]:
    """
    Apply line items to stock in the given direction, inside the caller's transaction.

    Returns the history rows written ([] when this direction was already applied).

    Raises:
        NotTrackedError: sale against an entity with inventory NULL
        InsufficientStockError: sale would take a size below zero
        EntityNotFoundError: product/box id does not exist
    """
    logger = logger or log
    if mode not in VALID_MODES:
        raise ValueError(f"invalid settlement mode: {mode}")

    items = sort_for_locking(line_items)

    if mode == MODE_REFUND and not has_settlement(order.id, MODE_SALE):
        logger.warning(
            "Skipping refund for order %s: no stock was reserved for it",
            order.order_number,
        )
        return []

    if not _claim_settlement(order, mode):
        logger.info("Order %s already settled as %s; nothing to do", order.order_number, mode)
        return []

    entries = [_settle_item(item, mode, order) for item in items]

    logger.info(
        "Settled order %s as %s: %d line item(s)",
        order.order_number,
        mode,
        len(entries),
        extra={"order_id": order.id, "settlement_mode": mode, "line_items": len(entries)},
    )
    return entries
