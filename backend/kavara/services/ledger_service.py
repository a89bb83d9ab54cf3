# Overview: Inventory ledger; per-entity, per-size stock reads/writes and the history log.

from __future__ import annotations

from sqlalchemy import update

from ..extensions import db
from ..models import InventoryHistory, SELLABLE_MODELS
from .concurrency import lock_for_update
from .errors import EntityNotFoundError
from .line_items import DEFAULT_SIZE
"""
KAVARA Inventory Ledger Invariants (authoritative)

Balance:
- The current balance lives on the sellable row: Product.inventory / Box.inventory,
  a JSON map of size -> quantity. Sizeless items use DEFAULT_SIZE.
- inventory IS NULL means "not tracked". A missing size key means "not tracked
  for that size" and reads as None here, distinct from a tracked zero.
- Values are never negative at rest (write_quantity refuses them).

Writes:
- Only two writers exist: settlement_service (under an entity row lock) and
  catalog_service.overwrite_inventory (manual/ERP path, unlocked).
- write_quantity issues an UPDATE of the one row's inventory column computed
  from the map read under lock. Locking is per entity, not per size, so the
  read-modify-write of the whole map cannot lose a concurrent write to another
  size of the same entity.

History:
- InventoryHistory is append-only (no updates/deletes).
- Rows are written in the same DB transaction as the balance change they record.
"""


def resolve_size(size: str | None) -> str:
    return size or DEFAULT_SIZE


def get_sellable(kind: str, entity_id: str, *, lock: bool = False):
    """
    Catalog boundary: fetch a Product or Box by explicit kind.

    lock=True takes a pessimistic write lock held until commit/rollback and
    refreshes the instance from the row even if it is already in the session.
    """
    model = SELLABLE_MODELS.get(kind)
    if model is None:
        raise EntityNotFoundError(kind, entity_id)

    query = db.session.query(model).filter_by(id=entity_id)
    if lock:
        query = lock_for_update(query).populate_existing()
    entity = query.first()
    if entity is None:
        raise EntityNotFoundError(kind, entity_id)
    return entity


def read_quantity(entity, size: str | None) -> int | None:
    inventory = entity.inventory
    if inventory is None:
        return None
    value = inventory.get(resolve_size(size))
    if value is None:
        return None
    return int(value)


def write_quantity(entity, size: str | None, quantity: int) -> dict:
    """Persist one size's quantity; returns the new inventory map."""
    if quantity < 0:
        raise ValueError("inventory quantity cannot be negative")

    new_inventory = dict(entity.inventory or {})
    new_inventory[resolve_size(size)] = int(quantity)

    model = type(entity)
    db.session.execute(
        update(model)
        .where(model.id == entity.id)
        .values(inventory=new_inventory)
        .execution_options(synchronize_session=False)
    )
    # Keep the in-session instance in step with the row without marking it dirty
    db.session.expire(entity, ["inventory"])
    return new_inventory


def append_history(
    *,
    entity,
    size: str | None,
    operation_type: str,
    quantity_delta: int,
    balance_after: int,
    order_id: str | None = None,
    note: str | None = None,
) -> InventoryHistory:
    """
    Append-only history row.

    - No domain logic here.
    - No deletes/updates of existing rows.
    """
    entry = InventoryHistory(
        entity_kind=entity.KIND,
        entity_id=entity.id,
        entity_name=entity.name,
        size=resolve_size(size),
        operation_type=operation_type,
        quantity_delta=quantity_delta,
        balance_after=balance_after,
        order_id=order_id,
        note=note,
    )
    db.session.add(entry)
    db.session.flush()  # ensures entry.id is assigned without committing
    return entry


def list_history(
    *,
    entity_kind: str | None = None,
    entity_id: str | None = None,
    order_id: str | None = None,
    operation_type: str | None = None,
    limit: int = 100,
) -> list[InventoryHistory]:
    q = db.session.query(InventoryHistory)
    if entity_kind:
        q = q.filter(InventoryHistory.entity_kind == entity_kind)
    if entity_id:
        q = q.filter(InventoryHistory.entity_id == entity_id)
    if order_id:
        q = q.filter(InventoryHistory.order_id == order_id)
    if operation_type:
        q = q.filter(InventoryHistory.operation_type == operation_type)
    return q.order_by(InventoryHistory.created_at.desc(), InventoryHistory.id.desc()).limit(limit).all()
