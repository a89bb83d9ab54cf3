# Overview: Catalog-side stock maintenance: manual overwrites, 1C sync, soft delete.

from __future__ import annotations

import logging

from ..extensions import db
from ..models import Box, Product
from ..models.inventory import OPERATION_CORRECTION
from ..validation import ValidationError, enforce_rules_inventory_map
from . import ledger_service
from .concurrency import run_with_retry

logger = logging.getLogger(__name__)
"""
Manual stock writes (admin "Остатки" screen, 1C sync) replace the whole
inventory map WITHOUT the settlement row lock. A checkout settling the same
entity concurrently can have its decrement overwritten by the operator's
figure; the business accepts this for manual corrections because the
operator's count is authoritative. Every changed size is still recorded in
inventory_history as a correction.
"""


def _record_overwrite(entity, new_inventory: dict[str, int], note: str) -> int:
    old_inventory = dict(entity.inventory or {})
    written = 0
    for size in sorted(set(old_inventory) | set(new_inventory)):
        before = int(old_inventory.get(size, 0))
        after = int(new_inventory.get(size, 0))
        if before == after:
            continue
        ledger_service.append_history(
            entity=entity,
            size=size,
            operation_type=OPERATION_CORRECTION,
            quantity_delta=after - before,
            balance_after=after,
            note=note,
        )
        written += 1
    return written


def overwrite_inventory(kind: str, entity_id: str, inventory, *, note: str | None = None):
    """Replace an entity's stock map and log the per-size differences."""
    cleaned = enforce_rules_inventory_map(inventory)

    def _op():
        entity = ledger_service.get_sellable(kind, entity_id)
        changed = _record_overwrite(entity, cleaned, note or "Manual stock update")
        entity.inventory = cleaned
        db.session.commit()
        logger.info("Stock for %s %s overwritten (%d size(s) changed)", kind, entity_id, changed)
        return entity

    try:
        return run_with_retry(_op)
    except Exception:
        db.session.rollback()
        raise


def apply_erp_inventory(items) -> dict:
    """
    Bulk stock update from 1C, keyed by external_id.

    Products are matched first, then boxes. Each item succeeds or fails on
    its own; the response summarizes both.
    """
    if not isinstance(items, list):
        raise ValidationError("products must be a list")

    results = []
    for item in items:
        external_id = item.get("externalId") if isinstance(item, dict) else None
        inventory = item.get("inventory") if isinstance(item, dict) else None
        if not external_id or inventory is None:
            results.append({
                "externalId": external_id,
                "success": False,
                "error": "externalId and inventory are required",
            })
            continue

        entity = db.session.query(Product).filter_by(external_id=external_id).first()
        if entity is None:
            entity = db.session.query(Box).filter_by(external_id=external_id).first()
        if entity is None:
            results.append({"externalId": external_id, "success": False, "error": "Product or box not found"})
            continue

        try:
            updated = overwrite_inventory(entity.KIND, entity.id, inventory, note=f"1C sync ({external_id})")
        except ValidationError as e:
            results.append({"externalId": external_id, "success": False, "error": str(e)})
            continue

        results.append({
            "externalId": external_id,
            f"{updated.KIND}Id": updated.id,
            "success": True,
            "inventory": updated.inventory,
        })

    return {
        "success": True,
        "updated": sum(1 for r in results if r["success"]),
        "failed": sum(1 for r in results if not r["success"]),
        "results": results,
    }


def archive_entity(kind: str, entity_id: str):
    """Soft delete: the entity leaves the storefront, its history stays."""
    entity = ledger_service.get_sellable(kind, entity_id)
    entity.is_available = False
    db.session.commit()
    return entity
