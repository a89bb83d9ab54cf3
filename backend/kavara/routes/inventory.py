# backend/kavara/routes/inventory.py
"""
Inventory routes: history read API and the 1C stock sync endpoint.

SECURITY: Both routes are for back-office integrations and require the
X-API-Key header (ERP_API_KEY).
"""
from flask import Blueprint, current_app, jsonify, request

from ..decorators import require_erp_api_key
from ..services import catalog_service, ledger_service
from ..validation import ValidationError


inventory_bp = Blueprint("inventory", __name__)


@inventory_bp.get("/api/inventory/history")
@require_erp_api_key
def list_history_route():
    """
    List inventory history, newest first.

    Query: entity_kind, entity_id, order_id, operation_type, limit (1..500)
    """
    limit = request.args.get("limit", default=100, type=int)
    limit = max(1, min(limit, 500))

    entries = ledger_service.list_history(
        entity_kind=request.args.get("entity_kind"),
        entity_id=request.args.get("entity_id"),
        order_id=request.args.get("order_id"),
        operation_type=request.args.get("operation_type"),
        limit=limit,
    )
    return jsonify({"history": [e.to_dict() for e in entries], "limit": limit}), 200


@inventory_bp.post("/api/1c/products/update-inventory")
@require_erp_api_key
def erp_update_inventory_route():
    """
    Overwrite stock from 1C.

    Body: {"products": [{"externalId": "KAVARA-123", "inventory": {"S": 10, "M": 15}}]}
    """
    payload = request.get_json(silent=True) or {}

    try:
        result = catalog_service.apply_erp_inventory(payload.get("products"))
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to update inventory from 1C")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify(result), 200
