# Overview: Flask API routes for checkout and order status; parses input and returns JSON responses.

# backend/kavara/routes/orders.py
"""Order API routes. Business logic lives in services/order_service.py."""

from flask import Blueprint, current_app, jsonify, request

from ..services import order_service
from ..services.errors import (
    EntityNotFoundError,
    LockTimeoutError,
    OrderError,
    SettlementError,
)
from ..services.line_items import extract_line_items
from ..services.settlement_service import has_settlement, MODE_REFUND, MODE_SALE
from ..validation import ValidationError


orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")
payments_bp = Blueprint("payments", __name__, url_prefix="/api/payments")


def _settlement_error_response(e: SettlementError):
    if isinstance(e, LockTimeoutError):
        status = 503
    elif isinstance(e, EntityNotFoundError):
        status = 404
    else:
        status = 409
    current_app.logger.warning("Settlement rejected: %s", e, extra={"error_details": e.details})
    return jsonify({
        "error": order_service.user_message_for(e),
        "code": type(e).__name__,
        "retryable": e.retryable,
        "details": e.details,
    }), status


def _order_error_response(e: OrderError):
    return jsonify({"error": str(e), "details": e.details}), 404 if e.not_found else 409


def _unexpected(message: str):
    current_app.logger.exception(message)
    return jsonify({"error": order_service.user_message_for(Exception())}), 500


@orders_bp.post("")
def create_order_route():
    """
    Checkout: create an order and reserve its stock.

    409 when stock is missing, 404 when an item no longer exists, 503 when
    stock rows are busy (retry), 400 for invalid input.
    """
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        return jsonify({"error": "Invalid JSON payload"}), 400

    try:
        order = order_service.create_order(payload)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except SettlementError as e:
        return _settlement_error_response(e)
    except Exception:
        return _unexpected("Failed to create order")

    return jsonify({"order": order.to_dict()}), 201


@orders_bp.get("/<order_number>")
def get_order_route(order_number: str):
    try:
        order = order_service.get_order(order_number)
    except OrderError as e:
        return _order_error_response(e)

    items = [
        {"kind": i.kind, "entity_id": i.entity_id, "size": i.size, "quantity": i.quantity}
        for i in extract_line_items(order)
    ]
    return jsonify({
        "order": order.to_dict(),
        "line_items": items,
        "settlements": {
            MODE_SALE: has_settlement(order.id, MODE_SALE),
            MODE_REFUND: has_settlement(order.id, MODE_REFUND),
        },
    }), 200


@orders_bp.put("/<order_number>/status")
def update_status_route(order_number: str):
    data = request.get_json(silent=True) or {}
    status = data.get("status")
    if not status:
        return jsonify({"error": "status required"}), 400

    try:
        order = order_service.update_order_status(order_number, status)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except OrderError as e:
        return _order_error_response(e)
    except SettlementError as e:
        return _settlement_error_response(e)
    except Exception:
        return _unexpected("Failed to update order status")

    return jsonify({"success": True, "order_number": order.order_number, "status": order.status}), 200


@orders_bp.post("/<order_number>/cancel")
def cancel_order_route(order_number: str):
    try:
        order = order_service.cancel_order(order_number)
    except OrderError as e:
        return _order_error_response(e)
    except SettlementError as e:
        return _settlement_error_response(e)
    except Exception:
        return _unexpected("Failed to cancel order")

    return jsonify({"order": order.to_dict()}), 200


@orders_bp.post("/<order_number>/payment")
def attach_payment_route(order_number: str):
    data = request.get_json(silent=True) or {}
    try:
        order = order_service.attach_payment_id(order_number, data.get("payment_id"))
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except OrderError as e:
        return _order_error_response(e)
    except Exception:
        return _unexpected("Failed to attach payment")

    return jsonify({"order": order.to_dict()}), 200


@payments_bp.post("/result")
def payment_result_route():
    """
    Payment collaborator signal: {"payment_id": "...", "succeeded": true}.

    Webhook authenticity is checked by the payment integration before it
    calls this endpoint.
    """
    data = request.get_json(silent=True) or {}
    payment_ref = data.get("payment_id")
    succeeded = data.get("succeeded")
    if not payment_ref or not isinstance(succeeded, bool):
        return jsonify({"error": "payment_id and boolean succeeded required"}), 400

    try:
        order = order_service.handle_payment_result(str(payment_ref), succeeded)
    except OrderError as e:
        return _order_error_response(e)
    except SettlementError as e:
        return _settlement_error_response(e)
    except Exception:
        return _unexpected("Failed to apply payment result")

    return jsonify({"order_number": order.order_number, "status": order.status}), 200
