"""
Order Service - checkout and status lifecycle, wired to inventory settlement.

WHY: Orders and stock must move together. A checkout that cannot be fulfilled
must leave no order behind, and a cancellation must put the stock back exactly
once.

RESERVATION POLICY (config STOCK_RESERVATION_POLICY):
- on_create (default): stock is decremented when the order is created, in the
  same transaction as the order INSERT. Unpaid orders hold stock until they are
  cancelled or released by release_stale_orders().
- on_payment: stock is decremented when the order transitions to "paid".

LIFECYCLE:
pending -> paid -> processing -> shipped -> delivered
any non-cancelled status -> cancelled (terminal; triggers refund settlement)
Backward moves (delivered -> pending) are OrderError.
"""

from __future__ import annotations

import logging
import secrets
import time
from datetime import timedelta

from flask import current_app
from sqlalchemy import and_

from ..extensions import db
from ..models import Order, OrderSettlement
from ..models.orders import (
    ORDER_STATUSES,
    ORDER_STATUS_CANCELLED,
    ORDER_STATUS_PAID,
    ORDER_STATUS_PENDING,
)
from ..validation import (
    FieldPolicy,
    ValidationError,
    clean_payload,
    enforce_rules_order_create,
    normalize_cart_items,
)
from kavara.time_utils import utcnow
from . import notification_service
from .concurrency import begin_write_transaction, lock_for_update, run_with_retry
from .errors import (
    EntityNotFoundError,
    InsufficientStockError,
    LockTimeoutError,
    NotTrackedError,
    OrderError,
    SettlementError,
)
from .ledger_service import DEFAULT_SIZE
from .line_items import extract_line_items
from .settlement_service import MODE_REFUND, MODE_SALE, settle

logger = logging.getLogger(__name__)

POLICY_ON_CREATE = "on_create"
POLICY_ON_PAYMENT = "on_payment"
VALID_POLICIES = {POLICY_ON_CREATE, POLICY_ON_PAYMENT}

# Fulfilment only moves forward; cancelled is reachable from any live status
_STATUS_RANK = {status: rank for rank, status in enumerate(ORDER_STATUSES)}

ORDER_CREATE_POLICY = FieldPolicy(
    allowed=frozenset({
        "user_id",
        "box_id",
        "product_id",
        "selected_size",
        "customer_name",
        "customer_phone",
        "customer_email",
        "telegram_username",
        "delivery_method",
        "payment_method",
        "total_price",
    }),
    required=frozenset({
        "customer_name",
        "customer_phone",
        "delivery_method",
        "payment_method",
        "total_price",
    }),
)


def reservation_policy() -> str:
    policy = current_app.config.get("STOCK_RESERVATION_POLICY", POLICY_ON_CREATE)
    if policy not in VALID_POLICIES:
        raise RuntimeError(f"Unknown STOCK_RESERVATION_POLICY: {policy!r}")
    return policy


def generate_order_number(max_attempts: int = 10) -> str:
    """KB + last 6 digits of the ms clock + 4 random digits, unique among orders."""
    for _ in range(max_attempts):
        stamp = str(int(time.time() * 1000))[-6:]
        candidate = f"KB{stamp}{secrets.randbelow(9000) + 1000}"
        exists = db.session.query(Order.id).filter_by(order_number=candidate).first()
        if not exists:
            return candidate
    return f"KB{secrets.token_hex(6).upper()}"


def get_order(order_number: str) -> Order:
    order = db.session.query(Order).filter_by(order_number=order_number).first()
    if order is None:
        raise OrderError(f"Order {order_number} not found", not_found=True)
    return order


def _get_order_locked(order_number: str) -> Order:
    order = (
        lock_for_update(db.session.query(Order).filter_by(order_number=order_number))
        .populate_existing()
        .first()
    )
    if order is None:
        raise OrderError(f"Order {order_number} not found", not_found=True)
    return order


def _notify_new_order(order: Order) -> None:
    # Notification is outside the settlement transaction and must never undo it
    try:
        notification_service.notify_admin_about_new_order(order)
    except Exception:
        logger.exception("Admin notification failed for order %s", order.order_number)


# =============================================================================
# CHECKOUT
# =============================================================================

def create_order(payload: dict) -> Order:
    """
    Validate, persist and (policy on_create) settle a new order atomically.

    Raises:
        ValidationError: bad payload
        SettlementError subclasses: stock problems; nothing is persisted
    """
    data = dict(payload or {})
    cart_raw = data.pop("cart_items", None)

    patch = clean_payload(model=Order, payload=data, policy=ORDER_CREATE_POLICY)
    patch["cart_items"] = normalize_cart_items(cart_raw)
    enforce_rules_order_create(patch)

    line_items = extract_line_items(patch)
    if not line_items:
        raise ValidationError("order has no line items")

    policy = reservation_policy()

    def _op():
        begin_write_transaction()
        order = Order(order_number=generate_order_number(), status=ORDER_STATUS_PENDING, **patch)
        db.session.add(order)
        db.session.flush()

        if policy == POLICY_ON_CREATE:
            settle(line_items, MODE_SALE, order)

        db.session.commit()
        return order

    try:
        order = run_with_retry(_op)
    except Exception:
        db.session.rollback()
        raise

    logger.info("Order %s created (%d line item(s), policy=%s)", order.order_number, len(line_items), policy)
    if policy == POLICY_ON_CREATE:
        _notify_new_order(order)
    return order


# =============================================================================
# STATUS LIFECYCLE
# =============================================================================

def _cancel_without_refund(order_number: str, cause: SettlementError) -> Order:
    def _op():
        begin_write_transaction()
        order = _get_order_locked(order_number)
        order.status = ORDER_STATUS_CANCELLED
        db.session.commit()
        return order

    try:
        order = run_with_retry(_op)
    except Exception:
        db.session.rollback()
        raise

    logger.critical(
        "REFUND FAILED for cancelled order %s: %s. Stock stays decremented until "
        "`flask orders retry-refund %s` succeeds.",
        order_number,
        cause,
        order_number,
        extra={"order_id": order.id, "error_details": cause.details},
    )
    return order


def update_order_status(order_number: str, status: str) -> Order:
    """
    Apply a status transition and the settlement it implies.

    - into "cancelled": refund settlement (exactly once per order)
    - into "paid" under policy on_payment: sale settlement
    - cancelled is terminal, and fulfilment statuses never move backwards

    A failed refund never blocks the cancellation itself: the status change is
    committed on its own and the failure is logged at CRITICAL.
    """
    status = (status or "").strip().lower()
    if status not in ORDER_STATUSES:
        raise ValidationError(f"status must be one of: {', '.join(ORDER_STATUSES)}")

    policy = reservation_policy()

    def _op():
        begin_write_transaction()
        order = _get_order_locked(order_number)
        previous = order.status

        if previous == status:
            db.session.commit()
            return order, False
        if previous == ORDER_STATUS_CANCELLED:
            raise OrderError(
                f"Order {order_number} is cancelled and cannot move to {status}",
                details={"status": previous, "requested_status": status},
            )
        if status != ORDER_STATUS_CANCELLED and _STATUS_RANK[status] < _STATUS_RANK[previous]:
            raise OrderError(
                f"Order {order_number} cannot move back from {previous} to {status}",
                details={"status": previous, "requested_status": status},
            )

        order.status = status
        sold = False
        if status == ORDER_STATUS_CANCELLED:
            settle(extract_line_items(order), MODE_REFUND, order)
        elif status == ORDER_STATUS_PAID and policy == POLICY_ON_PAYMENT:
            sold = bool(settle(extract_line_items(order), MODE_SALE, order))

        db.session.commit()
        logger.info("Order %s status %s -> %s", order_number, previous, status)
        return order, sold

    try:
        order, sold = run_with_retry(_op)
    except SettlementError as exc:
        db.session.rollback()
        if status != ORDER_STATUS_CANCELLED:
            raise
        return _cancel_without_refund(order_number, exc)
    except Exception:
        db.session.rollback()
        raise

    if sold:
        _notify_new_order(order)
    return order


def cancel_order(order_number: str) -> Order:
    return update_order_status(order_number, ORDER_STATUS_CANCELLED)


def retry_refund(order_number: str) -> int:
    """
    Re-run the refund for a cancelled order whose refund failed earlier.

    Returns the number of history rows written (0 if already refunded).
    """
    def _op():
        begin_write_transaction()
        order = _get_order_locked(order_number)
        if order.status != ORDER_STATUS_CANCELLED:
            raise OrderError(
                f"Order {order_number} is not cancelled",
                details={"status": order.status},
            )
        entries = settle(extract_line_items(order), MODE_REFUND, order)
        db.session.commit()
        return len(entries)

    try:
        return run_with_retry(_op)
    except Exception:
        db.session.rollback()
        raise


def attach_payment_id(order_number: str, payment_id: str) -> Order:
    if not payment_id or not str(payment_id).strip():
        raise ValidationError("payment_id is required")

    def _op():
        order = _get_order_locked(order_number)
        order.payment_id = str(payment_id).strip()
        db.session.commit()
        return order

    try:
        return run_with_retry(_op)
    except Exception:
        db.session.rollback()
        raise


def handle_payment_result(payment_ref: str, succeeded: bool) -> Order:
    """
    Consume the payment collaborator's verdict.

    payment_ref is the provider payment id; older callbacks send the order
    number instead, so that is tried second.
    """
    order = db.session.query(Order).filter_by(payment_id=payment_ref).first()
    if order is None:
        order = db.session.query(Order).filter_by(order_number=payment_ref).first()
    if order is None:
        raise OrderError(f"Order not found for payment {payment_ref}", not_found=True)

    order_number = order.order_number
    if order.status != ORDER_STATUS_PENDING:
        logger.warning(
            "Ignoring %s payment %s for order %s in status %s",
            "successful" if succeeded else "failed",
            payment_ref,
            order_number,
            order.status,
        )
        return order
    if succeeded:
        return update_order_status(order_number, ORDER_STATUS_PAID)
    return update_order_status(order_number, ORDER_STATUS_CANCELLED)


# =============================================================================
# EXPIRY SWEEP
# =============================================================================

def release_stale_orders(older_than: timedelta | None = None) -> list[str]:
    """
    Cancel pending orders that reserved stock but were never paid.

    Returns the order numbers released.
    """
    if older_than is None:
        older_than = timedelta(hours=int(current_app.config.get("PENDING_ORDER_TTL_HOURS", 24)))
    cutoff = utcnow() - older_than

    rows = (
        db.session.query(Order.order_number)
        .join(
            OrderSettlement,
            and_(OrderSettlement.order_id == Order.id, OrderSettlement.direction == MODE_SALE),
        )
        .filter(Order.status == ORDER_STATUS_PENDING, Order.created_at < cutoff)
        .order_by(Order.created_at)
        .all()
    )
    order_numbers = [row[0] for row in rows]
    db.session.rollback()

    released = []
    for order_number in order_numbers:
        try:
            update_order_status(order_number, ORDER_STATUS_CANCELLED)
        except (OrderError, SettlementError):
            logger.exception("Could not release stale order %s", order_number)
            continue
        released.append(order_number)

    if released:
        logger.info("Released %d stale pending order(s)", len(released))
    return released


# =============================================================================
# USER-FACING MESSAGES
# =============================================================================

def user_message_for(error: Exception) -> str:
    """Checkout-safe text for an error; never includes internals."""
    support = current_app.config.get("SUPPORT_CONTACT", "support")

    if isinstance(error, InsufficientStockError):
        if error.size == DEFAULT_SIZE:
            return f'"{error.entity_name}" is out of stock (available: {error.available})'
        return f'Size {error.size} of "{error.entity_name}" is out of stock (available: {error.available})'
    if isinstance(error, NotTrackedError):
        return f'"{error.entity_name}" is temporarily unavailable. Please contact support: {support}'
    if isinstance(error, EntityNotFoundError):
        return "Some items in your cart are no longer available. Please refresh your cart."
    if isinstance(error, LockTimeoutError):
        return "Too many orders are being placed right now. Please try again."
    return f"We could not place your order. Please contact support: {support}"
