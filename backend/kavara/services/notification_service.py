# Overview: Best-effort Telegram notifications to the shop admins.

from __future__ import annotations

import logging
from html import escape

import httpx
from flask import current_app

from ..models import Order
from kavara.time_utils import to_utc_z

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT_SECONDS = 10.0


def format_new_order_message(order: Order) -> str:
    lines = [
        "🆕 <b>НОВЫЙ ЗАКАЗ!</b>",
        "",
        f"📦 <b>Заказ №:</b> {escape(order.order_number)}",
        f"👤 <b>Клиент:</b> {escape(order.customer_name)}",
        f"📱 <b>Телефон:</b> {escape(order.customer_phone)}",
    ]
    if order.customer_email:
        lines.append(f"📧 <b>Email:</b> {escape(order.customer_email)}")
    lines.extend([
        f"🚚 <b>Доставка:</b> {escape(order.delivery_method)}",
        f"💳 <b>Оплата:</b> {escape(order.payment_method)}",
        f"💰 <b>Сумма:</b> {order.total_price}₽",
        "",
        f"📅 <b>Дата:</b> {to_utc_z(order.created_at)}",
    ])
    return "\n".join(lines)


def send_message(chat_id: str, text: str) -> None:
    """POST sendMessage to the Bot API. Raises on transport or API errors."""
    token = current_app.config.get("TELEGRAM_BOT_TOKEN")
    base = current_app.config.get("TELEGRAM_API_BASE", "https://api.telegram.org")
    response = httpx.post(
        f"{base}/bot{token}/sendMessage",
        json={"chat_id": chat_id, "text": text, "parse_mode": "HTML"},
        timeout=REQUEST_TIMEOUT_SECONDS,
    )
    response.raise_for_status()


def notify_admin_about_new_order(order: Order) -> int:
    """
    Tell the admin chat and the orders channel about a new order.

    Never raises: a notification failure must not undo a committed order.
    Returns how many messages were delivered.
    """
    if not current_app.config.get("TELEGRAM_BOT_TOKEN"):
        logger.info("TELEGRAM_BOT_TOKEN not set, skipping notification for order %s", order.order_number)
        return 0

    text = format_new_order_message(order)
    delivered = 0
    targets = (
        ("ADMIN_CHAT_ID", "admin chat"),
        ("ORDERS_CHANNEL_ID", "orders channel"),
    )
    for config_key, label in targets:
        chat_id = current_app.config.get(config_key)
        if not chat_id:
            logger.info("%s not set, skipping %s notification", config_key, label)
            continue
        try:
            send_message(chat_id, text)
        except httpx.HTTPError:
            logger.exception("Failed to notify %s about order %s", label, order.order_number)
            continue
        delivered += 1
        logger.info("Order %s sent to %s", order.order_number, label)
    return delivered
