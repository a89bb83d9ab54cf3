# backend/kavara/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",  # postgresql://... in production
        "sqlite:///kavara.sqlite3",  # default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # When stock is decremented: "on_create" (checkout) or "on_payment" (paid webhook)
    STOCK_RESERVATION_POLICY = os.environ.get("STOCK_RESERVATION_POLICY", "on_create")

    # Unpaid pending orders older than this are released by `flask orders release-stale`
    PENDING_ORDER_TTL_HOURS = int(os.environ.get("PENDING_ORDER_TTL_HOURS", "24"))

    # Row-lock patience for settlement (PostgreSQL lock_timeout; SQLite busy timeout)
    SETTLEMENT_LOCK_TIMEOUT_MS = int(os.environ.get("SETTLEMENT_LOCK_TIMEOUT_MS", "5000"))
    SETTLEMENT_RETRY_ATTEMPTS = int(os.environ.get("SETTLEMENT_RETRY_ATTEMPTS", "3"))

    # Telegram admin notifications (optional)
    TELEGRAM_BOT_TOKEN = os.environ.get("TELEGRAM_BOT_TOKEN")
    TELEGRAM_API_BASE = os.environ.get("TELEGRAM_API_BASE", "https://api.telegram.org")
    ADMIN_CHAT_ID = os.environ.get("ADMIN_CHAT_ID")
    ORDERS_CHANNEL_ID = os.environ.get("ORDERS_CHANNEL_ID")

    # 1C / ERP integration key (X-API-Key header)
    ERP_API_KEY = os.environ.get("ERP_API_KEY")

    SUPPORT_CONTACT = os.environ.get("SUPPORT_CONTACT", "@kavara_support")

    # Telegram Mini App origins allowed to call the API from the browser
    CORS_ORIGINS = [
        o.strip()
        for o in os.environ.get(
            "CORS_ORIGINS",
            "https://web.telegram.org,http://localhost:5173,http://127.0.0.1:5173",
        ).split(",")
        if o.strip()
    ]
