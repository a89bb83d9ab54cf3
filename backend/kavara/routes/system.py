# backend/kavara/routes/system.py
"""Liveness endpoint for the load balancer and deploy checks."""

import time

from flask import Blueprint, current_app, jsonify
from sqlalchemy import text

from ..extensions import db
from kavara.time_utils import utcnow, to_utc_z

system_bp = Blueprint("system", __name__)


def _database_status() -> dict:
    started = time.perf_counter()
    try:
        db.session.execute(text("SELECT 1"))
        ok = True
    except Exception:
        current_app.logger.exception("Health check: database unreachable")
        ok = False
    finally:
        db.session.rollback()

    status = {
        "status": "healthy" if ok else "unhealthy",
        "latency_ms": round((time.perf_counter() - started) * 1000, 2),
    }
    if ok:
        status["dialect"] = db.engine.dialect.name
    return status


@system_bp.get("/health")
def health():
    database = _database_status()
    healthy = database["status"] == "healthy"
    return jsonify({
        "status": "ok" if healthy else "degraded",
        "timestamp": to_utc_z(utcnow()),
        "reservation_policy": current_app.config.get("STOCK_RESERVATION_POLICY"),
        "checks": {"database": database},
    }), 200 if healthy else 503
