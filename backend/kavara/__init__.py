# backend/kavara/__init__.py
import logging

from flask import Flask, request

from .config import Config
from .extensions import db, migrate


def _apply_sqlite_busy_timeout(app: Flask) -> None:
    """SQLite waits on a held write lock for the driver's timeout (seconds)."""
    if not app.config["SQLALCHEMY_DATABASE_URI"].startswith("sqlite"):
        return
    options = dict(app.config.get("SQLALCHEMY_ENGINE_OPTIONS") or {})
    connect_args = dict(options.get("connect_args") or {})
    connect_args.setdefault("timeout", app.config["SETTLEMENT_LOCK_TIMEOUT_MS"] / 1000)
    options["connect_args"] = connect_args
    app.config["SQLALCHEMY_ENGINE_OPTIONS"] = options


def create_app(test_config: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    # Overrides must land before db.init_app, which builds the engine
    if test_config:
        app.config.update(test_config)
    _apply_sqlite_busy_timeout(app)

    logging.basicConfig(
        level=app.config.get("LOG_LEVEL", "INFO"),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    db.init_app(app)
    migrate.init_app(app, db)

    # Alembic autogenerate needs every table on db.metadata
    from . import models  # noqa: F401

    from .routes.system import system_bp
    from .routes.orders import orders_bp, payments_bp
    from .routes.inventory import inventory_bp

    for blueprint in (system_bp, orders_bp, payments_bp, inventory_bp):
        app.register_blueprint(blueprint)

    allowed_origins = set(app.config.get("CORS_ORIGINS") or ())

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        if origin in allowed_origins:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Headers"] = "Content-Type, X-API-Key"
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,PUT,OPTIONS"
        return response

    from .cli import register_commands
    register_commands(app)

    return app
