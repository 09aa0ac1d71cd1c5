# backend/digitalshop/__init__.py
import logging
import time

from flask import Flask, current_app, g, request
from sqlalchemy import text

from .config import Config
from .extensions import db, migrate
from .responses import error, success
from .time_utils import to_utc_z, utcnow


def check_database_health() -> dict:
    """Round-trip a trivial query and time it."""
    start_time = time.time()
    try:
        db.session.execute(text("SELECT 1"))
        elapsed_ms = (time.time() - start_time) * 1000
        return {"status": "healthy", "latency_ms": round(elapsed_ms, 2)}
    except Exception:
        db.session.rollback()
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error",
        }


def create_app(config_object=None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(config_object or Config)
    app.logger.setLevel(getattr(logging, str(app.config.get("LOG_LEVEL", "INFO")).upper(), logging.INFO))

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.auth import auth_bp
    from .routes.users import users_bp
    from .routes.products import products_bp
    from .routes.inventory import inventory_bp
    from .routes.stock_adjustments import stock_adjustments_bp
    from .routes.holds import holds_bp
    from .routes.goods_receipts import goods_receipts_bp
    from .routes.sales import sales_bp
    from .routes.invoices import invoices_bp
    from .routes.customers import customers_bp
    from .routes.suppliers import suppliers_bp
    from .routes.expenses import expenses_bp
    from .routes.reports import reports_bp
    from .routes.purchases import purchases_bp
    from .routes.stock_movements import stock_movements_bp
    from .routes.roles import roles_bp
    from .routes.system import system_bp

    app.register_blueprint(auth_bp)
    app.register_blueprint(users_bp)
    app.register_blueprint(products_bp)
    app.register_blueprint(inventory_bp)
    app.register_blueprint(stock_adjustments_bp)
    app.register_blueprint(holds_bp)
    app.register_blueprint(goods_receipts_bp)
    app.register_blueprint(sales_bp)
    app.register_blueprint(invoices_bp)
    app.register_blueprint(customers_bp)
    app.register_blueprint(suppliers_bp)
    app.register_blueprint(expenses_bp)
    app.register_blueprint(reports_bp)
    app.register_blueprint(purchases_bp)
    app.register_blueprint(stock_movements_bp)
    app.register_blueprint(roles_bp)
    app.register_blueprint(system_bp)

    from .errors import register_error_handlers
    register_error_handlers(app)

    @app.before_request
    def reset_request_identity():
        # g outlives the request when a test shares one app context
        g.pop("current_user", None)
        g.pop("token_claims", None)

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        if origin and origin in app.config.get("ALLOWED_ORIGINS", []):
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Headers"] = "Authorization, Content-Type"
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,PUT,DELETE,PATCH,OPTIONS"
        return response

    @app.get("/health")
    def health():
        database = check_database_health()
        payload = {
            "status": "ok" if database["status"] == "healthy" else "degraded",
            "timestamp": to_utc_z(utcnow()),
            "environment": app.config.get("ENV"),
            "database": database,
        }
        if database["status"] != "healthy":
            return error("Service unavailable", 503, **payload)
        return success(payload)

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
