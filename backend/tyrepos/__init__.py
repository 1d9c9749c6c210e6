# backend/tyrepos/__init__.py
import os

from flask import Flask, jsonify, request
from werkzeug.exceptions import HTTPException

from .config import Config
from .extensions import db, migrate


def _running_flask_command() -> bool:
    """True when built by the `flask` CLI (db upgrade, users, reports, run)."""
    return os.environ.get("FLASK_RUN_FROM_CLI") == "true"


def create_app(config_overrides: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    # Overrides must land before extensions read their settings
    if config_overrides:
        app.config.update(config_overrides)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    from .services.email_service import init_mail
    init_mail(app)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.system import system_bp
    from .routes.auth import auth_bp
    from .routes.users import users_bp
    from .routes.categories import categories_bp
    from .routes.items import items_bp
    from .routes.sales import sales_bp
    from .routes.customers import customers_bp
    from .routes.analytics import analytics_bp
    from .routes.dashboard import dashboard_bp, item_balance_bp
    from .routes.logs import logs_bp
    from .routes.email_subscriptions import email_subscriptions_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(users_bp)
    app.register_blueprint(categories_bp)
    app.register_blueprint(items_bp)
    app.register_blueprint(sales_bp)
    app.register_blueprint(customers_bp)
    app.register_blueprint(analytics_bp)
    app.register_blueprint(dashboard_bp)
    app.register_blueprint(item_balance_bp)
    app.register_blueprint(logs_bp)
    app.register_blueprint(email_subscriptions_bp)

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        allowed_origins = {
            "http://localhost:5173",
            "http://127.0.0.1:5173",
            "http://localhost:3000",
            "http://127.0.0.1:3000",
        }
        if origin in allowed_origins:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Headers"] = "Authorization, Content-Type"
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,PUT,DELETE,PATCH,OPTIONS"
        return response

    @app.errorhandler(404)
    def not_found(e):
        return jsonify({"error": "Not found"}), 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return jsonify({"error": "Method not allowed"}), 405

    @app.errorhandler(Exception)
    def unhandled_exception(e):
        if isinstance(e, HTTPException):
            return jsonify({"error": e.description}), e.code
        db.session.rollback()
        app.logger.exception("Unhandled error on %s %s", request.method, request.path)
        return jsonify({"error": "Internal server error"}), 500

    # Report scheduler lives on app.extensions["report_scheduler"]
    from .services.report_scheduler import ReportScheduler
    scheduler = ReportScheduler(app)
    # CLI commands must not spawn timer threads; serve via wsgi.py to run reports
    if app.config.get("REPORT_SCHEDULER_ENABLED") and not _running_flask_command():
        scheduler.start()

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
