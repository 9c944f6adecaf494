# backend/storefront/__init__.py
from flask import Flask, current_app, request
from werkzeug.exceptions import HTTPException

from .config import Config
from .errors import StorefrontError
from .extensions import db, migrate
from .responses import failure


def create_app(config_object=Config) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(config_object)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.system import system_bp
    from .routes.auth import auth_bp
    from .routes.orders import orders_bp, admin_orders_bp
    from .routes.payments import payments_bp
    from .routes.guest import guest_bp
    from .routes.inventory import inventory_bp
    from .routes.pricing import pricing_bp, admin_pricing_bp
    from .routes.loyalty import loyalty_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(orders_bp)
    app.register_blueprint(admin_orders_bp)
    app.register_blueprint(payments_bp)
    app.register_blueprint(guest_bp)
    app.register_blueprint(inventory_bp)
    app.register_blueprint(pricing_bp)
    app.register_blueprint(admin_pricing_bp)
    app.register_blueprint(loyalty_bp)

    @app.errorhandler(StorefrontError)
    def handle_storefront_error(exc: StorefrontError):
        if exc.status_code >= 500:
            current_app.logger.error("%s %s failed: %s", request.method, request.path, exc.message)
        return failure(exc.message, exc.status_code)

    @app.errorhandler(HTTPException)
    def handle_http_error(exc: HTTPException):
        return failure(exc.description or exc.name, exc.code or 500)

    @app.errorhandler(Exception)
    def handle_unexpected_error(exc: Exception):
        db.session.rollback()
        current_app.logger.exception("Unhandled error on %s %s", request.method, request.path)
        return failure("Internal server error", 500)

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        if origin in app.config.get("CORS_ALLOWED_ORIGINS", ()):
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Headers"] = "Authorization, Content-Type, Stripe-Signature"
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,PUT,DELETE,OPTIONS"
        return response

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
