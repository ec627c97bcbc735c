# backend/possync/__init__.py
from pathlib import Path

from flask import Flask, request

from .config import Config
from .extensions import db, migrate


MIGRATIONS_DIR = Path(__file__).resolve().parent.parent / "migrations"


def create_app(config_object=None) -> Flask:
    """
    Application factory.

    config_object: optional class/object or dict applied over Config
    (tests pass an in-memory database and a sync endpoint).
    """
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if isinstance(config_object, dict):
        app.config.update(config_object)
    elif config_object is not None:
        app.config.from_object(config_object)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db, directory=str(MIGRATIONS_DIR))

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    from .services.local_store import local_store
    from .services.tenant_service import SessionProvider
    from .services.sync_service import init_sync_engine

    local_store.init_app(app)
    app.extensions["session_provider"] = SessionProvider()
    init_sync_engine(app)

    # Register blueprints
    from .routes.system import system_bp
    from .routes.session import session_bp
    from .routes.sales import sales_bp
    from .routes.inventory import inventory_bp
    from .routes.sync import sync_bp
    from .routes.reports import reports_bp
    from .routes.entities import entities_bp  # Generic /api/<kind>; registered last

    app.register_blueprint(system_bp)
    app.register_blueprint(session_bp)
    app.register_blueprint(sales_bp)
    app.register_blueprint(inventory_bp)
    app.register_blueprint(sync_bp)
    app.register_blueprint(reports_bp)
    app.register_blueprint(entities_bp)

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        if origin in app.config.get("CORS_ALLOWED_ORIGINS", ()):
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Headers"] = "Content-Type"
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,DELETE,PATCH,OPTIONS"
        return response

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
