# backend/stockmatrix/__init__.py
from flask import Flask

from .config import Config
from .extensions import db, migrate


def create_app(overrides: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if overrides:
        app.config.update(overrides)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.system import system_bp
    from .routes.variants import variants_bp
    from .routes.stock import stock_bp
    from .routes.templates import templates_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(variants_bp)
    app.register_blueprint(stock_bp)
    app.register_blueprint(templates_bp)

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
