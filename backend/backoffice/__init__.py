# backend/backoffice/__init__.py
from decimal import Decimal

from flask import Flask
from flask.json.provider import DefaultJSONProvider

from .config import Config
from .extensions import db, migrate


class DecimalJSONProvider(DefaultJSONProvider):
    """Parse JSON numbers with a fraction as Decimal so money never goes through float."""

    def loads(self, s, **kwargs):
        kwargs.setdefault("parse_float", Decimal)
        return super().loads(s, **kwargs)


def create_app(test_config: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if test_config:
        app.config.update(test_config)

    app.json = DecimalJSONProvider(app)
    app.logger.setLevel(app.config.get("LOG_LEVEL", "INFO"))

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Post-commit channels and tax policy
    from .events import init_event_hub
    from .services.tax_service import init_tax_strategies
    init_event_hub(app)
    init_tax_strategies(app)

    # Register blueprints
    from .routes.system import system_bp
    from .routes.purchase_orders import purchase_orders_bp
    from .routes.pos import pos_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(purchase_orders_bp)
    app.register_blueprint(pos_bp)

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
