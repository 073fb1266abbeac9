# backend/branchstock/__init__.py
import logging

from flask import Flask

from .config import Config
from .extensions import configure_sqlite_engine, db, migrate



def create_app(config_overrides: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    # Overrides must land before db.init_app; the engine is bound there
    if config_overrides:
        app.config.update(config_overrides)

    app.logger.setLevel(getattr(logging, str(app.config.get("LOG_LEVEL", "INFO")).upper(), logging.INFO))

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db, directory=app.config["MIGRATIONS_DIR"])

    with app.app_context():
        configure_sqlite_engine(db.engine)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Audit sink is swappable (tests install a recording sink)
    from .services.audit_service import AUDIT_SINK_KEY, DatabaseAuditSink
    app.extensions.setdefault(AUDIT_SINK_KEY, DatabaseAuditSink())

    # Register blueprints
    from .routes.system import system_bp
    from .routes.inventory import inventory_bp
    from .routes.transfers import transfers_bp
    from .routes.sales import sales_bp
    from .routes.reconciliations import reconciliations_bp
    from .routes.audit import audit_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(inventory_bp)
    app.register_blueprint(transfers_bp)
    app.register_blueprint(sales_bp)
    app.register_blueprint(reconciliations_bp)
    app.register_blueprint(audit_bp)

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
