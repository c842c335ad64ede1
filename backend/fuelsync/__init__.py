# backend/fuelsync/__init__.py
import logging

from flask import Flask

from .config import Config
from .extensions import db, migrate


def create_app(config_overrides: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    # Overrides must land before db.init_app binds the engine
    if config_overrides:
        app.config.update(config_overrides)

    app.logger.setLevel(app.config["LOG_LEVEL"])
    logging.getLogger("fuelsync").setLevel(app.config["LOG_LEVEL"])

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.system import system_bp
    from .routes.readings import readings_bp
    from .routes.transactions import transactions_bp
    from .routes.creditors import creditors_bp
    from .routes.shifts import shifts_bp, station_shifts_bp
    from .routes.handovers import handovers_bp, station_handovers_bp
    from .routes.reports import reports_bp
    from .routes.settlements import station_settlements_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(readings_bp)
    app.register_blueprint(transactions_bp)
    app.register_blueprint(creditors_bp)
    app.register_blueprint(shifts_bp)
    app.register_blueprint(station_shifts_bp)
    app.register_blueprint(handovers_bp)
    app.register_blueprint(station_handovers_bp)
    app.register_blueprint(reports_bp)
    app.register_blueprint(station_settlements_bp)

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
