# backend/agrostock/__init__.py
from flask import Flask

from .config import Config
from .extensions import db, migrate



def create_app(test_config: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if test_config:
        app.config.update(test_config)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.system import system_bp
    from .routes.balances import balances_bp
    from .routes.stock import stock_bp
    from .routes.transfers import transfers_bp
    from .routes.balance_requests import balance_requests_bp
    from .routes.cash_register import cash_register_bp
    from .routes.advances import advances_bp
    from .routes.documents import documents_bp
    from .routes.deliveries import deliveries_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(balances_bp)
    app.register_blueprint(stock_bp)
    app.register_blueprint(transfers_bp)
    app.register_blueprint(balance_requests_bp)
    app.register_blueprint(cash_register_bp)
    app.register_blueprint(advances_bp)
    app.register_blueprint(documents_bp)
    app.register_blueprint(deliveries_bp)

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
