# backend/stocktrail/__init__.py
import atexit

from flask import Flask, jsonify

from .config import Config
from .errors import StocktrailError
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
    from .services.status_service import install_status_hook
    install_status_hook()

    from .routes.system import system_bp
    app.register_blueprint(system_bp)

    @app.errorhandler(StocktrailError)
    def handle_domain_error(exc: StocktrailError):
        return jsonify(exc.to_dict()), exc.http_status

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    if app.config.get("EXPIRY_SWEEP_ENABLED"):
        from .services.expiry_service import ExpirySweeper
        sweeper = ExpirySweeper(app)
        app.extensions["expiry_sweeper"] = sweeper
        sweeper.start()
        atexit.register(sweeper.stop)

    return app
