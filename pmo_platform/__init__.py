"""
PMO Platform application factory.

    from pmo_platform import create_app
    app = create_app()            # APP_ENV, or "development"
    app = create_app("testing")
"""

import logging
import os

from flask import Flask
from flask_cors import CORS
from flask_limiter import Limiter
from flask_migrate import Migrate
from sqlalchemy import event as sa_event
from sqlalchemy.engine import Engine

from pmo_platform.config import config
from pmo_platform.middleware.jwt_auth import init_jwt_middleware
from pmo_platform.middleware.logging_config import configure_logging
from pmo_platform.middleware.rate_limiter import init_rate_limits, rate_limit_key
from pmo_platform.middleware.security_headers import init_security_headers
from pmo_platform.middleware.timing import init_request_timing
from pmo_platform.models import db
from pmo_platform.utils.errors import register_error_handlers

logger = logging.getLogger(__name__)

migrate = Migrate()
limiter = Limiter(
    key_func=rate_limit_key,
    default_limits=[],
    storage_uri=os.getenv("REDIS_URL", "memory://"),
)


@sa_event.listens_for(Engine, "connect")
def _sqlite_foreign_keys(dbapi_conn, connection_record):
    """SQLite ignores ON DELETE rules unless foreign keys are switched on."""
    if "sqlite" in type(dbapi_conn).__module__:
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


def _import_models():
    # Registers every table on db.metadata for create_all and Alembic
    from pmo_platform.models import (  # noqa: F401
        artifact,
        audit,
        github_sync,
        notification,
        profile,
        project,
        ticket,
    )


def _register_blueprints(app):
    from pmo_platform.blueprints.github_bp import github_bp
    from pmo_platform.blueprints.staff_actions_bp import staff_actions_bp

    app.register_blueprint(staff_actions_bp)
    app.register_blueprint(github_bp)

    @app.route("/api/v1/health")
    def health():
        return {"status": "ok", "app": "PMO Platform"}


def create_app(config_name=None):
    """Build a configured Flask app.

    Args:
        config_name: "development", "testing" or "production". Defaults to
            the APP_ENV environment variable, then "development".
    """
    config_name = config_name or os.getenv("APP_ENV", "development")

    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(config[config_name]())
    configure_logging(app)

    # Request id and principal are resolved before the limiter counts the call
    init_request_timing(app)
    init_jwt_middleware(app)

    db.init_app(app)
    migrate.init_app(app, db)
    limiter.init_app(app)

    origins = app.config.get("CORS_ORIGINS") or ""
    if origins == "*":
        CORS(app)
    else:
        CORS(app, origins=[o.strip() for o in origins.split(",") if o.strip()])
    init_security_headers(app)

    _import_models()
    if config_name != "production":
        with app.app_context():
            db.create_all()

    _register_blueprints(app)
    register_error_handlers(app)
    init_rate_limits(app, limiter)

    logger.debug("PMO Platform app created (config=%s)", config_name)
    return app
