"""
INDOR Desk
Flask Application Factory.

Usage:
    from indor_desk import create_app
    app = create_app()           # defaults to APP_ENV or "development"
    app = create_app("testing")  # explicit config
"""

import logging
import os

from flask import Flask, abort, request
from flask_cors import CORS
from flask_limiter import Limiter
from flask_migrate import Migrate
from sqlalchemy import engine as _sa_engine
from sqlalchemy import event as _sa_event

from indor_desk.config import config
from indor_desk.middleware.jwt_auth import init_jwt_middleware
from indor_desk.middleware.logging_config import configure_logging
from indor_desk.middleware.rate_limiter import init_rate_limits, rate_limit_key
from indor_desk.middleware.timing import init_request_timing
from indor_desk.models import db

logger = logging.getLogger(__name__)


# ── SQLite FK enforcement (global engine event) ─────────────────────────
@_sa_event.listens_for(_sa_engine.Engine, "connect")
def _enable_sqlite_fk(dbapi_conn, connection_record):
    """Enable foreign key enforcement for SQLite connections."""
    if "sqlite" in type(dbapi_conn).__module__:
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


migrate = Migrate()
limiter = Limiter(
    key_func=rate_limit_key,
    default_limits=[],   # per-blueprint limits only; storage from RATELIMIT_STORAGE_URI
)


def create_app(config_name=None):
    """
    Create and configure the Flask application.

    Args:
        config_name: One of "development", "testing", "production".
                     Defaults to the APP_ENV env var, or "development".

    Returns:
        Configured Flask application instance.
    """
    if config_name is None:
        config_name = os.getenv("APP_ENV", "development")

    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(config[config_name]())
    os.makedirs(app.instance_path, exist_ok=True)

    # ── Logging (must be first) ─────────────────────────────────────────
    configure_logging(app)

    # ── Extensions ──────────────────────────────────────────────────────
    db.init_app(app)
    migrate.init_app(app, db)
    limiter.init_app(app)
    cors_origins = app.config.get("CORS_ORIGINS", "*")
    if cors_origins and cors_origins != "*":
        CORS(app, origins=[o.strip() for o in cors_origins.split(",") if o.strip()])
    else:
        CORS(app)

    # ── Middleware ──────────────────────────────────────────────────────
    init_request_timing(app)
    init_jwt_middleware(app)

    @app.before_request
    def _guard_request():
        if request.method in ("POST", "PUT", "PATCH") and request.path.startswith("/api/"):
            if request.content_length and not request.is_json:
                abort(415, description="Content-Type must be application/json")

    # ── Models (registered on db.metadata for create_all / Alembic) ────
    from indor_desk.models import auth as _auth_models          # noqa: F401
    from indor_desk.models import catalog as _catalog_models    # noqa: F401
    from indor_desk.models import client as _client_models      # noqa: F401
    from indor_desk.models import notes as _notes_models        # noqa: F401
    from indor_desk.models import progress as _progress_models  # noqa: F401

    if config_name != "production":
        with app.app_context():
            db.create_all()

    # ── Blueprints & error handlers ─────────────────────────────────────
    from indor_desk.blueprints import register_blueprints
    from indor_desk.utils.errors import register_error_handlers

    register_blueprints(app)
    register_error_handlers(app)
    init_rate_limits(app, limiter)

    logger.debug("INDOR Desk app created (config=%s)", config_name)
    return app
