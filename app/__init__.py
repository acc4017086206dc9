"""
Organizational Diagnostics Platform
Flask Application Factory.

Usage:
    from app import create_app
    app = create_app()           # defaults to APP_ENV or "development"
    app = create_app("testing")  # explicit config
"""

import logging
import os

from flask import Flask, abort, jsonify, request
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate
from sqlalchemy import engine as _sa_engine
from sqlalchemy import event as _sa_event
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from werkzeug.exceptions import HTTPException

from app.config import config
from app.core.exceptions import AppError
from app.middleware.jwt_auth import init_jwt_middleware
from app.middleware.logging_config import configure_logging
from app.middleware.rate_limiter import init_rate_limits
from app.middleware.tenant_context import init_tenant_context
from app.middleware.timing import init_request_timing
from app.models import db
from app.utils.errors import E, api_error

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
    key_func=get_remote_address,
    default_limits=[],                     # no global limit, limits are set per blueprint
    storage_uri=os.getenv("REDIS_URL", "memory://"),
)

# Paths that accept multipart bodies instead of JSON
_MULTIPART_PATHS = ("/api/v1/documents",)


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
    app.config["MAX_CONTENT_LENGTH"] = app.config["MAX_UPLOAD_BYTES"]
    os.makedirs(app.instance_path, exist_ok=True)

    # ── Logging (must be first) ──────────────────────────────────────────
    configure_logging(app)

    # ── Extensions ───────────────────────────────────────────────────────
    db.init_app(app)
    migrate.init_app(app, db)
    limiter.init_app(app)
    cors_origins = app.config.get("CORS_ORIGINS", "*")
    if cors_origins and cors_origins != "*":
        CORS(app, origins=[o.strip() for o in cors_origins.split(",") if o.strip()])
    else:
        CORS(app)

    # ── Middleware chain: timing → jwt → tenant ──────────────────────────
    init_request_timing(app)
    init_jwt_middleware(app)
    init_tenant_context(app)

    @app.before_request
    def _guard_request():
        # Content-Type validation for mutating methods
        if request.method in ("POST", "PUT", "PATCH") and request.path.startswith("/api/"):
            ct = request.content_type or ""
            if "multipart/form-data" in ct:
                if not request.path.startswith(_MULTIPART_PATHS):
                    abort(415, description="multipart bodies are only accepted for document uploads")
                return None
            if request.content_length and "json" not in ct:
                abort(415, description="Content-Type must be application/json")
        return None

    # ── Models (registered on db.metadata for create_all / Alembic) ──────
    from app.models import auth as _auth_models                 # noqa: F401
    from app.models import organization as _organization_models  # noqa: F401
    from app.models import project as _project_models           # noqa: F401
    from app.models import checklist as _checklist_models       # noqa: F401
    from app.models import document as _document_models         # noqa: F401
    from app.models import report as _report_models             # noqa: F401
    from app.models import survey as _survey_models             # noqa: F401
    from app.models import interview as _interview_models       # noqa: F401
    from app.models import notification as _notification_models  # noqa: F401
    from app.models import scheduling as _scheduling_models     # noqa: F401

    with app.app_context():
        try:
            db.create_all()
            app.logger.info("db.create_all() completed successfully")
        except SQLAlchemyError as e:
            app.logger.warning("db.create_all() failed: %s", e)

    # ── Blueprints ───────────────────────────────────────────────────────
    from app.blueprints import register_blueprints
    register_blueprints(app)

    _register_error_handlers(app)

    # ── Rate limiting (after blueprints registered) ──────────────────────
    init_rate_limits(app, limiter)

    return app


def _register_error_handlers(app):
    @app.errorhandler(AppError)
    def handle_app_error(e):
        if e.status_code >= 500:
            logger.error("%s: %s", type(e).__name__, e)
        else:
            logger.info("%s on %s %s: %s", type(e).__name__, request.method, request.path, e.message)
        return jsonify(e.to_dict()), e.status_code

    @app.errorhandler(IntegrityError)
    def handle_integrity_error(e):
        db.session.rollback()
        logger.warning("Integrity error on %s %s: %s", request.method, request.path, e.orig)
        return api_error(E.CONFLICT, "Resource conflicts with existing data")

    @app.errorhandler(400)
    def bad_request(e):
        return api_error(E.BAD_REQUEST, e.description or "Bad request")

    @app.errorhandler(404)
    def not_found(e):
        return api_error(E.NOT_FOUND, "Route not found", details={"path": request.path})

    @app.errorhandler(405)
    def method_not_allowed(e):
        return api_error(E.METHOD_NOT_ALLOWED, "Method not allowed")

    @app.errorhandler(413)
    def payload_too_large(e):
        return api_error(E.PAYLOAD_TOO_LARGE, "Request body too large",
                         details={"max_bytes": app.config.get("MAX_CONTENT_LENGTH")})

    @app.errorhandler(415)
    def unsupported_media_type(e):
        return api_error(E.UNSUPPORTED_MEDIA_TYPE, e.description or "Unsupported media type")

    @app.errorhandler(429)
    def rate_limited(e):
        return api_error(E.RATE_LIMITED, "Too many requests", details={"limit": str(e.description)})

    @app.errorhandler(Exception)
    def unhandled(e):
        if isinstance(e, HTTPException):
            return api_error(E.BAD_REQUEST, e.description or e.name, status=e.code)
        db.session.rollback()
        logger.exception("Unhandled error on %s %s", request.method, request.path)
        return api_error(E.INTERNAL, "Internal server error")
