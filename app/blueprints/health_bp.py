"""
Health check blueprint.

Endpoints:
    GET /api/v1/health  - app + database status (503 when the DB is down)
"""

import logging
import time

from flask import Blueprint, current_app, jsonify
from sqlalchemy.exc import SQLAlchemyError

from app.models import db

logger = logging.getLogger(__name__)

health_bp = Blueprint("health", __name__, url_prefix="/api/v1/health")


@health_bp.route("", methods=["GET"])
def health():
    checks = {}
    overall = True

    # ── Database ─────────────────────────────────────────────────────
    try:
        t0 = time.perf_counter()
        db.session.execute(db.text("SELECT 1"))
        db_ms = (time.perf_counter() - t0) * 1000
        checks["database"] = {"status": "ok", "latency_ms": round(db_ms, 1)}
    except SQLAlchemyError as exc:
        db.session.rollback()
        checks["database"] = {"status": "error", "detail": str(exc)}
        overall = False
        logger.error("Health check: database failed: %s", exc)

    checks["storage"] = {"backend": current_app.config.get("STORAGE_BACKEND", "local")}
    checks["email"] = {"smtp": bool(current_app.config.get("MAIL_SERVER"))}

    return jsonify({
        "status": "ok" if overall else "degraded",
        "checks": checks,
    }), 200 if overall else 503
