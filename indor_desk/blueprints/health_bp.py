"""
Health check blueprint.

Endpoints:
    GET /api/v1/health        200 while the process is up
    GET /api/v1/health/live   database round-trip included (503 on failure)
"""

import logging
import time

from flask import Blueprint, current_app, jsonify
from sqlalchemy.exc import SQLAlchemyError

from indor_desk.models import db

logger = logging.getLogger(__name__)

health_bp = Blueprint("health", __name__, url_prefix="/api/v1/health")


@health_bp.route("", methods=["GET"])
def ready():
    return jsonify({"status": "ok", "app": "INDOR Desk"}), 200


@health_bp.route("/live", methods=["GET"])
def live():
    """Liveness with a database round trip."""
    checks = {}
    try:
        t0 = time.perf_counter()
        db.session.execute(db.text("SELECT 1"))
        checks["database"] = {
            "status": "ok",
            "latency_ms": round((time.perf_counter() - t0) * 1000, 1),
        }
        healthy = True
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.error("Health check: database failed: %s", exc)
        checks["database"] = {"status": "error"}
        healthy = False

    checks["app"] = {"debug": current_app.debug, "testing": current_app.testing}
    body = {"status": "ok" if healthy else "degraded", "checks": checks}
    return jsonify(body), 200 if healthy else 503
