"""
Health check blueprint.

Endpoints:
    GET /api/v1/health/ready  — simple 200 for load balancers
    GET /api/v1/health/live   — database round-trip and audit sink state
"""

import logging
import time

from flask import Blueprint, current_app, jsonify

from allocation_planner.models import db

logger = logging.getLogger(__name__)

health_bp = Blueprint("health_bp", __name__, url_prefix="/api/v1/health")


@health_bp.route("/ready", methods=["GET"])
def ready():
    """Simple readiness probe — always 200 if app is running."""
    return jsonify({"status": "ok"}), 200


@health_bp.route("/live", methods=["GET"])
def live():
    """Liveness check with dependency status."""
    checks = {}
    overall = True

    # ── Database ─────────────────────────────────────────────────────
    try:
        t0 = time.perf_counter()
        db.session.execute(db.text("SELECT 1"))
        db_ms = (time.perf_counter() - t0) * 1000
        checks["database"] = {"status": "ok", "latency_ms": round(db_ms, 1)}
    except Exception as exc:
        db.session.rollback()
        checks["database"] = {"status": "error", "detail": str(exc)}
        overall = False
        logger.error("Health check — database failed: %s", exc)

    # ── Audit sink ───────────────────────────────────────────────────
    sink = current_app.extensions.get("audit_sink")
    if sink is None or not sink.enabled:
        checks["audit_sink"] = {"status": "disabled"}
    else:
        checks["audit_sink"] = {
            "status": "ok",
            "mode": "async" if sink.asynchronous else "inline",
        }

    # ── Allocation algorithm ─────────────────────────────────────────
    checks["allocation_algorithm"] = {
        "status": "ok" if current_app.extensions.get("allocation_algorithm") else "not_configured",
    }

    checks["app"] = {
        "name": "Allocation Planner",
        "debug": current_app.debug,
        "testing": current_app.testing,
    }

    status_code = 200 if overall else 503
    return jsonify({
        "status": "healthy" if overall else "degraded",
        "checks": checks,
    }), status_code
