# backend/storefront/routes/system.py
"""
System health endpoint.

Reports database connectivity and the outbox backlog so a stuck notifier
is visible to monitoring.
"""

import time

from flask import Blueprint, current_app, jsonify

from ..extensions import db
from ..models import Order, OutboxEvent, ProductVariant
from storefront.time_utils import utcnow, to_utc_z

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    start_time = time.time()
    try:
        order_count = db.session.query(Order).count()
        variant_count = db.session.query(ProductVariant).count()
        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "orders": order_count,
                "variants": variant_count,
            },
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        db.session.rollback()
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error",
        }


def check_outbox_health() -> dict:
    try:
        pending = db.session.query(OutboxEvent).filter_by(status="PENDING").count()
        failed = db.session.query(OutboxEvent).filter_by(status="FAILED").count()
    except Exception:
        current_app.logger.exception("Outbox health check failed")
        db.session.rollback()
        return {"status": "unhealthy", "error": "Database error"}

    return {
        # FAILED rows need an operator; PENDING ones drain on their own
        "status": "degraded" if failed else "healthy",
        "details": {"pending": pending, "failed": failed},
    }


@system_bp.get("/api/health")
def health():
    checks = {
        "database": check_database_health(),
        "outbox": check_outbox_health(),
    }

    if checks["database"]["status"] != "healthy":
        overall, http_status = "unhealthy", 503
    elif any(c["status"] != "healthy" for c in checks.values()):
        overall, http_status = "degraded", 200
    else:
        overall, http_status = "healthy", 200

    return jsonify({
        "status": overall,
        "timestamp": to_utc_z(utcnow()),
        "checks": checks,
    }), http_status
