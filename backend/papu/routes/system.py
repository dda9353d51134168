# backend/papu/routes/system.py
"""
System health endpoint.

Reports database connectivity and the notification outbox backlog.
"""

import time
from flask import Blueprint, current_app
from ..extensions import db
from ..models import User, NotificationOutbox
from papu.time_utils import to_utc_z, utcnow

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    start_time = time.time()
    try:
        user_count = db.session.query(User).count()
        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {"users": user_count},
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error"
        }


def check_notification_health() -> dict:
    """
    Outbox backlog. FAILED rows mean a gateway problem but do not block
    transactions, so they only degrade.
    """
    start_time = time.time()
    try:
        pending = db.session.query(NotificationOutbox).filter_by(status="PENDING").count()
        failed = db.session.query(NotificationOutbox).filter_by(status="FAILED").count()
        elapsed_ms = (time.time() - start_time) * 1000
        result = {
            "status": "degraded" if failed else "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "pending": pending,
                "failed": failed,
                "gateway_configured": bool(current_app.config.get("NOTIFICATION_GATEWAY_URL")),
            },
        }
        if failed:
            result["warning"] = f"{failed} notifications failed delivery"
        return result
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Notification health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Notification outbox error"
        }


@system_bp.get("/api/health")
def health():
    """
    Returns:
    - 200: healthy or degraded
    - 503: one or more checks unhealthy
    """
    start_time = time.time()

    database_health = check_database_health()
    notification_health = check_notification_health()

    all_checks = [database_health, notification_health]
    if any(check["status"] == "unhealthy" for check in all_checks):
        overall_status, http_status = "unhealthy", 503
    elif any(check["status"] == "degraded" for check in all_checks):
        overall_status, http_status = "degraded", 200
    else:
        overall_status, http_status = "healthy", 200

    response = {
        "status": overall_status,
        "timestamp": to_utc_z(utcnow()),
        "total_latency_ms": round((time.time() - start_time) * 1000, 2),
        "checks": {
            "database": database_health,
            "notifications": notification_health,
        }
    }

    return response, http_status
