# backend/cifra/routes/system.py
"""
System health endpoint.

Reports database reachability plus whether each outbound integration has
credentials configured. Missing integrations degrade, they don't fail.
"""

import time
from flask import Blueprint, current_app
from ..extensions import db
from ..models import NotificationOutbox, SessionToken
from ..models.notifications import NOTIFICATION_PENDING, NOTIFICATION_FAILED
from cifra.time_utils import utcnow

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    start_time = time.time()
    try:
        active_sessions = db.session.query(SessionToken).filter_by(is_revoked=False).count()
        pending = db.session.query(NotificationOutbox).filter_by(status=NOTIFICATION_PENDING).count()
        failed = db.session.query(NotificationOutbox).filter_by(status=NOTIFICATION_FAILED).count()
        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "active_sessions": active_sessions,
                "notifications_pending": pending,
                "notifications_failed": failed,
            },
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error",
        }


def check_integrations() -> dict:
    cfg = current_app.config
    configured = {
        "payment_gateway": bool(cfg.get("YOOKASSA_SHOP_ID") and cfg.get("YOOKASSA_SECRET_KEY")),
        "object_storage": bool(cfg.get("S3_ACCESS_KEY_ID") and cfg.get("S3_SECRET_ACCESS_KEY") and cfg.get("S3_BUCKET")),
        "email": bool(cfg.get("RESEND_API_KEY")),
    }
    missing = sorted(name for name, ok in configured.items() if not ok)
    result = {"status": "degraded" if missing else "healthy", "details": configured}
    if missing:
        result["warning"] = f"Not configured: {', '.join(missing)}"
    return result


@system_bp.get("/health")
def health():
    """
    Returns:
    - 200: healthy or degraded
    - 503: database unreachable
    """
    start_time = time.time()

    database_health = check_database_health()
    integrations = check_integrations()

    if database_health["status"] == "unhealthy":
        overall_status, http_status = "unhealthy", 503
    elif integrations["status"] == "degraded":
        overall_status, http_status = "degraded", 200
    else:
        overall_status, http_status = "healthy", 200

    response = {
        "status": overall_status,
        "timestamp": utcnow().isoformat() + "Z",
        "total_latency_ms": round((time.time() - start_time) * 1000, 2),
        "checks": {
            "database": database_health,
            "integrations": integrations,
        },
    }
    return response, http_status
