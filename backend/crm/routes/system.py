# backend/crm/routes/system.py
"""
System health endpoint.
"""

import time
from flask import Blueprint, current_app
from ..extensions import db
from ..models import Profile, SessionToken
from ..permissions import Role
from ..services import change_feed
from ..time_utils import utcnow, to_utc_z

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    start_time = time.time()
    try:
        profile_count = db.session.query(Profile).count()
        admin_count = db.session.query(Profile).filter(Profile.role == Role.ADMIN).count()
        active_sessions = db.session.query(SessionToken).filter(
            SessionToken.is_revoked.is_(False),
            SessionToken.expires_at > utcnow(),
        ).count()
        elapsed_ms = (time.time() - start_time) * 1000

        status = "healthy" if admin_count else "degraded"
        result = {
            "status": status,
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "profiles": profile_count,
                "active_sessions": active_sessions,
            },
        }
        if not admin_count:
            result["warning"] = "No ADMIN account; run `flask system init`"
        return result
    except Exception:
        db.session.rollback()
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database connection failed",
        }


@system_bp.get("/health")
def health():
    """
    Returns:
    - 200: healthy or degraded (no ADMIN yet)
    - 503: database unreachable
    """
    database_health = check_database_health()
    http_status = 503 if database_health["status"] == "unhealthy" else 200

    return {
        "status": database_health["status"],
        "timestamp": to_utc_z(utcnow()),
        "checks": {
            "database": database_health,
            "change_feed": {"subscribers": change_feed.feed.subscriber_count()},
        },
    }, http_status
