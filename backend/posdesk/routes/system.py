# backend/posdesk/routes/system.py
"""
System health endpoint.

Checks the database and that roles/permissions have been initialized,
so a deployment that skipped `flask system init` shows up as degraded.
"""

import time
from flask import Blueprint, current_app
from ..extensions import db
from ..models import Sale, SaleReturn, Role, Permission
from posdesk.time_utils import utcnow

system_bp = Blueprint("system", __name__, url_prefix="/api")


def _elapsed_ms(start_time: float) -> float:
    return round((time.time() - start_time) * 1000, 2)


def check_database_health() -> dict:
    """Check database connectivity with counts on the returns tables."""
    start_time = time.time()
    try:
        sale_count = db.session.query(Sale).count()
        return_count = db.session.query(SaleReturn).count()

        return {
            "status": "healthy",
            "latency_ms": _elapsed_ms(start_time),
            "details": {
                "sales": sale_count,
                "returns": return_count,
            }
        }
    except Exception:
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": _elapsed_ms(start_time),
            "error": "Database error"
        }


def check_auth_health() -> dict:
    """Verify the essential roles exist and permissions are initialized."""
    start_time = time.time()
    try:
        essential_roles = ["admin", "manager", "cashier"]
        existing = {
            name for (name,) in db.session.query(Role.name).filter(Role.name.in_(essential_roles)).all()
        }
        missing_roles = [name for name in essential_roles if name not in existing]
        permission_count = db.session.query(Permission).count()

        details = {
            "permissions_initialized": permission_count > 0,
            "permission_count": permission_count,
        }

        if missing_roles or not permission_count:
            return {
                "status": "degraded",
                "latency_ms": _elapsed_ms(start_time),
                "warning": f"Missing roles: {', '.join(missing_roles)}" if missing_roles else "No permissions",
                "details": details,
            }

        return {
            "status": "healthy",
            "latency_ms": _elapsed_ms(start_time),
            "details": details,
        }
    except Exception:
        current_app.logger.exception("Auth health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": _elapsed_ms(start_time),
            "error": "Auth service error"
        }


@system_bp.get("/health")
def health():
    """
    Health check endpoint.

    Returns:
    - 200: healthy or degraded (still operational)
    - 503: database or auth tables unreachable
    """
    start_time = time.time()

    checks = {
        "database": check_database_health(),
        "auth": check_auth_health(),
    }

    statuses = {check["status"] for check in checks.values()}
    if "unhealthy" in statuses:
        overall_status, http_status = "unhealthy", 503
    elif "degraded" in statuses:
        overall_status, http_status = "degraded", 200
    else:
        overall_status, http_status = "healthy", 200

    return {
        "status": overall_status,
        "timestamp": utcnow().isoformat() + "Z",
        "total_latency_ms": _elapsed_ms(start_time),
        "checks": checks,
    }, http_status
