# backend/possync/routes/system.py
"""
System health and version endpoints.

Health covers the two things a till depends on locally: the embedded store
and the sync engine. An offline remote authority is not unhealthy; pending
changes simply wait.
"""

import sys
import time
from flask import Blueprint, current_app
from ..extensions import db
from ..models import LocalSetting
from ..services.sync_service import get_sync_engine
from ..time_utils import utcnow, to_utc_z

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    """
    Check local store connectivity with a trivial query.
    """
    start_time = time.time()
    try:
        setting_count = db.session.query(LocalSetting).count()
        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {"local_settings": setting_count},
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error",
        }


def check_sync_health() -> dict:
    engine = get_sync_engine()
    if not engine.enabled:
        return {"status": "degraded", "warning": "Sync endpoint not configured"}

    last = engine.last_result
    if last is not None and last.outcome == "failed":
        return {
            "status": "degraded",
            "warning": "Last sync push failed; changes stay pending",
            "details": {"last_flush": last.to_dict()},
        }
    return {"status": "healthy", "details": {"state": engine.state}}


@system_bp.get("/health")
def health():
    """
    Returns:
    - 200: healthy or degraded (sync disabled or failing is still operational)
    - 503: local store unreachable
    """
    start_time = time.time()

    database_health = check_database_health()
    sync_health = check_sync_health()

    if database_health["status"] == "unhealthy":
        overall_status = "unhealthy"
        http_status = 503
    elif sync_health["status"] == "degraded":
        overall_status = "degraded"
        http_status = 200
    else:
        overall_status = "healthy"
        http_status = 200

    total_elapsed_ms = (time.time() - start_time) * 1000

    return {
        "status": overall_status,
        "timestamp": to_utc_z(utcnow()),
        "total_latency_ms": round(total_elapsed_ms, 2),
        "checks": {
            "database": database_health,
            "sync": sync_health,
        },
    }, http_status


@system_bp.get("/version")
def version():
    env = "production" if not current_app.debug else "development"
    return {
        "api_version": current_app.config.get("API_VERSION", "1.0.0"),
        "environment": env,
        "python_version": sys.version.split()[0],
        "server_time": to_utc_z(utcnow()),
    }
