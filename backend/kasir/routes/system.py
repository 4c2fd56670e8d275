# backend/kasir/routes/system.py
"""
System health and cache diagnostics.
"""

import time
from flask import Blueprint, current_app, jsonify
from sqlalchemy import text

from ..extensions import db
from ..models.auth import ROLE_ADMIN
from ..decorators import require_auth, require_role, get_product_cache
from kasir.time_utils import utcnow, to_utc_z

system_bp = Blueprint("system", __name__, url_prefix="/api")


def check_database_health() -> dict:
    """Round-trip a trivial query and report latency."""
    start_time = time.time()
    try:
        db.session.execute(text("SELECT 1"))
        elapsed_ms = (time.time() - start_time) * 1000
        return {"status": "healthy", "latency_ms": round(elapsed_ms, 2)}
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error",
        }


@system_bp.get("/health")
def health():
    database = check_database_health()
    cache = get_product_cache()

    healthy = database["status"] == "healthy"
    body = {
        "status": "healthy" if healthy else "unhealthy",
        "timestamp": to_utc_z(utcnow()),
        "checks": {
            "database": database,
            "cache": {"status": "enabled" if cache is not None and cache.enabled else "disabled"},
        },
    }
    return jsonify(body), 200 if healthy else 503


@system_bp.get("/cache/stats")
@require_auth
@require_role(ROLE_ADMIN)
def cache_stats():
    cache = get_product_cache()
    if cache is None:
        return jsonify({"enabled": False, "keys": 0, "hits": 0, "misses": 0})
    return jsonify(cache.stats())
