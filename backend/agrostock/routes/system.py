# backend/agrostock/routes/system.py
"""
System health and caller identity endpoints.
"""

import time
from flask import Blueprint, jsonify, g, current_app

from ..extensions import db
from ..models import User
from ..decorators import require_actor

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    """Run one cheap query and report latency."""
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
            "error": "Database error",
        }


@system_bp.get("/health")
def health():
    database = check_database_health()
    status = 200 if database["status"] == "healthy" else 503
    return jsonify({"status": database["status"], "database": database}), status


@system_bp.get("/api/me")
@require_actor
def whoami():
    return jsonify({"user": g.current_user.to_dict()}), 200
