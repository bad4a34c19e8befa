# backend/market/routes/system.py
"""
System health endpoint.

Checks the database and the configuration the checkout flow depends on.
"""

import time
from flask import Blueprint, current_app
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from ..extensions import db
from ..models import SystemSetting, User
from ..services.settings_service import DEFAULT_SETTINGS
from market.time_utils import utcnow

system_bp = Blueprint("system", __name__, url_prefix="/api")


def check_database_health() -> dict:
    """Round trip to the database plus a user count."""
    start_time = time.time()
    try:
        db.session.execute(text("SELECT 1"))
        user_count = db.session.query(User).count()

        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {"users": user_count},
        }
    except SQLAlchemyError:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error"
        }


def check_checkout_health() -> dict:
    """
    Fee settings missing from the table fall back to defaults, and a
    missing gateway key disables payments; both only degrade the service.
    """
    try:
        stored = {
            row.key
            for row in db.session.query(SystemSetting.key).filter(SystemSetting.key.in_(DEFAULT_SETTINGS)).all()
        }
    except SQLAlchemyError:
        current_app.logger.exception("Settings health check failed")
        return {"status": "unhealthy", "error": "Settings error"}

    warnings = []
    missing = sorted(set(DEFAULT_SETTINGS) - stored)
    if missing:
        warnings.append(f"Using default fee settings: {', '.join(missing)}")
    if not current_app.config.get("PAYMENT_GATEWAY_SERVER_KEY"):
        warnings.append("Payment gateway server key not configured")

    result = {
        "status": "degraded" if warnings else "healthy",
        "details": {
            "fee_settings_stored": sorted(stored),
            "payment_gateway_configured": bool(current_app.config.get("PAYMENT_GATEWAY_SERVER_KEY")),
        },
    }
    if warnings:
        result["warning"] = "; ".join(warnings)
    return result


@system_bp.get("/health")
def health():
    """
    Returns:
    - 200: healthy or degraded (still operational)
    - 503: database unreachable
    """
    start_time = time.time()

    database_health = check_database_health()
    checkout_health = check_checkout_health()

    all_checks = [database_health, checkout_health]
    if any(check["status"] == "unhealthy" for check in all_checks):
        overall_status, http_status = "unhealthy", 503
    elif any(check["status"] == "degraded" for check in all_checks):
        overall_status, http_status = "degraded", 200
    else:
        overall_status, http_status = "healthy", 200

    response = {
        "status": overall_status,
        "timestamp": utcnow().isoformat() + "Z",
        "total_latency_ms": round((time.time() - start_time) * 1000, 2),
        "checks": {
            "database": database_health,
            "checkout": checkout_health,
        }
    }

    return response, http_status
