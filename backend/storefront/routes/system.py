# backend/storefront/routes/system.py
"""
System health endpoint.

Reports database connectivity and the pricing rate currently in force
(without triggering a refetch).
"""

import time

from flask import Blueprint, current_app
from sqlalchemy import text

from ..extensions import db
from ..responses import failure, success
from ..services import pricing_service

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    start_time = time.time()
    try:
        db.session.execute(text("SELECT 1"))
        elapsed_ms = (time.time() - start_time) * 1000
        return {"status": "healthy", "latency_ms": round(elapsed_ms, 2)}
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {"status": "unhealthy", "latency_ms": round(elapsed_ms, 2), "error": "Database error"}


def check_pricing_health() -> dict:
    """Stale or missing rates are degraded, not unhealthy: checkout still prices via fallback."""
    row = pricing_service.get_active_price()
    if row is None:
        return {"status": "degraded", "detail": "no active silver price"}
    return {
        "status": "healthy" if pricing_service.is_fresh(row) else "degraded",
        "last_updated": row.to_dict()["last_updated"],
        "source": row.source,
    }


@system_bp.get("/health")
def health():
    database = check_database_health()
    if database["status"] != "healthy":
        return failure("Database unavailable", 503)

    return success({
        "status": "healthy",
        "checks": {
            "database": database,
            "pricing": check_pricing_health(),
        },
    })
