# backend/stockledger/routes/system.py
"""System health endpoint."""

import time

from flask import Blueprint, current_app
from sqlalchemy import text

from ..extensions import db
from ..time_utils import to_utc_z, utcnow

system_bp = Blueprint("system", __name__)


@system_bp.get("/health")
def health():
    start_time = time.time()
    try:
        db.session.execute(text("SELECT 1"))
        status = "healthy"
    except Exception:
        current_app.logger.exception("Database health check failed")
        db.session.rollback()
        status = "unhealthy"
    elapsed_ms = (time.time() - start_time) * 1000
    code = 200 if status == "healthy" else 503
    return {
        "status": status,
        "database": {"status": status, "latency_ms": round(elapsed_ms, 2)},
        "timestamp": to_utc_z(utcnow()),
    }, code
