# backend/coachforge/api/v1/health.py

"""
Health endpoints for the CoachForge backend.

- /api/v1/health       -> lightweight liveness (no DB)
- /api/v1/health/db    -> DB readiness probe (small SELECT 1)
"""

import logging
import time

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from coachforge.core.clock import utcnow
from coachforge.core.config import Settings, get_settings
from coachforge.db.session import get_db

logger = logging.getLogger("coachforge.health")

router = APIRouter(prefix="/health", tags=["health"])


@router.get("", summary="Liveness probe")
def health(settings: Settings = Depends(get_settings)):
    """
    Does NOT touch the database. Also reports whether invites can be
    issued, so a missing pepper shows up before a coach hits a 500.
    """
    return {
        "status": "ok",
        "service": "coachforge-backend",
        "version": settings.version,
        "invites_configured": settings.invites_configured,
        "timestamp_utc": utcnow().isoformat(),
    }


@router.get("/db", summary="Database readiness probe")
def health_db(db: Session = Depends(get_db)):
    start = time.perf_counter()
    try:
        db.execute(text("SELECT 1"))
    except SQLAlchemyError:
        logger.exception("DB health check failed")
        raise HTTPException(
            status_code=503,
            detail={"code": "DB_DOWN", "message": "Database unreachable.", "db": "down"},
        )

    return {
        "status": "ok",
        "db": "up",
        "latency_ms": int((time.perf_counter() - start) * 1000),
    }
