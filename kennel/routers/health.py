"""
Health Check Endpoints

- /health/live  - Liveness check (is process running)
- /health/ready - Readiness check (database reachable), with sweep status
"""

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
from sqlalchemy import text
from datetime import datetime, timezone
import time

from ..database import get_db
from ..services.sweep_scheduler import get_sweep_status

router = APIRouter(prefix="/health", tags=["Health"])


def get_db_health(db: Session) -> dict:
    """Check database connectivity and latency"""
    try:
        start = time.time()
        db.execute(text("SELECT 1"))
        latency_ms = (time.time() - start) * 1000
        return {
            "status": "up",
            "latency_ms": round(latency_ms, 2),
            "type": db.bind.dialect.name
        }
    except Exception as e:
        return {
            "status": "down",
            "error": str(e)[:100]
        }


@router.get("/live")
@router.get("/live/")
async def liveness_check():
    return {
        "status": "alive",
        "timestamp": datetime.now(timezone.utc).isoformat()
    }


@router.get("/ready")
@router.get("/ready/")
async def readiness_check(db: Session = Depends(get_db)):
    """Ready when the database answers; sweep status is informational."""
    db_health = get_db_health(db)

    if db_health["status"] == "up":
        return {
            "status": "ready",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "database": db_health,
            "sweep": get_sweep_status()
        }

    raise HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail={
            "status": "not_ready",
            "reason": "database_unavailable",
            "timestamp": datetime.now(timezone.utc).isoformat()
        }
    )
