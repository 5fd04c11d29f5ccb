"""
Sweep Scheduler Service

Reclaims expired reservation holds on a fixed interval (default 60 s)
inside the API process. worker.py runs the same sweep standalone.

Uses APScheduler's AsyncIOScheduler; the job itself is synchronous so the
scheduler runs it on its thread pool, off the event loop.
"""

import logging
from datetime import datetime
from typing import Dict, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from ..config import settings
from ..database import SessionLocal
from ..utils.clock import utcnow
from ..utils.metrics import record_sweep
from .reservation_holder import ReservationHolder

logger = logging.getLogger(__name__)

SWEEP_JOB_ID = "reservation_sweep"

# Global scheduler instance
_scheduler: Optional[AsyncIOScheduler] = None
_last_run_time: Optional[datetime] = None
_last_run_result: Optional[Dict] = None


def run_sweep(now: Optional[datetime] = None, session_factory=SessionLocal) -> Dict:
    """
    One sweep pass in its own session.

    Returns:
        Dict with keys: reclaimed, run_at, error
    """
    global _last_run_time, _last_run_result

    run_at = now or utcnow()
    result = {"reclaimed": 0, "run_at": run_at.isoformat(), "error": None}

    db = session_factory()
    try:
        result["reclaimed"] = ReservationHolder(db).sweep_expired(run_at)
        record_sweep(True, result["reclaimed"])
    except Exception as e:
        # Next tick retries; the job must never kill the scheduler
        logger.error(f"Reservation sweep failed: {e}", exc_info=True)
        result["error"] = str(e)
        record_sweep(False)
    finally:
        db.close()

    _last_run_time = run_at
    _last_run_result = result
    return result


def start_sweep_scheduler(interval_seconds: Optional[int] = None) -> bool:
    """
    Start the interval sweep.

    Returns:
        True if scheduler started (or was already running), False otherwise
    """
    global _scheduler

    if _scheduler is not None and _scheduler.running:
        logger.warning("Sweep scheduler is already running")
        return True

    interval = interval_seconds or settings.sweep_interval_seconds
    try:
        _scheduler = AsyncIOScheduler(timezone="UTC")
        _scheduler.add_job(
            run_sweep,
            IntervalTrigger(seconds=interval),
            id=SWEEP_JOB_ID,
            name=f"Expired hold sweep every {interval}s",
            max_instances=1,
            coalesce=True,
            replace_existing=True
        )
        _scheduler.start()

        logger.info(f"Sweep scheduler started (every {interval}s)")
        return True

    except Exception as e:
        logger.error(f"Failed to start sweep scheduler: {e}")
        _scheduler = None
        return False


def stop_sweep_scheduler() -> bool:
    global _scheduler

    if _scheduler is None:
        return True

    try:
        _scheduler.shutdown(wait=False)
        _scheduler = None
        logger.info("Sweep scheduler stopped")
        return True
    except Exception as e:
        logger.error(f"Failed to stop sweep scheduler: {e}")
        return False


def get_sweep_status() -> Dict:
    """Scheduler state for the health endpoint"""
    status = {
        "running": False,
        "next_run": None,
        "last_run": _last_run_time.isoformat() if _last_run_time else None,
        "last_result": _last_run_result,
    }

    if _scheduler is not None and _scheduler.running:
        status["running"] = True
        job = _scheduler.get_job(SWEEP_JOB_ID)
        if job is not None and job.next_run_time:
            status["next_run"] = job.next_run_time.isoformat()

    return status
