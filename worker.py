#!/usr/bin/env python
"""
Reservation Sweep Worker

Standalone process that reclaims expired reservation holds, for
deployments that run the API with SWEEP_ENABLED=false.

Run with:
    python worker.py

Or with environment:
    SWEEP_INTERVAL_SECONDS=30 python worker.py
"""

import sys
import time
import logging
import signal

from kennel.config import settings
from kennel.services.sweep_scheduler import run_sweep
from kennel.utils.logging_config import setup_logging

logger = logging.getLogger("kennel.worker")

RUNNING = True


def signal_handler(signum, frame):
    """Handle shutdown signals gracefully"""
    global RUNNING
    logger.info("Received shutdown signal, finishing current sweep...")
    RUNNING = False


def run_worker(interval: int = None):
    """Main worker loop"""
    interval = interval or settings.sweep_interval_seconds
    logger.info(f"Starting reservation sweep worker (every {interval}s, TTL {settings.reservation_ttl_min} min)")

    cycle = 0
    while RUNNING:
        cycle += 1
        start_time = time.time()

        result = run_sweep()
        if result["reclaimed"] or result["error"]:
            logger.info(
                f"Cycle {cycle}: reclaimed {result['reclaimed']} | "
                f"error {result['error'] or '-'} | {time.time() - start_time:.2f}s"
            )

        # Sleep in short steps so a shutdown signal is honoured promptly
        deadline = time.time() + interval
        while RUNNING and time.time() < deadline:
            time.sleep(max(0.0, min(1.0, deadline - time.time())))

    logger.info("Worker shutdown complete")


if __name__ == "__main__":
    setup_logging(settings.log_level, json_format=settings.log_json or settings.is_production, include_uvicorn=False)

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    try:
        run_worker()
    except KeyboardInterrupt:
        logger.info("Worker interrupted by user")
    except Exception as e:
        logger.critical(f"Worker crashed: {e}")
        sys.exit(1)
