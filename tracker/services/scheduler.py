"""
Background scheduler service for the fuel tracker.

Periodically replays writes that were queued while the database was
unavailable, so pending entries are persisted without a user retrying.
"""

import logging

from apscheduler.schedulers.background import BackgroundScheduler
from config import Config
from database import SessionLocal
from exceptions import FuelTrackerError

logger = logging.getLogger(__name__)

# Module-level scheduler instance
scheduler = None


def reconcile_pending_writes(trackers):
    """
    Replay queued writes for every tracker.

    Runs outside any request, so the scoped session is released afterwards.

    Returns:
        Total number of writes applied
    """
    applied = 0
    try:
        for tracker in trackers:
            try:
                result = tracker.reconcile()
            except FuelTrackerError as e:
                logger.error(f"Reconciliation failed for {tracker.topic}: {e}")
                continue
            applied += result["applied"]
            if result["remaining"]:
                logger.info(f"{result['remaining']} {tracker.topic} writes still queued")
    finally:
        SessionLocal.remove()
    return applied


def init_scheduler(trackers, interval_seconds=None):
    """
    Initialize and start the background scheduler.

    Args:
        trackers: ConsumptionTrackers whose write queues should be drained
        interval_seconds: Override for Config.RECONCILE_INTERVAL_SECONDS

    Returns:
        The BackgroundScheduler instance
    """
    global scheduler
    scheduler = BackgroundScheduler()
    scheduler.add_job(
        reconcile_pending_writes,
        "interval",
        seconds=interval_seconds or Config.RECONCILE_INTERVAL_SECONDS,
        args=[list(trackers)],
        id="reconcile_pending_writes",
        coalesce=True,
        max_instances=1,
    )
    scheduler.start()
    logger.info("Background scheduler initialized")
    return scheduler


def shutdown_scheduler():
    """Shutdown the background scheduler gracefully."""
    global scheduler
    if scheduler:
        scheduler.shutdown()
        scheduler = None
        logger.info("Background scheduler shut down")
