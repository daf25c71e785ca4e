"""Background pruning of the mirror and parse cache."""

import logging
import threading
from datetime import datetime, timezone
from typing import Optional

from apscheduler.schedulers.background import BackgroundScheduler

from config import PRUNE_INTERVAL_MINUTES

logger = logging.getLogger(__name__)

_scheduler: Optional[BackgroundScheduler] = None
_lock = threading.Lock()
_last_result: Optional[dict] = None


def prune_caches(resolver) -> dict:
    """Drop expired entries from the mirror and parse cache.

    Lookups already purge lazily; this keeps idle entries from piling up.
    """
    global _last_result

    result = {
        "mirror_pruned": resolver.store.mirror.prune(),
        "parse_cache_pruned": resolver.parse_cache.prune(),
        "finished_at": datetime.now(timezone.utc).isoformat(),
    }
    _last_result = result
    if result["mirror_pruned"] or result["parse_cache_pruned"]:
        logger.info(f"Prune done: {result}")
    return result


def _prune_job(resolver):
    """APScheduler job wrapper."""
    try:
        prune_caches(resolver)
    except Exception as e:
        logger.error(f"Prune failed: {e}")


def start_scheduler(resolver, interval_minutes: Optional[float] = None):
    """Start the background scheduler."""
    global _scheduler

    with _lock:
        if _scheduler and _scheduler.running:
            _scheduler.shutdown(wait=False)

        if interval_minutes is None:
            interval_minutes = PRUNE_INTERVAL_MINUTES

        _scheduler = BackgroundScheduler()
        _scheduler.add_job(
            _prune_job,
            "interval",
            minutes=interval_minutes,
            args=[resolver],
            id="prune_job",
            replace_existing=True,
        )
        _scheduler.start()
        logger.info(f"Scheduler started: pruning every {interval_minutes}m")


def stop_scheduler():
    global _scheduler

    with _lock:
        if _scheduler and _scheduler.running:
            _scheduler.shutdown(wait=False)
        _scheduler = None
        logger.info("Scheduler stopped")


def get_status() -> dict:
    running = _scheduler is not None and _scheduler.running

    status = {
        "running": running,
        "last_result": _last_result,
    }

    if running:
        job = _scheduler.get_job("prune_job")
        if job and job.next_run_time:
            status["next_run"] = job.next_run_time.isoformat()

    return status
