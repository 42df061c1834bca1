"""APScheduler job definitions."""

import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from resale_market.config import settings
from resale_market.worker.tasks import run_scheduled_sync

logger = logging.getLogger(__name__)


def setup_scheduler() -> AsyncIOScheduler:
    """
    Setup and configure APScheduler.

    The market sync runs every ``settings.sync_interval_minutes``; each run
    is bounded by ``sync_budget_seconds`` and ``sync_max_items_per_run``.

    Returns:
        Configured scheduler instance
    """
    scheduler = AsyncIOScheduler()
    interval = max(1, int(settings.sync_interval_minutes))

    scheduler.add_job(
        run_scheduled_sync,
        IntervalTrigger(minutes=interval),
        id="market_sync",
        name="Refresh stale marketplace prices",
        max_instances=1,  # Prevent overlapping runs
        coalesce=True,
        misfire_grace_time=600,
        replace_existing=True,
    )

    logger.info(
        "Scheduler configured: market sync every %d minutes (budget %ss, max %d items)",
        interval,
        settings.sync_budget_seconds,
        settings.sync_max_items_per_run,
    )
    return scheduler
