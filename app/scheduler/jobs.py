"""
app/scheduler/jobs.py

APScheduler-based maintenance jobs for the traffic snapshot cache.

Schedule (all times UTC)
--------------------------
  prune_snapshots        monthly, SNAPSHOT_PRUNE_DAY at SNAPSHOT_PRUNE_HOUR
  refresh_stale_domains  daily at STALE_REFRESH_HOUR, only when
                           STALE_REFRESH_ENABLED is true

Lifecycle
----------
Call ``build_scheduler()`` inside the running event loop to get a configured
``AsyncIOScheduler``. Start it on app boot; shut it down on app shutdown.
The scheduler is wired into FastAPI via the ``lifespan`` context in main.py.
"""

from __future__ import annotations

import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from app.config import SchedulerSettings, get_scheduler_settings
from app.services.traffic_service import TrafficExtractionService

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Job: Monthly snapshot pruning
# ---------------------------------------------------------------------------


def prune_snapshots(service: TrafficExtractionService) -> int:
    """
    Delete snapshots older than the configured retention window.
    """
    logger.info("Scheduler: prune_snapshots starting")
    try:
        removed = service.store.prune()
    except Exception as exc:  # noqa: BLE001
        logger.warning("Scheduler: prune_snapshots failed: %s", exc)
        return 0
    logger.info("Scheduler: prune_snapshots complete removed=%d", removed)
    return removed


# ---------------------------------------------------------------------------
# Job: Daily stale-domain refresh
# ---------------------------------------------------------------------------


async def refresh_stale_domains(service: TrafficExtractionService, limit: int) -> int:
    """
    Re-extract up to `limit` domains whose latest snapshot is stale.
    """
    logger.info("Scheduler: refresh_stale_domains starting limit=%d", limit)
    try:
        refreshed = await service.refresh_stale(limit)
    except Exception as exc:  # noqa: BLE001
        logger.warning("Scheduler: refresh_stale_domains failed: %s", exc)
        return 0
    logger.info("Scheduler: refresh_stale_domains complete refreshed=%d", refreshed)
    return refreshed


# ---------------------------------------------------------------------------
# Scheduler factory
# ---------------------------------------------------------------------------


def build_scheduler(
    service: TrafficExtractionService,
    settings: SchedulerSettings | None = None,
) -> AsyncIOScheduler:
    """
    Build and register the maintenance jobs.

    Returns a configured but *not yet started* ``AsyncIOScheduler``.
    """
    settings = settings or get_scheduler_settings()
    scheduler = AsyncIOScheduler(timezone="UTC")

    scheduler.add_job(
        prune_snapshots,
        trigger="cron",
        day=settings.prune_day,
        hour=settings.prune_hour,
        minute=0,
        args=[service],
        id="prune_snapshots",
        name="Monthly snapshot pruning",
        replace_existing=True,
        misfire_grace_time=7200,
    )
    if settings.stale_refresh_enabled:
        scheduler.add_job(
            refresh_stale_domains,
            trigger="cron",
            hour=settings.stale_refresh_hour,
            minute=0,
            args=[service, settings.stale_refresh_limit],
            id="refresh_stale_domains",
            name="Daily stale domain refresh",
            replace_existing=True,
            misfire_grace_time=3600,
            max_instances=1,
        )

    return scheduler
