from __future__ import annotations

import logging
from typing import Optional

from apscheduler.schedulers.background import BackgroundScheduler

from services.sync import SyncOrchestrator

LOGGER = logging.getLogger(__name__)

STALE_SYNC_JOB_ID = "stale_location_sync"


def run_stale_sync_job(orchestrator: SyncOrchestrator) -> None:
    outcomes = orchestrator.sync_stale_locations()
    failed = [outcome.location_id for outcome in outcomes if not outcome.succeeded]
    if failed:
        LOGGER.warning("Scheduled sync left %d location(s) unsynced: %s", len(failed), failed)


def build_scheduler(
    orchestrator: SyncOrchestrator, interval_minutes: int
) -> Optional[BackgroundScheduler]:
    """Return a scheduler for the periodic stale sync, or None when disabled."""
    if interval_minutes <= 0:
        LOGGER.info("Periodic sync disabled")
        return None

    scheduler = BackgroundScheduler(timezone="UTC")
    scheduler.add_job(
        run_stale_sync_job,
        "interval",
        kwargs={"orchestrator": orchestrator},
        minutes=interval_minutes,
        id=STALE_SYNC_JOB_ID,
        replace_existing=True,
        max_instances=1,
        coalesce=True,
        misfire_grace_time=120,
    )
    return scheduler
