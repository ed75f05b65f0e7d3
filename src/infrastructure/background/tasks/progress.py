# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Progress pipeline actors.

Actors:
    - refresh_due_snapshots_job: Daily at 02:00, refreshes due snapshots
    - refresh_classroom_snapshots: Sent after a classroom's daily activity
      is submitted, refreshes every enrolled student
    - refresh_all_snapshots: On demand, refreshes every active student
    - generate_weekly_progress_job: Fridays at 20:00, generates the
      current week's progress for every classroom

Each actor returns its run summary. Failures are logged and reported
as ``{"status": "failed", "error": ...}`` instead of being retried.
"""

import logging
from datetime import datetime
from typing import Any
from zoneinfo import ZoneInfo

import dramatiq

from src.core.config import get_settings
from src.domains.progress.batch import SnapshotBatchScheduler
from src.domains.progress.calendar import AcademicCalendar, get_week_info
from src.domains.progress.service import ProgressSnapshotService, WeeklyProgressService
from src.infrastructure.background.broker import Priority, Queues, setup_dramatiq
from src.infrastructure.background.tasks.base import run_async
from src.infrastructure.cache.facade import CacheFacade
from src.infrastructure.cache.redis_client import get_worker_redis
from src.infrastructure.database.connection import get_worker_db_manager
from src.infrastructure.notifications.risk_alerts import RiskAlertSink

setup_dramatiq()

logger = logging.getLogger(__name__)


async def build_batch_scheduler() -> SnapshotBatchScheduler:
    """Wire a batch scheduler to the worker thread's database and Redis."""
    settings = get_settings().progress
    db = get_worker_db_manager()
    redis = await get_worker_redis()

    snapshots = ProgressSnapshotService(
        session_factory=db.get_session,
        cache=CacheFacade(redis),
        alerts=RiskAlertSink(db.get_session, redis=redis),
        settings=settings,
    )
    return SnapshotBatchScheduler(
        refresh=snapshots.refresh_snapshot,
        session_factory=db.get_session,
        settings=settings,
    )


async def build_weekly_service() -> WeeklyProgressService:
    """Wire a weekly progress service to the worker thread's resources."""
    settings = get_settings().progress
    db = get_worker_db_manager()
    cache = CacheFacade(await get_worker_redis())

    calendar = AcademicCalendar(
        db.get_session,
        cache,
        cache_ttl=settings.academic_config_cache_ttl,
        default_weekend_days=settings.default_weekend_days,
    )
    return WeeklyProgressService(db.get_session, cache, calendar, settings=settings)


@dramatiq.actor(
    queue_name=Queues.PROGRESS,
    max_retries=0,
    time_limit=3600000,  # 1 hour
    priority=Priority.NORMAL,
)
def refresh_due_snapshots_job() -> dict[str, Any]:
    """Scheduler job: refresh snapshots whose recalculation is due.

    Returns:
        ``{processed, errors, total}``.
    """
    logger.info("Due snapshot refresh job triggered")

    async def _process() -> dict[str, Any]:
        scheduler = await build_batch_scheduler()
        result = await scheduler.run_due()
        return result.to_dict()

    try:
        return run_async(_process())
    except Exception as e:
        logger.error("Due snapshot refresh job failed: %s", e, exc_info=True)
        return {"status": "failed", "error": str(e)}


@dramatiq.actor(
    queue_name=Queues.PROGRESS,
    max_retries=0,
    time_limit=600000,  # 10 minutes
    priority=Priority.HIGH,
)
def refresh_classroom_snapshots(class_room_id: str) -> dict[str, Any]:
    """Refresh the snapshots of every student enrolled in a classroom.

    Args:
        class_room_id: Classroom whose activity was just submitted.

    Returns:
        ``{class_room_id, successful, failed, total}``.
    """
    logger.info("Classroom snapshot refresh triggered: %s", class_room_id)

    async def _process() -> dict[str, Any]:
        scheduler = await build_batch_scheduler()
        result = await scheduler.run_for_classroom(class_room_id)
        return result.to_dict()

    try:
        return run_async(_process())
    except Exception as e:
        logger.error(
            "Classroom snapshot refresh failed for %s: %s",
            class_room_id,
            e,
            exc_info=True,
        )
        return {"status": "failed", "class_room_id": class_room_id, "error": str(e)}


@dramatiq.actor(
    queue_name=Queues.LOW_PRIORITY,
    max_retries=0,
    time_limit=7200000,  # 2 hours
    priority=Priority.LOW,
)
def refresh_all_snapshots() -> dict[str, Any]:
    """Refresh the snapshot of every active eligible student.

    Returns:
        ``{processed, errors, total}``.
    """
    logger.info("Full snapshot refresh triggered")

    async def _process() -> dict[str, Any]:
        scheduler = await build_batch_scheduler()
        result = await scheduler.run_full()
        return result.to_dict()

    try:
        return run_async(_process())
    except Exception as e:
        logger.error("Full snapshot refresh failed: %s", e, exc_info=True)
        return {"status": "failed", "error": str(e)}


@dramatiq.actor(
    queue_name=Queues.PROGRESS,
    max_retries=0,
    time_limit=3600000,  # 1 hour
    priority=Priority.NORMAL,
)
def generate_weekly_progress_job(
    week_number: int | None = None,
    year: int | None = None,
) -> dict[str, Any]:
    """Scheduler job: generate weekly progress for every classroom.

    Args:
        week_number: ISO week. Defaults to the current week.
        year: ISO year. Defaults to the current week's year.

    Returns:
        ``{week_number, year, classrooms, successful, failed}``.
    """
    if week_number is None or year is None:
        tz = ZoneInfo(get_settings().progress.scheduler_timezone)
        week_number, year = get_week_info(datetime.now(tz).date())

    logger.info("Weekly progress job triggered for week %s/%s", week_number, year)

    async def _process() -> dict[str, Any]:
        service = await build_weekly_service()
        results = await service.generate_for_all_classrooms(week_number, year)
        entries = [entry for classroom in results.values() for entry in classroom]
        successful = sum(1 for entry in entries if entry["status"] == "success")
        return {
            "week_number": week_number,
            "year": year,
            "classrooms": len(results),
            "successful": successful,
            "failed": len(entries) - successful,
        }

    try:
        summary = run_async(_process())
        logger.info(
            "Weekly progress job completed: %d successful, %d failed",
            summary["successful"],
            summary["failed"],
        )
        return summary
    except Exception as e:
        logger.error("Weekly progress job failed: %s", e, exc_info=True)
        return {"status": "failed", "error": str(e)}
