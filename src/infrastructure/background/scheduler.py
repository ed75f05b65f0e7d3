# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Periodic triggering of the progress actors.

An APScheduler AsyncIOScheduler fires on cron triggers and sends a
message to the matching Dramatiq actor. Nothing runs in the scheduler
process itself, so a slow snapshot run never delays the next trigger.

Default jobs (DEFAULT_JOBS):
    - Daily at 02:00: refresh_due_snapshots_job
    - Fridays at 20:00: generate_weekly_progress_job

Run the scheduler process with:
    python -m src.infrastructure.background.scheduler
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable
from uuid import uuid4

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.base import BaseTrigger
from apscheduler.triggers.cron import CronTrigger

from src.core.config import get_settings
from src.infrastructure.background.broker import setup_dramatiq
from src.utils.logging import setup_logging

logger = logging.getLogger(__name__)

# (name, actor, cron expression); weekdays by name since APScheduler
# counts them from Monday
DEFAULT_JOBS: tuple[tuple[str, str, str], ...] = (
    ("Due Snapshot Refresh", "refresh_due_snapshots_job", "0 2 * * *"),
    ("Weekly Progress Generation", "generate_weekly_progress_job", "0 20 * * fri"),
)

# A trigger missed by less than this (scheduler restart, clock jump) still fires once
MISFIRE_GRACE_SECONDS = 300

ActorLookup = Callable[[str], Any]


@dataclass
class ScheduledTask:
    """A trigger bound to a Dramatiq actor.

    Attributes:
        name: Human-readable task name.
        actor_name: Name of the actor to send a message to.
        trigger: APScheduler trigger deciding when the task fires.
        args: Positional message arguments.
        kwargs: Keyword message arguments.
        id: Task and APScheduler job id.
        enabled: Disabled tasks are kept but never fire.
        last_run: When a message was last sent.
        run_count: Messages sent so far.
        error_count: Fires that failed to send.
    """

    name: str
    actor_name: str
    trigger: BaseTrigger
    args: tuple = ()
    kwargs: dict[str, Any] = field(default_factory=dict)
    id: str = field(default_factory=lambda: str(uuid4()))
    enabled: bool = True
    last_run: datetime | None = None
    run_count: int = 0
    error_count: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "actor_name": self.actor_name,
            "trigger": str(self.trigger),
            "enabled": self.enabled,
            "last_run": self.last_run.isoformat() if self.last_run else None,
            "run_count": self.run_count,
            "error_count": self.error_count,
        }


def parse_cron_expression(cron_expression: str, tz: str) -> CronTrigger:
    """Build a CronTrigger from ``minute hour day month weekday``.

    Raises:
        ValueError: If the expression does not have five fields.
    """
    fields = cron_expression.split()
    if len(fields) != 5:
        raise ValueError(f"Invalid cron expression: {cron_expression!r}")

    minute, hour, day, month, day_of_week = fields
    return CronTrigger(
        minute=minute,
        hour=hour,
        day=day,
        month=month,
        day_of_week=day_of_week,
        timezone=tz,
    )


def _lookup_actor(actor_name: str) -> Any:
    from src.infrastructure.background import tasks

    return getattr(tasks, actor_name, None)


class DramatiqScheduler:
    """Sends Dramatiq messages on cron triggers.

    Tasks may be added before or after start(); APScheduler holds jobs
    added while stopped until it starts. is_running follows start() and
    stop() immediately, while APScheduler finishes its shutdown on the
    event loop.
    """

    def __init__(self, timezone: str = "UTC", actor_lookup: ActorLookup | None = None) -> None:
        self.timezone = timezone
        self._actor_lookup = actor_lookup or _lookup_actor
        self._scheduler = AsyncIOScheduler(timezone=timezone)
        self._tasks: dict[str, ScheduledTask] = {}
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    def _register(self, task: ScheduledTask) -> ScheduledTask:
        self._tasks[task.id] = task
        if task.enabled:
            self._scheduler.add_job(
                self._enqueue,
                trigger=task.trigger,
                args=[task.id],
                id=task.id,
                name=task.name,
                coalesce=True,
                max_instances=1,
                misfire_grace_time=MISFIRE_GRACE_SECONDS,
            )
        return task

    def add_cron_task(
        self,
        name: str,
        actor_name: str,
        cron_expression: str,
        args: tuple = (),
        kwargs: dict[str, Any] | None = None,
        enabled: bool = True,
    ) -> ScheduledTask:
        """Schedule an actor on a five-field cron expression.

        Raises:
            ValueError: If the cron expression is invalid.
        """
        task = self._register(
            ScheduledTask(
                name=name,
                actor_name=actor_name,
                trigger=parse_cron_expression(cron_expression, self.timezone),
                args=args,
                kwargs=kwargs or {},
                enabled=enabled,
            )
        )
        logger.info("Scheduled %s: %s (%s %s)", actor_name, name, cron_expression, self.timezone)
        return task

    async def _enqueue(self, task_id: str) -> None:
        """Send the task's message. Failures are counted, never raised."""
        task = self._tasks.get(task_id)
        if task is None or not task.enabled:
            return

        try:
            actor = self._actor_lookup(task.actor_name)
            if actor is None:
                raise LookupError(f"Actor not found: {task.actor_name}")
            actor.send(*task.args, **task.kwargs)
        except Exception as e:
            task.error_count += 1
            logger.error("Scheduled task %s failed to enqueue: %s", task.name, e)
            return

        task.last_run = datetime.now(timezone.utc)
        task.run_count += 1
        logger.debug("Scheduled task %s enqueued", task.name)

    def remove_task(self, task_id: str) -> bool:
        """Remove a task. Returns False if the id is unknown."""
        task = self._tasks.pop(task_id, None)
        if task is None:
            return False

        try:
            self._scheduler.remove_job(task_id)
        except JobLookupError:
            # Disabled tasks never had a job
            pass

        logger.info("Removed scheduled task: %s", task.name)
        return True

    def get_task(self, task_id: str) -> ScheduledTask | None:
        return self._tasks.get(task_id)

    def list_tasks(self) -> list[ScheduledTask]:
        return list(self._tasks.values())

    def next_run_time(self, task_id: str) -> datetime | None:
        """Next fire time of a task, None while stopped or disabled."""
        job = self._scheduler.get_job(task_id)
        return getattr(job, "next_run_time", None) if job is not None else None

    async def start(self) -> None:
        if self._running:
            return
        self._scheduler.start()
        self._running = True
        logger.info("Scheduler started (timezone: %s)", self.timezone)

    async def stop(self) -> None:
        if not self._running:
            return
        self._scheduler.shutdown(wait=False)
        self._running = False
        # AsyncIOScheduler completes shutdown in a loop callback
        await asyncio.sleep(0)
        logger.info("Scheduler stopped")

    def get_stats(self) -> dict[str, Any]:
        tasks = self.list_tasks()
        return {
            "is_running": self.is_running,
            "timezone": self.timezone,
            "task_count": len(tasks),
            "enabled_count": sum(1 for t in tasks if t.enabled),
            "total_runs": sum(t.run_count for t in tasks),
            "total_errors": sum(t.error_count for t in tasks),
            "tasks": [t.to_dict() for t in tasks],
        }


_scheduler: DramatiqScheduler | None = None


def get_scheduler() -> DramatiqScheduler:
    """Get the singleton scheduler, in the configured timezone."""
    global _scheduler
    if _scheduler is None:
        _scheduler = DramatiqScheduler(timezone=get_settings().progress.scheduler_timezone)
    return _scheduler


def register_default_jobs(scheduler: DramatiqScheduler) -> list[ScheduledTask]:
    """Add DEFAULT_JOBS that the scheduler does not already have."""
    existing = {task.actor_name for task in scheduler.list_tasks()}
    return [
        scheduler.add_cron_task(name=name, actor_name=actor_name, cron_expression=cron)
        for name, actor_name, cron in DEFAULT_JOBS
        if actor_name not in existing
    ]


async def start_scheduler() -> DramatiqScheduler:
    """Start the singleton scheduler with the default progress jobs."""
    scheduler = get_scheduler()
    register_default_jobs(scheduler)
    await scheduler.start()
    for task in scheduler.list_tasks():
        logger.info("%s next runs at %s", task.name, scheduler.next_run_time(task.id))
    return scheduler


async def stop_scheduler() -> None:
    global _scheduler
    if _scheduler is not None:
        await _scheduler.stop()
        _scheduler = None


async def run_scheduler() -> None:
    """Run the scheduler process until it is cancelled."""
    setup_logging(get_settings(), component="scheduler")
    setup_dramatiq()

    await start_scheduler()
    try:
        await asyncio.Event().wait()
    finally:
        await stop_scheduler()


if __name__ == "__main__":
    asyncio.run(run_scheduler())
