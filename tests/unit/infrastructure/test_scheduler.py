# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for the Dramatiq scheduler."""

from unittest.mock import MagicMock

import pytest
from apscheduler.triggers.cron import CronTrigger

from src.infrastructure.background.scheduler import (
    DEFAULT_JOBS,
    DramatiqScheduler,
    parse_cron_expression,
    register_default_jobs,
    start_scheduler,
    stop_scheduler,
)


@pytest.fixture
def actors():
    """Actor doubles by name."""
    return {}


@pytest.fixture
def scheduler(actors):
    return DramatiqScheduler(timezone="UTC", actor_lookup=actors.get)


def cron_fields(trigger: CronTrigger) -> dict[str, str]:
    return {f.name: str(f) for f in trigger.fields}


class TestParseCronExpression:
    """Tests for cron expression parsing."""

    def test_weekly_friday_evening(self):
        trigger = parse_cron_expression("0 20 * * fri", "UTC")

        fields = cron_fields(trigger)
        assert fields["minute"] == "0"
        assert fields["hour"] == "20"
        assert fields["day_of_week"] == "fri"

    @pytest.mark.parametrize("expression", ["0 2 * *", "0 2 * * * *", ""])
    def test_wrong_field_count(self, expression):
        with pytest.raises(ValueError):
            parse_cron_expression(expression, "UTC")


class TestTaskRegistration:
    """Tests for adding and removing tasks."""

    def test_add_cron_task_while_stopped(self, scheduler):
        task = scheduler.add_cron_task(
            name="Due Snapshot Refresh",
            actor_name="refresh_due_snapshots_job",
            cron_expression="0 2 * * *",
        )

        assert scheduler.get_task(task.id) is task
        assert scheduler.list_tasks() == [task]
        assert isinstance(task.trigger, CronTrigger)
        assert not scheduler.is_running

    def test_invalid_cron_is_not_registered(self, scheduler):
        with pytest.raises(ValueError):
            scheduler.add_cron_task(name="Broken", actor_name="x", cron_expression="bad")

        assert scheduler.list_tasks() == []

    def test_remove_task(self, scheduler):
        task = scheduler.add_cron_task(name="Tick", actor_name="x", cron_expression="*/5 * * * *")

        assert scheduler.remove_task(task.id) is True
        assert scheduler.remove_task(task.id) is False
        assert scheduler.get_task(task.id) is None

    def test_remove_disabled_task(self, scheduler):
        task = scheduler.add_cron_task(
            name="Off", actor_name="x", cron_expression="0 2 * * *", enabled=False
        )

        assert scheduler.remove_task(task.id) is True

    def test_default_jobs_registered_once(self, scheduler):
        first = register_default_jobs(scheduler)
        second = register_default_jobs(scheduler)

        assert [t.actor_name for t in first] == [actor for _, actor, _ in DEFAULT_JOBS]
        assert second == []
        weekly = next(t for t in first if t.actor_name == "generate_weekly_progress_job")
        assert cron_fields(weekly.trigger)["day_of_week"] == "fri"
        assert cron_fields(weekly.trigger)["hour"] == "20"


class TestEnqueue:
    """Tests for sending scheduled messages."""

    @pytest.mark.asyncio
    async def test_sends_message(self, scheduler, actors):
        actors["generate_weekly_progress_job"] = MagicMock()
        task = scheduler.add_cron_task(
            name="Weekly Progress Generation",
            actor_name="generate_weekly_progress_job",
            cron_expression="0 20 * * fri",
            kwargs={"week_number": 10, "year": 2025},
        )

        await scheduler._enqueue(task.id)

        actors["generate_weekly_progress_job"].send.assert_called_once_with(week_number=10, year=2025)
        assert task.run_count == 1
        assert task.last_run is not None

    @pytest.mark.asyncio
    async def test_missing_actor_counts_error(self, scheduler):
        task = scheduler.add_cron_task(
            name="Ghost", actor_name="no_such_actor", cron_expression="0 2 * * *"
        )

        await scheduler._enqueue(task.id)

        assert task.error_count == 1
        assert task.run_count == 0
        assert task.last_run is None

    @pytest.mark.asyncio
    async def test_send_failure_counts_error(self, scheduler, actors):
        actors["refresh_due_snapshots_job"] = MagicMock()
        actors["refresh_due_snapshots_job"].send.side_effect = ConnectionError("redis down")
        task = scheduler.add_cron_task(
            name="Due", actor_name="refresh_due_snapshots_job", cron_expression="0 2 * * *"
        )

        await scheduler._enqueue(task.id)

        assert task.error_count == 1

    @pytest.mark.asyncio
    async def test_disabled_task_is_skipped(self, scheduler, actors):
        actors["x"] = MagicMock()
        task = scheduler.add_cron_task(
            name="Off", actor_name="x", cron_expression="0 2 * * *", enabled=False
        )

        await scheduler._enqueue(task.id)

        actors["x"].send.assert_not_called()


class TestLifecycle:
    """Tests for starting, stopping and stats."""

    @pytest.mark.asyncio
    async def test_start_and_stop(self, scheduler):
        task = scheduler.add_cron_task(name="Due", actor_name="x", cron_expression="0 2 * * *")

        await scheduler.start()
        try:
            assert scheduler.is_running
            assert scheduler.next_run_time(task.id) is not None
        finally:
            await scheduler.stop()

        assert not scheduler.is_running

    @pytest.mark.asyncio
    async def test_restart_after_stop(self, scheduler):
        task = scheduler.add_cron_task(name="Due", actor_name="x", cron_expression="0 2 * * *")

        await scheduler.start()
        await scheduler.stop()
        await scheduler.start()
        try:
            assert scheduler.is_running
            assert scheduler.next_run_time(task.id) is not None
        finally:
            await scheduler.stop()

        assert not scheduler.is_running

    @pytest.mark.asyncio
    async def test_start_scheduler_registers_default_jobs(self, scheduler, monkeypatch):
        monkeypatch.setattr("src.infrastructure.background.scheduler._scheduler", scheduler)

        started = await start_scheduler()
        try:
            assert started is scheduler
            assert scheduler.is_running
            assert {t.actor_name for t in scheduler.list_tasks()} == {
                actor for _, actor, _ in DEFAULT_JOBS
            }
        finally:
            await stop_scheduler()

        assert not scheduler.is_running

    def test_stats(self, scheduler):
        scheduler.add_cron_task(name="A", actor_name="x", cron_expression="0 2 * * *")
        scheduler.add_cron_task(
            name="B", actor_name="y", cron_expression="0 3 * * *", enabled=False
        )

        stats = scheduler.get_stats()

        assert stats["task_count"] == 2
        assert stats["enabled_count"] == 1
        assert stats["timezone"] == "UTC"
        assert stats["is_running"] is False
        assert stats["total_runs"] == 0
