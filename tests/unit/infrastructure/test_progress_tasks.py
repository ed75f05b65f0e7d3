# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for the progress pipeline actors.

Actors run against the stub broker (DRAMATIQ_TEST_MODE) and are called
directly, with their service wiring patched out.
"""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
import structlog
from dramatiq import Message
from dramatiq.brokers.stub import StubBroker

from src.infrastructure.background.broker import Queues, get_broker, get_broker_manager
from src.infrastructure.background.middleware import LogContextMiddleware
from src.infrastructure.background.tasks import (
    generate_weekly_progress_job,
    get_all_actors,
    refresh_all_snapshots,
    refresh_classroom_snapshots,
    refresh_due_snapshots_job,
)
from src.models.progress import BatchRunResult, ClassroomRunResult

TASKS = "src.infrastructure.background.tasks.progress"


@pytest.fixture
def batch_scheduler():
    scheduler = MagicMock()
    scheduler.run_due = AsyncMock(return_value=BatchRunResult(processed=44, errors=1, total=45))
    scheduler.run_full = AsyncMock(return_value=BatchRunResult(processed=3, errors=0, total=3))
    scheduler.run_for_classroom = AsyncMock(
        return_value=ClassroomRunResult(class_room_id="class-1", successful=2, failed=0, total=2)
    )
    with patch(f"{TASKS}.build_batch_scheduler", AsyncMock(return_value=scheduler)):
        yield scheduler


class TestSnapshotActors:
    """Tests for the snapshot refresh actors."""

    def test_due_job_returns_summary(self, batch_scheduler):
        assert refresh_due_snapshots_job() == {"processed": 44, "errors": 1, "total": 45}

    def test_classroom_job_returns_summary(self, batch_scheduler):
        result = refresh_classroom_snapshots("class-1")

        assert result == {"class_room_id": "class-1", "successful": 2, "failed": 0, "total": 2}
        batch_scheduler.run_for_classroom.assert_awaited_once_with("class-1")

    def test_full_job_returns_summary(self, batch_scheduler):
        assert refresh_all_snapshots()["total"] == 3

    def test_failure_is_reported_not_raised(self, batch_scheduler):
        batch_scheduler.run_due.side_effect = RuntimeError("database unavailable")

        result = refresh_due_snapshots_job()

        assert result == {"status": "failed", "error": "database unavailable"}


class TestWeeklyProgressActor:
    """Tests for the weekly progress actor."""

    def test_summarizes_classroom_results(self):
        service = MagicMock()
        service.generate_for_all_classrooms = AsyncMock(
            return_value={
                "class-1": [
                    {"student_id": "s1", "status": "success", "progress_id": "p1"},
                    {"student_id": "s2", "status": "failed", "error": "boom"},
                ],
                "class-2": [{"student_id": "s3", "status": "success", "progress_id": "p3"}],
            }
        )

        with patch(f"{TASKS}.build_weekly_service", AsyncMock(return_value=service)):
            result = generate_weekly_progress_job(week_number=10, year=2025)

        assert result == {
            "week_number": 10,
            "year": 2025,
            "classrooms": 2,
            "successful": 2,
            "failed": 1,
        }
        service.generate_for_all_classrooms.assert_awaited_once_with(10, 2025)

    def test_defaults_to_current_week(self):
        service = MagicMock()
        service.generate_for_all_classrooms = AsyncMock(return_value={})

        with patch(f"{TASKS}.build_weekly_service", AsyncMock(return_value=service)):
            result = generate_weekly_progress_job()

        assert 1 <= result["week_number"] <= 53
        assert result["classrooms"] == 0


class TestActorRegistry:
    """Tests for actor registration."""

    def test_all_actors_listed(self):
        names = {actor.actor_name for actor in get_all_actors()}

        assert names == {
            "refresh_due_snapshots_job",
            "refresh_classroom_snapshots",
            "refresh_all_snapshots",
            "generate_weekly_progress_job",
        }


class TestLogContextMiddleware:
    """Tests for per-message log context."""

    def test_context_is_scoped_to_message(self):
        middleware = LogContextMiddleware()
        message = Message(
            queue_name="progress",
            actor_name="refresh_all_snapshots",
            args=(),
            kwargs={},
            options={},
        )

        middleware.before_process_message(MagicMock(), message)
        bound = structlog.contextvars.get_contextvars()
        middleware.after_process_message(MagicMock(), message, result=None)

        assert bound == {"message_id": message.message_id, "actor": "refresh_all_snapshots"}
        assert structlog.contextvars.get_contextvars() == {}


class TestBroker:
    """Tests for the test-mode broker."""

    def test_stub_broker_in_test_mode(self):
        assert isinstance(get_broker(), StubBroker)

    def test_actor_queues_are_declared(self):
        stats = get_broker_manager().get_queue_stats()

        assert stats["broker_type"] == "stub"
        assert Queues.PROGRESS in stats["queues"]
        assert Queues.LOW_PRIORITY in stats["queues"]
