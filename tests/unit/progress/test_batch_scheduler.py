# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for batched snapshot recomputation."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from src.core.config import ProgressSettings
from src.domains.progress.batch import SnapshotBatchScheduler
from src.infrastructure.database.connection import DatabaseError

BATCH_BREAK = "|"


@pytest.fixture
def repos():
    """Repositories double shared by every session."""
    repos = MagicMock()
    repos.snapshots.list_due = AsyncMock(return_value=[])
    repos.students.list_classroom_student_ids = AsyncMock(return_value=[])
    repos.students.list_active_student_ids = AsyncMock(return_value=[])
    return repos


@pytest.fixture
def calls():
    """Refreshed student ids, with a marker wherever the run paused."""
    return []


@pytest.fixture
def refresh(calls):
    failing = {"student-25", "classroom-student-1"}

    async def _refresh(student_id: str):
        calls.append(student_id)
        if student_id in failing:
            raise RuntimeError(f"boom for {student_id}")
        return student_id

    return AsyncMock(side_effect=_refresh)


@pytest.fixture
def sleep(calls):
    async def _sleep(delay):
        calls.append(BATCH_BREAK)

    with patch("src.domains.progress.batch.asyncio.sleep", AsyncMock(side_effect=_sleep)) as mock:
        yield mock


@pytest.fixture
def scheduler(refresh, session_factory, repos):
    return SnapshotBatchScheduler(
        refresh=refresh,
        session_factory=session_factory,
        settings=ProgressSettings(),
        repositories_factory=lambda session: repos,
    )


def batch_sizes(calls: list[str]) -> list[int]:
    sizes = [0]
    for call in calls:
        if call == BATCH_BREAK:
            sizes.append(0)
        else:
            sizes[-1] += 1
    return sizes


class TestProcessInBatches:
    """Tests for the shared batching primitive."""

    @pytest.mark.asyncio
    async def test_failure_does_not_stop_siblings(self, scheduler, refresh, sleep):
        outcome = await scheduler.process_in_batches(
            ["student-24", "student-25", "student-26"], batch_size=3
        )

        assert outcome.succeeded == 2
        assert outcome.failed == 1
        assert refresh.await_count == 3
        sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_empty_selection(self, scheduler, refresh, sleep):
        outcome = await scheduler.process_in_batches([], batch_size=20, delay_seconds=0.2)

        assert (outcome.succeeded, outcome.failed) == (0, 0)
        refresh.assert_not_awaited()
        sleep.assert_not_awaited()


class TestRunDue:
    """Tests for the due recomputation run."""

    @pytest.mark.asyncio
    async def test_forty_five_due_students(self, scheduler, repos, calls, sleep):
        """Test 45 due students run as 20, 20 and 5 with one failure."""
        repos.snapshots.list_due.return_value = [f"student-{i}" for i in range(45)]

        result = await scheduler.run_due()

        assert batch_sizes(calls) == [20, 20, 5]
        assert result.processed == 44
        assert result.errors == 1
        assert result.total == 45
        assert sleep.await_count == 2
        sleep.assert_awaited_with(0.2)

    @pytest.mark.asyncio
    async def test_selection_failure_propagates(self, scheduler, repos, sleep):
        repos.snapshots.list_due.side_effect = DatabaseError("selection failed")

        with pytest.raises(DatabaseError):
            await scheduler.run_due()

    @pytest.mark.asyncio
    async def test_nothing_due(self, scheduler, sleep):
        result = await scheduler.run_due()

        assert result.to_dict() == {"processed": 0, "errors": 0, "total": 0}


class TestRunForClassroom:
    """Tests for the classroom-scoped run."""

    @pytest.mark.asyncio
    async def test_all_students_at_once(self, scheduler, repos, calls, sleep, sample_class_room_id):
        repos.students.list_classroom_student_ids.return_value = [
            f"classroom-student-{i}" for i in range(3)
        ]

        result = await scheduler.run_for_classroom(sample_class_room_id)

        assert batch_sizes(calls) == [3]
        assert result.to_dict() == {
            "class_room_id": sample_class_room_id,
            "successful": 2,
            "failed": 1,
            "total": 3,
        }
        sleep.assert_not_awaited()
        repos.students.list_classroom_student_ids.assert_awaited_once_with(
            sample_class_room_id, ["REGULAR", "REGULAR_HIFZ"]
        )

    @pytest.mark.asyncio
    async def test_empty_classroom(self, scheduler, sleep, sample_class_room_id):
        result = await scheduler.run_for_classroom(sample_class_room_id)

        assert result.total == 0
        assert result.successful == 0


class TestRunFull:
    """Tests for the full refresh run."""

    @pytest.mark.asyncio
    async def test_pauses_after_every_batch(self, scheduler, repos, calls, sleep):
        repos.students.list_active_student_ids.return_value = [f"student-{i}" for i in range(1, 26)]

        result = await scheduler.run_full()

        assert batch_sizes(calls) == [10, 10, 5, 0]
        assert sleep.await_count == 3
        sleep.assert_awaited_with(0.3)
        assert result.processed == 24
        assert result.errors == 1
        assert result.total == 25
