# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for the progress snapshot and weekly progress services."""

from datetime import date, datetime, timedelta
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.domains.progress.exceptions import (
    IneligibleStudentError,
    NoUpdatableFieldsError,
    SnapshotNotFoundError,
    StudentNotFoundError,
    WeeklyProgressNotFoundError,
)
from src.domains.progress.service import ProgressSnapshotService, WeeklyProgressService
from src.infrastructure.database.connection import DatabaseError
from src.models.progress import (
    DailyActivityRecord,
    RiskAlert,
    RiskLevel,
    StudentSnapshot,
    WeeklyProgressData,
)
from src.utils.datetime import utc_now, utc_today


class InMemoryAlertSink:
    """Alert sink double remembering emitted alerts."""

    def __init__(self) -> None:
        self.alerts: list[tuple[RiskAlert, datetime]] = []

    async def has_recent_alert(self, student_id: str, since: datetime) -> bool:
        return any(
            alert.student_id == student_id and sent_at >= since
            for alert, sent_at in self.alerts
        )

    async def emit_risk_alert(self, alert: RiskAlert) -> None:
        self.alerts.append((alert, utc_now()))


def make_student(student_type: str = "REGULAR", teacher_id: str | None = "teacher-1"):
    class_room = SimpleNamespace(id="class-1", teacher_id=teacher_id)
    return SimpleNamespace(
        id="student-1",
        name="Ayesha Khan",
        student_type=student_type,
        current_enrollment=SimpleNamespace(class_room=class_room),
    )


def fake_upsert(student_id: str, fields: dict):
    return SimpleNamespace(student_id=student_id, **fields)


@pytest.fixture
def repos():
    """Repositories double describing a struggling student."""
    repos = MagicMock()
    repos.students.get_with_enrollment = AsyncMock(return_value=make_student())
    repos.weekly.list_recent = AsyncMock(
        return_value=[
            WeeklyProgressData(
                total_days_present=2,
                total_days_absent=3,
                total_working_days=5,
                homework_assigned_count=10,
                homework_completed_count=8,
                average_behavior_score=4,
            )
        ]
    )
    today = utc_today()
    repos.activities.list_since = AsyncMock(
        return_value=[
            DailyActivityRecord(date=today, attendance_status="ABSENT"),
            DailyActivityRecord(date=today - timedelta(days=1), attendance_status="PRESENT"),
        ]
    )
    repos.snapshots.get_by_student = AsyncMock(return_value=None)
    repos.snapshots.upsert = AsyncMock(side_effect=fake_upsert)
    repos.snapshots.list_needing_attention = AsyncMock(return_value=[])
    repos.snapshots.count_by_risk_level = AsyncMock(
        return_value={"LOW": 3, "MEDIUM": 1, "HIGH": 0, "CRITICAL": 1}
    )
    return repos


@pytest.fixture
def alert_sink():
    return InMemoryAlertSink()


@pytest.fixture
def snapshot_service(session_factory, memory_cache, alert_sink, progress_settings, repos):
    return ProgressSnapshotService(
        session_factory=session_factory,
        cache=memory_cache,
        alerts=alert_sink,
        settings=progress_settings,
        repositories_factory=lambda session: repos,
    )


class TestRefreshSnapshot:
    """Tests for snapshot recomputation."""

    @pytest.mark.asyncio
    async def test_refresh_persists_and_returns_snapshot(self, snapshot_service, repos):
        snapshot = await snapshot_service.refresh_snapshot("student-1")

        assert snapshot.student_id == "student-1"
        assert snapshot.risk_level == RiskLevel.CRITICAL
        assert snapshot.overall_attendance_rate == 40
        assert snapshot.last_activity_date == utc_today()
        repos.snapshots.upsert.assert_awaited_once()
        repos.weekly.list_recent.assert_awaited_once_with("student-1", 8)

    @pytest.mark.asyncio
    async def test_refresh_invalidates_cached_snapshot(self, snapshot_service, memory_cache):
        memory_cache.values["snapshot:student-1"] = {"stale": True}

        await snapshot_service.refresh_snapshot("student-1")

        assert "snapshot:student-1" in memory_cache.deleted
        assert "snapshot:student-1" not in memory_cache.values

    @pytest.mark.asyncio
    async def test_alert_carries_teacher_and_reasons(self, snapshot_service, alert_sink):
        snapshot = await snapshot_service.refresh_snapshot("student-1")

        alert, _ = alert_sink.alerts[0]
        assert alert.student_name == "Ayesha Khan"
        assert alert.teacher_id == "teacher-1"
        assert alert.class_room_id == "class-1"
        assert alert.risk_level == RiskLevel.CRITICAL
        assert alert.reasons == snapshot.attention_reasons

    @pytest.mark.asyncio
    async def test_back_to_back_refreshes_alert_once(self, snapshot_service, alert_sink):
        """Test a second refresh within the cooldown sends no second alert."""
        first = await snapshot_service.refresh_snapshot("student-1")
        second = await snapshot_service.refresh_snapshot("student-1")

        assert first.intervention_required is True
        assert second.intervention_required is True
        assert len(alert_sink.alerts) == 1

    @pytest.mark.asyncio
    async def test_low_risk_sends_no_alert(self, snapshot_service, repos, alert_sink):
        repos.weekly.list_recent.return_value = [
            WeeklyProgressData(
                total_days_present=5,
                total_working_days=5,
                homework_assigned_count=5,
                homework_completed_count=5,
                average_behavior_score=4,
            )
        ]
        repos.activities.list_since.return_value = [
            DailyActivityRecord(date=utc_today(), attendance_status="PRESENT")
        ]

        snapshot = await snapshot_service.refresh_snapshot("student-1")

        assert snapshot.risk_level == RiskLevel.LOW
        assert alert_sink.alerts == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "error",
        [DatabaseError("lookup failed"), ConnectionRefusedError("db down")],
        ids=["database-error", "connection-refused"],
    )
    async def test_alert_check_failure_is_swallowed(
        self, snapshot_service, alert_sink, repos, error
    ):
        alert_sink.has_recent_alert = AsyncMock(side_effect=error)

        snapshot = await snapshot_service.refresh_snapshot("student-1")

        assert snapshot.intervention_required is True
        assert alert_sink.alerts == []
        repos.snapshots.upsert.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_refresh_without_alert_sink(self, session_factory, memory_cache, repos):
        service = ProgressSnapshotService(
            session_factory, memory_cache, repositories_factory=lambda session: repos
        )

        snapshot = await service.refresh_snapshot("student-1")

        assert snapshot.risk_level == RiskLevel.CRITICAL

    @pytest.mark.asyncio
    async def test_missing_student(self, snapshot_service, repos):
        repos.students.get_with_enrollment.return_value = None

        with pytest.raises(StudentNotFoundError) as exc_info:
            await snapshot_service.refresh_snapshot("missing")

        assert exc_info.value.status_code == 404
        repos.snapshots.upsert.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_ineligible_student_type(self, snapshot_service, repos):
        repos.students.get_with_enrollment.return_value = make_student("ALUMNI")

        with pytest.raises(IneligibleStudentError) as exc_info:
            await snapshot_service.refresh_snapshot("student-1")

        assert exc_info.value.status_code == 422
        repos.snapshots.upsert.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_no_recent_activity(self, snapshot_service, repos):
        repos.activities.list_since.return_value = []

        snapshot = await snapshot_service.refresh_snapshot("student-1")

        assert snapshot.last_activity_date is None
        assert snapshot.current_attendance_streak == 0


class TestSnapshotReads:
    """Tests for cached snapshot reads."""

    @pytest.mark.asyncio
    async def test_cache_hit_skips_database(self, snapshot_service, memory_cache, session_factory):
        cached = StudentSnapshot(student_id="student-1", risk_level=RiskLevel.HIGH)
        memory_cache.values["snapshot:student-1"] = cached.model_dump(mode="json")

        snapshot = await snapshot_service.get_snapshot("student-1")

        assert snapshot.risk_level == RiskLevel.HIGH
        assert session_factory.opened == 0

    @pytest.mark.asyncio
    async def test_cache_miss_loads_and_caches(self, snapshot_service, repos, memory_cache):
        repos.snapshots.get_by_student.return_value = SimpleNamespace(
            student_id="student-1", risk_level="MEDIUM", attention_reasons=["Recent absence"]
        )

        snapshot = await snapshot_service.get_snapshot("student-1")

        assert snapshot.risk_level == RiskLevel.MEDIUM
        assert memory_cache.values["snapshot:student-1"]["risk_level"] == "MEDIUM"
        assert memory_cache.ttls["snapshot:student-1"] == 300

    @pytest.mark.asyncio
    async def test_missing_snapshot(self, snapshot_service):
        with pytest.raises(SnapshotNotFoundError):
            await snapshot_service.get_snapshot("student-1")

    @pytest.mark.asyncio
    async def test_at_risk_students_for_classroom(self, snapshot_service, repos):
        repos.snapshots.list_needing_attention.return_value = [
            SimpleNamespace(student_id="student-2", risk_level="CRITICAL", needs_attention=True),
            SimpleNamespace(student_id="student-3", risk_level="MEDIUM", needs_attention=True),
        ]

        result = await snapshot_service.get_at_risk_students(class_room_id="class-1")

        assert [s.student_id for s in result] == ["student-2", "student-3"]
        repos.snapshots.list_needing_attention.assert_awaited_once_with(
            ["REGULAR", "REGULAR_HIFZ"], class_room_id="class-1"
        )

    @pytest.mark.asyncio
    async def test_count_by_risk_level(self, snapshot_service):
        counts = await snapshot_service.count_by_risk_level()

        assert counts == {"LOW": 3, "MEDIUM": 1, "HIGH": 0, "CRITICAL": 1}


# =============================================================================
# Weekly progress
# =============================================================================


def fake_weekly_upsert(student_id: str, week_number: int, year: int, fields: dict):
    return SimpleNamespace(
        id=f"wp-{student_id}", student_id=student_id, week_number=week_number, year=year, **fields
    )


@pytest.fixture
def weekly_repos():
    repos = MagicMock()
    repos.activities.list_in_range = AsyncMock(
        return_value=[
            DailyActivityRecord(date=date(2025, 3, 3), attendance_status="PRESENT"),
            DailyActivityRecord(date=date(2025, 3, 4), attendance_status="ABSENT"),
        ]
    )
    repos.weekly.upsert = AsyncMock(side_effect=fake_weekly_upsert)
    repos.weekly.update_commentary = AsyncMock(return_value=None)
    repos.weekly.get_by_student_and_week = AsyncMock(return_value=None)
    repos.students.list_classroom_student_ids = AsyncMock(return_value=[])
    repos.students.list_active_class_room_ids = AsyncMock(return_value=[])
    return repos


@pytest.fixture
def weekly_service(session_factory, memory_cache, progress_settings, weekly_repos):
    calendar = MagicMock()
    calendar.count_working_days = AsyncMock(return_value=4)
    return WeeklyProgressService(
        session_factory=session_factory,
        cache=memory_cache,
        calendar=calendar,
        settings=progress_settings,
        repositories_factory=lambda session: weekly_repos,
    )


class TestGenerateWeeklyProgress:
    """Tests for weekly progress generation."""

    @pytest.mark.asyncio
    async def test_generates_iso_week(self, weekly_service, weekly_repos, memory_cache):
        record = await weekly_service.generate_weekly_progress(
            "student-1", 10, 2025, class_room_id="class-1", teacher_id="teacher-1"
        )

        weekly_service.calendar.count_working_days.assert_awaited_once_with(
            date(2025, 3, 3), date(2025, 3, 9)
        )
        weekly_repos.activities.list_in_range.assert_awaited_once_with(
            "student-1", date(2025, 3, 3), date(2025, 3, 9)
        )
        assert record.id == "wp-student-1"
        assert record.total_working_days == 4
        assert record.attendance_percentage == 25
        assert record.start_date == date(2025, 3, 3)
        assert record.class_room_id == "class-1"
        assert "weekly:student-1:2025:10" in memory_cache.deleted

    @pytest.mark.asyncio
    async def test_classroom_run_isolates_failures(self, weekly_service, weekly_repos):
        weekly_repos.students.list_classroom_student_ids.return_value = ["s-1", "s-2"]

        async def upsert(student_id, week_number, year, fields):
            if student_id == "s-2":
                raise DatabaseError("write failed")
            return fake_weekly_upsert(student_id, week_number, year, fields)

        weekly_repos.weekly.upsert.side_effect = upsert

        results = await weekly_service.generate_for_classroom("class-1", 10, 2025)

        assert results[0] == {"student_id": "s-1", "status": "success", "progress_id": "wp-s-1"}
        assert results[1]["status"] == "error"
        assert "write failed" in results[1]["error"]

    @pytest.mark.asyncio
    async def test_all_classrooms(self, weekly_service, weekly_repos):
        weekly_repos.students.list_active_class_room_ids.return_value = ["class-1", "class-2"]
        weekly_repos.students.list_classroom_student_ids.return_value = ["s-1"]

        results = await weekly_service.generate_for_all_classrooms(10, 2025)

        assert set(results) == {"class-1", "class-2"}
        assert all(entries[0]["status"] == "success" for entries in results.values())


class TestWeeklyCommentary:
    """Tests for teacher commentary updates and reads."""

    @pytest.mark.asyncio
    async def test_only_commentary_fields_are_written(self, weekly_service, weekly_repos):
        weekly_repos.weekly.update_commentary.return_value = SimpleNamespace(
            id="wp-1", student_id="student-1", week_number=10, year=2025, teacher_comments="Great week"
        )

        record = await weekly_service.update_commentary(
            "wp-1", {"teacher_comments": "Great week", "attendance_percentage": 100}
        )

        weekly_repos.weekly.update_commentary.assert_awaited_once_with(
            "wp-1", {"teacher_comments": "Great week"}
        )
        assert record.teacher_comments == "Great week"

    @pytest.mark.asyncio
    async def test_no_commentary_fields(self, weekly_service):
        with pytest.raises(NoUpdatableFieldsError) as exc_info:
            await weekly_service.update_commentary("wp-1", {"attendance_percentage": 100})

        assert exc_info.value.status_code == 400

    @pytest.mark.asyncio
    async def test_missing_record(self, weekly_service):
        with pytest.raises(WeeklyProgressNotFoundError):
            await weekly_service.update_commentary("wp-404", {"incidents": []})

    @pytest.mark.asyncio
    async def test_read_is_cached(self, weekly_service, weekly_repos, memory_cache):
        weekly_repos.weekly.get_by_student_and_week.return_value = SimpleNamespace(
            id="wp-1", student_id="student-1", week_number=10, year=2025
        )

        first = await weekly_service.get_by_student_and_week("student-1", 10, 2025)
        second = await weekly_service.get_by_student_and_week("student-1", 10, 2025)

        assert first == second
        weekly_repos.weekly.get_by_student_and_week.assert_awaited_once()
        assert memory_cache.ttls["weekly:student-1:2025:10"] == 600
