# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Progress services.

This module provides:
- ProgressSnapshotService: recomputes, stores and serves a student's
  risk-scored progress snapshot and raises risk alerts
- WeeklyProgressService: generates weekly aggregates and manages the
  teacher commentary attached to them

Each public operation opens its own database session through the
injected session factory, so concurrent calls never share a session.
Cache and alert side effects run after the session has committed.

Example:
    service = ProgressSnapshotService(
        session_factory=get_session,
        cache=CacheFacade(get_redis()),
        alerts=RiskAlertSink(get_session, redis=get_redis()),
    )
    snapshot = await service.refresh_snapshot(student_id)
"""

import logging
from collections.abc import Callable
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from src.core.config import ProgressSettings, get_settings
from src.domains.progress.calendar import AcademicCalendar, get_week_date_range
from src.domains.progress.exceptions import (
    IneligibleStudentError,
    NoUpdatableFieldsError,
    SnapshotNotFoundError,
    StudentNotFoundError,
    WeeklyProgressNotFoundError,
)
from src.domains.progress.repository import ProgressRepositories
from src.domains.progress.snapshot_calculator import calculate_snapshot
from src.domains.progress.weekly_calculator import calculate_weekly_progress
from src.infrastructure.cache.facade import CacheFacade
from src.infrastructure.database.connection import SessionFactory
from src.infrastructure.database.models.progress import COMMENTARY_FIELDS
from src.infrastructure.notifications.risk_alerts import RiskAlertSink
from src.models.progress import (
    DailyActivityRecord,
    RiskAlert,
    StudentSnapshot,
    WeeklyProgressData,
    WeeklyProgressRecord,
)
from src.utils.datetime import utc_now

logger = logging.getLogger(__name__)

RepositoriesFactory = Callable[[AsyncSession], ProgressRepositories]


def snapshot_cache_key(student_id: str) -> str:
    return f"snapshot:{student_id}"


def weekly_cache_key(student_id: str, week_number: int, year: int) -> str:
    return f"weekly:{student_id}:{year}:{week_number}"


class ProgressSnapshotService:
    """Service for student progress snapshots.

    Attributes:
        session_factory: Opens a transactional database session.
        cache: Best-effort snapshot cache.
        alerts: Risk alert sink, or None to disable alerting.
        settings: Progress pipeline settings.
        repositories_factory: Builds repositories for a session.
    """

    def __init__(
        self,
        session_factory: SessionFactory,
        cache: CacheFacade,
        alerts: RiskAlertSink | None = None,
        settings: ProgressSettings | None = None,
        repositories_factory: RepositoriesFactory = ProgressRepositories.for_session,
    ) -> None:
        self.session_factory = session_factory
        self.cache = cache
        self.alerts = alerts
        self.settings = settings or get_settings().progress
        self.repositories_factory = repositories_factory

    async def refresh_snapshot(self, student_id: str) -> StudentSnapshot:
        """Recompute and store a student's snapshot.

        Loads the recent weekly history, the recent daily records and the
        existing snapshot, recomputes every field, upserts the row, drops
        the cached copy and raises a risk alert when intervention is
        required and no alert was sent within the cooldown.

        Args:
            student_id: Student to refresh.

        Returns:
            The persisted snapshot.

        Raises:
            StudentNotFoundError: If the student does not exist.
            IneligibleStudentError: If the student type gets no snapshot.
            DatabaseError: If loading or storing fails.
        """
        now = utc_now()
        since = now.date() - timedelta(days=self.settings.recent_activity_days)

        async with self.session_factory() as session:
            repos = self.repositories_factory(session)

            student = await repos.students.get_with_enrollment(student_id)
            if student is None:
                raise StudentNotFoundError(student_id)
            if student.student_type not in self.settings.eligible_student_types:
                raise IneligibleStudentError(student_id, student.student_type)

            weekly_rows = await repos.weekly.list_recent(
                student_id, self.settings.weeks_history
            )
            activity_rows = await repos.activities.list_since(student_id, since)
            previous = await repos.snapshots.get_by_student(student_id)

            weekly_history = [WeeklyProgressData.model_validate(row) for row in weekly_rows]
            activities = [DailyActivityRecord.model_validate(row) for row in activity_rows]

            data = calculate_snapshot(
                weekly_history,
                activities,
                previous=previous,
                now=now,
                recalculation_interval_hours=self.settings.recalculation_interval_hours,
            )

            fields = data.to_columns()
            fields["last_activity_date"] = (
                max(record.date for record in activities) if activities else None
            )
            row = await repos.snapshots.upsert(student_id, fields)
            snapshot = StudentSnapshot.model_validate(row)

            alert = None
            if snapshot.intervention_required:
                alert = self._build_alert(student, snapshot)

        await self.cache.delete(snapshot_cache_key(student_id))

        if alert is not None:
            await self._send_alert(alert, now)

        logger.info(
            "Snapshot refreshed for student %s (risk=%s)",
            student_id,
            snapshot.risk_level.value,
        )
        return snapshot

    def _build_alert(self, student: Any, snapshot: StudentSnapshot) -> RiskAlert:
        enrollment = student.current_enrollment
        class_room = enrollment.class_room if enrollment is not None else None
        return RiskAlert(
            student_id=snapshot.student_id,
            student_name=student.name,
            risk_level=snapshot.risk_level,
            reasons=snapshot.attention_reasons,
            teacher_id=class_room.teacher_id if class_room is not None else None,
            class_room_id=class_room.id if class_room is not None else None,
        )

    async def _send_alert(self, alert: RiskAlert, now: datetime) -> None:
        """Emit an alert unless one went out within the cooldown."""
        if self.alerts is None:
            return

        since = now - timedelta(hours=self.settings.alert_cooldown_hours)
        try:
            if await self.alerts.has_recent_alert(alert.student_id, since):
                logger.debug("Risk alert for student %s suppressed by cooldown", alert.student_id)
                return
        except Exception as e:
            # The snapshot is already committed
            logger.warning(
                "Risk alert check failed for student %s: %s", alert.student_id, e
            )
            return

        await self.alerts.emit_risk_alert(alert)

    async def get_snapshot(self, student_id: str) -> StudentSnapshot:
        """Get a student's snapshot, served from cache when possible.

        Raises:
            SnapshotNotFoundError: If the student has no snapshot yet.
        """
        key = snapshot_cache_key(student_id)
        cached = await self.cache.get(key)
        if cached:
            return StudentSnapshot.model_validate(cached)

        async with self.session_factory() as session:
            repos = self.repositories_factory(session)
            row = await repos.snapshots.get_by_student(student_id)
            if row is None:
                raise SnapshotNotFoundError(student_id)
            snapshot = StudentSnapshot.model_validate(row)

        await self.cache.set(
            key,
            snapshot.model_dump(mode="json"),
            ttl_seconds=self.settings.snapshot_cache_ttl,
        )
        return snapshot

    async def get_at_risk_students(
        self,
        class_room_id: str | None = None,
    ) -> list[StudentSnapshot]:
        """List snapshots needing attention, most severe first."""
        async with self.session_factory() as session:
            repos = self.repositories_factory(session)
            rows = await repos.snapshots.list_needing_attention(
                self.settings.eligible_student_types, class_room_id=class_room_id
            )
            return [StudentSnapshot.model_validate(row) for row in rows]

    async def count_by_risk_level(self, class_room_id: str | None = None) -> dict[str, int]:
        async with self.session_factory() as session:
            repos = self.repositories_factory(session)
            return await repos.snapshots.count_by_risk_level(
                self.settings.eligible_student_types, class_room_id=class_room_id
            )


class WeeklyProgressService:
    """Service for weekly progress aggregates.

    Attributes:
        session_factory: Opens a transactional database session.
        cache: Best-effort weekly progress cache.
        calendar: Working-day oracle.
        settings: Progress pipeline settings.
        repositories_factory: Builds repositories for a session.
    """

    def __init__(
        self,
        session_factory: SessionFactory,
        cache: CacheFacade,
        calendar: AcademicCalendar,
        settings: ProgressSettings | None = None,
        repositories_factory: RepositoriesFactory = ProgressRepositories.for_session,
    ) -> None:
        self.session_factory = session_factory
        self.cache = cache
        self.calendar = calendar
        self.settings = settings or get_settings().progress
        self.repositories_factory = repositories_factory

    async def generate_weekly_progress(
        self,
        student_id: str,
        week_number: int,
        year: int,
        class_room_id: str | None = None,
        teacher_id: str | None = None,
    ) -> WeeklyProgressRecord:
        """Compute and store one student's progress for an ISO week.

        Teacher commentary already attached to the week is kept.

        Args:
            student_id: Student to aggregate.
            week_number: ISO week number.
            year: ISO year.
            class_room_id: Classroom recorded on the row.
            teacher_id: Teacher recorded on the row.

        Returns:
            The persisted weekly record.

        Raises:
            ValueError: If the week does not exist in that year.
            DatabaseError: If loading or storing fails.
        """
        start, end = get_week_date_range(week_number, year)
        working_days = await self.calendar.count_working_days(start, end)

        async with self.session_factory() as session:
            repos = self.repositories_factory(session)
            rows = await repos.activities.list_in_range(student_id, start, end)
            records = [DailyActivityRecord.model_validate(row) for row in rows]

            data = calculate_weekly_progress(records, working_days)

            fields = data.to_columns()
            fields.update(
                start_date=start,
                end_date=end,
                class_room_id=class_room_id,
                teacher_id=teacher_id,
            )
            row = await repos.weekly.upsert(student_id, week_number, year, fields)
            record = WeeklyProgressRecord.model_validate(row)

        await self.cache.delete(weekly_cache_key(student_id, week_number, year))

        logger.info(
            "Weekly progress generated for student %s (week %s/%s, %s records)",
            student_id,
            week_number,
            year,
            len(records),
        )
        return record

    async def generate_for_classroom(
        self,
        class_room_id: str,
        week_number: int,
        year: int,
    ) -> list[dict[str, Any]]:
        """Generate a week's progress for every eligible enrolled student.

        One student's failure does not stop the others.

        Returns:
            One ``{student_id, status, progress_id | error}`` entry per student.
        """
        async with self.session_factory() as session:
            repos = self.repositories_factory(session)
            student_ids = await repos.students.list_classroom_student_ids(
                class_room_id, self.settings.eligible_student_types
            )

        results: list[dict[str, Any]] = []
        for student_id in student_ids:
            try:
                record = await self.generate_weekly_progress(
                    student_id, week_number, year, class_room_id=class_room_id
                )
                results.append(
                    {"student_id": student_id, "status": "success", "progress_id": record.id}
                )
            except Exception as e:
                logger.error(
                    "Weekly progress failed for student %s: %s",
                    student_id,
                    str(e),
                    exc_info=True,
                )
                results.append({"student_id": student_id, "status": "error", "error": str(e)})

        return results

    async def generate_for_all_classrooms(
        self,
        week_number: int,
        year: int,
    ) -> dict[str, list[dict[str, Any]]]:
        """Generate a week's progress for every classroom with enrollments.

        Returns:
            Per-student results keyed by classroom id.
        """
        async with self.session_factory() as session:
            repos = self.repositories_factory(session)
            class_room_ids = await repos.students.list_active_class_room_ids()

        results = {}
        for class_room_id in class_room_ids:
            results[class_room_id] = await self.generate_for_classroom(
                class_room_id, week_number, year
            )
        return results

    async def update_commentary(
        self,
        progress_id: str,
        fields: dict[str, Any],
    ) -> WeeklyProgressRecord:
        """Update teacher commentary of a weekly record.

        Keys other than commentary fields are ignored.

        Raises:
            NoUpdatableFieldsError: If no commentary field was given.
            WeeklyProgressNotFoundError: If the record does not exist.
        """
        updates = {k: v for k, v in fields.items() if k in COMMENTARY_FIELDS}
        if not updates:
            raise NoUpdatableFieldsError()

        async with self.session_factory() as session:
            repos = self.repositories_factory(session)
            row = await repos.weekly.update_commentary(progress_id, updates)
            if row is None:
                raise WeeklyProgressNotFoundError(f"Weekly progress not found: {progress_id}")
            record = WeeklyProgressRecord.model_validate(row)

        await self.cache.delete(
            weekly_cache_key(record.student_id, record.week_number, record.year)
        )
        logger.info("Weekly commentary updated: %s (%s)", progress_id, ", ".join(updates))
        return record

    async def get_by_student_and_week(
        self,
        student_id: str,
        week_number: int,
        year: int,
    ) -> WeeklyProgressRecord:
        """Get a student's weekly record, served from cache when possible.

        Raises:
            WeeklyProgressNotFoundError: If the week was never generated.
        """
        key = weekly_cache_key(student_id, week_number, year)
        cached = await self.cache.get(key)
        if cached:
            return WeeklyProgressRecord.model_validate(cached)

        async with self.session_factory() as session:
            repos = self.repositories_factory(session)
            row = await repos.weekly.get_by_student_and_week(student_id, week_number, year)
            if row is None:
                raise WeeklyProgressNotFoundError(
                    f"Weekly progress not found for student {student_id} "
                    f"(week {week_number}/{year})"
                )
            record = WeeklyProgressRecord.model_validate(row)

        await self.cache.set(
            key,
            record.model_dump(mode="json"),
            ttl_seconds=self.settings.weekly_cache_ttl,
        )
        return record
