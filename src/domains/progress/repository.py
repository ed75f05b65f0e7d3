# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Database access for the progress pipeline.

Repositories wrap a single AsyncSession and never commit; the caller's
session scope owns the transaction. Upserts use PostgreSQL
``INSERT .. ON CONFLICT DO UPDATE`` so concurrent recomputations of the
same student resolve last-write-wins without a read-modify-write race.
"""

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any

from sqlalchemy import case, func, or_, select, update
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from src.infrastructure.database.models.progress import (
    COMMENTARY_FIELDS,
    DailyActivity,
    StudentProgressSnapshot,
    WeeklyProgress,
)
from src.infrastructure.database.models.school import Enrollment, Student
from src.models.progress import RiskLevel

_RISK_SEVERITY = case(
    {level.value: level.severity for level in RiskLevel},
    value=StudentProgressSnapshot.risk_level,
    else_=-1,
)


class StudentRepository:
    """Student lookups used for eligibility and batch selection."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get_with_enrollment(self, student_id: str) -> Student | None:
        """Load a student with current enrollment and classroom."""
        result = await self.session.execute(
            select(Student)
            .where(Student.id == student_id)
            .options(selectinload(Student.current_enrollment).selectinload(Enrollment.class_room))
        )
        return result.scalar_one_or_none()

    async def list_classroom_student_ids(
        self,
        class_room_id: str,
        student_types: Sequence[str],
    ) -> list[str]:
        """Ids of eligible students currently enrolled in a classroom."""
        result = await self.session.execute(
            select(Enrollment.student_id)
            .join(Student, Student.id == Enrollment.student_id)
            .where(
                Enrollment.class_room_id == class_room_id,
                Enrollment.is_current.is_(True),
                Student.student_type.in_(student_types),
            )
            .order_by(Enrollment.student_id)
        )
        return list(result.scalars().all())

    async def list_active_class_room_ids(self) -> list[str]:
        """Ids of classrooms with at least one current enrollment."""
        result = await self.session.execute(
            select(Enrollment.class_room_id)
            .where(Enrollment.is_current.is_(True))
            .distinct()
            .order_by(Enrollment.class_room_id)
        )
        return list(result.scalars().all())

    async def list_active_student_ids(self, student_types: Sequence[str]) -> list[str]:
        """Ids of eligible students with a current enrollment."""
        result = await self.session.execute(
            select(Student.id)
            .where(
                Student.student_type.in_(student_types),
                Student.current_enrollment_id.is_not(None),
            )
            .order_by(Student.id)
        )
        return list(result.scalars().all())


class ActivityRepository:
    """Read access to daily activity records."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def list_since(self, student_id: str, since: date) -> list[DailyActivity]:
        """Records on or after a day, most recent first."""
        result = await self.session.execute(
            select(DailyActivity)
            .where(DailyActivity.student_id == student_id, DailyActivity.date >= since)
            .order_by(DailyActivity.date.desc())
        )
        return list(result.scalars().all())

    async def list_in_range(self, student_id: str, start: date, end: date) -> list[DailyActivity]:
        """Records from start to end inclusive, oldest first."""
        result = await self.session.execute(
            select(DailyActivity)
            .where(
                DailyActivity.student_id == student_id,
                DailyActivity.date >= start,
                DailyActivity.date <= end,
            )
            .order_by(DailyActivity.date.asc())
        )
        return list(result.scalars().all())


class WeeklyProgressRepository:
    """Weekly progress persistence."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def list_recent(self, student_id: str, limit: int) -> list[WeeklyProgress]:
        """Most recent weeks first."""
        result = await self.session.execute(
            select(WeeklyProgress)
            .where(WeeklyProgress.student_id == student_id)
            .order_by(WeeklyProgress.year.desc(), WeeklyProgress.week_number.desc())
            .limit(limit)
        )
        return list(result.scalars().all())

    async def get_by_id(self, progress_id: str) -> WeeklyProgress | None:
        return await self.session.get(WeeklyProgress, progress_id)

    async def get_by_student_and_week(
        self,
        student_id: str,
        week_number: int,
        year: int,
    ) -> WeeklyProgress | None:
        result = await self.session.execute(
            select(WeeklyProgress).where(
                WeeklyProgress.student_id == student_id,
                WeeklyProgress.week_number == week_number,
                WeeklyProgress.year == year,
            )
        )
        return result.scalar_one_or_none()

    async def upsert(
        self,
        student_id: str,
        week_number: int,
        year: int,
        fields: dict[str, Any],
    ) -> WeeklyProgress:
        """Insert or update the computed columns of a week.

        Commentary columns are never part of the update set, so teacher
        notes survive recomputation.
        """
        computed = {k: v for k, v in fields.items() if k not in COMMENTARY_FIELDS}
        stmt = insert(WeeklyProgress).values(
            student_id=student_id,
            week_number=week_number,
            year=year,
            **computed,
        )
        stmt = stmt.on_conflict_do_update(
            constraint="uq_weekly_progress_student_week",
            set_={**computed, "updated_at": func.now()},
        ).returning(WeeklyProgress)

        result = await self.session.execute(
            stmt, execution_options={"populate_existing": True}
        )
        return result.scalar_one()

    async def update_commentary(
        self,
        progress_id: str,
        fields: dict[str, Any],
    ) -> WeeklyProgress | None:
        """Update commentary columns of a week. Returns None if missing."""
        result = await self.session.execute(
            update(WeeklyProgress)
            .where(WeeklyProgress.id == progress_id)
            .values(**fields, updated_at=func.now())
            .returning(WeeklyProgress),
            execution_options={"populate_existing": True},
        )
        return result.scalar_one_or_none()


class SnapshotRepository:
    """Persistence of student progress snapshots."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get_by_student(self, student_id: str) -> StudentProgressSnapshot | None:
        result = await self.session.execute(
            select(StudentProgressSnapshot).where(
                StudentProgressSnapshot.student_id == student_id
            )
        )
        return result.scalar_one_or_none()

    async def upsert(self, student_id: str, fields: dict[str, Any]) -> StudentProgressSnapshot:
        """Insert or replace a student's snapshot in one statement."""
        stmt = insert(StudentProgressSnapshot).values(student_id=student_id, **fields)
        stmt = stmt.on_conflict_do_update(
            index_elements=[StudentProgressSnapshot.student_id],
            set_={**fields, "updated_at": func.now()},
        ).returning(StudentProgressSnapshot)

        result = await self.session.execute(
            stmt, execution_options={"populate_existing": True}
        )
        return result.scalar_one()

    async def list_due(self, now: datetime) -> list[str]:
        """Student ids whose snapshot is due or was never scheduled."""
        result = await self.session.execute(
            select(StudentProgressSnapshot.student_id)
            .where(
                or_(
                    StudentProgressSnapshot.next_calculation_due < now,
                    StudentProgressSnapshot.next_calculation_due.is_(None),
                )
            )
            .order_by(StudentProgressSnapshot.student_id)
        )
        return list(result.scalars().all())

    def _eligible_snapshots(
        self,
        student_types: Sequence[str],
        class_room_id: str | None,
    ):
        stmt = (
            select(StudentProgressSnapshot)
            .join(Student, Student.id == StudentProgressSnapshot.student_id)
            .where(Student.student_type.in_(student_types))
        )
        if class_room_id is not None:
            stmt = stmt.join(Enrollment, Enrollment.id == Student.current_enrollment_id).where(
                Enrollment.class_room_id == class_room_id
            )
        return stmt

    async def list_needing_attention(
        self,
        student_types: Sequence[str],
        class_room_id: str | None = None,
    ) -> list[StudentProgressSnapshot]:
        """Snapshots flagged for attention, most severe first.

        Ties are ordered by the oldest last activity date.
        """
        stmt = (
            self._eligible_snapshots(student_types, class_room_id)
            .where(StudentProgressSnapshot.needs_attention.is_(True))
            .order_by(_RISK_SEVERITY.desc(), StudentProgressSnapshot.last_activity_date.asc())
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def count_by_risk_level(
        self,
        student_types: Sequence[str],
        class_room_id: str | None = None,
    ) -> dict[str, int]:
        """Count snapshots per risk level. Every level is present."""
        base = self._eligible_snapshots(student_types, class_room_id).subquery()
        result = await self.session.execute(
            select(base.c.risk_level, func.count()).group_by(base.c.risk_level)
        )
        counts = {level.value: 0 for level in RiskLevel}
        for risk_level, count in result.all():
            counts[risk_level] = count
        return counts


@dataclass
class ProgressRepositories:
    """Repositories sharing one session."""

    students: StudentRepository
    activities: ActivityRepository
    weekly: WeeklyProgressRepository
    snapshots: SnapshotRepository

    @classmethod
    def for_session(cls, session: AsyncSession) -> "ProgressRepositories":
        return cls(
            students=StudentRepository(session),
            activities=ActivityRepository(session),
            weekly=WeeklyProgressRepository(session),
            snapshots=SnapshotRepository(session),
        )
