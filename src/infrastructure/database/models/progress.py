# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Progress tracking models.

- DailyActivity: one record per student per day, written by teachers
- WeeklyProgress: derived weekly aggregate with teacher commentary
- StudentProgressSnapshot: derived rolling profile with risk fields

Embedded arrays are stored as JSONB and parsed through the pydantic
models in ``src.models.progress``.
"""

from datetime import date, datetime

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import ARRAY, JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from src.infrastructure.database.models.base import Base, TimestampMixin, uuid_pk

CalendarDate = date


def _student_fk(unique: bool = False) -> Mapped[str]:
    return mapped_column(
        UUID(as_uuid=False),
        ForeignKey("students.id", ondelete="CASCADE"),
        nullable=False,
        index=not unique,
        unique=unique,
    )


def _rate() -> Mapped[float]:
    return mapped_column(Numeric(6, 2, asdecimal=False), nullable=False, default=0)


def _string_array() -> Mapped[list[str]]:
    return mapped_column(ARRAY(String(64)), nullable=False, default=list)


class DailyActivity(Base, TimestampMixin):
    """A student's activity for one calendar day."""

    __tablename__ = "daily_activities"
    __table_args__ = (
        UniqueConstraint("student_id", "date", name="uq_daily_activities_student_date"),
    )

    id: Mapped[str] = uuid_pk()
    student_id: Mapped[str] = _student_fk()
    class_room_id: Mapped[str | None] = mapped_column(UUID(as_uuid=False), nullable=True)
    teacher_id: Mapped[str | None] = mapped_column(UUID(as_uuid=False), nullable=True)
    date: Mapped[CalendarDate] = mapped_column(Date, nullable=False, index=True)

    attendance_status: Mapped[str | None] = mapped_column(String(20), nullable=True)
    punctuality: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    subjects_studied: Mapped[list | None] = mapped_column(JSONB, nullable=True)
    homework_assigned: Mapped[list | None] = mapped_column(JSONB, nullable=True)
    homework_completed: Mapped[list | None] = mapped_column(JSONB, nullable=True)
    classwork_completed: Mapped[list | None] = mapped_column(JSONB, nullable=True)
    assessments_taken: Mapped[list | None] = mapped_column(JSONB, nullable=True)

    behavior_rating: Mapped[int | None] = mapped_column(Integer, nullable=True)
    participation_level: Mapped[int | None] = mapped_column(Integer, nullable=True)
    discipline_score: Mapped[int | None] = mapped_column(Integer, nullable=True)
    uniform_compliance: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    skills_snapshot: Mapped[dict | None] = mapped_column(JSONB, nullable=True)


class WeeklyProgress(Base, TimestampMixin):
    """Weekly aggregate for one student and ISO week.

    Computed columns are rewritten on every generation. The commentary
    columns at the end of the table belong to teachers and are only
    changed through commentary updates.
    """

    __tablename__ = "weekly_progress"
    __table_args__ = (
        UniqueConstraint(
            "student_id", "week_number", "year", name="uq_weekly_progress_student_week"
        ),
    )

    id: Mapped[str] = uuid_pk()
    student_id: Mapped[str] = _student_fk()
    class_room_id: Mapped[str | None] = mapped_column(UUID(as_uuid=False), nullable=True)
    teacher_id: Mapped[str | None] = mapped_column(UUID(as_uuid=False), nullable=True)
    week_number: Mapped[int] = mapped_column(Integer, nullable=False)
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)

    # Attendance
    total_days_present: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_days_absent: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_days_late: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_days_excused: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_holidays: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_working_days: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    attendance_percentage: Mapped[float] = _rate()
    punctuality_percentage: Mapped[float] = _rate()

    # Subjects
    subject_wise_progress: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)

    # Homework and classwork
    homework_assigned_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    homework_completed_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    homework_completion_rate: Mapped[float] = _rate()
    average_homework_quality: Mapped[float] = _rate()
    classwork_completion_rate: Mapped[float] = _rate()
    average_classwork_quality: Mapped[float] = _rate()

    # Assessments
    total_assessments: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    assessment_results: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)
    overall_average_score: Mapped[float] = _rate()

    # Behavioral
    average_behavior_score: Mapped[float] = _rate()
    average_participation_score: Mapped[float] = _rate()
    average_discipline_score: Mapped[float] = _rate()
    uniform_compliance_rate: Mapped[float] = _rate()

    # Skills
    average_reading_skill: Mapped[float] = _rate()
    average_writing_skill: Mapped[float] = _rate()
    average_listening_skill: Mapped[float] = _rate()
    average_speaking_skill: Mapped[float] = _rate()
    average_critical_thinking: Mapped[float] = _rate()

    # Highlights
    strength_subjects: Mapped[list[str]] = _string_array()
    weak_subjects: Mapped[list[str]] = _string_array()

    # Teacher commentary
    weekly_highlights: Mapped[str | None] = mapped_column(Text, nullable=True)
    areas_of_improvement: Mapped[str | None] = mapped_column(Text, nullable=True)
    teacher_comments: Mapped[str | None] = mapped_column(Text, nullable=True)
    achievements: Mapped[list | None] = mapped_column(JSONB, nullable=True)
    incidents: Mapped[list | None] = mapped_column(JSONB, nullable=True)
    action_items: Mapped[list | None] = mapped_column(JSONB, nullable=True)
    follow_up_required: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)


COMMENTARY_FIELDS = (
    "weekly_highlights",
    "areas_of_improvement",
    "teacher_comments",
    "achievements",
    "incidents",
    "action_items",
    "follow_up_required",
)


class StudentProgressSnapshot(Base, TimestampMixin):
    """Rolling, risk-scored progress profile. One row per student."""

    __tablename__ = "student_progress_snapshots"

    id: Mapped[str] = uuid_pk()
    student_id: Mapped[str] = _student_fk(unique=True)
    last_activity_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    # Totals
    total_days_attended: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_days_absent: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    overall_attendance_rate: Mapped[float] = _rate()

    # Streaks
    current_attendance_streak: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    longest_attendance_streak: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    current_homework_streak: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Academic
    subject_wise_performance: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)
    strongest_subjects: Mapped[list[str]] = _string_array()
    weakest_subjects: Mapped[list[str]] = _string_array()
    improving_subjects: Mapped[list[str]] = _string_array()
    declining_subjects: Mapped[list[str]] = _string_array()

    # Homework
    overall_homework_completion_rate: Mapped[float] = _rate()
    average_homework_quality: Mapped[float] = _rate()

    # Behavioral
    average_behavior_rating: Mapped[float] = _rate()
    average_participation: Mapped[float] = _rate()
    average_discipline: Mapped[float] = _rate()
    punctuality_rate: Mapped[float] = _rate()

    # Skills
    current_reading_level: Mapped[float] = _rate()
    current_writing_level: Mapped[float] = _rate()
    current_listening_level: Mapped[float] = _rate()
    current_speaking_level: Mapped[float] = _rate()
    current_critical_thinking: Mapped[float] = _rate()

    # Risk
    risk_level: Mapped[str] = mapped_column(String(10), nullable=False, default="LOW", index=True)
    needs_attention: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, index=True
    )
    attention_reasons: Mapped[list[str]] = mapped_column(
        ARRAY(String(100)), nullable=False, default=list
    )
    intervention_required: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    flagged_subjects: Mapped[list[str]] = _string_array()

    # Scheduling
    last_calculated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    next_calculation_due: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True, index=True
    )
