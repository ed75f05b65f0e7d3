# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Initial progress schema.

Revision ID: 001_progress_schema
Revises: None
Create Date: 2025-03-10
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision: str = "001_progress_schema"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _id() -> sa.Column:
    return sa.Column(
        "id",
        postgresql.UUID(as_uuid=False),
        server_default=sa.text("gen_random_uuid()"),
        primary_key=True,
    )


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
    ]


def _student_id(unique: bool = False) -> sa.Column:
    return sa.Column(
        "student_id",
        postgresql.UUID(as_uuid=False),
        sa.ForeignKey("students.id", ondelete="CASCADE"),
        nullable=False,
        unique=unique,
    )


def _rate(name: str) -> sa.Column:
    return sa.Column(name, sa.Numeric(6, 2), nullable=False, server_default="0")


def _count(name: str) -> sa.Column:
    return sa.Column(name, sa.Integer, nullable=False, server_default="0")


def _ids(name: str, length: int = 64) -> sa.Column:
    return sa.Column(
        name,
        postgresql.ARRAY(sa.String(length)),
        nullable=False,
        server_default="{}",
    )


def _flag(name: str) -> sa.Column:
    return sa.Column(name, sa.Boolean, nullable=False, server_default="false")


def upgrade() -> None:
    """Create school structure and progress tables."""
    # =========================================================================
    # SCHOOL STRUCTURE
    # =========================================================================

    op.create_table(
        "class_rooms",
        _id(),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("grade", sa.String(20), nullable=True),
        sa.Column("section", sa.String(20), nullable=True),
        sa.Column("teacher_id", postgresql.UUID(as_uuid=False), nullable=True),
        *_timestamps(),
    )

    op.create_table(
        "students",
        _id(),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("admission_no", sa.String(50), unique=True, nullable=True),
        sa.Column("student_type", sa.String(30), nullable=False),
        sa.Column("current_enrollment_id", postgresql.UUID(as_uuid=False), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_students_student_type", "students", ["student_type"])

    op.create_table(
        "enrollments",
        _id(),
        _student_id(),
        sa.Column(
            "class_room_id",
            postgresql.UUID(as_uuid=False),
            sa.ForeignKey("class_rooms.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("is_current", sa.Boolean, nullable=False, server_default="true"),
        sa.Column("enrolled_on", sa.Date, nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_enrollments_student_id", "enrollments", ["student_id"])
    op.create_index("ix_enrollments_class_room_id", "enrollments", ["class_room_id"])

    op.create_foreign_key(
        "fk_students_current_enrollment_id",
        "students",
        "enrollments",
        ["current_enrollment_id"],
        ["id"],
        ondelete="SET NULL",
    )

    op.create_table(
        "academic_configurations",
        _id(),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("start_date", sa.Date, nullable=True),
        sa.Column("end_date", sa.Date, nullable=True),
        sa.Column("weekend_days", postgresql.ARRAY(sa.String(10)), nullable=True),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default="true"),
        _flag("is_current"),
        *_timestamps(),
    )

    op.create_table(
        "holidays",
        _id(),
        sa.Column(
            "configuration_id",
            postgresql.UUID(as_uuid=False),
            sa.ForeignKey("academic_configurations.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("start_date", sa.Date, nullable=False),
        sa.Column("end_date", sa.Date, nullable=False),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default="true"),
        _flag("is_cancelled"),
        *_timestamps(),
    )
    op.create_index("ix_holidays_configuration_id", "holidays", ["configuration_id"])

    # =========================================================================
    # DAILY ACTIVITY
    # =========================================================================

    op.create_table(
        "daily_activities",
        _id(),
        _student_id(),
        sa.Column("class_room_id", postgresql.UUID(as_uuid=False), nullable=True),
        sa.Column("teacher_id", postgresql.UUID(as_uuid=False), nullable=True),
        sa.Column("date", sa.Date, nullable=False),
        sa.Column("attendance_status", sa.String(20), nullable=True),
        _flag("punctuality"),
        sa.Column("subjects_studied", postgresql.JSONB, nullable=True),
        sa.Column("homework_assigned", postgresql.JSONB, nullable=True),
        sa.Column("homework_completed", postgresql.JSONB, nullable=True),
        sa.Column("classwork_completed", postgresql.JSONB, nullable=True),
        sa.Column("assessments_taken", postgresql.JSONB, nullable=True),
        sa.Column("behavior_rating", sa.Integer, nullable=True),
        sa.Column("participation_level", sa.Integer, nullable=True),
        sa.Column("discipline_score", sa.Integer, nullable=True),
        _flag("uniform_compliance"),
        sa.Column("skills_snapshot", postgresql.JSONB, nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("student_id", "date", name="uq_daily_activities_student_date"),
    )
    op.create_index("ix_daily_activities_student_id", "daily_activities", ["student_id"])
    op.create_index("ix_daily_activities_date", "daily_activities", ["date"])

    # =========================================================================
    # WEEKLY PROGRESS
    # =========================================================================

    op.create_table(
        "weekly_progress",
        _id(),
        _student_id(),
        sa.Column("class_room_id", postgresql.UUID(as_uuid=False), nullable=True),
        sa.Column("teacher_id", postgresql.UUID(as_uuid=False), nullable=True),
        sa.Column("week_number", sa.Integer, nullable=False),
        sa.Column("year", sa.Integer, nullable=False),
        sa.Column("start_date", sa.Date, nullable=False),
        sa.Column("end_date", sa.Date, nullable=False),
        _count("total_days_present"),
        _count("total_days_absent"),
        _count("total_days_late"),
        _count("total_days_excused"),
        _count("total_holidays"),
        _count("total_working_days"),
        _rate("attendance_percentage"),
        _rate("punctuality_percentage"),
        sa.Column(
            "subject_wise_progress", postgresql.JSONB, nullable=False, server_default="[]"
        ),
        _count("homework_assigned_count"),
        _count("homework_completed_count"),
        _rate("homework_completion_rate"),
        _rate("average_homework_quality"),
        _rate("classwork_completion_rate"),
        _rate("average_classwork_quality"),
        _count("total_assessments"),
        sa.Column("assessment_results", postgresql.JSONB, nullable=False, server_default="[]"),
        _rate("overall_average_score"),
        _rate("average_behavior_score"),
        _rate("average_participation_score"),
        _rate("average_discipline_score"),
        _rate("uniform_compliance_rate"),
        _rate("average_reading_skill"),
        _rate("average_writing_skill"),
        _rate("average_listening_skill"),
        _rate("average_speaking_skill"),
        _rate("average_critical_thinking"),
        _ids("strength_subjects"),
        _ids("weak_subjects"),
        sa.Column("weekly_highlights", sa.Text, nullable=True),
        sa.Column("areas_of_improvement", sa.Text, nullable=True),
        sa.Column("teacher_comments", sa.Text, nullable=True),
        sa.Column("achievements", postgresql.JSONB, nullable=True),
        sa.Column("incidents", postgresql.JSONB, nullable=True),
        sa.Column("action_items", postgresql.JSONB, nullable=True),
        _flag("follow_up_required"),
        *_timestamps(),
        sa.UniqueConstraint(
            "student_id", "week_number", "year", name="uq_weekly_progress_student_week"
        ),
    )
    op.create_index("ix_weekly_progress_student_id", "weekly_progress", ["student_id"])

    # =========================================================================
    # PROGRESS SNAPSHOTS
    # =========================================================================

    op.create_table(
        "student_progress_snapshots",
        _id(),
        _student_id(unique=True),
        sa.Column("last_activity_date", sa.Date, nullable=True),
        _count("total_days_attended"),
        _count("total_days_absent"),
        _rate("overall_attendance_rate"),
        _count("current_attendance_streak"),
        _count("longest_attendance_streak"),
        _count("current_homework_streak"),
        sa.Column(
            "subject_wise_performance", postgresql.JSONB, nullable=False, server_default="[]"
        ),
        _ids("strongest_subjects"),
        _ids("weakest_subjects"),
        _ids("improving_subjects"),
        _ids("declining_subjects"),
        _rate("overall_homework_completion_rate"),
        _rate("average_homework_quality"),
        _rate("average_behavior_rating"),
        _rate("average_participation"),
        _rate("average_discipline"),
        _rate("punctuality_rate"),
        _rate("current_reading_level"),
        _rate("current_writing_level"),
        _rate("current_listening_level"),
        _rate("current_speaking_level"),
        _rate("current_critical_thinking"),
        sa.Column("risk_level", sa.String(10), nullable=False, server_default="LOW"),
        _flag("needs_attention"),
        _ids("attention_reasons", length=100),
        _flag("intervention_required"),
        _ids("flagged_subjects"),
        sa.Column("last_calculated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("next_calculation_due", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index(
        "ix_student_progress_snapshots_risk_level", "student_progress_snapshots", ["risk_level"]
    )
    op.create_index(
        "ix_student_progress_snapshots_needs_attention",
        "student_progress_snapshots",
        ["needs_attention"],
    )
    op.create_index(
        "ix_student_progress_snapshots_next_calculation_due",
        "student_progress_snapshots",
        ["next_calculation_due"],
    )

    # =========================================================================
    # NOTIFICATIONS
    # =========================================================================

    op.create_table(
        "progress_notifications",
        _id(),
        _student_id(),
        sa.Column("recipient_id", postgresql.UUID(as_uuid=False), nullable=True),
        sa.Column("class_room_id", postgresql.UUID(as_uuid=False), nullable=True),
        sa.Column("notification_type", sa.String(30), nullable=False),
        sa.Column("category", sa.String(30), nullable=False),
        sa.Column("priority", sa.String(10), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("message", sa.Text, nullable=False),
        sa.Column("data", postgresql.JSONB, nullable=True),
        _flag("requires_action"),
        sa.Column("action_type", sa.String(30), nullable=True),
        _flag("is_read"),
        *_timestamps(),
    )
    op.create_index(
        "ix_progress_notifications_student_type_created",
        "progress_notifications",
        ["student_id", "notification_type", "created_at"],
    )


def downgrade() -> None:
    """Drop all progress tables."""
    op.drop_table("progress_notifications")
    op.drop_table("student_progress_snapshots")
    op.drop_table("weekly_progress")
    op.drop_table("daily_activities")
    op.drop_table("holidays")
    op.drop_table("academic_configurations")
    op.drop_constraint("fk_students_current_enrollment_id", "students", type_="foreignkey")
    op.drop_table("enrollments")
    op.drop_table("students")
    op.drop_table("class_rooms")
