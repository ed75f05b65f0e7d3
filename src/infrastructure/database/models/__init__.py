# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""SQLAlchemy ORM models for the school database."""

from src.infrastructure.database.models.base import Base, TimestampMixin
from src.infrastructure.database.models.notification import ProgressNotification
from src.infrastructure.database.models.progress import (
    COMMENTARY_FIELDS,
    DailyActivity,
    StudentProgressSnapshot,
    WeeklyProgress,
)
from src.infrastructure.database.models.school import (
    AcademicConfiguration,
    ClassRoom,
    Enrollment,
    Holiday,
    Student,
)

__all__ = [
    "Base",
    "TimestampMixin",
    # School
    "AcademicConfiguration",
    "ClassRoom",
    "Enrollment",
    "Holiday",
    "Student",
    # Progress
    "COMMENTARY_FIELDS",
    "DailyActivity",
    "StudentProgressSnapshot",
    "WeeklyProgress",
    # Notifications
    "ProgressNotification",
]
