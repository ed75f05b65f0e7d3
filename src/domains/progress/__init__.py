# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Student progress domain.

This package provides:
- Weekly and snapshot calculators (pure functions)
- Academic calendar and working-day oracle
- Repositories over the progress tables
- ProgressSnapshotService and WeeklyProgressService
- SnapshotBatchScheduler for due, classroom and full runs

Example:
    from src.domains.progress import ProgressSnapshotService

    service = ProgressSnapshotService(get_session, CacheFacade(get_redis()))
    snapshot = await service.refresh_snapshot(student_id)
"""

from src.domains.progress.batch import BatchOutcome, SnapshotBatchScheduler
from src.domains.progress.calendar import (
    AcademicCalendar,
    get_week_date_range,
    get_week_info,
)
from src.domains.progress.exceptions import (
    IneligibleStudentError,
    NoUpdatableFieldsError,
    ProgressError,
    SnapshotNotFoundError,
    StudentNotFoundError,
    WeeklyProgressNotFoundError,
)
from src.domains.progress.repository import ProgressRepositories
from src.domains.progress.service import ProgressSnapshotService, WeeklyProgressService
from src.domains.progress.snapshot_calculator import assess_risk, calculate_snapshot
from src.domains.progress.weekly_calculator import calculate_weekly_progress

__all__ = [
    "AcademicCalendar",
    "BatchOutcome",
    "IneligibleStudentError",
    "NoUpdatableFieldsError",
    "ProgressError",
    "ProgressRepositories",
    "ProgressSnapshotService",
    "SnapshotBatchScheduler",
    "SnapshotNotFoundError",
    "StudentNotFoundError",
    "WeeklyProgressNotFoundError",
    "WeeklyProgressService",
    "assess_risk",
    "calculate_snapshot",
    "calculate_weekly_progress",
    "get_week_date_range",
    "get_week_info",
]
