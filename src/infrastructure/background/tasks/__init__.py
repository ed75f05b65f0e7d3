# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Background task actors.

Usage:
    from src.infrastructure.background.tasks import refresh_classroom_snapshots

    # After a classroom's daily activity is submitted
    refresh_classroom_snapshots.send(class_room_id)

Running Workers:
    dramatiq src.infrastructure.background.tasks --processes 2 --threads 4
"""

import dramatiq

from src.infrastructure.background.tasks.base import run_async
from src.infrastructure.background.tasks.progress import (
    generate_weekly_progress_job,
    refresh_all_snapshots,
    refresh_classroom_snapshots,
    refresh_due_snapshots_job,
)


def get_all_actors() -> list[dramatiq.Actor]:
    """Get all registered actors for worker registration."""
    return [
        refresh_due_snapshots_job,
        refresh_classroom_snapshots,
        refresh_all_snapshots,
        generate_weekly_progress_job,
    ]


__all__ = [
    "generate_weekly_progress_job",
    "get_all_actors",
    "refresh_all_snapshots",
    "refresh_classroom_snapshots",
    "refresh_due_snapshots_job",
    "run_async",
]
