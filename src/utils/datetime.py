# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""DateTime utilities for the progress pipeline.

Design Decisions:
-----------------
1. All timestamps are stored in UTC (PostgreSQL TIMESTAMPTZ)
2. All Python datetimes are timezone-aware (with timezone.utc)
3. Calendar days (activity dates, week ranges) are plain ``date`` objects

Usage:
------
    from src.utils.datetime import utc_now

    now = utc_now()
    cutoff = hours_ago(24)
"""

from datetime import date, datetime, timedelta, timezone


def utc_now() -> datetime:
    """Get current UTC time as timezone-aware datetime.

    Returns:
        Timezone-aware datetime representing current UTC time.
    """
    return datetime.now(timezone.utc)


def utc_today() -> date:
    """Get the current UTC calendar day."""
    return utc_now().date()


def hours_ago(hours: int) -> datetime:
    """Get a datetime N hours ago from now.

    Args:
        hours: Number of hours to go back.

    Returns:
        Timezone-aware UTC datetime.
    """
    return utc_now() - timedelta(hours=hours)


def iter_days(start: date, end: date):
    """Yield every calendar day from start to end, inclusive."""
    current = start
    while current <= end:
        yield current
        current += timedelta(days=1)
