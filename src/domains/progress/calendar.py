# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Academic calendar and working-day calculations.

Working days exclude the configured weekend days and every day covered
by an active, non-cancelled holiday of the current academic
configuration. The configuration is cached for an hour under
``academic:config:active``; call ``invalidate_config_cache`` after
editing holidays.

When no configuration is active, or it cannot be loaded, the default
weekend applies and no holidays are excluded.

Usage:
    calendar = AcademicCalendar(get_session, CacheFacade(get_redis()))
    start, end = get_week_date_range(week_number=10, year=2025)
    working_days = await calendar.count_working_days(start, end)
"""

import logging
from datetime import date, timedelta
from typing import Any, Sequence

from sqlalchemy import select
from sqlalchemy.orm import selectinload

from src.infrastructure.cache.facade import CacheFacade
from src.infrastructure.database.connection import DatabaseError, SessionFactory
from src.infrastructure.database.models.school import AcademicConfiguration, Holiday
from src.utils.datetime import iter_days

logger = logging.getLogger(__name__)

CONFIG_CACHE_KEY = "academic:config:active"

WEEKDAY_NAMES = (
    "MONDAY",
    "TUESDAY",
    "WEDNESDAY",
    "THURSDAY",
    "FRIDAY",
    "SATURDAY",
    "SUNDAY",
)
DEFAULT_WEEKEND_DAYS = ("SATURDAY", "SUNDAY")


# ============================================================================
# ISO week helpers
# ============================================================================


def get_week_info(day: date) -> tuple[int, int]:
    """Get the ISO (week_number, year) of a day."""
    iso = day.isocalendar()
    return iso[1], iso[0]


def get_week_date_range(week_number: int, year: int) -> tuple[date, date]:
    """Get the Monday and Sunday of an ISO week.

    Raises:
        ValueError: If the week does not exist in that ISO year.
    """
    start = date.fromisocalendar(year, week_number, 1)
    return start, start + timedelta(days=6)


# ============================================================================
# Pure working-day helpers
# ============================================================================


def is_weekend(day: date, weekend_days: Sequence[str] = DEFAULT_WEEKEND_DAYS) -> bool:
    return WEEKDAY_NAMES[day.weekday()] in weekend_days


def expand_holidays(
    holidays: Sequence[tuple[date, date]],
    start: date,
    end: date,
) -> set[date]:
    """Expand (start, end) holiday spans into single days clipped to a range."""
    days: set[date] = set()
    for holiday_start, holiday_end in holidays:
        days.update(iter_days(max(holiday_start, start), min(holiday_end, end)))
    return days


def working_dates(
    start: date,
    end: date,
    holiday_dates: set[date] | frozenset[date] = frozenset(),
    weekend_days: Sequence[str] = DEFAULT_WEEKEND_DAYS,
) -> list[date]:
    """List the working days from start to end, inclusive."""
    return [
        day
        for day in iter_days(start, end)
        if not is_weekend(day, weekend_days) and day not in holiday_dates
    ]


# ============================================================================
# Calendar backed by the active academic configuration
# ============================================================================


class AcademicCalendar:
    """Holiday- and weekend-aware working-day oracle.

    Attributes:
        session_factory: Opens a database session.
        cache: Best-effort cache for the active configuration.
        cache_ttl: Configuration cache lifetime in seconds.
        default_weekend_days: Weekend used when no configuration is active.
    """

    def __init__(
        self,
        session_factory: SessionFactory,
        cache: CacheFacade,
        cache_ttl: int = 3600,
        default_weekend_days: Sequence[str] = DEFAULT_WEEKEND_DAYS,
    ) -> None:
        self.session_factory = session_factory
        self.cache = cache
        self.cache_ttl = cache_ttl
        self.default_weekend_days = tuple(default_weekend_days)

    async def get_active_config(self) -> dict[str, Any] | None:
        """Load the current academic configuration with its holidays.

        Returns:
            Dict with ``id``, ``name``, ``weekend_days`` and ``holidays``
            (each ``{name, start_date, end_date}`` as ISO strings), or
            None when no configuration is active or loading failed.
        """
        cached = await self.cache.get(CONFIG_CACHE_KEY)
        if cached:
            return cached

        try:
            config = await self._load_active_config()
        except DatabaseError as e:
            logger.error("Failed to load active academic configuration: %s", e)
            return None

        if config is not None:
            await self.cache.set(CONFIG_CACHE_KEY, config, ttl_seconds=self.cache_ttl)
        return config

    async def _load_active_config(self) -> dict[str, Any] | None:
        async with self.session_factory() as session:
            result = await session.execute(
                select(AcademicConfiguration)
                .where(
                    AcademicConfiguration.is_active.is_(True),
                    AcademicConfiguration.is_current.is_(True),
                )
                .options(
                    selectinload(
                        AcademicConfiguration.holidays.and_(
                            Holiday.is_active.is_(True),
                            Holiday.is_cancelled.is_(False),
                        )
                    )
                )
                .limit(1)
            )
            config = result.scalar_one_or_none()
            if config is None:
                return None

            return {
                "id": config.id,
                "name": config.name,
                "weekend_days": list(config.weekend_days or []),
                "holidays": [
                    {
                        "name": holiday.name,
                        "start_date": holiday.start_date.isoformat(),
                        "end_date": holiday.end_date.isoformat(),
                    }
                    for holiday in config.holidays
                ],
            }

    async def invalidate_config_cache(self) -> None:
        """Drop the cached configuration."""
        await self.cache.delete(CONFIG_CACHE_KEY)

    def _weekend_days(self, config: dict[str, Any] | None) -> tuple[str, ...]:
        if config and config.get("weekend_days"):
            return tuple(config["weekend_days"])
        return self.default_weekend_days

    def _holiday_spans(self, config: dict[str, Any] | None) -> list[tuple[date, date]]:
        if not config:
            return []
        return [
            (date.fromisoformat(h["start_date"]), date.fromisoformat(h["end_date"]))
            for h in config.get("holidays", [])
        ]

    async def get_holiday_dates(self, start: date, end: date) -> set[date]:
        """Get every holiday day within start..end."""
        config = await self.get_active_config()
        return expand_holidays(self._holiday_spans(config), start, end)

    async def is_holiday(self, day: date) -> bool:
        return bool(await self.get_holiday_dates(day, day))

    async def get_working_dates(self, start: date, end: date) -> list[date]:
        """List working days from start to end, inclusive."""
        config = await self.get_active_config()
        holidays = expand_holidays(self._holiday_spans(config), start, end)
        return working_dates(start, end, holidays, self._weekend_days(config))

    async def count_working_days(self, start: date, end: date) -> int:
        """Count working days from start to end, inclusive."""
        return len(await self.get_working_dates(start, end))
