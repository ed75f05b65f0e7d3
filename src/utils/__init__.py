# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Utility functions and helpers.

This package contains cross-cutting utilities:
- logging: Structured logging with structlog
- datetime: Timezone-aware datetime operations
"""

from src.utils.datetime import hours_ago, iter_days, utc_now, utc_today
from src.utils.logging import (
    bind_context,
    clear_context,
    get_logger,
    log_context,
    setup_logging,
)

__all__ = [
    # Logging
    "setup_logging",
    "get_logger",
    "bind_context",
    "clear_context",
    "log_context",
    # Datetime
    "utc_now",
    "utc_today",
    "hours_ago",
    "iter_days",
]
