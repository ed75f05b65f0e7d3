# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Background task infrastructure.

Provides background task processing with Dramatiq:
- Redis broker for message persistence and durability
- Progress actors for snapshot refreshes and weekly progress
- APScheduler integration for the periodic jobs

Quick Start:
    from src.infrastructure.background import setup_dramatiq
    setup_dramatiq()

    from src.infrastructure.background.tasks import refresh_classroom_snapshots
    refresh_classroom_snapshots.send(class_room_id)

Running Workers:
    dramatiq src.infrastructure.background.tasks --processes 2 --threads 4

Running the Scheduler:
    python -m src.infrastructure.background.scheduler
"""

from src.infrastructure.background.broker import (
    BrokerManager,
    Priority,
    Queues,
    get_broker,
    get_broker_manager,
    setup_dramatiq,
    shutdown_dramatiq,
)
from src.infrastructure.background.middleware import LogContextMiddleware
from src.infrastructure.background.scheduler import (
    DEFAULT_JOBS,
    DramatiqScheduler,
    ScheduledTask,
    get_scheduler,
    register_default_jobs,
    run_scheduler,
    start_scheduler,
    stop_scheduler,
)

# Task actors are imported lazily to avoid circular imports:
# from src.infrastructure.background.tasks import refresh_all_snapshots

__all__ = [
    # Broker
    "BrokerManager",
    "LogContextMiddleware",
    "Priority",
    "Queues",
    "get_broker",
    "get_broker_manager",
    "setup_dramatiq",
    "shutdown_dramatiq",
    # Scheduler
    "DEFAULT_JOBS",
    "DramatiqScheduler",
    "ScheduledTask",
    "get_scheduler",
    "register_default_jobs",
    "run_scheduler",
    "start_scheduler",
    "stop_scheduler",
]
