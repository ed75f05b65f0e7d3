# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Database infrastructure for PostgreSQL connections.

This package provides SQLAlchemy async database connections for the
school database, both for the application process and for Dramatiq
worker threads.

Example:
    from src.infrastructure.database import get_session, get_worker_db_manager

    async with get_session() as session:
        result = await session.execute(select(Student))

    # Inside a Dramatiq actor
    db = get_worker_db_manager()
    async with db.get_session() as session:
        ...
"""

from src.infrastructure.database.connection import (
    DatabaseError,
    DatabaseManager,
    SessionFactory,
    _clear_thread_db_connections,
    check_database_connection,
    close_database,
    get_engine,
    get_session,
    get_sessionmaker,
    get_worker_db_manager,
    init_database,
    reset_worker_db_manager,
)

__all__ = [
    "DatabaseError",
    "DatabaseManager",
    "SessionFactory",
    "check_database_connection",
    "close_database",
    "get_engine",
    "get_session",
    "get_sessionmaker",
    "init_database",
    # Worker thread-local manager
    "get_worker_db_manager",
    "reset_worker_db_manager",
    "_clear_thread_db_connections",
]
