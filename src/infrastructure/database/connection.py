# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""School database connection management using SQLAlchemy async.

This module provides async database connections for the school database
that holds students, daily activity records and the derived progress
tables.

Uses SQLAlchemy 2.0 async API with asyncpg driver.

Two access patterns are supported:
- Application scope: ``init_database`` once at startup, then
  ``get_session`` anywhere in the same event loop.
- Worker scope: ``get_worker_db_manager`` returns a DatabaseManager
  owned by the current Dramatiq worker thread, whose engine stays bound
  to that thread's event loop.

Example:
    from src.infrastructure.database.connection import (
        init_database,
        get_session,
    )

    await init_database(settings)

    async with get_session() as session:
        result = await session.execute(select(Student))
        students = result.scalars().all()
"""

import threading
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, AsyncContextManager, AsyncIterator, Callable, Optional

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

if TYPE_CHECKING:
    from src.core.config.settings import Settings

# Callable opening one transactional session per call
SessionFactory = Callable[[], AsyncContextManager[AsyncSession]]


class DatabaseError(Exception):
    """Base exception for database operations.

    Attributes:
        message: Human-readable error description.
        original_error: The underlying SQLAlchemy or database error.
    """

    def __init__(self, message: str, original_error: Optional[Exception] = None) -> None:
        """Initialize the database error.

        Args:
            message: Human-readable error description.
            original_error: The underlying exception that caused this error.
        """
        super().__init__(message)
        self.message = message
        self.original_error = original_error

    def __str__(self) -> str:
        """Return string representation of the error."""
        if self.original_error:
            return f"{self.message}: {self.original_error}"
        return self.message


class DatabaseManager:
    """Owns an async engine and its sessionmaker.

    The engine is created lazily on first use so that it binds to the
    event loop that first touches it.

    Attributes:
        settings: Application settings.
    """

    def __init__(
        self,
        settings: "Settings",
        pool_size: int | None = None,
        max_overflow: int | None = None,
    ) -> None:
        """Initialize the manager.

        Args:
            settings: Application settings containing database configuration.
            pool_size: Overrides ``settings.db.pool_size``.
            max_overflow: Overrides ``settings.db.max_overflow``.
        """
        self.settings = settings
        self.pool_size = settings.db.pool_size if pool_size is None else pool_size
        self.max_overflow = settings.db.max_overflow if max_overflow is None else max_overflow
        self._engine: Optional[AsyncEngine] = None
        self._sessionmaker: Optional[async_sessionmaker[AsyncSession]] = None

    @property
    def engine(self) -> AsyncEngine:
        """The async engine, created on first access.

        Raises:
            DatabaseError: If engine creation fails.
        """
        if self._engine is None:
            db = self.settings.db
            try:
                self._engine = create_async_engine(
                    db.url,
                    pool_size=self.pool_size,
                    max_overflow=self.max_overflow,
                    pool_pre_ping=True,
                    pool_recycle=1800,
                    echo=db.echo,
                )
            except SQLAlchemyError as e:
                raise DatabaseError("Failed to initialize database connection", e) from e

            self._sessionmaker = async_sessionmaker(
                bind=self._engine,
                class_=AsyncSession,
                expire_on_commit=False,
                autoflush=False,
            )
        return self._engine

    @property
    def sessionmaker(self) -> async_sessionmaker[AsyncSession]:
        """The sessionmaker bound to this manager's engine."""
        if self._sessionmaker is None:
            _ = self.engine
        return self._sessionmaker  # type: ignore[return-value]

    @asynccontextmanager
    async def get_session(self) -> AsyncIterator[AsyncSession]:
        """Open a session that commits on success and rolls back on error.

        Yields:
            AsyncSession for database operations.

        Raises:
            DatabaseError: If a database operation fails.
        """
        async with self.sessionmaker() as session:
            try:
                yield session
                await session.commit()
            except SQLAlchemyError as e:
                await session.rollback()
                raise DatabaseError("Database operation failed", e) from e
            except Exception:
                await session.rollback()
                raise

    async def check_connection(self) -> bool:
        """Check if the database is reachable."""
        try:
            async with self.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            return True
        except (SQLAlchemyError, DatabaseError, OSError):
            return False

    async def close(self) -> None:
        """Dispose of the engine and its pooled connections."""
        if self._engine is not None:
            await self._engine.dispose()
        self.reset()

    def reset(self) -> None:
        """Forget the engine without disposing it.

        Used when the owning event loop is gone and the pooled
        connections can no longer be closed cleanly.
        """
        self._engine = None
        self._sessionmaker = None


# Module-level state for the application database connection
_manager: Optional[DatabaseManager] = None


async def init_database(settings: "Settings") -> None:
    """Initialize the application database connection pool.

    This should be called once at application startup.

    Args:
        settings: Application settings containing database configuration.

    Raises:
        DatabaseError: If connection pool creation fails.
    """
    global _manager

    manager = DatabaseManager(settings)
    _ = manager.engine
    _manager = manager


async def close_database() -> None:
    """Close the application database connection pool."""
    global _manager

    if _manager is not None:
        await _manager.close()
        _manager = None


def _get_manager() -> DatabaseManager:
    if _manager is None:
        raise DatabaseError("Database not initialized. Call init_database() first.")
    return _manager


def get_engine() -> AsyncEngine:
    """Get the application async engine.

    Raises:
        DatabaseError: If the database has not been initialized.
    """
    return _get_manager().engine


def get_sessionmaker() -> async_sessionmaker[AsyncSession]:
    """Get the application sessionmaker.

    Raises:
        DatabaseError: If the database has not been initialized.
    """
    return _get_manager().sessionmaker


def get_session() -> AsyncContextManager[AsyncSession]:
    """Get an async session for the application database.

    The session is automatically committed on success and rolled back
    on exception.

    Raises:
        DatabaseError: If the database has not been initialized or
            if a database operation fails.

    Example:
        async with get_session() as session:
            result = await session.execute(select(Student))
    """
    return _get_manager().get_session()


async def check_database_connection() -> bool:
    """Check if the application database is reachable.

    Returns:
        True if the database is reachable, False otherwise.
    """
    if _manager is None:
        return False
    return await _manager.check_connection()


# =============================================================================
# WORKER THREAD-LOCAL MANAGER
# =============================================================================

# Each Dramatiq worker thread gets its own manager instance
_thread_local_manager = threading.local()


def get_worker_db_manager() -> DatabaseManager:
    """Get the DatabaseManager for the current worker thread.

    SQLAlchemy async engines are bound to the event loop they are
    created in, and each worker thread runs its own persistent loop
    (see ``background.tasks.base``), so each thread owns its engine.

    Returns:
        Thread-local DatabaseManager instance.

    Example:
        @dramatiq.actor
        def my_task(student_id: str):
            async def _process():
                db = get_worker_db_manager()
                async with db.get_session() as session:
                    ...
            return run_async(_process())
    """
    manager = getattr(_thread_local_manager, "db_manager", None)

    if manager is None:
        from src.core.config import get_settings

        settings = get_settings()
        manager = DatabaseManager(
            settings,
            pool_size=settings.worker.db_pool_size,
            max_overflow=settings.worker.db_max_overflow,
        )
        _thread_local_manager.db_manager = manager

    return manager


def _clear_thread_db_connections() -> None:
    """Drop the current thread's engine so it is rebuilt on the new loop.

    Called by run_async() when a new event loop is created for a thread.
    Safe to call even if no manager exists for the thread.
    """
    manager = getattr(_thread_local_manager, "db_manager", None)
    if manager is not None:
        manager.reset()


def reset_worker_db_manager() -> None:
    """Reset the worker DB manager for the current thread.

    Primarily used by tests to ensure clean state between tests.
    """
    _clear_thread_db_connections()
    _thread_local_manager.db_manager = None
