# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Programmatic schema migrations for the school database.

Each migration is a module in ``versions/`` exposing ``upgrade()`` and
``downgrade()`` written against ``alembic.op``. The applied revision is
kept in the standard ``alembic_version`` table, one row at most.

Run pending migrations with:
    python -m src.infrastructure.database.migrations.runner
"""

import asyncio
import importlib
import logging
from types import ModuleType
from typing import Callable

from sqlalchemy import Connection, text
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine, create_async_engine

logger = logging.getLogger(__name__)

# Applied in this order; append new revisions at the end
MIGRATIONS = [
    "001_progress_schema",
]

_MIGRATION_PACKAGE = "src.infrastructure.database.migrations.versions"


def get_pending_migrations(
    current_version: str | None,
    target_revision: str | None = None,
) -> list[str]:
    """Revisions to apply to move from current_version up to target_revision.

    Args:
        current_version: Revision recorded in the database, None if empty.
        target_revision: Last revision to apply, None for the newest.

    Returns:
        Revisions in apply order. Empty when either revision is unknown.
    """
    if current_version is not None and current_version not in MIGRATIONS:
        logger.warning("Current version %s not in known migrations list", current_version)
        return []
    if target_revision is not None and target_revision not in MIGRATIONS:
        logger.warning("Target revision %s not found", target_revision)
        return []

    start = MIGRATIONS.index(current_version) + 1 if current_version else 0
    end = MIGRATIONS.index(target_revision) + 1 if target_revision else len(MIGRATIONS)
    return MIGRATIONS[start:end]


def get_revert_migrations(current_version: str | None, target_revision: str | None) -> list[str]:
    """Revisions to revert, newest first, to get back to target_revision.

    A target of None reverts everything.
    """
    if current_version is None or current_version not in MIGRATIONS:
        return []
    if target_revision is not None and target_revision not in MIGRATIONS:
        logger.warning("Target revision %s not found", target_revision)
        return []

    end = MIGRATIONS.index(current_version) + 1
    start = MIGRATIONS.index(target_revision) + 1 if target_revision else 0
    return list(reversed(MIGRATIONS[start:end]))


def _load(revision: str) -> ModuleType:
    try:
        return importlib.import_module(f"{_MIGRATION_PACKAGE}.{revision}")
    except ImportError as e:
        raise ImportError(f"Cannot import migration {revision}: {e}") from e


def _run_operations(connection: Connection, operation: Callable[[], None]) -> None:
    """Run an upgrade or downgrade function with ``alembic.op`` bound."""
    from alembic.operations import Operations
    from alembic.runtime.migration import MigrationContext

    context = MigrationContext.configure(connection)
    with Operations.context(context):
        operation()


async def _ensure_version_table(engine: AsyncEngine) -> None:
    async with engine.begin() as conn:
        await conn.execute(
            text(
                "CREATE TABLE IF NOT EXISTS alembic_version ("
                " version_num VARCHAR(128) NOT NULL,"
                " CONSTRAINT alembic_version_pkc PRIMARY KEY (version_num))"
            )
        )


async def _current_version(engine: AsyncEngine) -> str | None:
    async with engine.connect() as conn:
        result = await conn.execute(text("SELECT version_num FROM alembic_version LIMIT 1"))
        return result.scalar_one_or_none()


async def _record_version(conn: AsyncConnection, revision: str | None) -> None:
    await conn.execute(text("DELETE FROM alembic_version"))
    if revision is not None:
        await conn.execute(
            text("INSERT INTO alembic_version (version_num) VALUES (:version)"),
            {"version": revision},
        )


async def _step(engine: AsyncEngine, revision: str, upgrade: bool) -> None:
    """Apply or revert one revision and record the result atomically."""
    module = _load(revision)
    name = "upgrade" if upgrade else "downgrade"
    operation = getattr(module, name, None)
    if operation is None:
        raise ValueError(f"Migration {revision} has no {name}() function")

    if upgrade:
        recorded = revision
    else:
        index = MIGRATIONS.index(revision)
        recorded = MIGRATIONS[index - 1] if index > 0 else None

    async with engine.begin() as conn:
        await conn.run_sync(_run_operations, operation)
        await _record_version(conn, recorded)


async def run_migrations(db_url: str, target_revision: str | None = None) -> list[str]:
    """Apply pending migrations, each in its own transaction.

    Args:
        db_url: asyncpg database URL.
        target_revision: Last revision to apply, None for the newest.

    Returns:
        Revisions applied.
    """
    engine = create_async_engine(db_url, echo=False)
    try:
        await _ensure_version_table(engine)
        current = await _current_version(engine)
        logger.info("Current migration version: %s", current or "None")

        pending = get_pending_migrations(current, target_revision)
        if not pending:
            logger.info("No pending migrations")
            return []

        for revision in pending:
            await _step(engine, revision, upgrade=True)
            logger.info("Applied migration: %s", revision)
        return pending
    finally:
        await engine.dispose()


async def revert_migrations(db_url: str, target_revision: str | None = None) -> list[str]:
    """Revert migrations newer than target_revision, newest first.

    Returns:
        Revisions reverted.
    """
    engine = create_async_engine(db_url, echo=False)
    try:
        await _ensure_version_table(engine)
        reverting = get_revert_migrations(await _current_version(engine), target_revision)
        for revision in reverting:
            await _step(engine, revision, upgrade=False)
            logger.info("Reverted migration: %s", revision)
        return reverting
    finally:
        await engine.dispose()


async def get_migration_status(db_url: str) -> dict:
    """Current version, pending revisions and whether the schema is current."""
    engine = create_async_engine(db_url, echo=False)
    try:
        await _ensure_version_table(engine)
        current = await _current_version(engine)
    finally:
        await engine.dispose()

    pending = get_pending_migrations(current)
    return {
        "current_version": current,
        "latest_version": MIGRATIONS[-1] if MIGRATIONS else None,
        "pending_count": len(pending),
        "pending_migrations": pending,
        "is_up_to_date": not pending,
    }


if __name__ == "__main__":
    from src.core.config import get_settings
    from src.utils.logging import setup_logging

    settings = get_settings()
    setup_logging(settings, component="migrations")
    asyncio.run(run_migrations(settings.db.url))
