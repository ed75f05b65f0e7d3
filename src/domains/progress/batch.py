# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Batch recomputation of progress snapshots.

SnapshotBatchScheduler selects students and refreshes their snapshots
in bounded concurrent batches. Three runs exist:

- run_due: students whose snapshot is due or was never scheduled
- run_for_classroom: eligible students currently enrolled in a classroom
- run_full: every eligible student with a current enrollment

A failing student is logged and counted, never raised. A failing
selection query propagates to the caller.
"""

import asyncio
import logging
import uuid
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from src.core.config import ProgressSettings, get_settings
from src.domains.progress.repository import ProgressRepositories
from src.infrastructure.database.connection import SessionFactory
from src.models.progress import BatchRunResult, ClassroomRunResult
from src.utils.datetime import utc_now
from src.utils.logging import log_context

logger = logging.getLogger(__name__)

RefreshFunc = Callable[[str], Awaitable[Any]]


@dataclass
class BatchOutcome:
    """Counts of one batched pass over a list of students."""

    succeeded: int = 0
    failed: int = 0


class SnapshotBatchScheduler:
    """Runs snapshot refreshes over selections of students.

    Attributes:
        refresh: Refreshes one student's snapshot, usually
            ``ProgressSnapshotService.refresh_snapshot``.
        session_factory: Opens a database session for selection queries.
        settings: Progress pipeline settings.
        repositories_factory: Builds repositories for a session.
    """

    def __init__(
        self,
        refresh: RefreshFunc,
        session_factory: SessionFactory,
        settings: ProgressSettings | None = None,
        repositories_factory: Callable[
            [AsyncSession], ProgressRepositories
        ] = ProgressRepositories.for_session,
    ) -> None:
        self.refresh = refresh
        self.session_factory = session_factory
        self.settings = settings or get_settings().progress
        self.repositories_factory = repositories_factory

    async def process_in_batches(
        self,
        student_ids: Sequence[str],
        batch_size: int,
        delay_seconds: float = 0,
        pause_after_last: bool = False,
    ) -> BatchOutcome:
        """Refresh students in consecutive concurrent batches.

        Students of one batch run concurrently and a failure never
        cancels its siblings.

        Args:
            student_ids: Students to refresh, in order.
            batch_size: Maximum concurrent refreshes.
            delay_seconds: Pause between batches.
            pause_after_last: Also pause after the final batch.

        Returns:
            Success and failure counts.
        """
        outcome = BatchOutcome()
        batch_count = (len(student_ids) + batch_size - 1) // batch_size

        for index in range(batch_count):
            batch = student_ids[index * batch_size : (index + 1) * batch_size]
            results = await asyncio.gather(
                *(self.refresh(student_id) for student_id in batch),
                return_exceptions=True,
            )

            for student_id, result in zip(batch, results):
                if isinstance(result, BaseException):
                    outcome.failed += 1
                    logger.error(
                        "Snapshot refresh failed for student %s: %s",
                        student_id,
                        result,
                    )
                else:
                    outcome.succeeded += 1

            is_last = index == batch_count - 1
            if delay_seconds > 0 and (pause_after_last or not is_last):
                await asyncio.sleep(delay_seconds)

        return outcome

    async def run_due(self) -> BatchRunResult:
        """Refresh every snapshot whose recalculation is due."""
        with log_context(run_id=str(uuid.uuid4()), run_type="due"):
            async with self.session_factory() as session:
                repos = self.repositories_factory(session)
                student_ids = await repos.snapshots.list_due(utc_now())

            logger.info("Due snapshot run started: %d students", len(student_ids))
            outcome = await self.process_in_batches(
                student_ids,
                batch_size=self.settings.due_batch_size,
                delay_seconds=self.settings.due_batch_delay_ms / 1000,
            )
            result = BatchRunResult(
                processed=outcome.succeeded,
                errors=outcome.failed,
                total=len(student_ids),
            )
            logger.info(
                "Due snapshot run completed: %d processed, %d errors",
                result.processed,
                result.errors,
            )
            return result

    async def run_for_classroom(self, class_room_id: str) -> ClassroomRunResult:
        """Refresh every eligible student enrolled in a classroom at once."""
        with log_context(run_id=str(uuid.uuid4()), run_type="classroom"):
            async with self.session_factory() as session:
                repos = self.repositories_factory(session)
                student_ids = await repos.students.list_classroom_student_ids(
                    class_room_id, self.settings.eligible_student_types
                )

            outcome = await self.process_in_batches(
                student_ids, batch_size=max(len(student_ids), 1)
            )
            result = ClassroomRunResult(
                class_room_id=class_room_id,
                successful=outcome.succeeded,
                failed=outcome.failed,
                total=len(student_ids),
            )
            logger.info(
                "Classroom %s snapshots refreshed: %d successful, %d failed",
                class_room_id,
                result.successful,
                result.failed,
            )
            return result

    async def run_full(self) -> BatchRunResult:
        """Refresh the snapshot of every active eligible student."""
        with log_context(run_id=str(uuid.uuid4()), run_type="full"):
            async with self.session_factory() as session:
                repos = self.repositories_factory(session)
                student_ids = await repos.students.list_active_student_ids(
                    self.settings.eligible_student_types
                )

            logger.info("Full snapshot refresh started: %d students", len(student_ids))
            outcome = await self.process_in_batches(
                student_ids,
                batch_size=self.settings.full_batch_size,
                delay_seconds=self.settings.full_batch_delay_ms / 1000,
                pause_after_last=True,
            )
            result = BatchRunResult(
                processed=outcome.succeeded,
                errors=outcome.failed,
                total=len(student_ids),
            )
            logger.info(
                "Full snapshot refresh completed: %d processed, %d errors",
                result.processed,
                result.errors,
            )
            return result
