# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Bridge between synchronous Dramatiq actors and the async pipeline.

Every worker thread owns one event loop for its whole life. The
thread's database engine and Redis client are created on that loop and
cannot be awaited from any other, so a replacement loop also drops them.
"""

import asyncio
import logging
import threading
from typing import Any, Coroutine, TypeVar

from src.infrastructure.cache.redis_client import _clear_thread_redis_client
from src.infrastructure.database.connection import _clear_thread_db_connections

logger = logging.getLogger(__name__)

T = TypeVar("T")


class _WorkerLoop(threading.local):
    loop: asyncio.AbstractEventLoop | None = None


_worker_loop = _WorkerLoop()


def _get_thread_event_loop() -> asyncio.AbstractEventLoop:
    """Return this thread's event loop, replacing it if it was closed."""
    loop = _worker_loop.loop
    if loop is not None and not loop.is_closed():
        return loop

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    _worker_loop.loop = loop

    _clear_thread_db_connections()
    _clear_thread_redis_client()

    logger.debug("Worker thread %s got a new event loop", threading.current_thread().name)
    return loop


def run_async(coro: Coroutine[Any, Any, T]) -> T:
    """Run a coroutine to completion on the calling thread's loop.

    Example:
        @dramatiq.actor(queue_name=Queues.PROGRESS)
        def refresh_all_snapshots():
            async def _process():
                scheduler = await build_batch_scheduler()
                return (await scheduler.run_full()).to_dict()

            return run_async(_process())
    """
    return _get_thread_event_loop().run_until_complete(coro)
