# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Cache infrastructure using Redis.

This package provides the Redis client and a best-effort cache facade
that never raises.

Example:
    from src.infrastructure.cache import CacheFacade, init_redis, get_redis

    # Initialize at application startup
    await init_redis(settings)

    cache = CacheFacade(get_redis())
    await cache.set("snapshot:123", data, ttl_seconds=300)
    await cache.delete_by_prefix("weekly:123:")

    # Cleanup at shutdown
    await close_redis()
"""

from src.infrastructure.cache.facade import CacheFacade
from src.infrastructure.cache.redis_client import (
    RedisClient,
    RedisError,
    _clear_thread_redis_client,
    close_redis,
    get_redis,
    get_worker_redis,
    init_redis,
)

__all__ = [
    "CacheFacade",
    "RedisClient",
    "RedisError",
    "close_redis",
    "get_redis",
    "get_worker_redis",
    "init_redis",
    "_clear_thread_redis_client",
]
