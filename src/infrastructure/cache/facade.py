# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Best-effort cache facade.

The progress pipeline treats the cache as optional: a failed read is a
miss and a failed write or delete is ignored. CacheFacade wraps a
RedisClient and turns every RedisError into that behavior, so callers
never need their own try/except around cache calls.

Example:
    cache = CacheFacade(get_redis())
    snapshot = await cache.get("snapshot:123")
    if snapshot is None:
        snapshot = await load_snapshot()
        await cache.set("snapshot:123", snapshot, ttl_seconds=300)
"""

import logging
from typing import Any

from src.infrastructure.cache.redis_client import RedisClient, RedisError

logger = logging.getLogger(__name__)


class CacheFacade:
    """No-throw key-value cache over Redis.

    Attributes:
        client: Underlying Redis client, or None to disable caching.
    """

    def __init__(self, client: RedisClient | None) -> None:
        self.client = client

    @property
    def enabled(self) -> bool:
        return self.client is not None

    async def get(self, key: str) -> Any:
        """Get a cached value, or None on miss or failure."""
        if self.client is None:
            return None
        try:
            return await self.client.get(key)
        except RedisError as e:
            logger.warning("Cache get failed for %s: %s", key, e)
            return None

    async def set(self, key: str, value: Any, ttl_seconds: int | None = None) -> None:
        """Cache a JSON-serializable value with an optional TTL."""
        if self.client is None:
            return
        try:
            await self.client.set(key, value, expire_seconds=ttl_seconds)
        except RedisError as e:
            logger.warning("Cache set failed for %s: %s", key, e)

    async def delete(self, key: str) -> None:
        """Remove a cached value."""
        if self.client is None:
            return
        try:
            await self.client.delete(key)
        except RedisError as e:
            logger.warning("Cache delete failed for %s: %s", key, e)

    async def delete_by_prefix(self, prefix: str) -> None:
        """Remove every cached value whose key starts with prefix.

        A trailing ``*`` in prefix is accepted and not doubled.
        """
        if self.client is None:
            return
        pattern = prefix if prefix.endswith("*") else f"{prefix}*"
        try:
            deleted = await self.client.delete_by_pattern(pattern)
            logger.debug("Cache invalidated %d keys matching %s", deleted, pattern)
        except RedisError as e:
            logger.warning("Cache prefix delete failed for %s: %s", pattern, e)
