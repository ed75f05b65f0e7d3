# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Async Redis client used for caching and risk alert publishing.

Values are stored as JSON; plain strings are stored as-is. Every
failure, including use before connect(), surfaces as RedisError.

The application process shares one client (init_redis / get_redis).
Dramatiq worker threads each own a client bound to their event loop
(get_worker_redis).

Example:
    client = RedisClient.from_settings(get_settings())
    await client.connect()
    await client.set("snapshot:123", snapshot, expire_seconds=300)
    await client.delete_by_pattern("weekly:123:*")
"""

import json
import logging
import threading
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any, TypeVar

from redis.asyncio import ConnectionPool, Redis
from redis.exceptions import RedisError as BaseRedisError

if TYPE_CHECKING:
    from src.core.config.settings import Settings

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RedisError(Exception):
    """A Redis operation failed.

    Attributes:
        message: What was being attempted.
        original_error: The redis-py or socket error, if any.
    """

    def __init__(self, message: str, original_error: Exception | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.original_error = original_error

    def __str__(self) -> str:
        if self.original_error:
            return f"{self.message}: {self.original_error}"
        return self.message


def _encode(value: Any) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(value, ensure_ascii=False, default=str)


def _decode(raw: str | None) -> Any:
    if raw is None:
        return None
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        return raw


class RedisClient:
    """JSON-valued async Redis client.

    Attributes:
        url: Redis connection URL.
        max_connections: Connection pool size.
    """

    def __init__(self, url: str, max_connections: int = 50) -> None:
        self.url = url
        self.max_connections = max_connections
        self._pool: ConnectionPool | None = None
        self._redis: Redis | None = None

    @classmethod
    def from_settings(cls, settings: "Settings") -> "RedisClient":
        return cls(settings.redis.url, max_connections=settings.redis.max_connections)

    @property
    def is_connected(self) -> bool:
        return self._redis is not None

    async def connect(self) -> None:
        """Open the pool and verify the server answers.

        Raises:
            RedisError: If Redis is unreachable.
        """
        self._pool = ConnectionPool.from_url(
            self.url,
            max_connections=self.max_connections,
            decode_responses=True,
        )
        redis = Redis(connection_pool=self._pool)
        try:
            await redis.ping()
        except (BaseRedisError, OSError) as e:
            await self._pool.disconnect()
            self._pool = None
            raise RedisError("Failed to connect to Redis", e) from e
        self._redis = redis

    async def close(self) -> None:
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None
        if self._pool is not None:
            await self._pool.disconnect()
            self._pool = None

    async def _run(self, description: str, operation: Callable[[Redis], Awaitable[T]]) -> T:
        if self._redis is None:
            raise RedisError("Redis client not connected. Call connect() first.")
        try:
            return await operation(self._redis)
        except BaseRedisError as e:
            raise RedisError(description, e) from e

    async def get(self, key: str) -> Any:
        """Get a value, None when the key does not exist."""
        raw = await self._run(f"Failed to get key: {key}", lambda r: r.get(key))
        return _decode(raw)

    async def set(self, key: str, value: Any, expire_seconds: int | None = None) -> None:
        """Store a value, optionally expiring after ``expire_seconds``."""
        encoded = _encode(value)
        await self._run(f"Failed to set key: {key}", lambda r: r.set(key, encoded, ex=expire_seconds))

    async def delete(self, key: str) -> bool:
        """Delete a key. Returns False if it did not exist."""
        removed = await self._run(f"Failed to delete key: {key}", lambda r: r.delete(key))
        return removed > 0

    async def delete_by_pattern(self, pattern: str) -> int:
        """Delete every key matching a glob pattern such as ``weekly:123:*``.

        Keys are found with SCAN, so a large keyspace is never blocked.
        """

        async def _delete_matching(redis: Redis) -> int:
            keys = [key async for key in redis.scan_iter(match=pattern)]
            return await redis.delete(*keys) if keys else 0

        return await self._run(f"Failed to delete keys matching: {pattern}", _delete_matching)

    async def publish(self, channel: str, message: Any) -> int:
        """Publish a message. Returns the number of subscribers reached."""
        encoded = _encode(message)
        return await self._run(
            f"Failed to publish to channel: {channel}",
            lambda r: r.publish(channel, encoded),
        )

    async def ping(self) -> bool:
        try:
            return bool(await self._run("Ping failed", lambda r: r.ping()))
        except RedisError:
            return False


_redis_client: RedisClient | None = None


async def init_redis(settings: "Settings") -> RedisClient:
    """Connect the process-wide client.

    Raises:
        RedisError: If Redis is unreachable.
    """
    global _redis_client
    client = RedisClient.from_settings(settings)
    await client.connect()
    _redis_client = client
    return client


async def close_redis() -> None:
    global _redis_client
    if _redis_client is not None:
        await _redis_client.close()
        _redis_client = None


def get_redis() -> RedisClient:
    """Get the process-wide client.

    Raises:
        RedisError: If init_redis() has not been called.
    """
    if _redis_client is None:
        raise RedisError("Redis not initialized. Call init_redis() first.")
    return _redis_client


class _ThreadClient(threading.local):
    client: RedisClient | None = None


_thread_client = _ThreadClient()


async def get_worker_redis() -> RedisClient | None:
    """Get the current worker thread's connected client.

    Returns None when Redis is unreachable; the pipeline then runs
    without a cache and without alert publishing.
    """
    client = _thread_client.client
    if client is not None and client.is_connected:
        return client

    from src.core.config import get_settings

    client = RedisClient.from_settings(get_settings())
    try:
        await client.connect()
    except RedisError as e:
        logger.warning("Redis unavailable, continuing without cache: %s", e)
        return None

    _thread_client.client = client
    return client


def _clear_thread_redis_client() -> None:
    """Forget the current thread's client after its event loop changed."""
    _thread_client.client = None
