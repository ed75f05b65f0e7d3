# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for the Redis client and the best-effort cache facade."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from src.infrastructure.cache.facade import CacheFacade
from src.infrastructure.cache.redis_client import RedisClient, RedisError


@pytest.fixture
def failing_client():
    """Redis client double whose every call fails."""
    client = MagicMock(spec=RedisClient)
    error = RedisError("Redis unavailable")
    client.get = AsyncMock(side_effect=error)
    client.set = AsyncMock(side_effect=error)
    client.delete = AsyncMock(side_effect=error)
    client.delete_by_pattern = AsyncMock(side_effect=error)
    return client


@pytest.fixture
def connected_client():
    """RedisClient with a mocked connection."""
    client = RedisClient("redis://localhost:6379/0")
    client._redis = AsyncMock()
    return client


class TestCacheFacade:
    """Tests for CacheFacade."""

    @pytest.mark.asyncio
    async def test_failed_read_is_a_miss(self, failing_client):
        cache = CacheFacade(failing_client)

        assert await cache.get("snapshot:1") is None

    @pytest.mark.asyncio
    async def test_failed_writes_are_ignored(self, failing_client):
        cache = CacheFacade(failing_client)

        await cache.set("snapshot:1", {"a": 1}, ttl_seconds=300)
        await cache.delete("snapshot:1")
        await cache.delete_by_prefix("weekly:1:")

        failing_client.set.assert_awaited_once_with("snapshot:1", {"a": 1}, expire_seconds=300)

    @pytest.mark.asyncio
    async def test_disabled_cache(self):
        cache = CacheFacade(None)

        assert cache.enabled is False
        assert await cache.get("key") is None
        await cache.set("key", 1)
        await cache.delete("key")

    @pytest.mark.asyncio
    async def test_delete_by_prefix_appends_wildcard(self):
        client = MagicMock(spec=RedisClient)
        client.delete_by_pattern = AsyncMock(return_value=2)
        cache = CacheFacade(client)

        await cache.delete_by_prefix("weekly:1:")
        await cache.delete_by_prefix("weekly:2:*")

        assert [c.args[0] for c in client.delete_by_pattern.await_args_list] == [
            "weekly:1:*",
            "weekly:2:*",
        ]


class TestRedisClient:
    """Tests for RedisClient serialization and error wrapping."""

    @pytest.mark.asyncio
    async def test_set_serializes_json(self, connected_client):
        await connected_client.set("k", {"risk": "HIGH"}, expire_seconds=60)

        connected_client._redis.set.assert_awaited_once_with("k", '{"risk": "HIGH"}', ex=60)

    @pytest.mark.asyncio
    async def test_get_returns_raw_string_when_not_json(self, connected_client):
        connected_client._redis.get.return_value = "plain"

        assert await connected_client.get("k") == "plain"

    @pytest.mark.asyncio
    async def test_get_deserializes_json(self, connected_client):
        connected_client._redis.get.return_value = '{"a": 1}'

        assert await connected_client.get("k") == {"a": 1}

    @pytest.mark.asyncio
    async def test_backend_errors_are_wrapped(self, connected_client):
        original = RedisConnectionError("down")
        connected_client._redis.get.side_effect = original

        with pytest.raises(RedisError) as exc_info:
            await connected_client.get("k")

        assert exc_info.value.original_error is original

    @pytest.mark.asyncio
    async def test_not_connected_raises(self):
        client = RedisClient("redis://localhost:6379/0")

        with pytest.raises(RedisError):
            await client.get("k")

    @pytest.mark.asyncio
    async def test_ping_false_when_not_connected(self):
        assert await RedisClient("redis://localhost:6379/0").ping() is False

    @pytest.mark.asyncio
    async def test_delete_by_pattern_scans_then_deletes(self, connected_client):
        async def scan_iter(match):
            for key in ("weekly:1:2025:9", "weekly:1:2025:10"):
                yield key

        connected_client._redis.scan_iter = scan_iter
        connected_client._redis.delete.return_value = 2

        assert await connected_client.delete_by_pattern("weekly:1:*") == 2
        connected_client._redis.delete.assert_awaited_once_with("weekly:1:2025:9", "weekly:1:2025:10")

    def test_from_settings(self):
        settings = MagicMock()
        settings.redis.url = "redis://cache:6379/1"
        settings.redis.max_connections = 5

        client = RedisClient.from_settings(settings)

        assert (client.url, client.max_connections) == ("redis://cache:6379/1", 5)
        assert client.is_connected is False
