# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Pytest configuration and shared fixtures.

This module provides fixtures used across the unit tests:
- Sample identifiers
- In-memory session factory and cache doubles
- Progress settings with batch delays disabled
"""

import os
from contextlib import asynccontextmanager
from typing import Any
from unittest.mock import MagicMock

import pytest

os.environ.setdefault("DRAMATIQ_TEST_MODE", "true")

from src.core.config import ProgressSettings  # noqa: E402


# =============================================================================
# Marker Configuration
# =============================================================================


def pytest_configure(config: pytest.Config) -> None:
    """Configure custom pytest markers."""
    config.addinivalue_line(
        "markers", "unit: mark test as a unit test"
    )
    config.addinivalue_line(
        "markers", "integration: mark test as an integration test (requires services)"
    )
    config.addinivalue_line(
        "markers", "slow: mark test as slow running"
    )


# =============================================================================
# Test Doubles
# =============================================================================


class InMemoryCache:
    """CacheFacade double keeping values in a dict."""

    def __init__(self) -> None:
        self.values: dict[str, Any] = {}
        self.ttls: dict[str, int | None] = {}
        self.deleted: list[str] = []

    async def get(self, key: str) -> Any:
        return self.values.get(key)

    async def set(self, key: str, value: Any, ttl_seconds: int | None = None) -> None:
        self.values[key] = value
        self.ttls[key] = ttl_seconds

    async def delete(self, key: str) -> None:
        self.deleted.append(key)
        self.values.pop(key, None)

    async def delete_by_prefix(self, prefix: str) -> None:
        for key in [k for k in self.values if k.startswith(prefix)]:
            await self.delete(key)


class FakeSessionFactory:
    """Session factory double yielding one mock session per call."""

    def __init__(self) -> None:
        self.opened = 0

    def __call__(self):
        return self._session()

    @asynccontextmanager
    async def _session(self):
        self.opened += 1
        yield MagicMock(name=f"session-{self.opened}")


# =============================================================================
# Helper Fixtures
# =============================================================================


@pytest.fixture
def sample_student_id() -> str:
    """Provide a sample student ID for testing."""
    return "550e8400-e29b-41d4-a716-446655440001"


@pytest.fixture
def sample_class_room_id() -> str:
    """Provide a sample classroom ID for testing."""
    return "550e8400-e29b-41d4-a716-446655440010"


@pytest.fixture
def sample_teacher_id() -> str:
    """Provide a sample teacher ID for testing."""
    return "550e8400-e29b-41d4-a716-446655440020"


@pytest.fixture
def progress_settings() -> ProgressSettings:
    """Progress settings with batch delays disabled."""
    return ProgressSettings(due_batch_delay_ms=0, full_batch_delay_ms=0)


@pytest.fixture
def memory_cache() -> InMemoryCache:
    return InMemoryCache()


@pytest.fixture
def session_factory() -> FakeSessionFactory:
    return FakeSessionFactory()
