# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Dramatiq broker for the progress pipeline.

Snapshot and weekly progress actors are sent through a Redis broker with
a Redis result backend. Every broker carries LogContextMiddleware so a
message's id and actor appear on all log lines written while it runs.

Set ``DRAMATIQ_TEST_MODE=true`` to get an in-memory StubBroker instead;
actors can then be called directly in tests.

Example:
    from src.infrastructure.background.broker import setup_dramatiq

    broker = setup_dramatiq()
"""

import logging
import os
from typing import Any

import dramatiq
import redis
from dramatiq.brokers.redis import RedisBroker
from dramatiq.brokers.stub import StubBroker
from dramatiq.results import Results
from dramatiq.results.backends.redis import RedisBackend

from src.core.config import get_settings
from src.infrastructure.background.middleware import LogContextMiddleware

logger = logging.getLogger(__name__)


class Queues:
    """Queue names used by the progress actors."""

    DEFAULT = "default"
    PROGRESS = "progress"
    HIGH_PRIORITY = "high_priority"
    LOW_PRIORITY = "low_priority"

    ALL = (DEFAULT, PROGRESS, HIGH_PRIORITY, LOW_PRIORITY)


class Priority:
    """Actor priorities, lower runs first."""

    HIGH = 1
    NORMAL = 3
    LOW = 5


def is_test_mode() -> bool:
    return os.getenv("DRAMATIQ_TEST_MODE", "false").lower() == "true"


def _build_stub_broker() -> StubBroker:
    broker = StubBroker()
    broker.add_middleware(LogContextMiddleware())
    broker.emit_after("process_boot")
    return broker


def _build_redis_broker(url: str) -> tuple[RedisBroker, RedisBackend]:
    backend = RedisBackend(url=url)
    broker = RedisBroker(url=url)
    broker.add_middleware(Results(backend=backend))
    broker.add_middleware(LogContextMiddleware())
    return broker, backend


class BrokerManager:
    """Owns the process-wide Dramatiq broker.

    Attributes:
        _broker: The configured broker, None until setup().
        _results_backend: Result backend of the Redis broker.
    """

    def __init__(self) -> None:
        self._broker: dramatiq.Broker | None = None
        self._results_backend: RedisBackend | None = None

    @property
    def broker(self) -> dramatiq.Broker:
        """The configured broker.

        Raises:
            RuntimeError: If setup() has not been called.
        """
        if self._broker is None:
            raise RuntimeError("Broker not initialized. Call setup() first.")
        return self._broker

    @property
    def is_initialized(self) -> bool:
        return self._broker is not None

    def setup(self) -> dramatiq.Broker:
        """Create the broker once and install it as Dramatiq's global broker."""
        if self._broker is not None:
            return self._broker

        if is_test_mode():
            self._broker = _build_stub_broker()
            logger.info("Using StubBroker (DRAMATIQ_TEST_MODE)")
        else:
            url = get_settings().redis.url
            self._broker, self._results_backend = _build_redis_broker(url)
            # Strip credentials before logging
            logger.info("Redis broker initialized (%s)", url.split("@")[-1])

        dramatiq.set_broker(self._broker)
        return self._broker

    def shutdown(self) -> None:
        if self._broker is None:
            return
        self._broker.close()
        self._broker = None
        self._results_backend = None
        logger.info("Broker shutdown complete")

    def get_queue_stats(self) -> dict[str, Any]:
        """Pending message counts per progress queue.

        Delayed messages wait in a separate ``.DQ`` list and are reported
        under ``delayed``.
        """
        if self._broker is None:
            return {"status": "not_initialized"}

        if isinstance(self._broker, StubBroker):
            return {
                "broker_type": "stub",
                "status": "healthy",
                "queues": {
                    name: self._broker.queues[name].qsize()
                    for name in Queues.ALL
                    if name in self._broker.queues
                },
            }

        try:
            client = redis.from_url(get_settings().redis.url)
            queues = {name: client.llen(f"dramatiq:{name}") for name in Queues.ALL}
            delayed = {name: client.llen(f"dramatiq:{name}.DQ") for name in Queues.ALL}
        except redis.RedisError as e:
            logger.warning("Could not read queue lengths: %s", e)
            return {"broker_type": "redis", "status": "error", "error": str(e)}

        return {"broker_type": "redis", "status": "healthy", "queues": queues, "delayed": delayed}


_broker_manager: BrokerManager | None = None


def get_broker_manager() -> BrokerManager:
    """Get the singleton broker manager."""
    global _broker_manager
    if _broker_manager is None:
        _broker_manager = BrokerManager()
    return _broker_manager


def setup_dramatiq() -> dramatiq.Broker:
    """Set up the global broker. Safe to call more than once."""
    return get_broker_manager().setup()


def get_broker() -> dramatiq.Broker:
    """Get the configured broker.

    Raises:
        RuntimeError: If setup_dramatiq() has not been called.
    """
    return get_broker_manager().broker


def shutdown_dramatiq() -> None:
    global _broker_manager
    if _broker_manager is not None:
        _broker_manager.shutdown()
        _broker_manager = None
