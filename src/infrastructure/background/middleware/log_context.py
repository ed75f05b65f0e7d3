# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Logging middleware for background processing.

Configures structured logging once a worker process has booted. While a
message is processed its id and actor name are bound to the structlog
context; the context is cleared afterwards so nothing bound during one
message leaks into the next message on the same worker thread.
"""

import logging
from typing import Any

import dramatiq
from dramatiq import Message, Middleware

from src.core.config import get_settings
from src.utils.logging import bind_context, clear_context, setup_logging

logger = logging.getLogger(__name__)


class LogContextMiddleware(Middleware):
    """Middleware scoping structlog context variables to one message.

    Usage:
        broker.add_middleware(LogContextMiddleware())

        @dramatiq.actor
        def refresh_all_snapshots():
            logger.info("...")  # includes message_id and actor
    """

    def after_process_boot(self, broker: dramatiq.Broker) -> None:
        setup_logging(get_settings(), component="worker")
        logger.debug("Worker logging configured")

    def before_process_message(
        self,
        broker: dramatiq.Broker,
        message: Message,
    ) -> None:
        """Bind message identifiers before processing.

        Args:
            broker: The broker instance.
            message: The message being processed.
        """
        clear_context()
        bind_context(message_id=message.message_id, actor=message.actor_name)
        logger.debug("Processing message %s (actor: %s)", message.message_id, message.actor_name)

    def after_process_message(
        self,
        broker: dramatiq.Broker,
        message: Message,
        *,
        result: Any = None,
        exception: BaseException | None = None,
    ) -> None:
        clear_context()

    def after_skip_message(
        self,
        broker: dramatiq.Broker,
        message: Message,
    ) -> None:
        clear_context()
