# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Structured logging configuration using structlog.

Pipeline modules log through the standard library
(``logging.getLogger(__name__)``). setup_logging() installs a structlog
ProcessorFormatter on the root handler, so those records are rendered by
structlog together with any context bound for the current run or
message (``run_id``, ``run_type``, ``message_id``, ``actor``).

Output is colored console text in development and one JSON object per
line otherwise.

Example:
    >>> from src.utils.logging import setup_logging, log_context
    >>> from src.core.config import get_settings
    >>> setup_logging(get_settings(), component="worker")
    >>> with log_context(run_id="abc-123", run_type="due"):
    ...     logger.info("Due snapshot run started: %d students", 45)
"""

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from typing import TYPE_CHECKING

import structlog
from structlog.types import Processor

if TYPE_CHECKING:
    from src.core.config.settings import Settings

# Libraries that log every connection, job or message at INFO
NOISY_LOGGERS = ("sqlalchemy", "asyncio", "apscheduler", "dramatiq", "redis")


def _shared_processors(component: str | None) -> list[Processor]:
    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]
    if component:
        processors.append(_add_component(component))
    return processors


def _add_component(component: str) -> Processor:
    def processor(logger: object, method_name: str, event_dict: dict) -> dict:
        event_dict.setdefault("component", component)
        return event_dict

    return processor


def setup_logging(settings: "Settings", component: str | None = None) -> None:
    """Configure structlog and route standard library logging through it.

    Args:
        settings: Application settings providing log_level, debug and
            environment.
        component: Optional process name added to every event, e.g.
            ``"worker"`` or ``"scheduler"``.
    """
    log_level = getattr(logging, settings.log_level.upper(), logging.INFO)
    shared = _shared_processors(component)

    renderer: Processor
    if settings.is_development or settings.debug:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())
    else:
        renderer = structlog.processors.JSONRenderer()

    structlog.configure(
        processors=[
            *shared,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.StackInfoRenderer(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=[*shared, structlog.stdlib.ExtraAdder()],
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            structlog.processors.format_exc_info,
            renderer,
        ],
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(log_level)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logging.getLogger("src").setLevel(log_level)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a structured logger for the given module name.

    Args:
        name: Usually __name__ of the calling module.

    Returns:
        A bound structlog logger instance.
    """
    return structlog.get_logger(name)


def bind_context(**kwargs: object) -> None:
    """Bind context variables to all subsequent log calls in this context.

    Args:
        **kwargs: Key-value pairs to bind to the logging context.
    """
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_context() -> None:
    """Clear all bound context variables.

    Called between Dramatiq messages so nothing bound while handling one
    message shows up in the logs of the next.
    """
    structlog.contextvars.clear_contextvars()


@contextmanager
def log_context(**kwargs: object) -> Iterator[None]:
    """Bind context variables for the duration of a block.

    Values bound before the block, such as the message id of the Dramatiq
    message running a batch, are restored on exit.

    Example:
        >>> with log_context(run_id="abc-123", run_type="full"):
        ...     logger.info("Full snapshot refresh started")
    """
    with structlog.contextvars.bound_contextvars(**kwargs):
        yield
