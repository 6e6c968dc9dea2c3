# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Structured logging configuration using structlog.

Domain modules log either through structlog (`get_logger`) or through
plain `logging.getLogger(__name__)`. Both end up in one stdlib handler
whose structlog ProcessorFormatter renders them the same way: colored
console output in development, JSON lines elsewhere. Context bound with
`bind_context` (the copy operation id, for instance) is merged into
records from either kind of logger.

Example:
    >>> from dhims.utils.logging import setup_logging, get_logger
    >>> from dhims.core.config import get_settings
    >>> setup_logging(get_settings())
    >>> logger = get_logger(__name__)
    >>> logger.info("Copy step finished", step="student_data", rows=42)
"""

import logging
import sys
from typing import TYPE_CHECKING

import structlog
from structlog.types import Processor

if TYPE_CHECKING:
    from dhims.core.config.settings import Settings

HANDLER_NAME = "dhims"

# Libraries whose INFO output drowns out the engine's own records
QUIET_LOGGERS = ("sqlalchemy", "sqlalchemy.engine", "sqlalchemy.pool", "asyncpg", "asyncio")


def _renderer(settings: "Settings") -> list[Processor]:
    if settings.is_development or settings.debug:
        return [structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())]
    return [
        structlog.processors.format_exc_info,
        structlog.processors.JSONRenderer(),
    ]


def setup_logging(settings: "Settings") -> None:
    """Route structlog and stdlib records through one rendering pipeline.

    Calling it again replaces the handler installed by a previous call.

    Args:
        settings: Application settings; log_level, debug and environment
            pick the level and the renderer.
    """
    log_level = getattr(logging, settings.log_level.upper(), logging.INFO)

    shared: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
    ]

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            *shared,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=[*shared, structlog.stdlib.ExtraAdder()],
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            *_renderer(settings),
        ],
    )
    handler = logging.StreamHandler(sys.stdout)
    handler.set_name(HANDLER_NAME)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    for existing in list(root.handlers):
        if existing.get_name() == HANDLER_NAME:
            root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(log_level)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    logging.getLogger("dhims").setLevel(log_level)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a structured logger for the given module name."""
    return structlog.get_logger(name)


def bind_context(**kwargs: object) -> None:
    """Bind key/value pairs to every record logged in the current context.

    Example:
        >>> bind_context(operation_id="abc-123")
        >>> logging.getLogger("dhims").info("Copy started")  # carries operation_id
    """
    structlog.contextvars.bind_contextvars(**kwargs)


def unbind_context(*keys: str) -> None:
    """Remove the given keys, leaving context bound by callers in place."""
    structlog.contextvars.unbind_contextvars(*keys)
