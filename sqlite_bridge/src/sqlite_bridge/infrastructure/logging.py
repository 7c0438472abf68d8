"""Structured logging configuration.

Events are emitted by connections, statements, sessions and backup workers.
Engine failures passed as ``error=`` are expanded into their result codes so
log lines can be filtered on them.
"""

from __future__ import annotations

import logging
import sys
from typing import Any

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

from sqlite_bridge.domain.errors import EngineError


def add_engine_error_codes(
    logger: WrappedLogger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Render an ``error`` exception as text, adding result codes for engine errors."""
    error = event_dict.get("error")
    if isinstance(error, EngineError):
        event_dict["error"] = error.message
        event_dict["errcode"] = error.errcode
        event_dict["extended_code"] = error.extended_code
    elif isinstance(error, BaseException):
        event_dict["error"] = str(error)
    return event_dict


def setup_logging(
    level: str = "INFO",
    log_format: str = "json",
) -> None:
    """
    Set up structured logging with structlog.

    Output goes to stderr so it never mixes with query output on stdout.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: Log format ('json' or 'console')
    """
    numeric_level = getattr(logging, level.upper())
    logging.basicConfig(format="%(message)s", stream=sys.stderr, level=numeric_level)

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        # Backups log from worker threads
        structlog.processors.CallsiteParameterAdder(
            {structlog.processors.CallsiteParameter.THREAD_NAME}
        ),
        add_engine_error_codes,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.format_exc_info,
    ]

    renderer: Processor
    if log_format == "json":
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())

    structlog.configure(
        processors=[*shared_processors, renderer],
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str | None = None, **initial_context: Any) -> structlog.BoundLogger:
    """Get a logger, optionally bound to ``initial_context`` (e.g. a backup id)."""
    logger = structlog.get_logger(name)
    if initial_context:
        logger = logger.bind(**initial_context)
    return logger
