"""Structured logging setup for the prompt enhancer."""

from __future__ import annotations

import logging
import sys
import uuid
from contextlib import contextmanager
from typing import Any, Iterator

import structlog

logger = structlog.get_logger(__name__)

# Chatty below WARNING even when the CLI runs with --verbose
_QUIET_LOGGERS = ("aiohttp", "asyncio")


def generate_request_id() -> str:
    """Generate a short request identifier."""
    return uuid.uuid4().hex[:8]


@contextmanager
def request_context(**fields: Any) -> Iterator[str]:
    """Bind a fresh request id and ``fields`` to every event logged inside the block."""
    request_id = generate_request_id()
    with structlog.contextvars.bound_contextvars(request_id=request_id, **fields):
        yield request_id


def configure_logging(level: str = "WARNING", fmt: str = "console") -> None:
    """Send structlog events to stderr as JSON lines or console text.

    Stdout is left for the enhanced prompt itself.
    """
    level = level.upper()
    processors: list = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
    ]
    if fmt == "json":
        processors += [
            structlog.processors.CallsiteParameterAdder(
                [structlog.processors.CallsiteParameter.MODULE]
            ),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()))

    logging.basicConfig(level=getattr(logging, level, logging.WARNING), stream=sys.stderr)
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, level, logging.WARNING)
        ),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
    )
    logger.debug("logging_configured", level=level, format=fmt)
