"""
Structured logging for courier.

Every courier component logs through structlog with dotted event names
and key-value fields, so a delivery can be followed end to end by its
``payload_id``::

    delivery.failed        payload_id=abc123 reason=non-2xx-status status_code=500
    retry.waiting          payload_id=abc123 attempts=1 interval=15.0
    retry.attempt_started  payload_id=abc123 trigger=timer
    retry.delivered        payload_id=abc123 attempts=2

Architecture:
    ::

        configure_logging(level, json_format, stream)
            │
            ▼
        processors:
          TimeStamper(iso) → merge_contextvars → add_log_level
          → service="courier" → exc/stack info → JSON | Console
            │
            ▼
        PrintLogger(stream)      stderr by default; stdout stays for CLI output

Examples:
    >>> configure_logging(level="DEBUG", json_format=True)
    >>> logger = get_logger(__name__)
    >>> with payload_scope("abc123"):
    ...     logger.info("retry.attempt_started", trigger="timer")

Tags:
    logging, structlog, observability, courier
"""

from __future__ import annotations

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from typing import IO, Any

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

SERVICE = "courier"

_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


def _add_service(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    event_dict.setdefault("service", SERVICE)
    return event_dict


def _processors(json_format: bool, add_timestamp: bool, colors: bool) -> list[Processor]:
    chain: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        _add_service,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
    ]
    if add_timestamp:
        chain.insert(0, structlog.processors.TimeStamper(fmt="iso"))
    if json_format:
        chain += [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    else:
        chain.append(structlog.dev.ConsoleRenderer(colors=colors))
    return chain


def configure_logging(
    level: str = "INFO",
    json_format: bool | None = None,
    *,
    stream: IO[str] | None = None,
    add_timestamp: bool = True,
) -> None:
    """Configure structlog for courier.

    Args:
        level: DEBUG, INFO, WARNING, ERROR or CRITICAL
        json_format: JSON lines when True, console when False, auto (JSON
            unless ``stream`` is a tty) when None
        stream: Where records are written; defaults to the current stderr
        add_timestamp: Prefix records with an ISO timestamp
    """
    name = level.upper()
    if name not in _LEVELS:
        raise ValueError(f"unknown log level {level!r}")
    out = stream if stream is not None else sys.stderr
    tty = out.isatty()
    if json_format is None:
        json_format = not tty

    structlog.configure(
        processors=_processors(json_format, add_timestamp, colors=tty),
        wrapper_class=structlog.make_filtering_bound_logger(getattr(logging, name)),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=out),
        cache_logger_on_first_use=False,
    )
    # httpx reports every request through stdlib logging at INFO
    logging.getLogger("httpx").setLevel(max(getattr(logging, name), logging.WARNING))


def get_logger(name: str | None = None) -> Any:
    """Return a lazily configured structlog logger.

    PrintLogger has no name of its own, so ``name`` travels as the
    ``logger_name`` field. Binding stays lazy: the proxy resolves against
    whatever configure_logging installed when it first logs.
    """
    if name:
        return structlog.get_logger(logger_name=name)
    return structlog.get_logger()


@contextmanager
def payload_scope(payload_id: str, **extra: Any) -> Iterator[None]:
    """Bind ``payload_id`` (and ``extra``) to every record logged inside."""
    with structlog.contextvars.bound_contextvars(payload_id=payload_id, **extra):
        yield


def clear_context() -> None:
    """Drop all context bound through contextvars."""
    structlog.contextvars.clear_contextvars()


__all__ = [
    "SERVICE",
    "clear_context",
    "configure_logging",
    "get_logger",
    "payload_scope",
]
