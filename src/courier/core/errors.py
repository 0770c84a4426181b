"""
Structured error types for courier.

Every error raised inside courier extends :class:`CourierError` and carries
a category, a retryable flag and a flat context mapping that lands in the
log record as-is. None of these reach the participant: delivery failures
are absorbed by the retry machinery and storage failures degrade to
best-effort durability. They exist so the layers *below* those boundaries
(key-value stores, payload parsing, configuration) fail loudly and get
logged with useful fields.

Architecture:
    ::

        CourierError (category, retryable, context, __cause__)
        ├── StorageError     STORAGE    retryable
        ├── PayloadError     PAYLOAD
        ├── ConfigError      CONFIG
        ├── DeliveryError    DELIVERY   retryable   (+ reason)
        └── SchedulerError   SCHEDULER

Examples:
    >>> error = StorageError("sqlite write failed", key="pending_submission_v1")
    >>> error.retryable
    True
    >>> error.to_dict()["context"]
    {'key': 'pending_submission_v1'}

Tags:
    error-handling, exception-hierarchy, courier
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Where an error came from; used for log routing."""

    STORAGE = "STORAGE"       # key-value store, disk, sqlite
    PAYLOAD = "PAYLOAD"       # malformed or unserializable payload
    CONFIG = "CONFIG"         # invalid settings
    DELIVERY = "DELIVERY"     # network send failures
    SCHEDULER = "SCHEDULER"   # retry scheduler misuse
    INTERNAL = "INTERNAL"


class CourierError(Exception):
    """Base exception for all courier errors.

    Subclasses pin ``category`` and ``retryable``; call sites pass a
    message, the original exception as ``cause`` and any context fields
    (``payload_id``, ``key``, ``http_status`` ...) as keywords. ``None``
    context values are dropped.
    """

    category: ErrorCategory = ErrorCategory.INTERNAL
    retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        cause: BaseException | None = None,
        retryable: bool | None = None,
        **context: Any,
    ):
        super().__init__(message)
        self.message = message
        if retryable is not None:
            self.retryable = retryable
        self.context: dict[str, Any] = {k: v for k, v in context.items() if v is not None}
        if cause is not None:
            self.__cause__ = cause

    @property
    def cause(self) -> BaseException | None:
        return self.__cause__

    def to_dict(self) -> dict[str, Any]:
        """Flatten for a structured log record."""
        data: dict[str, Any] = {
            "error_type": type(self).__name__,
            "message": self.message,
            "category": self.category.value,
            "retryable": self.retryable,
        }
        if self.context:
            data["context"] = dict(self.context)
        if self.__cause__ is not None:
            data["cause"] = repr(self.__cause__)
        return data

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.message!r}, category={self.category.value})"


class StorageError(CourierError):
    """Key-value store read/write/remove failure.

    Retryable: a locked database, a full disk or an exceeded quota may
    clear up before the next write.
    """

    category = ErrorCategory.STORAGE
    retryable = True


class PayloadError(CourierError):
    """Payload content could not be parsed or serialized."""

    category = ErrorCategory.PAYLOAD


class ConfigError(CourierError):
    """Invalid or inconsistent configuration."""

    category = ErrorCategory.CONFIG


class DeliveryError(CourierError):
    """A delivery attempt failed, surfaced as an exception.

    Only raised on request, see
    :meth:`courier.execution.delivery.DeliveryOutcome.raise_for_failure`.
    """

    category = ErrorCategory.DELIVERY
    retryable = True

    def __init__(self, message: str, *, reason: str | None = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.reason = reason

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        if self.reason is not None:
            data["reason"] = self.reason
        return data


class SchedulerError(CourierError):
    """Retry scheduler used out of order (e.g. started twice)."""

    category = ErrorCategory.SCHEDULER


def is_retryable(error: BaseException) -> bool:
    """Whether retrying the failed operation could succeed."""
    if isinstance(error, CourierError):
        return error.retryable
    return isinstance(error, OSError)


__all__ = [
    "ConfigError",
    "CourierError",
    "DeliveryError",
    "ErrorCategory",
    "PayloadError",
    "SchedulerError",
    "StorageError",
    "is_retryable",
]
