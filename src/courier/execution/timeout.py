"""Hard deadlines for network calls.

Every delivery attempt and connectivity probe runs under a deadline. When
it passes, the awaited work is cancelled (via :func:`asyncio.timeout`) and
the caller sees exactly one :class:`DeadlineExceeded`; a cancelled call
can never produce a second, late result.

Examples:
    >>> async with deadline(15.0, "deliver") as scope:
    ...     response = await client.post(url, data=form)
    ...     print(f"{scope.remaining():.1f}s to spare")

    >>> reachable = await await_within(client.head(url), 3.0, "probe")

Guardrails:
    - Requires a running event loop (Python 3.11+ ``asyncio.timeout``)
    - Deadlines must be positive
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import AsyncIterator, Awaitable
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class Deadline:
    """A running deadline, measured on the monotonic clock."""

    seconds: float
    operation: str = "operation"
    started: float = field(default_factory=time.monotonic)

    @property
    def expires_at(self) -> float:
        return self.started + self.seconds

    @property
    def elapsed(self) -> float:
        return time.monotonic() - self.started

    def remaining(self) -> float:
        """Seconds left, never negative."""
        return max(0.0, self.expires_at - time.monotonic())

    @property
    def expired(self) -> bool:
        return time.monotonic() >= self.expires_at


class DeadlineExceeded(TimeoutError):
    """Raised when the work inside a :func:`deadline` outlived it.

    Subclasses the built-in :class:`TimeoutError`, so callers that only
    care about "took too long" need not import it.
    """

    def __init__(self, scope: Deadline, elapsed: float | None = None):
        self.deadline = scope
        self.elapsed = scope.elapsed if elapsed is None else elapsed
        super().__init__(
            f"{scope.operation} exceeded its {scope.seconds}s deadline "
            f"(ran {self.elapsed:.2f}s)"
        )

    @property
    def seconds(self) -> float:
        return self.deadline.seconds

    @property
    def operation(self) -> str:
        return self.deadline.operation


def _check(seconds: float) -> None:
    if seconds <= 0:
        raise ValueError(f"deadline must be positive, got {seconds}")


@asynccontextmanager
async def deadline(seconds: float, operation: str = "operation") -> AsyncIterator[Deadline]:
    """Cancel the enclosed block if it runs longer than ``seconds``.

    Raises:
        DeadlineExceeded: When the deadline passes before the block ends
        ValueError: If ``seconds`` is not positive
    """
    _check(seconds)
    scope = Deadline(seconds, operation)
    try:
        async with asyncio.timeout(seconds):
            yield scope
    except TimeoutError as e:
        if isinstance(e, DeadlineExceeded):
            raise
        raise DeadlineExceeded(scope) from None


async def await_within(awaitable: Awaitable[T], seconds: float, operation: str = "operation") -> T:
    """Await ``awaitable`` under a deadline and return its result."""
    async with deadline(seconds, operation):
        return await awaitable


__all__ = ["Deadline", "DeadlineExceeded", "await_within", "deadline"]
