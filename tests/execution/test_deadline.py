"""Tests for async deadline enforcement."""

import asyncio
import time

import pytest

from courier.execution.timeout import (
    Deadline,
    DeadlineExceeded,
    await_within,
    deadline,
)


class TestDeadline:
    def test_remaining_and_expiry(self):
        scope = Deadline(5.0, "deliver")
        assert 4.5 < scope.remaining() <= 5.0
        assert not scope.expired
        assert scope.expires_at == scope.started + 5.0

    def test_expired_never_negative(self):
        scope = Deadline(1.0, started=time.monotonic() - 2.0)
        assert scope.expired
        assert scope.remaining() == 0.0
        assert scope.elapsed >= 2.0


class TestDeadlineExceeded:
    def test_is_builtin_timeout_error(self):
        assert isinstance(DeadlineExceeded(Deadline(1.0)), TimeoutError)

    def test_message_and_fields(self):
        error = DeadlineExceeded(Deadline(15.0, "deliver"), elapsed=15.02)
        assert error.operation == "deliver"
        assert error.seconds == 15.0
        assert "deliver exceeded its 15.0s deadline" in str(error)
        assert "15.02s" in str(error)


class TestDeadlineContext:
    @pytest.mark.asyncio
    async def test_completes_in_time(self):
        async with deadline(1.0, "quick") as scope:
            await asyncio.sleep(0.01)
        assert scope.operation == "quick"
        assert scope.elapsed < 1.0

    @pytest.mark.asyncio
    async def test_cancels_slow_work(self):
        start = time.monotonic()
        with pytest.raises(DeadlineExceeded) as exc_info:
            async with deadline(0.05, "slow"):
                await asyncio.sleep(10)
        assert time.monotonic() - start < 1.0
        assert exc_info.value.operation == "slow"
        assert exc_info.value.seconds == 0.05

    @pytest.mark.asyncio
    @pytest.mark.parametrize("seconds", [0, -1])
    async def test_non_positive_rejected(self, seconds):
        with pytest.raises(ValueError):
            async with deadline(seconds):
                pass

    @pytest.mark.asyncio
    async def test_inner_errors_propagate(self):
        with pytest.raises(KeyError):
            async with deadline(1.0):
                raise KeyError("x")


class TestAwaitWithin:
    @pytest.mark.asyncio
    async def test_returns_result(self):
        async def work():
            return 42

        assert await await_within(work(), 1.0) == 42

    @pytest.mark.asyncio
    async def test_expires_once(self):
        finished = []

        async def hang():
            try:
                await asyncio.sleep(10)
            finally:
                finished.append("cancelled")

        with pytest.raises(DeadlineExceeded):
            await await_within(hang(), 0.05, "probe")
        await asyncio.sleep(0.05)
        assert finished == ["cancelled"]
