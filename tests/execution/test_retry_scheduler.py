"""Tests for RetryScheduler and RetryHandle.

Intervals are shortened to tens of milliseconds; triggers that must not
fire on their own use a long interval so only explicit notifications
drive the scheduler.
"""

import asyncio

import pytest

from courier.core.errors import SchedulerError
from courier.core.payload import Payload
from courier.execution.delivery import DeliveryAttempt, DeliveryOutcome, FailureReason
from courier.execution.reachability import ReachabilitySignal
from courier.execution.retry import RetryScheduler, SchedulerState, Trigger

URL = "http://courier.test/submit"
LONG = 60.0


class ScriptedAttempt:
    """Stand-in for DeliveryAttempt returning (or raising) scripted results."""

    def __init__(self, *results):
        self.results = list(results)
        self.calls = 0

    async def send(self, payload, timeout):
        self.calls += 1
        result = self.results.pop(0) if self.results else DeliveryOutcome.success(status_code=200)
        if isinstance(result, Exception):
            raise result
        return result


def failure():
    return DeliveryOutcome.failure(FailureReason.NON_2XX_STATUS, status_code=500)


async def settle(handle):
    """Stop a handle and let cancelled tasks unwind."""
    handle.stop()
    await asyncio.sleep(0)


class TestConstruction:
    def test_interval_must_be_positive(self, slot):
        with pytest.raises(ValueError):
            RetryScheduler(ScriptedAttempt(), slot, interval=0)

    def test_initial_state(self, slot):
        scheduler = RetryScheduler(ScriptedAttempt(), slot)
        assert scheduler.state is SchedulerState.IDLE
        assert scheduler.attempts == 0
        assert scheduler.payload is None

    @pytest.mark.asyncio
    async def test_start_twice_raises(self, slot, payload):
        scheduler = RetryScheduler(ScriptedAttempt(), slot)
        handle = scheduler.start(payload)
        with pytest.raises(SchedulerError):
            scheduler.start(payload)
        await handle.wait(1.0)

    @pytest.mark.asyncio
    async def test_wait_before_start(self, slot):
        assert await RetryScheduler(ScriptedAttempt(), slot).wait_finished(0.01) is False


class TestDelivery:
    @pytest.mark.asyncio
    async def test_first_attempt_is_immediate(self, slot, payload):
        attempt = ScriptedAttempt()
        scheduler = RetryScheduler(attempt, slot, interval=LONG)
        callbacks = []

        handle = scheduler.start(payload, lambda: callbacks.append(1))
        assert await handle.wait(1.0) is True
        assert attempt.calls == 1
        assert callbacks == [1]
        assert handle.delivered and handle.done

    @pytest.mark.asyncio
    async def test_scenario_a_500_then_200(self, make_endpoint, slot, payload):
        """Attempt 1 gets HTTP 500, the timer retries, attempt 2 gets 200."""
        payload = Payload.create({"answers": [1]}, id="abc123")
        endpoint = make_endpoint(500, 200)
        slot.write(payload)
        callbacks = []
        scheduler = RetryScheduler(
            DeliveryAttempt(URL, client=endpoint.client), slot, interval=0.05, timeout=1.0
        )

        handle = scheduler.start(payload, lambda: callbacks.append(payload.id))
        assert await handle.wait(2.0) is True

        assert endpoint.calls == 2
        assert callbacks == ["abc123"]
        assert slot.read() is None
        assert scheduler.last_outcome.ok

    @pytest.mark.asyncio
    async def test_many_failures_single_callback(self, slot, payload):
        attempt = ScriptedAttempt(failure(), failure(), failure(), failure())
        callbacks = []
        slot.write(payload)
        handle = RetryScheduler(attempt, slot, interval=0.02).start(
            payload, lambda: callbacks.append(1)
        )

        assert await handle.wait(2.0) is True
        assert attempt.calls == 5
        assert handle.attempts == 5
        assert callbacks == [1]
        assert slot.read() is None

    @pytest.mark.asyncio
    async def test_success_keeps_newer_payload(self, slot, payload):
        newer = Payload.create({"x": 2}, id="newer")
        slot.write(newer)
        handle = RetryScheduler(ScriptedAttempt(), slot).start(payload)
        assert await handle.wait(1.0)
        assert slot.read() == newer

    @pytest.mark.asyncio
    async def test_failing_callback_is_contained(self, slot, payload):
        def broken():
            raise RuntimeError("ui gone")

        handle = RetryScheduler(ScriptedAttempt(), slot).start(payload, broken)
        assert await handle.wait(1.0) is True
        assert handle.state is SchedulerState.DONE

    @pytest.mark.asyncio
    async def test_crashing_attempt_counts_as_failure(self, slot, payload):
        attempt = ScriptedAttempt(RuntimeError("bug"))
        handle = RetryScheduler(attempt, slot, interval=0.02).start(payload)
        assert await handle.wait(1.0) is True
        assert attempt.calls == 2


class TestTimeouts:
    @pytest.mark.asyncio
    async def test_scenario_c_hung_attempt_times_out(self, make_endpoint, slot, payload, wait_until):
        endpoint = make_endpoint("hang")
        scheduler = RetryScheduler(
            DeliveryAttempt(URL, client=endpoint.client), slot, interval=LONG, timeout=0.05
        )

        handle = scheduler.start(payload)
        assert await wait_until(lambda: scheduler.state is SchedulerState.WAITING)

        assert scheduler.last_outcome.reason == FailureReason.TIMEOUT
        assert endpoint.in_flight == 0
        assert scheduler.attempts == 1
        await settle(handle)

    @pytest.mark.asyncio
    async def test_timeout_then_success(self, make_endpoint, slot, payload):
        endpoint = make_endpoint("hang", 200)
        scheduler = RetryScheduler(
            DeliveryAttempt(URL, client=endpoint.client), slot, interval=0.05, timeout=0.05
        )
        callbacks = []

        handle = scheduler.start(payload, lambda: callbacks.append(1))
        assert await handle.wait(2.0) is True
        await asyncio.sleep(0.15)

        assert callbacks == [1]
        assert endpoint.calls == 2
        assert endpoint.max_in_flight == 1


class TestTriggers:
    @pytest.mark.asyncio
    async def test_reachability_triggers_retry(self, slot, payload, wait_until):
        signal = ReachabilitySignal()
        attempt = ScriptedAttempt(failure())
        scheduler = RetryScheduler(attempt, slot, interval=LONG, reachability=signal)

        handle = scheduler.start(payload)
        assert await wait_until(lambda: scheduler.state is SchedulerState.WAITING)
        assert signal.listener_count == 1

        assert signal.notify() == 1
        assert await handle.wait(1.0) is True
        assert attempt.calls == 2
        assert signal.listener_count == 0

    @pytest.mark.asyncio
    async def test_listener_resubscribed_each_wait(self, slot, payload, wait_until):
        signal = ReachabilitySignal()
        attempt = ScriptedAttempt(failure(), failure())
        scheduler = RetryScheduler(attempt, slot, interval=LONG, reachability=signal)

        handle = scheduler.start(payload)
        for expected_attempts in (1, 2):
            assert await wait_until(
                lambda: scheduler.state is SchedulerState.WAITING
                and scheduler.attempts == expected_attempts
            )
            assert signal.listener_count == 1
            signal.notify()

        assert await handle.wait(1.0) is True
        assert attempt.calls == 3

    @pytest.mark.asyncio
    async def test_scenario_d_triggers_during_attempt_are_dropped(
        self, make_endpoint, slot, payload, wait_until
    ):
        """Timer and reachability firing together mid-attempt start nothing new."""
        gate = asyncio.Event()
        endpoint = make_endpoint(500, gate)
        signal = ReachabilitySignal()
        scheduler = RetryScheduler(
            DeliveryAttempt(URL, client=endpoint.client),
            slot,
            interval=LONG,
            timeout=2.0,
            reachability=signal,
        )

        handle = scheduler.start(payload)
        assert await wait_until(lambda: scheduler.state is SchedulerState.WAITING)
        signal.notify()
        assert await wait_until(lambda: endpoint.in_flight == 1)
        assert scheduler.state is SchedulerState.ATTEMPTING

        assert scheduler.request_attempt(Trigger.TIMER) is False
        assert signal.notify() == 0
        assert scheduler.request_attempt(Trigger.REACHABILITY) is False

        gate.set()
        assert await handle.wait(2.0) is True
        await asyncio.sleep(0.05)

        assert endpoint.calls == 2
        assert endpoint.max_in_flight == 1
        assert scheduler.dropped_triggers == 2

    @pytest.mark.asyncio
    async def test_simultaneous_triggers_while_waiting_coalesce(self, slot, payload, wait_until):
        attempt = ScriptedAttempt(failure())
        scheduler = RetryScheduler(attempt, slot, interval=LONG)

        handle = scheduler.start(payload)
        assert await wait_until(lambda: scheduler.state is SchedulerState.WAITING)

        assert scheduler.request_attempt(Trigger.TIMER) is True
        assert scheduler.request_attempt(Trigger.REACHABILITY) is False

        assert await handle.wait(1.0) is True
        await asyncio.sleep(0.02)
        assert attempt.calls == 2

    @pytest.mark.asyncio
    async def test_triggers_after_done_are_ignored(self, slot, payload):
        attempt = ScriptedAttempt()
        scheduler = RetryScheduler(attempt, slot, interval=LONG)
        handle = scheduler.start(payload)
        assert await handle.wait(1.0)

        assert scheduler.request_attempt(Trigger.TIMER) is False
        await asyncio.sleep(0.02)
        assert attempt.calls == 1


class TestStop:
    @pytest.mark.asyncio
    async def test_stop_while_waiting(self, slot, payload, wait_until):
        signal = ReachabilitySignal()
        attempt = ScriptedAttempt(*[failure() for _ in range(50)])
        slot.write(payload)
        scheduler = RetryScheduler(attempt, slot, interval=0.02, reachability=signal)

        handle = scheduler.start(payload)
        assert await wait_until(lambda: scheduler.state is SchedulerState.WAITING)
        handle.stop()
        calls = attempt.calls
        await asyncio.sleep(0.1)

        assert handle.state is SchedulerState.STOPPED
        assert attempt.calls == calls
        assert await handle.wait(0.1) is False
        assert slot.read() == payload
        assert signal.listener_count == 0

    @pytest.mark.asyncio
    async def test_stop_cancels_in_flight_attempt(self, make_endpoint, slot, payload, wait_until):
        endpoint = make_endpoint("hang")
        scheduler = RetryScheduler(DeliveryAttempt(URL, client=endpoint.client), slot, timeout=5.0)
        callbacks = []

        handle = scheduler.start(payload, lambda: callbacks.append(1))
        assert await wait_until(lambda: endpoint.in_flight == 1)
        await settle(handle)
        await asyncio.sleep(0.02)

        assert endpoint.in_flight == 0
        assert callbacks == []
        assert handle.done and not handle.delivered

    @pytest.mark.asyncio
    async def test_stop_after_delivery_is_noop(self, slot, payload):
        handle = RetryScheduler(ScriptedAttempt(), slot).start(payload)
        assert await handle.wait(1.0)
        handle.stop()
        assert handle.state is SchedulerState.DONE

    @pytest.mark.asyncio
    async def test_repr(self, slot, payload):
        handle = RetryScheduler(ScriptedAttempt(), slot).start(payload)
        await handle.wait(1.0)
        assert payload.id in repr(handle)
        assert "done" in repr(handle)
