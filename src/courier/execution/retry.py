"""Retry scheduler: keep attempting delivery until it succeeds.

:class:`RetryScheduler` owns one payload and drives
:class:`~courier.execution.delivery.DeliveryAttempt` until a success is
observed. There is no retry limit and no backoff growth: every failure kind
is retried on the same fixed interval for as long as the session lives.

State machine:
    ::

                 start()
        IDLE ──────────────► ATTEMPTING ──── success ───► DONE
                                │   ▲          (clear slot, on_success once,
                        failure │   │ trigger   disarm timer + listener)
                                ▼   │
                              WAITING
                     (timer armed, one-shot
                    reachability listener)

        RetryHandle.stop() ─► STOPPED   (from any non-terminal state)

Triggers:
    Two sources can request the next attempt: a fixed-interval timer
    (armed on the first failure, then left running) and the
    :class:`~courier.execution.reachability.ReachabilitySignal`. Both post
    into one ``asyncio.Queue(maxsize=1)`` drained by a single consumer
    task, so at most one attempt is ever in flight. A request is accepted
    only while WAITING; requests arriving while ATTEMPTING or after a
    terminal state are dropped, and simultaneous requests while WAITING
    coalesce into one attempt.

Ordering:
    On success the scheduler moves to DONE, disarms both triggers, clears
    the slot and fires ``on_success`` in one synchronous step. No trigger
    can start another attempt for the payload afterwards.

Example::

    scheduler = RetryScheduler(attempt, slot, interval=15.0, reachability=signal)
    handle = scheduler.start(payload, on_success=show_thank_you)
    delivered = await handle.wait()
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from enum import Enum

from courier.core.errors import SchedulerError
from courier.core.logging import get_logger, payload_scope
from courier.core.payload import Payload
from courier.core.slot import DurableSlot
from courier.execution.delivery import DeliveryAttempt, DeliveryOutcome
from courier.execution.reachability import ReachabilitySignal

logger = get_logger(__name__)

SuccessCallback = Callable[[], None]


class SchedulerState(str, Enum):
    """Retry scheduler lifecycle states."""

    IDLE = "idle"
    ATTEMPTING = "attempting"
    WAITING = "waiting"
    DONE = "done"
    STOPPED = "stopped"

    @property
    def is_terminal(self) -> bool:
        return self in (SchedulerState.DONE, SchedulerState.STOPPED)


class Trigger(str, Enum):
    """What requested an attempt."""

    START = "start"
    TIMER = "timer"
    REACHABILITY = "reachability"


def _noop() -> None:
    pass


class RetryScheduler:
    """Serializes delivery attempts for a single payload until success.

    Parameters
    ----------
    attempt : DeliveryAttempt
        Performs each bounded send.
    slot : DurableSlot
        Cleared once the payload is delivered.
    interval : float
        Seconds between timer triggers.
    timeout : float
        Deadline passed to every attempt.
    reachability : ReachabilitySignal | None
        Optional "connectivity regained" trigger source.
    """

    def __init__(
        self,
        attempt: DeliveryAttempt,
        slot: DurableSlot,
        *,
        interval: float = 15.0,
        timeout: float = 15.0,
        reachability: ReachabilitySignal | None = None,
    ) -> None:
        if interval <= 0:
            raise ValueError(f"interval must be positive, got {interval}")
        self._attempt = attempt
        self._slot = slot
        self._interval = interval
        self._timeout = timeout
        self._reachability = reachability

        self._state = SchedulerState.IDLE
        self._payload: Payload | None = None
        self._on_success: SuccessCallback = _noop
        self._channel: asyncio.Queue[Trigger] | None = None
        self._finished: asyncio.Event | None = None
        self._consumer: asyncio.Task[None] | None = None
        self._timer: asyncio.Task[None] | None = None
        self._unsubscribe: Callable[[], None] | None = None
        self._success_fired = False
        self._attempts = 0
        self._dropped = 0
        self._last_outcome: DeliveryOutcome | None = None

    # ── Introspection ────────────────────────────────────────────────

    @property
    def state(self) -> SchedulerState:
        return self._state

    @property
    def payload(self) -> Payload | None:
        return self._payload

    @property
    def attempts(self) -> int:
        """Attempts started so far."""
        return self._attempts

    @property
    def dropped_triggers(self) -> int:
        """Trigger requests ignored because an attempt was in flight."""
        return self._dropped

    @property
    def last_outcome(self) -> DeliveryOutcome | None:
        return self._last_outcome

    # ── Lifecycle ────────────────────────────────────────────────────

    def start(self, payload: Payload, on_success: SuccessCallback | None = None) -> RetryHandle:
        """Begin delivering ``payload``; the first attempt starts immediately.

        Must be called from a running event loop.

        Raises:
            SchedulerError: If the scheduler was already started.
        """
        if self._state is not SchedulerState.IDLE:
            raise SchedulerError(
                f"RetryScheduler already started (state={self._state.value})",
                payload_id=payload.id,
            )

        self._payload = payload
        self._on_success = on_success or _noop
        # the first attempt is already committed; nothing else may queue one
        self._state = SchedulerState.ATTEMPTING
        self._channel = asyncio.Queue(maxsize=1)
        self._finished = asyncio.Event()
        self._channel.put_nowait(Trigger.START)
        self._consumer = asyncio.create_task(
            self._consume(), name=f"courier-retry-{payload.id}"
        )

        logger.info(
            "retry.started",
            payload_id=payload.id,
            interval=self._interval,
            timeout=self._timeout,
        )
        return RetryHandle(self)

    def request_attempt(self, trigger: Trigger) -> bool:
        """Ask for the next attempt. Returns ``False`` if the request was dropped."""
        if self._state is not SchedulerState.WAITING or self._channel is None:
            self._dropped += 1
            logger.debug(
                "retry.trigger_dropped",
                payload_id=self._payload.id if self._payload else None,
                trigger=trigger.value,
                state=self._state.value,
            )
            return False
        try:
            self._channel.put_nowait(trigger)
        except asyncio.QueueFull:
            # another trigger already queued the next attempt
            self._dropped += 1
            logger.debug("retry.trigger_coalesced", payload_id=self._payload.id, trigger=trigger.value)
            return False
        return True

    def stop(self) -> None:
        """Terminate without delivering. The slot is left for the next startup."""
        if self._state.is_terminal:
            return
        previous = self._state
        self._state = SchedulerState.STOPPED
        self._disarm()
        consumer = self._consumer
        if consumer is not None and not consumer.done() and consumer is not asyncio.current_task():
            consumer.cancel()
        if self._finished is not None:
            self._finished.set()
        logger.info(
            "retry.stopped",
            payload_id=self._payload.id if self._payload else None,
            previous_state=previous.value,
            attempts=self._attempts,
        )

    async def wait_finished(self, timeout: float | None = None) -> bool:
        """Wait for a terminal state. Returns ``True`` if delivered."""
        if self._finished is None:
            return False
        try:
            await asyncio.wait_for(self._finished.wait(), timeout=timeout)
        except TimeoutError:
            pass
        return self._state is SchedulerState.DONE

    # ── Internals ────────────────────────────────────────────────────

    async def _consume(self) -> None:
        assert self._channel is not None and self._payload is not None
        while True:
            trigger = await self._channel.get()
            if self._state.is_terminal:
                return

            self._state = SchedulerState.ATTEMPTING
            self._attempts += 1
            logger.info(
                "retry.attempt_started",
                payload_id=self._payload.id,
                trigger=trigger.value,
                attempt=self._attempts,
            )

            try:
                with payload_scope(self._payload.id, trigger=trigger.value):
                    outcome = await self._attempt.send(self._payload, self._timeout)
            except Exception as e:
                logger.exception("retry.attempt_crashed", payload_id=self._payload.id, error=str(e))
                outcome = None

            self._last_outcome = outcome
            if self._state.is_terminal:
                return
            if outcome is not None and outcome.ok:
                self._complete()
                return
            self._wait_for_trigger()

    def _wait_for_trigger(self) -> None:
        self._state = SchedulerState.WAITING
        if self._timer is None:
            self._timer = asyncio.create_task(self._tick(), name="courier-retry-timer")
        if self._reachability is not None and self._unsubscribe is None:
            self._unsubscribe = self._reachability.once(self._on_reachable)
        logger.info(
            "retry.waiting",
            payload_id=self._payload.id,
            attempts=self._attempts,
            interval=self._interval,
        )

    async def _tick(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            self.request_attempt(Trigger.TIMER)

    def _on_reachable(self) -> None:
        self._unsubscribe = None
        self.request_attempt(Trigger.REACHABILITY)

    def _complete(self) -> None:
        self._state = SchedulerState.DONE
        self._disarm()
        self._slot.clear_if_holds(self._payload.id)
        logger.info("retry.delivered", payload_id=self._payload.id, attempts=self._attempts)
        if self._finished is not None:
            self._finished.set()
        self._fire_success()

    def _fire_success(self) -> None:
        if self._success_fired:
            return
        self._success_fired = True
        try:
            self._on_success()
        except Exception:
            logger.exception("retry.on_success_failed", payload_id=self._payload.id)

    def _disarm(self) -> None:
        timer, self._timer = self._timer, None
        if timer is not None:
            timer.cancel()
        unsubscribe, self._unsubscribe = self._unsubscribe, None
        if unsubscribe is not None:
            unsubscribe()


class RetryHandle:
    """Caller-side handle on a running :class:`RetryScheduler`."""

    def __init__(self, scheduler: RetryScheduler) -> None:
        self._scheduler = scheduler

    @property
    def scheduler(self) -> RetryScheduler:
        return self._scheduler

    @property
    def state(self) -> SchedulerState:
        return self._scheduler.state

    @property
    def attempts(self) -> int:
        return self._scheduler.attempts

    @property
    def delivered(self) -> bool:
        return self._scheduler.state is SchedulerState.DONE

    @property
    def done(self) -> bool:
        return self._scheduler.state.is_terminal

    def stop(self) -> None:
        """Stop retrying. Idempotent; a no-op after delivery."""
        self._scheduler.stop()

    async def wait(self, timeout: float | None = None) -> bool:
        """Wait until delivered or stopped. Returns ``True`` if delivered."""
        return await self._scheduler.wait_finished(timeout)

    def __repr__(self) -> str:
        payload = self._scheduler.payload
        return (
            f"RetryHandle(payload_id={payload.id if payload else None!r}, "
            f"state={self.state.value}, attempts={self.attempts})"
        )


__all__ = [
    "RetryHandle",
    "RetryScheduler",
    "SchedulerState",
    "SuccessCallback",
    "Trigger",
]
