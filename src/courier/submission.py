"""Submission entry point.

:class:`Submitter` wires the components together and is what the
experiment timeline talks to:

- ``await submitter.recover_on_startup()`` once, before any new payload,
  to drain a slot left by an earlier unfinished session;
- ``await submitter.submit(payload, on_success)`` when the payload is
  final. One or two immediate attempts catch the common case; if they
  all fail the payload is written to the durable slot and a retry
  scheduler keeps going until the endpoint accepts it.

The caller is expected to show an indefinite "sending data..." state until
``on_success`` fires. No error ever surfaces from delivery itself.

Example::

    async with Submitter(CourierSettings(endpoint_url="https://example.org/")) as submitter:
        await submitter.recover_on_startup()
        submission = await submitter.submit(payload, on_success=finish_screen)
        await submission.wait()
"""

from __future__ import annotations

import httpx

from courier.core.logging import get_logger, payload_scope
from courier.core.payload import Payload
from courier.core.settings import CourierSettings, get_settings
from courier.core.slot import DurableSlot
from courier.core.storage import KeyValueStore, build_store
from courier.execution.delivery import DeliveryAttempt, DeliveryOutcome
from courier.execution.reachability import ConnectivityMonitor, ReachabilitySignal
from courier.execution.recovery import RecoveryBootstrap, RecoveryReport
from courier.execution.retry import RetryHandle, RetryScheduler, SuccessCallback

logger = get_logger(__name__)


def _noop() -> None:
    pass


class Submission:
    """The caller's view of one submitted payload."""

    def __init__(
        self,
        payload: Payload,
        *,
        handle: RetryHandle | None = None,
        outcome: DeliveryOutcome | None = None,
    ) -> None:
        self.payload = payload
        self.handle = handle
        self.outcome = outcome

    @property
    def delivered(self) -> bool:
        if self.handle is not None:
            return self.handle.delivered
        return self.outcome is not None and self.outcome.ok

    @property
    def retrying(self) -> bool:
        return self.handle is not None and not self.handle.done

    async def wait(self, timeout: float | None = None) -> bool:
        """Wait for delivery (or stop). Returns ``True`` if delivered."""
        if self.handle is None:
            return self.delivered
        return await self.handle.wait(timeout)

    def stop(self) -> None:
        """Stop background retries; the slot keeps the payload."""
        if self.handle is not None:
            self.handle.stop()

    def __repr__(self) -> str:
        return f"Submission(payload_id={self.payload.id!r}, delivered={self.delivered})"


class Submitter:
    """Resilient submission subsystem for one session.

    Parameters
    ----------
    settings : CourierSettings | None
        Defaults to :func:`~courier.core.settings.get_settings`.
    store : KeyValueStore | None
        Backing store of the durable slot; built from settings when omitted.
    client : httpx.AsyncClient | None
        Shared HTTP client; an owned client is created when omitted.
    reachability : ReachabilitySignal | None
        Host "connectivity regained" signal; a private one is created when
        omitted (and raised by a :class:`ConnectivityMonitor` if
        ``settings.probe_url`` is set).
    """

    def __init__(
        self,
        settings: CourierSettings | None = None,
        *,
        store: KeyValueStore | None = None,
        client: httpx.AsyncClient | None = None,
        reachability: ReachabilitySignal | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._owns_store = store is None
        self._store = store if store is not None else build_store(self._settings)
        self._slot = DurableSlot(self._store, self._settings.slot_key)
        self._owns_client = client is None
        self._client = client if client is not None else httpx.AsyncClient()
        self._attempt = DeliveryAttempt(
            self._settings.endpoint_url,
            form_name=self._settings.form_name,
            client=self._client,
        )
        self._reachability = reachability or ReachabilitySignal()
        self._monitor: ConnectivityMonitor | None = None
        self._handles: list[RetryHandle] = []

    # ── Accessors ────────────────────────────────────────────────────

    @property
    def settings(self) -> CourierSettings:
        return self._settings

    @property
    def slot(self) -> DurableSlot:
        return self._slot

    @property
    def reachability(self) -> ReachabilitySignal:
        return self._reachability

    @property
    def monitor(self) -> ConnectivityMonitor | None:
        return self._monitor

    @property
    def active_handles(self) -> list[RetryHandle]:
        return [h for h in self._handles if not h.done]

    # ── Operations ───────────────────────────────────────────────────

    async def submit(self, payload: Payload, on_success: SuccessCallback | None = None) -> Submission:
        """Deliver ``payload``; ``on_success`` fires exactly once on delivery.

        Raises:
            PayloadError: If the payload cannot be serialized.
        """
        payload.to_json()
        callback = on_success or _noop

        if self.active_handles:
            logger.warning("submission.replacing_pending", payload_id=payload.id)

        outcome: DeliveryOutcome | None = None
        for n in range(self._settings.immediate_attempts):
            with payload_scope(payload.id, immediate_attempt=n + 1):
                outcome = await self._attempt.send(payload, self._settings.live_timeout)
            if outcome.ok:
                logger.info("submission.delivered", payload_id=payload.id, attempts=n + 1)
                self._call_success(callback, payload)
                return Submission(payload, outcome=outcome)

        self._slot.write(payload)
        self._ensure_monitor()
        handle = self._new_scheduler().start(payload, callback)
        self._track(handle)
        logger.info(
            "submission.retrying",
            payload_id=payload.id,
            immediate_attempts=self._settings.immediate_attempts,
        )
        return Submission(payload, handle=handle, outcome=outcome)

    async def recover_on_startup(self) -> RecoveryReport:
        """Resume delivery of a payload left over from an earlier session."""
        bootstrap = RecoveryBootstrap(
            self._slot,
            self._attempt,
            scheduler_factory=self._new_scheduler,
            timeout=self._settings.recovery_timeout,
        )
        report = await bootstrap.recover_on_startup()
        if report.handle is not None:
            self._track(report.handle)
            self._ensure_monitor()
        return report

    async def aclose(self) -> None:
        """Stop background work and release owned resources."""
        for handle in self.active_handles:
            handle.stop()
        if self._monitor is not None:
            await self._monitor.stop()
        if self._owns_client:
            await self._client.aclose()
        if self._owns_store:
            close = getattr(self._store, "close", None)
            if close is not None:
                close()

    async def __aenter__(self) -> Submitter:
        return self

    async def __aexit__(self, *args) -> None:
        await self.aclose()

    # ── Internals ────────────────────────────────────────────────────

    def _track(self, handle: RetryHandle) -> None:
        # finished handles are dropped so a long-lived submitter does not accumulate them
        self._handles = [h for h in self._handles if not h.done]
        self._handles.append(handle)

    def _new_scheduler(self) -> RetryScheduler:
        return RetryScheduler(
            self._attempt,
            self._slot,
            interval=self._settings.retry_interval,
            timeout=self._settings.live_timeout,
            reachability=self._reachability,
        )

    def _ensure_monitor(self) -> None:
        if not self._settings.probe_url:
            return
        if self._monitor is None:
            self._monitor = ConnectivityMonitor(
                self._reachability,
                self._settings.probe_url,
                interval=self._settings.probe_interval,
                client=self._client,
            )
        if not self._monitor.is_running:
            self._monitor.start()

    @staticmethod
    def _call_success(callback: SuccessCallback, payload: Payload) -> None:
        try:
            callback()
        except Exception:
            logger.exception("submission.on_success_failed", payload_id=payload.id)


__all__ = ["Submission", "Submitter"]
