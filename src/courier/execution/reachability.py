"""Reachability-regained signal and connectivity monitor.

:class:`ReachabilitySignal` is the host's "connectivity is back" event.
Listeners subscribe with :meth:`ReachabilitySignal.once` and are called at
most once; :meth:`ReachabilitySignal.notify` fires every current listener
and drops them. The retry scheduler subscribes each time it starts
waiting for a trigger.

Who raises the signal is up to the host. A browser raises it from its
``online`` event; a long-running process can run a
:class:`ConnectivityMonitor`, which probes a URL on an interval and
notifies on every unreachable -> reachable transition.

Example::

    signal = ReachabilitySignal()
    unsubscribe = signal.once(lambda: print("back online"))
    signal.notify()        # prints, returns 1
    signal.notify()        # listener already gone, returns 0
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable

import httpx

from courier.core.logging import get_logger
from courier.execution.timeout import DeadlineExceeded, await_within

logger = get_logger(__name__)

Listener = Callable[[], None]


class ReachabilitySignal:
    """One-shot listener registry for "connectivity regained"."""

    def __init__(self) -> None:
        self._listeners: list[Listener] = []
        self._notify_count = 0

    def once(self, listener: Listener) -> Callable[[], None]:
        """Subscribe ``listener`` for the next notification only.

        Returns:
            A callable that unsubscribes the listener (no-op if it already fired).
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            try:
                self._listeners.remove(listener)
            except ValueError:
                pass

        return unsubscribe

    def notify(self) -> int:
        """Fire and drop all current listeners. Returns how many fired."""
        listeners, self._listeners = self._listeners, []
        self._notify_count += 1
        logger.info("reachability.regained", listeners=len(listeners))
        for listener in listeners:
            try:
                listener()
            except Exception:
                logger.exception("reachability.listener_failed")
        return len(listeners)

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    @property
    def notify_count(self) -> int:
        return self._notify_count


async def check_reachable(
    url: str,
    *,
    timeout: float = 3.0,
    client: httpx.AsyncClient | None = None,
) -> bool:
    """``HEAD`` ``url``; any HTTP response means the network is reachable."""

    async def _head() -> httpx.Response:
        if client is not None:
            return await client.head(url, timeout=timeout)
        async with httpx.AsyncClient(timeout=timeout) as own:
            return await own.head(url)

    try:
        await await_within(_head(), timeout, "probe")
    except (DeadlineExceeded, httpx.HTTPError, OSError):
        return False
    return True


class ConnectivityMonitor:
    """Polls ``probe_url`` and raises ``signal`` when it becomes reachable.

    The first probe only establishes the baseline; a notification needs an
    observed unreachable -> reachable transition.
    """

    def __init__(
        self,
        signal: ReachabilitySignal,
        probe_url: str,
        *,
        interval: float = 5.0,
        timeout: float = 3.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._signal = signal
        self._probe_url = probe_url
        self._interval = interval
        self._timeout = timeout
        self._client = client
        self._task: asyncio.Task[None] | None = None
        self._reachable: bool | None = None
        self._probe_count = 0

    @property
    def reachable(self) -> bool | None:
        """Last observed state (``None`` before the first probe)."""
        return self._reachable

    @property
    def probe_count(self) -> int:
        return self._probe_count

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start polling on the running event loop."""
        if self.is_running:
            logger.warning("connectivity_monitor.already_started")
            return
        self._task = asyncio.create_task(self._run(), name="courier-connectivity")
        logger.info("connectivity_monitor.started", url=self._probe_url, interval=self._interval)

    async def stop(self) -> None:
        """Stop polling and wait for the loop to exit."""
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("connectivity_monitor.stopped", probes=self._probe_count)

    async def probe_once(self) -> bool:
        """Run one probe and notify on a regained transition."""
        reachable = await check_reachable(self._probe_url, timeout=self._timeout, client=self._client)
        self._probe_count += 1
        previous, self._reachable = self._reachable, reachable
        if previous is False and reachable:
            self._signal.notify()
        elif previous is not False and not reachable:
            logger.info("connectivity_monitor.lost", url=self._probe_url)
        return reachable

    async def _run(self) -> None:
        while True:
            await self.probe_once()
            await asyncio.sleep(self._interval)


__all__ = [
    "ConnectivityMonitor",
    "ReachabilitySignal",
    "check_reachable",
]
