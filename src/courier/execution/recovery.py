"""Startup recovery of a payload left over from an unfinished session.

If a previous session wrote its payload to the durable slot and ended
before any attempt succeeded, :meth:`RecoveryBootstrap.recover_on_startup`
finds it on the next start and resumes delivery in the background. Recovery
is silent: the session the payload belongs to has already ended from the
participant's point of view, so nothing is shown whatever the result.

Flow:
    ::

        slot empty ───────────────────────────────► NOTHING_PENDING
        slot malformed ─── clear ─────────────────► DISCARDED
        slot has payload ─ one attempt (12 s) ─┬─► DELIVERED (slot cleared)
                                               └─► RETRYING  (fresh scheduler,
                                                              no-op callback)
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

from courier.core.logging import get_logger
from courier.core.slot import DurableSlot
from courier.execution.delivery import DeliveryAttempt, DeliveryOutcome
from courier.execution.retry import RetryHandle, RetryScheduler

logger = get_logger(__name__)


class RecoveryStatus(str, Enum):
    NOTHING_PENDING = "nothing_pending"
    DISCARDED = "discarded"
    DELIVERED = "delivered"
    RETRYING = "retrying"


@dataclass
class RecoveryReport:
    """What :meth:`RecoveryBootstrap.recover_on_startup` did."""

    status: RecoveryStatus
    payload_id: str | None = None
    outcome: DeliveryOutcome | None = None
    handle: RetryHandle | None = None

    @property
    def attempted(self) -> bool:
        return self.outcome is not None


class RecoveryBootstrap:
    """Drains the durable slot once at startup.

    Parameters
    ----------
    slot : DurableSlot
        Slot possibly holding a payload from an earlier session.
    attempt : DeliveryAttempt
        Used for the single immediate recovery attempt.
    scheduler_factory : Callable[[], RetryScheduler]
        Builds the fresh scheduler used when the recovery attempt fails.
    timeout : float
        Deadline of the recovery attempt (shorter than the live path).
    """

    def __init__(
        self,
        slot: DurableSlot,
        attempt: DeliveryAttempt,
        *,
        scheduler_factory: Callable[[], RetryScheduler],
        timeout: float = 12.0,
    ) -> None:
        self._slot = slot
        self._attempt = attempt
        self._scheduler_factory = scheduler_factory
        self._timeout = timeout

    async def recover_on_startup(self) -> RecoveryReport:
        payload = self._slot.read()
        if payload is None:
            if self._slot.occupied:
                self._slot.clear()
                logger.warning("recovery.discarded_malformed", key=self._slot.key)
                return RecoveryReport(status=RecoveryStatus.DISCARDED)
            return RecoveryReport(status=RecoveryStatus.NOTHING_PENDING)

        logger.info("recovery.pending_found", payload_id=payload.id)
        outcome = await self._attempt.send(payload, self._timeout)
        if outcome.ok:
            self._slot.clear()
            logger.info("recovery.delivered", payload_id=payload.id)
            return RecoveryReport(
                status=RecoveryStatus.DELIVERED,
                payload_id=payload.id,
                outcome=outcome,
            )

        handle = self._scheduler_factory().start(payload, on_success=None)
        logger.info("recovery.retrying", payload_id=payload.id)
        return RecoveryReport(
            status=RecoveryStatus.RETRYING,
            payload_id=payload.id,
            outcome=outcome,
            handle=handle,
        )


__all__ = ["RecoveryBootstrap", "RecoveryReport", "RecoveryStatus"]
