"""Single bounded delivery attempt.

:class:`DeliveryAttempt` performs exactly one HTTP POST of a payload and
reports exactly one :class:`DeliveryOutcome`. It never retries, never
persists and never raises for network conditions: timeouts, transport
errors and non-2xx responses all come back as a failed outcome with a
:class:`FailureReason`.

Wire format (form-encoded, as expected by static-site form handlers)::

    POST <endpoint>
    Content-Type: application/x-www-form-urlencoded

    form-name=experiment-data&data=<payload JSON>

Example::

    attempt = DeliveryAttempt("https://example.org/", client=client)
    outcome = await attempt.send(payload, timeout=15.0)
    if not outcome.ok:
        print(outcome.reason)      # FailureReason.NON_2XX_STATUS
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from enum import Enum

import httpx

from courier.core.errors import DeliveryError
from courier.core.logging import get_logger
from courier.core.payload import Payload
from courier.execution.timeout import DeadlineExceeded, deadline

logger = get_logger(__name__)

DEFAULT_FORM_NAME = "experiment-data"


class FailureReason(str, Enum):
    """Why an attempt failed. All reasons are retried identically."""

    TIMEOUT = "timeout"
    TRANSPORT_ERROR = "transport-error"
    NON_2XX_STATUS = "non-2xx-status"


@dataclass(frozen=True)
class DeliveryOutcome:
    """Result of one attempt: ``Success`` or ``Failure(reason)``."""

    ok: bool
    reason: FailureReason | None = None
    status_code: int | None = None
    detail: str = ""
    elapsed: float = 0.0

    @classmethod
    def success(cls, *, status_code: int | None = None, elapsed: float = 0.0) -> DeliveryOutcome:
        return cls(ok=True, status_code=status_code, elapsed=elapsed)

    @classmethod
    def failure(
        cls,
        reason: FailureReason,
        *,
        status_code: int | None = None,
        detail: str = "",
        elapsed: float = 0.0,
    ) -> DeliveryOutcome:
        return cls(
            ok=False,
            reason=reason,
            status_code=status_code,
            detail=detail,
            elapsed=elapsed,
        )

    def raise_for_failure(self) -> None:
        """Raise :class:`DeliveryError` if this outcome is a failure."""
        if self.ok:
            return
        reason = self.reason.value if self.reason else None
        raise DeliveryError(
            f"Delivery failed: {reason}" + (f" ({self.detail})" if self.detail else ""),
            reason=reason,
            http_status=self.status_code,
        )


class DeliveryAttempt:
    """Sends one payload to a fixed endpoint under a hard deadline.

    Parameters
    ----------
    endpoint : str
        The delivery URL.
    form_name : str
        Value of the ``form-name`` form field.
    client : httpx.AsyncClient | None
        Shared client. When omitted a short-lived client is opened per call.
    """

    def __init__(
        self,
        endpoint: str,
        *,
        form_name: str = DEFAULT_FORM_NAME,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._endpoint = endpoint
        self._form_name = form_name
        self._client = client

    @property
    def endpoint(self) -> str:
        return self._endpoint

    async def send(self, payload: Payload, timeout: float) -> DeliveryOutcome:
        """POST ``payload`` once; resolve within ``timeout`` seconds."""
        form = {"form-name": self._form_name, "data": payload.to_json()}
        start = time.monotonic()

        try:
            async with deadline(timeout, "deliver"):
                response = await self._post(form, timeout)
        except (DeadlineExceeded, httpx.TimeoutException) as e:
            outcome = DeliveryOutcome.failure(
                FailureReason.TIMEOUT,
                detail=str(e) or type(e).__name__,
                elapsed=time.monotonic() - start,
            )
        except (httpx.HTTPError, OSError) as e:
            outcome = DeliveryOutcome.failure(
                FailureReason.TRANSPORT_ERROR,
                detail=str(e) or type(e).__name__,
                elapsed=time.monotonic() - start,
            )
        else:
            elapsed = time.monotonic() - start
            if response.is_success:
                outcome = DeliveryOutcome.success(status_code=response.status_code, elapsed=elapsed)
            else:
                outcome = DeliveryOutcome.failure(
                    FailureReason.NON_2XX_STATUS,
                    status_code=response.status_code,
                    detail=f"HTTP {response.status_code}",
                    elapsed=elapsed,
                )

        if outcome.ok:
            logger.info(
                "delivery.succeeded",
                payload_id=payload.id,
                status_code=outcome.status_code,
                elapsed=round(outcome.elapsed, 3),
            )
        else:
            logger.warning(
                "delivery.failed",
                payload_id=payload.id,
                reason=outcome.reason.value,
                status_code=outcome.status_code,
                detail=outcome.detail,
                elapsed=round(outcome.elapsed, 3),
            )
        return outcome

    async def _post(self, form: dict[str, str], timeout: float) -> httpx.Response:
        if self._client is not None:
            return await self._client.post(self._endpoint, data=form, timeout=timeout)
        async with httpx.AsyncClient(timeout=timeout) as client:
            return await client.post(self._endpoint, data=form)


__all__ = [
    "DEFAULT_FORM_NAME",
    "DeliveryAttempt",
    "DeliveryOutcome",
    "FailureReason",
]
