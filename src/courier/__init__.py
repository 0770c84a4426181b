"""
Courier - resilient delivery of a single study result payload.

Public surface:

    from courier import Payload, Submitter, CourierSettings

    async with Submitter(CourierSettings(endpoint_url="https://example.org/")) as submitter:
        await submitter.recover_on_startup()
        submission = await submitter.submit(Payload.create(data), on_success=done)
        await submission.wait()
"""

__version__ = "0.1.0"

from courier.core.errors import CourierError, PayloadError, SchedulerError, StorageError
from courier.core.payload import Payload
from courier.core.settings import CourierSettings, get_settings
from courier.core.slot import DurableSlot
from courier.execution.delivery import DeliveryAttempt, DeliveryOutcome, FailureReason
from courier.execution.reachability import ConnectivityMonitor, ReachabilitySignal
from courier.execution.recovery import RecoveryBootstrap, RecoveryReport, RecoveryStatus
from courier.execution.retry import RetryHandle, RetryScheduler, SchedulerState
from courier.submission import Submission, Submitter

__all__ = [
    "__version__",
    "ConnectivityMonitor",
    "CourierError",
    "CourierSettings",
    "DeliveryAttempt",
    "DeliveryOutcome",
    "DurableSlot",
    "FailureReason",
    "Payload",
    "PayloadError",
    "ReachabilitySignal",
    "RecoveryBootstrap",
    "RecoveryReport",
    "RecoveryStatus",
    "RetryHandle",
    "RetryScheduler",
    "SchedulerError",
    "SchedulerState",
    "StorageError",
    "Submission",
    "Submitter",
    "get_settings",
]
