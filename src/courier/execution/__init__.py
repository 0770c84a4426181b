"""Courier execution - getting one payload to the endpoint.

::

    DeliveryAttempt     ─ one bounded HTTP POST, one DeliveryOutcome
      │
      ▼
    RetryScheduler      ─ timer + reachability triggers, one attempt in flight
      │
      ▼
    RecoveryBootstrap   ─ drains the durable slot at startup

    timeout.py          ─ async deadlines
    reachability.py     ─ "connectivity regained" signal + probe monitor
"""
