"""
Shared pytest fixtures for courier tests.

This module provides:
- FakeEndpoint: a scripted HTTP endpoint served through httpx.MockTransport
- Payload, store and slot fixtures
- Settings tuned for fast retry loops
- Environment/settings cache isolation

Usage:
    async def test_something(make_endpoint, payload):
        endpoint = make_endpoint(500, 200)
        attempt = DeliveryAttempt(ENDPOINT_URL, client=endpoint.client)
        ...
"""

import asyncio
import os
import sys
import time
from collections.abc import Callable
from pathlib import Path
from urllib.parse import parse_qs

import httpx
import pytest
import pytest_asyncio

# Ensure courier package is importable
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from courier.core.payload import Payload
from courier.core.settings import CourierSettings, reset_settings
from courier.core.slot import DurableSlot
from courier.core.storage import MemoryKeyValueStore

ENDPOINT_URL = "http://courier.test/submit"

HANG = "hang"


class FakeEndpoint:
    """Scripted form endpoint.

    Each request consumes the next script step; once the script is
    exhausted ``default`` is used. A step is one of:

    - an ``int``: respond with that status code
    - ``"hang"``: never respond (the caller's deadline has to fire)
    - an ``Exception`` instance: raise it from the transport
    - an ``asyncio.Event``: wait for it to be set, then respond 200
    """

    def __init__(self, *script, default=200):
        self.script = list(script)
        self.default = default
        self.requests: list[httpx.Request] = []
        self.in_flight = 0
        self.max_in_flight = 0
        self.client = httpx.AsyncClient(transport=httpx.MockTransport(self.handler))

    async def handler(self, request: httpx.Request) -> httpx.Response:
        await request.aread()
        self.requests.append(request)
        step = self.script.pop(0) if self.script else self.default

        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if step == HANG:
                await asyncio.sleep(3600)
            if isinstance(step, asyncio.Event):
                await step.wait()
                step = 200
            if isinstance(step, Exception):
                raise step
            return httpx.Response(step, text="ok" if 200 <= step < 300 else "error")
        finally:
            self.in_flight -= 1

    @property
    def calls(self) -> int:
        return len(self.requests)

    def form(self, index: int = -1) -> dict[str, str]:
        """Decoded form fields of a recorded request."""
        fields = parse_qs(self.requests[index].content.decode("utf-8"))
        return {k: v[0] for k, v in fields.items()}

    async def aclose(self) -> None:
        await self.client.aclose()


@pytest.fixture(autouse=True)
def isolate_settings(monkeypatch):
    """Strip COURIER_* variables and clear the settings cache around each test."""
    for name in list(os.environ):
        if name.startswith("COURIER_"):
            monkeypatch.delenv(name, raising=False)
    reset_settings()
    yield
    reset_settings()


@pytest_asyncio.fixture
async def make_endpoint():
    """Factory for FakeEndpoint instances; clients are closed on teardown."""
    endpoints: list[FakeEndpoint] = []

    def factory(*script, default=200) -> FakeEndpoint:
        endpoint = FakeEndpoint(*script, default=default)
        endpoints.append(endpoint)
        return endpoint

    yield factory
    for endpoint in endpoints:
        await endpoint.aclose()


@pytest.fixture
def payload() -> Payload:
    return Payload.create(
        {"trials": [{"rt": 512, "correct": True}, {"rt": 430, "correct": False}]},
        meta={"site": "lab", "ver": "2025-10-04a"},
        id="aZ3kP0qL9x",
        when="2025-10-04T12:00:00+00:00",
    )


@pytest.fixture
def store() -> MemoryKeyValueStore:
    return MemoryKeyValueStore()


@pytest.fixture
def slot(store) -> DurableSlot:
    return DurableSlot(store)


@pytest.fixture
def settings(tmp_path) -> CourierSettings:
    """Settings with short deadlines and intervals so retry loops run fast."""
    return CourierSettings(
        endpoint_url=ENDPOINT_URL,
        data_dir=tmp_path,
        storage_backend="memory",
        live_timeout=0.5,
        recovery_timeout=0.5,
        retry_interval=0.05,
        probe_interval=0.05,
    )


@pytest.fixture
def wait_until() -> Callable:
    """Poll ``predicate`` until it holds or ``timeout`` expires."""

    async def _wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> bool:
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            if predicate():
                return True
            await asyncio.sleep(0.01)
        return predicate()

    return _wait_until
