"""
Shared fixtures: a controllable clock, reading/snapshot factories and
credential providers for the cache tests.
"""

import asyncio
from typing import Any

import pytest

from netatmo_bridge.core.config import Settings
from netatmo_bridge.core.credentials import Credential, NotAuthenticatedError
from netatmo_bridge.core.models import Reading, Snapshot

T0 = 1_700_000_000.0


class FakeClock:
    def __init__(self, now: float = T0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeReader:
    """Reader double: counts calls, returns queued results, can be held open."""

    def __init__(self, *results: Any):
        self.results = list(results)
        self.calls = 0
        self.gate: asyncio.Event | None = None
        self.on_call = None

    async def __call__(self, credential: Credential) -> Snapshot:
        self.calls += 1
        if self.on_call is not None:
            self.on_call()
        if self.gate is not None:
            await self.gate.wait()
        result = self.results[0] if len(self.results) == 1 else self.results.pop(0)
        if isinstance(result, BaseException):
            raise result
        return result


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def make_reading():
    def _make(device_id="dev1", module="Living room", measured_at=T0, device_class="weather", **values):
        return Reading(
            device_class=device_class,
            device_id=device_id,
            module=module,
            station="Home station",
            home="Home",
            measured_at=measured_at,
            values=values,
        )
    return _make


@pytest.fixture
def make_snapshot():
    def _make(*readings):
        return Snapshot(readings=readings, raw=[{"_id": r.device_id} for r in readings], fetched_at=T0)
    return _make


@pytest.fixture
def credential() -> Credential:
    return Credential(access_token="access", refresh_token="refresh", expiry=None)


@pytest.fixture
def provide_credential(credential):
    async def _provide() -> Credential:
        return credential
    return _provide


@pytest.fixture
def no_credential():
    async def _provide() -> Credential:
        raise NotAuthenticatedError()
    return _provide


@pytest.fixture
def settings() -> Settings:
    return Settings(
        client_id="client-id",
        client_secret="client-secret",
        refresh_interval=480,
        stale_threshold=3600,
        refresh_timeout=5,
        debug_handlers=True,
    )
