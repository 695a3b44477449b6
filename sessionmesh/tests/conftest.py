"""
Shared fixtures: a hand-driven clock, an in-memory store on that clock and
a coordinator wired to both.
"""

from __future__ import annotations

from datetime import timedelta

import pytest

from sessionmesh.core.config import CoordinatorConfig
from sessionmesh.core.types import Timestamp
from sessionmesh.observability.events import MetricsEventSink
from sessionmesh.session.coordinator import SessionLockCoordinator
from sessionmesh.storage.backends import InMemoryKeyValueStore


START = Timestamp.from_seconds(1_700_000_000)


class ManualClock:
    """Clock that only moves when told to."""

    def __init__(self, start: Timestamp = START) -> None:
        self.now = start

    def __call__(self) -> Timestamp:
        return self.now

    def advance(self, **kwargs: float) -> Timestamp:
        self.now = self.now.plus(timedelta(**kwargs))
        return self.now


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def store(clock: ManualClock) -> InMemoryKeyValueStore:
    return InMemoryKeyValueStore(clock=clock)


@pytest.fixture
def config() -> CoordinatorConfig:
    return CoordinatorConfig(application_name="/shop", timeout_minutes=20)


@pytest.fixture
def sink() -> MetricsEventSink:
    return MetricsEventSink()


@pytest.fixture
def coordinator(
    store: InMemoryKeyValueStore,
    config: CoordinatorConfig,
    sink: MetricsEventSink,
    clock: ManualClock,
) -> SessionLockCoordinator:
    return SessionLockCoordinator(store, config, events=sink, clock=clock)
