"""
Operation Events: entry/exit notifications from the session coordinator

The coordinator reports every public operation twice, once on entry and
once on exit, to an injected EventSink. Sinks are synchronous and must not
raise; they run inline on the request path.

Provided sinks:
- LoggingEventSink: DEBUG log line per event via StructuredLogger
- MetricsEventSink: labelled counters and latency totals per operation
- CompositeEventSink: fan-out to several sinks
"""

from __future__ import annotations

import threading
from collections import defaultdict
from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterator, Optional, Protocol, runtime_checkable

from sessionmesh.core.types import Timestamp
from sessionmesh.observability.logging import LogLevel, StructuredLogger


class EventPhase(Enum):
    ENTER = "enter"
    EXIT = "exit"


@dataclass(frozen=True, slots=True)
class SessionEvent:
    """
    One coordinator operation boundary.

    `status`, `lock_token` and `latency_ns` are only set on EXIT.
    """
    operation: str
    phase: EventPhase
    session_id: str
    application_name: str
    timestamp: Timestamp
    status: Optional[str] = None
    lock_token: Optional[int] = None
    latency_ns: Optional[int] = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "operation": self.operation,
            "phase": self.phase.value,
            "session_id": self.session_id,
            "application_name": self.application_name,
            "timestamp_nanos": self.timestamp.nanos,
        }
        if self.status is not None:
            data["status"] = self.status
        if self.lock_token is not None:
            data["lock_token"] = self.lock_token
        if self.latency_ns is not None:
            data["latency_ns"] = self.latency_ns
        return data


@runtime_checkable
class EventSink(Protocol):
    """Receiver for coordinator operation events."""

    def emit(self, event: SessionEvent) -> None:
        ...


class LoggingEventSink:
    """Writes each event as a DEBUG line with the event fields as extras."""

    __slots__ = ("_logger",)

    def __init__(self, logger: Optional[StructuredLogger] = None) -> None:
        self._logger = logger or StructuredLogger("sessionmesh.events")

    def emit(self, event: SessionEvent) -> None:
        if not self._logger.is_enabled_for(LogLevel.DEBUG):
            return
        self._logger.debug(
            f"{event.operation} {event.phase.value}",
            **event.to_dict(),
        )


class MetricsEventSink:
    """
    Counts EXIT events by (operation, status) and sums their latency.

    Statuses are the lowercase labels carried by SessionEvent.status
    ("ok", "token_mismatch", "acquired", "locked", ...). One sink may be
    passed to several coordinators to aggregate across them.

    Usage:
        sink = MetricsEventSink()
        coordinator = SessionLockCoordinator(store, config, events=sink)
        ...
        sink.count("release", "token_mismatch")
    """

    __slots__ = ("_counts", "_latency_ns", "_lock")

    def __init__(self) -> None:
        self._counts: dict[tuple[str, str], int] = defaultdict(int)
        self._latency_ns: dict[str, int] = defaultdict(int)
        self._lock = threading.Lock()

    def emit(self, event: SessionEvent) -> None:
        if event.phase is not EventPhase.EXIT:
            return
        with self._lock:
            self._counts[(event.operation, event.status or "")] += 1
            self._latency_ns[event.operation] += event.latency_ns or 0

    def count(self, operation: str, status: Optional[str] = None) -> int:
        """Completed calls of `operation`, optionally only those ending in `status`."""
        with self._lock:
            if status is not None:
                return self._counts.get((operation, status), 0)
            return sum(n for (op, _), n in self._counts.items() if op == operation)

    def total_latency_ns(self, operation: str) -> int:
        with self._lock:
            return self._latency_ns.get(operation, 0)

    def collect(self) -> Iterator[tuple[dict[str, str], int]]:
        """Iterate all (labels, count) combinations."""
        with self._lock:
            items = list(self._counts.items())
        for (operation, status), value in items:
            yield ({"operation": operation, "status": status}, value)

    def reset(self) -> None:
        with self._lock:
            self._counts.clear()
            self._latency_ns.clear()


class CompositeEventSink:
    """Forwards each event to every wrapped sink, in order."""

    __slots__ = ("_sinks",)

    def __init__(self, *sinks: EventSink) -> None:
        self._sinks = tuple(sinks)

    @property
    def sinks(self) -> tuple[EventSink, ...]:
        return self._sinks

    def emit(self, event: SessionEvent) -> None:
        for sink in self._sinks:
            sink.emit(event)
