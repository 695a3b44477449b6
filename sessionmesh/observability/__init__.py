"""
Observability module: structured logging and coordinator operation events.
"""

from sessionmesh.observability.logging import (
    JsonFormatter,
    LogLevel,
    StructuredLogger,
    setup_logging,
)
from sessionmesh.observability.events import (
    CompositeEventSink,
    EventPhase,
    EventSink,
    LoggingEventSink,
    MetricsEventSink,
    SessionEvent,
)

__all__ = [
    "JsonFormatter",
    "LogLevel",
    "StructuredLogger",
    "setup_logging",
    "CompositeEventSink",
    "EventPhase",
    "EventSink",
    "LoggingEventSink",
    "MetricsEventSink",
    "SessionEvent",
]
