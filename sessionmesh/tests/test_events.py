"""
Unit Tests: Observability

Tests:
    - JsonFormatter output with context fields and extras
    - StructuredLogger extras that collide with LogRecord attributes
    - LoggingEventSink, MetricsEventSink, CompositeEventSink
"""

import io
import json
import logging

import pytest

from sessionmesh.core.types import Timestamp
from sessionmesh.observability import (
    CompositeEventSink,
    EventPhase,
    EventSink,
    JsonFormatter,
    LoggingEventSink,
    LogLevel,
    MetricsEventSink,
    SessionEvent,
    StructuredLogger,
)


def make_event(phase=EventPhase.EXIT, status="acquired", operation="acquire_exclusive"):
    return SessionEvent(
        operation=operation,
        phase=phase,
        session_id="abc",
        application_name="/shop",
        timestamp=Timestamp(nanos=1),
        status=status if phase is EventPhase.EXIT else None,
        lock_token=3 if phase is EventPhase.EXIT else None,
        latency_ns=2_000 if phase is EventPhase.EXIT else None,
    )


@pytest.fixture
def json_stream():
    """Attach a JSON handler to the sessionmesh.test logger."""
    stream = io.StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(JsonFormatter())
    logger = logging.getLogger("sessionmesh.test")
    logger.addHandler(handler)
    logger.setLevel(logging.DEBUG)
    yield stream
    logger.removeHandler(handler)


def lines(stream):
    return [json.loads(line) for line in stream.getvalue().splitlines()]


class TestStructuredLogging:

    def test_json_contains_extras_and_context(self, json_stream):
        logger = StructuredLogger("sessionmesh.test")

        with logger.context(session_id="abc"):
            logger.info("Lock acquired", lock_token=2)
        logger.info("Outside")

        inside, outside = lines(json_stream)
        assert inside["message"] == "Lock acquired"
        assert inside["level"] == "INFO"
        assert inside["logger"] == "sessionmesh.test"
        assert inside["session_id"] == "abc"
        assert inside["lock_token"] == 2
        assert "session_id" not in outside

    def test_reserved_extra_is_renamed(self, json_stream):
        logger = StructuredLogger("sessionmesh.test")

        logger.warning("Collision", name="shadow", module="m")

        record = lines(json_stream)[0]
        assert record["logger"] == "sessionmesh.test"
        assert record["extra_name"] == "shadow"
        assert record["extra_module"] == "m"

    def test_with_extra(self, json_stream):
        logger = StructuredLogger("sessionmesh.test").with_extra(component="store")
        logger.error("Boom")
        assert lines(json_stream)[0]["component"] == "store"

    def test_level_parse(self):
        assert LogLevel.parse("debug") is LogLevel.DEBUG
        with pytest.raises(KeyError):
            LogLevel.parse("verbose")


class TestSinks:

    def test_sinks_satisfy_protocol(self):
        for sink in (LoggingEventSink(), MetricsEventSink(), CompositeEventSink()):
            assert isinstance(sink, EventSink)

    def test_logging_sink_writes_debug(self, json_stream):
        sink = LoggingEventSink(StructuredLogger("sessionmesh.test"))

        sink.emit(make_event(EventPhase.ENTER))
        sink.emit(make_event())

        enter, exit_ = lines(json_stream)
        assert enter["level"] == "DEBUG"
        assert enter["message"] == "acquire_exclusive enter"
        assert exit_["status"] == "acquired"
        assert exit_["lock_token"] == 3

    def test_logging_sink_skips_when_disabled(self, json_stream):
        logging.getLogger("sessionmesh.test").setLevel(logging.INFO)
        sink = LoggingEventSink(StructuredLogger("sessionmesh.test"))

        sink.emit(make_event())

        assert json_stream.getvalue() == ""

    def test_metrics_sink_counts_exits_only(self):
        sink = MetricsEventSink()

        sink.emit(make_event(EventPhase.ENTER))
        sink.emit(make_event())
        sink.emit(make_event(status="locked"))
        sink.emit(make_event(status="locked"))

        assert sink.count("acquire_exclusive") == 3
        assert sink.count("acquire_exclusive", "locked") == 2
        assert sink.count("release") == 0
        assert sink.total_latency_ns("acquire_exclusive") == 6_000
        assert sorted(count for _, count in sink.collect()) == [1, 2]

        sink.reset()
        assert sink.count("acquire_exclusive") == 0

    def test_composite_fans_out(self):
        first, second = MetricsEventSink(), MetricsEventSink()
        composite = CompositeEventSink(first, second)

        composite.emit(make_event())

        assert first.count("acquire_exclusive") == 1
        assert second.count("acquire_exclusive") == 1
        assert composite.sinks == (first, second)
