"""
Unit Tests: Session Record

Tests:
    - Lock invariants enforced on construction
    - Lock transitions (acquire, unlock, refresh)
    - Wire codec, raw and LZ4-framed
    - Corrupt input mapped to STORE_CORRUPT_RECORD
"""

from datetime import timedelta

import pytest

from sessionmesh.core import constants as C
from sessionmesh.core.errors import ErrorCode
from sessionmesh.core.types import Timestamp
from sessionmesh.session.record import (
    InitializationState,
    SessionData,
    SessionRecord,
)

NOW = Timestamp.from_seconds(1_700_000_000)


def make_record(**overrides) -> SessionRecord:
    fields = dict(
        session_id="abc",
        application_name="/shop",
        timeout_minutes=20,
        now=NOW,
        payload=b"cart=1",
    )
    fields.update(overrides)
    return SessionRecord.new(**fields)


class TestInvariants:
    """Construction-time validation."""

    def test_new_record_is_unlocked_at_token_zero(self):
        record = make_record()
        assert record.locked is False
        assert record.lock_token == 0
        assert record.lock_acquired_at is None
        assert record.expires_at == NOW.plus(timedelta(minutes=20))

    def test_locked_requires_acquired_at(self):
        with pytest.raises(ValueError):
            SessionRecord(
                session_id="abc",
                application_name="/",
                expires_at=NOW,
                locked=True,
            )

    def test_locked_rejects_zero_acquired_at(self):
        with pytest.raises(ValueError):
            SessionRecord(
                session_id="abc",
                application_name="/",
                expires_at=NOW,
                locked=True,
                lock_acquired_at=Timestamp(nanos=0),
            )

    def test_negative_token_rejected(self):
        with pytest.raises(ValueError):
            SessionRecord(
                session_id="abc",
                application_name="/",
                expires_at=NOW,
                lock_token=-1,
            )

    def test_non_positive_timeout_rejected(self):
        with pytest.raises(ValueError):
            make_record(timeout_minutes=0)


class TestTransitions:
    """Successor records."""

    def test_with_lock_increments_token(self):
        record = make_record()
        later = NOW.plus(timedelta(seconds=5))
        locked = record.with_lock(later)

        assert locked.locked is True
        assert locked.lock_token == 1
        assert locked.lock_acquired_at == later
        assert locked.payload == b"cart=1"
        assert record.locked is False  # original untouched

    def test_with_lock_materializes_placeholder(self):
        record = make_record(
            payload=b"stale", initialization=InitializationState.NEEDS_INIT
        )
        locked = record.with_lock(NOW)

        assert locked.payload == b""
        assert locked.initialization is InitializationState.INITIALIZED

    def test_unlocked_refreshes_expiry(self):
        locked = make_record().with_lock(NOW)
        later = NOW.plus(timedelta(minutes=7))
        released = locked.unlocked(later)

        assert released.locked is False
        assert released.lock_token == 1
        assert released.expires_at == later.plus(timedelta(minutes=20))

    def test_lock_age(self):
        locked = make_record().with_lock(NOW)
        assert locked.lock_age(NOW.plus(timedelta(seconds=90))) == timedelta(seconds=90)
        assert make_record().lock_age(NOW) == timedelta(0)

    def test_with_data_adopts_timeout(self):
        record = make_record().with_data(SessionData(b"new", 45))
        assert record.payload == b"new"
        assert record.timeout_minutes == 45
        assert record.to_data() == SessionData(b"new", 45)

    def test_ttl_never_below_one_ms(self):
        record = make_record()
        assert record.ttl_ms(NOW) == 20 * C.MINUTE_MS
        assert record.ttl_ms(NOW.plus(timedelta(hours=1))) == 1

    def test_create_new_data_is_empty(self):
        data = SessionData.create_new(30)
        assert data.payload == b""
        assert data.timeout_minutes == 30


class TestCodec:
    """Framed JSON wire format."""

    def test_small_record_is_raw(self):
        record = make_record().with_lock(NOW)
        data = record.to_bytes()

        assert data[0] == C.FRAME_RAW
        decoded = SessionRecord.from_bytes(data)
        assert decoded.is_ok()
        assert decoded.unwrap() == record

    def test_large_record_is_compressed(self):
        record = make_record(payload=b"x" * 10_000)
        data = record.to_bytes()

        assert data[0] == C.FRAME_LZ4
        assert len(data) < 10_000
        assert SessionRecord.from_bytes(data).unwrap() == record

    def test_threshold_is_configurable(self):
        record = make_record()
        assert record.to_bytes(threshold=0)[0] == C.FRAME_LZ4

    def test_binary_payload_survives(self):
        payload = bytes(range(256))
        record = make_record(payload=payload)
        assert SessionRecord.from_bytes(record.to_bytes()).unwrap().payload == payload

    def test_initialization_state_survives(self):
        record = make_record(initialization=InitializationState.NEEDS_INIT)
        decoded = SessionRecord.from_bytes(record.to_bytes()).unwrap()
        assert decoded.initialization is InitializationState.NEEDS_INIT

    @pytest.mark.parametrize(
        "data",
        [
            b"",
            b"\x07{}",
            b"\x00not json",
            b"\x00{}",
            b"\x01garbage",
            b'\x00{"session_id":"a","application_name":"/","expires_at":1,"payload":"%%%"}',
        ],
    )
    def test_corrupt_bytes(self, data):
        result = SessionRecord.from_bytes(data, key="session:/:a")
        assert result.is_err()
        assert result.error.code is ErrorCode.STORE_CORRUPT_RECORD
        assert result.error.is_fault
