"""
Session Record: the entity persisted once per session id

Contains:
- InitializationState: tri-state flag for not-yet-materialized placeholders
- SessionData: the adapter-facing state bag (payload + timeout)
- SessionRecord: the full persisted field set and its byte codec

Wire format (the only durable contract):
    [1-byte frame marker][body]
    marker 0x00: body is UTF-8 JSON
    marker 0x01: body is an LZ4 frame containing UTF-8 JSON
The payload is base64 inside the JSON; every other field is a JSON scalar.
"""

from __future__ import annotations

import base64
import binascii
import json
from dataclasses import dataclass, field, replace
from datetime import timedelta
from enum import Enum
from typing import Any, Dict, Optional

import lz4.frame

from sessionmesh.core import constants as C
from sessionmesh.core.errors import StoreError
from sessionmesh.core.types import Result, Ok, Err, Timestamp


# =============================================================================
# INITIALIZATION STATE
# =============================================================================
class InitializationState(Enum):
    """
    Whether a record is a placeholder awaiting its first real body.

    NEEDS_INIT: created by create_uninitialized; body not yet materialized
    INITIALIZED: placeholder that has since been taken by an exclusive get
    NONE: ordinary record written with real session data
    """
    NEEDS_INIT = "needs_init"
    INITIALIZED = "initialized"
    NONE = "none"


# =============================================================================
# SESSION DATA (ADAPTER-FACING)
# =============================================================================
@dataclass(frozen=True, slots=True)
class SessionData:
    """Opaque session item bag plus the session's idle timeout."""
    payload: bytes = b""
    timeout_minutes: int = C.DEFAULT_TIMEOUT_MINUTES

    @classmethod
    def create_new(cls, timeout_minutes: int) -> SessionData:
        """Empty item bag for a brand new session."""
        return cls(payload=b"", timeout_minutes=timeout_minutes)


# =============================================================================
# SESSION RECORD
# =============================================================================
@dataclass(frozen=True, slots=True)
class SessionRecord:
    """
    Persisted per-session state: payload, lock and expiry metadata.

    Invariants:
        - lock_token >= 0
        - locked implies lock_acquired_at is set and non-zero
        - timeout_minutes > 0

    Records are immutable; coordinator steps build successors with
    dataclasses.replace().
    """
    session_id: str
    application_name: str
    expires_at: Timestamp
    timeout_minutes: int = C.DEFAULT_TIMEOUT_MINUTES
    payload: bytes = b""
    locked: bool = False
    lock_token: int = 0
    lock_acquired_at: Optional[Timestamp] = None
    initialization: InitializationState = InitializationState.NONE
    format_version: int = field(default=C.RECORD_FORMAT_VERSION, compare=False)

    def __post_init__(self) -> None:
        if self.lock_token < 0:
            raise ValueError(f"lock_token must be >= 0, got {self.lock_token}")
        if self.timeout_minutes <= 0:
            raise ValueError(f"timeout_minutes must be > 0, got {self.timeout_minutes}")
        if self.locked and (self.lock_acquired_at is None or self.lock_acquired_at.nanos == 0):
            raise ValueError("locked record requires a non-zero lock_acquired_at")

    # -------------------------------------------------------------------------
    # Construction
    # -------------------------------------------------------------------------

    @classmethod
    def new(
        cls,
        session_id: str,
        application_name: str,
        timeout_minutes: int,
        now: Timestamp,
        payload: bytes = b"",
        initialization: InitializationState = InitializationState.NONE,
    ) -> SessionRecord:
        """Unlocked record at token 0 expiring one timeout from now."""
        return cls(
            session_id=session_id,
            application_name=application_name,
            expires_at=now.plus(timedelta(minutes=timeout_minutes)),
            timeout_minutes=timeout_minutes,
            payload=payload,
            initialization=initialization,
        )

    # -------------------------------------------------------------------------
    # Lock transitions
    # -------------------------------------------------------------------------

    @property
    def timeout(self) -> timedelta:
        return timedelta(minutes=self.timeout_minutes)

    @property
    def needs_initialization(self) -> bool:
        return self.initialization is InitializationState.NEEDS_INIT

    def lock_age(self, now: Timestamp) -> timedelta:
        """Time since the lock was taken; zero when unlocked."""
        if not self.locked or self.lock_acquired_at is None:
            return timedelta(0)
        return now.since(self.lock_acquired_at)

    def ttl_ms(self, now: Timestamp) -> int:
        """Milliseconds until expires_at, at least 1 so the store never persists it."""
        return max(1, (self.expires_at - now) // Timestamp.NANOS_PER_MILLI)

    def with_lock(self, now: Timestamp) -> SessionRecord:
        """
        Successor taking the lock: token + 1, locked, stamped now.

        A NEEDS_INIT placeholder is materialized with an empty body.
        """
        payload = self.payload
        initialization = self.initialization
        if self.needs_initialization:
            payload = b""
            initialization = InitializationState.INITIALIZED
        return replace(
            self,
            locked=True,
            lock_token=self.lock_token + 1,
            lock_acquired_at=now,
            payload=payload,
            initialization=initialization,
        )

    def unlocked(self, now: Timestamp) -> SessionRecord:
        """Successor with the lock cleared and expiry refreshed."""
        return replace(self, locked=False).refreshed(now)

    def refreshed(self, now: Timestamp) -> SessionRecord:
        """Successor with expires_at recomputed from timeout_minutes."""
        return replace(self, expires_at=now.plus(self.timeout))

    def with_data(self, data: SessionData) -> SessionRecord:
        return replace(self, payload=data.payload, timeout_minutes=data.timeout_minutes)

    def to_data(self) -> SessionData:
        return SessionData(payload=self.payload, timeout_minutes=self.timeout_minutes)

    # -------------------------------------------------------------------------
    # Codec
    # -------------------------------------------------------------------------

    def to_dict(self) -> Dict[str, Any]:
        return {
            "fv": self.format_version,
            "session_id": self.session_id,
            "application_name": self.application_name,
            "payload": base64.b64encode(self.payload).decode("ascii"),
            "locked": self.locked,
            "lock_token": self.lock_token,
            "lock_acquired_at": (
                self.lock_acquired_at.nanos if self.lock_acquired_at is not None else None
            ),
            "timeout_minutes": self.timeout_minutes,
            "expires_at": self.expires_at.nanos,
            "initialization": self.initialization.value,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> SessionRecord:
        acquired = data.get("lock_acquired_at")
        return cls(
            session_id=data["session_id"],
            application_name=data["application_name"],
            payload=base64.b64decode(data.get("payload", ""), validate=True),
            locked=bool(data.get("locked", False)),
            lock_token=int(data.get("lock_token", 0)),
            lock_acquired_at=Timestamp(nanos=int(acquired)) if acquired is not None else None,
            timeout_minutes=int(data.get("timeout_minutes", C.DEFAULT_TIMEOUT_MINUTES)),
            expires_at=Timestamp(nanos=int(data["expires_at"])),
            initialization=InitializationState(
                data.get("initialization", InitializationState.NONE.value)
            ),
            format_version=int(data.get("fv", C.RECORD_FORMAT_VERSION)),
        )

    def to_bytes(self, threshold: int = C.COMPRESSION_THRESHOLD_BYTES) -> bytes:
        """
        Serialize with optional LZ4 frame compression.

        Bodies longer than `threshold` bytes are compressed.
        """
        body = json.dumps(self.to_dict(), separators=(",", ":")).encode("utf-8")

        if len(body) > threshold:
            return bytes([C.FRAME_LZ4]) + lz4.frame.compress(body)
        return bytes([C.FRAME_RAW]) + body

    @classmethod
    def from_bytes(cls, data: bytes, key: str = "?") -> Result[SessionRecord, StoreError]:
        """
        Deserialize from the framed wire format.

        Returns:
            Ok(SessionRecord), or Err(StoreError.corrupt_record) for bytes this
            codec did not produce.
        """
        if len(data) == 0:
            return Err(StoreError.corrupt_record(key, "empty record"))

        marker, body = data[0], data[1:]
        try:
            if marker == C.FRAME_LZ4:
                body = lz4.frame.decompress(body)
            elif marker != C.FRAME_RAW:
                return Err(StoreError.corrupt_record(key, f"unknown frame marker {marker:#04x}"))
            return Ok(cls.from_dict(json.loads(body.decode("utf-8"))))
        except (
            RuntimeError,  # lz4 frame errors
            UnicodeDecodeError,
            json.JSONDecodeError,
            binascii.Error,
            KeyError,
            TypeError,
            ValueError,
        ) as e:
            return Err(StoreError.corrupt_record(key, type(e).__name__, cause=e))
