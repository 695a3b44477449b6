"""
Typed outcomes returned by the session coordinator.

Contention is never an exception: callers branch on SessionStatus for
writes and on the NotFound / Locked / Acquired variant for reads.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from enum import Enum
from typing import Optional, Union

from sessionmesh.core.errors import StoreError
from sessionmesh.session.record import InitializationState, SessionRecord


class SessionStatus(Enum):
    """Result of a write-side coordinator operation."""
    OK = "ok"
    NOT_FOUND = "not_found"
    TOKEN_MISMATCH = "token_mismatch"
    CONFLICT = "conflict"
    STORE_ERROR = "store_error"

    @property
    def is_ok(self) -> bool:
        return self is SessionStatus.OK


@dataclass(frozen=True, slots=True)
class NotFound:
    """
    No live record for the session (expired, removed or never created).

    `fault` is set when the read failed and faults are not propagated;
    the caller should then treat the session as unavailable, not new.
    """
    fault: Optional[StoreError] = None


@dataclass(frozen=True, slots=True)
class Locked:
    """Another request holds the session; nothing was written."""
    lock_age: timedelta
    lock_token: int


@dataclass(frozen=True, slots=True)
class Acquired:
    """
    Session state handed to the caller.

    exclusive=True: the caller now owns the lock under `lock_token` and must
    present it to release, set_and_release or remove_item.
    exclusive=False: read-only snapshot, nothing was written.

    `actions` is the record's initialization state before this call;
    NEEDS_INIT tells the caller to run its session-start logic.
    """
    record: SessionRecord
    lock_token: int
    actions: InitializationState = InitializationState.NONE
    exclusive: bool = True

    @property
    def payload(self) -> bytes:
        return self.record.payload

    @property
    def needs_initialization(self) -> bool:
        return self.actions is InitializationState.NEEDS_INIT


AcquireOutcome = Union[NotFound, Locked, Acquired]
