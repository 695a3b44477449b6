"""
Session Lock Coordinator: exclusive access to shared session state

Many concurrent requests may reference the same session. The coordinator
guarantees that at most one of them can mutate the session's data at a
time, while the others learn who holds it and for how long.

Protocol:
    The record's lock_token doubles as its store version. Every write is a
    compare-and-swap against the token the writer last saw:

    acquire:          CAS(token -> token + 1), locked = True
    release:          CAS(token -> token),     locked = False
    set_and_release:  CAS(token -> token),     new payload, locked = False
    remove_item:      remove(expected_version = token)
    reset_timeout:    unconditional upsert, lock fields written back as read

    A writer holding a stale token therefore always loses, and the only
    way a token changes is a successful unlocked -> locked transition.

State machine:
    Absent -> Unlocked -> Locked -> Unlocked -> ... -> Absent
    (removal or TTL expiry from any state)

Concurrency:
    The coordinator holds no per-session state and no in-process locks;
    correctness rests entirely on the atomicity of single store calls.
    Nothing is retried and nothing waits; a caller that finds the session
    locked decides for itself whether to retry, force-unlock or give up.

Complexity: every operation is at most two store round trips.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional, TypeVar

from sessionmesh.core import constants as C
from sessionmesh.core.config import CoordinatorConfig
from sessionmesh.core.errors import ErrorCode, SessionStateError, StoreError
from sessionmesh.core.types import Clock, Result, Ok, Err, Timestamp
from sessionmesh.observability.events import EventPhase, EventSink, SessionEvent
from sessionmesh.observability.logging import StructuredLogger
from sessionmesh.session.outcomes import (
    AcquireOutcome,
    Acquired,
    Locked,
    NotFound,
    SessionStatus,
)
from sessionmesh.session.record import (
    InitializationState,
    SessionData,
    SessionRecord,
)
from sessionmesh.storage.protocols import KeyValueStoreProtocol


T = TypeVar("T")

_logger = StructuredLogger("sessionmesh.session")


# =============================================================================
# METRICS
# =============================================================================
@dataclass
class CoordinatorMetrics:
    """
    Per-operation call counts, outcome counts and latency for one coordinator.

    Always on and owned by the coordinator, so `coordinator.metrics` works
    without any event sink and also counts store faults. MetricsEventSink
    is the opt-in counterpart: it is attached through `events=` and can be
    shared by several coordinators to aggregate their outcomes.
    """
    calls: dict[str, int] = field(default_factory=dict)
    outcomes: dict[str, int] = field(default_factory=dict)
    latency_ns: dict[str, int] = field(default_factory=dict)
    store_faults: int = 0

    def record(self, operation: str, outcome: str, latency_ns: int) -> None:
        self.calls[operation] = self.calls.get(operation, 0) + 1
        self.outcomes[outcome] = self.outcomes.get(outcome, 0) + 1
        self.latency_ns[operation] = self.latency_ns.get(operation, 0) + latency_ns

    def avg_latency_ms(self, operation: str) -> float:
        calls = self.calls.get(operation, 0)
        if calls == 0:
            return 0.0
        return self.latency_ns.get(operation, 0) / calls / 1_000_000

    def to_dict(self) -> dict[str, Any]:
        return {
            "calls": dict(self.calls),
            "outcomes": dict(self.outcomes),
            "latency_ns": dict(self.latency_ns),
            "store_faults": self.store_faults,
        }


def _outcome_label(outcome: Any) -> str:
    """Short status string for events and metrics."""
    if isinstance(outcome, SessionStatus):
        return outcome.value
    if isinstance(outcome, NotFound):
        return SessionStatus.STORE_ERROR.value if outcome.fault else SessionStatus.NOT_FOUND.value
    if isinstance(outcome, Locked):
        return "locked"
    if isinstance(outcome, Acquired):
        return "acquired" if outcome.exclusive else "read"
    return type(outcome).__name__.lower()


# =============================================================================
# COORDINATOR
# =============================================================================
class SessionLockCoordinator:
    """
    Lock-coordinated session persistence over a KeyValueStoreProtocol.

    Usage:
        coordinator = SessionLockCoordinator(store, CoordinatorConfig(application_name="/shop"))

        outcome = await coordinator.acquire_exclusive("abc")
        match outcome:
            case Acquired(record=record, lock_token=token):
                data = SessionData(payload=mutate(record.payload), timeout_minutes=20)
                await coordinator.set_and_release("abc", token, data, is_new_session=False)
            case Locked(lock_age=age):
                ...  # retry later or force-unlock if age is excessive
            case NotFound():
                ...  # start a new session

    Error handling:
        Contention comes back as typed values. Store faults are logged and
        reported as STORE_ERROR / NotFound(fault=...), or raised as
        SessionStateError when config.propagate_faults is set.
    """

    __slots__ = ("_store", "_config", "_events", "_clock", "_metrics")

    def __init__(
        self,
        store: KeyValueStoreProtocol,
        config: Optional[CoordinatorConfig] = None,
        events: Optional[EventSink] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        self._store = store
        self._config = config or CoordinatorConfig()
        self._events = events
        self._clock: Clock = clock or Timestamp.now
        self._metrics = CoordinatorMetrics()

    @property
    def config(self) -> CoordinatorConfig:
        return self._config

    @property
    def metrics(self) -> CoordinatorMetrics:
        return self._metrics

    # -------------------------------------------------------------------------
    # Adapter contract
    # -------------------------------------------------------------------------

    async def acquire_exclusive(
        self,
        session_id: str,
        want_lock: bool = True,
    ) -> AcquireOutcome:
        """
        Read a session and, if it is unlocked, take its lock.

        Never waits. A locked session comes back as Locked with the age of
        the current lock; a lost CAS race is reported from the winner's state.

        Args:
            session_id: Session to fetch
            want_lock: False for a read-only fetch that writes nothing

        Returns:
            NotFound, Locked or Acquired
        """
        operation = "acquire_exclusive" if want_lock else "get_item"
        return await self._run(
            operation, session_id, lambda: self._acquire(operation, session_id, want_lock)
        )

    async def get_item(self, session_id: str) -> AcquireOutcome:
        """Non-exclusive fetch; same as acquire_exclusive(want_lock=False)."""
        return await self.acquire_exclusive(session_id, want_lock=False)

    async def release(self, session_id: str, lock_token: int) -> SessionStatus:
        """Unlock without changing the payload, if `lock_token` still owns the session."""
        return await self._run(
            "release", session_id, lambda: self._release(session_id, lock_token)
        )

    async def set_and_release(
        self,
        session_id: str,
        lock_token: int,
        data: SessionData,
        is_new_session: bool,
    ) -> SessionStatus:
        """
        Persist new session data and unlock in a single write.

        New sessions are inserted (CONFLICT if the id is taken; lock_token is
        ignored). Existing sessions are only written while `lock_token` is
        still current; the record adopts data.timeout_minutes.
        """
        self._check_timeout(data.timeout_minutes)
        return await self._run(
            "set_and_release",
            session_id,
            lambda: self._set_and_release(session_id, lock_token, data, is_new_session),
        )

    async def reset_timeout(self, session_id: str) -> SessionStatus:
        """Push expires_at one timeout into the future; lock state is left as read."""
        return await self._run(
            "reset_timeout", session_id, lambda: self._reset_timeout(session_id)
        )

    async def remove_item(self, session_id: str, lock_token: int) -> SessionStatus:
        """Delete the session if `lock_token` is still current."""
        return await self._run(
            "remove_item", session_id, lambda: self._remove_item(session_id, lock_token)
        )

    async def create_uninitialized(
        self,
        session_id: str,
        timeout_minutes: int,
    ) -> SessionStatus:
        """
        Insert an unlocked NEEDS_INIT placeholder with an empty payload.

        The first exclusive acquire materializes it and reports NEEDS_INIT
        in Acquired.actions.
        """
        self._check_timeout(timeout_minutes)
        return await self._run(
            "create_uninitialized",
            session_id,
            lambda: self._create_uninitialized(session_id, timeout_minutes),
        )

    def create_new(self, timeout_minutes: int) -> SessionData:
        self._check_timeout(timeout_minutes)
        return SessionData.create_new(timeout_minutes)

    def set_item_expire_callback(self, callback: Callable[..., Any]) -> bool:
        """
        Expiry notifications are not supported.

        Records are purged by the store's TTL, so there is no point at
        which the coordinator could observe an expiry.
        """
        return False

    # -------------------------------------------------------------------------
    # Operation bodies
    # -------------------------------------------------------------------------

    async def _acquire(
        self,
        operation: str,
        session_id: str,
        want_lock: bool,
    ) -> AcquireOutcome:
        key = self._config.key_for(session_id)

        read = await self._read(key)
        if isinstance(read, Err):
            self._fault(operation, session_id, read.error)
            return NotFound(fault=read.error)

        record = read.value
        if record is None:
            return NotFound()

        now = self._clock()
        if record.locked:
            return Locked(lock_age=record.lock_age(now), lock_token=record.lock_token)

        if not want_lock:
            return Acquired(
                record=record,
                lock_token=record.lock_token,
                actions=record.initialization,
                exclusive=False,
            )

        acquired = record.with_lock(now)
        cas = await self._store.compare_and_swap(
            key,
            self._encode(acquired),
            expected_version=record.lock_token,
            new_version=acquired.lock_token,
            ttl_ms=acquired.ttl_ms(now),
        )
        if isinstance(cas, Ok):
            _logger.debug(
                "Session lock acquired",
                lock_token=acquired.lock_token,
                actions=record.initialization.value,
            )
            return Acquired(
                record=acquired,
                lock_token=acquired.lock_token,
                actions=record.initialization,
            )

        if cas.error.is_fault:
            self._fault(operation, session_id, cas.error)
            return NotFound(fault=cas.error)

        # Lost the race: report whoever won.
        fresh = await self._read(key)
        if isinstance(fresh, Err):
            self._fault(operation, session_id, fresh.error)
            return NotFound(fault=fresh.error)
        if fresh.value is None:
            return NotFound()
        return Locked(
            lock_age=fresh.value.lock_age(self._clock()),
            lock_token=fresh.value.lock_token,
        )

    async def _release(self, session_id: str, lock_token: int) -> SessionStatus:
        key = self._config.key_for(session_id)

        read = await self._read(key)
        if isinstance(read, Err):
            return self._fault("release", session_id, read.error)
        record = read.value
        if record is None:
            return SessionStatus.NOT_FOUND
        if record.lock_token != lock_token:
            return SessionStatus.TOKEN_MISMATCH

        now = self._clock()
        released = record.unlocked(now)
        return await self._swap("release", session_id, key, released, lock_token, now)

    async def _set_and_release(
        self,
        session_id: str,
        lock_token: int,
        data: SessionData,
        is_new_session: bool,
    ) -> SessionStatus:
        key = self._config.key_for(session_id)
        now = self._clock()

        if is_new_session:
            record = SessionRecord.new(
                session_id=session_id,
                application_name=self._config.application_name,
                timeout_minutes=data.timeout_minutes,
                now=now,
                payload=data.payload,
            )
            return await self._insert("set_and_release", session_id, key, record, now)

        read = await self._read(key)
        if isinstance(read, Err):
            return self._fault("set_and_release", session_id, read.error)
        record = read.value
        if record is None:
            return SessionStatus.NOT_FOUND
        if record.lock_token != lock_token:
            return SessionStatus.TOKEN_MISMATCH

        now = self._clock()
        updated = record.with_data(data).unlocked(now)
        return await self._swap("set_and_release", session_id, key, updated, lock_token, now)

    async def _reset_timeout(self, session_id: str) -> SessionStatus:
        key = self._config.key_for(session_id)

        read = await self._read(key)
        if isinstance(read, Err):
            return self._fault("reset_timeout", session_id, read.error)
        record = read.value
        if record is None:
            return SessionStatus.NOT_FOUND

        now = self._clock()
        refreshed = record.refreshed(now)
        if refreshed.expires_at < record.expires_at:
            # expiry only moves forward, even across skewed clocks
            refreshed = record

        written = await self._store.upsert(
            key,
            self._encode(refreshed),
            version=record.lock_token,
            ttl_ms=refreshed.ttl_ms(now),
        )
        if isinstance(written, Err):
            return self._fault("reset_timeout", session_id, written.error)
        return SessionStatus.OK

    async def _remove_item(self, session_id: str, lock_token: int) -> SessionStatus:
        key = self._config.key_for(session_id)

        read = await self._read(key)
        if isinstance(read, Err):
            return self._fault("remove_item", session_id, read.error)
        record = read.value
        if record is None:
            return SessionStatus.NOT_FOUND
        if record.lock_token != lock_token:
            return SessionStatus.TOKEN_MISMATCH

        removed = await self._store.remove(key, expected_version=lock_token)
        if isinstance(removed, Ok):
            return SessionStatus.OK
        return self._contention_status("remove_item", session_id, removed.error)

    async def _create_uninitialized(
        self,
        session_id: str,
        timeout_minutes: int,
    ) -> SessionStatus:
        key = self._config.key_for(session_id)
        now = self._clock()
        record = SessionRecord.new(
            session_id=session_id,
            application_name=self._config.application_name,
            timeout_minutes=timeout_minutes,
            now=now,
            initialization=InitializationState.NEEDS_INIT,
        )
        return await self._insert("create_uninitialized", session_id, key, record, now)

    # -------------------------------------------------------------------------
    # Store helpers
    # -------------------------------------------------------------------------

    async def _read(self, key: str) -> Result[Optional[SessionRecord], StoreError]:
        """
        Fetch and decode a record.

        Ok(None) when the key is absent or belongs to another application;
        Err only for faults, including undecodable bytes.
        """
        got = await self._store.get(key)
        if isinstance(got, Err):
            if got.error.code is ErrorCode.STORE_KEY_NOT_FOUND:
                return Ok(None)
            return got

        decoded = SessionRecord.from_bytes(got.value.value, key=key)
        if isinstance(decoded, Err):
            return decoded

        record = decoded.value
        if record.application_name != self._config.application_name:
            _logger.warning(
                "Ignoring record owned by another application",
                key=key,
                owner=record.application_name,
            )
            return Ok(None)
        return Ok(record)

    async def _swap(
        self,
        operation: str,
        session_id: str,
        key: str,
        record: SessionRecord,
        lock_token: int,
        now: Timestamp,
    ) -> SessionStatus:
        """CAS that keeps the token; the caller already verified ownership."""
        swapped = await self._store.compare_and_swap(
            key,
            self._encode(record),
            expected_version=lock_token,
            new_version=lock_token,
            ttl_ms=record.ttl_ms(now),
        )
        if isinstance(swapped, Ok):
            return SessionStatus.OK
        return self._contention_status(operation, session_id, swapped.error)

    async def _insert(
        self,
        operation: str,
        session_id: str,
        key: str,
        record: SessionRecord,
        now: Timestamp,
    ) -> SessionStatus:
        inserted = await self._store.insert(
            key,
            self._encode(record),
            version=record.lock_token,
            ttl_ms=record.ttl_ms(now),
        )
        if isinstance(inserted, Ok):
            return SessionStatus.OK
        if inserted.error.code is ErrorCode.STORE_KEY_EXISTS:
            return SessionStatus.CONFLICT
        return self._fault(operation, session_id, inserted.error)

    def _contention_status(
        self,
        operation: str,
        session_id: str,
        error: StoreError,
    ) -> SessionStatus:
        if error.code is ErrorCode.STORE_KEY_NOT_FOUND:
            return SessionStatus.NOT_FOUND
        if error.code is ErrorCode.STORE_VERSION_MISMATCH:
            return SessionStatus.TOKEN_MISMATCH
        return self._fault(operation, session_id, error)

    def _encode(self, record: SessionRecord) -> bytes:
        return record.to_bytes(self._config.compression_threshold_bytes)

    # -------------------------------------------------------------------------
    # Faults, events, metrics
    # -------------------------------------------------------------------------

    def _fault(self, operation: str, session_id: str, error: StoreError) -> SessionStatus:
        """
        Handle a store fault per config.propagate_faults.

        Returns:
            SessionStatus.STORE_ERROR when faults are not propagated

        Raises:
            SessionStateError: When faults are propagated
        """
        self._metrics.store_faults += 1
        if self._config.propagate_faults:
            raise SessionStateError.store_fault(operation, session_id, error) from error

        _logger.error(
            "Session store fault",
            operation=operation,
            session_id=session_id,
            error=error.to_dict(),
        )
        return SessionStatus.STORE_ERROR

    def _check_timeout(self, timeout_minutes: int) -> None:
        if not (1 <= timeout_minutes <= C.MAX_TIMEOUT_MINUTES):
            raise SessionStateError.invalid_argument(
                "timeout_minutes",
                f"must be in [1, {C.MAX_TIMEOUT_MINUTES}], got {timeout_minutes}",
            )

    def _check_session_id(self, session_id: str) -> None:
        if not session_id:
            raise SessionStateError.invalid_argument("session_id", "must be non-empty")

    async def _run(
        self,
        operation: str,
        session_id: str,
        body: Callable[[], Awaitable[T]],
    ) -> T:
        """Run one operation body between ENTER and EXIT events."""
        self._check_session_id(session_id)
        self._emit(operation, EventPhase.ENTER, session_id)
        start_ns = time.perf_counter_ns()

        with _logger.context(operation=operation, session_id=session_id):
            try:
                outcome = await body()
            except SessionStateError:
                self._finish(
                    operation, session_id, SessionStatus.STORE_ERROR.value, None, start_ns
                )
                raise

        token = getattr(outcome, "lock_token", None)
        self._finish(operation, session_id, _outcome_label(outcome), token, start_ns)
        return outcome

    def _finish(
        self,
        operation: str,
        session_id: str,
        label: str,
        lock_token: Optional[int],
        start_ns: int,
    ) -> None:
        latency_ns = time.perf_counter_ns() - start_ns
        self._metrics.record(operation, label, latency_ns)
        self._emit(
            operation,
            EventPhase.EXIT,
            session_id,
            status=label,
            lock_token=lock_token,
            latency_ns=latency_ns,
        )

    def _emit(
        self,
        operation: str,
        phase: EventPhase,
        session_id: str,
        status: Optional[str] = None,
        lock_token: Optional[int] = None,
        latency_ns: Optional[int] = None,
    ) -> None:
        if self._events is None:
            return
        self._events.emit(SessionEvent(
            operation=operation,
            phase=phase,
            session_id=session_id,
            application_name=self._config.application_name,
            timestamp=self._clock(),
            status=status,
            lock_token=lock_token,
            latency_ns=latency_ns,
        ))
