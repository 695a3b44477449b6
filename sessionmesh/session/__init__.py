"""
Session Module: Lock-Coordinated Session Persistence

Provides:
- SessionRecord: the persisted per-session entity and its codec
- SessionLockCoordinator: acquire / release / write / expire protocol
- Typed outcomes: SessionStatus, NotFound, Locked, Acquired

Architecture:
- Adapter -> SessionLockCoordinator -> KeyValueStoreProtocol
- Optimistic concurrency: lock token doubles as the store CAS version
- Expiry delegated to store TTLs
"""

from sessionmesh.session.record import (
    InitializationState,
    SessionData,
    SessionRecord,
)
from sessionmesh.session.outcomes import (
    AcquireOutcome,
    Acquired,
    Locked,
    NotFound,
    SessionStatus,
)
from sessionmesh.session.coordinator import (
    CoordinatorMetrics,
    SessionLockCoordinator,
)

__all__ = [
    # Record
    "InitializationState",
    "SessionData",
    "SessionRecord",
    # Outcomes
    "AcquireOutcome",
    "Acquired",
    "Locked",
    "NotFound",
    "SessionStatus",
    # Coordinator
    "CoordinatorMetrics",
    "SessionLockCoordinator",
]
