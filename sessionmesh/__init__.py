"""
SessionMesh: Lock-Coordinated Distributed Session State

Stores per-session state in a shared key-value store so that any number of
web workers can serve the same session, while at most one request at a
time may modify it:
- Session Coordinator: exclusive acquire, token-checked write and release
- Storage: in-memory and Redis/Valkey backends behind one protocol
- Observability: structured logging and per-operation events

License: MIT
"""

__version__ = "1.0.0"

# =============================================================================
# PUBLIC API EXPORTS
# =============================================================================
from sessionmesh.core.types import (
    Result,
    Ok,
    Err,
    Timestamp,
)
from sessionmesh.core.errors import (
    ErrorCode,
    SessionMeshError,
    StoreError,
    SessionStateError,
    ConfigurationError,
)
from sessionmesh.core.config import (
    CoordinatorConfig,
    SessionMeshConfig,
)

from sessionmesh.session import (
    Acquired,
    InitializationState,
    Locked,
    NotFound,
    SessionData,
    SessionLockCoordinator,
    SessionRecord,
    SessionStatus,
)
from sessionmesh.storage import (
    KeyValueStoreProtocol,
    InMemoryKeyValueStore,
    create_store,
    connect_store,
)

__all__ = [
    "__version__",
    # Core
    "Result",
    "Ok",
    "Err",
    "Timestamp",
    # Errors
    "ErrorCode",
    "SessionMeshError",
    "StoreError",
    "SessionStateError",
    "ConfigurationError",
    # Config
    "CoordinatorConfig",
    "SessionMeshConfig",
    # Session
    "Acquired",
    "InitializationState",
    "Locked",
    "NotFound",
    "SessionData",
    "SessionLockCoordinator",
    "SessionRecord",
    "SessionStatus",
    # Storage
    "KeyValueStoreProtocol",
    "InMemoryKeyValueStore",
    "create_store",
    "connect_store",
]
