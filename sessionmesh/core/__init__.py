"""
Core module: Type definitions, error hierarchy, and configuration.

- Result monad for store I/O and config loading
- Error hierarchy with codes grouped by subsystem
- Immutable, validated configuration
"""

from sessionmesh.core.types import (
    Result,
    Ok,
    Err,
    Timestamp,
    Clock,
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
    ObservabilityConfig,
    SessionMeshConfig,
)

__all__ = [
    "Result",
    "Ok",
    "Err",
    "Timestamp",
    "Clock",
    "ErrorCode",
    "SessionMeshError",
    "StoreError",
    "SessionStateError",
    "ConfigurationError",
    "CoordinatorConfig",
    "ObservabilityConfig",
    "SessionMeshConfig",
]
