"""
Storage Module: Key-Value Store Abstraction
===========================================

Provides:
- KeyValueStoreProtocol, the capability set the coordinator is written against
- In-memory implementation for development/testing
- Redis/Valkey implementation for shared deployments
- Factory function for backend selection

Design Principles:
-----------------
1. **Backend Agnostic**: Same interface for in-memory and production
2. **Factory Pattern**: Runtime backend selection via configuration
3. **Lazy Loading**: The redis client is imported only when selected
4. **Result Monad**: No exceptions for control flow

Example:
    >>> store = create_store()                                   # in-memory
    >>> store = create_store(StorageConfig(BackendType.REDIS, RedisConfig()))
    >>> await connect_store(store)
"""

from __future__ import annotations

from typing import Optional, TYPE_CHECKING

from sessionmesh.core.errors import ConfigurationError, StoreError
from sessionmesh.core.types import Clock, Result, Ok
from sessionmesh.storage.protocols import (
    KeyValueStoreProtocol,
    OperationMetadata,
    OperationType,
    VersionedValue,
)
from sessionmesh.storage.backends import InMemoryKeyValueStore
from sessionmesh.storage.config import (
    BackendType,
    RedisConfig,
    RedisMode,
    StorageConfig,
)

if TYPE_CHECKING:
    from sessionmesh.storage.redis_store import RedisKeyValueStore


# =============================================================================
# FACTORY FUNCTIONS
# =============================================================================

def create_store(
    config: Optional[StorageConfig] = None,
    clock: Optional[Clock] = None,
) -> KeyValueStoreProtocol:
    """
    Create the key-value store described by `config`.

    Args:
        config: Backend selection; None means in-memory.
        clock: Time source for the in-memory backend's TTL handling.

    Returns:
        InMemoryKeyValueStore or RedisKeyValueStore (call connect_store()).

    Raises:
        ConfigurationError: Backend type not supported.
    """
    config = config or StorageConfig.for_development()

    if config.backend == BackendType.IN_MEMORY:
        return InMemoryKeyValueStore(clock=clock)

    if config.backend in (BackendType.REDIS, BackendType.VALKEY):
        from sessionmesh.storage.redis_store import RedisKeyValueStore
        return RedisKeyValueStore(config.redis)

    raise ConfigurationError.invalid("backend", f"unsupported: {config.backend.name}")


async def connect_store(store: KeyValueStoreProtocol) -> Result[None, StoreError]:
    """Connect backends that need it; no-op for the in-memory store."""
    connect = getattr(store, "connect", None)
    if connect is None:
        return Ok(None)
    return await connect()


__all__ = [
    "KeyValueStoreProtocol",
    "OperationMetadata",
    "OperationType",
    "VersionedValue",
    "InMemoryKeyValueStore",
    "BackendType",
    "RedisConfig",
    "RedisMode",
    "StorageConfig",
    "create_store",
    "connect_store",
]
