"""
Key-Value Store Protocol: the capability set the session coordinator needs

Structural subtyping protocol (PEP 544) for pluggable store backends. The
coordinator is written only against these five calls plus local clock
comparisons; any backend that provides them atomically per call can hold
session records.

Design Principles:
    - Zero-exception control flow via Result[T, StoreError]
    - Async-first for non-blocking I/O
    - Versions are caller-chosen integers, so a session's lock token can
      double as the record's optimistic-concurrency version
    - TTLs are absolute per write; backends purge expired keys themselves
"""

from __future__ import annotations

from abc import abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Protocol, runtime_checkable

from sessionmesh.core.errors import StoreError
from sessionmesh.core.types import Result


# =============================================================================
# OPERATION TYPE
# =============================================================================
class OperationType(Enum):
    """Store operation types for logging and metrics."""
    READ = "read"
    INSERT = "insert"
    COMPARE_AND_SWAP = "compare_and_swap"
    UPSERT = "upsert"
    REMOVE = "remove"


# =============================================================================
# OPERATION RESULT METADATA
# =============================================================================
@dataclass(frozen=True, slots=True)
class OperationMetadata:
    """
    Metadata returned with every successful write.

    Immutable to prevent accidental modification after return.
    """
    operation: OperationType
    latency_ns: int
    version: int = 0
    affected_rows: int = 1

    @property
    def latency_ms(self) -> float:
        return self.latency_ns / 1_000_000


@dataclass(frozen=True, slots=True)
class VersionedValue:
    """A stored value and the version it was written with."""
    value: bytes
    version: int


# =============================================================================
# KEY-VALUE STORE PROTOCOL
# =============================================================================
@runtime_checkable
class KeyValueStoreProtocol(Protocol):
    """
    Async key-value store with insert-if-absent, compare-and-swap and TTL.

    Every method is atomic with respect to other calls on the same key.
    Expected contention is reported as Err(StoreError) with code
    STORE_KEY_NOT_FOUND, STORE_KEY_EXISTS or STORE_VERSION_MISMATCH;
    anything else in Err(...) is a fault.

    Example:
        class MyStore:
            async def get(self, key: str) -> Result[VersionedValue, StoreError]:
                ...
    """

    @abstractmethod
    async def get(self, key: str) -> Result[VersionedValue, StoreError]:
        """
        Read a value and its version.

        Returns:
            Ok(VersionedValue): Key present and not expired
            Err(STORE_KEY_NOT_FOUND): Absent or expired
        """
        ...

    @abstractmethod
    async def insert(
        self,
        key: str,
        value: bytes,
        version: int,
        ttl_ms: int,
    ) -> Result[OperationMetadata, StoreError]:
        """
        Create a key only if it does not exist.

        Returns:
            Ok(metadata): Written with the given version
            Err(STORE_KEY_EXISTS): Key already present
        """
        ...

    @abstractmethod
    async def compare_and_swap(
        self,
        key: str,
        value: bytes,
        expected_version: int,
        new_version: int,
        ttl_ms: int,
    ) -> Result[OperationMetadata, StoreError]:
        """
        Replace a value only if its current version equals expected_version.

        Returns:
            Ok(metadata): Written; metadata.version == new_version
            Err(STORE_KEY_NOT_FOUND): Key absent or expired
            Err(STORE_VERSION_MISMATCH): Someone else wrote first
        """
        ...

    @abstractmethod
    async def upsert(
        self,
        key: str,
        value: bytes,
        version: int,
        ttl_ms: int,
    ) -> Result[OperationMetadata, StoreError]:
        """Write unconditionally (insert or replace)."""
        ...

    @abstractmethod
    async def remove(
        self,
        key: str,
        expected_version: Optional[int] = None,
    ) -> Result[OperationMetadata, StoreError]:
        """
        Delete a key, optionally only at a given version.

        Returns:
            Ok(metadata): Deleted
            Err(STORE_KEY_NOT_FOUND): Nothing to delete
            Err(STORE_VERSION_MISMATCH): expected_version given and stale
        """
        ...
