"""
Error Hierarchy for SessionMesh

Design Principles:
- Expected contention (not found, token mismatch, conflict) is never an
  exception; it is a typed outcome returned by the coordinator
- Store faults travel as StoreError values inside Err(...) and only become
  raised exceptions when a coordinator is configured to propagate them
- Carry full error context for debugging and audit trails

Each error type includes:
- Unique error code for programmatic handling
- Human-readable message for logging
- Optional cause chain for root cause analysis
- Timestamp for correlation with logs

Usage:
    result = await store.get(key)
    match result:
        case Ok(versioned):
            decode(versioned.value)
        case Err(error) if error.code is ErrorCode.STORE_KEY_NOT_FOUND:
            treat_as_new()
        case Err(error):
            handle_fault(error)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional
from uuid import uuid4

from sessionmesh.core.types import Timestamp


# =============================================================================
# ERROR CODE ENUMERATION
# =============================================================================
class ErrorCode(Enum):
    """
    Unique error codes for programmatic error handling.

    Codes are grouped by subsystem:
    - 1xxx: Key-value store outcomes and faults
    - 2xxx: Session coordination errors
    - 9xxx: Internal/configuration errors
    """

    # Store outcomes (1xxx); 1001-1003 are expected, not faults
    STORE_KEY_NOT_FOUND = 1001
    STORE_KEY_EXISTS = 1002
    STORE_VERSION_MISMATCH = 1003
    STORE_CONNECTION_FAILED = 1101
    STORE_TIMEOUT = 1102
    STORE_CORRUPT_RECORD = 1103
    STORE_OPERATION_FAILED = 1104

    # Session coordination (2xxx)
    SESSION_STORE_FAULT = 2001
    SESSION_INVALID_ARGUMENT = 2002

    # Internal errors (9xxx)
    INTERNAL_ERROR = 9001
    INTERNAL_CONFIGURATION_ERROR = 9002


# Codes a store returns during normal contention.
EXPECTED_STORE_CODES: frozenset[ErrorCode] = frozenset({
    ErrorCode.STORE_KEY_NOT_FOUND,
    ErrorCode.STORE_KEY_EXISTS,
    ErrorCode.STORE_VERSION_MISMATCH,
})


# =============================================================================
# BASE ERROR CLASS
# =============================================================================
@dataclass
class SessionMeshError(Exception):
    """
    Base class for all SessionMesh errors.

    Provides:
    - Unique error ID for log correlation
    - Error code for programmatic handling
    - Timestamp of creation
    - Cause chain for root cause analysis
    """

    code: ErrorCode
    message: str
    error_id: str = field(default_factory=lambda: str(uuid4()))
    timestamp: Timestamp = field(default_factory=Timestamp.now)
    cause: Optional[BaseException] = None
    context: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """
        Serialize error to dictionary for structured logging.

        Cause is rendered as a string only.
        """
        data = {
            "error_id": self.error_id,
            "code": self.code.name,
            "code_value": self.code.value,
            "message": self.message,
            "timestamp_nanos": self.timestamp.nanos,
            "context": self.context,
        }
        if self.cause is not None:
            data["cause"] = repr(self.cause)
        return data

    def __str__(self) -> str:
        return f"[{self.code.name}] {self.message} (id={self.error_id[:8]})"

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"code={self.code.name}, "
            f"message={self.message!r}, "
            f"error_id={self.error_id!r})"
        )


# =============================================================================
# STORE ERRORS
# =============================================================================
@dataclass
class StoreError(SessionMeshError):
    """
    Outcome or fault reported by a key-value store backend.

    Backends return these inside Err(...). The first three constructors are
    ordinary contention results; the rest are transport or data faults.
    """

    @property
    def is_fault(self) -> bool:
        """True for transport/data failures, False for contention outcomes."""
        return self.code not in EXPECTED_STORE_CODES

    @classmethod
    def key_not_found(cls, key: str) -> StoreError:
        return cls(
            code=ErrorCode.STORE_KEY_NOT_FOUND,
            message=f"Key not found: {key}",
            context={"key": key},
        )

    @classmethod
    def key_exists(cls, key: str) -> StoreError:
        return cls(
            code=ErrorCode.STORE_KEY_EXISTS,
            message=f"Key already exists: {key}",
            context={"key": key},
        )

    @classmethod
    def version_mismatch(
        cls,
        key: str,
        expected: int,
        actual: Optional[int] = None,
    ) -> StoreError:
        return cls(
            code=ErrorCode.STORE_VERSION_MISMATCH,
            message=f"Version mismatch on {key}: expected {expected}, found {actual}",
            context={"key": key, "expected": expected, "actual": actual},
        )

    @classmethod
    def connection_failed(
        cls,
        target: str,
        cause: Optional[BaseException] = None,
    ) -> StoreError:
        """Backend unreachable or connection dropped."""
        return cls(
            code=ErrorCode.STORE_CONNECTION_FAILED,
            message=f"Store connection failed: {target}",
            cause=cause,
            context={"target": target},
        )

    @classmethod
    def timeout(
        cls,
        operation: str,
        key: str,
        cause: Optional[BaseException] = None,
    ) -> StoreError:
        return cls(
            code=ErrorCode.STORE_TIMEOUT,
            message=f"Store operation '{operation}' timed out on {key}",
            cause=cause,
            context={"operation": operation, "key": key},
        )

    @classmethod
    def corrupt_record(
        cls,
        key: str,
        reason: str,
        cause: Optional[BaseException] = None,
    ) -> StoreError:
        """Stored bytes could not be decoded into a session record."""
        return cls(
            code=ErrorCode.STORE_CORRUPT_RECORD,
            message=f"Corrupt record at {key}: {reason}",
            cause=cause,
            context={"key": key, "reason": reason},
        )

    @classmethod
    def operation_failed(
        cls,
        operation: str,
        key: str,
        cause: Optional[BaseException] = None,
    ) -> StoreError:
        return cls(
            code=ErrorCode.STORE_OPERATION_FAILED,
            message=f"Store operation '{operation}' failed on {key}: {cause}",
            cause=cause,
            context={"operation": operation, "key": key},
        )


# =============================================================================
# SESSION ERRORS
# =============================================================================
@dataclass
class SessionStateError(SessionMeshError):
    """
    Raised by the coordinator when fault propagation is enabled.

    `cause` holds the StoreError that triggered it.
    """

    @classmethod
    def store_fault(
        cls,
        operation: str,
        session_id: str,
        error: StoreError,
    ) -> SessionStateError:
        return cls(
            code=ErrorCode.SESSION_STORE_FAULT,
            message=(
                f"Could not retrieve, remove or write session '{session_id}' "
                f"during {operation}: {error.message}"
            ),
            cause=error,
            context={
                "operation": operation,
                "session_id": session_id,
                "store_code": error.code.name,
            },
        )

    @classmethod
    def invalid_argument(cls, name: str, reason: str) -> SessionStateError:
        return cls(
            code=ErrorCode.SESSION_INVALID_ARGUMENT,
            message=f"Invalid argument '{name}': {reason}",
            context={"argument": name, "reason": reason},
        )


@dataclass
class ConfigurationError(SessionMeshError):
    """Invalid or unloadable configuration."""

    @classmethod
    def invalid(cls, setting: str, reason: str) -> ConfigurationError:
        return cls(
            code=ErrorCode.INTERNAL_CONFIGURATION_ERROR,
            message=f"Invalid configuration for {setting}: {reason}",
            context={"setting": setting},
        )
