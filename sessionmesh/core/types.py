"""
Core Type Definitions for SessionMesh

Implements the Result/Either monad used for store I/O and configuration
loading, plus the nanosecond Timestamp that every lock and expiry field is
expressed in.

Design Principles:
- Store outcomes are values, not exceptions
- Timestamps are plain integers (ns since epoch) so they serialize exactly
- Immutable, slotted dataclasses

Complexity: O(1) for all type operations
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import (
    Any,
    Callable,
    ClassVar,
    Generic,
    Literal,
    TypeVar,
    Union,
)

# =============================================================================
# TYPE VARIABLES FOR GENERIC CONTAINERS
# =============================================================================
T = TypeVar("T")  # Success type
E = TypeVar("E")  # Error type
U = TypeVar("U")  # Transform result type


# =============================================================================
# RESULT MONAD
# =============================================================================
@dataclass(frozen=True, slots=True)
class Ok(Generic[T]):
    """
    Success variant of Result monad.

    Immutable container for successful computation results.
    """

    value: T

    def is_ok(self) -> Literal[True]:
        return True

    def is_err(self) -> Literal[False]:
        return False

    def unwrap(self) -> T:
        """
        Extract value. Safe to call after is_ok() check.

        Returns:
            T: The wrapped success value
        """
        return self.value

    def unwrap_or(self, default: T) -> T:
        """Return value, ignoring default."""
        return self.value

    def map(self, fn: Callable[[T], U]) -> Ok[U]:
        """Apply transformation to success value."""
        return Ok(fn(self.value))

    def flat_map(self, fn: Callable[[T], Result[U, E]]) -> Result[U, E]:
        """Monadic bind for chaining fallible operations."""
        return fn(self.value)

    def __repr__(self) -> str:
        return f"Ok({self.value!r})"


@dataclass(frozen=True, slots=True)
class Err(Generic[E]):
    """
    Failure variant of Result monad.

    Carries full error context for exhaustive handling.
    """

    error: E

    def is_ok(self) -> Literal[False]:
        return False

    def is_err(self) -> Literal[True]:
        return True

    def unwrap(self) -> Any:
        """
        Attempting to unwrap an error is a programming error.

        Raises:
            RuntimeError: Always, with error context
        """
        raise RuntimeError(f"Called unwrap() on Err: {self.error}")

    def unwrap_or(self, default: T) -> T:
        """Return default value on error."""
        return default

    def map(self, fn: Callable[[Any], U]) -> Err[E]:
        """No-op on error variant - propagates error unchanged."""
        return self

    def flat_map(self, fn: Callable[[Any], Result[U, E]]) -> Err[E]:
        """Propagate error through monadic chain."""
        return self

    def __repr__(self) -> str:
        return f"Err({self.error!r})"


# Union type for pattern matching
Result = Union[Ok[T], Err[E]]


# =============================================================================
# TIMESTAMP WITH NANOSECOND PRECISION
# =============================================================================
@dataclass(frozen=True, slots=True, order=True)
class Timestamp:
    """
    Wall-clock timestamp in nanoseconds since the Unix epoch.

    Used for lock acquisition times and record expiry. Lock age is computed
    by subtracting two timestamps taken from the same clock, so all
    coordinator instances sharing a store must run on reasonably synced
    clocks.

    Range: ~292 years from epoch
    """

    nanos: int

    # Constants for conversion
    NANOS_PER_SECOND: ClassVar[int] = 1_000_000_000
    NANOS_PER_MILLI: ClassVar[int] = 1_000_000
    NANOS_PER_MICRO: ClassVar[int] = 1_000

    @classmethod
    def now(cls) -> Timestamp:
        """Capture current wall-clock time (time.time_ns())."""
        return cls(nanos=time.time_ns())

    @classmethod
    def from_seconds(cls, seconds: float) -> Timestamp:
        """Convert floating-point seconds to Timestamp."""
        return cls(nanos=int(seconds * cls.NANOS_PER_SECOND))

    @classmethod
    def from_millis(cls, millis: int) -> Timestamp:
        """Convert milliseconds to Timestamp."""
        return cls(nanos=millis * cls.NANOS_PER_MILLI)

    @classmethod
    def from_datetime(cls, value: datetime) -> Timestamp:
        """Convert an aware datetime (naive values are taken as UTC)."""
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        delta = value - datetime(1970, 1, 1, tzinfo=timezone.utc)
        micros = (delta.days * 86_400 + delta.seconds) * 1_000_000 + delta.microseconds
        return cls(nanos=micros * cls.NANOS_PER_MICRO)

    @property
    def seconds(self) -> float:
        return self.nanos / self.NANOS_PER_SECOND

    @property
    def millis(self) -> int:
        """Convert to milliseconds (truncating)."""
        return self.nanos // self.NANOS_PER_MILLI

    def to_datetime(self) -> datetime:
        """Convert to an aware UTC datetime (microsecond precision)."""
        return datetime(1970, 1, 1, tzinfo=timezone.utc) + timedelta(
            microseconds=self.nanos // self.NANOS_PER_MICRO
        )

    def plus(self, delta: timedelta) -> Timestamp:
        """Shift forward (or back) by a timedelta."""
        return self + int(delta.total_seconds() * self.NANOS_PER_SECOND)

    def since(self, earlier: Timestamp) -> timedelta:
        """Elapsed time from `earlier` to this timestamp, never negative."""
        return timedelta(microseconds=max(0, self - earlier) // self.NANOS_PER_MICRO)

    def __sub__(self, other: Timestamp) -> int:
        """Subtract timestamps, returning difference in nanos."""
        return self.nanos - other.nanos

    def __add__(self, nanos: int) -> Timestamp:
        """Add nanoseconds to timestamp."""
        result = self.nanos + nanos
        if result < 0:
            raise OverflowError("Timestamp underflow")
        return Timestamp(nanos=result)

    def __repr__(self) -> str:
        return f"Timestamp({self.nanos}ns)"


# Injectable time source; coordinators and in-memory stores accept one so
# tests can drive lock ages and TTL expiry deterministically.
Clock = Callable[[], Timestamp]
