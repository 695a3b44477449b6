"""
Configuration Management for SessionMesh

Provides validated configuration with sensible defaults and environment
variable overrides.

Design:
- Immutable after validation
- Fail-fast on invalid configuration
- One CoordinatorConfig per coordinator instance; nothing global
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field

from sessionmesh.core import constants as C
from sessionmesh.core.types import Result, Ok, Err
from sessionmesh.storage.config import BackendType, RedisConfig, StorageConfig


_TRUE_VALUES = frozenset({"1", "true", "yes", "on"})


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in _TRUE_VALUES


@dataclass(frozen=True, slots=True)
class CoordinatorConfig:
    """
    Settings for one SessionLockCoordinator.

    Attributes:
        application_name: Namespace tag; records of other applications are
            invisible to this coordinator.
        timeout_minutes: Default idle-expiry window for records that do not
            carry their own.
        propagate_faults: Raise SessionStateError on store faults instead of
            logging them and returning STORE_ERROR.
        key_prefix: Prepended to every store key.
        compression_threshold_bytes: Encoded records larger than this are
            LZ4-compressed.
    """

    application_name: str = C.DEFAULT_APPLICATION_NAME
    timeout_minutes: int = C.DEFAULT_TIMEOUT_MINUTES
    propagate_faults: bool = False
    key_prefix: str = C.DEFAULT_KEY_PREFIX
    compression_threshold_bytes: int = C.COMPRESSION_THRESHOLD_BYTES

    def __post_init__(self) -> None:
        if not self.application_name:
            raise ValueError("application_name must be non-empty")
        # ':' separates the application from the session id in store keys
        if ":" in self.application_name:
            raise ValueError(
                f"application_name must not contain ':', got {self.application_name!r}"
            )
        if not (1 <= self.timeout_minutes <= C.MAX_TIMEOUT_MINUTES):
            raise ValueError(
                f"timeout_minutes must be in [1, {C.MAX_TIMEOUT_MINUTES}], "
                f"got {self.timeout_minutes}"
            )
        if self.compression_threshold_bytes < 0:
            raise ValueError("compression_threshold_bytes must be >= 0")

    def key_for(self, session_id: str) -> str:
        """Store key for a session of this application."""
        return f"{self.key_prefix}{self.application_name}:{session_id}"


@dataclass(frozen=True, slots=True)
class ObservabilityConfig:
    """Logging configuration."""

    log_level: str = "INFO"
    log_json: bool = True
    trace_events: bool = False  # emit per-operation enter/exit events


@dataclass(frozen=True)
class SessionMeshConfig:
    """Root configuration."""

    coordinator: CoordinatorConfig = field(default_factory=CoordinatorConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    @classmethod
    def from_env(cls) -> Result[SessionMeshConfig, str]:
        """
        Load configuration from environment variables.

        Environment variables are prefixed with SESSIONMESH_.
        Example: SESSIONMESH_APPLICATION_NAME, SESSIONMESH_REDIS_HOST
        """
        try:
            coordinator = CoordinatorConfig(
                application_name=os.getenv(
                    "SESSIONMESH_APPLICATION_NAME", C.DEFAULT_APPLICATION_NAME
                ),
                timeout_minutes=int(
                    os.getenv("SESSIONMESH_TIMEOUT_MINUTES", str(C.DEFAULT_TIMEOUT_MINUTES))
                ),
                propagate_faults=_env_bool("SESSIONMESH_PROPAGATE_FAULTS", False),
                key_prefix=os.getenv("SESSIONMESH_KEY_PREFIX", C.DEFAULT_KEY_PREFIX),
            )

            backend_name = os.getenv("SESSIONMESH_BACKEND", "in_memory").upper()
            backend = BackendType[backend_name]

            redis = None
            if backend in (BackendType.REDIS, BackendType.VALKEY):
                redis = RedisConfig.from_env()

            storage = StorageConfig(backend=backend, redis=redis)

            observability = ObservabilityConfig(
                log_level=os.getenv("SESSIONMESH_LOG_LEVEL", "INFO").upper(),
                log_json=_env_bool("SESSIONMESH_LOG_JSON", True),
                trace_events=_env_bool("SESSIONMESH_TRACE_EVENTS", False),
            )

            return Ok(cls(
                coordinator=coordinator,
                storage=storage,
                observability=observability,
            ))
        except KeyError as e:
            return Err(f"Configuration error: unknown backend {e}")
        except (ValueError, TypeError) as e:
            return Err(f"Configuration error: {e}")

    def validate(self) -> Result[None, str]:
        """Validate cross-section invariants."""
        if self.observability.log_level not in {
            "DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL",
        }:
            return Err(f"Unknown log level: {self.observability.log_level}")
        if self.coordinator.key_prefix and not self.coordinator.key_prefix.endswith(":"):
            return Err("key_prefix must end with ':' so session keys stay separable")
        return Ok(None)
