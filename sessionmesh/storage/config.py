"""
Storage Backend Configuration
=============================

Type-safe, immutable configuration dataclasses for the key-value store
backends that hold session records.

Design Principles:
------------------
1. **Immutability**: All configs are frozen to prevent runtime mutation
2. **Validation**: Pre-conditions checked at construction time
3. **Defaults**: Sensible defaults for development; explicit for production
4. **Environment**: Supports loading from environment variables
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Any, Dict, List, Optional, Tuple

from sessionmesh.core import constants as C


# =============================================================================
# ENUMERATIONS
# =============================================================================

class BackendType(Enum):
    """
    Key-value store backend selection.

    Used for factory dispatch in `sessionmesh.storage.create_store`.
    """
    IN_MEMORY = auto()  # Development/testing only; single process
    REDIS = auto()
    VALKEY = auto()     # Redis-compatible OSS alternative


class RedisMode(Enum):
    """
    Redis deployment topology.

    Determines connection pooling and failover strategy.
    """
    STANDALONE = auto()
    SENTINEL = auto()
    CLUSTER = auto()


# =============================================================================
# REDIS CONFIGURATION
# =============================================================================

@dataclass(frozen=True, slots=True)
class RedisConfig:
    """
    Redis/Valkey connection configuration.

    Session records are binary (optionally LZ4-framed), so responses are
    never decoded to str by the client.

    Attributes:
        host: Redis server hostname or IP address.
        port: Redis server port (1-65535).
        password: Optional authentication password.
        db: Logical database index (0-15 for single node).
        mode: Deployment topology (standalone/sentinel/cluster).
        sentinel_hosts: (host, port) tuples for Sentinel mode.
        sentinel_service: Master name monitored by Sentinel.
        max_connections: Connection pool size. Must be > 0.
        connect_timeout_ms: TCP connection timeout in milliseconds.
        socket_timeout_ms: Socket read/write timeout in milliseconds.
        ssl: Enable TLS encryption for connections.

    Example:
        >>> config = RedisConfig.from_env()
        >>> config = RedisConfig(host="redis.example.com", password="secret")
    """
    sentinel_hosts: Tuple[Tuple[str, int], ...] = field(default_factory=tuple)
    password: Optional[str] = None
    host: str = "localhost"
    sentinel_service: str = "mymaster"

    socket_timeout_ms: int = C.REDIS_SOCKET_TIMEOUT_MS
    connect_timeout_ms: int = C.REDIS_CONNECT_TIMEOUT_MS
    max_connections: int = C.REDIS_MAX_CONNECTIONS
    port: int = C.REDIS_DEFAULT_PORT
    db: int = 0
    mode: RedisMode = RedisMode.STANDALONE

    ssl: bool = False

    def __post_init__(self) -> None:
        """
        Validate configuration invariants.

        Raises:
            ValueError: If any invariant is violated.
        """
        if not (1 <= self.port <= 65535):
            raise ValueError(f"port must be in [1, 65535], got {self.port}")

        if self.mode == RedisMode.STANDALONE and not (0 <= self.db <= 15):
            raise ValueError(f"db must be in [0, 15] for standalone, got {self.db}")

        if self.max_connections <= 0:
            raise ValueError(f"max_connections must be > 0, got {self.max_connections}")

        if self.connect_timeout_ms <= 0:
            raise ValueError(f"connect_timeout_ms must be > 0, got {self.connect_timeout_ms}")
        if self.socket_timeout_ms <= 0:
            raise ValueError(f"socket_timeout_ms must be > 0, got {self.socket_timeout_ms}")

        if self.mode == RedisMode.SENTINEL and len(self.sentinel_hosts) == 0:
            raise ValueError("sentinel_hosts required when mode == SENTINEL")

    @classmethod
    def from_env(cls, prefix: str = "SESSIONMESH_REDIS") -> RedisConfig:
        """
        Construct configuration from environment variables.

        Environment Variables:
        - {prefix}_HOST: Server hostname (default: localhost)
        - {prefix}_PORT: Server port (default: 6379)
        - {prefix}_PASSWORD: Authentication password
        - {prefix}_DB: Database index (default: 0)
        - {prefix}_SSL: Enable TLS (default: false)
        - {prefix}_MAX_CONNECTIONS: Pool size (default: 50)
        - {prefix}_MODE: standalone|sentinel|cluster
        - {prefix}_SENTINEL_HOSTS: Comma-separated host:port pairs
        - {prefix}_SENTINEL_SERVICE: Sentinel master name (default: mymaster)
        """
        def _get(key: str, default: str = "") -> str:
            return os.environ.get(f"{prefix}_{key}", default)

        def _get_int(key: str, default: int) -> int:
            val = _get(key)
            return int(val) if val else default

        def _get_bool(key: str, default: bool) -> bool:
            val = _get(key).lower()
            if val in ("true", "1", "yes"):
                return True
            if val in ("false", "0", "no"):
                return False
            return default

        mode_map = {
            "standalone": RedisMode.STANDALONE,
            "sentinel": RedisMode.SENTINEL,
            "cluster": RedisMode.CLUSTER,
        }
        mode = mode_map.get(_get("MODE", "standalone").lower(), RedisMode.STANDALONE)

        sentinel_hosts: Tuple[Tuple[str, int], ...] = tuple()
        sentinel_str = _get("SENTINEL_HOSTS")
        if sentinel_str:
            parsed: List[Tuple[str, int]] = []
            for entry in sentinel_str.split(","):
                host_port = entry.strip().split(":")
                if len(host_port) == 2:
                    parsed.append((host_port[0], int(host_port[1])))
            sentinel_hosts = tuple(parsed)

        return cls(
            host=_get("HOST", "localhost"),
            port=_get_int("PORT", C.REDIS_DEFAULT_PORT),
            password=_get("PASSWORD") or None,
            db=_get_int("DB", 0),
            mode=mode,
            sentinel_hosts=sentinel_hosts,
            sentinel_service=_get("SENTINEL_SERVICE", "mymaster"),
            max_connections=_get_int("MAX_CONNECTIONS", C.REDIS_MAX_CONNECTIONS),
            connect_timeout_ms=_get_int("CONNECT_TIMEOUT_MS", C.REDIS_CONNECT_TIMEOUT_MS),
            socket_timeout_ms=_get_int("SOCKET_TIMEOUT_MS", C.REDIS_SOCKET_TIMEOUT_MS),
            ssl=_get_bool("SSL", False),
        )

    def get_connection_kwargs(self) -> Dict[str, Any]:
        """
        Generate kwargs for redis-py connection.

        Returns:
            Dict suitable for redis.asyncio.Redis() or RedisCluster().
        """
        kwargs: Dict[str, Any] = {
            "host": self.host,
            "port": self.port,
            "max_connections": self.max_connections,
            "socket_connect_timeout": self.connect_timeout_ms / 1000.0,
            "socket_timeout": self.socket_timeout_ms / 1000.0,
            "decode_responses": False,
            "ssl": self.ssl,
        }
        if self.mode != RedisMode.CLUSTER:
            kwargs["db"] = self.db
        if self.password:
            kwargs["password"] = self.password
        return kwargs


# =============================================================================
# UNIFIED STORAGE CONFIGURATION
# =============================================================================

@dataclass(frozen=True, slots=True)
class StorageConfig:
    """
    Backend selection for the session store.

    Attributes:
        backend: Which key-value store implementation to build.
        redis: Redis configuration (required for REDIS/VALKEY).
    """
    backend: BackendType = BackendType.IN_MEMORY
    redis: Optional[RedisConfig] = None

    def __post_init__(self) -> None:
        if self.backend in (BackendType.REDIS, BackendType.VALKEY) and self.redis is None:
            raise ValueError(f"redis config required when backend={self.backend.name}")

    @classmethod
    def for_development(cls) -> StorageConfig:
        """In-memory backend, no external services."""
        return cls(backend=BackendType.IN_MEMORY)
