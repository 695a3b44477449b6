"""
Redis Key-Value Store
=====================

Redis/Valkey implementation of KeyValueStoreProtocol for session records
shared by many processes.

Design Principles:
------------------
1. **Lock-Free**: insert-if-absent, CAS and versioned delete run as Lua
   scripts, so each is a single atomic step on the server
2. **Native TTL**: expiry is PEXPIRE on the key; nothing sweeps
3. **Connection Pooling**: one redis.asyncio client per store
4. **Result Monad**: contention and faults are returned, never raised

Memory Model:
-------------
Each key is a Redis Hash with fields:
- 'd': record bytes (opaque to the store)
- 'v': version (integer, caller-assigned)
- 'u': updated_at (ISO timestamp)

Thread Safety:
--------------
- Connection pool is managed by redis-py
- Instance methods are stateless except for the pool and script SHAs
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import redis.asyncio as aioredis
from redis import exceptions as redis_errors

from sessionmesh.core.errors import StoreError
from sessionmesh.core.types import Result, Ok, Err
from sessionmesh.storage.config import RedisConfig, RedisMode
from sessionmesh.storage.protocols import (
    OperationMetadata,
    OperationType,
    VersionedValue,
)


# =============================================================================
# LUA SCRIPTS
# =============================================================================
# Return codes shared by all scripts
_OK: int = 1
_NOT_FOUND: int = 0
_VERSION_MISMATCH: int = -1
_EXISTS: int = -2

LUA_INSERT_SCRIPT: str = """
local key = KEYS[1]
if redis.call('EXISTS', key) == 1 then
    return -2
end
redis.call('HSET', key, 'd', ARGV[1], 'v', ARGV[2], 'u', ARGV[4])
local ttl_ms = tonumber(ARGV[3])
if ttl_ms > 0 then
    redis.call('PEXPIRE', key, ttl_ms)
end
return 1
"""

LUA_CAS_SCRIPT: str = """
local key = KEYS[1]
local current = redis.call('HGET', key, 'v')
if not current then
    return 0
end
if tonumber(current) ~= tonumber(ARGV[2]) then
    return -1
end
redis.call('HSET', key, 'd', ARGV[1], 'v', ARGV[3], 'u', ARGV[5])
local ttl_ms = tonumber(ARGV[4])
if ttl_ms > 0 then
    redis.call('PEXPIRE', key, ttl_ms)
else
    redis.call('PERSIST', key)
end
return 1
"""

LUA_REMOVE_SCRIPT: str = """
local key = KEYS[1]
local current = redis.call('HGET', key, 'v')
if not current then
    return 0
end
if ARGV[1] ~= '' and tonumber(current) ~= tonumber(ARGV[1]) then
    return -1
end
redis.call('DEL', key)
return 1
"""


# =============================================================================
# METRICS
# =============================================================================

@dataclass(slots=True)
class RedisMetrics:
    """Operation counters (single event loop, no locking needed)."""
    get_count: int = 0
    write_count: int = 0
    remove_count: int = 0
    get_latency_sum_ns: int = 0
    write_latency_sum_ns: int = 0

    connection_errors: int = 0
    timeout_errors: int = 0
    cas_failures: int = 0

    def record_get(self, latency_ns: int) -> None:
        self.get_count += 1
        self.get_latency_sum_ns += latency_ns

    def record_write(self, latency_ns: int) -> None:
        self.write_count += 1
        self.write_latency_sum_ns += latency_ns

    def get_avg_get_latency_ms(self) -> float:
        if self.get_count == 0:
            return 0.0
        return (self.get_latency_sum_ns / self.get_count) / 1_000_000

    def get_avg_write_latency_ms(self) -> float:
        if self.write_count == 0:
            return 0.0
        return (self.write_latency_sum_ns / self.write_count) / 1_000_000


# =============================================================================
# REDIS KEY-VALUE STORE
# =============================================================================

class RedisKeyValueStore:
    """
    Redis/Valkey store implementing KeyValueStoreProtocol.

    Example:
        >>> store = RedisKeyValueStore(RedisConfig(host="redis.example.com"))
        >>> await store.connect()
        >>> result = await store.insert("session:/:abc", b"...", 0, 1_200_000)
        >>> await store.close()
    """

    __slots__ = (
        "_config",
        "_client",
        "_owns_client",
        "_metrics",
        "_insert_sha",
        "_cas_sha",
        "_remove_sha",
        "_connected",
    )

    def __init__(
        self,
        config: Optional[RedisConfig] = None,
        client: Optional[aioredis.Redis] = None,
    ) -> None:
        """
        Initialize Redis store.

        Args:
            config: Connection configuration, used when no client is given.
            client: Pre-built redis.asyncio client (not closed by close()).

        Note:
            Call `connect()` before performing operations.
        """
        if config is None and client is None:
            raise ValueError("RedisKeyValueStore needs a config or a client")
        self._config = config
        self._client: Optional[aioredis.Redis] = client
        self._owns_client = client is None
        self._metrics = RedisMetrics()
        self._insert_sha: Optional[str] = None
        self._cas_sha: Optional[str] = None
        self._remove_sha: Optional[str] = None
        self._connected = False

    @classmethod
    def from_url(cls, url: str) -> RedisKeyValueStore:
        """Build a store around `redis.asyncio.from_url(url)`."""
        store = cls(client=aioredis.from_url(url, decode_responses=False))
        store._owns_client = True
        return store

    # -------------------------------------------------------------------------
    # CONNECTION MANAGEMENT
    # -------------------------------------------------------------------------

    async def connect(self) -> Result[None, StoreError]:
        """
        Establish the client and load Lua scripts.

        Returns:
            Ok(None) on success, Err(StoreError) on failure.
        """
        target = self._target()
        try:
            if self._client is None:
                self._client = self._build_client()

            await self._client.ping()
            await self._load_scripts()

            self._connected = True
            return Ok(None)

        except (redis_errors.RedisError, OSError, asyncio.TimeoutError) as e:
            self._metrics.connection_errors += 1
            return Err(StoreError.connection_failed(target, cause=e))

    def _build_client(self) -> aioredis.Redis:
        assert self._config is not None
        kwargs = self._config.get_connection_kwargs()

        if self._config.mode == RedisMode.CLUSTER:
            from redis.asyncio.cluster import RedisCluster
            kwargs.pop("max_connections", None)
            return RedisCluster(**kwargs)

        if self._config.mode == RedisMode.SENTINEL:
            from redis.asyncio.sentinel import Sentinel
            kwargs.pop("host", None)
            kwargs.pop("port", None)
            sentinel = Sentinel(
                list(self._config.sentinel_hosts),
                socket_timeout=self._config.socket_timeout_ms / 1000,
            )
            return sentinel.master_for(
                self._config.sentinel_service,
                redis_class=aioredis.Redis,
                **kwargs,
            )

        return aioredis.Redis(**kwargs)

    async def _load_scripts(self) -> None:
        assert self._client is not None
        self._insert_sha = await self._client.script_load(LUA_INSERT_SCRIPT)
        self._cas_sha = await self._client.script_load(LUA_CAS_SCRIPT)
        self._remove_sha = await self._client.script_load(LUA_REMOVE_SCRIPT)

    async def close(self) -> None:
        """
        Close connections. Safe to call multiple times.
        """
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None
        self._connected = False

    def _target(self) -> str:
        if self._config is None:
            return "redis (injected client)"
        return f"redis://{self._config.host}:{self._config.port}/{self._config.db}"

    def _not_connected(self, key: str) -> StoreError:
        return StoreError.connection_failed(f"{self._target()} (not connected) for {key}")

    def _fault(self, operation: str, key: str, exc: Exception) -> StoreError:
        """Map a redis-py exception onto a StoreError fault."""
        if isinstance(exc, (asyncio.TimeoutError, redis_errors.TimeoutError)):
            self._metrics.timeout_errors += 1
            return StoreError.timeout(operation, key, cause=exc)
        if isinstance(exc, (redis_errors.ConnectionError, OSError)):
            self._metrics.connection_errors += 1
            return StoreError.connection_failed(self._target(), cause=exc)
        return StoreError.operation_failed(operation, key, cause=exc)

    async def _evalsha(self, sha: Optional[str], script: str, *args: Any) -> int:
        """Run a loaded script, reloading once if the server lost it."""
        assert self._client is not None
        try:
            return int(await self._client.evalsha(sha, 1, *args))
        except redis_errors.NoScriptError:
            await self._load_scripts()
            return int(await self._client.eval(script, 1, *args))

    async def health_check(self) -> Result[Dict[str, Any], StoreError]:
        """Server version and local operation metrics."""
        if not self._connected or self._client is None:
            return Err(self._not_connected("health_check"))

        try:
            info = await self._client.info(section="server")
            return Ok({
                "connected": True,
                "redis_version": info.get("redis_version", "unknown"),
                "metrics": {
                    "get_count": self._metrics.get_count,
                    "write_count": self._metrics.write_count,
                    "cas_failures": self._metrics.cas_failures,
                    "avg_get_latency_ms": self._metrics.get_avg_get_latency_ms(),
                    "avg_write_latency_ms": self._metrics.get_avg_write_latency_ms(),
                },
            })
        except (redis_errors.RedisError, OSError, asyncio.TimeoutError) as e:
            return Err(self._fault("health_check", "-", e))

    # -------------------------------------------------------------------------
    # KeyValueStoreProtocol Implementation
    # -------------------------------------------------------------------------

    async def get(self, key: str) -> Result[VersionedValue, StoreError]:
        """
        Read value and version in one round-trip.

        Complexity: O(1) - HMGET on two fields.
        """
        if not self._connected or self._client is None:
            return Err(self._not_connected(key))

        start_ns = time.perf_counter_ns()
        try:
            data, version = await self._client.hmget(key, "d", "v")
        except (redis_errors.RedisError, OSError, asyncio.TimeoutError) as e:
            return Err(self._fault("get", key, e))

        self._metrics.record_get(time.perf_counter_ns() - start_ns)

        if data is None or version is None:
            return Err(StoreError.key_not_found(key))

        return Ok(VersionedValue(value=bytes(data), version=int(version)))

    async def insert(
        self,
        key: str,
        value: bytes,
        version: int,
        ttl_ms: int,
    ) -> Result[OperationMetadata, StoreError]:
        if not self._connected or self._client is None:
            return Err(self._not_connected(key))

        start_ns = time.perf_counter_ns()
        try:
            code = await self._evalsha(
                self._insert_sha,
                LUA_INSERT_SCRIPT,
                key,
                value,
                version,
                ttl_ms,
                _now_iso(),
            )
        except (redis_errors.RedisError, OSError, asyncio.TimeoutError) as e:
            return Err(self._fault("insert", key, e))

        if code == _EXISTS:
            return Err(StoreError.key_exists(key))

        latency_ns = time.perf_counter_ns() - start_ns
        self._metrics.record_write(latency_ns)
        return Ok(OperationMetadata(
            operation=OperationType.INSERT,
            latency_ns=latency_ns,
            version=version,
        ))

    async def compare_and_swap(
        self,
        key: str,
        value: bytes,
        expected_version: int,
        new_version: int,
        ttl_ms: int,
    ) -> Result[OperationMetadata, StoreError]:
        """
        Atomic CAS: update only if version matches.

        Uses a Lua script for atomicity without WATCH/MULTI.
        """
        if not self._connected or self._client is None:
            return Err(self._not_connected(key))

        start_ns = time.perf_counter_ns()
        try:
            code = await self._evalsha(
                self._cas_sha,
                LUA_CAS_SCRIPT,
                key,
                value,
                expected_version,
                new_version,
                ttl_ms,
                _now_iso(),
            )
        except (redis_errors.RedisError, OSError, asyncio.TimeoutError) as e:
            return Err(self._fault("compare_and_swap", key, e))

        if code == _NOT_FOUND:
            return Err(StoreError.key_not_found(key))
        if code == _VERSION_MISMATCH:
            self._metrics.cas_failures += 1
            return Err(StoreError.version_mismatch(key, expected_version))

        latency_ns = time.perf_counter_ns() - start_ns
        self._metrics.record_write(latency_ns)
        return Ok(OperationMetadata(
            operation=OperationType.COMPARE_AND_SWAP,
            latency_ns=latency_ns,
            version=new_version,
        ))

    async def upsert(
        self,
        key: str,
        value: bytes,
        version: int,
        ttl_ms: int,
    ) -> Result[OperationMetadata, StoreError]:
        if not self._connected or self._client is None:
            return Err(self._not_connected(key))

        start_ns = time.perf_counter_ns()
        try:
            async with self._client.pipeline(transaction=True) as pipe:
                pipe.hset(key, mapping={"d": value, "v": version, "u": _now_iso()})
                if ttl_ms > 0:
                    pipe.pexpire(key, ttl_ms)
                else:
                    pipe.persist(key)
                await pipe.execute()
        except (redis_errors.RedisError, OSError, asyncio.TimeoutError) as e:
            return Err(self._fault("upsert", key, e))

        latency_ns = time.perf_counter_ns() - start_ns
        self._metrics.record_write(latency_ns)
        return Ok(OperationMetadata(
            operation=OperationType.UPSERT,
            latency_ns=latency_ns,
            version=version,
        ))

    async def remove(
        self,
        key: str,
        expected_version: Optional[int] = None,
    ) -> Result[OperationMetadata, StoreError]:
        if not self._connected or self._client is None:
            return Err(self._not_connected(key))

        start_ns = time.perf_counter_ns()
        expected = "" if expected_version is None else expected_version
        try:
            code = await self._evalsha(self._remove_sha, LUA_REMOVE_SCRIPT, key, expected)
        except (redis_errors.RedisError, OSError, asyncio.TimeoutError) as e:
            return Err(self._fault("remove", key, e))

        if code == _NOT_FOUND:
            return Err(StoreError.key_not_found(key))
        if code == _VERSION_MISMATCH:
            self._metrics.cas_failures += 1
            return Err(StoreError.version_mismatch(key, expected_version or 0))

        self._metrics.remove_count += 1
        return Ok(OperationMetadata(
            operation=OperationType.REMOVE,
            latency_ns=time.perf_counter_ns() - start_ns,
            version=expected_version or 0,
        ))

    @property
    def metrics(self) -> RedisMetrics:
        return self._metrics


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()
