"""
Unit Tests: Configuration

Tests:
    - CoordinatorConfig validation and key layout
    - SessionMeshConfig.from_env() with SESSIONMESH_* variables
    - RedisConfig validation and connection kwargs
"""

import pytest

from sessionmesh.core import constants as C
from sessionmesh.core.config import CoordinatorConfig, SessionMeshConfig
from sessionmesh.core.errors import ConfigurationError
from sessionmesh.storage import create_store
from sessionmesh.storage.config import BackendType, RedisConfig, RedisMode, StorageConfig


class TestCoordinatorConfig:

    def test_defaults(self):
        config = CoordinatorConfig()
        assert config.application_name == C.DEFAULT_APPLICATION_NAME
        assert config.timeout_minutes == C.DEFAULT_TIMEOUT_MINUTES
        assert config.propagate_faults is False

    def test_key_layout(self):
        config = CoordinatorConfig(application_name="/shop", key_prefix="s:")
        assert config.key_for("abc") == "s:/shop:abc"

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"application_name": ""},
            {"timeout_minutes": 0},
            {"timeout_minutes": C.MAX_TIMEOUT_MINUTES + 1},
            {"compression_threshold_bytes": -1},
        ],
    )
    def test_invalid(self, kwargs):
        with pytest.raises(ValueError):
            CoordinatorConfig(**kwargs)

    def test_application_name_cannot_contain_separator(self):
        with pytest.raises(ValueError, match="must not contain ':'"):
            CoordinatorConfig(application_name="a:b")

        # Any two (application, session) pairs now map to distinct keys
        first = CoordinatorConfig(application_name="a").key_for("b:c")
        second = CoordinatorConfig(application_name="b").key_for("c")
        assert first != second
        assert first == "session:a:b:c"


class TestFromEnv:

    def test_defaults_without_env(self, monkeypatch):
        for name in ("APPLICATION_NAME", "BACKEND", "TIMEOUT_MINUTES", "LOG_LEVEL"):
            monkeypatch.delenv(f"SESSIONMESH_{name}", raising=False)

        config = SessionMeshConfig.from_env().unwrap()

        assert config.storage.backend is BackendType.IN_MEMORY
        assert config.coordinator.application_name == "/"
        assert config.validate().is_ok()

    def test_reads_variables(self, monkeypatch):
        monkeypatch.setenv("SESSIONMESH_APPLICATION_NAME", "/shop")
        monkeypatch.setenv("SESSIONMESH_TIMEOUT_MINUTES", "45")
        monkeypatch.setenv("SESSIONMESH_PROPAGATE_FAULTS", "true")
        monkeypatch.setenv("SESSIONMESH_BACKEND", "redis")
        monkeypatch.setenv("SESSIONMESH_REDIS_HOST", "cache.internal")
        monkeypatch.setenv("SESSIONMESH_REDIS_PORT", "6380")
        monkeypatch.setenv("SESSIONMESH_LOG_LEVEL", "debug")
        monkeypatch.setenv("SESSIONMESH_LOG_JSON", "no")

        config = SessionMeshConfig.from_env().unwrap()

        assert config.coordinator.application_name == "/shop"
        assert config.coordinator.timeout_minutes == 45
        assert config.coordinator.propagate_faults is True
        assert config.storage.backend is BackendType.REDIS
        assert config.storage.redis.host == "cache.internal"
        assert config.storage.redis.port == 6380
        assert config.observability.log_level == "DEBUG"
        assert config.observability.log_json is False

    def test_unknown_backend(self, monkeypatch):
        monkeypatch.setenv("SESSIONMESH_BACKEND", "etcd")
        result = SessionMeshConfig.from_env()
        assert result.is_err()
        assert "etcd" in result.error.lower()

    def test_bad_number(self, monkeypatch):
        monkeypatch.setenv("SESSIONMESH_BACKEND", "in_memory")
        monkeypatch.setenv("SESSIONMESH_TIMEOUT_MINUTES", "twenty")
        assert SessionMeshConfig.from_env().is_err()

    def test_application_name_with_separator(self, monkeypatch):
        monkeypatch.setenv("SESSIONMESH_BACKEND", "in_memory")
        monkeypatch.setenv("SESSIONMESH_APPLICATION_NAME", "/shop:eu")
        result = SessionMeshConfig.from_env()
        assert result.is_err()
        assert "':'" in result.error

    def test_validate_rejects_unknown_level(self, monkeypatch):
        monkeypatch.setenv("SESSIONMESH_BACKEND", "in_memory")
        monkeypatch.setenv("SESSIONMESH_LOG_LEVEL", "verbose")
        config = SessionMeshConfig.from_env().unwrap()
        assert config.validate().is_err()

    def test_validate_rejects_unseparated_prefix(self):
        config = SessionMeshConfig(coordinator=CoordinatorConfig(key_prefix="sess"))
        assert config.validate().is_err()


class TestStorageConfig:

    def test_redis_backend_requires_redis_config(self):
        with pytest.raises(ValueError):
            StorageConfig(backend=BackendType.REDIS)

    def test_redis_validation(self):
        with pytest.raises(ValueError):
            RedisConfig(port=0)
        with pytest.raises(ValueError):
            RedisConfig(mode=RedisMode.SENTINEL)

    def test_connection_kwargs(self):
        kwargs = RedisConfig(host="h", password="pw", db=2).get_connection_kwargs()
        assert kwargs["host"] == "h"
        assert kwargs["db"] == 2
        assert kwargs["password"] == "pw"
        assert kwargs["decode_responses"] is False

    def test_cluster_has_no_db(self):
        kwargs = RedisConfig(mode=RedisMode.CLUSTER).get_connection_kwargs()
        assert "db" not in kwargs

    def test_factory_builds_redis_store_lazily(self):
        pytest.importorskip("redis")
        from sessionmesh.storage.redis_store import RedisKeyValueStore

        store = create_store(StorageConfig(backend=BackendType.VALKEY, redis=RedisConfig()))
        assert isinstance(store, RedisKeyValueStore)


def test_configuration_error_shape():
    error = ConfigurationError.invalid("backend", "unsupported: FOO")
    data = error.to_dict()
    assert data["code"] == "INTERNAL_CONFIGURATION_ERROR"
    assert "backend" in data["message"]
