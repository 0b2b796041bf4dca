"""Tests for AclConfig."""

from __future__ import annotations

import os
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from contextacl import AclConfig, LogLevel, StorageBackend, load_acl_config_from_env

SQLITE_URL = "sqlite:///acl.db"


class TestAclConfig:
    """Tests for AclConfig model."""

    def test_create_default_config(self) -> None:
        """Defaults apply once the sql backend has its URL."""
        config = AclConfig(database_url=SQLITE_URL)
        assert config.log_level == LogLevel.INFO
        assert config.log_json is False
        assert config.backend == StorageBackend.SQL
        assert config.redis_url is None
        assert config.rule_table == "acl_rules"
        assert config.tree_table == "acl_tree"
        assert config.key_prefix == "contextacl"
        assert config.graph_retries == 5
        assert config.query_chunk_size == 500

    def test_create_custom_config(self) -> None:
        config = AclConfig(
            log_level=LogLevel.DEBUG,
            log_json=True,
            backend=StorageBackend.REDIS,
            redis_url="redis://localhost:6379/0",
            key_prefix="tenant-a",
            graph_retries=10,
        )
        assert config.log_level == LogLevel.DEBUG
        assert config.log_json is True
        assert config.backend == StorageBackend.REDIS
        assert config.redis_url == "redis://localhost:6379/0"
        assert config.key_prefix == "tenant-a"
        assert config.graph_retries == 10

    def test_enum_values_are_stored(self) -> None:
        config = AclConfig(backend="redis", redis_url="redis://localhost")
        assert config.backend == "redis"
        assert config.log_level == "INFO"

    def test_log_level_from_string(self) -> None:
        config = AclConfig(database_url=SQLITE_URL, log_level="debug")
        assert config.log_level == LogLevel.DEBUG

    def test_log_level_invalid(self) -> None:
        with pytest.raises(ValueError, match="Invalid log level"):
            AclConfig(database_url=SQLITE_URL, log_level="INVALID")

    def test_sql_backend_requires_database_url(self) -> None:
        with pytest.raises(ValidationError, match="database_url is required"):
            AclConfig()

    def test_redis_backend_requires_redis_url(self) -> None:
        with pytest.raises(ValidationError, match="redis_url is required"):
            AclConfig(backend="redis")

    def test_unknown_backend(self) -> None:
        with pytest.raises(ValidationError):
            AclConfig(backend="mongo", database_url=SQLITE_URL)

    def test_redis_url_validation_valid(self) -> None:
        for url in ("redis://localhost:6379/0", "rediss://localhost:6379/0", "unix:///tmp/redis.sock"):
            config = AclConfig(database_url=SQLITE_URL, redis_url=url)
            assert config.redis_url == url

    def test_redis_url_validation_invalid(self) -> None:
        with pytest.raises(ValueError, match="Redis URL must start with"):
            AclConfig(database_url=SQLITE_URL, redis_url="http://localhost:6379")

    @pytest.mark.parametrize("name", ["acl rules", "1rules", "rules;drop", "", "x" * 64])
    def test_invalid_table_name(self, name: str) -> None:
        with pytest.raises(ValidationError, match="Invalid table name"):
            AclConfig(database_url=SQLITE_URL, rule_table=name)

    def test_valid_table_names(self) -> None:
        config = AclConfig(database_url=SQLITE_URL, rule_table="_rules_v2", tree_table="AclTree")
        assert config.rule_table == "_rules_v2"
        assert config.tree_table == "AclTree"

    @pytest.mark.parametrize("field", ["graph_retries", "query_chunk_size"])
    def test_positive_limits(self, field: str) -> None:
        with pytest.raises(ValidationError):
            AclConfig(database_url=SQLITE_URL, **{field: 0})

    def test_empty_key_prefix(self) -> None:
        with pytest.raises(ValidationError):
            AclConfig(backend="redis", redis_url="redis://localhost", key_prefix="")

    def test_extra_fields_forbidden(self) -> None:
        with pytest.raises(ValidationError):
            AclConfig(database_url=SQLITE_URL, unknown_field="x")


class TestLoadAclConfigFromEnv:
    """Tests for load_acl_config_from_env()."""

    def test_load_from_env_defaults(self) -> None:
        with patch.dict(os.environ, {"ACL_DATABASE_URL": SQLITE_URL}, clear=True):
            config = load_acl_config_from_env()
        assert config.backend == StorageBackend.SQL
        assert config.database_url == SQLITE_URL
        assert config.log_level == LogLevel.INFO
        assert config.log_json is False
        assert config.query_chunk_size == 500

    def test_load_from_env_custom(self) -> None:
        env = {
            "ACL_BACKEND": "REDIS",
            "REDIS_URL": "redis://cache:6379/2",
            "ACL_KEY_PREFIX": "acl-prod",
            "ACL_GRAPH_RETRIES": "3",
            "ACL_RULE_TABLE": "rules",
            "ACL_TREE_TABLE": "tree",
            "ACL_QUERY_CHUNK_SIZE": "50",
            "LOG_LEVEL": "WARNING",
            "LOG_JSON": "yes",
        }
        with patch.dict(os.environ, env, clear=True):
            config = load_acl_config_from_env()
        assert config.backend == StorageBackend.REDIS
        assert config.redis_url == "redis://cache:6379/2"
        assert config.key_prefix == "acl-prod"
        assert config.graph_retries == 3
        assert config.rule_table == "rules"
        assert config.tree_table == "tree"
        assert config.query_chunk_size == 50
        assert config.log_level == LogLevel.WARNING
        assert config.log_json is True

    def test_load_from_env_missing_url(self) -> None:
        with patch.dict(os.environ, {}, clear=True):
            with pytest.raises(ValidationError):
                load_acl_config_from_env()
