"""Configuration contract for contextacl.

Pydantic-validated settings for the permission engine: which backing store
to use, where it lives, the table/key names, and logging.

Direct os.environ/os.getenv usage is confined to load_acl_config_from_env();
everything else receives an AclConfig instance.
"""

from __future__ import annotations

import re
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator

_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]{0,62}$")


class LogLevel(str, Enum):
    """Standard log levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class StorageBackend(str, Enum):
    """Supported backing stores.

    - SQL: any SQLAlchemy-supported database (PostgreSQL in production,
      SQLite for tests and embedded use)
    - REDIS: hashes and sets in a Redis keyspace
    """

    SQL = "sql"
    REDIS = "redis"


class AclConfig(BaseModel):
    """Configuration for the permission engine and its backing store.

    Environment variables (see load_acl_config_from_env):
        ACL_BACKEND: sql | redis
        ACL_DATABASE_URL: SQLAlchemy URL (sql backend)
        REDIS_URL: Redis URL (redis backend)
        ACL_RULE_TABLE: rule table name
        ACL_TREE_TABLE: inheritance edge table name
        ACL_KEY_PREFIX: Redis key prefix
        ACL_GRAPH_RETRIES: optimistic retries for Redis edge inserts
        ACL_QUERY_CHUNK_SIZE: max identifiers per SQL IN clause
        LOG_LEVEL / LOG_JSON: logging
    """

    # Logging
    log_level: LogLevel = Field(
        default=LogLevel.INFO,
        description="Logging level",
    )
    log_json: bool = Field(
        default=False,
        description="Use JSON log format (default: plain text)",
    )

    # Storage
    backend: StorageBackend = Field(
        default=StorageBackend.SQL,
        description="Backing store type: sql or redis",
    )
    database_url: Optional[str] = Field(
        default=None,
        description="SQLAlchemy database URL (e.g., postgresql+psycopg://user@host/db)",
    )
    redis_url: Optional[str] = Field(
        default=None,
        description="Redis connection URL (e.g., redis://localhost:6379/0)",
    )
    rule_table: str = Field(
        default="acl_rules",
        description="Table holding (actor, action, target) -> allowed rows",
    )
    tree_table: str = Field(
        default="acl_tree",
        description="Table holding child -> parent inheritance edges",
    )
    key_prefix: str = Field(
        default="contextacl",
        min_length=1,
        description="Prefix for every Redis key written by the engine",
    )
    graph_retries: int = Field(
        default=5,
        ge=1,
        description="Attempts for a Redis edge insert when a concurrent writer interferes",
    )
    query_chunk_size: int = Field(
        default=500,
        ge=1,
        description="Maximum identifiers bound into a single SQL IN clause",
    )

    @field_validator("redis_url")
    @classmethod
    def validate_redis_url(cls, v: Optional[str]) -> Optional[str]:
        """Validate Redis URL format."""
        if v is None:
            return v
        if not v.startswith(("redis://", "rediss://", "unix://")):
            raise ValueError("Redis URL must start with redis://, rediss://, or unix://")
        return v

    @field_validator("rule_table", "tree_table")
    @classmethod
    def validate_table_name(cls, v: str) -> str:
        """Table names are interpolated into DDL, keep them plain identifiers."""
        if not _IDENTIFIER_RE.match(v):
            raise ValueError(f"Invalid table name: {v!r}")
        return v

    @field_validator("log_level", mode="before")
    @classmethod
    def validate_log_level(cls, v: str | LogLevel) -> LogLevel:
        """Convert string to LogLevel enum."""
        if isinstance(v, LogLevel):
            return v
        if isinstance(v, str):
            try:
                return LogLevel[v.upper()]
            except KeyError:
                raise ValueError(f"Invalid log level: {v}. Must be one of {[e.value for e in LogLevel]}")
        raise ValueError(f"Log level must be string or LogLevel enum, got {type(v)}")

    @model_validator(mode="after")
    def validate_backend_url(self) -> "AclConfig":
        """The selected backend needs its connection URL."""
        if self.backend == StorageBackend.SQL and not self.database_url:
            raise ValueError("database_url is required for the sql backend")
        if self.backend == StorageBackend.REDIS and not self.redis_url:
            raise ValueError("redis_url is required for the redis backend")
        return self

    model_config = {
        "use_enum_values": True,
        "extra": "forbid",
    }


def load_acl_config_from_env() -> AclConfig:
    """Load configuration from environment variables.

    This is the ONLY place where os.getenv is allowed.

    Environment variables:
    - ACL_BACKEND: sql | redis (default: sql)
    - ACL_DATABASE_URL: SQLAlchemy database URL
    - REDIS_URL: Redis connection URL
    - ACL_RULE_TABLE: rule table name (default: acl_rules)
    - ACL_TREE_TABLE: edge table name (default: acl_tree)
    - ACL_KEY_PREFIX: Redis key prefix (default: contextacl)
    - ACL_GRAPH_RETRIES: Redis edge insert attempts (default: 5)
    - ACL_QUERY_CHUNK_SIZE: identifiers per IN clause (default: 500)
    - LOG_LEVEL: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    - LOG_JSON: Use JSON log format (true/false, default: false)

    Returns:
        AclConfig instance with values from environment or defaults.
    """
    import os

    return AclConfig(
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        log_json=os.getenv("LOG_JSON", "false").lower() in ("true", "1", "yes"),
        backend=os.getenv("ACL_BACKEND", "sql").lower(),
        database_url=os.getenv("ACL_DATABASE_URL"),
        redis_url=os.getenv("REDIS_URL"),
        rule_table=os.getenv("ACL_RULE_TABLE", "acl_rules"),
        tree_table=os.getenv("ACL_TREE_TABLE", "acl_tree"),
        key_prefix=os.getenv("ACL_KEY_PREFIX", "contextacl"),
        graph_retries=int(os.getenv("ACL_GRAPH_RETRIES", "5")),
        query_chunk_size=int(os.getenv("ACL_QUERY_CHUNK_SIZE", "500")),
    )


__all__ = [
    "AclConfig",
    "LogLevel",
    "StorageBackend",
    "load_acl_config_from_env",
]
