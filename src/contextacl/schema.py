"""Storage layouts and idempotent provisioning.

The engine never creates its own storage. Applications (or test fixtures)
call one of the ``ensure_*`` helpers once at setup time; both are safe to
run repeatedly.

SQL layout::

    <rule_table>  actor_id, action, target_id (NULL_ID = generic), allowed
                  PRIMARY KEY (actor_id, action, target_id)
    <tree_table>  id, parent_id
                  PRIMARY KEY (id, parent_id), CHECK (id <> parent_id)

Redis layout (``prefix`` defaults to "contextacl")::

    {prefix}:schema            provisioning marker
    {prefix}:rules:{actor}     hash, field JSON [action, target] -> "1" | "0"
    {prefix}:parents:{child}   set of parent ids
    {prefix}:children:{parent} set of child ids
    {prefix}:graph:version     counter bumped by every edge mutation
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Index,
    MetaData,
    String,
    Table,
)
from sqlalchemy.exc import SQLAlchemyError

from .exceptions import DatabaseConnectionError, StorageError
from .resources import NULL_ID

if TYPE_CHECKING:
    import redis
    from sqlalchemy.engine import Engine

logger = logging.getLogger(__name__)

SCHEMA_VERSION = "1"
IDENTIFIER_LENGTH = 64
ACTION_LENGTH = 255


# ── SQL ──────────────────────────────────────────────────────────


@dataclass(frozen=True)
class AclTables:
    """SQLAlchemy table objects for one rule/tree table pair."""

    metadata: MetaData
    rules: Table
    tree: Table


def build_tables(
    rule_table: str = "acl_rules",
    tree_table: str = "acl_tree",
    metadata: Optional[MetaData] = None,
) -> AclTables:
    """Describe the rule and edge tables without touching the database."""
    metadata = metadata if metadata is not None else MetaData()

    rules = Table(
        rule_table,
        metadata,
        Column("actor_id", String(IDENTIFIER_LENGTH), primary_key=True, nullable=False),
        Column("action", String(ACTION_LENGTH), primary_key=True, nullable=False),
        Column(
            "target_id",
            String(IDENTIFIER_LENGTH),
            primary_key=True,
            nullable=False,
            server_default=NULL_ID,
        ),
        Column("allowed", Boolean, nullable=False),
    )

    tree = Table(
        tree_table,
        metadata,
        Column("id", String(IDENTIFIER_LENGTH), primary_key=True, nullable=False),
        Column("parent_id", String(IDENTIFIER_LENGTH), primary_key=True, nullable=False),
        CheckConstraint("id <> parent_id", name=f"{tree_table}_no_self_edge"),
        Index(f"ix_{tree_table}_parent_id", "parent_id"),
    )

    return AclTables(metadata=metadata, rules=rules, tree=tree)


def ensure_sql_schema(
    engine: "Engine",
    rule_table: str = "acl_rules",
    tree_table: str = "acl_tree",
) -> AclTables:
    """Create the rule and edge tables if they do not exist yet."""
    tables = build_tables(rule_table, tree_table)
    try:
        tables.metadata.create_all(engine, checkfirst=True)
    except SQLAlchemyError as exc:
        logger.error("Failed to provision ACL tables %s/%s: %s", rule_table, tree_table, exc)
        raise StorageError(f"Could not provision ACL tables: {exc}", operation="ensure_sql_schema") from exc
    logger.info("ACL tables ready: %s, %s", rule_table, tree_table)
    return tables


# ── Redis ────────────────────────────────────────────────────────


@dataclass(frozen=True)
class RedisKeys:
    """Key builder for one Redis keyspace."""

    prefix: str = "contextacl"

    @property
    def schema(self) -> str:
        return f"{self.prefix}:schema"

    @property
    def graph_version(self) -> str:
        return f"{self.prefix}:graph:version"

    def rules(self, actor_id: str) -> str:
        return f"{self.prefix}:rules:{actor_id}"

    def parents(self, child_id: str) -> str:
        return f"{self.prefix}:parents:{child_id}"

    def children(self, parent_id: str) -> str:
        return f"{self.prefix}:children:{parent_id}"


def ensure_redis_schema(client: "redis.Redis", prefix: str = "contextacl") -> RedisKeys:
    """Write the provisioning marker for a Redis keyspace."""
    import redis

    keys = RedisKeys(prefix)
    try:
        client.set(keys.schema, SCHEMA_VERSION)
    except redis.ConnectionError as exc:
        logger.error("Failed to provision ACL keyspace %s: %s", prefix, exc)
        raise DatabaseConnectionError(f"Could not reach Redis: {exc}", operation="ensure_redis_schema") from exc
    except redis.RedisError as exc:
        logger.error("Failed to provision ACL keyspace %s: %s", prefix, exc)
        raise StorageError(f"Could not provision ACL keyspace: {exc}", operation="ensure_redis_schema") from exc
    logger.info("ACL keyspace ready: %s", prefix)
    return keys


__all__ = [
    "AclTables",
    "RedisKeys",
    "SCHEMA_VERSION",
    "build_tables",
    "ensure_redis_schema",
    "ensure_sql_schema",
]
