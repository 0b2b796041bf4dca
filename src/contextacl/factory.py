"""Build an AccessControl instance from AclConfig."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Optional

from .config import AclConfig, StorageBackend, load_acl_config_from_env
from .engine import AccessControl, BypassHook
from .exceptions import ConfigurationError
from .schema import build_tables
from .store import RedisInheritanceGraph, RedisRuleStore, SqlInheritanceGraph, SqlRuleStore

if TYPE_CHECKING:
    import redis
    from sqlalchemy.engine import Engine

logger = logging.getLogger(__name__)


def create_access_control(
    config: Optional[AclConfig] = None,
    bypass: Optional[BypassHook] = None,
    *,
    engine: Optional["Engine"] = None,
    client: Optional["redis.Redis"] = None,
) -> AccessControl:
    """Create the engine and its stores for the configured backend.

    Args:
        config: AclConfig instance (if None, loads from environment)
        bypass: Optional bypass hook for the engine
        engine: Existing SQLAlchemy engine (sql backend); built from
            ``config.database_url`` when omitted
        client: Existing Redis client (redis backend); built from
            ``config.redis_url`` when omitted

    Returns:
        AccessControl wired to the selected backend. Storage is not
        provisioned here, see ``contextacl.schema``.
    """
    if config is None:
        config = load_acl_config_from_env()

    try:
        backend = StorageBackend(config.backend)
    except ValueError as exc:
        raise ConfigurationError(f"Unsupported ACL backend: {config.backend}") from exc

    if backend == StorageBackend.SQL:
        if engine is None:
            from sqlalchemy import create_engine

            engine = create_engine(config.database_url, pool_pre_ping=True)
        tables = build_tables(config.rule_table, config.tree_table)
        rules = SqlRuleStore(engine, tables=tables, chunk_size=config.query_chunk_size)
        graph = SqlInheritanceGraph(engine, tables=tables, chunk_size=config.query_chunk_size)
        logger.info("ACL using SQL backend (%s, %s)", config.rule_table, config.tree_table)
        return AccessControl(rules, graph, bypass=bypass)

    if client is None:
        import redis

        client = redis.Redis.from_url(config.redis_url, decode_responses=True)
    rules = RedisRuleStore(client, config.key_prefix)
    graph = RedisInheritanceGraph(client, config.key_prefix, retries=config.graph_retries)
    logger.info("ACL using Redis backend (prefix=%s)", config.key_prefix)
    return AccessControl(rules, graph, bypass=bypass)


__all__ = ["create_access_control"]
