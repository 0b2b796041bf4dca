"""Shared fixtures: an in-memory SQLite database with provisioned ACL tables."""

from __future__ import annotations

from typing import Callable, Iterator, Optional

import pytest
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool

from contextacl import (
    AccessControl,
    BypassHook,
    SqlInheritanceGraph,
    SqlRuleStore,
    ensure_sql_schema,
)
from contextacl.schema import AclTables

RULE_TABLE = "acl_test"
TREE_TABLE = "acl_test_tree"


@pytest.fixture
def sql_engine() -> Iterator[Engine]:
    engine = create_engine(
        "sqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    yield engine
    engine.dispose()


@pytest.fixture
def tables(sql_engine: Engine) -> AclTables:
    return ensure_sql_schema(sql_engine, RULE_TABLE, TREE_TABLE)


@pytest.fixture
def rules(sql_engine: Engine, tables: AclTables) -> SqlRuleStore:
    return SqlRuleStore(sql_engine, tables=tables)


@pytest.fixture
def graph(sql_engine: Engine, tables: AclTables) -> SqlInheritanceGraph:
    return SqlInheritanceGraph(sql_engine, tables=tables)


@pytest.fixture
def make_acl(rules: SqlRuleStore, graph: SqlInheritanceGraph) -> Callable[[Optional[BypassHook]], AccessControl]:
    """Build engines sharing one database, with or without a bypass hook."""

    def _make(bypass: Optional[BypassHook] = None) -> AccessControl:
        return AccessControl(rules, graph, bypass=bypass)

    return _make


@pytest.fixture
def acl(make_acl) -> AccessControl:
    return make_acl()
