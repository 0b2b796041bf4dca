"""SQLAlchemy Core implementation of the rule store and inheritance graph.

Every mutating call runs in its own ``engine.begin()`` transaction. The edge
insert holds one write lock across the cycle check and the insert, so two
concurrent inserts cannot each pass the check and jointly close a cycle:

- PostgreSQL: ``LOCK TABLE ... IN SHARE ROW EXCLUSIVE MODE``.
- SQLite: the transaction is opened with ``BEGIN IMMEDIATE``, which takes
  the database write lock before the first read. A second writer waits for
  it up to the driver's busy timeout, then fails with a storage error.
- Other dialects: the transaction runs at SERIALIZABLE isolation and a
  conflicting writer fails with a storage error.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import TYPE_CHECKING, Iterator, Optional, Sequence

from sqlalchemy import and_, delete, insert, select, text, update
from sqlalchemy.exc import (
    DBAPIError,
    DisconnectionError,
    IntegrityError,
    InterfaceError,
    SQLAlchemyError,
)
from sqlalchemy.exc import TimeoutError as PoolTimeoutError

from ..exceptions import CycleError, DatabaseConnectionError, StorageError
from ..graph import ancestor_levels, would_create_cycle
from ..resources import IdentifierLike, require_identifier, rule_target, to_identifier
from ..schema import AclTables, build_tables
from .base import InheritanceGraph, PermissionRule, RuleStore, chunked

if TYPE_CHECKING:
    from sqlalchemy.engine import Connection, Engine

logger = logging.getLogger(__name__)

_CONNECTION_ERRORS = (DisconnectionError, InterfaceError, PoolTimeoutError)


def _to_storage_error(operation: str, exc: SQLAlchemyError) -> StorageError:
    if isinstance(exc, _CONNECTION_ERRORS) or (isinstance(exc, DBAPIError) and exc.connection_invalidated):
        return DatabaseConnectionError(f"{operation}: database unreachable: {exc}", operation=operation)
    return StorageError(f"{operation}: {exc}", operation=operation)


@contextmanager
def storage_errors(operation: str) -> Iterator[None]:
    """Translate SQLAlchemy failures into StorageError."""
    try:
        yield
    except SQLAlchemyError as exc:
        logger.error("ACL storage operation %s failed: %s", operation, exc)
        raise _to_storage_error(operation, exc) from exc


def _upsert_statement(dialect_name: str, table, values: dict):
    """Native upsert for dialects that have one, else None."""
    if dialect_name == "postgresql":
        from sqlalchemy.dialects.postgresql import insert as dialect_insert
    elif dialect_name == "sqlite":
        from sqlalchemy.dialects.sqlite import insert as dialect_insert
    else:
        return None

    stmt = dialect_insert(table).values(**values)
    return stmt.on_conflict_do_update(
        index_elements=[table.c.actor_id, table.c.action, table.c.target_id],
        set_={"allowed": stmt.excluded.allowed},
    )


def _update_or_insert(conn: "Connection", table, key, values: dict) -> None:
    """Portable upsert: UPDATE, else INSERT, else UPDATE again.

    The INSERT runs in a savepoint so losing a race against a concurrent
    first-time writer leaves the transaction usable for the second UPDATE.
    """
    stmt = update(table).where(key).values(allowed=values["allowed"])
    if conn.execute(stmt).rowcount:
        return
    try:
        with conn.begin_nested():
            conn.execute(insert(table).values(**values))
    except IntegrityError:
        conn.execute(stmt)


class SqlRuleStore(RuleStore):
    """Rule store backed by a single SQL table."""

    def __init__(
        self,
        engine: "Engine",
        rule_table: str = "acl_rules",
        *,
        tables: Optional[AclTables] = None,
        chunk_size: int = 500,
    ) -> None:
        self._engine = engine
        self._table = (tables or build_tables(rule_table=rule_table)).rules
        self._chunk_size = chunk_size

    @property
    def table_name(self) -> str:
        return self._table.name

    def _key(self, actor_id: str, action: str, target_id: str):
        c = self._table.c
        return and_(c.actor_id == actor_id, c.action == action, c.target_id == target_id)

    def set_rule(
        self,
        actor: IdentifierLike,
        action: str,
        target: Optional[IdentifierLike],
        allowed: bool,
    ) -> None:
        actor_id = require_identifier(actor)
        target_id = rule_target(target)
        values = {"actor_id": actor_id, "action": action, "target_id": target_id, "allowed": bool(allowed)}

        with storage_errors("set_rule"), self._engine.begin() as conn:
            stmt = _upsert_statement(conn.dialect.name, self._table, values)
            if stmt is not None:
                conn.execute(stmt)
            else:
                _update_or_insert(conn, self._table, self._key(actor_id, action, target_id), values)

        logger.debug(
            "Rule set: %s %s on %s = %s",
            actor_id,
            action,
            target_id,
            allowed,
            extra={"actor_id": actor_id, "action": action, "target_id": target_id},
        )

    def unset_rule(self, actor: IdentifierLike, action: str, target: Optional[IdentifierLike]) -> None:
        actor_id = require_identifier(actor)
        target_id = rule_target(target)
        with storage_errors("unset_rule"), self._engine.begin() as conn:
            conn.execute(delete(self._table).where(self._key(actor_id, action, target_id)))

    def lookup_rules(
        self,
        actors: Sequence[str],
        action: str,
        targets: Sequence[str],
    ) -> dict[tuple[str, str], bool]:
        actor_ids = list(dict.fromkeys(actors))
        target_ids = list(dict.fromkeys(targets))
        if not actor_ids or not target_ids:
            return {}

        c = self._table.c
        found: dict[tuple[str, str], bool] = {}
        with storage_errors("lookup_rules"), self._engine.connect() as conn:
            for batch in chunked(actor_ids, self._chunk_size):
                rows = conn.execute(
                    select(c.actor_id, c.target_id, c.allowed).where(
                        c.action == action,
                        c.actor_id.in_(batch),
                        c.target_id.in_(target_ids),
                    )
                )
                for row in rows:
                    found[(row.actor_id, row.target_id)] = bool(row.allowed)
        return found

    def rules_for(self, actor: IdentifierLike) -> list[PermissionRule]:
        actor_id = to_identifier(actor)
        c = self._table.c
        with storage_errors("rules_for"), self._engine.connect() as conn:
            rows = conn.execute(
                select(c.actor_id, c.action, c.target_id, c.allowed)
                .where(c.actor_id == actor_id)
                .order_by(c.action, c.target_id)
            ).all()
        return [PermissionRule(row.actor_id, row.action, row.target_id, bool(row.allowed)) for row in rows]


class SqlInheritanceGraph(InheritanceGraph):
    """Inheritance edges backed by a single SQL table."""

    def __init__(
        self,
        engine: "Engine",
        tree_table: str = "acl_tree",
        *,
        tables: Optional[AclTables] = None,
        chunk_size: int = 500,
    ) -> None:
        self._engine = engine
        self._table = (tables or build_tables(tree_table=tree_table)).tree
        self._chunk_size = chunk_size

    @property
    def table_name(self) -> str:
        return self._table.name

    def _fetch_parents(self, conn: "Connection", ids: Sequence[str]) -> dict[str, list[str]]:
        c = self._table.c
        parents: dict[str, list[str]] = {}
        for batch in chunked(dict.fromkeys(ids), self._chunk_size):
            rows = conn.execute(select(c.id, c.parent_id).where(c.id.in_(batch)))
            for row in rows:
                parents.setdefault(row.id, []).append(row.parent_id)
        for found in parents.values():
            found.sort()
        return parents

    def _writer(self) -> "Engine":
        """Engine used for edge inserts."""
        if self._engine.dialect.name in ("postgresql", "sqlite"):
            return self._engine
        return self._engine.execution_options(isolation_level="SERIALIZABLE")

    def _lock_for_insert(self, conn: "Connection") -> None:
        dialect = conn.dialect.name
        if dialect == "postgresql":
            table = conn.dialect.identifier_preparer.format_table(self._table)
            conn.execute(text(f"LOCK TABLE {table} IN SHARE ROW EXCLUSIVE MODE"))
        elif dialect == "sqlite" and not conn.connection.dbapi_connection.in_transaction:
            # pysqlite defers BEGIN until the first write, which would leave
            # the cycle check unlocked
            conn.exec_driver_sql("BEGIN IMMEDIATE")

    def add_edge(self, child: IdentifierLike, parent: IdentifierLike) -> None:
        child_id = require_identifier(child, role="child")
        parent_id = require_identifier(parent, role="parent")
        if child_id == parent_id:
            logger.warning("Rejected self-inheritance for %s", child_id, extra={"actor_id": child_id})
            raise CycleError(f"{child_id} cannot inherit from itself", child=child_id, parent=parent_id)

        c = self._table.c
        with storage_errors("add_edge"), self._writer().begin() as conn:
            self._lock_for_insert(conn)

            if would_create_cycle(child_id, parent_id, lambda ids: self._fetch_parents(conn, ids)):
                logger.warning(
                    "Rejected inheritance %s -> %s: %s already inherits from %s",
                    child_id,
                    parent_id,
                    parent_id,
                    child_id,
                    extra={"actor_id": child_id},
                )
                raise CycleError(
                    f"{child_id} -> {parent_id} would create a cycle",
                    child=child_id,
                    parent=parent_id,
                )

            exists = conn.execute(
                select(c.id).where(c.id == child_id, c.parent_id == parent_id)
            ).first()
            if exists is None:
                conn.execute(insert(self._table).values(id=child_id, parent_id=parent_id))

        logger.debug("Inheritance added: %s -> %s", child_id, parent_id, extra={"actor_id": child_id})

    def remove_edge(self, child: IdentifierLike, parent: IdentifierLike) -> None:
        child_id = to_identifier(child)
        parent_id = to_identifier(parent)
        c = self._table.c
        with storage_errors("remove_edge"), self._engine.begin() as conn:
            conn.execute(delete(self._table).where(c.id == child_id, c.parent_id == parent_id))

    def parents_of_many(self, ids: Sequence[str]) -> dict[str, list[str]]:
        if not ids:
            return {}
        with storage_errors("parents_of_many"), self._engine.connect() as conn:
            return self._fetch_parents(conn, ids)

    def children(self, actor: IdentifierLike) -> list[str]:
        actor_id = to_identifier(actor)
        c = self._table.c
        with storage_errors("children"), self._engine.connect() as conn:
            rows = conn.execute(select(c.id).where(c.parent_id == actor_id)).scalars().all()
        return sorted(rows)

    def ancestor_levels(self, actor: IdentifierLike) -> list[tuple[str, int]]:
        actor_id = to_identifier(actor)
        with storage_errors("ancestor_levels"), self._engine.connect() as conn:
            return ancestor_levels(actor_id, lambda ids: self._fetch_parents(conn, ids))


__all__ = [
    "SqlInheritanceGraph",
    "SqlRuleStore",
    "storage_errors",
]
