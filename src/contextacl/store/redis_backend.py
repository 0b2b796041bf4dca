"""Redis implementation of the rule store and inheritance graph.

Rules live in one hash per actor, edges in a pair of sets per node (see
``contextacl.schema`` for the key layout). Every call first checks the
provisioning marker, so a keyspace that was never set up reports a
StorageError rather than an empty (deny-everything) rule set.

Edge inserts are optimistic: the cycle check runs under ``WATCH`` of the
graph version counter, and the insert commits in ``MULTI/EXEC`` together with
a version bump. If another writer changed the graph in between, EXEC fails
and the whole check is repeated.
"""

from __future__ import annotations

import json
import logging
from contextlib import contextmanager
from typing import Any, Iterator, Optional, Sequence

import redis

from ..exceptions import CycleError, DatabaseConnectionError, StorageError
from ..graph import would_create_cycle
from ..resources import IdentifierLike, require_identifier, rule_target, to_identifier
from ..schema import RedisKeys
from .base import InheritanceGraph, PermissionRule, RuleStore

logger = logging.getLogger(__name__)

_ALLOWED = "1"
_DENIED = "0"


def _decode(value: Any) -> str:
    if isinstance(value, bytes):
        return value.decode("utf-8")
    return value


@contextmanager
def redis_errors(operation: str) -> Iterator[None]:
    """Translate redis-py failures into StorageError."""
    try:
        yield
    except (redis.ConnectionError, redis.TimeoutError) as exc:
        logger.error("ACL storage operation %s failed: %s", operation, exc)
        raise DatabaseConnectionError(f"{operation}: Redis unreachable: {exc}", operation=operation) from exc
    except redis.RedisError as exc:
        logger.error("ACL storage operation %s failed: %s", operation, exc)
        raise StorageError(f"{operation}: {exc}", operation=operation) from exc


class _RedisBacked:
    def __init__(self, client: "redis.Redis", prefix: str = "contextacl") -> None:
        self._client = client
        self._keys = RedisKeys(prefix)

    @property
    def keys(self) -> RedisKeys:
        return self._keys

    def _missing_schema(self, operation: str) -> StorageError:
        logger.error("ACL keyspace %s is not provisioned (%s)", self._keys.prefix, operation)
        return StorageError(
            f"{operation}: ACL keyspace '{self._keys.prefix}' is not provisioned",
            operation=operation,
        )

    def _require_schema(self, operation: str) -> None:
        if not self._client.exists(self._keys.schema):
            raise self._missing_schema(operation)


class RedisRuleStore(_RedisBacked, RuleStore):
    """Rule store keeping one hash of ``[action, target] -> 0/1`` per actor."""

    @staticmethod
    def _field(action: str, target_id: str) -> str:
        return json.dumps([action, target_id], separators=(",", ":"))

    def _parse_allowed(self, raw: Any, operation: str) -> Optional[bool]:
        if raw is None:
            return None
        value = _decode(raw)
        if value == _ALLOWED:
            return True
        if value == _DENIED:
            return False
        raise StorageError(f"{operation}: malformed rule value {value!r}", operation=operation)

    def set_rule(
        self,
        actor: IdentifierLike,
        action: str,
        target: Optional[IdentifierLike],
        allowed: bool,
    ) -> None:
        actor_id = require_identifier(actor)
        target_id = rule_target(target)
        with redis_errors("set_rule"):
            self._require_schema("set_rule")
            self._client.hset(
                self._keys.rules(actor_id),
                self._field(action, target_id),
                _ALLOWED if allowed else _DENIED,
            )
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
        with redis_errors("unset_rule"):
            self._require_schema("unset_rule")
            self._client.hdel(self._keys.rules(actor_id), self._field(action, target_id))

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

        fields = [self._field(action, target_id) for target_id in target_ids]
        with redis_errors("lookup_rules"):
            pipe = self._client.pipeline(transaction=False)
            pipe.exists(self._keys.schema)
            for actor_id in actor_ids:
                pipe.hmget(self._keys.rules(actor_id), fields)
            results = pipe.execute()

        if not results[0]:
            raise self._missing_schema("lookup_rules")

        found: dict[tuple[str, str], bool] = {}
        for actor_id, values in zip(actor_ids, results[1:]):
            for target_id, raw in zip(target_ids, values):
                allowed = self._parse_allowed(raw, "lookup_rules")
                if allowed is not None:
                    found[(actor_id, target_id)] = allowed
        return found

    def rules_for(self, actor: IdentifierLike) -> list[PermissionRule]:
        actor_id = to_identifier(actor)
        with redis_errors("rules_for"):
            self._require_schema("rules_for")
            raw = self._client.hgetall(self._keys.rules(actor_id))

        rules = []
        for field, value in raw.items():
            try:
                action, target_id = json.loads(_decode(field))
            except (ValueError, TypeError) as exc:
                raise StorageError(f"rules_for: malformed rule field {field!r}", operation="rules_for") from exc
            rules.append(PermissionRule(actor_id, action, target_id, bool(self._parse_allowed(value, "rules_for"))))
        rules.sort(key=lambda rule: (rule.action, rule.target_id))
        return rules


class RedisInheritanceGraph(_RedisBacked, InheritanceGraph):
    """Inheritance edges kept as parent and child sets per node."""

    def __init__(self, client: "redis.Redis", prefix: str = "contextacl", *, retries: int = 5) -> None:
        super().__init__(client, prefix)
        self._retries = retries

    def _members(self, operation: str, keys: Sequence[str]) -> list[list[str]]:
        with redis_errors(operation):
            pipe = self._client.pipeline(transaction=False)
            pipe.exists(self._keys.schema)
            for key in keys:
                pipe.smembers(key)
            results = pipe.execute()
        if not results[0]:
            raise self._missing_schema(operation)
        return [sorted(_decode(member) for member in members) for members in results[1:]]

    def parents_of_many(self, ids: Sequence[str]) -> dict[str, list[str]]:
        unique = list(dict.fromkeys(ids))
        if not unique:
            return {}
        members = self._members("parents_of_many", [self._keys.parents(i) for i in unique])
        return {node: parents for node, parents in zip(unique, members) if parents}

    def children(self, actor: IdentifierLike) -> list[str]:
        actor_id = to_identifier(actor)
        return self._members("children", [self._keys.children(actor_id)])[0]

    def add_edge(self, child: IdentifierLike, parent: IdentifierLike) -> None:
        child_id = require_identifier(child, role="child")
        parent_id = require_identifier(parent, role="parent")
        if child_id == parent_id:
            logger.warning("Rejected self-inheritance for %s", child_id, extra={"actor_id": child_id})
            raise CycleError(f"{child_id} cannot inherit from itself", child=child_id, parent=parent_id)

        with redis_errors("add_edge"):
            for attempt in range(1, self._retries + 1):
                with self._client.pipeline() as pipe:
                    try:
                        pipe.watch(self._keys.graph_version)
                        if would_create_cycle(child_id, parent_id, self.parents_of_many):
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
                        pipe.multi()
                        pipe.sadd(self._keys.parents(child_id), parent_id)
                        pipe.sadd(self._keys.children(parent_id), child_id)
                        pipe.incr(self._keys.graph_version)
                        pipe.execute()
                    except redis.WatchError:
                        logger.debug("Inheritance graph changed during add_edge, retry %d", attempt)
                        continue
                logger.debug("Inheritance added: %s -> %s", child_id, parent_id, extra={"actor_id": child_id})
                return

        raise StorageError(
            f"add_edge: gave up after {self._retries} concurrent modifications",
            operation="add_edge",
            child=child_id,
            parent=parent_id,
        )

    def remove_edge(self, child: IdentifierLike, parent: IdentifierLike) -> None:
        child_id = to_identifier(child)
        parent_id = to_identifier(parent)
        with redis_errors("remove_edge"):
            self._require_schema("remove_edge")
            pipe = self._client.pipeline()
            pipe.srem(self._keys.parents(child_id), parent_id)
            pipe.srem(self._keys.children(parent_id), child_id)
            pipe.incr(self._keys.graph_version)
            pipe.execute()


__all__ = [
    "RedisInheritanceGraph",
    "RedisRuleStore",
    "redis_errors",
]
