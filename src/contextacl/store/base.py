"""Storage contracts for permission rules and inheritance edges."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Iterable, Optional, Sequence

from ..graph import ancestor_levels, is_reachable
from ..resources import NULL_ID, IdentifierLike, to_identifier


@dataclass(frozen=True)
class PermissionRule:
    """A stored allow/deny decision.

    ``target_id`` is NULL_ID for a generic rule.
    """

    actor_id: str
    action: str
    target_id: str
    allowed: bool

    @property
    def generic(self) -> bool:
        return self.target_id == NULL_ID


class RuleStore(ABC):
    """Durable mapping of (actor, action, target-or-generic) to allowed.

    ``target=None`` always means the generic rule. Lookups return ``None``
    when no row exists; storage failures raise StorageError.
    """

    @abstractmethod
    def set_rule(
        self,
        actor: IdentifierLike,
        action: str,
        target: Optional[IdentifierLike],
        allowed: bool,
    ) -> None:
        """Insert or overwrite one rule."""

    @abstractmethod
    def unset_rule(self, actor: IdentifierLike, action: str, target: Optional[IdentifierLike]) -> None:
        """Delete one rule; deleting a missing rule is not an error."""

    @abstractmethod
    def lookup_rules(
        self,
        actors: Sequence[str],
        action: str,
        targets: Sequence[str],
    ) -> dict[tuple[str, str], bool]:
        """Fetch every stored rule for ``action`` over actors x targets.

        ``targets`` holds stored column values (NULL_ID for generic).
        Keys of the result are ``(actor_id, target_id)``.
        """

    @abstractmethod
    def rules_for(self, actor: IdentifierLike) -> list[PermissionRule]:
        """All rules stored on ``actor``, ordered by (action, target_id)."""

    def lookup_rule(
        self,
        actor: IdentifierLike,
        action: str,
        target: Optional[IdentifierLike],
    ) -> Optional[bool]:
        """The stored decision for one key, or None when no row exists."""
        actor_id = to_identifier(actor)
        target_id = NULL_ID if target is None else to_identifier(target)
        found = self.lookup_rules([actor_id], action, [target_id])
        return found.get((actor_id, target_id))


class InheritanceGraph(ABC):
    """Durable child -> parent edges, kept acyclic on every insert."""

    @abstractmethod
    def add_edge(self, child: IdentifierLike, parent: IdentifierLike) -> None:
        """Insert ``child -> parent``; CycleError if it would close a cycle."""

    @abstractmethod
    def remove_edge(self, child: IdentifierLike, parent: IdentifierLike) -> None:
        """Delete ``child -> parent`` if present."""

    @abstractmethod
    def parents_of_many(self, ids: Sequence[str]) -> dict[str, list[str]]:
        """Direct parents for each of ``ids`` (missing keys mean none)."""

    @abstractmethod
    def children(self, actor: IdentifierLike) -> list[str]:
        """Direct children of ``actor`` in lexicographic order."""

    def parents(self, actor: IdentifierLike) -> list[str]:
        """Direct parents of ``actor`` in lexicographic order."""
        actor_id = to_identifier(actor)
        return sorted(self.parents_of_many([actor_id]).get(actor_id, []))

    def ancestor_levels(self, actor: IdentifierLike) -> list[tuple[str, int]]:
        """``actor`` at level 0 followed by every ancestor at its shortest level."""
        return ancestor_levels(to_identifier(actor), self.parents_of_many)

    def is_ancestor(self, actor: IdentifierLike, candidate: IdentifierLike) -> bool:
        """True if ``candidate`` is reachable from ``actor`` along parent edges."""
        actor_id = to_identifier(actor)
        candidate_id = to_identifier(candidate)
        if actor_id == candidate_id:
            return False
        return is_reachable(actor_id, candidate_id, self.parents_of_many)


def chunked(items: Iterable[str], size: int) -> Iterable[list[str]]:
    """Split ``items`` into lists of at most ``size`` elements."""
    batch: list[str] = []
    for item in items:
        batch.append(item)
        if len(batch) >= size:
            yield batch
            batch = []
    if batch:
        yield batch


__all__ = [
    "InheritanceGraph",
    "PermissionRule",
    "RuleStore",
    "chunked",
]
