"""Graph walks over child -> parent inheritance edges.

Both walks are written against a single frontier primitive::

    fetch_parents(ids) -> {child_id: [parent_id, ...]}

so every backend only has to answer "who are the direct parents of these
nodes" and gets the leveled ancestor walk and the cycle check for free. The
SQL store answers it with one ``IN`` query per level, the Redis store with one
pipelined round trip per level.

Stored graphs are acyclic by construction, but the walks never rely on it:
each keeps a visited set and terminates on malformed data too.
"""

from __future__ import annotations

from itertools import groupby
from typing import Callable, Iterable, Mapping, Sequence

FetchParents = Callable[[Sequence[str]], Mapping[str, Sequence[str]]]


def ancestor_levels(actor: str, fetch_parents: FetchParents) -> list[tuple[str, int]]:
    """Breadth-first ancestor walk annotated with distance.

    Returns ``(identifier, level)`` pairs: level 0 is ``actor`` itself,
    level 1 its direct parents, and so on. A node reachable along several
    paths is reported once, at its shortest level. Within a level the
    identifiers are in lexicographic order.

    Example::

        >>> edges = {"a": ["c", "b"], "b": ["d"], "c": ["d"]}
        >>> ancestor_levels("a", lambda ids: {i: edges.get(i, []) for i in ids})
        [('a', 0), ('b', 1), ('c', 1), ('d', 2)]
    """
    chain: list[tuple[str, int]] = [(actor, 0)]
    visited = {actor}
    frontier = [actor]
    level = 0

    while frontier:
        level += 1
        parents_by_child = fetch_parents(frontier)
        reached: set[str] = set()
        for child in frontier:
            for parent in parents_by_child.get(child, ()):
                if parent not in visited:
                    reached.add(parent)
        visited |= reached
        frontier = sorted(reached)
        chain.extend((node, level) for node in frontier)

    return chain


def is_reachable(start: str, goal: str, fetch_parents: FetchParents) -> bool:
    """True if ``goal`` is ``start`` or an ancestor of ``start``."""
    if start == goal:
        return True

    visited = {start}
    frontier = [start]
    while frontier:
        parents_by_child = fetch_parents(frontier)
        reached: set[str] = set()
        for child in frontier:
            for parent in parents_by_child.get(child, ()):
                if parent == goal:
                    return True
                if parent not in visited:
                    reached.add(parent)
        visited |= reached
        frontier = sorted(reached)

    return False


def levels(chain: Iterable[tuple[str, int]]) -> list[list[str]]:
    """Group an ancestor chain into per-level identifier lists.

    ``chain`` must be ordered by level, as ancestor_levels() returns it.
    """
    return [[node for node, _ in group] for _, group in groupby(chain, key=lambda item: item[1])]


def would_create_cycle(child: str, parent: str, fetch_parents: FetchParents) -> bool:
    """True if inserting ``child -> parent`` would close a cycle.

    That is the case when ``child`` is ``parent`` itself or already one of
    its ancestors.
    """
    return is_reachable(parent, child, fetch_parents)


__all__ = [
    "FetchParents",
    "ancestor_levels",
    "is_reachable",
    "levels",
    "would_create_cycle",
]
