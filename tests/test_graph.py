"""Tests for the backend-independent graph walks."""

from __future__ import annotations

from contextacl.graph import ancestor_levels, is_reachable, levels, would_create_cycle


def fetcher(edges: dict[str, list[str]], calls: list | None = None):
    def fetch(ids):
        if calls is not None:
            calls.append(list(ids))
        return {i: edges[i] for i in ids if i in edges}

    return fetch


class TestAncestorLevels:
    """Tests for ancestor_levels()."""

    def test_lone_actor(self) -> None:
        assert ancestor_levels("a", fetcher({})) == [("a", 0)]

    def test_chain(self) -> None:
        edges = {"a": ["b"], "b": ["c"]}
        assert ancestor_levels("a", fetcher(edges)) == [("a", 0), ("b", 1), ("c", 2)]

    def test_levels_sorted_within(self) -> None:
        edges = {"a": ["z", "m", "b"]}
        assert ancestor_levels("a", fetcher(edges)) == [("a", 0), ("b", 1), ("m", 1), ("z", 1)]

    def test_shortest_level_wins(self) -> None:
        edges = {"a": ["b", "d"], "b": ["c"], "c": ["d"]}
        assert ancestor_levels("a", fetcher(edges)) == [("a", 0), ("b", 1), ("d", 1), ("c", 2)]

    def test_one_fetch_per_level(self) -> None:
        calls: list = []
        edges = {"a": ["b", "c"], "b": ["d"], "c": ["d"]}
        ancestor_levels("a", fetcher(edges, calls))
        assert calls == [["a"], ["b", "c"], ["d"]]

    def test_terminates_on_cyclic_data(self) -> None:
        edges = {"a": ["b"], "b": ["a", "c"], "c": ["c"]}
        assert ancestor_levels("a", fetcher(edges)) == [("a", 0), ("b", 1), ("c", 2)]


class TestReachability:
    """Tests for is_reachable() and would_create_cycle()."""

    def test_reachable(self) -> None:
        edges = {"a": ["b"], "b": ["c"]}
        assert is_reachable("a", "c", fetcher(edges)) is True
        assert is_reachable("c", "a", fetcher(edges)) is False

    def test_start_is_goal(self) -> None:
        assert is_reachable("a", "a", fetcher({})) is True

    def test_terminates_on_cyclic_data(self) -> None:
        edges = {"a": ["b"], "b": ["a"]}
        assert is_reachable("a", "z", fetcher(edges)) is False

    def test_self_edge_is_cycle(self) -> None:
        assert would_create_cycle("a", "a", fetcher({})) is True

    def test_reverse_edge_is_cycle(self) -> None:
        edges = {"a": ["b"]}
        assert would_create_cycle("b", "a", fetcher(edges)) is True

    def test_transitive_cycle(self) -> None:
        edges = {"a": ["b"], "b": ["c"]}
        assert would_create_cycle("c", "a", fetcher(edges)) is True

    def test_diamond_is_not_cycle(self) -> None:
        edges = {"a": ["b"], "b": ["d"], "c": ["d"]}
        assert would_create_cycle("a", "c", fetcher(edges)) is False


class TestLevels:
    """Tests for levels()."""

    def test_grouping(self) -> None:
        chain = [("a", 0), ("b", 1), ("c", 1), ("d", 2)]
        assert levels(chain) == [["a"], ["b", "c"], ["d"]]

    def test_empty(self) -> None:
        assert levels([]) == []
