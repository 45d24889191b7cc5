"""Tests for schema-level circular dependency detection on hand-built graphs."""

import pytest

from relationship_resolver.errors import CircularDependencyError, SchemaCircularDependencyError
from relationship_resolver.graph import (
    CircularDependencyDetector,
    DependencyEdge,
    DependencyGraph,
    DependencyNode,
    EdgeKind,
)


N = DependencyNode


def _graph(*pairs, nodes=()):
    edges = tuple(DependencyEdge(N(*s), N(*t), EdgeKind.LOOKUP_SOURCE) for s, t in pairs)
    return DependencyGraph(nodes=tuple(N(*n) for n in nodes), edges=edges)


ACYCLIC = _graph(
    (("a", "x"), ("b", "y")),
    (("b", "y"), ("c", "z")),
    (("a", "w"), ("c", "z")),
)

TWO_CYCLE = _graph(
    (("a", "x"), ("b", "y")),
    (("b", "y"), ("a", "x")),
)

THREE_CYCLE_WITH_TAIL = _graph(
    (("d", "w"), ("a", "x")),
    (("a", "x"), ("b", "y")),
    (("b", "y"), ("c", "z")),
    (("c", "z"), ("a", "x")),
    (("e", "v"), ("c", "q")),
)


@pytest.mark.cycles
class TestFindCycle:
    def test_acyclic_graph(self):
        detector = CircularDependencyDetector(ACYCLIC)
        assert detector.find_all_cycles() == []
        assert all(detector.is_acyclic(n) for n in ACYCLIC.nodes)
        detector.validate()

    def test_two_cycle(self):
        detector = CircularDependencyDetector(TWO_CYCLE)
        cycle = detector.find_cycle(N("a", "x"))

        assert cycle is not None
        assert len(cycle) == 2
        assert cycle.path[0] == cycle.path[-1]
        assert cycle.path == (N("a", "x"), N("b", "y"), N("a", "x"))
        assert str(cycle) == "a.x -> b.y -> a.x"

    def test_cycle_length_matches_edge_count(self):
        detector = CircularDependencyDetector(THREE_CYCLE_WITH_TAIL)
        cycles = detector.find_all_cycles()

        assert len(cycles) == 1
        assert len(cycles[0]) == 3
        assert cycles[0].path[0] == cycles[0].path[-1]
        assert set(cycles[0].nodes) == {N("a", "x"), N("b", "y"), N("c", "z")}

    def test_node_reaching_a_cycle_is_not_acyclic(self):
        detector = CircularDependencyDetector(THREE_CYCLE_WITH_TAIL)
        cycle = detector.find_cycle(N("d", "w"))

        assert cycle is not None
        assert N("d", "w") not in cycle
        assert cycle.closing == N("a", "x")

    def test_unrelated_nodes_stay_acyclic(self):
        detector = CircularDependencyDetector(THREE_CYCLE_WITH_TAIL)
        detector.analyze()
        assert detector.is_acyclic(N("e", "v"))
        assert detector.is_acyclic(N("c", "q"))

    def test_self_loop(self):
        detector = CircularDependencyDetector(_graph((("a", "x"), ("a", "x"))))
        cycle = detector.find_cycle(N("a", "x"))
        assert len(cycle) == 1
        assert cycle.path == (N("a", "x"), N("a", "x"))

    def test_unknown_node_is_acyclic(self):
        detector = CircularDependencyDetector(ACYCLIC)
        assert detector.is_acyclic(N("zz", "top"))

    def test_repeated_runs_report_identical_cycles(self):
        first = CircularDependencyDetector(THREE_CYCLE_WITH_TAIL).find_all_cycles()
        second = CircularDependencyDetector(THREE_CYCLE_WITH_TAIL).find_all_cycles()
        assert first == second


@pytest.mark.cycles
class TestValidation:
    def test_validate_node_raises_with_context(self):
        detector = CircularDependencyDetector(TWO_CYCLE)
        with pytest.raises(SchemaCircularDependencyError) as exc_info:
            detector.validate_node(N("b", "y"))

        err = exc_info.value
        assert isinstance(err, CircularDependencyError)
        assert err.collection == "b"
        assert err.property == "y"
        assert err.path[0] == err.path[-1]
        assert err.context["error"] == "SchemaCircularDependencyError"

    def test_validate_raises_first_cycle(self):
        detector = CircularDependencyDetector(TWO_CYCLE)
        with pytest.raises(SchemaCircularDependencyError):
            detector.validate()


class TestMemoization:
    def test_analyze_memoizes_every_node(self):
        detector = CircularDependencyDetector(THREE_CYCLE_WITH_TAIL)
        detector.analyze()
        assert all(detector.is_memoized(n) for n in THREE_CYCLE_WITH_TAIL.nodes)

    def test_set_graph_keeps_unaffected_memo(self):
        detector = CircularDependencyDetector(ACYCLIC)
        detector.analyze()

        # Only c.z gains an edge; a.x, b.y and a.w reach it
        changed = _graph(
            (("a", "x"), ("b", "y")),
            (("b", "y"), ("c", "z")),
            (("a", "w"), ("c", "z")),
            (("c", "z"), ("d", "new")),
            nodes=[("e", "alone")],
        )
        affected = detector.set_graph(changed)

        assert affected == {N("a", "x"), N("b", "y"), N("a", "w"), N("c", "z")}
        assert not detector.is_memoized(N("a", "x"))
        assert detector.is_acyclic(N("a", "x"))

    def test_set_graph_detects_new_cycle(self):
        detector = CircularDependencyDetector(ACYCLIC)
        detector.analyze()

        cyclic = _graph(
            (("a", "x"), ("b", "y")),
            (("b", "y"), ("c", "z")),
            (("a", "w"), ("c", "z")),
            (("c", "z"), ("a", "x")),
        )
        detector.set_graph(cyclic)
        assert detector.find_cycle(N("a", "w")) is not None

    def test_fork_leaves_original_untouched(self):
        detector = CircularDependencyDetector(ACYCLIC)
        detector.analyze()

        candidate = _graph(
            (("a", "x"), ("b", "y")),
            (("b", "y"), ("c", "z")),
            (("a", "w"), ("c", "z")),
            (("c", "z"), ("b", "y")),
        )
        forked = detector.fork(candidate)

        assert forked.find_cycle(N("b", "y")) is not None
        assert detector.is_acyclic(N("b", "y"))
        assert detector.graph is ACYCLIC
