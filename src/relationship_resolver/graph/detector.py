"""Circular dependency detection over the schema-level dependency graph.

Depth-first traversal along outgoing edges with an explicit path stack;
reaching a node already on the stack yields the cycle. Results are
memoized per node and survive graph updates for every node whose
reachable subgraph did not change.

Data-level loops (corrupt parent pointers) are a separate concern,
checked by the resolver during ancestor traversal.
"""

from __future__ import annotations

import logging
import threading
from typing import Iterator

from ..errors import SchemaCircularDependencyError
from .types import CircularPath, DependencyGraph, DependencyNode

logger = logging.getLogger(__name__)


class CircularDependencyDetector:
    """
    Schema-level cycle detector.

    - find_cycle / validate_node: single-node check (property edit time)
    - find_all_cycles / validate: full-graph batch check (schema publish time)
    - set_graph: swap in a rebuilt graph, keeping still-valid memo entries
    - fork: candidate check against a proposed graph without touching this detector
    """

    def __init__(self, graph: DependencyGraph):
        self._graph = graph
        self._acyclic: set[DependencyNode] = set()
        self._cycles: dict[DependencyNode, CircularPath] = {}
        self._lock = threading.RLock()

    @property
    def graph(self) -> DependencyGraph:
        return self._graph

    def find_cycle(self, node: DependencyNode) -> CircularPath | None:
        """Return a cycle reachable from `node`, or None if it is acyclic."""
        with self._lock:
            if node in self._acyclic:
                return None
            cached = self._cycles.get(node)
            if cached is not None:
                return cached
            cycle = self._search(node)
            if cycle is not None:
                self._cycles[node] = cycle
            return cycle

    def is_acyclic(self, node: DependencyNode) -> bool:
        return self.find_cycle(node) is None

    def is_memoized(self, node: DependencyNode) -> bool:
        with self._lock:
            return node in self._acyclic or node in self._cycles

    def validate_node(self, node: DependencyNode) -> None:
        """Raise SchemaCircularDependencyError if `node` reaches a cycle."""
        cycle = self.find_cycle(node)
        if cycle is not None:
            raise SchemaCircularDependencyError(
                cycle,
                collection=node.collection,
                property=node.property,
            )

    def analyze(self) -> list[CircularPath]:
        """Compute status for every node; returns the distinct cycles found."""
        return self.find_all_cycles()

    def find_all_cycles(self) -> list[CircularPath]:
        """Distinct cycles in the graph, in node definition order."""
        order = {node: i for i, node in enumerate(self._graph.nodes)}
        seen: set[tuple[DependencyNode, ...]] = set()
        cycles: list[CircularPath] = []

        for node in self._graph.nodes:
            cycle = self.find_cycle(node)
            if cycle is None:
                continue
            key = _normalized(cycle, order)
            if key in seen:
                continue
            seen.add(key)
            cycles.append(cycle)

        return cycles

    def validate(self) -> None:
        """Raise for the first cycle in the graph."""
        cycles = self.find_all_cycles()
        if cycles:
            raise SchemaCircularDependencyError(cycles[0])

    def set_graph(self, graph: DependencyGraph) -> set[DependencyNode]:
        """
        Replace the graph, dropping memo entries that may have changed.

        Returns the set of nodes whose memoized status was dropped.
        """
        with self._lock:
            old = self._graph
            changed = {
                n for n in set(old.nodes) | set(graph.nodes)
                if old.outgoing(n) != graph.outgoing(n)
            }
            affected = old.upstream_of(changed) | graph.upstream_of(changed)
            self._acyclic -= affected
            for node in affected:
                self._cycles.pop(node, None)
            self._graph = graph

        if changed:
            logger.debug(f"Detector graph updated: {len(changed)} changed, {len(affected)} re-check")
        return affected

    def fork(self, graph: DependencyGraph) -> CircularDependencyDetector:
        """New detector for `graph` seeded with this detector's still-valid memo."""
        with self._lock:
            forked = CircularDependencyDetector(self._graph)
            forked._acyclic = set(self._acyclic)
            forked._cycles = dict(self._cycles)
        forked.set_graph(graph)
        return forked

    def _search(self, start: DependencyNode) -> CircularPath | None:
        """Iterative DFS from `start` (caller holds lock)."""
        path: list[DependencyNode] = [start]
        on_path: dict[DependencyNode, int] = {start: 0}
        stack: list[Iterator[DependencyNode]] = [iter(self._graph.successors(start))]
        finished: set[DependencyNode] = set()

        while stack:
            nxt = next(stack[-1], None)
            if nxt is None:
                stack.pop()
                done = path.pop()
                del on_path[done]
                finished.add(done)
                continue

            if nxt in on_path:
                # Nodes fully explored before the cycle was found are still acyclic
                self._acyclic.update(finished)
                return CircularPath(nodes=tuple(path[on_path[nxt]:]), closing=nxt)

            if nxt in self._acyclic or nxt in finished:
                continue

            on_path[nxt] = len(path)
            path.append(nxt)
            stack.append(iter(self._graph.successors(nxt)))

        self._acyclic.update(finished)
        return None


def _normalized(cycle: CircularPath, order: dict[DependencyNode, int]) -> tuple[DependencyNode, ...]:
    """Rotate a cycle to start at its earliest-defined node."""
    nodes = cycle.nodes
    start = min(range(len(nodes)), key=lambda i: order.get(nodes[i], len(order)))
    return nodes[start:] + nodes[:start]
