"""Dependency graph types.

The graph is explicit data (node and edge tuples) rather than object
references, so it can be hand-built in tests and replaced wholesale.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable


class EdgeKind(str, Enum):
    """Why one property depends on another."""
    LOOKUP_SOURCE = "lookup_source"      # lookup -> (target collection, source property)
    ROLLUP_SOURCE = "rollup_source"      # rollup -> (child collection, aggregated property)
    ROLLUP_FILTER = "rollup_filter"      # rollup -> (child collection, filtered property)
    HIERARCHY_LINK = "hierarchy_link"    # hierarchical -> own parent-link property


@dataclass(frozen=True, slots=True, order=True)
class DependencyNode:
    """A (collection, property) pair."""
    collection: str
    property: str

    def __str__(self) -> str:
        return f"{self.collection}.{self.property}"


@dataclass(frozen=True, slots=True)
class DependencyEdge:
    """`source` depends on `target`."""
    source: DependencyNode
    target: DependencyNode
    kind: EdgeKind


@dataclass(frozen=True, slots=True)
class CircularPath:
    """
    A cycle in the dependency graph.

    `nodes` are the cycle members in traversal order and `closing` is the
    node that closes the loop (always `nodes[0]`), so `path` reads
    A -> B -> ... -> A and `len()` is the number of edges in the cycle.
    """
    nodes: tuple[DependencyNode, ...]
    closing: DependencyNode

    @property
    def path(self) -> tuple[DependencyNode, ...]:
        return self.nodes + (self.closing,)

    def __len__(self) -> int:
        return len(self.nodes)

    def __contains__(self, node: object) -> bool:
        return node in self.nodes

    def __str__(self) -> str:
        return " -> ".join(str(n) for n in self.path)


@dataclass(frozen=True)
class DependencyGraph:
    """
    Immutable node/edge set for one schema snapshot.

    Node order and per-node edge order follow schema definition order,
    so traversals are reproducible for identical schemas.
    """
    nodes: tuple[DependencyNode, ...] = ()
    edges: tuple[DependencyEdge, ...] = ()

    _outgoing: dict[DependencyNode, tuple[DependencyEdge, ...]] = field(
        default_factory=dict, init=False, repr=False, compare=False
    )
    _incoming: dict[DependencyNode, tuple[DependencyEdge, ...]] = field(
        default_factory=dict, init=False, repr=False, compare=False
    )

    def __post_init__(self):
        outgoing: dict[DependencyNode, list[DependencyEdge]] = {}
        incoming: dict[DependencyNode, list[DependencyEdge]] = {}
        known = dict.fromkeys(self.nodes)
        for edge in self.edges:
            outgoing.setdefault(edge.source, []).append(edge)
            incoming.setdefault(edge.target, []).append(edge)
            known.setdefault(edge.source)
            known.setdefault(edge.target)
        object.__setattr__(self, "nodes", tuple(known))
        object.__setattr__(self, "_outgoing", {n: tuple(e) for n, e in outgoing.items()})
        object.__setattr__(self, "_incoming", {n: tuple(e) for n, e in incoming.items()})

    def __contains__(self, node: object) -> bool:
        return node in self._outgoing or node in self._incoming or node in self.nodes

    def __len__(self) -> int:
        return len(self.nodes)

    def outgoing(self, node: DependencyNode) -> tuple[DependencyEdge, ...]:
        return self._outgoing.get(node, ())

    def successors(self, node: DependencyNode) -> list[DependencyNode]:
        """Nodes this node depends on, in edge order."""
        return [e.target for e in self.outgoing(node)]

    def dependents(self, node: DependencyNode) -> list[DependencyNode]:
        """Nodes that depend directly on this node."""
        return [e.source for e in self._incoming.get(node, ())]

    def upstream_of(self, nodes: Iterable[DependencyNode]) -> set[DependencyNode]:
        """Every node that can reach any of `nodes` (including them)."""
        result = set(nodes)
        to_process = list(result)
        while to_process:
            current = to_process.pop()
            for dependent in self.dependents(current):
                if dependent not in result:
                    result.add(dependent)
                    to_process.append(dependent)
        return result

    def node_for(self, collection: str, property: str) -> DependencyNode:
        return DependencyNode(collection, property)

    def nodes_for_collection(self, collection: str) -> list[DependencyNode]:
        return [n for n in self.nodes if n.collection == collection]

    def replace_collection(
        self,
        collection: str,
        nodes: Iterable[DependencyNode],
        edges: Iterable[DependencyEdge],
    ) -> DependencyGraph:
        """
        New graph with one collection's subgraph swapped out.

        Removes the collection's own nodes' outgoing edges and re-adds the
        given subgraph; edges from other collections into it are kept.
        """
        new_nodes = list(nodes)
        new_edges = list(edges)
        kept_edges = [e for e in self.edges if e.source.collection != collection]

        # Keep the collection's position in node order stable
        ordered: list[DependencyNode] = []
        inserted = False
        for node in self.nodes:
            if node.collection == collection:
                if not inserted:
                    ordered.extend(new_nodes)
                    inserted = True
                continue
            ordered.append(node)
        if not inserted:
            ordered.extend(new_nodes)

        # Edges grouped so each source's edges stay in definition order
        by_source: dict[DependencyNode, list[DependencyEdge]] = {}
        for edge in kept_edges + new_edges:
            by_source.setdefault(edge.source, []).append(edge)
        ordered_edges = [e for n in ordered for e in by_source.pop(n, [])]
        for remaining in by_source.values():
            ordered_edges.extend(remaining)

        return DependencyGraph(nodes=tuple(ordered), edges=tuple(ordered_edges))
