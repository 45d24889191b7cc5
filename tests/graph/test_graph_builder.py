"""Tests for the dependency graph builder."""

from relationship_resolver.filters import FilterCondition, FilterOperator
from relationship_resolver.graph import (
    DependencyEdge,
    DependencyGraph,
    DependencyGraphBuilder,
    DependencyNode,
    EdgeKind,
    property_edges,
)
from relationship_resolver.schema import (
    AggregateFunction,
    CollectionSchema,
    PropertyKind,
    PropertySchema,
    SchemaRegistry,
)


N = DependencyNode


class TestPropertyEdges:
    def test_plain_has_no_edges(self):
        assert property_edges("a", PropertySchema("x")) == []

    def test_reference_has_no_edges(self):
        prop = PropertySchema("r", PropertyKind.REFERENCE, target_collection="b")
        assert property_edges("a", prop) == []

    def test_lookup_edge(self):
        prop = PropertySchema(
            "x", PropertyKind.LOOKUP,
            reference_property="r", target_collection="b", source_property="y",
        )
        assert property_edges("a", prop) == [
            DependencyEdge(N("a", "x"), N("b", "y"), EdgeKind.LOOKUP_SOURCE),
        ]

    def test_rollup_source_and_filter_edges(self):
        prop = PropertySchema(
            "total", PropertyKind.ROLLUP,
            reference_property="parent", target_collection="b", source_property="hours",
            aggregate=AggregateFunction.SUM,
            filter=FilterCondition("status", FilterOperator.EQUALS, "open"),
        )
        edges = property_edges("a", prop)
        assert [(e.target, e.kind) for e in edges] == [
            (N("b", "hours"), EdgeKind.ROLLUP_SOURCE),
            (N("b", "status"), EdgeKind.ROLLUP_FILTER),
        ]

    def test_count_rollup_without_source(self):
        prop = PropertySchema(
            "n", PropertyKind.ROLLUP,
            reference_property="parent", target_collection="b", aggregate=AggregateFunction.COUNT,
        )
        assert property_edges("a", prop) == []

    def test_hierarchical_edge(self):
        prop = PropertySchema("tree", PropertyKind.HIERARCHICAL, parent_property="parent")
        assert property_edges("a", prop) == [
            DependencyEdge(N("a", "tree"), N("a", "parent"), EdgeKind.HIERARCHY_LINK),
        ]


class TestBuild:
    def test_sample_schema(self, schema_registry):
        graph = DependencyGraphBuilder(schema_registry).build()

        assert N("projects", "owner_email") in graph
        assert graph.successors(N("projects", "owner_email")) == [N("users", "email")]
        assert graph.successors(N("projects", "owner_manager_name")) == [N("users", "manager_name")]
        assert graph.successors(N("users", "manager_name")) == [N("users", "name")]
        assert graph.successors(N("categories", "tree")) == [N("categories", "parent")]

    def test_node_order_follows_definition(self, schema_registry):
        graph = DependencyGraphBuilder(schema_registry).build()
        assert graph.nodes[0] == N("users", "name")
        assert graph.nodes_for_collection("categories") == [
            N("categories", "name"), N("categories", "parent"), N("categories", "tree"),
        ]

    def test_dependents_and_upstream(self, schema_registry):
        graph = DependencyGraphBuilder(schema_registry).build()
        assert set(graph.dependents(N("users", "manager_name"))) == {N("projects", "owner_manager_name")}
        upstream = graph.upstream_of([N("users", "name")])
        assert N("users", "manager_name") in upstream
        assert N("projects", "owner_manager_name") in upstream
        assert N("tasks", "watcher_names") in upstream
        assert N("projects", "owner_email") not in upstream


class TestIncrementalUpdate:
    def _registry(self):
        registry = SchemaRegistry()
        registry.register(CollectionSchema("a", (
            PropertySchema("r", PropertyKind.REFERENCE, target_collection="b"),
            PropertySchema("x", PropertyKind.LOOKUP, reference_property="r",
                           target_collection="b", source_property="y"),
        )))
        registry.register(CollectionSchema("b", (PropertySchema("y"),)))
        return registry

    def test_update_collection_rebuilds_only_its_subgraph(self):
        registry = self._registry()
        builder = DependencyGraphBuilder(registry)
        graph = builder.build()

        registry.register(CollectionSchema("b", (
            PropertySchema("y"),
            PropertySchema("z"),
        )))
        updated = builder.update_collection(graph, "b")

        assert N("b", "z") in updated
        # Edges owned by other collections survive
        assert updated.successors(N("a", "x")) == [N("b", "y")]
        assert updated.nodes_for_collection("a") == graph.nodes_for_collection("a")

    def test_update_removed_collection(self):
        registry = self._registry()
        builder = DependencyGraphBuilder(registry)
        graph = builder.build()

        registry.remove("a")
        updated = builder.update_collection(graph, "a")
        assert updated.nodes_for_collection("a") == []
        assert updated.edges == ()

    def test_with_property_builds_candidate(self):
        registry = self._registry()
        graph = DependencyGraphBuilder(registry).build()
        candidate = DependencyGraphBuilder.with_property(
            graph,
            registry.get_collection_schema("b"),
            PropertySchema("w", PropertyKind.LOOKUP, reference_property="q",
                           target_collection="a", source_property="x"),
        )
        assert candidate.successors(N("b", "w")) == [N("a", "x")]
        assert N("b", "w") not in graph

    def test_hand_built_graph_adds_edge_endpoints(self):
        graph = DependencyGraph(edges=(DependencyEdge(N("a", "x"), N("b", "y"), EdgeKind.LOOKUP_SOURCE),))
        assert graph.nodes == (N("a", "x"), N("b", "y"))
        assert len(graph) == 2
