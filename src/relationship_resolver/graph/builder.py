"""Dependency graph builder - turns schema metadata into nodes and edges."""

from __future__ import annotations

import logging

from ..filters import filter_fields
from ..schema.registry import SchemaProvider
from ..schema.types import CollectionSchema, PropertyKind, PropertySchema
from .types import DependencyEdge, DependencyGraph, DependencyNode, EdgeKind

logger = logging.getLogger(__name__)


def property_edges(collection: str, prop: PropertySchema) -> list[DependencyEdge]:
    """Outgoing dependency edges for one property definition."""
    source = DependencyNode(collection, prop.code)
    edges: list[DependencyEdge] = []

    if prop.kind == PropertyKind.LOOKUP:
        if prop.target_collection and prop.source_property:
            edges.append(DependencyEdge(
                source=source,
                target=DependencyNode(prop.target_collection, prop.source_property),
                kind=EdgeKind.LOOKUP_SOURCE,
            ))

    elif prop.kind == PropertyKind.ROLLUP:
        if prop.target_collection:
            if prop.source_property:
                edges.append(DependencyEdge(
                    source=source,
                    target=DependencyNode(prop.target_collection, prop.source_property),
                    kind=EdgeKind.ROLLUP_SOURCE,
                ))
            for field_name in filter_fields(prop.filter):
                if field_name == prop.source_property:
                    continue
                edges.append(DependencyEdge(
                    source=source,
                    target=DependencyNode(prop.target_collection, field_name),
                    kind=EdgeKind.ROLLUP_FILTER,
                ))

    elif prop.kind == PropertyKind.HIERARCHICAL:
        if prop.parent_property:
            edges.append(DependencyEdge(
                source=source,
                target=DependencyNode(collection, prop.parent_property),
                kind=EdgeKind.HIERARCHY_LINK,
            ))

    return edges


class DependencyGraphBuilder:
    """
    Builds the property-level dependency graph from a schema provider.

    Walks every property of every collection once. `update_collection`
    rebuilds only the subgraph owned by one collection after it changes.
    """

    def __init__(self, schema_provider: SchemaProvider):
        self._schema_provider = schema_provider

    def build(self) -> DependencyGraph:
        nodes: list[DependencyNode] = []
        edges: list[DependencyEdge] = []

        for code in self._schema_provider.list_collections():
            schema = self._schema_provider.get_collection_schema(code)
            if schema is None:
                continue
            sub_nodes, sub_edges = self.subgraph_for(schema)
            nodes.extend(sub_nodes)
            edges.extend(sub_edges)

        graph = DependencyGraph(nodes=tuple(nodes), edges=tuple(edges))
        logger.info(f"Dependency graph built: {len(graph.nodes)} properties, {len(graph.edges)} edges")
        return graph

    def update_collection(self, graph: DependencyGraph, collection: str) -> DependencyGraph:
        """Rebuild one collection's subgraph (or drop it if the collection is gone)."""
        schema = self._schema_provider.get_collection_schema(collection)
        if schema is None:
            new_graph = graph.replace_collection(collection, (), ())
            logger.info(f"Dependency graph: removed collection {collection}")
            return new_graph

        sub_nodes, sub_edges = self.subgraph_for(schema)
        new_graph = graph.replace_collection(collection, sub_nodes, sub_edges)
        logger.info(
            f"Dependency graph: rebuilt {collection} "
            f"({len(sub_nodes)} properties, {len(sub_edges)} edges)"
        )
        return new_graph

    @staticmethod
    def subgraph_for(schema: CollectionSchema) -> tuple[list[DependencyNode], list[DependencyEdge]]:
        """Nodes and outgoing edges owned by one collection."""
        nodes = [DependencyNode(schema.code, p.code) for p in schema.properties]
        edges = [e for p in schema.properties for e in property_edges(schema.code, p)]
        return nodes, edges

    @classmethod
    def with_property(
        cls,
        graph: DependencyGraph,
        schema: CollectionSchema,
        prop: PropertySchema,
    ) -> DependencyGraph:
        """Candidate graph with `prop` added to (or replacing its namesake in) `schema`."""
        properties = list(schema.properties)
        for i, existing in enumerate(properties):
            if existing.code == prop.code:
                properties[i] = prop
                break
        else:
            properties.append(prop)
        candidate = CollectionSchema(
            code=schema.code,
            properties=tuple(properties),
            display_name=schema.display_name,
            id_field=schema.id_field,
        )
        nodes, edges = cls.subgraph_for(candidate)
        return graph.replace_collection(schema.code, nodes, edges)
