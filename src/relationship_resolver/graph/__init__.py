"""Dependency graph and schema-level cycle detection."""

from .builder import DependencyGraphBuilder, property_edges
from .detector import CircularDependencyDetector
from .integrity import check_property_references, check_schema_references
from .types import (
    CircularPath,
    DependencyEdge,
    DependencyGraph,
    DependencyNode,
    EdgeKind,
)

__all__ = [
    "CircularDependencyDetector",
    "CircularPath",
    "DependencyEdge",
    "DependencyGraph",
    "DependencyGraphBuilder",
    "DependencyNode",
    "EdgeKind",
    "check_property_references",
    "check_schema_references",
    "property_edges",
]
