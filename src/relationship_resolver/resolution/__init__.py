"""Resolution requests, results and aggregation."""

from .aggregate import aggregate
from .types import (
    BatchResult,
    HierarchyDirection,
    HierarchyNode,
    HierarchyResult,
    ProvenanceStep,
    ResolutionRequest,
    ResolutionResult,
    ResolverMetrics,
)

__all__ = [
    "BatchResult",
    "HierarchyDirection",
    "HierarchyNode",
    "HierarchyResult",
    "ProvenanceStep",
    "ResolutionRequest",
    "ResolutionResult",
    "ResolverMetrics",
    "aggregate",
]
