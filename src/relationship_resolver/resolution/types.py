"""Resolution request and result types."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any

from ..cache.memory import RecordRef
from ..errors import RelationshipError


@dataclass(frozen=True, slots=True)
class ResolutionRequest:
    """
    One computed-property resolution.

    `depth` counts how many computed properties have been crossed to reach
    this request; top-level callers leave it at 0.
    """
    collection: str
    record_id: str
    property: str
    depth: int = 0

    # Caller-imposed timeout for the whole call (None = no timeout)
    timeout_seconds: float | None = None

    # Bypass the cache for this call (results are still not stored)
    use_cache: bool = True

    def descend(self, collection: str, record_id: str, property: str) -> ResolutionRequest:
        """Nested request one level deeper."""
        return replace(
            self,
            collection=collection,
            record_id=str(record_id),
            property=property,
            depth=self.depth + 1,
        )

    def __str__(self) -> str:
        return f"{self.collection}/{self.record_id}.{self.property}"


@dataclass(frozen=True, slots=True)
class ProvenanceStep:
    """A record/property visited while producing a value."""
    collection: str
    record_id: str
    property: str

    def __str__(self) -> str:
        return f"{self.collection}/{self.record_id}.{self.property}"


@dataclass(frozen=True)
class ResolutionResult:
    """Result of a lookup or rollup resolution."""
    value: Any
    provenance: tuple[ProvenanceStep, ...] = ()
    from_cache: bool = False

    # Records the value was derived from
    fingerprint: frozenset[RecordRef] = frozenset()

    # Rollups only: number of child rows that matched the filter
    row_count: int | None = None


class HierarchyDirection(str, Enum):
    """Direction of a hierarchical traversal."""
    PARENT = "parent"
    ANCESTORS = "ancestors"        # Immediate parent first, root last
    DESCENDANTS = "descendants"    # Breadth-first
    SIBLINGS = "siblings"          # Same parent, excluding the record
    PATH = "path"                  # Root first, the record last


@dataclass(frozen=True, slots=True)
class HierarchyNode:
    """A record reached during hierarchical traversal."""
    record_id: str
    depth: int                     # Hops from the starting record
    parent_id: str | None = None
    record: dict[str, Any] | None = None


@dataclass(frozen=True)
class HierarchyResult:
    """Result of a hierarchical resolution."""
    direction: HierarchyDirection
    nodes: tuple[HierarchyNode, ...] = ()

    # Descendants only: a depth or node cap cut the listing short
    truncated: bool = False

    # Deepest level reached
    depth: int = 0

    from_cache: bool = False
    fingerprint: frozenset[RecordRef] = frozenset()

    @property
    def record_ids(self) -> list[str]:
        return [n.record_id for n in self.nodes]

    @property
    def value(self) -> Any:
        """Parent id for PARENT, otherwise the list of record ids."""
        if self.direction == HierarchyDirection.PARENT:
            return self.nodes[0].record_id if self.nodes else None
        return self.record_ids


@dataclass
class BatchResult:
    """Results of independent resolutions, in request order."""
    results: list[ResolutionResult | HierarchyResult | None] = field(default_factory=list)

    # Request index -> failure
    errors: dict[int, RelationshipError] = field(default_factory=dict)

    @property
    def success(self) -> bool:
        return not self.errors


@dataclass
class ResolverMetrics:
    """Running counters for a resolver instance."""
    lookups: int = 0
    rollups: int = 0
    hierarchies: int = 0
    cache_hits: int = 0
    cache_misses: int = 0
    fetches: int = 0
    errors: int = 0
    fetch_seconds: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "lookups": self.lookups,
            "rollups": self.rollups,
            "hierarchies": self.hierarchies,
            "cache_hits": self.cache_hits,
            "cache_misses": self.cache_misses,
            "fetches": self.fetches,
            "errors": self.errors,
            "fetch_seconds": round(self.fetch_seconds, 6),
        }
