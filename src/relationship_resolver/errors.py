"""Error taxonomy for relationship resolution.

Every error carries enough structured context (collection, property,
record id, traversal path and depth) for a caller to log and localize the
failure without re-deriving it.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Iterable

if TYPE_CHECKING:
    from .graph.types import CircularPath


class RelationshipError(Exception):
    """Base class for all resolver errors."""

    def __init__(
        self,
        message: str,
        *,
        collection: str | None = None,
        property: str | None = None,
        record_id: str | None = None,
        path: Iterable[str] = (),
        depth: int | None = None,
    ):
        super().__init__(message)
        self.collection = collection
        self.property = property
        self.record_id = record_id
        self.path = tuple(path)
        self.depth = depth

    @property
    def context(self) -> dict[str, Any]:
        """Structured context for logging."""
        return {
            "error": type(self).__name__,
            "collection": self.collection,
            "property": self.property,
            "record_id": self.record_id,
            "path": list(self.path),
            "depth": self.depth,
        }


class CircularDependencyError(RelationshipError):
    """A resolution would recurse forever."""
    pass


class SchemaCircularDependencyError(CircularDependencyError):
    """Computed properties depend on themselves through schema edges."""

    def __init__(self, circular_path: CircularPath, **context: Any):
        context.setdefault("collection", circular_path.closing.collection)
        context.setdefault("property", circular_path.closing.property)
        context.setdefault("path", [str(n) for n in circular_path.path])
        super().__init__(f"Circular dependency: {circular_path}", **context)
        self.circular_path = circular_path


class DataCircularReferenceError(CircularDependencyError):
    """Parent pointers in the stored records form a loop."""

    def __init__(self, record_ids: Iterable[str], **context: Any):
        record_ids = tuple(record_ids)
        context.setdefault("path", record_ids)
        context.setdefault("depth", len(record_ids) - 1)
        super().__init__(
            f"Circular parent reference in data: {' -> '.join(record_ids)}",
            **context,
        )
        self.record_ids = record_ids


class CollectionNotFoundError(RelationshipError):
    """Raised when a collection is not defined in the schema."""

    def __init__(self, collection: str, **context: Any):
        super().__init__(f"Collection not found: {collection}", collection=collection, **context)


class PropertyNotFoundError(RelationshipError):
    """Raised when a property is not defined on a collection."""

    def __init__(self, collection: str, property: str, **context: Any):
        super().__init__(
            f"Property not found: {collection}.{property}",
            collection=collection,
            property=property,
            **context,
        )


class InvalidReferenceError(RelationshipError):
    """A reference's declared target does not match the actual schema."""
    pass


class RecordNotFoundError(RelationshipError):
    """Raised when the record being resolved does not exist."""

    def __init__(self, collection: str, record_id: str, **context: Any):
        super().__init__(
            f"Record not found: {collection}/{record_id}",
            collection=collection,
            record_id=record_id,
            **context,
        )


class ResolutionTimeoutError(RelationshipError):
    """The caller's timeout elapsed while waiting on the data interface."""
    pass


class MaxDepthExceededError(RelationshipError):
    """A lookup chain or ancestor traversal exceeded its depth limit."""

    def __init__(self, max_depth: int, **context: Any):
        depth = context.get("depth")
        detail = f" at depth {depth}" if depth is not None else ""
        super().__init__(f"Maximum depth {max_depth} exceeded{detail}", **context)
        self.max_depth = max_depth


class DataSourceError(RelationshipError):
    """The data interface failed; the original exception is chained."""
    pass
