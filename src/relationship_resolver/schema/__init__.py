"""Schema metadata interface."""

from .loader import SchemaLoader, SchemaLoadError, load_schema
from .registry import SchemaProvider, SchemaRegistry
from .types import (
    AggregateFunction,
    CollectionSchema,
    PropertyKind,
    PropertySchema,
)

__all__ = [
    "AggregateFunction",
    "CollectionSchema",
    "PropertyKind",
    "PropertySchema",
    "SchemaLoadError",
    "SchemaLoader",
    "SchemaProvider",
    "SchemaRegistry",
    "load_schema",
]
