"""Schema types - collections, properties and their computed kinds."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from ..filters import Filter


class PropertyKind(str, Enum):
    """How a property's value is obtained."""
    PLAIN = "plain"                # Stored on the record
    REFERENCE = "reference"        # Stored id(s) of records in target_collection
    LOOKUP = "lookup"              # Copied from a referenced record
    ROLLUP = "rollup"              # Aggregated from records referencing this one
    HIERARCHICAL = "hierarchical"  # Derived from a self-referencing parent link


class AggregateFunction(str, Enum):
    """Rollup aggregate functions."""
    SUM = "sum"
    AVG = "avg"
    COUNT = "count"
    MIN = "min"
    MAX = "max"
    COUNTA = "counta"              # Non-null, non-empty values
    COUNTALL = "countall"          # Every matching row
    FIRST = "first"
    LAST = "last"
    CONCAT = "concat"
    CONCAT_UNIQUE = "concat_unique"


# Aggregates that are meaningful without a source property
FIELDLESS_AGGREGATES = frozenset({AggregateFunction.COUNT, AggregateFunction.COUNTALL})

DEFAULT_HIERARCHY_DEPTH = 10


@dataclass(frozen=True, slots=True)
class PropertySchema:
    """
    Definition of a single property.

    Which fields are meaningful depends on `kind`:
    - reference:    target_collection
    - lookup:       reference_property, target_collection, source_property
    - rollup:       target_collection (the child collection), reference_property
                    (the child's reference back to this collection), source_property
                    (optional for count), aggregate, filter
    - hierarchical: parent_property, max_depth
    """
    code: str
    kind: PropertyKind = PropertyKind.PLAIN
    display_name: str = ""

    reference_property: str | None = None
    target_collection: str | None = None
    source_property: str | None = None

    # Rollup
    aggregate: AggregateFunction | None = None
    filter: Filter | None = None

    # Hierarchical
    parent_property: str | None = None
    max_depth: int = DEFAULT_HIERARCHY_DEPTH

    @property
    def is_computed(self) -> bool:
        return self.kind in (PropertyKind.LOOKUP, PropertyKind.ROLLUP, PropertyKind.HIERARCHICAL)


@dataclass(frozen=True, slots=True)
class CollectionSchema:
    """A collection definition: an ordered set of properties."""
    code: str
    properties: tuple[PropertySchema, ...] = ()
    display_name: str = ""
    id_field: str = "id"
    _by_code: dict[str, PropertySchema] = field(default_factory=dict, init=False, repr=False, compare=False)

    def __post_init__(self):
        codes = [p.code for p in self.properties]
        duplicates = sorted({c for c in codes if codes.count(c) > 1})
        if duplicates:
            raise ValueError(f"Duplicate property codes in {self.code}: {', '.join(duplicates)}")
        object.__setattr__(self, "_by_code", {p.code: p for p in self.properties})

    def get_property(self, code: str) -> PropertySchema | None:
        return self._by_code.get(code)

    def has_property(self, code: str) -> bool:
        return code in self._by_code

    def computed_properties(self) -> list[PropertySchema]:
        return [p for p in self.properties if p.is_computed]
