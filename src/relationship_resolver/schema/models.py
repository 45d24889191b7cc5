"""Pydantic models for schema definition documents."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field, model_validator

from .types import (
    DEFAULT_HIERARCHY_DEPTH,
    FIELDLESS_AGGREGATES,
    AggregateFunction,
    PropertyKind,
)


class PropertyModel(BaseModel):
    """One property entry in a collection document."""
    code: str = Field(min_length=1)
    kind: PropertyKind = PropertyKind.PLAIN
    display_name: str = ""

    reference_property: str | None = None
    target_collection: str | None = None
    source_property: str | None = None

    aggregate: AggregateFunction | None = None
    filter: dict[str, Any] | None = None

    parent_property: str | None = None
    max_depth: int = Field(default=DEFAULT_HIERARCHY_DEPTH, ge=1)

    model_config = {"extra": "forbid"}

    @model_validator(mode="after")
    def _check_kind_fields(self) -> PropertyModel:
        missing: list[str] = []
        if self.kind == PropertyKind.REFERENCE:
            if not self.target_collection:
                missing.append("target_collection")
        elif self.kind == PropertyKind.LOOKUP:
            for name in ("reference_property", "target_collection", "source_property"):
                if not getattr(self, name):
                    missing.append(name)
        elif self.kind == PropertyKind.ROLLUP:
            for name in ("reference_property", "target_collection", "aggregate"):
                if not getattr(self, name):
                    missing.append(name)
            if (self.aggregate is not None
                    and self.aggregate not in FIELDLESS_AGGREGATES
                    and not self.source_property):
                missing.append("source_property")
        elif self.kind == PropertyKind.HIERARCHICAL:
            if not self.parent_property:
                missing.append("parent_property")
        if missing:
            raise ValueError(f"{self.kind.value} property '{self.code}' requires: {', '.join(missing)}")
        return self


class CollectionModel(BaseModel):
    """A collection document."""
    display_name: str = ""
    id_field: str = "id"
    properties: list[PropertyModel] = Field(default_factory=list)

    model_config = {"extra": "forbid"}
