"""Reference-integrity checks for property definitions."""

from __future__ import annotations

from ..errors import (
    CollectionNotFoundError,
    InvalidReferenceError,
    PropertyNotFoundError,
    RelationshipError,
)
from ..filters import filter_fields
from ..schema.registry import SchemaProvider
from ..schema.types import FIELDLESS_AGGREGATES, CollectionSchema, PropertyKind, PropertySchema


def check_property_references(
    provider: SchemaProvider,
    schema: CollectionSchema,
    prop: PropertySchema,
) -> list[RelationshipError]:
    """
    Return every integrity problem with one property definition.

    Checks that referenced collections and properties exist and that
    reference properties point where the computed property expects.
    """
    errors: list[RelationshipError] = []
    ctx = {"collection": schema.code, "property": prop.code}

    def invalid(message: str) -> None:
        errors.append(InvalidReferenceError(f"{schema.code}.{prop.code}: {message}", **ctx))

    def require_collection(code: str | None) -> CollectionSchema | None:
        if not code:
            invalid("no target collection declared")
            return None
        target = provider.get_collection_schema(code)
        if target is None:
            errors.append(CollectionNotFoundError(code, path=(f"{schema.code}.{prop.code}",)))
        return target

    def require_property(target: CollectionSchema, code: str) -> PropertySchema | None:
        found = target.get_property(code)
        if found is None:
            errors.append(PropertyNotFoundError(target.code, code, path=(f"{schema.code}.{prop.code}",)))
        return found

    if prop.kind == PropertyKind.REFERENCE:
        require_collection(prop.target_collection)

    elif prop.kind == PropertyKind.LOOKUP:
        reference = None
        if not prop.reference_property:
            invalid("no reference property declared")
        else:
            reference = require_property(schema, prop.reference_property)
        target = require_collection(prop.target_collection)
        if reference is not None:
            if reference.kind != PropertyKind.REFERENCE:
                invalid(f"'{reference.code}' is a {reference.kind.value} property, not a reference")
            elif reference.target_collection != prop.target_collection:
                invalid(
                    f"reference '{reference.code}' targets '{reference.target_collection}' "
                    f"but lookup reads from '{prop.target_collection}'"
                )
        if target is not None:
            if not prop.source_property:
                invalid("no source property declared")
            else:
                require_property(target, prop.source_property)

    elif prop.kind == PropertyKind.ROLLUP:
        child = require_collection(prop.target_collection)
        if prop.aggregate is None:
            invalid("no aggregate function declared")
        if child is not None:
            if not prop.reference_property:
                invalid("no reference property declared")
            else:
                back_ref = require_property(child, prop.reference_property)
                if back_ref is not None:
                    if back_ref.kind != PropertyKind.REFERENCE:
                        invalid(f"'{child.code}.{back_ref.code}' is not a reference")
                    elif back_ref.target_collection != schema.code:
                        invalid(
                            f"'{child.code}.{back_ref.code}' targets '{back_ref.target_collection}', "
                            f"not '{schema.code}'"
                        )
            if prop.source_property:
                require_property(child, prop.source_property)
            elif prop.aggregate is not None and prop.aggregate not in FIELDLESS_AGGREGATES:
                invalid(f"aggregate '{prop.aggregate.value}' requires a source property")
            for field_name in filter_fields(prop.filter):
                require_property(child, field_name)

    elif prop.kind == PropertyKind.HIERARCHICAL:
        if not prop.parent_property:
            invalid("no parent property declared")
        else:
            parent = require_property(schema, prop.parent_property)
            if parent is not None:
                if parent.kind != PropertyKind.REFERENCE:
                    invalid(f"parent link '{parent.code}' is not a reference")
                elif parent.target_collection != schema.code:
                    invalid(
                        f"parent link '{parent.code}' targets '{parent.target_collection}', "
                        f"not '{schema.code}'"
                    )

    return errors


def check_schema_references(provider: SchemaProvider) -> list[RelationshipError]:
    """Integrity problems across every collection, in definition order."""
    errors: list[RelationshipError] = []
    for code in provider.list_collections():
        schema = provider.get_collection_schema(code)
        if schema is None:
            continue
        for prop in schema.properties:
            errors.extend(check_property_references(provider, schema, prop))
    return errors
