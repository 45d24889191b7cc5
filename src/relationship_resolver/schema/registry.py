"""Schema registry - the schema metadata interface and its in-memory provider."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Protocol, runtime_checkable

from .types import CollectionSchema, PropertySchema

logger = logging.getLogger(__name__)


@runtime_checkable
class SchemaProvider(Protocol):
    """
    Read-only source of collection definitions.

    The resolver derives and owns its own dependency graph from this
    interface; it never relies on caching the provider does internally.
    """

    def get_collection_schema(self, code: str) -> CollectionSchema | None:
        ...

    def list_collections(self) -> list[str]:
        """Collection codes in stable definition order."""
        ...


@dataclass
class SchemaRegistry:
    """
    Thread-safe registry of collection schemas.

    Supports:
    - Lookup by collection code
    - Stable definition order (registration order)
    - Atomic replacement (for schema reload)
    """
    _collections: dict[str, CollectionSchema] = field(default_factory=dict)
    _lock: threading.RLock = field(default_factory=threading.RLock)

    def register(self, schema: CollectionSchema) -> None:
        """Register or replace a collection schema (keeps its original position)."""
        with self._lock:
            self._collections[schema.code] = schema

    def register_many(self, schemas: list[CollectionSchema]) -> None:
        """Register multiple collections atomically."""
        with self._lock:
            for schema in schemas:
                self.register(schema)

    def remove(self, code: str) -> bool:
        """Remove a collection. Returns True if it existed."""
        with self._lock:
            return self._collections.pop(code, None) is not None

    def get_collection_schema(self, code: str) -> CollectionSchema | None:
        with self._lock:
            return self._collections.get(code)

    def get_property(self, collection: str, code: str) -> PropertySchema | None:
        with self._lock:
            schema = self._collections.get(collection)
            return schema.get_property(code) if schema else None

    def list_collections(self) -> list[str]:
        with self._lock:
            return list(self._collections.keys())

    def all_collections(self) -> list[CollectionSchema]:
        with self._lock:
            return list(self._collections.values())

    def atomic_replace(self, schemas: list[CollectionSchema]) -> None:
        """
        Atomically replace all collections with a new set.

        Build the new schema set, then swap.
        """
        new_collections = {s.code: s for s in schemas}
        with self._lock:
            self._collections = new_collections
        logger.info(f"Schema registry replaced with {len(new_collections)} collections")

    def __contains__(self, code: object) -> bool:
        with self._lock:
            return code in self._collections

    def __len__(self) -> int:
        with self._lock:
            return len(self._collections)
