"""Relationship value caching."""

from .memory import CacheEntry, RecordRef, RelationshipCache

__all__ = ["CacheEntry", "RecordRef", "RelationshipCache"]
