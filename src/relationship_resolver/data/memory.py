"""In-memory data provider (for testing and embedded use)."""

from __future__ import annotations

import asyncio
import copy
import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Any

from ..filters import Filter, evaluate_filter
from .base import DataNotFoundError, QueryOptions, QueryResult, SortSpec


logger = logging.getLogger(__name__)


def _sort_key(value: Any) -> tuple:
    # None sorts first; mixed types fall back to their string form
    if value is None:
        return (0, "", "")
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return (1, "", value)
    return (2, type(value).__name__, value if isinstance(value, str) else str(value))


@dataclass
class InMemoryDataProvider:
    """
    Dict-backed data provider.

    Config:
        id_field: Record identifier field (default "id")
        latency_seconds: Simulated round-trip delay for every call
        strict_collections: Raise DataNotFoundError for unknown collections

    `calls` counts operations as ("get_by_id", collection, id) and
    ("query", collection) keys so tests can assert on fetch behaviour.
    """
    id_field: str = "id"
    latency_seconds: float = 0.0
    strict_collections: bool = False

    _records: dict[str, dict[str, dict[str, Any]]] = field(default_factory=dict, init=False)
    calls: Counter = field(default_factory=Counter, init=False)

    def upsert(self, collection: str, record: dict[str, Any]) -> None:
        """Insert or replace a record."""
        record_id = str(record[self.id_field])
        self._records.setdefault(collection, {})[record_id] = dict(record)

    def upsert_many(self, collection: str, records: list[dict[str, Any]]) -> None:
        for record in records:
            self.upsert(collection, record)

    def delete(self, collection: str, record_id: str) -> bool:
        return self._records.get(collection, {}).pop(record_id, None) is not None

    def supports_filter(self, flt: Filter) -> bool:
        return True

    async def get_by_id(self, collection: str, record_id: str) -> dict[str, Any] | None:
        self.calls[("get_by_id", collection, str(record_id))] += 1
        await self._delay()
        rows = self._collection(collection)
        record = rows.get(str(record_id))
        return copy.deepcopy(record) if record is not None else None

    async def query(self, collection: str, options: QueryOptions) -> QueryResult:
        self.calls[("query", collection)] += 1
        await self._delay()
        rows = [r for r in self._collection(collection).values() if evaluate_filter(options.filter, r)]

        # Stable multi-key sort: apply keys last to first
        for spec in reversed(options.sort):
            rows.sort(key=lambda r, s=spec: _sort_key(r.get(s.field)), reverse=spec.descending)

        total = len(rows)
        page = options.pagination
        end = None if page.limit is None else page.offset + page.limit
        return QueryResult(records=copy.deepcopy(rows[page.offset:end]), total=total)

    def fetch_count(self, collection: str, record_id: str | None = None) -> int:
        """Number of get_by_id calls (for one record) or queries against a collection."""
        if record_id is not None:
            return self.calls[("get_by_id", collection, str(record_id))]
        return self.calls[("query", collection)]

    def reset_calls(self) -> None:
        self.calls.clear()

    def _collection(self, collection: str) -> dict[str, dict[str, Any]]:
        rows = self._records.get(collection)
        if rows is None:
            if self.strict_collections:
                raise DataNotFoundError(f"Unknown collection: {collection}")
            return {}
        return rows

    async def _delay(self) -> None:
        if self.latency_seconds > 0:
            await asyncio.sleep(self.latency_seconds)
