"""Data interface - capability protocols and query types."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

from ..filters import Filter


class DataProviderError(Exception):
    """Base exception for data provider failures."""
    pass


class DataTimeoutError(DataProviderError):
    """Raised when the backing store does not answer in time."""
    pass


class DataNotFoundError(DataProviderError):
    """Raised when a queried collection does not exist in the store."""
    pass


@dataclass(frozen=True, slots=True)
class SortSpec:
    field: str
    descending: bool = False


@dataclass(frozen=True, slots=True)
class Pagination:
    offset: int = 0
    limit: int | None = None  # None = no limit


@dataclass(frozen=True, slots=True)
class QueryOptions:
    """Filter, sort and pagination for a collection query."""
    filter: Filter | None = None
    sort: tuple[SortSpec, ...] = ()
    pagination: Pagination = field(default_factory=Pagination)


@dataclass(frozen=True, slots=True)
class QueryResult:
    """
    Records returned from a query.

    `total` is the number of matching records before pagination.
    """
    records: list[dict[str, Any]]
    total: int


@runtime_checkable
class DataProvider(Protocol):
    """
    Read access to collection records.

    Never written to by the resolver.
    """

    async def query(self, collection: str, options: QueryOptions) -> QueryResult:
        ...

    async def get_by_id(self, collection: str, record_id: str) -> dict[str, Any] | None:
        ...


@runtime_checkable
class FilterCapable(Protocol):
    """Providers that can evaluate (some) filters server-side."""

    def supports_filter(self, flt: Filter) -> bool:
        ...
