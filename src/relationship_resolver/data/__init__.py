"""Data interface and providers."""

from .base import (
    DataNotFoundError,
    DataProvider,
    DataProviderError,
    DataTimeoutError,
    FilterCapable,
    Pagination,
    QueryOptions,
    QueryResult,
    SortSpec,
)
from .memory import InMemoryDataProvider

__all__ = [
    "DataNotFoundError",
    "DataProvider",
    "DataProviderError",
    "DataTimeoutError",
    "FilterCapable",
    "InMemoryDataProvider",
    "Pagination",
    "QueryOptions",
    "QueryResult",
    "SortSpec",
]
