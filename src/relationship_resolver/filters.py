"""Filter conditions shared by rollup definitions and the data interface.

A filter is either a single `FilterCondition` or a `FilterGroup` combining
conditions (and nested groups) with "and"/"or" logic. Providers that can
push filters to their backend do so; otherwise `evaluate_filter` applies
the same semantics in process.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterator, Union


class FilterOperator(str, Enum):
    """Supported comparison operators."""
    EQUALS = "equals"
    NOT_EQUALS = "notEquals"
    CONTAINS = "contains"
    NOT_CONTAINS = "notContains"
    STARTS_WITH = "startsWith"
    ENDS_WITH = "endsWith"
    GREATER_THAN = "greaterThan"
    GREATER_THAN_OR_EQUAL = "greaterThanOrEqual"
    LESS_THAN = "lessThan"
    LESS_THAN_OR_EQUAL = "lessThanOrEqual"
    BETWEEN = "between"
    IN_LIST = "inList"
    NOT_IN_LIST = "notInList"
    IS_NULL = "isNull"
    IS_NOT_NULL = "isNotNull"
    IS_EMPTY = "isEmpty"
    IS_NOT_EMPTY = "isNotEmpty"


class FilterLogic(str, Enum):
    AND = "and"
    OR = "or"


@dataclass(frozen=True, slots=True)
class FilterCondition:
    """A single field/operator/value test."""
    field: str
    operator: FilterOperator = FilterOperator.EQUALS
    value: Any = None
    value2: Any = None  # upper bound for BETWEEN


@dataclass(frozen=True, slots=True)
class FilterGroup:
    """Conditions combined with and/or logic. An empty group matches everything."""
    logic: FilterLogic = FilterLogic.AND
    conditions: tuple[Filter, ...] = ()


Filter = Union[FilterCondition, FilterGroup]


def and_filters(*filters: Filter | None) -> Filter | None:
    """Combine filters with AND, dropping missing ones."""
    present = tuple(f for f in filters if f is not None)
    if not present:
        return None
    if len(present) == 1:
        return present[0]
    return FilterGroup(logic=FilterLogic.AND, conditions=present)


def iter_conditions(flt: Filter | None) -> Iterator[FilterCondition]:
    """Yield every condition in definition order."""
    if flt is None:
        return
    if isinstance(flt, FilterCondition):
        yield flt
        return
    for child in flt.conditions:
        yield from iter_conditions(child)


def filter_fields(flt: Filter | None) -> list[str]:
    """Field names referenced by a filter, first occurrence order."""
    seen: dict[str, None] = {}
    for condition in iter_conditions(flt):
        seen.setdefault(condition.field, None)
    return list(seen)


def evaluate_filter(flt: Filter | None, record: dict[str, Any]) -> bool:
    """Evaluate a filter against a record."""
    if flt is None:
        return True
    if isinstance(flt, FilterCondition):
        return _evaluate_condition(flt, record)
    if flt.logic == FilterLogic.OR:
        return any(evaluate_filter(c, record) for c in flt.conditions) if flt.conditions else True
    return all(evaluate_filter(c, record) for c in flt.conditions)


def _evaluate_condition(condition: FilterCondition, record: dict[str, Any]) -> bool:
    op = condition.operator
    actual = record.get(condition.field)
    expected = condition.value

    if op == FilterOperator.IS_NULL:
        return actual is None
    if op == FilterOperator.IS_NOT_NULL:
        return actual is not None
    if op == FilterOperator.IS_EMPTY:
        return actual is None or actual == ""
    if op == FilterOperator.IS_NOT_EMPTY:
        return actual is not None and actual != ""
    if op == FilterOperator.EQUALS:
        return actual == expected
    if op == FilterOperator.NOT_EQUALS:
        return actual != expected
    if op == FilterOperator.IN_LIST:
        return actual in _as_list(expected)
    if op == FilterOperator.NOT_IN_LIST:
        return actual not in _as_list(expected)

    if actual is None:
        return False

    if op in (
        FilterOperator.CONTAINS,
        FilterOperator.NOT_CONTAINS,
        FilterOperator.STARTS_WITH,
        FilterOperator.ENDS_WITH,
    ):
        haystack = str(actual).lower()
        needle = "" if expected is None else str(expected).lower()
        if op == FilterOperator.CONTAINS:
            return needle in haystack
        if op == FilterOperator.NOT_CONTAINS:
            return needle not in haystack
        if op == FilterOperator.STARTS_WITH:
            return haystack.startswith(needle)
        return haystack.endswith(needle)

    try:
        if op == FilterOperator.GREATER_THAN:
            return actual > expected
        if op == FilterOperator.GREATER_THAN_OR_EQUAL:
            return actual >= expected
        if op == FilterOperator.LESS_THAN:
            return actual < expected
        if op == FilterOperator.LESS_THAN_OR_EQUAL:
            return actual <= expected
        if op == FilterOperator.BETWEEN:
            return expected <= actual <= condition.value2
    except TypeError:
        # None bounds or mismatched types never match
        return False

    raise ValueError(f"Unsupported filter operator: {op}")


def _as_list(value: Any) -> list[Any]:
    if value is None:
        return []
    if isinstance(value, (list, tuple, set, frozenset)):
        return list(value)
    return [value]


def parse_filter(data: dict[str, Any] | None) -> Filter | None:
    """
    Parse a filter from its dictionary form.

    Conditions: {"field": "status", "operator": "equals", "value": "open"}
    Groups:     {"logic": "or", "conditions": [...]}  (also {"and": [...]}/{"or": [...]})
    """
    if data is None:
        return None
    if "and" in data or "or" in data:
        logic = "and" if "and" in data else "or"
        return FilterGroup(
            logic=FilterLogic(logic),
            conditions=tuple(parse_filter(c) for c in data[logic]),
        )
    if "conditions" in data:
        return FilterGroup(
            logic=FilterLogic(str(data.get("logic", "and")).lower()),
            conditions=tuple(parse_filter(c) for c in data["conditions"]),
        )
    if "field" not in data:
        raise ValueError(f"Filter condition requires 'field': {data!r}")
    return FilterCondition(
        field=data["field"],
        operator=FilterOperator(data.get("operator", FilterOperator.EQUALS.value)),
        value=data.get("value"),
        value2=data.get("value2"),
    )
