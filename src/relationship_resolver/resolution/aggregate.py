"""Rollup aggregate functions."""

from __future__ import annotations

from typing import Any, Iterable

from ..schema.types import AggregateFunction


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _present(value: Any) -> bool:
    return value is not None and value != "" and value != []


def _extreme(values: list[Any], pick) -> Any:
    candidates = [v for v in values if v is not None]
    if not candidates:
        return None
    numbers = [v for v in candidates if _is_number(v)]
    if numbers:
        return pick(numbers)
    try:
        return pick(candidates)
    except TypeError:
        return pick(candidates, key=str)


def aggregate(
    values: Iterable[Any],
    function: AggregateFunction,
    counted_field: str | None = None,
) -> Any:
    """
    Aggregate the source-property values of the matching child rows.

    `values` holds one entry per matching row, in row order (None where the
    row has no value). `counted_field` is the source property name; COUNT
    without one counts rows instead of non-null values.

    Empty input: COUNT/COUNTA/COUNTALL give 0, CONCAT variants give "",
    everything else gives None.
    """
    values = list(values)

    if function == AggregateFunction.COUNTALL:
        return len(values)

    if function == AggregateFunction.COUNT:
        if counted_field is None:
            return len(values)
        return sum(1 for v in values if v is not None)

    if function == AggregateFunction.COUNTA:
        return sum(1 for v in values if _present(v))

    if function in (AggregateFunction.SUM, AggregateFunction.AVG):
        numbers = [v for v in values if _is_number(v)]
        if not numbers:
            return None
        total = sum(numbers)
        if function == AggregateFunction.SUM:
            return total
        return total / len(numbers)

    if function == AggregateFunction.MIN:
        return _extreme(values, min)

    if function == AggregateFunction.MAX:
        return _extreme(values, max)

    if function == AggregateFunction.FIRST:
        return next((v for v in values if v is not None), None)

    if function == AggregateFunction.LAST:
        return next((v for v in reversed(values) if v is not None), None)

    if function in (AggregateFunction.CONCAT, AggregateFunction.CONCAT_UNIQUE):
        parts = [str(v) for v in values if _present(v)]
        if function == AggregateFunction.CONCAT_UNIQUE:
            parts = list(dict.fromkeys(parts))
        return ", ".join(parts)

    raise ValueError(f"Unsupported aggregate function: {function}")
