"""Filter and ordering primitives for gateway table queries.

Filters render to the gateway's query-string dialect, e.g.
``status=eq.pending`` or ``id=in.("a","b")``.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Any, Iterable


def _literal(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, Enum):
        return str(value.value)
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return str(value)


def _quote(value: Any) -> str:
    text = _literal(value)
    escaped = text.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


@dataclass(frozen=True)
class Filter:
    column: str
    operator: str
    value: Any

    def render(self) -> tuple[str, str]:
        if self.operator == "or":
            parts = ",".join(f"{f.column}.{f.render()[1]}" for f in self.value)
            return "or", f"({parts})"
        if self.operator == "in":
            values = ",".join(_quote(v) for v in self.value)
            return self.column, f"in.({values})"
        return self.column, f"{self.operator}.{_literal(self.value)}"


@dataclass(frozen=True)
class Order:
    column: str
    ascending: bool = True

    def render(self) -> str:
        return f"{self.column}.{'asc' if self.ascending else 'desc'}"


def eq(column: str, value: Any) -> Filter:
    return Filter(column, "eq", value)


def neq(column: str, value: Any) -> Filter:
    return Filter(column, "neq", value)


def gt(column: str, value: Any) -> Filter:
    return Filter(column, "gt", value)


def gte(column: str, value: Any) -> Filter:
    return Filter(column, "gte", value)


def lt(column: str, value: Any) -> Filter:
    return Filter(column, "lt", value)


def lte(column: str, value: Any) -> Filter:
    return Filter(column, "lte", value)


def ilike(column: str, pattern: str) -> Filter:
    return Filter(column, "ilike", pattern)


def is_(column: str, value: Any) -> Filter:
    return Filter(column, "is", value)


def is_not(column: str, value: Any) -> Filter:
    return Filter(column, "not.is", value)


def in_(column: str, values: Iterable[Any]) -> Filter:
    """Batched membership filter.

    Raises:
        ValueError: If ``values`` is empty. An empty set must short-circuit
            in the caller instead of reaching the gateway.
    """
    materialized = tuple(values)
    if not materialized:
        raise ValueError(f"in_() filter on '{column}' needs at least one value")
    return Filter(column, "in", materialized)


def any_of(*filters: Filter) -> Filter:
    """Disjunction of simple filters, e.g. a search across two columns."""
    if not filters:
        raise ValueError("any_of() needs at least one filter")
    return Filter("or", "or", filters)
