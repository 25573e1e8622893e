# ============================================================
# Row mapping helpers shared by domain entities
# ============================================================
from __future__ import annotations

from dataclasses import fields
from enum import Enum
from typing import Any, Iterable, TypeVar

T = TypeVar("T")
E = TypeVar("E", bound=Enum)


def from_row(cls: type[T], row: dict[str, Any]) -> T:
    """Build a dataclass entity from a gateway row, ignoring unknown columns."""
    names = {f.name for f in fields(cls)}
    return cls(**{key: value for key, value in row.items() if key in names})


def from_rows(cls: type[T], rows: Iterable[dict[str, Any]] | None) -> list[T]:
    return [from_row(cls, row) for row in rows or []]


def coerce_enum(instance: Any, name: str, enum_cls: type[E]) -> None:
    """Replace a raw value on a (possibly frozen) dataclass with its enum member."""
    value = getattr(instance, name)
    if value is not None and not isinstance(value, enum_cls):
        object.__setattr__(instance, name, enum_cls(value))


def enum_value(value: Any) -> Any:
    return value.value if isinstance(value, Enum) else value


def drop_none(values: dict[str, Any]) -> dict[str, Any]:
    """Keep only the keys that carry a value (partial update payloads)."""
    return {key: enum_value(value) for key, value in values.items() if value is not None}
