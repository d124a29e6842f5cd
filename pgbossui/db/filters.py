"""Small helpers for assembling parameterized WHERE clauses."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Sequence

from .validation import validate_date


class QueryParams:
    """Collects bind values and hands out ``$n`` placeholders in order."""

    def __init__(self, initial: Sequence[Any] = ()) -> None:
        self._values: list[Any] = list(initial)

    def add(self, value: Any) -> str:
        self._values.append(value)
        return f"${len(self._values)}"

    @property
    def values(self) -> tuple[Any, ...]:
        return tuple(self._values)

    def __len__(self) -> int:
        return len(self._values)


def date_conditions(
    column: str,
    params: QueryParams,
    *,
    start: datetime | str | None = None,
    end: datetime | str | None = None,
) -> list[str]:
    """Inclusive range conditions on ``column`` (already quoted)."""

    start = validate_date(start)
    end = validate_date(end)
    conditions: list[str] = []
    if start is not None:
        conditions.append(f"{column} >= {params.add(start)}")
    if end is not None:
        conditions.append(f"{column} <= {params.add(end)}")
    return conditions


def where_clause(conditions: Sequence[str]) -> str:
    return f"WHERE {' AND '.join(conditions)}" if conditions else ""


def and_clause(conditions: Sequence[str]) -> str:
    return f"AND {' AND '.join(conditions)}" if conditions else ""


__all__ = ["QueryParams", "and_clause", "date_conditions", "where_clause"]
