"""Logical-to-physical column naming for the pg-boss job table."""

from __future__ import annotations

from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping


class ColumnCase(str, Enum):
    """Physical naming convention used by a pg-boss schema version."""

    SNAKE = "snake_case"
    CAMEL = "camelCase"


class UnknownColumnError(KeyError):
    """Raised when code asks for a logical column outside the fixed set."""


TIMESTAMP_COLUMNS: tuple[str, ...] = (
    "created_on",
    "started_on",
    "completed_on",
    "updated_on",
    "singleton_on",
)
RETRY_COLUMNS: tuple[str, ...] = ("retry_limit", "retry_count", "retry_delay", "retry_backoff")
SCHEDULING_COLUMNS: tuple[str, ...] = ("start_after", "expire_in", "keep_until")
OTHER_COLUMNS: tuple[str, ...] = ("singleton_key", "dead_letter")

LOGICAL_COLUMNS: tuple[str, ...] = (
    TIMESTAMP_COLUMNS + RETRY_COLUMNS + SCHEDULING_COLUMNS + OTHER_COLUMNS
)


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.capitalize() for part in rest)


COLUMN_MAPS: Mapping[ColumnCase, Mapping[str, str]] = MappingProxyType(
    {
        ColumnCase.SNAKE: MappingProxyType({name: name for name in LOGICAL_COLUMNS}),
        ColumnCase.CAMEL: MappingProxyType({name: _camel(name) for name in LOGICAL_COLUMNS}),
    }
)


class ColumnMapper:
    """Translates logical column names for one naming convention.

    Callers build SQL with :meth:`quoted` and read result rows with
    :meth:`read`, so physical names never leak into query code.
    """

    __slots__ = ("_case", "_columns")

    def __init__(self, column_case: ColumnCase) -> None:
        self._case = ColumnCase(column_case)
        self._columns = COLUMN_MAPS[self._case]

    @property
    def column_case(self) -> ColumnCase:
        return self._case

    def physical_name(self, logical: str) -> str:
        """Return the physical column name for ``logical``."""

        try:
            return self._columns[logical]
        except KeyError:
            raise UnknownColumnError(logical) from None

    def quoted(self, logical: str) -> str:
        """Return the physical column as a quoted SQL identifier."""

        return f'"{self.physical_name(logical)}"'

    def read(self, row: Mapping[str, Any], logical: str) -> Any:
        """Fetch ``logical`` from a raw result row; ``None`` when absent."""

        return row.get(self.physical_name(logical))

    def __repr__(self) -> str:
        return f"ColumnMapper({self._case.value!r})"


__all__ = [
    "COLUMN_MAPS",
    "ColumnCase",
    "ColumnMapper",
    "LOGICAL_COLUMNS",
    "RETRY_COLUMNS",
    "SCHEDULING_COLUMNS",
    "TIMESTAMP_COLUMNS",
    "UnknownColumnError",
]
