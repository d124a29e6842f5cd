"""Schema version, naming convention and optional-table detection.

Detection never blocks read-only use of the dashboard: when the server answers
but the schema cannot be classified, the detector falls back to documented
defaults and logs a warning. Losing the connection is not a schema question,
so those errors propagate to the caller.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Protocol, Sequence

import asyncpg

from .columns import ColumnCase, ColumnMapper

LOG = logging.getLogger(__name__)

# Server answers meaning "this schema is shaped differently", not "unreachable".
SCHEMA_SHAPE_ERRORS: tuple[type[Exception], ...] = (
    asyncpg.UndefinedTableError,
    asyncpg.UndefinedColumnError,
    asyncpg.InvalidSchemaNameError,
    asyncpg.InsufficientPrivilegeError,
)
# SQLSTATE classes 08, 53 and 57: the server is gone, full or shutting down.
CONNECTIVITY_ERRORS: tuple[type[Exception], ...] = (
    asyncpg.PostgresConnectionError,
    asyncpg.InsufficientResourcesError,
    asyncpg.OperatorInterventionError,
)

JOB_TABLE = "job"
QUEUE_TABLE = "queue"
SCHEDULE_TABLE = "schedule"
VERSION_TABLE = "version"

# Ordered newest first: the first entry whose minimum version is met wins.
VERSION_CONVENTIONS: tuple[tuple[int, ColumnCase], ...] = (
    (23, ColumnCase.SNAKE),
    (0, ColumnCase.CAMEL),
)
OLDEST_COLUMN_CASE = ColumnCase.CAMEL

# Physical spelling of the creation timestamp in each convention.
PROBE_COLUMNS: dict[str, ColumnCase] = {
    "created_on": ColumnCase.SNAKE,
    "createdOn": ColumnCase.CAMEL,
}

_COLUMN_PROBE_QUERY = """
    SELECT column_name
    FROM information_schema.columns
    WHERE table_schema = $1
      AND table_name = $2
      AND column_name = ANY($3::text[])
"""

_TABLE_EXISTS_QUERY = """
    SELECT EXISTS (
        SELECT 1
        FROM information_schema.tables
        WHERE table_schema = $1 AND table_name = $2
    )
"""


class Executor(Protocol):
    """Anything that runs parameterized SQL (an asyncpg pool or connection)."""

    async def fetch(self, query: str, *args: Any) -> Sequence[Any]: ...

    async def fetchval(self, query: str, *args: Any) -> Any: ...


@dataclass(frozen=True, slots=True)
class SchemaCapabilities:
    """Optional pg-boss tables present in a schema."""

    has_queue_table: bool
    has_schedule_table: bool


OPTIMISTIC_CAPABILITIES = SchemaCapabilities(has_queue_table=True, has_schedule_table=True)


@dataclass(frozen=True, slots=True)
class SchemaInfo:
    """Detection result shared by every caller of one pool group."""

    mapper: ColumnMapper
    capabilities: SchemaCapabilities
    version: int | None = None

    @property
    def column_case(self) -> ColumnCase:
        return self.mapper.column_case


def column_case_for_version(version: int) -> ColumnCase:
    """Map a recorded schema version onto its naming convention."""

    for minimum, column_case in VERSION_CONVENTIONS:
        if version >= minimum:
            return column_case
    return OLDEST_COLUMN_CASE


async def detect_schema(executor: Executor, schema: str) -> SchemaInfo:
    """Run version and capability detection concurrently."""

    (column_case, version), capabilities = await asyncio.gather(
        detect_column_case(executor, schema),
        detect_capabilities(executor, schema),
    )
    LOG.info(
        "Detected pg-boss schema layout",
        extra={
            "schema": schema,
            "version": version,
            "column_case": column_case.value,
            "has_queue_table": capabilities.has_queue_table,
            "has_schedule_table": capabilities.has_schedule_table,
        },
    )
    return SchemaInfo(mapper=ColumnMapper(column_case), capabilities=capabilities, version=version)


async def detect_column_case(executor: Executor, schema: str) -> tuple[ColumnCase, int | None]:
    """Return the naming convention and, when recorded, the schema version."""

    version = await read_schema_version(executor, schema)
    if version is not None:
        return column_case_for_version(version), version
    column_case = await inspect_column_case(executor, schema)
    if column_case is None:
        LOG.warning(
            "Could not determine column naming for schema '%s'; assuming %s",
            schema,
            OLDEST_COLUMN_CASE.value,
        )
        return OLDEST_COLUMN_CASE, None
    return column_case, None


async def read_schema_version(executor: Executor, schema: str) -> int | None:
    """Highest version recorded in the schema's version table, if any."""

    try:
        value = await executor.fetchval(f'SELECT max(version) FROM "{schema}".{VERSION_TABLE}')
    except SCHEMA_SHAPE_ERRORS as exc:
        LOG.debug("Version table lookup failed for schema '%s': %s", schema, exc)
        return None
    if value is None:
        return None
    return int(value)


async def inspect_column_case(executor: Executor, schema: str) -> ColumnCase | None:
    """Infer the naming convention from the job table's physical columns."""

    try:
        rows = await executor.fetch(_COLUMN_PROBE_QUERY, schema, JOB_TABLE, list(PROBE_COLUMNS))
    except SCHEMA_SHAPE_ERRORS as exc:
        LOG.debug("Column inspection failed for schema '%s': %s", schema, exc)
        return None
    found = {str(row["column_name"]) for row in rows}
    for column, column_case in PROBE_COLUMNS.items():
        if column in found:
            return column_case
    return None


async def detect_capabilities(executor: Executor, schema: str) -> SchemaCapabilities:
    """Check for the optional queue and schedule tables.

    A server-side error other than a lost connection makes both tables count as
    present. Connectivity failures propagate so nothing gets cached.
    """

    try:
        has_queue, has_schedule = await asyncio.gather(
            table_exists(executor, schema, QUEUE_TABLE),
            table_exists(executor, schema, SCHEDULE_TABLE),
        )
    except CONNECTIVITY_ERRORS:
        raise
    except asyncpg.PostgresError:
        LOG.warning(
            "Capability detection failed for schema '%s'; assuming optional tables exist",
            schema,
            exc_info=True,
        )
        return OPTIMISTIC_CAPABILITIES
    return SchemaCapabilities(has_queue_table=has_queue, has_schedule_table=has_schedule)


async def table_exists(executor: Executor, schema: str, table: str) -> bool:
    """Whether ``schema.table`` exists; a refused lookup counts as present."""

    try:
        return bool(await executor.fetchval(_TABLE_EXISTS_QUERY, schema, table))
    except SCHEMA_SHAPE_ERRORS as exc:
        LOG.warning("Could not check for table %s.%s (%s); assuming it exists", schema, table, exc)
        return True


__all__ = [
    "CONNECTIVITY_ERRORS",
    "Executor",
    "OLDEST_COLUMN_CASE",
    "OPTIMISTIC_CAPABILITIES",
    "PROBE_COLUMNS",
    "SCHEMA_SHAPE_ERRORS",
    "SchemaCapabilities",
    "SchemaInfo",
    "VERSION_CONVENTIONS",
    "column_case_for_version",
    "detect_capabilities",
    "detect_column_case",
    "detect_schema",
    "inspect_column_case",
    "read_schema_version",
    "table_exists",
]
