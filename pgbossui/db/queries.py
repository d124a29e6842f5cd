"""Version-aware SQL against a pg-boss schema.

Every function takes the pool, the :class:`SchemaInfo` detected for it and a
validated schema name. Physical column names always come from the mapper.
"""

from __future__ import annotations

import asyncio
from datetime import datetime
from typing import Any, Mapping, Sequence

import asyncpg

from .columns import ColumnMapper
from .detection import SchemaInfo
from .filters import QueryParams, and_clause, date_conditions, where_clause
from .types import (
    DashboardStats,
    Job,
    JobPage,
    PercentileMetrics,
    Queue,
    QueueStats,
    QueueWithStats,
    Schedule,
    SpeedMetrics,
    SpeedMetricsPoint,
    ThroughputPoint,
)
from .validation import (
    JobState,
    ValidationError,
    validate_date_field,
    validate_granularity,
    validate_job_id,
    validate_job_state,
    validate_queue_name,
    validate_schema,
    validate_sort_by,
    validate_sort_order,
)


class JobActionError(RuntimeError):
    """Raised when a lifecycle action cannot be applied to a job."""


COUNTED_STATES: tuple[str, ...] = ("created", "retry", "active", "completed", "cancelled", "failed")
RETRYABLE_STATES: tuple[str, ...] = ("failed", "cancelled")
CANCELLABLE_STATES: tuple[str, ...] = ("created", "retry")

MAX_PAGE_SIZE = 1000


def _state_counts(state_column: str = "state", counted: str = "*") -> str:
    return ",\n".join(
        f"COUNT({counted}) FILTER (WHERE {state_column}::text = '{state}') AS {state}"
        for state in COUNTED_STATES
    )


def _in_list(values: Sequence[str]) -> str:
    return ", ".join(f"'{value}'" for value in values)


def _stats_from_row(row: Mapping[str, Any]) -> QueueStats:
    return QueueStats(name=row["name"], **{state: int(row[state] or 0) for state in COUNTED_STATES})


def _int(value: Any) -> int:
    return int(value) if value is not None else 0


def _float(value: Any) -> float:
    return float(value) if value is not None else 0.0


def _job_from_row(row: Mapping[str, Any], mapper: ColumnMapper) -> Job:
    return Job(
        id=str(row["id"]),
        name=row["name"],
        priority=_int(row.get("priority")),
        data=row.get("data"),
        state=JobState(str(row["state"])),
        retry_limit=_int(mapper.read(row, "retry_limit")),
        retry_count=_int(mapper.read(row, "retry_count")),
        retry_delay=_int(mapper.read(row, "retry_delay")),
        retry_backoff=bool(mapper.read(row, "retry_backoff")),
        start_after=mapper.read(row, "start_after"),
        started_on=mapper.read(row, "started_on"),
        singleton_key=mapper.read(row, "singleton_key"),
        singleton_on=mapper.read(row, "singleton_on"),
        expire_in=mapper.read(row, "expire_in"),
        created_on=mapper.read(row, "created_on"),
        completed_on=mapper.read(row, "completed_on"),
        keep_until=mapper.read(row, "keep_until"),
        output=row.get("output"),
        dead_letter=mapper.read(row, "dead_letter"),
        policy=row.get("policy"),
    )


async def get_queue_stats(
    pool: asyncpg.Pool,
    info: SchemaInfo,
    schema: str,
    *,
    date_field: str = "created_on",
    start: datetime | None = None,
    end: datetime | None = None,
) -> tuple[QueueStats, ...]:
    """Per-queue job counts by state, optionally restricted to a date range."""

    schema = validate_schema(schema)
    column = info.mapper.quoted(validate_date_field(date_field) or "created_on")
    params = QueryParams()
    conditions = date_conditions(column, params, start=start, end=end)
    rows = await pool.fetch(
        f"""
        SELECT name,
        {_state_counts()}
        FROM "{schema}".job
        {where_clause(conditions)}
        GROUP BY name
        ORDER BY name
        """,
        *params.values,
    )
    return tuple(_stats_from_row(row) for row in rows)


async def get_dashboard_stats(
    pool: asyncpg.Pool,
    info: SchemaInfo,
    schema: str,
    *,
    start: datetime | None = None,
    end: datetime | None = None,
) -> DashboardStats:
    """Headline counts; the date range only applies to completed/failed jobs."""

    schema = validate_schema(schema)
    params = QueryParams()
    in_range = and_clause(date_conditions(info.mapper.quoted("completed_on"), params, start=start, end=end))
    row, queues = await asyncio.gather(
        pool.fetchrow(
            f"""
            SELECT
              COUNT(*) AS total,
              COUNT(*) FILTER (WHERE state::text = 'created') AS created,
              COUNT(*) FILTER (WHERE state::text = 'active') AS active,
              COUNT(*) FILTER (WHERE state::text = 'completed' {in_range}) AS completed_range,
              COUNT(*) FILTER (WHERE state::text = 'failed' {in_range}) AS failed_range
            FROM "{schema}".job
            """,
            *params.values,
        ),
        # Queue counts describe live health and ignore the date range.
        get_queue_stats(pool, info, schema),
    )
    row = row or {}
    return DashboardStats(
        total_jobs=_int(row.get("total")),
        created_jobs=_int(row.get("created")),
        active_jobs=_int(row.get("active")),
        completed_in_range=_int(row.get("completed_range")),
        failed_in_range=_int(row.get("failed_range")),
        queues=queues,
    )


async def get_throughput(
    pool: asyncpg.Pool,
    info: SchemaInfo,
    schema: str,
    *,
    start: datetime | None = None,
    end: datetime | None = None,
    limit: int = 1440,
) -> tuple[ThroughputPoint, ...]:
    """Completed/failed counts per minute, oldest first."""

    schema = validate_schema(schema)
    completed_on = info.mapper.quoted("completed_on")
    params = QueryParams()
    conditions = [f"state::text IN ({_in_list(('completed', 'failed'))})"]
    conditions.extend(date_conditions(completed_on, params, start=start, end=end))
    rows = await pool.fetch(
        f"""
        SELECT
          date_trunc('minute', {completed_on}) AS time,
          COUNT(*) FILTER (WHERE state::text = 'completed') AS completed,
          COUNT(*) FILTER (WHERE state::text = 'failed') AS failed
        FROM "{schema}".job
        {where_clause(conditions)}
        GROUP BY 1
        ORDER BY 1 DESC
        LIMIT {params.add(limit)}
        """,
        *params.values,
    )
    return tuple(
        ThroughputPoint(time=row["time"], completed=_int(row["completed"]), failed=_int(row["failed"]))
        for row in reversed(rows)
    )


async def get_queues(pool: asyncpg.Pool, info: SchemaInfo, schema: str) -> tuple[Queue, ...]:
    """Queue names from the queue table, or from the job table when it is absent."""

    schema = validate_schema(schema)
    if info.capabilities.has_queue_table:
        # Only the name column exists in every version of the queue table.
        rows = await pool.fetch(f'SELECT name FROM "{schema}".queue ORDER BY name')
    else:
        rows = await pool.fetch(f'SELECT DISTINCT name FROM "{schema}".job ORDER BY name')
    return tuple(Queue(name=row["name"]) for row in rows)


async def get_queues_with_stats(pool: asyncpg.Pool, info: SchemaInfo, schema: str) -> tuple[QueueWithStats, ...]:
    """Every queue with its job counts, including queues only seen in the job table."""

    schema = validate_schema(schema)
    if not info.capabilities.has_queue_table:
        stats = await get_queue_stats(pool, info, schema)
        return tuple(QueueWithStats(queue=Queue(name=entry.name), stats=entry) for entry in stats)
    registered, orphaned = await asyncio.gather(
        pool.fetch(
            f"""
            SELECT q.name,
            {_state_counts("j.state", "j.id")}
            FROM "{schema}".queue q
            LEFT JOIN "{schema}".job j ON q.name = j.name
            GROUP BY q.name
            ORDER BY q.name
            """
        ),
        pool.fetch(
            f"""
            SELECT j.name,
            {_state_counts("j.state")}
            FROM "{schema}".job j
            LEFT JOIN "{schema}".queue q ON j.name = q.name
            WHERE q.name IS NULL
            GROUP BY j.name
            ORDER BY j.name
            """
        ),
    )
    result = [QueueWithStats(queue=Queue(name=row["name"]), stats=_stats_from_row(row)) for row in registered]
    result.extend(
        QueueWithStats(queue=Queue(name=row["name"]), stats=_stats_from_row(row), orphaned=True)
        for row in orphaned
    )
    return tuple(result)


async def get_jobs(
    pool: asyncpg.Pool,
    info: SchemaInfo,
    schema: str,
    *,
    queue_name: str | None = None,
    state: str | JobState | None = None,
    search: str | None = None,
    date_field: str = "created_on",
    start: datetime | None = None,
    end: datetime | None = None,
    sort_by: str = "created_on",
    sort_order: str = "desc",
    limit: int = 50,
    offset: int = 0,
) -> JobPage:
    """Filtered, sorted page of jobs plus the total matching count."""

    schema = validate_schema(schema)
    mapper = info.mapper
    if not 0 < limit <= MAX_PAGE_SIZE:
        raise ValidationError(f"limit must be between 1 and {MAX_PAGE_SIZE}")
    if offset < 0:
        raise ValidationError("offset must not be negative")
    params = QueryParams()
    conditions: list[str] = []
    if queue_name:
        conditions.append(f"name = {params.add(validate_queue_name(queue_name))}")
    validated_state = validate_job_state(state)
    if validated_state is not None:
        conditions.append(f"state::text = {params.add(validated_state.value)}")
    if search:
        conditions.append(f"id::text ILIKE {params.add(f'%{search}%')}")
    date_column = mapper.quoted(validate_date_field(date_field) or "created_on")
    conditions.extend(date_conditions(date_column, params, start=start, end=end))
    filters = where_clause(conditions)

    sort_field = validate_sort_by(sort_by) or "created_on"
    order_column = mapper.quoted(sort_field) if sort_field in ("created_on", "completed_on") else sort_field
    direction = (validate_sort_order(sort_order) or "desc").upper()

    page_params = QueryParams(params.values)
    rows, total = await asyncio.gather(
        pool.fetch(
            f"""
            SELECT *
            FROM "{schema}".job
            {filters}
            ORDER BY {order_column} {direction}
            LIMIT {page_params.add(limit)}
            OFFSET {page_params.add(offset)}
            """,
            *page_params.values,
        ),
        pool.fetchval(f'SELECT COUNT(*) FROM "{schema}".job {filters}', *params.values),
    )
    return JobPage(jobs=tuple(_job_from_row(row, mapper) for row in rows), total=_int(total))


async def get_job(pool: asyncpg.Pool, info: SchemaInfo, schema: str, job_id: str) -> Job | None:
    schema = validate_schema(schema)
    row = await pool.fetchrow(f'SELECT * FROM "{schema}".job WHERE id = $1', validate_job_id(job_id))
    if row is None:
        return None
    return _job_from_row(row, info.mapper)


def _reset_assignments(mapper: ColumnMapper) -> str:
    return ", ".join(
        (
            "state = 'created'",
            f"{mapper.quoted('retry_count')} = 0",
            f"{mapper.quoted('completed_on')} = NULL",
            f"{mapper.quoted('started_on')} = NULL",
            f"{mapper.quoted('start_after')} = now()",
            "output = NULL",
        )
    )


async def retry_job(pool: asyncpg.Pool, info: SchemaInfo, schema: str, job_id: str) -> str:
    """Requeue a failed or cancelled job; returns its id."""

    schema = validate_schema(schema)
    row = await pool.fetchrow(
        f"""
        UPDATE "{schema}".job
        SET {_reset_assignments(info.mapper)}
        WHERE id = $1
          AND state::text IN ({_in_list(RETRYABLE_STATES)})
        RETURNING id
        """,
        validate_job_id(job_id),
    )
    if row is None:
        raise JobActionError("Job not found or not in a retryable state")
    return str(row["id"])


async def retry_all_jobs(pool: asyncpg.Pool, info: SchemaInfo, schema: str, queue_name: str) -> int:
    """Requeue every failed or cancelled job in a queue; returns the count."""

    schema = validate_schema(schema)
    count = await pool.fetchval(
        f"""
        WITH updated AS (
            UPDATE "{schema}".job
            SET {_reset_assignments(info.mapper)}
            WHERE name = $1
              AND state::text IN ({_in_list(RETRYABLE_STATES)})
            RETURNING 1
        )
        SELECT COUNT(*) FROM updated
        """,
        validate_queue_name(queue_name),
    )
    return _int(count)


async def cancel_job(pool: asyncpg.Pool, info: SchemaInfo, schema: str, job_id: str) -> bool:
    """Cancel a job that has not started yet; ``False`` when nothing changed."""

    schema = validate_schema(schema)
    row = await pool.fetchrow(
        f"""
        UPDATE "{schema}".job
        SET state = 'cancelled', {info.mapper.quoted('completed_on')} = now()
        WHERE id = $1
          AND state::text IN ({_in_list(CANCELLABLE_STATES)})
        RETURNING id
        """,
        validate_job_id(job_id),
    )
    return row is not None


async def cancel_all_jobs(pool: asyncpg.Pool, info: SchemaInfo, schema: str, queue_name: str) -> int:
    schema = validate_schema(schema)
    count = await pool.fetchval(
        f"""
        WITH updated AS (
            UPDATE "{schema}".job
            SET state = 'cancelled', {info.mapper.quoted('completed_on')} = now()
            WHERE name = $1
              AND state::text IN ({_in_list(CANCELLABLE_STATES)})
            RETURNING 1
        )
        SELECT COUNT(*) FROM updated
        """,
        validate_queue_name(queue_name),
    )
    return _int(count)


async def purge_queue(
    pool: asyncpg.Pool,
    info: SchemaInfo,
    schema: str,
    queue_name: str,
    state: str | JobState | None = None,
) -> int:
    """Delete a queue's jobs, optionally only those in ``state``."""

    schema = validate_schema(schema)
    params = QueryParams()
    conditions = [f"name = {params.add(validate_queue_name(queue_name))}"]
    validated_state = validate_job_state(state)
    if validated_state is not None:
        conditions.append(f"state::text = {params.add(validated_state.value)}")
    count = await pool.fetchval(
        f"""
        WITH deleted AS (
            DELETE FROM "{schema}".job
            {where_clause(conditions)}
            RETURNING 1
        )
        SELECT COUNT(*) FROM deleted
        """,
        *params.values,
    )
    return _int(count)


async def get_schedules(pool: asyncpg.Pool, info: SchemaInfo, schema: str) -> tuple[Schedule, ...]:
    """Cron schedules; empty when the schema has no schedule table."""

    schema = validate_schema(schema)
    if not info.capabilities.has_schedule_table:
        return ()
    # The schedule table has used snake_case timestamps in every version.
    rows = await pool.fetch(
        f"""
        SELECT name, cron, timezone, data, options, created_on, updated_on
        FROM "{schema}".schedule
        ORDER BY name
        """
    )
    return tuple(
        Schedule(
            name=row["name"],
            cron=row["cron"],
            timezone=row["timezone"],
            data=row["data"],
            options=row["options"],
            created_on=row["created_on"],
            updated_on=row["updated_on"],
        )
        for row in rows
    )


def _duration_ms(later: str, earlier: str) -> str:
    return f"EXTRACT(EPOCH FROM ({later} - {earlier})) * 1000"


def _distribution(prefix: str, expression: str) -> str:
    return ",\n".join(
        (
            f"MIN({expression}) AS {prefix}_min",
            f"MAX({expression}) AS {prefix}_max",
            f"AVG({expression}) AS {prefix}_avg",
            f"PERCENTILE_CONT(0.50) WITHIN GROUP (ORDER BY {expression}) AS {prefix}_p50",
            f"PERCENTILE_CONT(0.95) WITHIN GROUP (ORDER BY {expression}) AS {prefix}_p95",
            f"PERCENTILE_CONT(0.99) WITHIN GROUP (ORDER BY {expression}) AS {prefix}_p99",
        )
    )


def _percentiles(row: Mapping[str, Any], prefix: str) -> PercentileMetrics:
    count = _int(row.get("sample_count"))
    if count == 0:
        return PercentileMetrics()
    return PercentileMetrics(
        min=_float(row.get(f"{prefix}_min")),
        max=_float(row.get(f"{prefix}_max")),
        avg=_float(row.get(f"{prefix}_avg")),
        p50=_float(row.get(f"{prefix}_p50")),
        p95=_float(row.get(f"{prefix}_p95")),
        p99=_float(row.get(f"{prefix}_p99")),
        count=count,
    )


def _completed_job_conditions(
    mapper: ColumnMapper,
    params: QueryParams,
    queue_name: str | None,
    start: datetime | None,
    end: datetime | None,
) -> list[str]:
    started_on = mapper.quoted("started_on")
    completed_on = mapper.quoted("completed_on")
    conditions = [
        "state::text = 'completed'",
        f"{started_on} IS NOT NULL",
        f"{completed_on} IS NOT NULL",
    ]
    if queue_name:
        conditions.append(f"name = {params.add(validate_queue_name(queue_name))}")
    conditions.extend(date_conditions(completed_on, params, start=start, end=end))
    return conditions


async def get_speed_metrics(
    pool: asyncpg.Pool,
    info: SchemaInfo,
    schema: str,
    *,
    queue_name: str | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
) -> SpeedMetrics:
    """Processing, wait and end-to-end latency distributions of completed jobs."""

    schema = validate_schema(schema)
    mapper = info.mapper
    created_on = mapper.quoted("created_on")
    started_on = mapper.quoted("started_on")
    completed_on = mapper.quoted("completed_on")
    params = QueryParams()
    conditions = _completed_job_conditions(mapper, params, queue_name, start, end)
    row = await pool.fetchrow(
        f"""
        SELECT
        {_distribution("processing", _duration_ms(completed_on, started_on))},
        {_distribution("wait", _duration_ms(started_on, created_on))},
        {_distribution("e2e", _duration_ms(completed_on, created_on))},
        COUNT(*) AS sample_count
        FROM "{schema}".job
        {where_clause(conditions)}
        """,
        *params.values,
    )
    row = row or {}
    return SpeedMetrics(
        processing_time=_percentiles(row, "processing"),
        wait_time=_percentiles(row, "wait"),
        end_to_end_latency=_percentiles(row, "e2e"),
    )


async def get_speed_metrics_over_time(
    pool: asyncpg.Pool,
    info: SchemaInfo,
    schema: str,
    *,
    queue_name: str | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    granularity: str = "minute",
    limit: int = 500,
) -> tuple[SpeedMetricsPoint, ...]:
    """p50/p95 processing and wait times per time bucket, oldest first."""

    schema = validate_schema(schema)
    mapper = info.mapper
    created_on = mapper.quoted("created_on")
    started_on = mapper.quoted("started_on")
    completed_on = mapper.quoted("completed_on")
    params = QueryParams()
    bucket = params.add(validate_granularity(granularity))
    conditions = _completed_job_conditions(mapper, params, queue_name, start, end)
    processing = _duration_ms(completed_on, started_on)
    wait = _duration_ms(started_on, created_on)
    rows = await pool.fetch(
        f"""
        SELECT
          date_trunc({bucket}, {completed_on}) AS time,
          PERCENTILE_CONT(0.50) WITHIN GROUP (ORDER BY {processing}) AS processing_p50,
          PERCENTILE_CONT(0.95) WITHIN GROUP (ORDER BY {processing}) AS processing_p95,
          PERCENTILE_CONT(0.50) WITHIN GROUP (ORDER BY {wait}) AS wait_p50,
          PERCENTILE_CONT(0.95) WITHIN GROUP (ORDER BY {wait}) AS wait_p95,
          COUNT(*) AS count
        FROM "{schema}".job
        {where_clause(conditions)}
        GROUP BY 1
        ORDER BY 1 DESC
        LIMIT {params.add(limit)}
        """,
        *params.values,
    )
    return tuple(
        SpeedMetricsPoint(
            time=row["time"],
            processing_p50=_float(row["processing_p50"]),
            processing_p95=_float(row["processing_p95"]),
            wait_p50=_float(row["wait_p50"]),
            wait_p95=_float(row["wait_p95"]),
            count=_int(row["count"]),
        )
        for row in reversed(rows)
    )


__all__ = [
    "JobActionError",
    "cancel_all_jobs",
    "cancel_job",
    "get_dashboard_stats",
    "get_job",
    "get_jobs",
    "get_queue_stats",
    "get_queues",
    "get_queues_with_stats",
    "get_schedules",
    "get_speed_metrics",
    "get_speed_metrics_over_time",
    "get_throughput",
    "purge_queue",
    "retry_all_jobs",
    "retry_job",
]
