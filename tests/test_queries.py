"""Tests for the version-aware query layer."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

import pytest

from conftest import FakePool
from pgbossui.db import queries
from pgbossui.db.columns import ColumnCase, ColumnMapper
from pgbossui.db.detection import SchemaCapabilities, SchemaInfo
from pgbossui.db.validation import JobState, ValidationError

JOB_ID = "6f1c1e7a-2b1f-4c55-9a44-0d8a4a7f0b11"
NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def _info(column_case: ColumnCase = ColumnCase.SNAKE, *, queue: bool = True, schedule: bool = True) -> SchemaInfo:
    return SchemaInfo(
        mapper=ColumnMapper(column_case),
        capabilities=SchemaCapabilities(has_queue_table=queue, has_schedule_table=schedule),
        version=24 if column_case is ColumnCase.SNAKE else 21,
    )


def _counts(name: str, **states: int) -> dict[str, Any]:
    row = {state: 0 for state in queries.COUNTED_STATES}
    row.update(states)
    row["name"] = name
    return row


def _camel_job_row(**overrides: Any) -> dict[str, Any]:
    row = {
        "id": JOB_ID,
        "name": "emails",
        "priority": 0,
        "data": {"to": "a@example.com"},
        "state": "failed",
        "retryLimit": 2,
        "retryCount": 2,
        "retryDelay": 0,
        "retryBackoff": False,
        "startAfter": NOW,
        "startedOn": NOW,
        "singletonKey": None,
        "singletonOn": None,
        "expireIn": timedelta(minutes=15),
        "createdOn": NOW - timedelta(minutes=1),
        "completedOn": NOW,
        "keepUntil": NOW + timedelta(days=14),
        "output": {"message": "smtp down"},
        "deadLetter": None,
    }
    row.update(overrides)
    return row


@pytest.mark.anyio
async def test_get_jobs_uses_camel_case_columns() -> None:
    def _respond(method: str, query: str, args: tuple[Any, ...]) -> Any:
        if method == "fetchval":
            return 7
        return [_camel_job_row()]

    pool = FakePool(_respond)

    page = await queries.get_jobs(
        pool,
        _info(ColumnCase.CAMEL),
        "pgboss",
        queue_name="emails",
        state="failed",
        date_field="completed_on",
        start=NOW - timedelta(hours=1),
        limit=10,
        offset=20,
    )

    assert page.total == 7
    job = page.jobs[0]
    assert job.state is JobState.FAILED
    assert job.retry_count == 2
    assert job.created_on == NOW - timedelta(minutes=1)
    assert job.keep_until == NOW + timedelta(days=14)
    select = pool.queries("fetch")[0]
    assert 'ORDER BY "createdOn" DESC' in select
    assert '"completedOn" >= $3' in select
    assert "LIMIT $4" in select and "OFFSET $5" in select
    _, _, args = next(call for call in pool.calls if call[0] == "fetch")
    assert args == ("emails", "failed", NOW - timedelta(hours=1), 10, 20)


@pytest.mark.anyio
async def test_get_jobs_count_ignores_pagination() -> None:
    pool = FakePool(lambda method, query, args: 0 if method == "fetchval" else [])

    await queries.get_jobs(pool, _info(), "pgboss", search="6f1c", sort_by="priority", sort_order="ASC")

    count_call = next(call for call in pool.calls if call[0] == "fetchval")
    assert count_call[2] == ("%6f1c%",)
    assert "ORDER BY priority ASC" in pool.queries("fetch")[0]


@pytest.mark.anyio
@pytest.mark.parametrize(
    "filters",
    [
        {"state": "sleeping"},
        {"sort_by": "name; DROP TABLE job"},
        {"sort_order": "sideways"},
        {"date_field": "updated_on"},
        {"limit": 0},
        {"limit": 5000},
        {"offset": -1},
        {"queue_name": "bad name"},
    ],
)
async def test_get_jobs_rejects_bad_filters(filters: dict[str, Any]) -> None:
    pool = FakePool()

    with pytest.raises(ValidationError):
        await queries.get_jobs(pool, _info(), "pgboss", **filters)
    assert pool.calls == []


@pytest.mark.anyio
async def test_invalid_schema_never_reaches_sql() -> None:
    pool = FakePool()

    with pytest.raises(ValidationError):
        await queries.get_queue_stats(pool, _info(), 'pgboss"; DROP SCHEMA x; --')
    assert pool.calls == []


@pytest.mark.anyio
async def test_get_job_returns_none_when_missing() -> None:
    pool = FakePool(lambda method, query, args: None)

    assert await queries.get_job(pool, _info(), "pgboss", JOB_ID) is None
    with pytest.raises(ValidationError):
        await queries.get_job(pool, _info(), "pgboss", "not-a-uuid")


@pytest.mark.anyio
async def test_queue_stats_without_queue_table_come_from_jobs() -> None:
    pool = FakePool(lambda method, query, args: [_counts("emails", created=3, failed=1)])

    result = await queries.get_queues_with_stats(pool, _info(queue=False), "pgboss")

    assert [entry.name for entry in result] == ["emails"]
    assert result[0].stats.pending == 3
    assert result[0].orphaned is False
    assert all('"pgboss".queue' not in query for query in pool.queries())


@pytest.mark.anyio
async def test_queue_stats_include_orphaned_queues() -> None:
    def _respond(method: str, query: str, args: tuple[Any, ...]) -> Any:
        if "WHERE q.name IS NULL" in query:
            return [_counts("legacy", completed=4)]
        return [_counts("emails", active=2)]

    pool = FakePool(_respond)

    result = await queries.get_queues_with_stats(pool, _info(), "pgboss")

    assert [(entry.name, entry.orphaned) for entry in result] == [("emails", False), ("legacy", True)]
    assert result[1].stats.completed == 4


@pytest.mark.anyio
async def test_get_queues_falls_back_to_distinct_job_names() -> None:
    pool = FakePool(lambda method, query, args: [{"name": "emails"}, {"name": "reports"}])

    queues = await queries.get_queues(pool, _info(queue=False), "pgboss")

    assert [queue.name for queue in queues] == ["emails", "reports"]
    assert "SELECT DISTINCT name" in pool.queries()[0]


@pytest.mark.anyio
async def test_dashboard_stats_apply_range_to_finished_jobs_only() -> None:
    def _respond(method: str, query: str, args: tuple[Any, ...]) -> Any:
        if method == "fetchrow":
            return {"total": 10, "created": 2, "active": 1, "completed_range": 5, "failed_range": 2}
        return [_counts("emails", created=2, active=1)]

    pool = FakePool(_respond)

    stats = await queries.get_dashboard_stats(pool, _info(ColumnCase.CAMEL), "pgboss", start=NOW)

    assert stats.total_jobs == 10
    assert stats.completed_in_range == 5
    assert stats.failed_in_range == 2
    assert [queue.name for queue in stats.queues] == ["emails"]
    headline = pool.queries("fetchrow")[0]
    assert '"completedOn" >= $1' in headline


@pytest.mark.anyio
async def test_throughput_is_returned_oldest_first() -> None:
    rows = [
        {"time": NOW, "completed": 3, "failed": 0},
        {"time": NOW - timedelta(minutes=1), "completed": 1, "failed": 1},
    ]
    pool = FakePool(lambda method, query, args: rows)

    points = await queries.get_throughput(pool, _info(), "pgboss")

    assert [point.time for point in points] == [NOW - timedelta(minutes=1), NOW]
    assert points[0].failed == 1


@pytest.mark.anyio
async def test_retry_job_resets_with_mapped_columns() -> None:
    pool = FakePool(lambda method, query, args: {"id": JOB_ID})

    assert await queries.retry_job(pool, _info(ColumnCase.CAMEL), "pgboss", JOB_ID) == JOB_ID

    statement = pool.queries("fetchrow")[0]
    assert '"retryCount" = 0' in statement
    assert '"startAfter" = now()' in statement
    assert "'failed', 'cancelled'" in statement


@pytest.mark.anyio
async def test_retry_job_raises_when_nothing_updated() -> None:
    pool = FakePool(lambda method, query, args: None)

    with pytest.raises(queries.JobActionError, match="retryable"):
        await queries.retry_job(pool, _info(), "pgboss", JOB_ID)


@pytest.mark.anyio
async def test_bulk_actions_return_counts() -> None:
    pool = FakePool(lambda method, query, args: 4)

    assert await queries.retry_all_jobs(pool, _info(), "pgboss", "emails") == 4
    assert await queries.cancel_all_jobs(pool, _info(), "pgboss", "emails") == 4
    assert all("SELECT COUNT(*) FROM updated" in query for query in pool.queries())


@pytest.mark.anyio
async def test_cancel_job_reports_whether_anything_changed() -> None:
    assert await queries.cancel_job(FakePool(lambda *_: {"id": JOB_ID}), _info(), "pgboss", JOB_ID) is True
    assert await queries.cancel_job(FakePool(lambda *_: None), _info(), "pgboss", JOB_ID) is False


@pytest.mark.anyio
async def test_purge_queue_filters_by_state() -> None:
    pool = FakePool(lambda method, query, args: 12)

    assert await queries.purge_queue(pool, _info(), "pgboss", "emails", "completed") == 12

    method, query, args = pool.calls[0]
    assert "DELETE FROM \"pgboss\".job" in query
    assert args == ("emails", "completed")


@pytest.mark.anyio
async def test_schedules_empty_without_schedule_table() -> None:
    pool = FakePool()

    assert await queries.get_schedules(pool, _info(schedule=False), "pgboss") == ()
    assert pool.calls == []


@pytest.mark.anyio
async def test_schedules_are_read_when_table_exists() -> None:
    row = {
        "name": "nightly",
        "cron": "0 3 * * *",
        "timezone": "UTC",
        "data": None,
        "options": {},
        "created_on": NOW,
        "updated_on": NOW,
    }
    pool = FakePool(lambda method, query, args: [row])

    schedules = await queries.get_schedules(pool, _info(ColumnCase.CAMEL), "pgboss")

    assert schedules[0].cron == "0 3 * * *"
    assert "created_on, updated_on" in pool.queries()[0]


@pytest.mark.anyio
async def test_speed_metrics_read_percentiles() -> None:
    row: dict[str, Any] = {"sample_count": 3}
    for prefix in ("processing", "wait", "e2e"):
        row.update(
            {
                f"{prefix}_min": 10,
                f"{prefix}_max": 90,
                f"{prefix}_avg": 40.5,
                f"{prefix}_p50": 30,
                f"{prefix}_p95": 85,
                f"{prefix}_p99": 89,
            }
        )
    row["wait_p50"] = None
    pool = FakePool(lambda method, query, args: row)

    metrics = await queries.get_speed_metrics(pool, _info(ColumnCase.CAMEL), "pgboss", queue_name="emails")

    assert metrics.processing_time.p95 == 85.0
    assert metrics.processing_time.avg == 40.5
    assert metrics.wait_time.p50 == 0.0
    assert metrics.end_to_end_latency.max == 90.0
    statement = pool.queries("fetchrow")[0]
    assert '"completedOn" - "startedOn"' in statement


@pytest.mark.anyio
async def test_speed_metrics_over_time_binds_granularity() -> None:
    rows = [
        {"time": NOW, "processing_p50": 5, "processing_p95": 9, "wait_p50": 1, "wait_p95": 2, "count": 4},
        {"time": NOW - timedelta(hours=1), "processing_p50": 6, "processing_p95": 8, "wait_p50": 1, "wait_p95": 3, "count": 2},
    ]
    pool = FakePool(lambda method, query, args: rows)

    points = await queries.get_speed_metrics_over_time(pool, _info(), "pgboss", granularity="hour")

    assert [point.count for point in points] == [2, 4]
    method, query, args = pool.calls[0]
    assert "date_trunc($1" in query
    assert args[0] == "hour"
    with pytest.raises(ValidationError):
        await queries.get_speed_metrics_over_time(pool, _info(), "pgboss", granularity="week")
