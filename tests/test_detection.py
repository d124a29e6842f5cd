"""Tests for schema version, naming and capability detection."""

from __future__ import annotations

import asyncio
import logging

import asyncpg
import pytest

from conftest import FakePool, pgboss_responder
from pgbossui.db.columns import ColumnCase
from pgbossui.db.detection import (
    OPTIMISTIC_CAPABILITIES,
    column_case_for_version,
    detect_capabilities,
    detect_column_case,
    detect_schema,
    table_exists,
)


@pytest.mark.parametrize(
    ("version", "expected"),
    [(23, ColumnCase.SNAKE), (30, ColumnCase.SNAKE), (22, ColumnCase.CAMEL), (1, ColumnCase.CAMEL)],
)
def test_column_case_threshold(version: int, expected: ColumnCase) -> None:
    assert column_case_for_version(version) is expected


@pytest.mark.anyio
async def test_version_table_decides_naming() -> None:
    pool = FakePool(pgboss_responder(version=23, columns=("createdOn",)))

    column_case, version = await detect_column_case(pool, "pgboss")

    assert column_case is ColumnCase.SNAKE
    assert version == 23
    assert not pool.queries("fetch")


@pytest.mark.anyio
async def test_version_below_threshold_is_camel_case() -> None:
    pool = FakePool(pgboss_responder(version=22))

    column_case, _ = await detect_column_case(pool, "pgboss")

    assert column_case is ColumnCase.CAMEL


@pytest.mark.anyio
async def test_missing_version_falls_back_to_snake_probe() -> None:
    missing = asyncpg.UndefinedTableError("relation \"pgboss.version\" does not exist")
    pool = FakePool(pgboss_responder(version=missing, columns=("created_on",)))

    column_case, version = await detect_column_case(pool, "pgboss")

    assert column_case is ColumnCase.SNAKE
    assert version is None


@pytest.mark.anyio
async def test_missing_version_falls_back_to_camel_probe() -> None:
    pool = FakePool(pgboss_responder(version=None, columns=("createdOn",)))

    column_case, version = await detect_column_case(pool, "pgboss")

    assert column_case is ColumnCase.CAMEL
    assert version is None


@pytest.mark.anyio
async def test_undetectable_naming_defaults_to_camel_with_warning(caplog: pytest.LogCaptureFixture) -> None:
    pool = FakePool(pgboss_responder(version=asyncpg.UndefinedTableError("relation does not exist"), columns=()))

    with caplog.at_level(logging.WARNING, logger="pgbossui.db.detection"):
        column_case, version = await detect_column_case(pool, "pgboss")

    assert column_case is ColumnCase.CAMEL
    assert version is None
    assert "Could not determine column naming" in caplog.text


@pytest.mark.anyio
async def test_capabilities_reflect_tables() -> None:
    pool = FakePool(pgboss_responder(tables={"queue": True, "schedule": False}))

    capabilities = await detect_capabilities(pool, "pgboss")

    assert capabilities.has_queue_table is True
    assert capabilities.has_schedule_table is False


@pytest.mark.anyio
async def test_failed_capability_checks_assume_tables_exist() -> None:
    error = asyncpg.InsufficientPrivilegeError("permission denied for table")
    pool = FakePool(pgboss_responder(tables={"queue": error, "schedule": error}))

    capabilities = await detect_capabilities(pool, "pgboss")

    assert capabilities == OPTIMISTIC_CAPABILITIES


@pytest.mark.anyio
async def test_single_failed_check_only_affects_that_table() -> None:
    denied = asyncpg.InsufficientPrivilegeError("permission denied")
    pool = FakePool(pgboss_responder(tables={"queue": False, "schedule": denied}))

    assert await table_exists(pool, "pgboss", "queue") is False
    assert await table_exists(pool, "pgboss", "schedule") is True


@pytest.mark.anyio
async def test_detect_schema_combines_results() -> None:
    pool = FakePool(pgboss_responder(version=21, tables={"queue": False, "schedule": True}))

    info = await detect_schema(pool, "pgboss")

    assert info.column_case is ColumnCase.CAMEL
    assert info.version == 21
    assert info.mapper.physical_name("created_on") == "createdOn"
    assert info.capabilities.has_queue_table is False
    assert info.capabilities.has_schedule_table is True


@pytest.mark.anyio
async def test_detection_quotes_schema_identifier() -> None:
    pool = FakePool(pgboss_responder(version=24))

    await detect_schema(pool, "my_boss")

    assert any('"my_boss".version' in query for query in pool.queries("fetchval"))


@pytest.mark.anyio
async def test_unexpected_server_error_makes_capabilities_optimistic() -> None:
    unsupported = asyncpg.FeatureNotSupportedError("not supported")
    pool = FakePool(pgboss_responder(tables={"queue": unsupported, "schedule": False}))

    capabilities = await detect_capabilities(pool, "pgboss")

    assert capabilities == OPTIMISTIC_CAPABILITIES


@pytest.mark.parametrize(
    "error",
    [
        ConnectionRefusedError("connection refused"),
        asyncio.TimeoutError(),
        asyncpg.CannotConnectNowError("the database system is starting up"),
    ],
)
@pytest.mark.anyio
async def test_connectivity_errors_are_not_mistaken_for_schema_shape(error: Exception) -> None:
    pool = FakePool(lambda method, query, args: error)

    with pytest.raises(type(error)):
        await detect_column_case(pool, "pgboss")
    with pytest.raises(type(error)):
        await detect_capabilities(pool, "pgboss")
    with pytest.raises(type(error)):
        await detect_schema(pool, "pgboss")
