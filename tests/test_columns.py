"""Tests for the logical-to-physical column mapper."""

from __future__ import annotations

import pytest

from pgbossui.db.columns import (
    LOGICAL_COLUMNS,
    RETRY_COLUMNS,
    SCHEDULING_COLUMNS,
    TIMESTAMP_COLUMNS,
    ColumnCase,
    ColumnMapper,
    UnknownColumnError,
)


def test_snake_case_mapper_returns_logical_names() -> None:
    mapper = ColumnMapper(ColumnCase.SNAKE)

    assert mapper.physical_name("created_on") == "created_on"
    assert mapper.physical_name("retry_backoff") == "retry_backoff"


def test_camel_case_mapper_translates_every_column() -> None:
    mapper = ColumnMapper(ColumnCase.CAMEL)

    assert mapper.physical_name("created_on") == "createdOn"
    assert mapper.physical_name("singleton_key") == "singletonKey"
    assert mapper.physical_name("dead_letter") == "deadLetter"
    assert mapper.physical_name("keep_until") == "keepUntil"
    assert all("_" not in mapper.physical_name(name) for name in LOGICAL_COLUMNS)


def test_mappers_cover_the_same_logical_columns() -> None:
    snake = ColumnMapper(ColumnCase.SNAKE)
    camel = ColumnMapper(ColumnCase.CAMEL)

    assert len(LOGICAL_COLUMNS) == 14
    for name in LOGICAL_COLUMNS:
        assert snake.physical_name(name)
        assert camel.physical_name(name)


def test_quoted_wraps_physical_name() -> None:
    assert ColumnMapper(ColumnCase.CAMEL).quoted("started_on") == '"startedOn"'
    assert ColumnMapper(ColumnCase.SNAKE).quoted("started_on") == '"started_on"'


def test_unknown_logical_column_is_rejected() -> None:
    mapper = ColumnMapper(ColumnCase.SNAKE)

    with pytest.raises(UnknownColumnError):
        mapper.physical_name("createdOn")
    with pytest.raises(KeyError):
        mapper.quoted("id")


def test_read_uses_physical_key_and_tolerates_missing() -> None:
    mapper = ColumnMapper(ColumnCase.CAMEL)
    row = {"retryCount": 3}

    assert mapper.read(row, "retry_count") == 3
    assert mapper.read(row, "retry_limit") is None


def test_mapper_accepts_enum_values() -> None:
    assert ColumnMapper("camelCase").column_case is ColumnCase.CAMEL


def test_conventions_differ_for_multi_word_columns() -> None:
    snake = ColumnMapper(ColumnCase.SNAKE)
    camel = ColumnMapper(ColumnCase.CAMEL)

    for name in TIMESTAMP_COLUMNS + RETRY_COLUMNS + SCHEDULING_COLUMNS:
        assert snake.physical_name(name) != camel.physical_name(name)
