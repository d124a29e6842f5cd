"""Shared fixtures: an in-memory stand-in for asyncpg pools."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable

import pytest

Responder = Callable[[str, str, tuple[Any, ...]], Any]


def _no_rows(method: str, query: str, args: tuple[Any, ...]) -> Any:
    return [] if method == "fetch" else None


class FakePool:
    """Records every query and answers through ``responder``.

    A responder returning an exception instance makes the call raise it.
    """

    def __init__(self, responder: Responder | None = None, **options: Any) -> None:
        self.responder = responder or _no_rows
        self.options = options
        self.calls: list[tuple[str, str, tuple[Any, ...]]] = []
        self.closed = False
        self.terminated = False

    def __await__(self):
        return self._ready().__await__()

    async def _ready(self) -> FakePool:
        return self

    def acquire(self, *, timeout: float | None = None) -> _Acquire:
        return _Acquire(self)

    async def fetch(self, query: str, *args: Any) -> Any:
        return self._answer("fetch", query, args)

    async def fetchrow(self, query: str, *args: Any) -> Any:
        return self._answer("fetchrow", query, args)

    async def fetchval(self, query: str, *args: Any) -> Any:
        return self._answer("fetchval", query, args)

    async def close(self) -> None:
        self.closed = True

    def terminate(self) -> None:
        self.terminated = True

    def queries(self, method: str | None = None) -> list[str]:
        return [query for called, query, _ in self.calls if method is None or called == method]

    def _answer(self, method: str, query: str, args: tuple[Any, ...]) -> Any:
        self.calls.append((method, query, args))
        result = self.responder(method, query, args)
        if isinstance(result, BaseException):
            raise result
        return result


class _Acquire:
    def __init__(self, pool: FakePool) -> None:
        self._pool = pool

    async def __aenter__(self) -> FakePool:
        return self._pool

    async def __aexit__(self, *exc: object) -> bool:
        return False


@dataclass
class PoolFactory:
    """Replacement for ``asyncpg.create_pool`` that hands out fake pools."""

    responder: Responder = _no_rows
    created: list[FakePool] = field(default_factory=list)

    def __call__(self, dsn: str, **options: Any) -> FakePool:
        pool = FakePool(lambda method, query, args: self.responder(method, query, args), dsn=dsn, **options)
        self.created.append(pool)
        return pool


def pgboss_responder(
    *,
    version: int | None | BaseException = 24,
    columns: tuple[str, ...] = ("created_on",),
    tables: dict[str, bool | BaseException] | None = None,
    schemata: tuple[str, ...] = ("pgboss",),
) -> Responder:
    """Answer the catalog lookups a pg-boss schema would."""

    tables = {"queue": True, "schedule": True} if tables is None else tables

    def _respond(method: str, query: str, args: tuple[Any, ...]) -> Any:
        if "max(version)" in query:
            return version
        if "information_schema.columns" in query:
            wanted = set(args[2])
            return [{"column_name": name} for name in columns if name in wanted]
        if "information_schema.tables" in query:
            return tables.get(args[1], False)
        if "information_schema.schemata" in query:
            return [{"schema_name": name} for name in schemata if name == args[0]]
        return _no_rows(method, query, args)

    return _respond


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def pool_factory(monkeypatch: pytest.MonkeyPatch) -> PoolFactory:
    factory = PoolFactory(responder=pgboss_responder())
    monkeypatch.setattr("pgbossui.db.pool.asyncpg.create_pool", factory)
    return factory
