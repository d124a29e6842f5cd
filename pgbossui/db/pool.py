"""Pooled asyncpg connections keyed by connection target and TLS options."""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Any

import asyncpg

from .detection import SchemaInfo, detect_schema
from .tls import TlsOptions, build_ssl, pool_key, redact_dsn

LOG = logging.getLogger(__name__)

MAX_POOL_SIZE = 5
IDLE_LIFETIME = 30.0
CONNECT_TIMEOUT = 5.0
CLOSE_TIMEOUT = 10.0

_SCHEMA_EXISTS_QUERY = """
    SELECT schema_name
    FROM information_schema.schemata
    WHERE schema_name = $1
"""


@dataclass(frozen=True, slots=True)
class ConnectionTestResult:
    """Outcome of a disposable connection probe."""

    success: bool
    error: str | None = None


@dataclass(frozen=True, slots=True)
class DetectionNotStarted:
    """No caller has asked for this schema's layout yet."""


@dataclass(frozen=True, slots=True)
class DetectionInProgress:
    """Detection is running; every caller awaits the same task."""

    task: asyncio.Future[SchemaInfo]


@dataclass(frozen=True, slots=True)
class DetectionDone:
    """Detection finished; the result is reused for the group's lifetime."""

    info: SchemaInfo


DetectionState = DetectionNotStarted | DetectionInProgress | DetectionDone

NOT_STARTED = DetectionNotStarted()


@dataclass(eq=False, slots=True)
class PoolGroup:
    """One asyncpg pool plus the schema layouts detected through it."""

    key: str
    target: str
    pool: asyncpg.Pool
    ready: asyncio.Future[Any]
    detections: dict[str, DetectionState] = field(default_factory=dict)

    def detection(self, schema: str) -> DetectionState:
        return self.detections.get(schema, NOT_STARTED)


class PoolRegistry:
    """Owns every long-lived pool in the process.

    Construct one at startup, hand it to whoever needs database access and
    call :meth:`close_all` on shutdown. All mutations of the registry happen
    between awaits on the event loop thread.
    """

    def __init__(
        self,
        *,
        max_size: int = MAX_POOL_SIZE,
        idle_lifetime: float = IDLE_LIFETIME,
        connect_timeout: float = CONNECT_TIMEOUT,
        close_timeout: float = CLOSE_TIMEOUT,
    ) -> None:
        self._max_size = max_size
        self._idle_lifetime = idle_lifetime
        self._connect_timeout = connect_timeout
        self._close_timeout = close_timeout
        self._groups: dict[str, PoolGroup] = {}

    def __len__(self) -> int:
        return len(self._groups)

    def __contains__(self, key: object) -> bool:
        return key in self._groups

    async def get_pool(self, connection_string: str, tls: TlsOptions | None = None) -> asyncpg.Pool:
        """Return the pool for this target, creating it on first use."""

        group = self._group_for(connection_string, tls)
        await group.ready
        return group.pool

    async def get_mapper_and_capabilities(
        self,
        connection_string: str,
        schema: str,
        tls: TlsOptions | None = None,
    ) -> SchemaInfo:
        """Return the cached schema layout, detecting it once per pool group."""

        group = self._group_for(connection_string, tls)
        state = group.detection(schema)
        if isinstance(state, DetectionDone):
            return state.info
        if isinstance(state, DetectionInProgress):
            return await asyncio.shield(state.task)
        task = asyncio.ensure_future(self._detect(group, schema))
        group.detections[schema] = DetectionInProgress(task)
        return await asyncio.shield(task)

    async def test_connection(
        self,
        connection_string: str,
        schema: str,
        tls: TlsOptions | None = None,
    ) -> ConnectionTestResult:
        """Probe reachability and schema presence with a throwaway pool."""

        target = redact_dsn(connection_string)
        pool: asyncpg.Pool | None = None
        try:
            pool = await asyncpg.create_pool(
                connection_string,
                min_size=0,
                max_size=1,
                timeout=self._connect_timeout,
                ssl=build_ssl(tls),
            )
            async with pool.acquire(timeout=self._connect_timeout) as conn:
                rows = await conn.fetch(_SCHEMA_EXISTS_QUERY, schema)
        except Exception as exc:
            LOG.info("Connection test failed", extra={"target": target, "error": str(exc)})
            return ConnectionTestResult(success=False, error=str(exc) or type(exc).__name__)
        finally:
            if pool is not None:
                await self._close(pool, target)
        if not rows:
            return ConnectionTestResult(
                success=False,
                error=f"Schema '{schema}' not found. Make sure pg-boss has been initialized on this database.",
            )
        return ConnectionTestResult(success=True)

    async def close_pool(self, connection_string: str, tls: TlsOptions | None = None) -> None:
        """Close and forget the pool for this target; unknown targets are ignored."""

        group = self._groups.pop(pool_key(connection_string, tls), None)
        if group is None:
            return
        await self._close_group(group)

    async def close_all(self) -> None:
        """Close every registered pool."""

        groups = list(self._groups.values())
        self._groups.clear()
        await asyncio.gather(*(self._close_group(group) for group in groups))

    def _group_for(self, connection_string: str, tls: TlsOptions | None) -> PoolGroup:
        key = pool_key(connection_string, tls)
        group = self._groups.get(key)
        if group is not None and not _failed(group.ready):
            return group
        target = redact_dsn(connection_string)
        if group is not None:
            LOG.info("Replacing pool that failed to initialize", extra={"target": target})
        pool = asyncpg.create_pool(
            connection_string,
            min_size=0,
            max_size=self._max_size,
            max_inactive_connection_lifetime=self._idle_lifetime,
            timeout=self._connect_timeout,
            ssl=build_ssl(tls),
            init=self._connection_initializer(target),
        )
        group = PoolGroup(key=key, target=target, pool=pool, ready=asyncio.ensure_future(_initialize(pool)))
        self._groups[key] = group
        LOG.info("Created connection pool", extra={"target": target, "max_size": self._max_size})
        return group

    async def _detect(self, group: PoolGroup, schema: str) -> SchemaInfo:
        try:
            await group.ready
            info = await detect_schema(group.pool, schema)
        except BaseException:
            group.detections.pop(schema, None)
            raise
        group.detections[schema] = DetectionDone(info)
        return info

    async def _close_group(self, group: PoolGroup) -> None:
        try:
            await group.ready
        except Exception:
            LOG.warning("Pool never initialized", extra={"target": group.target}, exc_info=True)
            return
        await self._close(group.pool, group.target)

    async def _close(self, pool: asyncpg.Pool, target: str) -> None:
        try:
            await asyncio.wait_for(pool.close(), timeout=self._close_timeout)
        except asyncio.TimeoutError:
            LOG.warning("Pool did not drain in time; terminating", extra={"target": target})
            pool.terminate()
        except Exception:
            LOG.exception("Failed to close pool", extra={"target": target})
        else:
            LOG.info("Closed connection pool", extra={"target": target})

    def _connection_initializer(self, target: str):
        def _on_terminated(conn: asyncpg.Connection) -> None:
            LOG.warning("Pooled connection closed by server", extra={"target": target})

        async def _init(conn: asyncpg.Connection) -> None:
            conn.add_termination_listener(_on_terminated)
            for codec in ("json", "jsonb"):
                await conn.set_type_codec(codec, encoder=json.dumps, decoder=json.loads, schema="pg_catalog")

        return _init


async def _initialize(pool: asyncpg.Pool) -> asyncpg.Pool:
    return await pool


def _failed(ready: asyncio.Future[Any]) -> bool:
    return ready.done() and (ready.cancelled() or ready.exception() is not None)


__all__ = [
    "CONNECT_TIMEOUT",
    "ConnectionTestResult",
    "DetectionDone",
    "DetectionInProgress",
    "DetectionNotStarted",
    "DetectionState",
    "MAX_POOL_SIZE",
    "PoolGroup",
    "PoolRegistry",
]
