"""Connection/session manager wiring the pool registry into the UI."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable

from .config import AppConfig, ConnectionProfileConfig
from .db import queries
from .db.detection import SchemaInfo
from .db.pool import PoolRegistry
from .db.tls import pool_key, redact_dsn
from .db.types import (
    DashboardStats,
    Job,
    JobPage,
    QueueWithStats,
    Schedule,
    SpeedMetrics,
    SpeedMetricsPoint,
    ThroughputPoint,
)
from .db.validation import JobState, validate_schema

LOG = logging.getLogger(__name__)

SessionListener = Callable[["SessionState"], None]


class SessionError(RuntimeError):
    """Raised when no usable connection is active."""


@dataclass(frozen=True, slots=True)
class SessionState:
    """Current session snapshot (active profile + detected schema layout)."""

    profile: ConnectionProfileConfig
    connected: bool
    refreshed_at: datetime
    schema_info: SchemaInfo | None = None
    status: str = "Connected"
    latency_ms: int | None = None
    last_error: str | None = None


@dataclass(frozen=True, slots=True)
class ActionResult:
    """Outcome of a lifecycle action, shown to the user as-is."""

    success: bool
    error: str | None = None
    count: int | None = None
    job_id: str | None = None


@dataclass(frozen=True, slots=True)
class DashboardData:
    stats: DashboardStats
    throughput: tuple[ThroughputPoint, ...]


@dataclass(frozen=True, slots=True)
class MetricsData:
    metrics: SpeedMetrics
    time_series: tuple[SpeedMetricsPoint, ...]


class SessionManager:
    """Tracks the active connection profile and runs queries against it."""

    def __init__(self, config: AppConfig, *, registry: PoolRegistry | None = None) -> None:
        self._profiles = tuple(config.profiles)
        self._registry = registry or PoolRegistry()
        self._listeners: set[SessionListener] = set()
        self._state: SessionState | None = None

    @property
    def profiles(self) -> tuple[ConnectionProfileConfig, ...]:
        """Profiles available in the current config."""

        return self._profiles

    @property
    def registry(self) -> PoolRegistry:
        return self._registry

    @property
    def state(self) -> SessionState | None:
        """Current session state."""

        return self._state

    @property
    def active_profile(self) -> ConnectionProfileConfig | None:
        return self._state.profile if self._state else None

    @property
    def active_profile_name(self) -> str | None:
        """Name of the currently active profile, if any."""

        profile = self.active_profile
        return profile.name if profile else None

    async def connect(self, name: str) -> SessionState:
        """Probe the requested profile and make it the active one."""

        profile = self._profile_by_name(name)
        schema = validate_schema(profile.schema_name)
        tls = profile.tls_options()
        started = time.perf_counter()
        result = await self._registry.test_connection(profile.connection_string, schema, tls)
        latency_ms = int((time.perf_counter() - started) * 1000)
        if not result.success:
            raise SessionError(result.error or "Connection test failed")
        previous = self._state.profile if self._state else None
        if previous is not None and _target(previous) != _target(profile):
            await self._registry.close_pool(previous.connection_string, previous.tls_options())
        LOG.info("Connected profile", extra={"profile": profile.name, "target": redact_dsn(profile.connection_string)})
        self._update_state(profile, status="Connected", latency_ms=latency_ms)
        return self._state

    async def disconnect(self) -> None:
        """Forget the active profile and release its pool."""

        if not self._state:
            return
        profile = self._state.profile
        self._state = None
        await self._registry.close_pool(profile.connection_string, profile.tls_options())
        LOG.info("Disconnected profile", extra={"profile": profile.name})
        self._publish(
            SessionState(
                profile=profile,
                connected=False,
                refreshed_at=datetime.now(tz=timezone.utc),
                status="Disconnected",
            )
        )

    async def shutdown(self) -> None:
        self._state = None
        await self._registry.close_all()

    def subscribe(self, listener: SessionListener) -> Callable[[], None]:
        """Subscribe to session updates; returns an unsubscribe handle."""

        self._listeners.add(listener)
        if self._state:
            listener(self._state)

        def _unsubscribe() -> None:
            self._listeners.discard(listener)

        return _unsubscribe

    async def schema_info(self) -> SchemaInfo:
        """Detected layout for the active profile (detected once per pool)."""

        profile = self._require_profile()
        info = await self._registry.get_mapper_and_capabilities(
            profile.connection_string,
            profile.schema_name,
            profile.tls_options(),
        )
        if self._state and self._state.profile is profile and self._state.schema_info is not info:
            self._update_state(profile, schema_info=info, status=self._state.status, latency_ms=self._state.latency_ms)
        return info

    async def dashboard(self, *, start: datetime | None = None, end: datetime | None = None) -> DashboardData:
        pool, info, schema = await self._context()
        stats, throughput = await asyncio.gather(
            queries.get_dashboard_stats(pool, info, schema, start=start, end=end),
            queries.get_throughput(pool, info, schema, start=start, end=end),
        )
        return DashboardData(stats=stats, throughput=throughput)

    async def queues(self) -> tuple[QueueWithStats, ...]:
        pool, info, schema = await self._context()
        return await queries.get_queues_with_stats(pool, info, schema)

    async def jobs(self, **filters: Any) -> JobPage:
        pool, info, schema = await self._context()
        return await queries.get_jobs(pool, info, schema, **filters)

    async def job(self, job_id: str) -> Job | None:
        pool, info, schema = await self._context()
        return await queries.get_job(pool, info, schema, job_id)

    async def schedules(self) -> tuple[Schedule, ...]:
        pool, info, schema = await self._context()
        return await queries.get_schedules(pool, info, schema)

    async def metrics(
        self,
        *,
        queue_name: str | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
        granularity: str = "minute",
    ) -> MetricsData:
        pool, info, schema = await self._context()
        metrics, time_series = await asyncio.gather(
            queries.get_speed_metrics(pool, info, schema, queue_name=queue_name, start=start, end=end),
            queries.get_speed_metrics_over_time(
                pool,
                info,
                schema,
                queue_name=queue_name,
                start=start,
                end=end,
                granularity=granularity,
            ),
        )
        return MetricsData(metrics=metrics, time_series=time_series)

    async def retry_job(self, job_id: str) -> ActionResult:
        async def _run() -> ActionResult:
            pool, info, schema = await self._context()
            return ActionResult(success=True, job_id=await queries.retry_job(pool, info, schema, job_id))

        return await self._run_action("retry job", _run)

    async def cancel_job(self, job_id: str) -> ActionResult:
        async def _run() -> ActionResult:
            pool, info, schema = await self._context()
            if not await queries.cancel_job(pool, info, schema, job_id):
                return ActionResult(success=False, error="Job not found or not in a cancellable state")
            return ActionResult(success=True, job_id=job_id)

        return await self._run_action("cancel job", _run)

    async def retry_all_jobs(self, queue_name: str) -> ActionResult:
        async def _run() -> ActionResult:
            pool, info, schema = await self._context()
            return ActionResult(success=True, count=await queries.retry_all_jobs(pool, info, schema, queue_name))

        return await self._run_action("retry jobs", _run)

    async def cancel_all_jobs(self, queue_name: str) -> ActionResult:
        async def _run() -> ActionResult:
            pool, info, schema = await self._context()
            return ActionResult(success=True, count=await queries.cancel_all_jobs(pool, info, schema, queue_name))

        return await self._run_action("cancel jobs", _run)

    async def purge_queue(self, queue_name: str, state: str | JobState | None = None) -> ActionResult:
        async def _run() -> ActionResult:
            pool, info, schema = await self._context()
            return ActionResult(success=True, count=await queries.purge_queue(pool, info, schema, queue_name, state))

        return await self._run_action("purge queue", _run)

    async def _run_action(self, label: str, action: Callable[[], Awaitable[ActionResult]]) -> ActionResult:
        try:
            result = await action()
        except Exception as exc:
            LOG.warning("Failed to %s: %s", label, exc, extra={"profile": self.active_profile_name})
            return ActionResult(success=False, error=str(exc) or f"Failed to {label}")
        LOG.info("Completed %s", label, extra={"profile": self.active_profile_name, "count": result.count})
        return result

    async def _context(self) -> tuple[Any, SchemaInfo, str]:
        profile = self._require_profile()
        info = await self.schema_info()
        pool = await self._registry.get_pool(profile.connection_string, profile.tls_options())
        return pool, info, profile.schema_name

    def _require_profile(self) -> ConnectionProfileConfig:
        if not self._state:
            raise SessionError("No active connection")
        return self._state.profile

    def _profile_by_name(self, name: str) -> ConnectionProfileConfig:
        for profile in self._profiles:
            if profile.name == name:
                return profile
        raise ValueError(f"Profile '{name}' not found.")

    def _update_state(
        self,
        profile: ConnectionProfileConfig,
        *,
        schema_info: SchemaInfo | None = None,
        status: str = "Connected",
        latency_ms: int | None = None,
        last_error: str | None = None,
    ) -> None:
        self._state = SessionState(
            profile=profile,
            connected=True,
            refreshed_at=datetime.now(tz=timezone.utc),
            schema_info=schema_info,
            status=status,
            latency_ms=latency_ms,
            last_error=last_error,
        )
        self._notify()

    def _notify(self) -> None:
        if self._state:
            self._publish(self._state)

    def _publish(self, state: SessionState) -> None:
        for listener in tuple(self._listeners):
            listener(state)


def _target(profile: ConnectionProfileConfig) -> str:
    return pool_key(profile.connection_string, profile.tls_options())


__all__ = [
    "ActionResult",
    "DashboardData",
    "MetricsData",
    "SessionError",
    "SessionManager",
    "SessionState",
]
