"""Plain records returned by the query layer."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from .validation import JobState


@dataclass(frozen=True, slots=True)
class Job:
    id: str
    name: str
    priority: int
    data: Any
    state: JobState
    retry_limit: int
    retry_count: int
    retry_delay: int
    retry_backoff: bool
    start_after: datetime | None
    started_on: datetime | None
    singleton_key: str | None
    singleton_on: datetime | None
    expire_in: Any
    created_on: datetime | None
    completed_on: datetime | None
    keep_until: datetime | None
    output: Any
    dead_letter: str | None
    policy: str | None


@dataclass(frozen=True, slots=True)
class JobPage:
    """One page of jobs plus the unpaginated total."""

    jobs: tuple[Job, ...]
    total: int


@dataclass(frozen=True, slots=True)
class QueueStats:
    name: str
    created: int = 0
    retry: int = 0
    active: int = 0
    completed: int = 0
    cancelled: int = 0
    failed: int = 0

    @property
    def pending(self) -> int:
        return self.created + self.retry

    @property
    def total(self) -> int:
        return self.created + self.retry + self.active + self.completed + self.cancelled + self.failed


@dataclass(frozen=True, slots=True)
class Queue:
    """Queue metadata; fields other than the name vary across versions."""

    name: str
    policy: str | None = None
    retry_limit: int | None = None
    retry_delay: int | None = None
    retry_backoff: bool | None = None
    expire_in: Any = None
    retention_days: int | None = None
    dead_letter: str | None = None
    created_on: datetime | None = None
    updated_on: datetime | None = None


@dataclass(frozen=True, slots=True)
class QueueWithStats:
    queue: Queue
    stats: QueueStats
    orphaned: bool = False

    @property
    def name(self) -> str:
        return self.queue.name


@dataclass(frozen=True, slots=True)
class Schedule:
    name: str
    cron: str
    timezone: str | None
    data: Any
    options: Any
    created_on: datetime | None
    updated_on: datetime | None


@dataclass(frozen=True, slots=True)
class DashboardStats:
    total_jobs: int
    created_jobs: int
    active_jobs: int
    completed_in_range: int
    failed_in_range: int
    queues: tuple[QueueStats, ...] = field(default_factory=tuple)


@dataclass(frozen=True, slots=True)
class ThroughputPoint:
    time: datetime
    completed: int
    failed: int


@dataclass(frozen=True, slots=True)
class PercentileMetrics:
    """Latency distribution in milliseconds."""

    min: float = 0.0
    max: float = 0.0
    avg: float = 0.0
    p50: float = 0.0
    p95: float = 0.0
    p99: float = 0.0
    count: int = 0


@dataclass(frozen=True, slots=True)
class SpeedMetrics:
    processing_time: PercentileMetrics
    wait_time: PercentileMetrics
    end_to_end_latency: PercentileMetrics


@dataclass(frozen=True, slots=True)
class SpeedMetricsPoint:
    time: datetime
    processing_p50: float
    processing_p95: float
    wait_p50: float
    wait_p95: float
    count: int


__all__ = [
    "DashboardStats",
    "Job",
    "JobPage",
    "PercentileMetrics",
    "Queue",
    "QueueStats",
    "QueueWithStats",
    "Schedule",
    "SpeedMetrics",
    "SpeedMetricsPoint",
    "ThroughputPoint",
]
