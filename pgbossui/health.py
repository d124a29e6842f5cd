"""Queue health classification and throughput arithmetic for the dashboard."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Sequence

from .config import HealthThresholds
from .db.types import QueueStats, SpeedMetricsPoint, ThroughputPoint


class HealthStatus(str, Enum):
    HEALTHY = "healthy"
    WARNING = "warning"
    CRITICAL = "critical"

    @property
    def label(self) -> str:
        return self.value.capitalize()


@dataclass(frozen=True, slots=True)
class HealthResult:
    status: HealthStatus
    reason: str

    @property
    def label(self) -> str:
        return self.status.label


def queue_health(stats: QueueStats, thresholds: HealthThresholds) -> HealthResult:
    """Classify a queue by its failed and pending (created + retry) counts."""

    pending = stats.pending
    failed = stats.failed
    critical = thresholds.critical
    warning = thresholds.warning
    if failed > critical.failed or pending > critical.pending:
        status, level = HealthStatus.CRITICAL, critical
    elif failed > warning.failed or pending > warning.pending:
        status, level = HealthStatus.WARNING, warning
    else:
        return HealthResult(HealthStatus.HEALTHY, "All metrics within normal thresholds")
    reasons: list[str] = []
    if failed > level.failed:
        reasons.append(f"{failed} failed jobs (threshold: {level.failed})")
    if pending > level.pending:
        reasons.append(f"{pending} pending jobs (threshold: {level.pending})")
    return HealthResult(status, " and ".join(reasons))


def pending_jobs(queues: Iterable[QueueStats]) -> int:
    return sum(queue.pending for queue in queues)


def failure_rate(completed: int, failed: int) -> float:
    """Failed share of processed jobs as a percentage."""

    processed = completed + failed
    return (failed / processed) * 100 if processed else 0.0


def _per_minute(total: int, points: Sequence[ThroughputPoint] | Sequence[SpeedMetricsPoint]) -> float:
    if not points:
        return 0.0
    times = [point.time.timestamp() for point in points]
    # Both endpoints are whole minutes, so the span covers one extra bucket.
    elapsed_minutes = (max(times) - min(times)) / 60 + 1
    return total / elapsed_minutes


def throughput_per_minute(points: Sequence[ThroughputPoint]) -> float:
    return _per_minute(sum(point.completed for point in points), points)


def throughput_from_time_series(points: Sequence[SpeedMetricsPoint]) -> float:
    return _per_minute(sum(point.count for point in points), points)


__all__ = [
    "HealthResult",
    "HealthStatus",
    "failure_rate",
    "pending_jobs",
    "queue_health",
    "throughput_from_time_series",
    "throughput_per_minute",
]
