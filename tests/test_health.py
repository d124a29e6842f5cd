"""Tests for queue health classification and throughput math."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from pgbossui.config import HealthThresholds
from pgbossui.db.types import QueueStats, ThroughputPoint
from pgbossui.health import HealthStatus, failure_rate, pending_jobs, queue_health, throughput_per_minute

START = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def test_queue_within_thresholds_is_healthy() -> None:
    result = queue_health(QueueStats(name="emails", created=5, failed=1), HealthThresholds())

    assert result.status is HealthStatus.HEALTHY
    assert result.label == "Healthy"


def test_warning_reason_names_the_metric() -> None:
    result = queue_health(QueueStats(name="emails", created=80, retry=40), HealthThresholds())

    assert result.status is HealthStatus.WARNING
    assert result.reason == "120 pending jobs (threshold: 100)"


def test_critical_reports_every_exceeded_metric() -> None:
    result = queue_health(QueueStats(name="emails", created=2000, failed=500), HealthThresholds())

    assert result.status is HealthStatus.CRITICAL
    assert result.reason == "500 failed jobs (threshold: 100) and 2000 pending jobs (threshold: 1000)"


def test_failure_rate_handles_empty_window() -> None:
    assert failure_rate(0, 0) == 0.0
    assert failure_rate(3, 1) == 25.0


def test_pending_jobs_sums_created_and_retry() -> None:
    queues = [QueueStats(name="a", created=2, retry=1, active=9), QueueStats(name="b", retry=4)]

    assert pending_jobs(queues) == 7


def test_throughput_counts_both_endpoint_minutes() -> None:
    points = [
        ThroughputPoint(time=START, completed=10, failed=0),
        ThroughputPoint(time=START + timedelta(minutes=4), completed=5, failed=3),
    ]

    assert throughput_per_minute(points) == 3.0
    assert throughput_per_minute([]) == 0.0
