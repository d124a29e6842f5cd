"""Dashboard and latency panels."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from textual.app import ComposeResult
from textual.containers import Container
from textual.widgets import Static

from pgbossui.config import HealthThresholds
from pgbossui.health import failure_rate, pending_jobs, queue_health, throughput_from_time_series, throughput_per_minute
from pgbossui.session import DashboardData, MetricsData, SessionManager
from pgbossui.db.types import PercentileMetrics

from .formatting import format_ms, truncate

LOG = logging.getLogger(__name__)

DEFAULT_WINDOW = timedelta(hours=1)
_SPARK = "▁▂▃▄▅▆▇█"


def sparkline(values: list[int] | list[float], width: int = 60) -> str:
    """Render the tail of ``values`` as a one-line bar chart."""

    tail = list(values)[-width:]
    if not tail:
        return ""
    peak = max(tail)
    if peak <= 0:
        return _SPARK[0] * len(tail)
    steps = len(_SPARK) - 1
    return "".join(_SPARK[round(value / peak * steps)] for value in tail)


def _window(window: timedelta) -> tuple[datetime, datetime]:
    end = datetime.now(tz=timezone.utc)
    return end - window, end


class DashboardPanel(Container):
    """Headline counts, throughput and per-queue health."""

    DEFAULT_CSS = """
    DashboardPanel {
        padding: 1 2;
        height: 1fr;
    }
    DashboardPanel .panel-title {
        text-style: bold;
        margin-bottom: 1;
    }
    DashboardPanel #dashboard-throughput {
        margin-top: 1;
        color: $success;
    }
    DashboardPanel #dashboard-health {
        margin-top: 1;
    }
    """

    def __init__(
        self,
        session_manager: SessionManager,
        thresholds: HealthThresholds,
        *,
        window: timedelta = DEFAULT_WINDOW,
    ) -> None:
        super().__init__(id="dashboard-panel")
        self._session_manager = session_manager
        self._thresholds = thresholds
        self._window = window
        self._summary: Static | None = None
        self._throughput: Static | None = None
        self._health: Static | None = None

    def compose(self) -> ComposeResult:
        yield Static("Overview", classes="panel-title")
        yield Static("Not connected.", id="dashboard-summary")
        yield Static("", id="dashboard-throughput")
        yield Static("", id="dashboard-health")

    async def on_mount(self) -> None:
        self._summary = self.query_one("#dashboard-summary", Static)
        self._throughput = self.query_one("#dashboard-throughput", Static)
        self._health = self.query_one("#dashboard-health", Static)

    async def refresh_data(self) -> None:
        start, end = _window(self._window)
        try:
            data = await self._session_manager.dashboard(start=start, end=end)
        except Exception as exc:
            LOG.warning("Dashboard refresh failed: %s", exc)
            if self._summary:
                self._summary.update(f"✖ {exc}")
            return
        self.render_data(data)

    def render_data(self, data: DashboardData) -> None:
        stats = data.stats
        if self._summary:
            rate = failure_rate(stats.completed_in_range, stats.failed_in_range)
            lines = [
                f"Total jobs: {stats.total_jobs}",
                f"Pending: {pending_jobs(stats.queues)}   Created: {stats.created_jobs}   Active: {stats.active_jobs}",
                f"Completed (window): {stats.completed_in_range}   Failed (window): {stats.failed_in_range}",
                f"Failure rate: {rate:.1f}%",
            ]
            self._summary.update("\n".join(lines))
        if self._throughput:
            points = list(data.throughput)
            per_minute = throughput_per_minute(points)
            chart = sparkline([point.completed for point in points])
            self._throughput.update(f"Throughput: {per_minute:.1f} jobs/min\n{chart}")
        if self._health:
            rows = []
            for queue in stats.queues:
                result = queue_health(queue, self._thresholds)
                rows.append(f"{truncate(queue.name, 32):<32} {result.label:<9} {result.reason}")
            self._health.update("\n".join(rows) or "No queues.")


class MetricsPanel(Container):
    """Processing, wait and end-to-end latency percentiles."""

    DEFAULT_CSS = """
    MetricsPanel {
        padding: 1 2;
        height: 1fr;
    }
    MetricsPanel .panel-title {
        text-style: bold;
        margin-bottom: 1;
    }
    MetricsPanel #metrics-trend {
        margin-top: 1;
        color: $accent;
    }
    """

    def __init__(
        self,
        session_manager: SessionManager,
        *,
        window: timedelta = DEFAULT_WINDOW,
        granularity: str = "minute",
    ) -> None:
        super().__init__(id="metrics-panel")
        self._session_manager = session_manager
        self._window = window
        self._granularity = granularity
        self._queue_name: str | None = None
        self._title: Static | None = None
        self._table: Static | None = None
        self._trend: Static | None = None

    def compose(self) -> ComposeResult:
        yield Static("Latency (all queues)", classes="panel-title", id="metrics-title")
        yield Static("Not connected.", id="metrics-table")
        yield Static("", id="metrics-trend")

    async def on_mount(self) -> None:
        self._title = self.query_one("#metrics-title", Static)
        self._table = self.query_one("#metrics-table", Static)
        self._trend = self.query_one("#metrics-trend", Static)

    @property
    def queue_name(self) -> str | None:
        return self._queue_name

    def set_queue(self, queue_name: str | None) -> None:
        self._queue_name = queue_name
        if self._title:
            self._title.update(f"Latency ({queue_name or 'all queues'})")

    async def refresh_data(self) -> None:
        start, end = _window(self._window)
        try:
            data = await self._session_manager.metrics(
                queue_name=self._queue_name,
                start=start,
                end=end,
                granularity=self._granularity,
            )
        except Exception as exc:
            LOG.warning("Metrics refresh failed: %s", exc)
            if self._table:
                self._table.update(f"✖ {exc}")
            return
        self.render_data(data)

    def render_data(self, data: MetricsData) -> None:
        if self._table:
            metrics = data.metrics
            lines = [f"{'':<12} {'min':>9} {'p50':>9} {'p95':>9} {'p99':>9} {'max':>9} {'avg':>9}"]
            lines.append(_metric_line("Processing", metrics.processing_time))
            lines.append(_metric_line("Wait", metrics.wait_time))
            lines.append(_metric_line("End-to-end", metrics.end_to_end_latency))
            lines.append(f"Samples: {metrics.processing_time.count}")
            self._table.update("\n".join(lines))
        if self._trend:
            points = list(data.time_series)
            rate = throughput_from_time_series(points)
            chart = sparkline([point.processing_p95 for point in points])
            self._trend.update(f"Completed: {rate:.1f} jobs/min\np95 processing\n{chart}")


def _metric_line(label: str, metric: PercentileMetrics) -> str:
    values = (metric.min, metric.p50, metric.p95, metric.p99, metric.max, metric.avg)
    return f"{label:<12} " + " ".join(f"{format_ms(value):>9}" for value in values)


__all__ = ["DashboardPanel", "MetricsPanel", "sparkline"]
