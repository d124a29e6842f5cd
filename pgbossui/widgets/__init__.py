"""Widget library for the Textual UI."""

from __future__ import annotations

from .jobs_table import JobsTable
from .queue_table import QueueSelected, QueueTable
from .schedule_table import ScheduleTable
from .stats_panel import DashboardPanel, MetricsPanel
from .status_bar import StatusBar

__all__ = [
    "DashboardPanel",
    "JobsTable",
    "MetricsPanel",
    "QueueSelected",
    "QueueTable",
    "ScheduleTable",
    "StatusBar",
]
