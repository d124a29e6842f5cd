"""Cron schedules registered with pg-boss."""

from __future__ import annotations

import logging

from textual.app import ComposeResult
from textual.containers import Container
from textual.widgets import DataTable, Static

from pgbossui.db.types import Schedule
from pgbossui.session import SessionManager

from .formatting import format_cell, truncate

LOG = logging.getLogger(__name__)


class ScheduleTable(Container):
    DEFAULT_CSS = """
    ScheduleTable {
        padding: 1 2;
        height: 1fr;
    }
    ScheduleTable #schedule-status {
        height: 1;
        color: $text-muted;
    }
    """

    def __init__(self, session_manager: SessionManager) -> None:
        super().__init__(id="schedule-table")
        self._session_manager = session_manager
        self._table: DataTable | None = None
        self._status: Static | None = None

    def compose(self) -> ComposeResult:
        yield Static("Not connected.", id="schedule-status")
        yield DataTable(id="schedules", zebra_stripes=True)

    async def on_mount(self) -> None:
        self._status = self.query_one("#schedule-status", Static)
        self._table = self.query_one("#schedules", DataTable)
        self._table.cursor_type = "row"
        self._table.add_columns("Name", "Cron", "Timezone", "Data", "Updated")

    async def refresh_data(self) -> None:
        try:
            info = await self._session_manager.schema_info()
            schedules = await self._session_manager.schedules()
        except Exception as exc:
            LOG.warning("Schedule refresh failed: %s", exc)
            if self._status:
                self._status.update(f"✖ {exc}")
            return
        if not info.capabilities.has_schedule_table:
            self.render_schedules((), note="This pg-boss schema has no schedule table.")
            return
        self.render_schedules(schedules)

    def render_schedules(self, schedules: tuple[Schedule, ...], *, note: str | None = None) -> None:
        if self._table:
            self._table.clear()
            for schedule in schedules:
                self._table.add_row(
                    schedule.name,
                    schedule.cron,
                    format_cell(schedule.timezone),
                    truncate(format_cell(schedule.data), 40),
                    format_cell(schedule.updated_on),
                    key=schedule.name,
                )
        if self._status:
            self._status.update(note or f"{len(schedules)} schedules")


__all__ = ["ScheduleTable"]
