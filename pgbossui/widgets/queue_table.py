"""Queue list with per-state counts and health badges."""

from __future__ import annotations

import logging

from textual import on
from textual.app import ComposeResult
from textual.containers import Container
from textual.message import Message
from textual.widgets import DataTable, Static

from pgbossui.config import HealthThresholds
from pgbossui.db.types import QueueWithStats
from pgbossui.health import queue_health
from pgbossui.session import SessionManager

LOG = logging.getLogger(__name__)

COLUMNS = ("Queue", "Health", "Created", "Retry", "Active", "Completed", "Failed", "Cancelled")


class QueueSelected(Message):
    """Posted when the cursor moves to a different queue."""

    def __init__(self, queue_name: str | None) -> None:
        super().__init__()
        self.queue_name = queue_name


class QueueTable(Container):
    DEFAULT_CSS = """
    QueueTable {
        padding: 1 2;
        height: 1fr;
    }
    QueueTable #queue-status {
        height: 1;
        color: $text-muted;
    }
    QueueTable DataTable {
        height: 1fr;
    }
    """

    def __init__(self, session_manager: SessionManager, thresholds: HealthThresholds) -> None:
        super().__init__(id="queue-table")
        self._session_manager = session_manager
        self._thresholds = thresholds
        self._queues: tuple[QueueWithStats, ...] = ()
        self._table: DataTable | None = None
        self._status: Static | None = None

    def compose(self) -> ComposeResult:
        yield Static("Not connected.", id="queue-status")
        yield DataTable(id="queues", zebra_stripes=True)

    async def on_mount(self) -> None:
        self._status = self.query_one("#queue-status", Static)
        self._table = self.query_one("#queues", DataTable)
        self._table.cursor_type = "row"
        self._table.add_columns(*COLUMNS)

    @property
    def queues(self) -> tuple[QueueWithStats, ...]:
        return self._queues

    @property
    def selected_queue(self) -> str | None:
        if not self._table or not self._queues:
            return None
        row = self._table.cursor_row
        if 0 <= row < len(self._queues):
            return self._queues[row].name
        return None

    async def refresh_data(self) -> None:
        try:
            queues = await self._session_manager.queues()
        except Exception as exc:
            LOG.warning("Queue refresh failed: %s", exc)
            self._set_status(f"✖ {exc}")
            return
        self.render_queues(queues)

    def render_queues(self, queues: tuple[QueueWithStats, ...]) -> None:
        self._queues = queues
        if not self._table:
            return
        selected = self.selected_queue
        self._table.clear()
        for entry in queues:
            stats = entry.stats
            health = queue_health(stats, self._thresholds)
            name = f"{entry.name} (no queue row)" if entry.orphaned else entry.name
            self._table.add_row(
                name,
                health.label,
                stats.created,
                stats.retry,
                stats.active,
                stats.completed,
                stats.failed,
                stats.cancelled,
                key=entry.name,
            )
        names = [entry.name for entry in queues]
        if selected in names:
            self._table.move_cursor(row=names.index(selected))
        self._set_status(f"{len(queues)} queues")

    @on(DataTable.RowHighlighted, "#queues")
    def _handle_row_highlighted(self, event: DataTable.RowHighlighted) -> None:
        self.post_message(QueueSelected(self.selected_queue))

    def _set_status(self, message: str) -> None:
        if self._status:
            self._status.update(message)


__all__ = ["QueueSelected", "QueueTable"]
