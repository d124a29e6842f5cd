"""Paginated job browser with state and text filters."""

from __future__ import annotations

import logging

from textual import on
from textual.app import ComposeResult
from textual.binding import Binding
from textual.containers import Container, Horizontal
from textual.widgets import DataTable, Input, Static

from pgbossui.db.types import Job, JobPage
from pgbossui.db.validation import JobState
from pgbossui.session import SessionManager

from .formatting import format_cell, truncate

LOG = logging.getLogger(__name__)

PAGE_SIZE = 50
STATE_FILTERS: tuple[JobState | None, ...] = (None, *JobState)


class JobsTable(Container):
    """Jobs for the selected queue, newest first."""

    DEFAULT_CSS = """
    JobsTable {
        padding: 1 2;
        height: 1fr;
    }
    JobsTable .jobs-filters {
        height: 3;
    }
    JobsTable #jobs-search {
        width: 1fr;
    }
    JobsTable #jobs-status {
        width: 2fr;
        padding: 1 1 0 1;
        color: $text-muted;
    }
    JobsTable DataTable {
        height: 1fr;
    }
    JobsTable #job-detail {
        height: 8;
        border-top: solid $surface-darken-2;
        padding-top: 1;
    }
    """

    BINDINGS = Container.BINDINGS + [
        Binding("s", "cycle_state", "State filter"),
        Binding("n", "next_page", "Next page"),
        Binding("b", "previous_page", "Previous page"),
    ]

    def __init__(self, session_manager: SessionManager, *, page_size: int = PAGE_SIZE) -> None:
        super().__init__(id="jobs-table")
        self._session_manager = session_manager
        self._page_size = page_size
        self._queue_name: str | None = None
        self._state_index = 0
        self._search: str | None = None
        self._offset = 0
        self._page = JobPage(jobs=(), total=0)
        self._table: DataTable | None = None
        self._status: Static | None = None
        self._detail: Static | None = None

    def compose(self) -> ComposeResult:
        yield Horizontal(
            Input(placeholder="Search by job id", id="jobs-search"),
            Static("Not connected.", id="jobs-status"),
            classes="jobs-filters",
        )
        yield DataTable(id="jobs", zebra_stripes=True)
        yield Static("", id="job-detail")

    async def on_mount(self) -> None:
        self._status = self.query_one("#jobs-status", Static)
        self._detail = self.query_one("#job-detail", Static)
        self._table = self.query_one("#jobs", DataTable)
        self._table.cursor_type = "row"
        self._table.add_columns("Id", "Queue", "State", "Retries", "Created", "Started", "Completed")

    @property
    def state_filter(self) -> JobState | None:
        return STATE_FILTERS[self._state_index]

    @property
    def selected_job(self) -> Job | None:
        if not self._table or not self._page.jobs:
            return None
        row = self._table.cursor_row
        if 0 <= row < len(self._page.jobs):
            return self._page.jobs[row]
        return None

    def set_queue(self, queue_name: str | None) -> None:
        if queue_name != self._queue_name:
            self._queue_name = queue_name
            self._offset = 0

    async def refresh_data(self) -> None:
        state = self.state_filter
        try:
            page = await self._session_manager.jobs(
                queue_name=self._queue_name,
                state=state.value if state else None,
                search=self._search,
                limit=self._page_size,
                offset=self._offset,
            )
        except Exception as exc:
            LOG.warning("Job refresh failed: %s", exc)
            self._set_status(f"✖ {exc}")
            return
        self.render_page(page)

    def render_page(self, page: JobPage) -> None:
        self._page = page
        if self._table:
            self._table.clear()
            for job in page.jobs:
                self._table.add_row(
                    job.id,
                    job.name,
                    job.state.value,
                    f"{job.retry_count}/{job.retry_limit}",
                    format_cell(job.created_on),
                    format_cell(job.started_on),
                    format_cell(job.completed_on),
                    key=job.id,
                )
        state = self.state_filter
        first = self._offset + 1 if page.jobs else 0
        last = self._offset + len(page.jobs)
        self._set_status(
            f"{self._queue_name or 'All queues'} · {state.value if state else 'any state'} · {first}-{last} of {page.total}"
        )
        self._render_detail(self.selected_job)

    async def action_cycle_state(self) -> None:
        self._state_index = (self._state_index + 1) % len(STATE_FILTERS)
        self._offset = 0
        await self.refresh_data()

    async def action_next_page(self) -> None:
        if self._offset + self._page_size >= self._page.total:
            return
        self._offset += self._page_size
        await self.refresh_data()

    async def action_previous_page(self) -> None:
        if self._offset == 0:
            return
        self._offset = max(self._offset - self._page_size, 0)
        await self.refresh_data()

    @on(Input.Submitted, "#jobs-search")
    async def _handle_search(self, event: Input.Submitted) -> None:
        self._search = event.value.strip() or None
        self._offset = 0
        await self.refresh_data()

    @on(DataTable.RowHighlighted, "#jobs")
    def _handle_row_highlighted(self, event: DataTable.RowHighlighted) -> None:
        self._render_detail(self.selected_job)

    def _render_detail(self, job: Job | None) -> None:
        if not self._detail:
            return
        if job is None:
            self._detail.update("")
            return
        lines = [
            f"{job.id}  priority {job.priority}  policy {format_cell(job.policy)}",
            f"Data: {truncate(format_cell(job.data), 200)}",
            f"Output: {truncate(format_cell(job.output), 200)}",
            f"Start after: {format_cell(job.start_after)}  Keep until: {format_cell(job.keep_until)}",
            f"Singleton: {format_cell(job.singleton_key)}  Dead letter: {format_cell(job.dead_letter)}",
        ]
        self._detail.update("\n".join(lines))

    def _set_status(self, message: str) -> None:
        if self._status:
            self._status.update(message)


__all__ = ["JobsTable", "STATE_FILTERS"]
