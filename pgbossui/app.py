"""Textual application entry point for pgbossui."""

from __future__ import annotations

import logging
from typing import Callable

from textual import on
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.widgets import Footer, Header, TabbedContent, TabPane

from .config import LOG_FILE, AppConfig, load_config, save_config
from .providers import ProfileSwitchProvider, QueueCommandsProvider
from .session import ActionResult, SessionError, SessionManager, SessionState
from .widgets import DashboardPanel, JobsTable, MetricsPanel, QueueSelected, QueueTable, ScheduleTable, StatusBar

LOG = logging.getLogger(__name__)


def _load_app_config() -> AppConfig:
    """Load configuration with a small wrapper for future overrides."""

    return load_config()


def _configure_logging(level: str) -> None:
    # Textual owns the terminal, so records go to a file next to the config.
    LOG_FILE.parent.mkdir(parents=True, exist_ok=True)
    logging.basicConfig(
        filename=LOG_FILE,
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


class PgBossApp(App[None]):
    """Dashboard for inspecting and operating pg-boss queues."""

    COMMANDS = App.COMMANDS | {ProfileSwitchProvider, QueueCommandsProvider}
    CSS = """
    Screen {
        layout: vertical;
    }
    #tabs {
        height: 1fr;
    }
    """

    BINDINGS = [
        ("ctrl+c", "quit", "Quit"),
        ("ctrl+r", "refresh", "Refresh"),
        ("ctrl+p", "command_palette", "Command Palette"),
        Binding("r", "retry_job", "Retry job"),
        Binding("c", "cancel_job", "Cancel job"),
        Binding("R", "retry_queue", "Retry queue"),
        Binding("C", "cancel_queue", "Cancel queue"),
        Binding("P", "purge_queue", "Purge completed"),
    ]

    def __init__(self) -> None:
        super().__init__()
        self._config = _load_app_config()
        self._session_manager = SessionManager(self._config)
        self._session_unsubscribe: Callable[[], None] | None = None
        self._dashboard: DashboardPanel | None = None
        self._queue_table: QueueTable | None = None
        self._jobs_table: JobsTable | None = None
        self._schedule_table: ScheduleTable | None = None
        self._metrics_panel: MetricsPanel | None = None
        self._status_bar: StatusBar | None = None
        self._pending_purge: str | None = None
        self._install_session_listener()

    def compose(self) -> ComposeResult:
        """Compose the root layout."""

        thresholds = self._config.health
        self._dashboard = DashboardPanel(self._session_manager, thresholds)
        self._queue_table = QueueTable(self._session_manager, thresholds)
        self._jobs_table = JobsTable(self._session_manager)
        self._schedule_table = ScheduleTable(self._session_manager)
        self._metrics_panel = MetricsPanel(self._session_manager)
        self._status_bar = StatusBar(self._session_manager)
        yield Header(show_clock=True)
        with TabbedContent(id="tabs"):
            with TabPane("Dashboard", id="tab-dashboard"):
                yield self._dashboard
            with TabPane("Queues", id="tab-queues"):
                yield self._queue_table
            with TabPane("Jobs", id="tab-jobs"):
                yield self._jobs_table
            with TabPane("Schedules", id="tab-schedules"):
                yield self._schedule_table
            with TabPane("Metrics", id="tab-metrics"):
                yield self._metrics_panel
        yield self._status_bar
        yield Footer()

    async def on_mount(self) -> None:
        name = self._initial_profile_name()
        if name is not None:
            self.run_worker(self.switch_profile(name, persist=False), group="connect", exclusive=True)
        self.set_interval(self._config.refresh_interval, self._schedule_refresh)

    @property
    def session_manager(self) -> SessionManager:
        """Expose the session manager for tests."""

        return self._session_manager

    async def switch_profile(self, name: str, *, persist: bool = True) -> None:
        """Connect to the requested profile and persist the choice."""

        try:
            state = await self._session_manager.connect(name)
        except (SessionError, ValueError) as exc:
            LOG.warning("Could not connect profile %s: %s", name, exc)
            if self._status_bar:
                self._status_bar.show_error(str(exc))
            self.notify(str(exc), title=f"Connection failed: {name}", severity="error")
            return
        if persist:
            self._config = self._config.with_active_profile(state.profile.name)
            save_config(self._config)
        self.notify(f"Connected to profile: {state.profile.name}", severity="information")
        await self.action_refresh()

    async def action_refresh(self) -> None:
        if self._session_manager.state is None:
            return
        for panel in (self._dashboard, self._queue_table, self._jobs_table, self._schedule_table, self._metrics_panel):
            if panel is not None:
                await panel.refresh_data()

    async def action_retry_job(self) -> None:
        job = self._jobs_table.selected_job if self._jobs_table else None
        if job is None:
            self.notify("Select a job on the Jobs tab first.", severity="warning")
            return
        result = await self._session_manager.retry_job(job.id)
        await self._report(result, f"Job {job.id} queued for retry.")

    async def action_cancel_job(self) -> None:
        job = self._jobs_table.selected_job if self._jobs_table else None
        if job is None:
            self.notify("Select a job on the Jobs tab first.", severity="warning")
            return
        result = await self._session_manager.cancel_job(job.id)
        await self._report(result, f"Job {job.id} cancelled.")

    async def action_retry_queue(self) -> None:
        queue = self._selected_queue()
        if queue is None:
            return
        result = await self._session_manager.retry_all_jobs(queue)
        await self._report(result, f"{result.count} failed or cancelled jobs in {queue} queued for retry.")

    async def action_cancel_queue(self) -> None:
        queue = self._selected_queue()
        if queue is None:
            return
        result = await self._session_manager.cancel_all_jobs(queue)
        await self._report(result, f"{result.count} pending jobs in {queue} cancelled.")

    async def action_purge_queue(self) -> None:
        queue = self._selected_queue()
        if queue is None:
            return
        if self._pending_purge != queue:
            self._pending_purge = queue
            self.notify(f"Press P again to delete completed jobs in {queue}.", severity="warning")
            return
        self._pending_purge = None
        result = await self._session_manager.purge_queue(queue, "completed")
        await self._report(result, f"{result.count} completed jobs deleted from {queue}.")

    async def show_queue(self, queue_name: str) -> None:
        """Filter the Jobs and Metrics tabs to one queue and open the Jobs tab."""

        self._focus_queue(queue_name)
        if self.is_running:
            self.query_one("#tabs", TabbedContent).active = "tab-jobs"
        for panel in (self._jobs_table, self._metrics_panel):
            if panel is not None:
                await panel.refresh_data()

    @on(QueueSelected)
    def _handle_queue_selected(self, event: QueueSelected) -> None:
        self._focus_queue(event.queue_name)

    def _focus_queue(self, queue_name: str) -> None:
        self._pending_purge = None
        if self._jobs_table:
            self._jobs_table.set_queue(queue_name)
        if self._metrics_panel:
            self._metrics_panel.set_queue(queue_name)

    async def _report(self, result: ActionResult, message: str) -> None:
        if not result.success:
            self.notify(result.error or "Action failed", severity="error")
            return
        self.notify(message, severity="information")
        await self.action_refresh()

    def _selected_queue(self) -> str | None:
        queue = self._queue_table.selected_queue if self._queue_table else None
        if queue is None:
            self.notify("Select a queue on the Queues tab first.", severity="warning")
        return queue

    def _schedule_refresh(self) -> None:
        if self._session_manager.state is None:
            return
        self.run_worker(self.action_refresh(), group="refresh", exclusive=True)

    def _initial_profile_name(self) -> str | None:
        active = self._config.active_profile
        if active and self._config.profile(active) is not None:
            return active
        profiles = self._session_manager.profiles
        return profiles[0].name if profiles else None

    async def _shutdown(self) -> None:
        if self._session_unsubscribe:
            self._session_unsubscribe()
            self._session_unsubscribe = None
        await self._session_manager.shutdown()
        await super()._shutdown()

    def _install_session_listener(self) -> None:
        if self._session_unsubscribe:
            self._session_unsubscribe()
        self._session_unsubscribe = self._session_manager.subscribe(self._handle_session_state)

    def _handle_session_state(self, state: SessionState) -> None:
        if not state.connected:
            self.sub_title = f"{state.profile.name} · disconnected"
            return
        self.sub_title = f"{state.profile.name} · {state.profile.schema_name}"


def main() -> None:
    """Invoke the Textual application."""

    config = _load_app_config()
    _configure_logging(config.log_level)
    PgBossApp().run()


if __name__ == "__main__":
    main()
