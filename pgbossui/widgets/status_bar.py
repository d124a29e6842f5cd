"""Status bar widget that mirrors session information."""

from __future__ import annotations

from typing import Callable

from textual.widgets import Static

from pgbossui.session import SessionManager, SessionState

from .formatting import EMPTY


class StatusBar(Static):
    """Compact status strip rendered above Textual's footer."""

    DEFAULT_CSS = """
    StatusBar {
        height: 1;
        padding: 0 1;
        background: $surface-darken-3;
        color: $text;
    }
    """

    def __init__(self, session_manager: SessionManager) -> None:
        super().__init__("Not connected", id="status-bar")
        self._session_manager = session_manager
        self._unsubscribe: Callable[[], None] | None = None

    async def on_mount(self) -> None:
        self._unsubscribe = self._session_manager.subscribe(self._handle_session_update)

    def on_unmount(self) -> None:
        if self._unsubscribe:
            self._unsubscribe()
            self._unsubscribe = None

    def show_error(self, message: str) -> None:
        reason = message.splitlines()[0][:120] if message else "unknown error"
        self.update(f"Not connected | Error: {reason}")

    def _handle_session_update(self, state: SessionState) -> None:
        self.update(describe_state(state))


def describe_state(state: SessionState) -> str:
    status = state.status or ("Connected" if state.connected else "Idle")
    latency = f"{state.latency_ms} ms" if state.latency_ms is not None else EMPTY
    refreshed = state.refreshed_at.astimezone().strftime("%H:%M:%S")
    parts = [
        f"Profile: {state.profile.name}",
        f"Schema: {state.profile.schema_name}",
    ]
    info = state.schema_info
    if info is not None:
        version = str(info.version) if info.version is not None else "unknown"
        parts.append(f"pg-boss v{version} ({info.column_case.value})")
    parts.append(f"Status: {status} ({latency})")
    parts.append(f"Refreshed: {refreshed}")
    if state.last_error:
        parts.append(f"Error: {state.last_error.splitlines()[0][:80]}")
    return " | ".join(parts)


__all__ = ["StatusBar", "describe_state"]
