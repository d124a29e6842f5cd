"""Command palette entries for profiles and pg-boss queues."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Awaitable, Callable

from textual.command import DiscoveryHit, Hit, Hits, Provider

from .session import SessionError, SessionManager

LOG = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class PaletteCommand:
    label: str
    help: str
    run: Callable[[], Awaitable[None]]


class _SessionCommands(Provider):
    """Shared search/discover plumbing over a list of palette commands."""

    async def commands(self) -> list[PaletteCommand]:
        raise NotImplementedError

    async def search(self, query: str) -> Hits:
        matcher = self.matcher(query)
        for command in await self.commands():
            score = matcher.match(command.label)
            if score > 0:
                yield Hit(
                    score=score,
                    match_display=matcher.highlight(command.label),
                    command=command.run,
                    help=command.help,
                )

    async def discover(self) -> Hits:
        for command in await self.commands():
            yield DiscoveryHit(display=command.label, command=command.run, help=command.help)

    @property
    def session_manager(self) -> SessionManager | None:
        manager = getattr(self.app, "session_manager", None)
        return manager if isinstance(manager, SessionManager) else None


class ProfileSwitchProvider(_SessionCommands):
    """Connect to any configured profile other than the active one."""

    async def commands(self) -> list[PaletteCommand]:
        manager = self.session_manager
        if manager is None:
            return []
        return [
            PaletteCommand(
                label=f"Connect to profile: {profile.name}",
                help=f"Open the {profile.schema_name} schema on this connection.",
                run=self._connect(profile.name),
            )
            for profile in manager.profiles
            if profile.name != manager.active_profile_name
        ]

    def _connect(self, name: str) -> Callable[[], Awaitable[None]]:
        async def _run() -> None:
            await self.app.switch_profile(name)

        return _run


class QueueCommandsProvider(_SessionCommands):
    """Refresh the dashboard or jump straight to one queue's jobs."""

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self._queue_names: tuple[str, ...] = ()

    async def startup(self) -> None:
        manager = self.session_manager
        if manager is None or manager.state is None:
            return
        try:
            queues = await manager.queues()
        except SessionError:
            return
        except Exception as exc:
            LOG.warning("Could not list queues for the command palette: %s", exc)
            return
        self._queue_names = tuple(queue.name for queue in queues)

    async def commands(self) -> list[PaletteCommand]:
        if self.session_manager is None or self.session_manager.state is None:
            return []
        commands = [PaletteCommand("Refresh queues", "Reload every tab (Ctrl+R).", self.app.action_refresh)]
        for name in self._queue_names:
            commands.append(
                PaletteCommand(f"Jump to queue: {name}", f"Show jobs and latency for {name}.", self._show(name))
            )
        return commands

    def _show(self, name: str) -> Callable[[], Awaitable[None]]:
        async def _run() -> None:
            await self.app.show_queue(name)

        return _run


__all__ = ["PaletteCommand", "ProfileSwitchProvider", "QueueCommandsProvider"]
