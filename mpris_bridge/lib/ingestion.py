# mpris-bridge
# SPDX-License-Identifier: GPL-3.0-or-later

"""
Event ingestion: raw bus/focus events → registry refreshes → selection.

Signal sources push typed events into one bounded queue.  The consumer loop
filters bus signals down to the MPRIS namespace, then feeds two debounce
gates:

  NameOwnerChanged  (org.mpris.MediaPlayer2.*)      → enumerate players
  PropertiesChanged (/org/mpris/MediaPlayer2, Player) → refresh statuses

Focus events bypass the gates and re-run the selector straight away.  Every
registry mutation and selector run happens under ``Registry.lock``; when the
selection changes, ``on_selection_change(previous, current)`` is awaited while
the lock is still held so restarts are applied in selection order.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable

from .control_tool import MPRIS_PATH, MPRIS_PLAYER_IFACE, MPRIS_PREFIX, ControlTool, ControlToolError
from .debounce import Debouncer
from .registry import Registry
from .selector import SelectionConfig, apply_selection, select_player

logger = logging.getLogger(__name__)

DBUS_IFACE = "org.freedesktop.DBus"
PROPERTIES_IFACE = "org.freedesktop.DBus.Properties"
MPRIS_ROOT_IFACE = "org.mpris.MediaPlayer2"

ENUMERATE = "enumerate"
REFRESH = "refresh"

QUEUE_SIZE = 256


@dataclass(frozen=True)
class BusSignal:
    member: str
    interface: str
    path: str
    arg0: str = ""


@dataclass(frozen=True)
class FocusChanged:
    hint: str | None


def classify_signal(sig: BusSignal) -> str | None:
    """Which refresh a raw bus signal asks for, or None if it is not ours."""
    if sig.interface == DBUS_IFACE and sig.member == "NameOwnerChanged":
        if sig.arg0.startswith(MPRIS_PREFIX):
            return ENUMERATE
        return None
    if sig.interface == PROPERTIES_IFACE and sig.member == "PropertiesChanged":
        if sig.path == MPRIS_PATH and sig.arg0 in (MPRIS_PLAYER_IFACE, MPRIS_ROOT_IFACE):
            return REFRESH
        return None
    return None


SelectionCallback = Callable[[str | None, str | None], Awaitable[None]]


async def _ignore_selection(previous, current):
    pass


class IngestionPipeline:

    def __init__(self, registry: Registry, tool: ControlTool, config: SelectionConfig,
                 on_selection_change: SelectionCallback = _ignore_selection,
                 enumerate_interval: float = 0.3, refresh_interval: float = 0.25,
                 sleep=asyncio.sleep, queue_size: int = QUEUE_SIZE):
        self.registry = registry
        self.tool = tool
        self.config = config
        self.queue: asyncio.Queue = asyncio.Queue(maxsize=queue_size)
        self.discarded = 0
        self._on_selection_change = on_selection_change
        self._gates = {
            ENUMERATE: Debouncer(enumerate_interval, self.enumerate, "enumerate", sleep=sleep),
            REFRESH: Debouncer(refresh_interval, self.refresh_statuses, "refresh", sleep=sleep),
        }

    @classmethod
    def from_config(cls, registry, tool, config, on_selection_change) -> "IngestionPipeline":
        from .config import cfg
        return cls(
            registry, tool, config, on_selection_change,
            enumerate_interval=float(cfg("debounce", "enumerate_ms", default=300)) / 1000,
            refresh_interval=float(cfg("debounce", "refresh_ms", default=250)) / 1000,
        )

    def gate(self, kind: str) -> Debouncer:
        return self._gates[kind]

    # ── Consumer loop ──

    async def submit(self, event):
        """Producer side: waits while the queue is full."""
        await self.queue.put(event)

    async def run(self):
        while True:
            event = await self.queue.get()
            try:
                await self.handle_event(event)
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Error handling %r", event)

    async def handle_event(self, event):
        if isinstance(event, FocusChanged):
            await self.set_focus(event.hint)
            return
        if isinstance(event, BusSignal):
            kind = classify_signal(event)
            if kind is None:
                self.discarded += 1
                logger.debug("Ignoring %s.%s on %s (%s)",
                             event.interface, event.member, event.path, event.arg0)
                return
            self._gates[kind].trigger()
            return
        logger.warning("Unknown event type on ingestion queue: %r", event)

    # ── Refresh executions ──

    async def enumerate(self):
        """Replace the registry's player set with what the control tool reports."""
        async with self.registry.lock:
            try:
                names = await self.tool.list_players()
                new = [n for n in names if self.registry.admits(n) and n not in self.registry]
                statuses = await asyncio.gather(*(self.tool.get_status(n) for n in new))
            except ControlToolError as e:
                logger.warning("Player enumeration failed (keeping previous set): %s", e)
                return
            self.registry.replace_players(names)
            for name, status in zip(new, statuses):
                self.registry.set_status(name, status)
            await self._reselect_locked()

    async def refresh_statuses(self):
        """Re-read the status of every known player."""
        async with self.registry.lock:
            players = self.registry.players
            try:
                statuses = await asyncio.gather(*(self.tool.get_status(p) for p in players))
            except ControlToolError as e:
                logger.warning("Status refresh failed (keeping previous statuses): %s", e)
                return
            for player, status in zip(players, statuses):
                self.registry.set_status(player, status)
            await self._reselect_locked()

    async def set_focus(self, hint: str | None):
        async with self.registry.lock:
            if hint == self.registry.focus_hint:
                return
            logger.debug("Focus hint: %s", hint)
            self.registry.focus_hint = hint
            await self._reselect_locked()

    async def reselect(self):
        async with self.registry.lock:
            await self._reselect_locked()

    async def _reselect_locked(self):
        state = self.registry.selection
        previous = state.current
        result = select_player(
            self.registry.players, self.registry.statuses,
            self.registry.focus_hint, self.config, state.last_selected,
        )
        if apply_selection(state, result):
            await self._on_selection_change(previous, result)

    async def seed(self):
        """Initial enumeration at startup (no debounce)."""
        await self.enumerate()

    async def close(self):
        for gate in self._gates.values():
            await gate.close()
