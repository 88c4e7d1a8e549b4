# mpris-bridge
# SPDX-License-Identifier: GPL-3.0-or-later

"""
Player registry — the one piece of shared mutable state.

Holds the known players (in enumeration order), their last-known status, the
focus hint, the selection state and the capability cache.  Every
read-modify-write from the ingestion pipeline or the follower happens while
holding ``Registry.lock``; plain reads of a single attribute are safe on the
event loop without it.
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable

logger = logging.getLogger(__name__)


class PlayerStatus(str, Enum):
    PLAYING = "Playing"
    PAUSED = "Paused"
    STOPPED = "Stopped"

    @classmethod
    def parse(cls, text: str) -> "PlayerStatus | None":
        """Map playerctl's status output to a PlayerStatus, None if unrecognised."""
        value = text.strip().lower()
        for status in cls:
            if status.value.lower() == value:
                return status
        return None


@dataclass(frozen=True)
class CapabilitySnapshot:
    can_next: bool
    can_prev: bool
    captured_at: float  # monotonic seconds

    def age(self, now: float) -> float:
        return now - self.captured_at


@dataclass
class SelectionState:
    current: str | None = None
    last_selected: str | None = None


class Registry:
    """Known players + statuses + selection, behind one asyncio.Lock."""

    def __init__(self, admits: Callable[[str], bool] = lambda name: True):
        self.lock = asyncio.Lock()
        self._admits = admits
        self._players: list[str] = []
        self._statuses: dict[str, PlayerStatus] = {}
        self._capabilities: dict[str, CapabilitySnapshot] = {}
        self.selection = SelectionState()
        self.focus_hint: str | None = None

    # ── Players & statuses ──

    @property
    def players(self) -> tuple[str, ...]:
        return tuple(self._players)

    @property
    def statuses(self) -> dict[str, PlayerStatus]:
        return dict(self._statuses)

    def __contains__(self, player: str) -> bool:
        return player in self._players

    def __len__(self) -> int:
        return len(self._players)

    def admits(self, player: str) -> bool:
        return self._admits(player)

    def replace_players(self, names: list[str]) -> list[str]:
        """Replace the key set with the admitted *names*, keeping their order.

        Statuses of retained players survive, statuses and capabilities of
        removed players are dropped.  Returns the newly added players.
        """
        admitted = []
        for name in names:
            if name not in admitted and self._admits(name):
                admitted.append(name)
        added = [name for name in admitted if name not in self._players]
        removed = [name for name in self._players if name not in admitted]
        for name in removed:
            self._statuses.pop(name, None)
            self._capabilities.pop(name, None)
        self._players = admitted
        if added or removed:
            logger.info("Players: %s (added %s, removed %s)",
                        ", ".join(admitted) or "none", added or "-", removed or "-")
        return added

    def set_status(self, player: str, status: PlayerStatus | None):
        if player not in self._players:
            return
        if status is None:
            self._statuses.pop(player, None)
        else:
            self._statuses[player] = status

    def status(self, player: str) -> PlayerStatus | None:
        return self._statuses.get(player)

    # ── Capabilities ──

    def capabilities(self, player: str) -> CapabilitySnapshot | None:
        return self._capabilities.get(player)

    def store_capabilities(self, player: str, snapshot: CapabilitySnapshot):
        self._capabilities[player] = snapshot
