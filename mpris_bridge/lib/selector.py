# mpris-bridge
# SPDX-License-Identifier: GPL-3.0-or-later

"""
Player selection policy.

``select_player`` is a pure function of (players, statuses, focus hint,
config, last-selected).  Tie-breaks are fixed:

  something is playing:
    1. a playing player matching the focus hint
    2. the first priority prefix that matches a playing player
    3. the first playing player in enumeration order
  nothing is playing:
    1. the last selected player, if remember_last and it is still around
    2. any player matching the focus hint
    3. the first priority prefix that matches any player
    4. fallback "any" → first player, "none" → nothing

``apply_selection`` folds a result into a SelectionState (current +
sticky last-selected) and reports whether the current player changed.
"""

import logging
from dataclasses import dataclass, field
from typing import Iterable, Mapping

from .config import cfg
from .registry import PlayerStatus, SelectionState

logger = logging.getLogger(__name__)

FALLBACK_ANY = "any"
FALLBACK_NONE = "none"

DEFAULT_PRIORITY = ("firefox", "spotify", "vlc", "mpv")


@dataclass(frozen=True)
class SelectionConfig:
    priority: tuple[str, ...] = DEFAULT_PRIORITY
    remember_last: bool = True
    fallback: str = FALLBACK_ANY
    include: frozenset[str] = field(default_factory=frozenset)
    exclude: frozenset[str] = field(default_factory=frozenset)

    @classmethod
    def from_config(cls) -> "SelectionConfig":
        fallback = str(cfg("selection", "fallback", default=FALLBACK_ANY)).lower()
        if fallback not in (FALLBACK_ANY, FALLBACK_NONE):
            fallback = FALLBACK_ANY
        return cls(
            priority=tuple(cfg("selection", "priority", default=DEFAULT_PRIORITY)),
            remember_last=bool(cfg("selection", "remember_last", default=True)),
            fallback=fallback,
            include=frozenset(cfg("selection", "include", default=())),
            exclude=frozenset(cfg("selection", "exclude", default=())),
        )

    def admits(self, player: str) -> bool:
        """Include/exclude membership filter (prefix match)."""
        if self.include and not any(player.startswith(p) for p in self.include):
            return False
        if any(player.startswith(p) for p in self.exclude):
            return False
        return True


def _first_with_prefix(candidates: list[str], prefix: str) -> str | None:
    for name in candidates:
        if name.startswith(prefix):
            return name
    return None


def _by_priority(candidates: list[str], priority: Iterable[str]) -> str | None:
    for want in priority:
        found = _first_with_prefix(candidates, want)
        if found is not None:
            return found
    return None


def select_player(players: Iterable[str],
                  statuses: Mapping[str, PlayerStatus],
                  focus_hint: str | None,
                  config: SelectionConfig,
                  last_selected: str | None = None) -> str | None:
    candidates = [p for p in players if config.admits(p)]
    if not candidates:
        return None

    playing = [p for p in candidates if statuses.get(p) == PlayerStatus.PLAYING]
    if playing:
        if focus_hint:
            found = _first_with_prefix(playing, focus_hint)
            if found is not None:
                return found
        found = _by_priority(playing, config.priority)
        if found is not None:
            return found
        return playing[0]

    if config.remember_last and last_selected in candidates:
        return last_selected
    if focus_hint:
        found = _first_with_prefix(candidates, focus_hint)
        if found is not None:
            return found
    found = _by_priority(candidates, config.priority)
    if found is not None:
        return found
    if config.fallback == FALLBACK_ANY:
        return candidates[0]
    return None


def apply_selection(state: SelectionState, result: str | None) -> bool:
    """Store *result* as the current selection; True if it changed."""
    changed = state.current != result
    state.current = result
    if result is not None:
        state.last_selected = result
    if changed:
        logger.info("Selected player: %s", result or "none")
    return changed
