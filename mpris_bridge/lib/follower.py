# mpris-bridge
# SPDX-License-Identifier: GPL-3.0-or-later

"""
Follower supervisor — one ``playerctl --follow`` process for the selected player.

State machine:

    IDLE ──spawn──▶ STARTING ──first line──▶ STREAMING
      ▲                 │                        │
      └──── target None / change ◀───────────────┤
                                                 └─ process exit ─▶ RESPAWNING (watchdog)

Each spawn bumps ``generation``; the reader task carries the generation it was
started with and anything it reads after a newer generation exists is
dropped.  A target change terminates the old process (SIGTERM, bounded wait,
then SIGKILL) and reaps it before the next one is spawned, so two followers
never write state at the same time.

Capabilities (CanGoNext/CanGoPrevious) are re-queried only when status,
title, artist or URL change; position ticks reuse the cached snapshot until it
outlives its validity window.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from enum import Enum

from .artwork import ArtworkResolver
from .control_tool import ControlTool, ControlToolError
from .registry import CapabilitySnapshot, PlayerStatus, Registry
from .state_store import StateStore, UiState

logger = logging.getLogger(__name__)

FIELD_COUNT = 8


class FollowerState(str, Enum):
    IDLE = "idle"
    STARTING = "starting"
    STREAMING = "streaming"
    RESPAWNING = "respawning"


@dataclass(frozen=True)
class TrackLine:
    status: str
    player_name: str
    title: str
    artist: str
    length: float  # seconds
    art_url: str
    position: float  # seconds
    url: str

    def significant_change(self, other: "TrackLine | None") -> bool:
        if other is None:
            return True
        return (self.status != other.status or self.title != other.title
                or self.artist != other.artist or self.url != other.url)


def _micros(text: str) -> float:
    try:
        return max(float(text), 0.0) / 1_000_000
    except ValueError:
        return 0.0


def parse_metadata_line(line: str) -> TrackLine | None:
    """Split one follower line into its eight fields, None if malformed."""
    parts = [p.strip() for p in line.rstrip("\r\n").split("|", FIELD_COUNT - 1)]
    if len(parts) != FIELD_COUNT:
        return None
    status, player_name, title, artist, length, art_url, position, url = parts
    return TrackLine(
        status=status, player_name=player_name, title=title, artist=artist,
        length=_micros(length), art_url=art_url, position=_micros(position), url=url,
    )


def override_capabilities(player: str, url: str, can_next: bool, can_prev: bool) -> tuple[bool, bool]:
    """YouTube in Firefox without a playlist: only "next" (autoplay) makes sense."""
    if player.startswith("firefox") and ("youtube.com/watch" in url or "music.youtube.com" in url):
        if "list=" not in url:
            return True, False
    return can_next, can_prev


def truncate(text: str, limit: int | None) -> str:
    if not limit or len(text) <= limit:
        return text
    return text[:max(limit - 1, 0)] + "…"


class FollowerSupervisor:

    def __init__(self, registry: Registry, tool: ControlTool, store: StateStore,
                 artwork: ArtworkResolver, *, watchdog_interval: float = 2.0,
                 terminate_timeout: float = 2.0, caps_validity: float = 30.0,
                 caps_min_interval: float = 0.25, truncate_title: int | None = None,
                 truncate_artist: int | None = None, clock=time.monotonic):
        self.registry = registry
        self.tool = tool
        self.store = store
        self.artwork = artwork
        self.watchdog_interval = watchdog_interval
        self.terminate_timeout = terminate_timeout
        self.caps_validity = caps_validity
        self.caps_min_interval = caps_min_interval
        self.truncate_title = truncate_title
        self.truncate_artist = truncate_artist
        self._clock = clock

        self.target: str | None = None
        self.generation = 0
        self.state = FollowerState.IDLE
        self.respawns = 0
        self._process = None
        self._reader: asyncio.Task | None = None
        self._alive = False
        self._lock = asyncio.Lock()

        # Per-generation memory of the previous line
        self._last_line: TrackLine | None = None
        self._last_art: str | None = None
        self._thumbnail: str | None = None

    @classmethod
    def from_config(cls, registry, tool, store, artwork) -> "FollowerSupervisor":
        from .config import cfg
        return cls(
            registry, tool, store, artwork,
            watchdog_interval=float(cfg("follower", "watchdog_s", default=2)),
            terminate_timeout=float(cfg("follower", "terminate_timeout_s", default=2)),
            caps_validity=float(cfg("follower", "caps_validity_s", default=30)),
            caps_min_interval=float(cfg("follower", "caps_min_interval_ms", default=250)) / 1000,
            truncate_title=cfg("presentation", "truncate_title"),
            truncate_artist=cfg("presentation", "truncate_artist"),
        )

    @property
    def alive(self) -> bool:
        return (self._alive and self._process is not None
                and self._process.returncode is None)

    # ── Target management ──

    async def set_target(self, player: str | None):
        async with self._lock:
            if player == self.target:
                return
            logger.info("Follower target: %s -> %s", self.target or "none", player or "none")
            await self._stop_current()
            self.target = player
            if player is None:
                self.state = FollowerState.IDLE
                self.store.publish(UiState.empty(self.artwork.default_image))
                return
            await self._spawn()

    async def _spawn(self):
        self.generation += 1
        self._last_line = None
        self._last_art = None
        self._thumbnail = None
        player, generation = self.target, self.generation
        try:
            proc = await self.tool.spawn_follower(player)
        except ControlToolError as e:
            logger.error("Spawn follower failed: %s", e)
            self.state = FollowerState.RESPAWNING
            return
        self._process = proc
        self._alive = True
        self.state = FollowerState.STARTING
        self._reader = asyncio.create_task(
            self._read_loop(proc, player, generation), name=f"follower-{generation}")
        logger.info("Follower #%d started for %s (pid %s)",
                    generation, player, getattr(proc, "pid", "?"))

    async def _stop_current(self):
        reader, proc = self._reader, self._process
        self._reader = None
        self._process = None
        self._alive = False
        if reader and not reader.done():
            reader.cancel()
            try:
                await reader
            except asyncio.CancelledError:
                pass
        if proc is None or proc.returncode is not None:
            return
        try:
            proc.terminate()
        except ProcessLookupError:
            return
        try:
            await asyncio.wait_for(proc.wait(), self.terminate_timeout)
        except asyncio.TimeoutError:
            logger.warning("Follower pid %s ignored SIGTERM, killing", getattr(proc, "pid", "?"))
            try:
                proc.kill()
            except ProcessLookupError:
                pass
            await proc.wait()

    # ── Reader ──

    async def _read_loop(self, proc, player: str, generation: int):
        try:
            while True:
                raw = await proc.stdout.readline()
                if not raw:
                    break
                if generation != self.generation:
                    logger.debug("Dropping output of stale follower #%d", generation)
                    continue
                await self.handle_line(raw.decode("utf-8", errors="replace"), player, generation)
        finally:
            if generation == self.generation:
                self._alive = False
        logger.info("Follower #%d for %s exited", generation, player)

    async def handle_line(self, line: str, player: str, generation: int) -> UiState | None:
        track = parse_metadata_line(line)
        if track is None:
            if line.strip():
                logger.debug("Discarding malformed follower line: %r", line.strip())
            return None
        if generation != self.generation or player != self.target:
            return None

        significant = track.significant_change(self._last_line)
        self._last_line = track

        async with self.registry.lock:
            self.registry.set_status(player, PlayerStatus.parse(track.status))

        can_next, can_prev = await self._capabilities(player, significant)
        can_next, can_prev = override_capabilities(player, track.url, can_next, can_prev)

        if self._thumbnail is None or track.art_url != self._last_art:
            self._thumbnail = await self.artwork.resolve(track.art_url)
            self._last_art = track.art_url

        # The awaits above may have raced a restart
        if generation != self.generation:
            return None
        state = self.build_state(player, track, self._thumbnail, can_next, can_prev)
        self.store.publish(state)
        self.state = FollowerState.STREAMING
        return state

    def build_state(self, player: str, track: TrackLine, thumbnail: str,
                    can_next: bool, can_prev: bool) -> UiState:
        return UiState(
            name=player,
            title=truncate(track.title, self.truncate_title),
            artist=truncate(track.artist, self.truncate_artist),
            status=track.status,
            position=track.position,
            length=track.length,
            thumbnail=thumbnail,
            can_next=can_next,
            can_prev=can_prev,
        )

    async def _capabilities(self, player: str, significant: bool) -> tuple[bool, bool]:
        now = self._clock()
        async with self.registry.lock:
            cached = self.registry.capabilities(player)
        if cached is not None:
            age = cached.age(now)
            if significant and age < self.caps_min_interval:
                return cached.can_next, cached.can_prev
            if not significant and age <= self.caps_validity:
                return cached.can_next, cached.can_prev
        can_next, can_prev = await self.tool.query_capabilities(player)
        async with self.registry.lock:
            self.registry.store_capabilities(
                player, CapabilitySnapshot(can_next, can_prev, self._clock()))
        return can_next, can_prev

    # ── Quick update on selection change ──

    async def quick_update(self, player: str) -> UiState | None:
        """One-shot metadata for *player* so the UI switches before the follower streams."""
        try:
            line = await self.tool.get_metadata(player)
        except ControlToolError as e:
            logger.debug("Quick update for %s failed: %s", player, e)
            return None
        track = parse_metadata_line(line) if line else None
        if track is None:
            return None
        async with self.registry.lock:
            self.registry.set_status(player, PlayerStatus.parse(track.status))
        can_next, can_prev = await self._capabilities(player, significant=True)
        can_next, can_prev = override_capabilities(player, track.url, can_next, can_prev)
        thumbnail = await self.artwork.resolve(track.art_url)

        if self.registry.selection.current != player:
            return None
        if self.target == player and self.state == FollowerState.STREAMING:
            return None
        state = self.build_state(player, track, thumbnail, can_next, can_prev)
        self.store.publish(state)
        return state

    # ── Watchdog ──

    async def check(self) -> bool:
        """Respawn the follower if a target is set but the process is gone."""
        async with self._lock:
            if self.target is None or self.alive:
                return False
            logger.warning("Follower for %s is not running, respawning", self.target)
            await self._stop_current()
            self.state = FollowerState.RESPAWNING
            self.respawns += 1
            await self._spawn()
            return True

    async def watchdog_loop(self):
        while True:
            await asyncio.sleep(self.watchdog_interval)
            try:
                await self.check()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Follower watchdog check failed")

    async def stop(self):
        async with self._lock:
            await self._stop_current()
            self.target = None
            self.state = FollowerState.IDLE
