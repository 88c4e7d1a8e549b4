# mpris-bridge
# SPDX-License-Identifier: GPL-3.0-or-later

"""
Control-tool abstraction: everything the bridge asks of the MPRIS world.

The bridge never speaks the MPRIS property model itself.  Enumeration, status,
one-shot metadata, transport commands and the metadata follower go through
``playerctl``; CanGoNext/CanGoPrevious are read with ``busctl`` because
playerctl does not expose them.

Subclass contract:

    class MyTool(ControlTool):
        async def list_players(self) -> list[str]: ...
        async def get_status(self, player) -> PlayerStatus | None: ...
        async def get_metadata(self, player) -> str | None: ...
        async def query_capabilities(self, player) -> tuple[bool, bool]: ...
        def run_command(self, player, args) -> bool: ...        # blocking
        async def spawn_follower(self, player): ...               # Process-like

Async methods raise ControlToolError when the tool itself is unusable
(missing binary, timeout); a player that simply is not there yields an empty
result instead.
"""

import asyncio
import logging
import subprocess
from abc import ABC, abstractmethod

from .config import cfg
from .registry import PlayerStatus

logger = logging.getLogger(__name__)

MPRIS_PREFIX = "org.mpris.MediaPlayer2."
MPRIS_PATH = "/org/mpris/MediaPlayer2"
MPRIS_PLAYER_IFACE = "org.mpris.MediaPlayer2.Player"

# Eight positional fields, parsed by follower.parse_metadata_line()
METADATA_FORMAT = (
    "{{status}}|{{playerName}}|{{title}}|{{artist}}|{{mpris:length}}"
    "|{{mpris:artUrl}}|{{position}}|{{xesam:url}}"
)


class ControlToolError(Exception):
    """The external control tool could not be run or did not answer in time."""


class ControlTool(ABC):
    """Interface every control backend must implement."""

    @abstractmethod
    async def list_players(self) -> list[str]: ...

    @abstractmethod
    async def get_status(self, player: str) -> PlayerStatus | None: ...

    @abstractmethod
    async def get_metadata(self, player: str) -> str | None: ...

    @abstractmethod
    async def query_capabilities(self, player: str) -> tuple[bool, bool]: ...

    @abstractmethod
    def run_command(self, player: str, args: list[str]) -> bool: ...

    @abstractmethod
    async def spawn_follower(self, player: str): ...


class PlayerctlTool(ControlTool):
    """Production backend: playerctl for everything, busctl for capabilities."""

    def __init__(self, playerctl: str = "playerctl", busctl: str = "busctl",
                 query_timeout: float = 3.0, command_timeout: float = 5.0):
        self.playerctl = playerctl
        self.busctl = busctl
        self.query_timeout = query_timeout
        self.command_timeout = command_timeout

    async def _capture(self, *argv: str) -> tuple[int, str]:
        """Run *argv*, return (exit code, stdout). Raises ControlToolError."""
        try:
            proc = await asyncio.create_subprocess_exec(
                *argv, stdout=subprocess.PIPE, stderr=subprocess.DEVNULL,
            )
        except OSError as e:
            raise ControlToolError(f"cannot run {argv[0]}: {e}") from e
        try:
            stdout, _ = await asyncio.wait_for(proc.communicate(), self.query_timeout)
        except asyncio.TimeoutError:
            proc.kill()
            await proc.wait()
            raise ControlToolError(f"{' '.join(argv[:3])} timed out after {self.query_timeout}s")
        return proc.returncode, stdout.decode(errors="replace")

    async def list_players(self) -> list[str]:
        # playerctl exits non-zero with "No players found" on stderr; that is an empty list
        _, out = await self._capture(self.playerctl, "-l")
        names = []
        for line in out.splitlines():
            name = line.strip()
            if name and name not in names:
                names.append(name)
        return names

    async def get_status(self, player: str) -> PlayerStatus | None:
        code, out = await self._capture(self.playerctl, "-p", player, "status")
        if code != 0:
            return None
        return PlayerStatus.parse(out)

    async def get_metadata(self, player: str) -> str | None:
        code, out = await self._capture(
            self.playerctl, "-p", player, "metadata", "--format", METADATA_FORMAT)
        if code != 0 or not out.strip():
            return None
        return out.strip()

    async def _get_bool_property(self, player: str, prop: str) -> bool:
        try:
            code, out = await self._capture(
                self.busctl, "--user", "get-property", MPRIS_PREFIX + player,
                MPRIS_PATH, MPRIS_PLAYER_IFACE, prop)
        except ControlToolError as e:
            logger.debug("busctl %s for %s failed: %s", prop, player, e)
            return False
        return code == 0 and "b true" in out

    async def query_capabilities(self, player: str) -> tuple[bool, bool]:
        can_next, can_prev = await asyncio.gather(
            self._get_bool_property(player, "CanGoNext"),
            self._get_bool_property(player, "CanGoPrevious"),
        )
        return can_next, can_prev

    def run_command(self, player: str, args: list[str]) -> bool:
        """Blocking: run ``playerctl -p <player> <args>``.  Call from a worker thread."""
        argv = [self.playerctl, "-p", player, *args]
        try:
            result = subprocess.run(
                argv, stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL,
                timeout=self.command_timeout,
            )
        except subprocess.TimeoutExpired:
            logger.warning("%s timed out after %.1fs", " ".join(argv), self.command_timeout)
            return False
        except (OSError, ValueError) as e:
            # ValueError: NUL byte or unencodable text in argv
            logger.warning("Cannot run %s: %s", self.playerctl, e)
            return False
        if result.returncode != 0:
            logger.info("%s exited with %d", " ".join(argv), result.returncode)
        return result.returncode == 0

    async def spawn_follower(self, player: str):
        try:
            return await asyncio.create_subprocess_exec(
                self.playerctl, "-p", player, "metadata",
                "--format", METADATA_FORMAT, "--follow",
                stdout=subprocess.PIPE, stderr=subprocess.DEVNULL,
            )
        except OSError as e:
            raise ControlToolError(f"cannot spawn follower for {player}: {e}") from e


def create_control_tool() -> ControlTool:
    """Build the control backend from the "control" config section.

      playerctl          – playerctl binary (default "playerctl")
      busctl             – busctl binary (default "busctl")
      query_timeout_s    – timeout for status/metadata/capability queries (default 3)
      command_timeout_s  – timeout for transport commands (default 5)
    """
    tool = PlayerctlTool(
        playerctl=cfg("control", "playerctl", default="playerctl"),
        busctl=cfg("control", "busctl", default="busctl"),
        query_timeout=float(cfg("control", "query_timeout_s", default=3)),
        command_timeout=float(cfg("control", "command_timeout_s", default=5)),
    )
    logger.info("Control tool: %s (+ %s for capabilities)", tool.playerctl, tool.busctl)
    return tool
