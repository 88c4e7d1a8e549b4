"""Fakes shared by the tests: a scripted control tool, follower processes and a hand-driven clock."""

import asyncio

from mpris_bridge.lib.control_tool import ControlTool, ControlToolError
from mpris_bridge.lib.registry import PlayerStatus


class FakeProcess:
    """Quacks like asyncio.subprocess.Process for the follower supervisor."""

    _next_pid = 1000

    def __init__(self, ignore_term: bool = False):
        FakeProcess._next_pid += 1
        self.pid = FakeProcess._next_pid
        self.stdout = asyncio.StreamReader()
        self.returncode = None
        self.ignore_term = ignore_term
        self.terminated = False
        self.killed = False
        self._exited = asyncio.Event()

    def emit(self, line: str):
        self.stdout.feed_data((line + "\n").encode())

    def exit(self, code: int = 0):
        if self.returncode is None:
            self.returncode = code
            self.stdout.feed_eof()
            self._exited.set()

    def terminate(self):
        self.terminated = True
        if not self.ignore_term:
            self.exit(-15)

    def kill(self):
        self.killed = True
        self.exit(-9)

    async def wait(self):
        await self._exited.wait()
        return self.returncode


class FakeTool(ControlTool):

    def __init__(self, players=(), statuses=None, metadata=None, caps=None):
        self.players = list(players)
        self.statuses = dict(statuses or {})
        self.metadata = dict(metadata or {})
        self.caps = dict(caps or {})
        self.fail = False
        self.command_ok = True
        self.commands: list[tuple[str, list[str]]] = []
        self.caps_queries: list[str] = []
        self.status_queries: list[str] = []
        self.list_calls = 0
        self.spawned: list[tuple[str, FakeProcess]] = []
        self.ignore_term = False

    async def list_players(self):
        self.list_calls += 1
        if self.fail:
            raise ControlToolError("playerctl not found")
        return list(self.players)

    async def get_status(self, player):
        self.status_queries.append(player)
        if self.fail:
            raise ControlToolError("playerctl not found")
        return self.statuses.get(player)

    async def get_metadata(self, player):
        if self.fail:
            raise ControlToolError("playerctl not found")
        return self.metadata.get(player)

    async def query_capabilities(self, player):
        self.caps_queries.append(player)
        return self.caps.get(player, (True, True))

    def run_command(self, player, args):
        self.commands.append((player, list(args)))
        return self.command_ok and player in self.players

    async def spawn_follower(self, player):
        if self.fail:
            raise ControlToolError("playerctl not found")
        proc = FakeProcess(ignore_term=self.ignore_term)
        self.spawned.append((player, proc))
        return proc


class ManualSleeper:
    """Injectable sleep: callers block until the test calls advance()."""

    def __init__(self):
        self.waiting: list[tuple[float, asyncio.Future]] = []

    async def sleep(self, delay):
        fut = asyncio.get_running_loop().create_future()
        self.waiting.append((delay, fut))
        await fut

    def advance(self):
        waiting, self.waiting = self.waiting, []
        for _, fut in waiting:
            if not fut.done():
                fut.set_result(None)
        return len(waiting)


class ManualClock:

    def __init__(self, now: float = 100.0):
        self.now = now

    def __call__(self):
        return self.now


async def settle(rounds: int = 10):
    """Let ready tasks run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


def line(status="Playing", player="spotify", title="Song", artist="Artist",
         length=180_000_000, art="", position=0, url=""):
    return f"{status}|{player}|{title}|{artist}|{length}|{art}|{position}|{url}"


class FakeArtwork:
    """Stands in for ArtworkResolver; each resolve yields a new cover path."""

    def __init__(self, default_image="/usr/share/cover.png"):
        self.default_image = default_image
        self.calls: list[str] = []
        self.gate: asyncio.Event | None = None

    async def resolve(self, art_url):
        self.calls.append(art_url)
        if self.gate is not None:
            await self.gate.wait()
        if not art_url:
            return self.default_image
        return f"/covers/{len(self.calls)}.jpg"


PLAYING = PlayerStatus.PLAYING
PAUSED = PlayerStatus.PAUSED
STOPPED = PlayerStatus.STOPPED
