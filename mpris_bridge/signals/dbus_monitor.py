# mpris-bridge
# SPDX-License-Identifier: GPL-3.0-or-later

"""
Session-bus signal source backed by ``dbus-monitor``.

dbus-monitor prints one header per message followed by its indented arguments:

    signal time=1712.3 sender=org.freedesktop.DBus -> destination=:1.7 serial=9 path=/org/freedesktop/DBus; interface=org.freedesktop.DBus; member=NameOwnerChanged
       string "org.mpris.MediaPlayer2.spotify"
       string ""
       string ":1.42"

Only the header and the first string argument matter for routing, so the
parser emits a BusSignal as soon as it has both (or when the next header
arrives for signals without a string argument).
"""

import asyncio
import logging
import re
import subprocess

from ..lib.ingestion import BusSignal

logger = logging.getLogger(__name__)

MATCH_RULES = (
    "type='signal',interface='org.freedesktop.DBus',member='NameOwnerChanged',"
    "arg0namespace='org.mpris.MediaPlayer2'",
    "type='signal',interface='org.freedesktop.DBus.Properties',member='PropertiesChanged',"
    "path='/org/mpris/MediaPlayer2'",
)

_HEADER_FIELD = re.compile(r"\b(path|interface|member)=([^;\s]+)")
_STRING_ARG = re.compile(r'^\s+string "(.*)"\s*$')


class DbusMonitorParser:
    """Incremental line parser; ``feed()`` returns the signals completed by a line."""

    def __init__(self):
        self._pending: dict | None = None

    def feed(self, line: str) -> list[BusSignal]:
        out = []
        if line.startswith("signal "):
            flushed = self.flush()
            if flushed:
                out.append(flushed)
            fields = dict(_HEADER_FIELD.findall(line))
            if "member" in fields:
                self._pending = fields
            return out
        if not line[:1].isspace():
            # method call / method return / error: not ours
            flushed = self.flush()
            if flushed:
                out.append(flushed)
            return out
        if self._pending is not None:
            m = _STRING_ARG.match(line)
            if m:
                self._pending["arg0"] = m.group(1)
                out.append(self.flush())
        return out

    def flush(self) -> BusSignal | None:
        pending, self._pending = self._pending, None
        if pending is None:
            return None
        return BusSignal(
            member=pending.get("member", ""),
            interface=pending.get("interface", ""),
            path=pending.get("path", ""),
            arg0=pending.get("arg0", ""),
        )


class DbusMonitorSource:
    """Runs dbus-monitor and pushes parsed signals into *submit*; restarts with backoff."""

    def __init__(self, submit, binary: str = "dbus-monitor", max_backoff: float = 30.0,
                 sleep=asyncio.sleep):
        self.submit = submit
        self.binary = binary
        self.max_backoff = max_backoff
        self._sleep = sleep
        self._proc = None

    async def run(self):
        backoff = 1
        while True:
            seen = await self._run_once()
            if seen:
                backoff = 1  # reset after a working session
            logger.warning("dbus-monitor stopped, restarting in %ds", backoff)
            await self._sleep(backoff)
            backoff = min(backoff * 2, self.max_backoff)

    async def _run_once(self) -> int:
        """One dbus-monitor session. Returns the number of lines read."""
        try:
            self._proc = await asyncio.create_subprocess_exec(
                self.binary, "--session", *MATCH_RULES,
                stdout=subprocess.PIPE, stderr=subprocess.DEVNULL,
            )
        except OSError as e:
            logger.error("Cannot start %s: %s", self.binary, e)
            return 0
        logger.info("Listening for MPRIS signals (dbus-monitor pid %d)", self._proc.pid)
        parser = DbusMonitorParser()
        seen = 0
        try:
            while True:
                raw = await self._proc.stdout.readline()
                if not raw:
                    break
                seen += 1
                for sig in parser.feed(raw.decode("utf-8", errors="replace").rstrip("\n")):
                    await self.submit(sig)
            tail = parser.flush()
            if tail:
                await self.submit(tail)
        finally:
            await self._reap()
        return seen

    async def _reap(self):
        proc, self._proc = self._proc, None
        if proc is None or proc.returncode is not None:
            return
        try:
            proc.terminate()
        except ProcessLookupError:
            return
        try:
            await asyncio.wait_for(proc.wait(), 2)
        except asyncio.TimeoutError:
            proc.kill()
            await proc.wait()
