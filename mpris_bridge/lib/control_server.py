# mpris-bridge
# SPDX-License-Identifier: GPL-3.0-or-later

"""
Control server — line-delimited JSON over a user-only Unix socket.

Request (one per line, persistent connections allowed):

    {"cmd": "play-pause" | "next" | "previous" | "seek" | "set-position",
     "player": "<optional explicit target>",
     "offset": <seconds, seek>, "position": <seconds, set-position>}

Response (exactly one line per request): {"ok": true} or {"ok": false}

Commands shell out to the control tool on a small ThreadPoolExecutor so a
hung playerctl never stalls the event loop.
"""

import asyncio
import json
import logging
import os
from concurrent.futures import ThreadPoolExecutor

from .control_tool import ControlTool

logger = logging.getLogger(__name__)

COMMANDS = ("play-pause", "next", "previous", "seek", "set-position")
LINE_LIMIT = 64 * 1024


class BadRequest(ValueError):
    """A request line that cannot be turned into a control-tool call."""


def parse_request(line: str) -> dict:
    try:
        request = json.loads(line)
    except json.JSONDecodeError as e:
        raise BadRequest(f"invalid JSON: {e}") from e
    if not isinstance(request, dict):
        raise BadRequest("request must be a JSON object")
    if request.get("cmd") not in COMMANDS:
        raise BadRequest(f"unknown cmd {request.get('cmd')!r}")
    player = request.get("player")
    if player is not None and (not isinstance(player, str) or not player):
        raise BadRequest("player must be a non-empty string")
    if player is not None and "\x00" in player:
        raise BadRequest("player must not contain NUL")
    return request


def _number(request: dict, field: str) -> float:
    value = request.get(field)
    # bool is an int subclass; {"offset": true} is not a number here
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise BadRequest(f"{request['cmd']} needs numeric '{field}'")
    return float(value)


def translate(request: dict) -> list[str]:
    """Map a validated request to playerctl arguments."""
    cmd = request["cmd"]
    if cmd in ("play-pause", "next", "previous"):
        return [cmd]
    if cmd == "seek":
        offset = _number(request, "offset")
        sign = "-" if offset < 0 else "+"
        return ["position", f"{abs(offset):g}{sign}"]
    position = _number(request, "position")
    if position < 0:
        raise BadRequest("position must not be negative")
    return ["position", f"{position:g}"]


class ControlServer:

    def __init__(self, socket_path: str, tool: ControlTool, selected, workers: int = 2):
        """*selected* is a zero-argument callable returning the current selection."""
        self.socket_path = socket_path
        self.tool = tool
        self._selected = selected
        self._executor = ThreadPoolExecutor(max_workers=max(1, workers),
                                            thread_name_prefix="control")
        self._server: asyncio.AbstractServer | None = None
        self._writers: set[asyncio.StreamWriter] = set()

    @classmethod
    def from_config(cls, tool, selected) -> "ControlServer":
        from .config import cfg, expand_path
        return cls(
            expand_path(cfg("control", "socket_path",
                            default="$XDG_RUNTIME_DIR/mpris-bridge/mpris-bridge.sock")),
            tool, selected,
            workers=int(cfg("control", "workers", default=2)),
        )

    async def start(self):
        """Bind the socket. OSError propagates; the caller treats it as fatal."""
        directory = os.path.dirname(self.socket_path)
        if directory:
            os.makedirs(directory, exist_ok=True)
            os.chmod(directory, 0o700)
        if os.path.lexists(self.socket_path):
            os.unlink(self.socket_path)
        self._server = await asyncio.start_unix_server(
            self._handle_client, path=self.socket_path, limit=LINE_LIMIT)
        os.chmod(self.socket_path, 0o600)
        logger.info("Control server listening on %s", self.socket_path)

    async def stop(self):
        if self._server:
            self._server.close()
        for writer in list(self._writers):
            writer.close()
        self._writers.clear()
        if self._server:
            await self._server.wait_closed()
            self._server = None
        self._executor.shutdown(wait=False, cancel_futures=True)
        if os.path.lexists(self.socket_path):
            try:
                os.unlink(self.socket_path)
            except OSError as e:
                logger.warning("Could not remove %s: %s", self.socket_path, e)

    async def _handle_client(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter):
        self._writers.add(writer)
        try:
            while True:
                try:
                    raw = await reader.readline()
                except (asyncio.LimitOverrunError, ValueError):
                    logger.warning("Control request exceeds %d bytes, closing connection", LINE_LIMIT)
                    writer.write(b'{"ok":false}\n')
                    await writer.drain()
                    break
                if not raw:
                    break
                line = raw.decode("utf-8", errors="replace").strip()
                if not line:
                    continue
                ok = await self.handle_line(line)
                writer.write((json.dumps({"ok": ok}) + "\n").encode())
                await writer.drain()
        except (ConnectionResetError, BrokenPipeError):
            logger.debug("Control client went away")
        finally:
            self._writers.discard(writer)
            writer.close()

    async def handle_line(self, line: str) -> bool:
        try:
            request = parse_request(line)
            args = translate(request)
        except BadRequest as e:
            logger.warning("Rejected control request %r: %s", line[:200], e)
            return False

        player = request.get("player") or self._selected()
        if not player:
            logger.info("Control %s: no player selected", request["cmd"])
            return False

        loop = asyncio.get_running_loop()
        try:
            ok = await loop.run_in_executor(self._executor, self.tool.run_command, player, args)
        except Exception as e:
            # shut-down executor, or an argv the OS refuses
            logger.warning("Control %s on %r failed: %s", request["cmd"], player, e)
            return False
        logger.info("Control %s on %s -> %s", " ".join(args), player, "ok" if ok else "failed")
        return bool(ok)
