# mpris-bridge
# SPDX-License-Identifier: GPL-3.0-or-later

"""
Focus hints from Hyprland's event socket (``.socket2.sock``).

Each ``activewindow>>CLASS,TITLE`` event becomes a FocusChanged carrying the
hint whose prefix matches the lower-cased window class, or None when the
focused window is not a known player.
"""

import asyncio
import logging
import os

from ..lib.config import runtime_dir
from ..lib.ingestion import FocusChanged

logger = logging.getLogger(__name__)

DEFAULT_HINTS = ("firefox", "spotify", "vlc", "mpv")


def socket2_path(signature: str | None = None) -> str | None:
    signature = signature or os.environ.get("HYPRLAND_INSTANCE_SIGNATURE")
    if not signature:
        return None
    path = os.path.join(runtime_dir(), "hypr", signature, ".socket2.sock")
    legacy = os.path.join("/tmp/hypr", signature, ".socket2.sock")
    if not os.path.exists(path) and os.path.exists(legacy):
        return legacy
    return path


def class_to_hint(window_class: str, hints=DEFAULT_HINTS) -> str | None:
    lc = window_class.strip().lower()
    for hint in hints:
        if lc.startswith(hint):
            return hint
    return None


def parse_event(line: str, hints=DEFAULT_HINTS) -> FocusChanged | None:
    event, sep, data = line.partition(">>")
    if not sep or event != "activewindow":
        return None
    window_class = data.split(",", 1)[0]
    return FocusChanged(class_to_hint(window_class, hints))


class HyprlandFocusSource:

    def __init__(self, submit, path: str | None = None, hints=DEFAULT_HINTS,
                 max_backoff: float = 30.0):
        self.submit = submit
        self.path = path
        self.hints = tuple(h.lower() for h in hints)
        self.max_backoff = max_backoff
        self._last: str | None = None

    @classmethod
    def from_config(cls, submit) -> "HyprlandFocusSource":
        from ..lib.config import cfg
        return cls(submit, hints=cfg("focus", "hints", default=list(DEFAULT_HINTS)))

    async def run(self):
        path = self.path or socket2_path()
        if path is None:
            logger.info("HYPRLAND_INSTANCE_SIGNATURE not set, focus hints disabled")
            return
        backoff = 1
        while True:
            try:
                reader, writer = await asyncio.open_unix_connection(path)
            except OSError as e:
                logger.warning("Hyprland socket %s unavailable (%s), retry in %ds", path, e, backoff)
                await asyncio.sleep(backoff)
                backoff = min(backoff * 2, self.max_backoff)
                continue
            backoff = 1
            logger.info("Following Hyprland focus on %s", path)
            try:
                await self._consume(reader)
            except (ConnectionError, asyncio.IncompleteReadError) as e:
                logger.warning("Hyprland socket error: %s", e)
            finally:
                writer.close()
            logger.warning("Hyprland socket closed, reconnecting in %ds", backoff)
            await asyncio.sleep(backoff)

    async def _consume(self, reader: asyncio.StreamReader):
        while True:
            raw = await reader.readline()
            if not raw:
                return
            event = parse_event(raw.decode("utf-8", errors="replace").rstrip("\n"), self.hints)
            if event is None or event.hint == self._last:
                continue
            self._last = event.hint
            logger.debug("Focus hint: %s", event.hint)
            await self.submit(event)
