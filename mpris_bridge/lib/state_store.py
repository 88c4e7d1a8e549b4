# mpris-bridge
# SPDX-License-Identifier: GPL-3.0-or-later

"""
UI-facing state and its persistence.

Every publish writes the same compact JSON serialisation twice: atomically
over the snapshot file (temp file + rename, so readers never see a partial
object) and as one appended line of the record stream.  Write failures are
logged and do not stop the service; ``StateStore.current`` is updated either
way and stays the in-memory source of truth.
"""

import json
import logging
import os
import tempfile
from dataclasses import dataclass

logger = logging.getLogger(__name__)


def fmt_time(seconds: float) -> str:
    """Seconds → "M:SS" (floored, negatives clamp to 0:00)."""
    secs = int(max(seconds, 0.0))
    return f"{secs // 60}:{secs % 60:02d}"


@dataclass
class UiState:
    name: str = ""
    title: str = ""
    artist: str = ""
    status: str = ""
    position: float = 0.0
    length: float = 0.0
    thumbnail: str = ""
    can_next: bool = False
    can_prev: bool = False

    @classmethod
    def empty(cls, default_cover: str = "", name: str = "") -> "UiState":
        return cls(name=name, thumbnail=default_cover)

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "title": self.title,
            "artist": self.artist,
            "status": self.status,
            "position": float(self.position),
            "positionStr": fmt_time(self.position),
            "length": float(self.length),
            "lengthStr": fmt_time(self.length),
            "thumbnail": self.thumbnail,
            "canNext": int(bool(self.can_next)),
            "canPrev": int(bool(self.can_prev)),
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False, separators=(",", ":"))


class StateStore:

    def __init__(self, snapshot_path: str, events_path: str, pretty_snapshot: bool = False):
        self.snapshot_path = snapshot_path
        self.events_path = events_path
        self.pretty_snapshot = pretty_snapshot
        self.current: UiState | None = None
        self.publish_count = 0
        self.failures = 0

    @classmethod
    def from_config(cls) -> "StateStore":
        from .config import cfg, expand_path
        return cls(
            expand_path(cfg("output", "snapshot_path",
                            default="$XDG_RUNTIME_DIR/mpris-bridge/state.json")),
            expand_path(cfg("output", "events_path",
                            default="$XDG_RUNTIME_DIR/mpris-bridge/events.jsonl")),
            pretty_snapshot=bool(cfg("output", "pretty_snapshot", default=False)),
        )

    def ensure_dirs(self):
        for path in (self.snapshot_path, self.events_path):
            parent = os.path.dirname(path)
            if parent:
                os.makedirs(parent, exist_ok=True)

    def _write_snapshot(self, text: str):
        directory = os.path.dirname(self.snapshot_path) or "."
        fd, tmp = tempfile.mkstemp(prefix=os.path.basename(self.snapshot_path) + ".",
                                   suffix=".tmp", dir=directory)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(text)
            os.replace(tmp, self.snapshot_path)
        finally:
            if os.path.exists(tmp):
                os.unlink(tmp)

    def _append_record(self, line: str):
        with open(self.events_path, "a", encoding="utf-8") as f:
            f.write(line + "\n")

    def publish(self, state: UiState) -> bool:
        """Persist *state* to snapshot and record stream. Returns False on write failure."""
        self.current = state
        self.publish_count += 1
        line = state.to_json()
        snapshot = line
        if self.pretty_snapshot:
            snapshot = json.dumps(state.to_dict(), ensure_ascii=False, indent=2)
        try:
            self.ensure_dirs()
            self._write_snapshot(snapshot)
            self._append_record(line)
        except OSError as e:
            self.failures += 1
            logger.error("Could not persist state for %s: %s", state.name or "<none>", e)
            return False
        logger.debug("Published %s: %s — %s [%s]",
                     state.name or "<none>", state.artist, state.title, state.status)
        return True
