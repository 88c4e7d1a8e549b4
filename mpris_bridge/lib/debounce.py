# mpris-bridge
# SPDX-License-Identifier: GPL-3.0-or-later

"""
Trailing-edge debounce gate.

The first trigger opens a window of ``interval`` seconds; every further
trigger inside the window is coalesced and the action runs once when the
window expires.  A trigger that lands while the action is running re-arms the
gate, so a signal is never lost and executions of one gate never overlap.

``sleep`` is injectable so tests can drive time by hand instead of waiting on
the wall clock.
"""

import asyncio
import logging
from typing import Awaitable, Callable

logger = logging.getLogger(__name__)


class Debouncer:

    def __init__(self, interval: float, action: Callable[[], Awaitable[None]],
                 name: str = "debounce",
                 sleep: Callable[[float], Awaitable[None]] = asyncio.sleep):
        self.interval = interval
        self.name = name
        self.executions = 0
        self._action = action
        self._sleep = sleep
        self._task: asyncio.Task | None = None
        self._scheduled = False
        self._running = False
        self._dirty = False

    @property
    def pending(self) -> bool:
        """True while an execution is scheduled or running."""
        return self._scheduled or self._running

    def trigger(self):
        if self._running:
            self._dirty = True
            return
        if self._scheduled:
            return
        self._scheduled = True
        self._task = asyncio.create_task(self._run(), name=f"{self.name}-gate")

    async def _run(self):
        while True:
            await self._sleep(self.interval)
            self._scheduled = False
            self._running = True
            self._dirty = False
            try:
                self.executions += 1
                await self._action()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("%s: action failed", self.name)
            finally:
                self._running = False
            if not self._dirty:
                return
            # Re-armed while running: one more execution after a full window
            self._scheduled = True

    async def close(self):
        if self._task and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None
        self._scheduled = self._running = self._dirty = False
