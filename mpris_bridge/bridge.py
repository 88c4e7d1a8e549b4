#!/usr/bin/env python3
# mpris-bridge
# SPDX-License-Identifier: GPL-3.0-or-later

"""
mpris-bridge service.

Wires the pieces together:

    dbus-monitor ──┐
                   ├─▶ ingestion queue ─▶ debounce gates ─▶ registry ─▶ selector
    hyprland ──────┘                                                     │
                                                   on change: quick update + follower restart
                                                                         │
                                 playerctl --follow ─▶ follower supervisor ─▶ state store
    control socket ─▶ thread pool ─▶ playerctl (against the current selection)
"""

import argparse
import asyncio
import logging
import signal
import sys

from . import __version__
from .lib.artwork import ArtworkResolver
from .lib.config import cfg, config_path, reload_config
from .lib.control_server import ControlServer
from .lib.control_tool import ControlTool, create_control_tool
from .lib.follower import FollowerSupervisor
from .lib.ingestion import IngestionPipeline
from .lib.registry import Registry
from .lib.selector import SelectionConfig
from .lib.state_store import StateStore, UiState
from .lib.watchdog import SystemdNotifier
from .signals.dbus_monitor import DbusMonitorSource
from .signals.hyprland import HyprlandFocusSource

logger = logging.getLogger("mpris_bridge")

LOG_FORMAT = "[%(asctime)s] %(levelname)s %(name)s: %(message)s"


class Bridge:

    def __init__(self, tool: ControlTool | None = None, notifier: SystemdNotifier | None = None):
        self.selection_config = SelectionConfig.from_config()
        self.registry = Registry(admits=self.selection_config.admits)
        self.tool = tool or create_control_tool()
        self.notifier = notifier or SystemdNotifier()
        self.store = StateStore.from_config()
        self.artwork = ArtworkResolver.from_config()
        self.supervisor = FollowerSupervisor.from_config(
            self.registry, self.tool, self.store, self.artwork)
        self.pipeline = IngestionPipeline.from_config(
            self.registry, self.tool, self.selection_config, self.on_selection_change)
        self.server = ControlServer.from_config(self.tool, self.selected)
        self._tasks: list[asyncio.Task] = []
        self._quick: asyncio.Task | None = None

    def selected(self) -> str | None:
        return self.registry.selection.current

    async def on_selection_change(self, previous: str | None, current: str | None):
        logger.debug("Selection callback: %s -> %s", previous or "none", current or "none")
        self.notifier.status(f"following {current}" if current else "no player")
        if current is not None:
            if self._quick and not self._quick.done():
                self._quick.cancel()
            self._quick = asyncio.create_task(
                self.supervisor.quick_update(current), name="quick-update")
        await self.supervisor.set_target(current)

    async def start(self):
        self.store.publish(UiState.empty(self.artwork.default_image))

        # Without the control socket there is nothing to serve; OSError is fatal
        await self.server.start()

        self._spawn(self.pipeline.run(), "ingestion")
        self._spawn(self.supervisor.watchdog_loop(), "follower-watchdog")
        self._spawn(DbusMonitorSource(self.pipeline.submit).run(), "dbus-monitor")
        self._spawn(HyprlandFocusSource.from_config(self.pipeline.submit).run(), "hyprland")
        self._spawn(self.notifier.heartbeat_loop(), "sd-heartbeat")

        await self.pipeline.seed()
        self.notifier.ready(f"{len(self.registry)} players, selected {self.selected() or 'none'}")
        logger.info("mpris-bridge %s ready (config: %s)", __version__, config_path() or "defaults")

    def _spawn(self, coro, name: str):
        task = asyncio.create_task(coro, name=name)
        task.add_done_callback(self._task_done)
        self._tasks.append(task)

    @staticmethod
    def _task_done(task: asyncio.Task):
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Task %s died: %r", task.get_name(), exc)

    async def stop(self):
        self.notifier.stopping()
        logger.info("Shutting down")
        for task in self._tasks:
            task.cancel()
        if self._quick:
            self._quick.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()
        await self.pipeline.close()
        await self.supervisor.stop()
        await self.server.stop()
        await self.artwork.close()

    async def run(self):
        """Start, wait for SIGTERM/SIGINT, stop."""
        await self.start()
        stop_event = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, stop_event.set)
        loop.add_signal_handler(
            signal.SIGHUP, lambda: logger.warning("SIGHUP received; config reload needs a restart"))
        try:
            await stop_event.wait()
        finally:
            await self.stop()


def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        prog="mpris-bridge",
        description="Follow the active MPRIS player and publish its state for status bars.")
    parser.add_argument("-c", "--config", help="path to config.json")
    parser.add_argument("-v", "--verbose", action="store_true", help="debug logging")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO, format=LOG_FORMAT)
    reload_config(args.config)
    if not args.verbose:
        level = str(cfg("logging", "level", default="info")).upper()
        logging.getLogger().setLevel(getattr(logging, level, logging.INFO))

    try:
        asyncio.run(Bridge().run())
    except OSError as e:
        logger.error("Startup failed: %s", e)
        sys.exit(1)


if __name__ == "__main__":
    main()
