# mpris-bridge
# SPDX-License-Identifier: GPL-3.0-or-later

"""systemd notify integration for the bridge service.

Sends READY=1 once the control socket is serving, WATCHDOG=1 at regular
intervals, STATUS= lines when the selected player changes and STOPPING=1 on
shutdown.  Silently no-ops when NOTIFY_SOCKET is unset (running from a
terminal or under a plain supervisor).

Usage:
    from .watchdog import SystemdNotifier
    notifier = SystemdNotifier()
    notifier.ready()
    asyncio.create_task(notifier.heartbeat_loop())
"""

import asyncio
import logging
import os
import socket

logger = logging.getLogger(__name__)


class SystemdNotifier:

    def __init__(self, address: str | None = None):
        self.address = address if address is not None else os.environ.get("NOTIFY_SOCKET")

    @property
    def enabled(self) -> bool:
        return bool(self.address)

    def notify(self, msg: str) -> bool:
        """Send one datagram to the notify socket. Returns False when disabled or on error."""
        if not self.address:
            return False
        addr = self.address
        if addr[0] == "@":
            addr = "\0" + addr[1:]
        sock = socket.socket(socket.AF_UNIX, socket.SOCK_DGRAM)
        try:
            sock.sendto(msg.encode(), addr)
            return True
        except OSError as e:
            logger.debug("sd_notify %r failed: %s", msg, e)
            return False
        finally:
            sock.close()

    def ready(self, status: str = "") -> bool:
        msg = "READY=1"
        if status:
            msg += f"\nSTATUS={status}"
        return self.notify(msg)

    def status(self, text: str) -> bool:
        return self.notify(f"STATUS={text}")

    def stopping(self) -> bool:
        return self.notify("STOPPING=1")

    def watchdog_interval(self) -> float | None:
        """Half of $WATCHDOG_USEC in seconds, or None when systemd set no watchdog."""
        usec = os.environ.get("WATCHDOG_USEC")
        if not usec:
            return None
        try:
            return max(int(usec) / 2_000_000, 0.5)
        except ValueError:
            return None

    async def heartbeat_loop(self, interval: float = 20):
        """Send WATCHDOG=1 every *interval* seconds.  Run as asyncio.create_task()."""
        if not self.enabled:
            return
        interval = self.watchdog_interval() or interval
        logger.info("systemd heartbeat started (interval=%.1fs)", interval)
        while True:
            self.notify("WATCHDOG=1")
            await asyncio.sleep(interval)
