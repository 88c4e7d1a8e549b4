# mpris-bridge
# SPDX-License-Identifier: GPL-3.0-or-later

"""
mpris-bridge — event-driven MPRIS state for status bars.

Picks the "active" media player among everything on the session bus, follows
its metadata with a single ``playerctl --follow`` process and keeps a JSON
snapshot plus a JSONL record stream up to date.  Media keys and bar widgets
talk to it through a small line-delimited JSON Unix socket.

Entry points:
  mpris-bridge   — the service (mpris_bridge.bridge:main)
  mpris-bridgec  — control/watch client (mpris_bridge.client:main)
"""

__version__ = "0.3.2"
