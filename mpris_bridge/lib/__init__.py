# mpris-bridge
# SPDX-License-Identifier: GPL-3.0-or-later

"""
Shared building blocks for the mpris-bridge service.

  config          — JSON config loader, ``cfg()`` accessor, path expansion
  watchdog        — systemd notify heartbeat
  control_tool    — playerctl/busctl abstraction (ControlTool)
  registry        — known players, statuses, selection, capability cache
  selector        — pure player-selection policy
  debounce        — trailing-edge debounce gate
  ingestion       — bus/focus events -> registry refreshes -> selection
  artwork         — cover art adoption (local file, HTTP download, default)
  follower        — supervised ``playerctl --follow`` subprocess
  state_store     — atomic snapshot + append-only record stream
  control_server  — line-delimited JSON control socket
"""
