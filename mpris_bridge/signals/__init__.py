# mpris-bridge
# SPDX-License-Identifier: GPL-3.0-or-later

"""
Signal sources feeding the ingestion queue.

  dbus_monitor  — session-bus NameOwnerChanged/PropertiesChanged via dbus-monitor
  hyprland      — focused-window class from Hyprland's event socket
"""
