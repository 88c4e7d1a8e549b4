# mpris-bridge
# SPDX-License-Identifier: GPL-3.0-or-later

"""
Shared configuration loader for mpris-bridge.

Loads a single JSON config file.  Search order:
  1. $MPRIS_BRIDGE_CONFIG                          (explicit override)
  2. $XDG_CONFIG_HOME/mpris-bridge/config.json     (per-user)
  3. /etc/mpris-bridge/config.json                 (system-wide)
  4. config.json                                   (CWD — handy for local dev)

A missing file is not an error: every option has a default.

Usage:
    from .config import cfg, expand_path

    priority   = cfg("selection", "priority", default=["firefox", "spotify"])
    timeout_ms = cfg("art", "timeout_ms", default=5000)
    snapshot   = expand_path(cfg("output", "snapshot_path",
                                 default="$XDG_RUNTIME_DIR/mpris-bridge/state.json"))
"""

import json
import logging
import os

logger = logging.getLogger(__name__)

_config: dict | None = None
_config_path: str | None = None

_KNOWN_SECTIONS = {
    "selection", "debounce", "art", "output", "presentation",
    "follower", "control", "focus", "logging",
}


def home_dir() -> str:
    return os.path.expanduser("~")


def config_home() -> str:
    return os.environ.get("XDG_CONFIG_HOME") or os.path.join(home_dir(), ".config")


def cache_home() -> str:
    return os.environ.get("XDG_CACHE_HOME") or os.path.join(home_dir(), ".cache")


def runtime_dir() -> str:
    return os.environ.get("XDG_RUNTIME_DIR") or f"/run/user/{os.getuid()}"


def expand_path(path: str) -> str:
    """Expand $HOME and the XDG base-directory tokens in *path*.

    The XDG tokens fall back to the XDG base-directory defaults when unset, so
    "$XDG_RUNTIME_DIR/x" never expands to "/x".  A leading "~" is honoured too.
    """
    tokens = {
        "$XDG_CONFIG_HOME": config_home(),
        "$XDG_CACHE_HOME": cache_home(),
        "$XDG_RUNTIME_DIR": runtime_dir(),
        "$HOME": home_dir(),
    }
    for token, value in tokens.items():
        path = path.replace(token, value)
    return os.path.expanduser(path)


def _search_paths() -> list[str]:
    paths = []
    explicit = os.environ.get("MPRIS_BRIDGE_CONFIG")
    if explicit:
        paths.append(explicit)
    paths += [
        os.path.join(config_home(), "mpris-bridge", "config.json"),
        "/etc/mpris-bridge/config.json",
        "config.json",
    ]
    return paths


def _validate(config: dict, path: str) -> None:
    """Warn about unknown sections or suspicious values."""
    for section in config:
        if section not in _KNOWN_SECTIONS:
            logger.warning("Config %s: unknown section '%s' (ignored)", path, section)
    selection = config.get("selection") or {}
    fallback = str(selection.get("fallback", "any")).lower()
    if fallback not in ("any", "none"):
        logger.warning("Config %s: selection.fallback '%s' is not 'any' or 'none' — using 'any'",
                       path, fallback)
    priority = selection.get("priority")
    if priority is not None and not isinstance(priority, list):
        logger.warning("Config %s: selection.priority should be a list of prefixes", path)


def load_config(path: str | None = None) -> dict:
    """Load config from *path* or the first JSON file found. Cached after first call."""
    global _config, _config_path
    if _config is not None and path is None:
        return _config

    candidates = [path] if path else _search_paths()
    for candidate in candidates:
        try:
            with open(candidate, encoding="utf-8") as f:
                loaded = json.load(f)
        except FileNotFoundError:
            if path:
                logger.error("Config file %s not found — using defaults", candidate)
            continue
        except json.JSONDecodeError as e:
            logger.error("Invalid JSON in %s: %s", candidate, e)
            continue
        if not isinstance(loaded, dict):
            logger.error("Config %s: top level must be an object", candidate)
            continue
        _config = loaded
        _config_path = candidate
        logger.info("Config loaded from %s", candidate)
        _validate(_config, candidate)
        return _config

    logger.info("No config.json found — using defaults")
    _config = {}
    _config_path = None
    return _config


def config_path() -> str | None:
    """Path of the file the current config came from, or None for defaults."""
    load_config()
    return _config_path


def cfg(section: str, key: str | None = None, *, default=None):
    """Read a config value.

    cfg("selection")                      → config["selection"]
    cfg("art", "timeout_ms")              → config["art"]["timeout_ms"]
    cfg("art", "timeout_ms", default=5000) → config["art"]["timeout_ms"] or 5000
    """
    config = load_config()
    val = config.get(section)
    if key is None:
        return val if val is not None else default
    if isinstance(val, dict):
        found = val.get(key)
        return found if found is not None else default
    return default


def reload_config(path: str | None = None):
    """Force re-read from disk (for testing or an explicit --config)."""
    global _config, _config_path
    _config = None
    _config_path = None
    return load_config(path)
