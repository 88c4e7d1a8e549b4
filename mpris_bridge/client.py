#!/usr/bin/env python3
# mpris-bridge
# SPDX-License-Identifier: GPL-3.0-or-later

"""
mpris-bridgec — command-line client for mpris-bridge.

    mpris-bridgec play-pause|next|previous [--player NAME]
    mpris-bridgec seek OFFSET [--player NAME]
    mpris-bridgec set-position SECONDS [--player NAME]
    mpris-bridgec watch [--format FMT] [--truncate N] [--pango-escape]

Control commands go through the service socket; if the service is not
reachable they fall back to running playerctl directly against --player or
the player named in the last snapshot.

``watch`` prints a label for the current snapshot and then one line per new
record appended to the event stream, for waybar/eww ``exec`` modules.  FMT
accepts {artist}, {title} and {sep} (" - " when both are non-empty).
"""

import argparse
import json
import logging
import os
import socket
import subprocess
import sys
import time

from .lib.config import cfg, expand_path

logger = logging.getLogger("mpris_bridgec")

SOCKET_TIMEOUT = 3.0
POLL_INTERVAL = 0.25
DEFAULT_FORMAT = "{artist}{sep}{title}"


def socket_path() -> str:
    return expand_path(cfg("control", "socket_path",
                           default="$XDG_RUNTIME_DIR/mpris-bridge/mpris-bridge.sock"))


def snapshot_path() -> str:
    return expand_path(cfg("output", "snapshot_path",
                           default="$XDG_RUNTIME_DIR/mpris-bridge/state.json"))


def events_path() -> str:
    return expand_path(cfg("output", "events_path",
                           default="$XDG_RUNTIME_DIR/mpris-bridge/events.jsonl"))


# ── Labels ──

def pango_escape(text: str) -> str:
    # & first, or the other entities get double-escaped
    return (text.replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;")
            .replace("'", "&apos;").replace('"', "&quot;"))


def format_label(artist: str, title: str, fmt: str | None = None,
                 truncate: int | None = None) -> str:
    sep = " - " if artist and title else ""
    out = (fmt or DEFAULT_FORMAT).replace("{artist}", artist) \
        .replace("{title}", title).replace("{sep}", sep)
    if truncate is not None and len(out) > truncate:
        out = out[:max(truncate - 1, 0)] + "…"
    return out


def label_for(state: dict, fmt=None, truncate=None, pango=False) -> str:
    out = format_label(str(state.get("artist") or ""), str(state.get("title") or ""),
                       fmt, truncate)
    return pango_escape(out) if pango else out


def read_snapshot(path: str | None = None) -> dict | None:
    try:
        with open(path or snapshot_path(), encoding="utf-8") as f:
            state = json.load(f)
    except (OSError, ValueError):
        return None
    return state if isinstance(state, dict) else None


def follow(path: str, poll: float = POLL_INTERVAL):
    """Yield lines appended to *path* from now on (tail -F style)."""
    while True:
        try:
            f = open(path, encoding="utf-8", errors="replace")
        except OSError:
            time.sleep(poll)
            continue
        with f:
            f.seek(0, os.SEEK_END)
            while True:
                line = f.readline()
                if line:
                    yield line.rstrip("\n")
                    continue
                try:
                    # Re-open when the stream was rotated or truncated
                    if os.stat(path).st_ino != os.fstat(f.fileno()).st_ino \
                            or os.stat(path).st_size < f.tell():
                        break
                except OSError:
                    break
                time.sleep(poll)


def watch(args) -> int:
    last = None

    def emit(label: str):
        nonlocal last
        if label == last:
            return
        last = label
        print(label, flush=True)

    state = read_snapshot()
    if state is not None:
        emit(label_for(state, args.format, args.truncate, args.pango_escape))
    for line in follow(events_path()):
        try:
            record = json.loads(line)
        except ValueError:
            continue
        if isinstance(record, dict):
            emit(label_for(record, args.format, args.truncate, args.pango_escape))
    return 0


# ── Control ──

def build_request(args) -> dict:
    request = {"cmd": args.command}
    if args.player:
        request["player"] = args.player
    if args.command == "seek":
        request["offset"] = args.offset
    elif args.command == "set-position":
        request["position"] = args.position
    return request


def reply_timeout() -> float:
    """How long to wait for the verdict: the service's own command timeout plus slack."""
    return float(cfg("control", "command_timeout_s", default=5)) + SOCKET_TIMEOUT


def send_request(request: dict, path: str | None = None,
                 timeout: float = SOCKET_TIMEOUT, reply_wait: float | None = None) -> bool:
    """Send one request and return the server's verdict.

    OSError means the request was never delivered.  Once it is sent, a slow
    or missing reply is a failure, never a reason to run the command again.
    """
    with socket.socket(socket.AF_UNIX, socket.SOCK_STREAM) as sock:
        sock.settimeout(timeout)
        sock.connect(path or socket_path())
        sock.sendall((json.dumps(request) + "\n").encode())
        try:
            sock.settimeout(reply_timeout() if reply_wait is None else reply_wait)
            with sock.makefile("r", encoding="utf-8") as reader:
                reply = reader.readline()
        except OSError as e:
            logger.warning("No reply from mpris-bridge: %s", e)
            return False
    try:
        return bool(json.loads(reply).get("ok"))
    except (ValueError, AttributeError):
        return False


def fallback_args(request: dict) -> list[str]:
    cmd = request["cmd"]
    if cmd == "seek":
        offset = request["offset"]
        return ["position", f"{abs(offset):g}{'-' if offset < 0 else '+'}"]
    if cmd == "set-position":
        return ["position", f"{request['position']:g}"]
    return [cmd]


def run_playerctl(request: dict) -> bool:
    player = request.get("player") or (read_snapshot() or {}).get("name")
    argv = [cfg("control", "playerctl", default="playerctl")]
    if player:
        argv += ["-p", player]
    argv += fallback_args(request)
    try:
        return subprocess.run(argv, stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL,
                              timeout=float(cfg("control", "command_timeout_s", default=5))
                              ).returncode == 0
    except (OSError, subprocess.TimeoutExpired) as e:
        logger.error("playerctl fallback failed: %s", e)
        return False


def control(args) -> int:
    request = build_request(args)
    try:
        ok = send_request(request)
    except OSError as e:
        logger.debug("Service unreachable (%s), running playerctl directly", e)
        ok = run_playerctl(request)
    return 0 if ok else 1


def parse_args(argv=None):
    parser = argparse.ArgumentParser(prog="mpris-bridgec",
                                     description="Control and watch mpris-bridge.")
    parser.add_argument("-c", "--config", help="path to config.json")
    sub = parser.add_subparsers(dest="command", required=True)

    for name in ("play-pause", "next", "previous"):
        p = sub.add_parser(name)
        p.add_argument("--player")
    p = sub.add_parser("seek", help="relative seek in seconds (negative = back)")
    p.add_argument("offset", type=float)
    p.add_argument("--player")
    p = sub.add_parser("set-position", help="absolute position in seconds")
    p.add_argument("position", type=float)
    p.add_argument("--player")

    p = sub.add_parser("watch", help="print a label per state change")
    p.add_argument("--format", default=DEFAULT_FORMAT)
    p.add_argument("--truncate", type=int)
    p.add_argument("--pango-escape", action="store_true")
    return parser.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)
    logging.basicConfig(level=logging.WARNING, format="%(name)s: %(message)s")
    if args.config:
        from .lib.config import reload_config
        reload_config(args.config)
    try:
        if args.command == "watch":
            sys.exit(watch(args))
        sys.exit(control(args))
    except KeyboardInterrupt:
        sys.exit(130)


if __name__ == "__main__":
    main()
