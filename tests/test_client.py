"""mpris-bridgec labels, requests and playerctl fallback."""

import json
import socket
import subprocess
import threading
import time

from mpris_bridge import client


def test_format_label_separator():
    assert client.format_label("Band", "Song") == "Band - Song"
    assert client.format_label("", "Song") == "Song"
    assert client.format_label("Band", "") == "Band"
    assert client.format_label("Band", "Song", "{title} by {artist}") == "Song by Band"


def test_format_label_truncates_with_ellipsis():
    assert client.format_label("Band", "Song", truncate=6) == "Band …"
    assert client.format_label("Band", "Song", truncate=11) == "Band - Song"


def test_pango_escape_order():
    assert client.pango_escape("Tom & Jerry <3 'x' \"y\"") == \
        "Tom &amp; Jerry &lt;3 &apos;x&apos; &quot;y&quot;"
    assert client.pango_escape("&amp;") == "&amp;amp;"


def test_label_for_snapshot(tmp_path):
    snap = tmp_path / "state.json"
    snap.write_text(json.dumps({"artist": "A & B", "title": "T", "name": "vlc"}))
    state = client.read_snapshot(str(snap))
    assert client.label_for(state, pango=True) == "A &amp; B - T"
    assert client.read_snapshot(str(tmp_path / "missing.json")) is None


def test_build_request_and_fallback_args():
    args = client.parse_args(["seek", "-10", "--player", "vlc"])
    request = client.build_request(args)
    assert request == {"cmd": "seek", "player": "vlc", "offset": -10.0}
    assert client.fallback_args(request) == ["position", "10-"]

    args = client.parse_args(["set-position", "42"])
    request = client.build_request(args)
    assert request == {"cmd": "set-position", "position": 42.0}
    assert client.fallback_args(request) == ["position", "42"]

    assert client.fallback_args({"cmd": "next"}) == ["next"]


def test_control_falls_back_to_playerctl_when_service_is_down(tmp_path, monkeypatch):
    snap = tmp_path / "run" / "mpris-bridge" / "state.json"
    snap.parent.mkdir(parents=True)
    snap.write_text(json.dumps({"name": "spotify"}))
    calls = []

    def fake_run(argv, **kw):
        calls.append(argv)
        return subprocess.CompletedProcess(argv, 0)

    monkeypatch.setattr(client.subprocess, "run", fake_run)
    assert client.control(client.parse_args(["next"])) == 0
    assert calls == [["playerctl", "-p", "spotify", "next"]]


def test_follow_yields_appended_lines_only(tmp_path):
    events = tmp_path / "events.jsonl"
    events.write_text('{"title": "old"}\n')
    lines = client.follow(str(events), poll=0.01)

    def append():
        with open(events, "a") as f:
            f.write('{"title": "new"}\n')

    timer = threading.Timer(0.1, append)
    timer.start()
    try:
        assert next(lines) == '{"title": "new"}'
    finally:
        timer.cancel()
        lines.close()


def test_slow_reply_is_a_failure_not_a_second_command(tmp_path, monkeypatch):
    path = str(tmp_path / "slow.sock")
    listener = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
    listener.bind(path)
    listener.listen(1)
    received = []

    def serve():
        conn, _ = listener.accept()
        with conn:
            received.append(conn.recv(1024))
            time.sleep(0.5)
            try:
                conn.sendall(b'{"ok": true}\n')
            except OSError:
                pass

    server = threading.Thread(target=serve, daemon=True)
    server.start()
    calls = []
    monkeypatch.setattr(client, "socket_path", lambda: path)
    monkeypatch.setattr(client, "reply_timeout", lambda: 0.1)
    monkeypatch.setattr(client.subprocess, "run", lambda argv, **kw: calls.append(argv))
    try:
        assert client.control(client.parse_args(["play-pause"])) == 1
    finally:
        server.join(2)
        listener.close()
    assert received == [b'{"cmd": "play-pause"}\n']
    assert calls == []
