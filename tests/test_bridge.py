"""The assembled service with fake external tools."""

import asyncio
import json

import pytest

from mpris_bridge import bridge
from mpris_bridge.bridge import Bridge
from mpris_bridge.lib.ingestion import FocusChanged

from tests.helpers import PLAYING, FakeTool, line, settle


class IdleSource:
    def __init__(self, submit):
        self.submit = submit

    async def run(self):
        await asyncio.Event().wait()


@pytest.fixture(autouse=True)
def no_real_sources(monkeypatch):
    monkeypatch.setattr(bridge, "DbusMonitorSource", IdleSource)
    monkeypatch.delenv("HYPRLAND_INSTANCE_SIGNATURE", raising=False)


def test_startup_selection_follow_and_control(tmp_path):
    async def scenario():
        tool = FakeTool(players=["spotify", "vlc"], statuses={"vlc": PLAYING},
                        metadata={"vlc": line(player="vlc", title="Quick")})
        service = Bridge(tool=tool)
        await service.start()
        try:
            assert service.selected() == "vlc"
            await settle(30)
            (player, proc), = tool.spawned
            assert player == "vlc"
            assert service.store.current.title == "Quick"

            proc.emit(line(player="vlc", title="Live", position=3_000_000))
            await settle(30)
            snapshot = json.loads((tmp_path / "run" / "mpris-bridge" / "state.json").read_text())
            assert snapshot["name"] == "vlc"
            assert snapshot["title"] == "Live"

            reader, writer = await asyncio.open_unix_connection(service.server.socket_path)
            writer.write(b'{"cmd":"next"}\n')
            await writer.drain()
            assert json.loads(await reader.readline()) == {"ok": True}
            writer.close()
            assert tool.commands == [("vlc", ["next"])]
        finally:
            await service.stop()
        assert proc.terminated

        records = (tmp_path / "run" / "mpris-bridge" / "events.jsonl").read_text().splitlines()
        # empty state at startup, quick update, live line
        assert [json.loads(r)["title"] for r in records] == ["", "Quick", "Live"]

    asyncio.run(scenario())


def test_selection_change_moves_the_follower(tmp_path):
    async def scenario():
        tool = FakeTool(players=["spotify"], statuses={"spotify": PLAYING})
        service = Bridge(tool=tool)
        await service.start()
        try:
            tool.players = ["spotify", "mpv"]
            tool.statuses = {"spotify": PLAYING, "mpv": PLAYING}
            await service.pipeline.handle_event(FocusChanged("mpv"))
            assert service.selected() == "spotify"  # mpv not enumerated yet

            await service.pipeline.enumerate()
            assert service.selected() == "mpv"
            assert [p for p, _ in tool.spawned] == ["spotify", "mpv"]
            assert tool.spawned[0][1].terminated
        finally:
            await service.stop()

    asyncio.run(scenario())


def test_main_exits_when_socket_cannot_bind(tmp_path, monkeypatch):
    blocker = tmp_path / "blocker"
    blocker.write_text("x")
    cfg = tmp_path / "c.json"
    cfg.write_text(json.dumps({"control": {"socket_path": str(blocker / "s.sock")}}))
    with pytest.raises(SystemExit) as exc:
        bridge.main(["--config", str(cfg)])
    assert exc.value.code == 1
