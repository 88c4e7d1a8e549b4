"""Keep every test away from the real config and XDG directories."""

import pytest

from mpris_bridge.lib import config


@pytest.fixture(autouse=True)
def isolated_config(monkeypatch, tmp_path):
    """Point every path default into tmp_path and start from an empty config."""
    monkeypatch.setenv("HOME", str(tmp_path / "home"))
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    monkeypatch.setenv("XDG_CACHE_HOME", str(tmp_path / "cache"))
    monkeypatch.setenv("XDG_RUNTIME_DIR", str(tmp_path / "run"))
    monkeypatch.delenv("MPRIS_BRIDGE_CONFIG", raising=False)
    monkeypatch.delenv("NOTIFY_SOCKET", raising=False)
    monkeypatch.delenv("WATCHDOG_USEC", raising=False)
    monkeypatch.chdir(tmp_path)
    config.reload_config()
    yield
    config.reload_config()
