"""Player selection rules."""

from mpris_bridge.lib.registry import SelectionState
from mpris_bridge.lib.selector import SelectionConfig, apply_selection, select_player

from tests.helpers import PAUSED, PLAYING, STOPPED


def conf(**kw):
    kw.setdefault("priority", ())
    return SelectionConfig(**kw)


def test_playing_player_beats_prioritised_paused_one():
    players = ["a", "b"]
    statuses = {"a": PAUSED, "b": PLAYING}
    assert select_player(players, statuses, None, conf(priority=("a",))) == "b"


def test_focus_hint_among_stopped_players():
    players = ["a", "b"]
    statuses = {"a": STOPPED, "b": STOPPED}
    assert select_player(players, statuses, "a", conf(priority=("b",))) == "a"


def test_removed_last_selected_with_fallback_none():
    players = ["a"]
    statuses = {"a": STOPPED}
    result = select_player(players, statuses, None, conf(fallback="none"), last_selected="gone")
    assert result is None


def test_empty_registry_selects_nothing():
    assert select_player([], {}, "firefox", conf(), last_selected="spotify") is None


def test_focus_hint_wins_over_priority_among_playing():
    players = ["spotify", "firefox.instance_1"]
    statuses = {"spotify": PLAYING, "firefox.instance_1": PLAYING}
    config = conf(priority=("spotify",))
    assert select_player(players, statuses, "firefox", config) == "firefox.instance_1"
    assert select_player(players, statuses, None, config) == "spotify"


def test_focus_hint_on_non_playing_is_ignored_when_something_plays():
    players = ["firefox", "mpv"]
    statuses = {"firefox": PAUSED, "mpv": PLAYING}
    assert select_player(players, statuses, "firefox", conf()) == "mpv"


def test_first_playing_in_enumeration_order():
    players = ["mpv", "vlc"]
    statuses = {"mpv": PLAYING, "vlc": PLAYING}
    assert select_player(players, statuses, None, conf(priority=("spotify",))) == "mpv"


def test_remember_last_is_sticky_when_nothing_plays():
    players = ["a", "b"]
    statuses = {"a": PAUSED, "b": PAUSED}
    config = conf(priority=("a",))
    for _ in range(3):
        assert select_player(players, statuses, "a", config, last_selected="b") == "b"


def test_remember_last_disabled_uses_priority():
    players = ["a", "b"]
    statuses = {"a": PAUSED, "b": PAUSED}
    config = conf(priority=("a",), remember_last=False)
    assert select_player(players, statuses, None, config, last_selected="b") == "a"


def test_fallback_any_and_none():
    players = ["x", "y"]
    assert select_player(players, {}, None, conf(fallback="any")) == "x"
    assert select_player(players, {}, None, conf(fallback="none")) is None


def test_include_exclude_filters_candidates():
    players = ["firefox.1", "spotify", "kdeconnect.phone"]
    statuses = {"kdeconnect.phone": PLAYING, "spotify": PAUSED}
    config = conf(exclude=frozenset({"kdeconnect"}))
    assert select_player(players, statuses, None, config) == "firefox.1"
    config = conf(include=frozenset({"spotify"}))
    assert select_player(players, statuses, None, config) == "spotify"


def test_selection_is_pure():
    players = ("a", "b", "c")
    statuses = {"b": PLAYING, "c": PLAYING}
    config = conf(priority=("c",))
    results = {select_player(players, statuses, "a", config, "a") for _ in range(20)}
    assert results == {"c"}


def test_playing_result_is_always_playing():
    players = ["a", "b", "c"]
    for hint in (None, "a", "b", "c", "zzz"):
        for last in (None, "a", "b"):
            result = select_player(players, {"c": PLAYING}, hint, conf(priority=("a",)), last)
            assert result == "c"


def test_apply_selection_tracks_last_selected():
    state = SelectionState()
    assert apply_selection(state, "a") is True
    assert apply_selection(state, "a") is False
    assert apply_selection(state, None) is True
    assert state.current is None
    assert state.last_selected == "a"


def test_config_from_file(tmp_path, monkeypatch):
    from mpris_bridge.lib import config

    path = tmp_path / "c.json"
    path.write_text('{"selection": {"priority": ["vlc"], "fallback": "bogus",'
                    ' "exclude": ["kde"], "remember_last": false}}')
    config.reload_config(str(path))
    sel = SelectionConfig.from_config()
    assert sel.priority == ("vlc",)
    assert sel.fallback == "any"
    assert sel.remember_last is False
    assert not sel.admits("kdeconnect")
