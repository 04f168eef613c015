"""Tests for the app loop: shortcuts, playback bookkeeping and config reload."""

from __future__ import annotations

from functools import partial
from pathlib import Path

import pytest
from textual import events

from mal_cli.background import BackgroundUpdate
from mal_cli.events import (
    BackgroundNotice,
    EventBus,
    KeyEvent,
    KeyPress,
    PlayAnime,
    PlaybackFinished,
    PlaybackRequested,
    QuitRequested,
    Rerender,
    Resize,
    ShowError,
    StorageUpdate,
)
from mal_cli.input_dispatch import InputDispatcher, key_to_event
from mal_cli.player import PlayError, PlayErrorKind, PlayResult
from mal_cli.runtime import AppLoop
from mal_cli.screens import LAUNCH, LIST, SEARCH, SEASONS
from mal_cli.themes import THEME_COLORS


def press(loop: AppLoop, name: str, character: str | None = None) -> None:
    loop.handle_event(KeyPress(KeyEvent(name, character)))


def _result(episode: int, percentage: int = 95, completed: bool = True) -> PlayResult:
    return PlayResult(
        episode=episode,
        current_time="00:22:00",
        total_time="00:24:00",
        percentage=percentage,
        fully_watched=False,
        completed=completed,
    )


class Recorder:
    """run_external stand-in that records what it was asked to run."""

    def __init__(self) -> None:
        self.calls = 0

    def __call__(self, fn):
        self.calls += 1
        return fn()


@pytest.fixture
def make_loop(make_info, make_store, make_anime, fake_catalog_cls, fake_player_cls, tmp_path: Path):
    loops: list[AppLoop] = []

    def _make(animes=None, *, logged_in=True, player=None, editor=None, initial_screen=None):
        animes = animes if animes is not None else [make_anime(1, "Frieren", list_status="watching", watched=3)]
        catalog = fake_catalog_cls(animes, logged_in=logged_in)
        info = make_info(catalog, store=make_store(animes))
        loop = AppLoop(
            info,
            player=player or fake_player_cls(),
            run_external=Recorder(),
            config_path=tmp_path / "config.toml",
            editor=editor or (lambda path: True),
            initial_screen=initial_screen,
        )
        loops.append(loop)
        return loop

    yield _make
    for loop in loops:
        loop.shutdown()


# ── Keys ─────────────────────────────────────────────────────────────────────


class TestShortcuts:
    def test_ctrl_c_stops_the_loop(self, make_loop):
        loop = make_loop()
        press(loop, "ctrl+c")
        assert loop.running is False

    @pytest.mark.parametrize(("chord", "screen_id"), [("ctrl+s", SEASONS), ("ctrl+f", SEARCH), ("tab", LIST)])
    def test_shortcut_switches_when_logged_in(self, make_loop, chord, screen_id):
        loop = make_loop()
        press(loop, chord)
        assert loop.manager.current_screen.get_name() == screen_id

    def test_shortcut_requires_login(self, make_loop):
        loop = make_loop(logged_in=False)
        press(loop, "ctrl+s")

        assert loop.manager.current_screen.get_name() == LAUNCH
        assert loop.manager.error_overlay.current == "Please log in to browse"

    def test_error_popup_swallows_shortcuts(self, make_loop):
        loop = make_loop()
        loop.handle_event(ShowError("boom"))
        press(loop, "ctrl+s")
        assert loop.manager.current_screen.get_name() == LAUNCH
        press(loop, "escape")
        assert not loop.manager.error_overlay.is_open()

    def test_keys_reach_the_screen(self, make_loop):
        loop = make_loop()
        press(loop, "enter")
        assert loop.manager.current_screen.get_name() != LAUNCH


# ── Events ───────────────────────────────────────────────────────────────────


class TestEvents:
    def test_batch_stops_after_quit(self, make_loop):
        loop = make_loop()
        redraw = loop.handle_batch([QuitRequested(), ShowError("never shown")])
        assert redraw is True
        assert loop.running is False
        assert not loop.manager.error_overlay.is_open()

    def test_unknown_event_needs_no_redraw(self, make_loop):
        assert make_loop().handle_event(object()) is False
        assert make_loop().handle_event(Rerender()) is True

    def test_resize_sets_frame_size(self, make_loop):
        loop = make_loop()
        loop.handle_event(Resize(120, 40))
        frame = loop.render()
        assert (frame.width, frame.height) == (120, 40)

    def test_storage_update_applies_on_loop(self, make_loop):
        loop = make_loop()

        def _rename(anime):
            anime.title = "Renamed"

        loop.handle_event(StorageUpdate(1, _rename))
        assert loop.info.store.get(1).title == "Renamed"

    def test_notice_with_records_fills_store(self, make_loop, make_anime):
        loop = make_loop(initial_screen=SEASONS)
        update = BackgroundUpdate(SEASONS).set("animes", [make_anime(42)]).set("ids", [42])
        loop.handle_event(BackgroundNotice(update))

        assert 42 in loop.info.store
        assert 42 in loop.manager.current_screen.ids


# ── Playback ─────────────────────────────────────────────────────────────────


class TestPlayback:
    def test_play_action_is_queued(self, make_loop):
        loop = make_loop()
        loop.dispatch_action(PlayAnime(1))
        assert loop.info.bus.recv(timeout=1) == PlaybackRequested(1)

    def test_play_runs_player_in_suspended_terminal(self, make_loop, fake_player_cls):
        player = fake_player_cls(result=_result(4))
        loop = make_loop(player=player)

        loop.handle_event(PlaybackRequested(1))

        assert player.played == [1]
        assert loop.run_external.calls == 1
        finished = loop.info.bus.recv(timeout=1)
        assert isinstance(finished, PlaybackFinished)
        assert finished.result.episode == 4

    def test_player_error_becomes_finished_event(self, make_loop, fake_player_cls):
        error = PlayError(PlayErrorKind.NOT_FOUND, "Can't find 'ani-cli'")
        loop = make_loop(player=fake_player_cls(error=error))

        loop.play(1)
        finished = loop.info.bus.recv(timeout=1)
        loop.handle_event(finished)

        message = loop.manager.error_overlay.current
        assert message.startswith("Could not play Frieren.")
        assert "Can't find 'ani-cli'" in message

    def test_unknown_anime(self, make_loop):
        loop = make_loop()
        loop.play(999)
        assert loop.manager.error_overlay.current == "Unexpected anime given"

    def test_completed_episode_updates_history_store_and_list(self, make_loop):
        loop = make_loop()
        catalog = loop.info.client

        loop.finish_playback(PlaybackFinished(1, result=_result(4)))

        entries = loop.info.history.entries()
        assert [(e.anime_id, e.episode, e.completed) for e in entries] == [(1, 4, True)]
        status = loop.info.store.get(1).my_list_status
        assert (status.status, status.num_episodes_watched) == ("watching", 4)
        assert catalog.update_done.wait(1)
        sent = catalog.updates[-1]
        assert (sent.status, sent.num_watched_episodes) == ("watching", 4)

    def test_last_episode_marks_completed(self, make_loop, make_anime):
        loop = make_loop([make_anime(1, num_episodes=12, list_status="watching", watched=11)])

        loop.finish_playback(PlaybackFinished(1, result=_result(12)))

        assert loop.info.store.get(1).my_list_status.status == "completed"
        assert loop.info.client.updates[-1].status == "completed"
        assert loop.info.client.updates[-1].num_watched_episodes == 12

    def test_partial_watch_only_logs_history(self, make_loop):
        loop = make_loop()
        loop.finish_playback(PlaybackFinished(1, result=_result(4, percentage=40, completed=False)))

        assert loop.info.history.entries()[0].percentage == 40
        assert loop.info.store.get(1).my_list_status.num_episodes_watched == 3
        assert loop.info.client.updates == []

    def test_unwatched_playback_still_logged(self, make_loop):
        loop = make_loop()
        loop.finish_playback(PlaybackFinished(1, result=_result(4, percentage=0, completed=False)))

        entries = loop.info.history.entries()
        assert len(entries) == 1
        assert entries[0].episode == 4
        assert entries[0].percentage == 0
        assert not entries[0].completed
        assert loop.info.client.updates == []


# ── Config ───────────────────────────────────────────────────────────────────


class TestEditConfig:
    def test_reload_after_edit(self, make_loop, tmp_path: Path):
        def _editor(path):
            path.write_text('[theme]\nhighlight = "#abcdef"\n[player]\ncommand = "mpv-cli"\n', encoding="utf-8")
            return True

        loop = make_loop(editor=_editor)
        press(loop, "ctrl+e")

        assert loop.info.config.player.command == "mpv-cli"
        assert THEME_COLORS["highlight"] == "#abcdef"
        assert loop.run_external.calls == 1

    def test_editor_failure_shows_error(self, make_loop):
        loop = make_loop(editor=lambda path: False)
        loop.edit_config()
        assert loop.manager.error_overlay.current.startswith("Could not open the config.")


# ── Input translation ────────────────────────────────────────────────────────


class TestInputDispatcher:
    def test_key_translation(self):
        event = key_to_event(events.Key("ctrl+f", None))
        assert event == KeyPress(KeyEvent("ctrl+f", None))

    def test_forwards_until_stopped(self):
        bus = EventBus()
        dispatcher = InputDispatcher(bus)

        assert dispatcher.key(events.Key("j", "j"))
        assert dispatcher.resize(100, 30)
        dispatcher.stop()
        assert dispatcher.key(events.Key("k", "k")) is False

        assert bus.drain(timeout=1) == [KeyPress(KeyEvent("j", "j")), Resize(100, 30)]

    def test_key_after_bus_close_is_dropped(self):
        bus = EventBus()
        bus.close()
        assert InputDispatcher(bus).key(events.Key("j", "j")) is False


def test_partial_player_call_uses_store_snapshot(make_loop, fake_player_cls):
    player = fake_player_cls(result=_result(1))
    loop = make_loop(player=player)
    seen = []
    loop.run_external = lambda fn: seen.append(fn) or fn()

    loop.play(1)

    assert isinstance(seen[0], partial)
    assert seen[0].args[0].id == 1
