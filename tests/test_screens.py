"""Tests for the screen manager and the individual screens."""

from __future__ import annotations

from datetime import datetime

import pytest
from PIL import Image as PILImage

from mal_cli.background import BackgroundUpdate
from mal_cli.events import (
    BackgroundNotice,
    EditorRequested,
    KeyEvent,
    NavbarSelect,
    PlayAnime,
    Quit,
    ShowError,
    ShowOverlay,
    SwitchScreen,
    error_bus,
)
from mal_cli.images import ImageProtocol, Rect, ThreadProtocol
from mal_cli.models import User
from mal_cli.persistence import WatchHistoryEntry
from mal_cli.screens import (
    INFO,
    LAUNCH,
    LIST,
    LOGIN,
    OVERVIEW,
    PROFILE,
    SEARCH,
    SEASONS,
    SETTINGS,
    InfoScreen,
    LaunchScreen,
    ListScreen,
    OverviewScreen,
    ProfileScreen,
    SearchScreen,
    SeasonsScreen,
    SettingsScreen,
    create_screen,
    name_to_screen,
    screen_to_name,
)
from mal_cli.screens.manager import ScreenManager
from mal_cli.screens.overview import recent_on_list
from mal_cli.screens.search import ranking_type_for
from mal_cli.screens.seasons import seasons_runner
from mal_cli.widgets.frame import Frame


def key(name: str, character: str | None = None) -> KeyEvent:
    if character is None and len(name) == 1:
        character = name
    return KeyEvent(name, character)


def settle(screen, info, handle) -> None:
    """Close the worker's channel, wait for it and apply everything it posted."""
    screen.dispose()
    assert handle.join(timeout=5)
    for event in info.bus.drain(timeout=0.5):
        if isinstance(event, BackgroundNotice):
            screen.apply_update(event.update)


def wait_for_ids(screen, info, timeout: float = 5) -> None:
    """Apply notices until the screen has received its first batch."""
    while not screen.ids:
        event = info.bus.recv(timeout=timeout)
        assert event is not None, "worker delivered nothing"
        if isinstance(event, BackgroundNotice):
            screen.apply_update(event.update)


# ── Registry ─────────────────────────────────────────────────────────────────


class TestRegistry:
    def test_name_mapping(self):
        assert screen_to_name(SEARCH) == "Search"
        assert name_to_screen("Search") == SEARCH
        assert name_to_screen("Nowhere") == LAUNCH

    def test_unknown_id_builds_launch_screen(self, make_info):
        assert isinstance(create_screen("Nowhere", make_info()), LaunchScreen)


# ── Manager ──────────────────────────────────────────────────────────────────


@pytest.fixture
def manager(make_info, make_store, make_anime, fake_catalog_cls):
    animes = [make_anime(n, f"Anime {n}") for n in (1, 2, 3)]
    info = make_info(fake_catalog_cls(animes), store=make_store(animes))
    manager = ScreenManager(info)
    yield manager
    manager.shutdown()


class TestScreenManagerRouting:
    def test_starts_on_launch_without_worker(self, manager):
        assert manager.current_screen.get_name() == LAUNCH
        assert manager.backgrounds == []

    def test_transient_screen_is_not_stored(self, manager):
        manager.change_screen(SEASONS)
        assert LAUNCH not in manager.screen_storage
        assert manager.info.extras["previous_screen"] == LAUNCH

    def test_stored_screen_is_reused(self, manager):
        manager.change_screen(SEASONS)
        seasons = manager.current_screen
        manager.change_screen(SEARCH)
        assert manager.screen_storage[SEASONS] is seasons

        manager.change_screen(SEASONS)
        assert manager.current_screen is seasons
        assert SEASONS not in manager.screen_storage

    def test_update_reaches_current_and_stored_screens(self, manager):
        manager.change_screen(SEASONS)
        manager.change_screen(SEARCH)

        assert manager.update_screen(BackgroundUpdate(SEARCH).set("ids", [2]))
        assert manager.update_screen(BackgroundUpdate(SEASONS).set("ids", [3]))
        assert 2 in manager.current_screen.ids
        assert 3 in manager.screen_storage[SEASONS].ids

    def test_update_for_gone_screen_is_dropped(self, manager):
        assert manager.update_screen(BackgroundUpdate(LIST).set("ids", [1])) is False

    def test_popup_update_goes_to_overlay(self, manager):
        update = BackgroundUpdate("popup").set("released_episodes", (1, 5))
        assert manager.update_screen(update)


class TestScreenManagerInput:
    def test_error_overlay_takes_keys_first(self, manager):
        manager.show_error("boom")
        assert manager.handle_key(key("down")) is None
        assert manager.current_screen.buttons.selected == 0
        manager.handle_key(key("q"))
        assert not manager.error_overlay.is_open()

    def test_detail_overlay_before_screen(self, manager):
        manager.change_screen(SEASONS)
        assert manager.show_overlay(2)
        assert manager.handle_key(key("enter")) == PlayAnime(2)
        assert not manager.overlay.is_open()

    def test_navbar_release_falls_through(self, manager):
        manager.change_screen(SEASONS)
        manager.toggle_navbar(True)
        assert manager.navbar.is_selected

        assert manager.handle_key(key("ctrl+j")) == NavbarSelect(False)
        assert not manager.navbar.is_selected

    def test_navbar_switch(self, manager):
        manager.change_screen(OVERVIEW)
        manager.toggle_navbar(True)
        manager.handle_key(key("right"))
        assert manager.handle_key(key("enter")) == SwitchScreen(SEASONS)

    def test_launch_screen_has_no_navbar(self, manager):
        manager.toggle_navbar(True)
        assert not manager.navbar.is_selected
        frame = manager.render(80, 24)
        assert frame.placements("navbar") == []
        assert frame.placements("body")

    def test_refresh_resyncs_open_overlay(self, manager):
        manager.change_screen(SEASONS)
        manager.show_overlay(1)

        def _complete(anime):
            anime.my_list_status.status = "completed"

        manager.info.store.update(1, _complete)
        manager.refresh()

        assert manager.overlay.status_popup.selected == "Completed"


class TestImageRouting:
    def _slot(self, image_id: int) -> tuple[ThreadProtocol, list]:
        sent: list = []
        image = ImageProtocol(PILImage.new("RGB", (4, 4), (0, 200, 0)))
        return ThreadProtocol(image_id, sent.append, image), sent

    def test_grid_cover_survives_overlay_on_same_anime(self, manager):
        manager.change_screen(SEASONS)
        grid = manager.current_screen
        grid_slot, grid_sent = self._slot(2)
        grid.image_manager.load_image(2, grid_slot)
        assert manager.show_overlay(2)
        popup_slot, popup_sent = self._slot(2)
        manager.overlay.images.load_image(2, popup_slot)

        assert grid.image_manager.render_image(2, Rect(10, 5)) is None
        assert manager.overlay.images.render_image(2, Rect(6, 3)) is None
        # Both slots are at generation 1 now
        assert grid_slot.id == popup_slot.id

        assert manager.image_redraw(2, grid_sent[0].resize_encode(), SEASONS)
        assert popup_slot.render() is None
        manager.overlay.close()

        rendered = grid.image_manager.render_image(2, Rect(10, 5))
        assert rendered is not None
        assert len(rendered.plain.split("\n")) == 5

        assert manager.image_redraw(2, popup_sent[0].resize_encode(), "popup")
        assert popup_slot.render() is not None

    def test_stored_screen_gets_its_own_response(self, manager):
        manager.change_screen(SEASONS)
        seasons = manager.current_screen
        slot, sent = self._slot(3)
        seasons.image_manager.load_image(3, slot)
        seasons.image_manager.render_image(3, Rect(4, 2))
        manager.change_screen(SEARCH)

        assert manager.image_redraw(3, sent[0].resize_encode(), SEASONS)
        assert manager.current_screen.image_manager.protocols.get(3) is None
        assert slot.render() is not None

    def test_response_for_gone_screen_is_dropped(self, manager):
        slot, sent = self._slot(1)
        slot.resize_encode(Rect(4, 2))
        assert manager.image_redraw(1, sent[0].resize_encode(), LIST) is False


# ── Seasons ──────────────────────────────────────────────────────────────────


class TestSeasonsScreen:
    def test_first_request_is_twenty_items(self, make_info, make_store, make_anime, fake_catalog_cls):
        animes = [make_anime(n) for n in range(1, 4)]
        catalog = fake_catalog_cls(animes)
        info = make_info(catalog)
        screen = SeasonsScreen(info)

        handle = screen.background()
        assert screen.background() is None
        settle(screen, info, handle)

        seasonal = [c for c in catalog.calls if c[0] == "get_seasonal"]
        assert seasonal[0] == ("get_seasonal", screen.year, screen.season, 0, 20)
        assert seasonal[1][3:] == (20, 100)
        assert screen.ids == [1, 2, 3]
        assert not screen.fetching
        assert info.store.get(2) is not None

    def test_switch_season_restarts_grid(self, make_info, make_anime, fake_catalog_cls):
        catalog = fake_catalog_cls([make_anime(5), make_anime(6)])
        info = make_info(catalog)
        screen = SeasonsScreen(info)
        handle = screen.background()
        wait_for_ids(screen, info)

        screen.navigatable.select(1, 2)
        assert screen.switch_season(2011, "spring")
        assert screen.fetching
        settle(screen, info, handle)

        assert ("get_seasonal", 2011, "spring", 0, 20) in catalog.calls
        assert screen.ids == [5, 6]
        assert screen.navigatable.selected == 0
        assert screen.season_popup.selected == "Spring"

    def test_seasons_runner_schedule(self):
        runner = seasons_runner()
        assert (runner.batch_size, runner.new_batch_size, runner.max_batches) == (20, 100, 5)

    def test_picker_commit_switches(self, make_info):
        screen = SeasonsScreen(make_info())
        screen.background()
        try:
            screen.handle_keyboard(key("up"))
            screen.handle_keyboard(key("right"))
            screen.handle_keyboard(key("enter"))
            assert screen.season_popup.is_open
            target = "Winter" if screen.season != "winter" else "Fall"
            screen.season_popup.set_selected(target)
            screen.season_popup.open()
            screen.handle_keyboard(key("enter"))
            assert screen.season == target.lower()
            assert not screen.season_popup.is_open
        finally:
            screen.dispose()

    def test_draw_with_details(self, make_info, make_store, make_anime):
        info = make_info(store=make_store([make_anime(1, "Frieren")]))
        screen = SeasonsScreen(info)
        screen.ids = [1]
        frame = Frame(120, 40)
        screen.draw(frame)
        assert len(frame.placements("body")) >= 4


# ── Search ───────────────────────────────────────────────────────────────────


class TestSearchScreen:
    def test_initial_top_chart_then_search_replaces_it(self, make_info, make_anime, fake_catalog_cls):
        animes = [make_anime(1, "Frieren"), make_anime(2, "Bocchi the Rock!"), make_anime(3, "Frieren Movie")]
        catalog = fake_catalog_cls(animes)
        info = make_info(catalog)
        screen = SearchScreen(info)

        handle = screen.background()
        wait_for_ids(screen, info)
        assert screen.ids == [1, 2, 3]
        assert ("get_top", "all", 0, 20) in catalog.calls

        for char in "frieren":
            screen.handle_keyboard(key(char))
        screen.handle_keyboard(key("enter"))
        assert screen.fetching
        settle(screen, info, handle)

        assert ("search", "frieren", 0, 20) in catalog.calls
        assert screen.ids == [1, 3]
        assert not screen.fetching

    def test_back_to_back_searches_show_only_the_last(self, make_info, make_anime, fake_catalog_cls):
        animes = [make_anime(1, "Frieren"), make_anime(2, "Bocchi the Rock!"), make_anime(3, "Frieren Movie")]
        info = make_info(fake_catalog_cls(animes))
        screen = SearchScreen(info)
        handle = screen.background()
        wait_for_ids(screen, info)

        assert screen.submit_search("frieren")
        assert screen.submit_search("movie")
        settle(screen, info, handle)

        assert screen.ids == [3]
        assert not screen.fetching

    def test_search_without_results_clears_the_grid(self, make_info, make_anime, fake_catalog_cls):
        info = make_info(fake_catalog_cls([make_anime(1, "Frieren"), make_anime(2, "Bocchi")]))
        screen = SearchScreen(info)
        handle = screen.background()
        wait_for_ids(screen, info)

        assert screen.submit_search("zzz")
        settle(screen, info, handle)

        assert screen.ids == []
        assert not screen.fetching

    def test_batches_from_an_older_command_are_ignored(self, make_info):
        screen = SearchScreen(make_info())
        screen.generation = 2
        screen.apply_update(BackgroundUpdate(screen.get_name()).set("ids", [5, 6]).set("generation", 2))
        screen.apply_update(BackgroundUpdate(screen.get_name()).set("ids", [1, 2]).set("generation", 1))

        assert screen.ids == [5, 6]
        assert screen.shown_generation == 2
        assert not screen.fetching

    def test_newer_command_replaces_instead_of_appending(self, make_info):
        screen = SearchScreen(make_info())
        screen.generation = 2
        screen.apply_update(BackgroundUpdate(screen.get_name()).set("ids", [1, 3]).set("generation", 1))
        assert screen.fetching
        screen.apply_update(BackgroundUpdate(screen.get_name()).set("ids", [3]).set("generation", 2))
        screen.apply_update(BackgroundUpdate(screen.get_name()).set("ids", [4]).set("generation", 2))

        assert screen.ids == [3, 4]
        assert not screen.fetching

    def test_filter_switch_uses_ranking_type(self, make_info, make_anime, fake_catalog_cls):
        catalog = fake_catalog_cls([make_anime(1)])
        info = make_info(catalog)
        screen = SearchScreen(info)
        handle = screen.background()

        assert screen.switch_filter("popularity")
        settle(screen, info, handle)

        assert ("get_top", "bypopularity", 0, 20) in catalog.calls

    def test_ranking_type_for(self):
        assert ranking_type_for("popularity") == "bypopularity"
        assert ranking_type_for("movie") == "movie"

    def test_search_before_worker_is_dropped(self, make_info):
        screen = SearchScreen(make_info())
        assert screen.submit_search("x") is False
        assert not screen.fetching

    def test_grid_select_opens_overlay(self, make_info):
        screen = SearchScreen(make_info())
        screen.ids = [4, 5]
        screen.handle_keyboard(key("ctrl+j"))
        assert screen.handle_keyboard(key("enter")) == ShowOverlay(4)


# ── List ─────────────────────────────────────────────────────────────────────


class TestListScreen:
    def test_status_tabs_filter(self, make_info, make_anime, fake_catalog_cls):
        animes = [
            make_anime(1, list_status="watching"),
            make_anime(2, list_status="completed"),
            make_anime(3),
        ]
        catalog = fake_catalog_cls(animes)
        info = make_info(catalog)
        screen = ListScreen(info)
        handle = screen.background()
        wait_for_ids(screen, info)
        assert screen.ids == [1, 2]

        assert screen.switch_status(2)
        settle(screen, info, handle)

        assert screen.status == "completed"
        assert screen.ids == [2]
        assert ("get_user_list", "completed", 0, 100) in catalog.calls

    def test_same_tab_does_not_refetch(self, make_info):
        screen = ListScreen(make_info())
        screen.ids = [1]
        assert screen.switch_status(0) is False


# ── Overview ─────────────────────────────────────────────────────────────────


def _history_entry(anime_id: int) -> WatchHistoryEntry:
    return WatchHistoryEntry(datetime(2024, 1, 1), anime_id, f"Anime {anime_id}", 1, "00:20:00", 95, True)


class TestOverviewScreen:
    def test_recent_skips_titles_not_on_list(self, make_info, make_store, make_anime, fake_catalog_cls):
        on_list = make_anime(1, list_status="watching")
        dropped_off = make_anime(2)
        fetched = make_anime(3, list_status="completed")
        catalog = fake_catalog_cls([fetched])
        info = make_info(catalog, store=make_store([on_list, dropped_off]))
        for anime_id in (3, 2, 1):
            info.history.append(_history_entry(anime_id))

        assert [a.id for a in recent_on_list(info)] == [1, 3]
        assert ("get_anime", 3) in catalog.calls

    def test_worker_fills_three_rows(self, make_info, make_anime, fake_catalog_cls):
        catalog = fake_catalog_cls([make_anime(1, list_status="watching"), make_anime(2)])
        info = make_info(catalog)
        screen = OverviewScreen(info)
        settle(screen, info, screen.background())

        assert screen.rows["watching"] == [1]
        assert screen.rows["recent"] == []
        assert screen.rows["suggested"] == [1, 2]
        assert screen.loaded == {"watching", "recent", "suggested"}


# ── Launch, profile, settings, info ──────────────────────────────────────────


class TestLaunchScreen:
    def test_logged_out_labels_and_browse_error(self, make_info, fake_catalog_cls):
        info = make_info(fake_catalog_cls(logged_in=False))
        error_bus.bind(info.bus)
        screen = LaunchScreen(info)

        assert screen.buttons.labels == ["Browse", "Log In", "Exit"]
        assert screen.activate("Browse") is None
        assert info.bus.recv(timeout=1) == ShowError("Please log in to browse")
        assert screen.activate("Log In") == SwitchScreen(LOGIN)

    def test_logged_in_browse_and_log_out(self, make_info, fake_catalog_cls):
        catalog = fake_catalog_cls()
        info = make_info(catalog)
        screen = LaunchScreen(info)

        assert screen.buttons.labels[1] == "Log Out"
        assert screen.activate("Browse") == SwitchScreen(OVERVIEW)
        assert screen.activate("Log Out") == SwitchScreen(LAUNCH)
        assert ("update_user_login",) in catalog.calls

    def test_exit_quits(self, make_info):
        screen = LaunchScreen(make_info())
        screen.handle_keyboard(key("down"))
        screen.handle_keyboard(key("down"))
        assert screen.handle_keyboard(key("enter")) == Quit()


class TestProfileScreen:
    def test_user_arrives_from_worker(self, make_info):
        info = make_info()
        screen = ProfileScreen(info)
        settle(screen, info, screen.background())
        assert isinstance(screen.user, User)
        assert screen.user.name == "tester"

    def test_buttons(self, make_info):
        screen = ProfileScreen(make_info())
        assert screen.handle_keyboard(key("enter")) == SwitchScreen(SETTINGS)
        assert screen.handle_keyboard(key("up")) == NavbarSelect(True)


class TestSettingsScreen:
    def test_open_editor_posts_event(self, make_info):
        info = make_info()
        screen = SettingsScreen(info)
        assert screen.handle_keyboard(key("enter")) is None
        assert info.bus.recv(timeout=1) == EditorRequested()

    def test_back_returns_to_previous(self, make_info):
        info = make_info()
        info.extras["previous_screen"] = PROFILE
        screen = SettingsScreen(info)
        assert screen.handle_keyboard(key("escape")) == SwitchScreen(PROFILE)


class TestInfoScreen:
    def test_play_and_back(self, make_info, make_store, make_anime):
        info = make_info(store=make_store([make_anime(4)]))
        info.extras["info_anime_id"] = 4
        info.extras["previous_screen"] = SEARCH
        screen = InfoScreen(info)

        assert screen.get_name() == INFO
        assert screen.handle_keyboard(key("q")) == SwitchScreen(SEARCH)
        screen.handle_keyboard(key("right"))
        assert screen.handle_keyboard(key("enter")) == PlayAnime(4)

    def test_draw_unknown_anime(self, make_info):
        screen = InfoScreen(make_info())
        frame = Frame(100, 40)
        screen.draw(frame)
        assert screen.anime() is None
