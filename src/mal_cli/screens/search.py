"""Search screen: free-text catalog search plus ranking filters."""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass

from rich.box import ROUNDED
from rich.panel import Panel
from rich.text import Text

from mal_cli.background import BackgroundInfo, CommandChannel, WorkerHandle
from mal_cli.events import Action, KeyEvent, MouseEvent, NavbarSelect
from mal_cli.screens.grid import GridScreen, stream_into_screen
from mal_cli.streaming import StreamableRunner
from mal_cli.themes import THEME_COLORS
from mal_cli.widgets.anime_box import long_anime_box
from mal_cli.widgets.dropdown import Arrows, SelectionPopup
from mal_cli.widgets.frame import Frame, Region
from mal_cli.widgets.keys import is_focus_down, is_focus_left, is_focus_right, is_focus_up, nav
from mal_cli.widgets.text_input import TextInput

logger = logging.getLogger(__name__)

FILTER_OPTIONS = ("all", "airing", "upcoming", "tv", "ova", "movie", "special", "popularity", "favorite")
# Filter labels that differ from the ranking_type sent to the catalog
_RANKING_TYPES = {"popularity": "bypopularity"}
SEARCH_BATCHES = 2
MAX_QUERY_LENGTH = 64


@dataclass(frozen=True, slots=True)
class Search:
    query: str
    generation: int = 0


@dataclass(frozen=True, slots=True)
class FilterSwitch:
    kind: str
    generation: int = 0


def ranking_type_for(label: str) -> str:
    return _RANKING_TYPES.get(label, label)


def search_runner() -> StreamableRunner:
    return StreamableRunner().change_batch_size_at(100, 1).stop_at(SEARCH_BATCHES)


class Focus(enum.Enum):
    SEARCH = "search"
    FILTER = "filter"
    LIST = "list"


class SearchScreen(GridScreen):
    rows = 3
    cols = 2
    empty_message = "No results"
    card = staticmethod(long_anime_box)

    def __init__(self, info: BackgroundInfo) -> None:
        super().__init__(info)
        self.focus = Focus.SEARCH
        self.grid_focused = False
        self.search_input = TextInput("Search for an anime...", max_length=MAX_QUERY_LENGTH)
        self.filter_popup = SelectionPopup(arrows=Arrows.STATIC, display_format="Filter: {}").add_options(
            FILTER_OPTIONS
        )
        self._input_region: Region | None = None
        self._filter_region: Region | None = None

    # -- background ----------------------------------------------------------

    def _worker(self, channel: CommandChannel, initial: bool) -> None:
        info = self.info
        name = self.get_name()
        if initial:
            stream_into_screen(
                info,
                name,
                search_runner(),
                lambda offset, limit: info.client.get_top("all", offset, limit),
                superseded=channel.has_pending,
            )
        for command in channel:
            if isinstance(command, Search):
                logger.debug("Searching for %r", command.query)
                self.stream(
                    channel,
                    command,
                    search_runner(),
                    lambda offset, limit, q=command.query: info.client.search(q, offset, limit),
                )
            elif isinstance(command, FilterSwitch):
                self.stream(
                    channel,
                    command,
                    search_runner(),
                    lambda offset, limit, k=command.kind: info.client.get_top(k, offset, limit),
                )

    def background(self) -> WorkerHandle | None:
        initial = not self.ids
        return self.spawn(lambda channel: self._worker(channel, initial), action="search the catalog")

    def submit_search(self, query: str) -> bool:
        return self.begin_fetch(Search(query))

    def switch_filter(self, label: str) -> bool:
        return self.begin_fetch(FilterSwitch(ranking_type_for(label)))

    # -- input ---------------------------------------------------------------

    def leave_grid_up(self) -> Action | None:
        self.focus = Focus.SEARCH
        self.grid_focused = False
        return None

    def _focus_list(self) -> None:
        if self.ids:
            self.focus = Focus.LIST
            self.grid_focused = True

    def _search_key(self, key: KeyEvent) -> Action | None:
        if is_focus_up(key):
            return NavbarSelect(True)
        if is_focus_right(key):
            self.focus = Focus.FILTER
            return None
        if is_focus_down(key) or key.key == "down":
            self._focus_list()
            return None
        query = self.search_input.handle_key(key)
        if query is not None:
            self.submit_search(query)
            self._focus_list()
        return None

    def _filter_key(self, key: KeyEvent) -> Action | None:
        navigation = self.navigation
        if self.filter_popup.is_open:
            choice = self.filter_popup.handle_key(key, navigation)
            if choice is not None:
                self.switch_filter(choice)
            return None
        if nav(navigation, "nav_left", key) or is_focus_left(key):
            self.focus = Focus.SEARCH
        elif nav(navigation, "nav_up", key) or is_focus_up(key):
            return NavbarSelect(True)
        elif nav(navigation, "nav_down", key) or is_focus_down(key):
            self._focus_list()
        elif nav(navigation, "select", key):
            self.filter_popup.open()
        return None

    def handle_keyboard(self, key: KeyEvent) -> Action | None:
        if self.focus is Focus.SEARCH:
            return self._search_key(key)
        if self.focus is Focus.FILTER:
            return self._filter_key(key)
        return self.handle_grid_key(key)

    def handle_mouse(self, mouse: MouseEvent) -> Action | None:
        if self.filter_popup.is_open:
            choice = self.filter_popup.handle_mouse(mouse)
            if choice is not None:
                self.switch_filter(choice)
            return None
        if mouse.kind == "down":
            if self._input_region is not None and self._input_region.contains(mouse.x, mouse.y):
                self.focus = Focus.SEARCH
                self.grid_focused = False
                return None
            if self._filter_region is not None and self._filter_region.contains(mouse.x, mouse.y):
                self.focus = Focus.FILTER
                self.grid_focused = False
                self.filter_popup.open()
                return None
        action = self.handle_grid_mouse(mouse)
        if self.grid_focused:
            self.focus = Focus.LIST
        return action

    # -- drawing -------------------------------------------------------------

    def draw(self, frame: Frame) -> None:
        body = self.body(frame)
        header, grid_area = body.split_rows(3, 0)
        filter_width = self.filter_popup.anchor_width()
        count_text = f"{len(self.ids)} results"
        input_area, count_area, filter_area = header.split_cols(0, len(count_text) + 4, filter_width)
        self._input_region = input_area
        self._filter_region = filter_area

        focused = self.focus is Focus.SEARCH
        frame.place(
            "body",
            input_area,
            Panel(
                self.search_input.render(focused),
                box=ROUNDED,
                border_style=THEME_COLORS["highlight"] if focused else THEME_COLORS["primary"],
                padding=(0, 1),
            ),
        )
        frame.place(
            "body",
            count_area,
            Panel(
                Text(count_text, style=THEME_COLORS["text"], justify="center"),
                box=ROUNDED,
                border_style=THEME_COLORS["primary"],
                padding=(0, 0),
            ),
        )
        frame.place("body", filter_area, self.filter_popup.render_anchor(self.focus is Focus.FILTER))
        if self.filter_popup.is_open:
            menu = self.filter_popup.menu_region(filter_area, body)
            frame.place("menu", menu, self.filter_popup.render_menu(menu))

        self.draw_grid(frame, grid_area)


__all__ = ["FILTER_OPTIONS", "FilterSwitch", "Search", "SearchScreen", "ranking_type_for", "search_runner"]
