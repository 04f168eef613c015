"""Seasonal chart: year/season pickers over a grid, with details of the highlighted anime."""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass

from rich.box import ROUNDED
from rich.panel import Panel
from rich.text import Text

from mal_cli.background import BackgroundInfo, CommandChannel, WorkerHandle
from mal_cli.events import Action, KeyEvent, MouseEvent, NavbarSelect
from mal_cli.models import SEASONS, Anime
from mal_cli.screens.grid import GridScreen
from mal_cli.services.mal_client import current_season
from mal_cli.streaming import StreamableRunner
from mal_cli.themes import THEME_COLORS
from mal_cli.widgets.dropdown import Arrows, SelectionPopup
from mal_cli.widgets.formatting import format_count, format_score, humanize
from mal_cli.widgets.frame import Frame, Region
from mal_cli.widgets.keys import is_focus_down, is_focus_up, nav

logger = logging.getLogger(__name__)

FIRST_YEAR = 1970
# First batch of 20 for a quick first paint, then up to four batches of 100
SEASON_BATCHES = 5


@dataclass(frozen=True, slots=True)
class SeasonSwitch:
    year: int
    season: str
    generation: int = 0


def seasons_runner() -> StreamableRunner:
    return StreamableRunner().change_batch_size_at(100, 1).stop_at(SEASON_BATCHES)


class Focus(enum.Enum):
    PICKERS = "pickers"
    GRID = "grid"


class SeasonsScreen(GridScreen):
    cols = 4
    empty_message = "No anime found for this season"

    def __init__(self, info: BackgroundInfo) -> None:
        super().__init__(info)
        year, season = current_season()
        self.year = year
        self.season = season
        self.focus = Focus.GRID
        self.picker_index = 0
        self.year_popup = SelectionPopup(arrows=Arrows.DYNAMIC).add_options(
            [str(y) for y in range(year + 1, FIRST_YEAR - 1, -1)]
        )
        self.year_popup.set_selected(str(year))
        self.season_popup = SelectionPopup(arrows=Arrows.DYNAMIC).add_options([s.capitalize() for s in SEASONS])
        self.season_popup.set_selected(season.capitalize())
        self._picker_regions: list[Region] = []

    @property
    def pickers(self) -> tuple[SelectionPopup, SelectionPopup]:
        return (self.year_popup, self.season_popup)

    # -- background ----------------------------------------------------------

    def _worker(self, channel: CommandChannel) -> None:
        for command in channel:
            if not isinstance(command, SeasonSwitch):
                logger.debug("Seasons worker ignoring %r", command)
                continue
            logger.debug("Loading season %s %d", command.season, command.year)
            self.stream(
                channel,
                command,
                seasons_runner(),
                lambda offset, limit, c=command: self.info.client.get_seasonal(c.year, c.season, offset, limit),
            )

    def background(self) -> WorkerHandle | None:
        handle = self.spawn(self._worker, action="load the seasonal chart")
        if handle is not None:
            self.begin_fetch(SeasonSwitch(self.year, self.season))
        return handle

    def switch_season(self, year: int, season: str) -> bool:
        self.year = year
        self.season = season
        self.year_popup.set_selected(str(year))
        self.season_popup.set_selected(season.capitalize())
        return self.begin_fetch(SeasonSwitch(year, season))

    def _commit_picker(self) -> None:
        year = int(self.year_popup.selected or self.year)
        season = (self.season_popup.selected or self.season).lower()
        if (year, season) != (self.year, self.season):
            self.switch_season(year, season)

    # -- input ---------------------------------------------------------------

    def _open_picker(self) -> SelectionPopup | None:
        for picker in self.pickers:
            if picker.is_open:
                return picker
        return None

    def leave_grid_up(self) -> Action | None:
        self.focus = Focus.PICKERS
        self.grid_focused = False
        return None

    def handle_keyboard(self, key: KeyEvent) -> Action | None:
        navigation = self.navigation
        picker = self._open_picker()
        if picker is not None:
            if picker.handle_key(key, navigation) is not None:
                self._commit_picker()
            return None
        if self.focus is Focus.GRID:
            return self.handle_grid_key(key)
        if nav(navigation, "nav_left", key):
            self.picker_index = 0
        elif nav(navigation, "nav_right", key):
            self.picker_index = 1
        elif nav(navigation, "nav_up", key) or is_focus_up(key):
            return NavbarSelect(True)
        elif nav(navigation, "nav_down", key) or is_focus_down(key):
            self.focus = Focus.GRID
            self.grid_focused = True
        elif nav(navigation, "select", key):
            self.pickers[self.picker_index].open()
        return None

    def handle_mouse(self, mouse: MouseEvent) -> Action | None:
        picker = self._open_picker()
        if picker is not None:
            if picker.handle_mouse(mouse) is not None:
                self._commit_picker()
            return None
        if mouse.kind == "down":
            for index, region in enumerate(self._picker_regions):
                if region.contains(mouse.x, mouse.y):
                    self.focus = Focus.PICKERS
                    self.grid_focused = False
                    self.picker_index = index
                    self.pickers[index].open()
                    return None
        action = self.handle_grid_mouse(mouse)
        if self.grid_focused:
            self.focus = Focus.GRID
        return action

    # -- drawing -------------------------------------------------------------

    def _details(self, anime: Anime) -> Text:
        text = Text()
        text.append(anime.display_title + "\n", style=f"bold {THEME_COLORS['second_highlight']}")
        if anime.alternative_titles.ja:
            text.append(anime.alternative_titles.ja + "\n", style=THEME_COLORS["secondary"])
        rows = (
            ("Type", humanize(anime.media_type).upper() or "?"),
            ("Episodes", str(anime.num_episodes or "?")),
            ("Status", humanize(anime.airing_status)),
            ("Aired", anime.start_date or "?"),
            ("Genres", ", ".join(g.name for g in anime.genres) or "-"),
            ("Duration", f"{anime.average_episode_duration // 60} min" if anime.average_episode_duration else "?"),
            ("Rating", anime.rating.upper().replace("_", " ") or "?"),
            ("Score", format_score(anime.mean)),
            ("Ranked", f"#{anime.rank}" if anime.rank else "N/A"),
            ("Popularity", f"#{anime.popularity}" if anime.popularity else "N/A"),
            ("Members", format_count(anime.num_list_users)),
            ("Studios", ", ".join(s.name for s in anime.studios) or "-"),
        )
        text.append("\n")
        for label, value in rows:
            text.append(f"{label}: ", style=THEME_COLORS["primary"])
            text.append(value + "\n", style=THEME_COLORS["text"])
        if anime.synopsis:
            text.append("\nDescription:\n", style=THEME_COLORS["primary"])
            text.append(anime.synopsis, style=THEME_COLORS["text"])
        return text

    def draw(self, frame: Frame) -> None:
        body = self.body(frame)
        left, right = body.split_cols(body.width * 7 // 10, 0)
        header, grid_area = left.split_rows(3, 0)

        title, year_area, season_area = header.split_cols(max(0, header.width - 32), 14, 18)
        frame.place(
            "body",
            title,
            Panel(
                Text(f"{self.season.capitalize()} {self.year}", style=THEME_COLORS["text"], justify="center"),
                box=ROUNDED,
                border_style=THEME_COLORS["primary"],
                padding=(0, 0),
            ),
        )
        self._picker_regions = [year_area, season_area]
        for index, (picker, region) in enumerate(zip(self.pickers, self._picker_regions, strict=True)):
            focused = self.focus is Focus.PICKERS and index == self.picker_index
            frame.place("body", region, picker.render_anchor(focused))
            if picker.is_open:
                menu = picker.menu_region(region, body)
                frame.place("menu", menu, picker.render_menu(menu))

        self.draw_grid(frame, grid_area)

        anime_id = self.selected_id()
        anime = self.info.store.get(anime_id) if anime_id is not None else None
        details = self._details(anime) if anime is not None else Text("")
        frame.place(
            "body",
            right,
            Panel(details, box=ROUNDED, border_style=THEME_COLORS["primary"], padding=(0, 1)),
        )

__all__ = ["SeasonSwitch", "SeasonsScreen", "seasons_runner"]
