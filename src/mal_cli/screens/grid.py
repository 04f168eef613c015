"""Shared behaviour of the paginated anime-grid screens (seasons, search, list)."""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import replace
from typing import Any

from rich.text import Text

from mal_cli.background import BackgroundInfo, BackgroundUpdate, CommandChannel
from mal_cli.events import Action, KeyEvent, MouseEvent, NavbarSelect, ShowOverlay
from mal_cli.images import ImageManager
from mal_cli.models import Anime
from mal_cli.screens.base import Screen
from mal_cli.streaming import StreamableRunner
from mal_cli.themes import THEME_COLORS
from mal_cli.widgets.anime_box import anime_card
from mal_cli.widgets.frame import Frame, Region
from mal_cli.widgets.keys import is_focus_up, nav
from mal_cli.widgets.navigatable import Navigatable

logger = logging.getLogger(__name__)

GRID_ROWS = 2
GRID_COLS = 5
# Narrowest card before the grid drops a column
MIN_CARD_WIDTH = 22


def stream_into_screen(
    info: BackgroundInfo,
    screen_id: str,
    runner: StreamableRunner,
    fetch: Callable[[int, int], Sequence[Anime] | None],
    *,
    generation: int = 0,
    superseded: Callable[[], bool] | None = None,
) -> int:
    """Run a paginated fetch, storing every batch and notifying ``screen_id`` per batch.

    Every notice carries ``generation`` so the screen can tell one command's
    batches from the next. The stream ends early once ``superseded()`` is
    true. A command that yields nothing still sends one empty batch, so the
    screen clears the previous results. Returns the number of batches delivered.
    """
    delivered = 0
    for batch in runner.run(fetch):
        info.store.add_bulk(batch)
        ids = [anime.id for anime in batch]
        if not info.notify(BackgroundUpdate(screen_id).set("ids", ids).set("generation", generation)):
            logger.debug("Event bus closed; %s stops streaming", screen_id)
            return delivered
        delivered += 1
        if superseded is not None and superseded():
            logger.debug("%s: newer command queued, dropping generation %d", screen_id, generation)
            return delivered
    if not delivered:
        info.notify(BackgroundUpdate(screen_id).set("ids", []).set("generation", generation))
    return delivered


class GridScreen(Screen):
    """A scrollable grid of anime cards fed by a background stream.

    Subclasses send commands through ``begin_fetch``, which stamps each one
    with a new generation. ``apply_update`` replaces the grid on the first
    batch of a newer generation and ignores batches from older ones.
    """

    rows = GRID_ROWS
    cols = GRID_COLS
    empty_message = "Nothing here yet"
    card = staticmethod(anime_card)

    def __init__(self, info: BackgroundInfo) -> None:
        super().__init__(info)
        self.ids: list[int] = []
        # Last generation sent, and the one the grid currently shows
        self.generation = 0
        self.shown_generation = 0
        self.grid_focused = True
        self.navigatable = Navigatable(self.rows, self.cols)
        self.image_manager = ImageManager()

    @property
    def fetching(self) -> bool:
        return self.shown_generation < self.generation

    # -- background ----------------------------------------------------------

    def begin_fetch(self, command: Any) -> bool:
        """Send ``command`` as a new generation; its first batch starts a new list."""
        generation = self.generation + 1
        if not self.send(replace(command, generation=generation)):
            return False
        self.generation = generation
        return True

    def stream(
        self,
        channel: CommandChannel,
        command: Any,
        runner: StreamableRunner,
        fetch: Callable[[int, int], Sequence[Anime] | None],
    ) -> int:
        """Worker side of ``begin_fetch``: stream ``command``'s results until a newer one is queued."""
        return stream_into_screen(
            self.info,
            self.get_name(),
            runner,
            fetch,
            generation=command.generation,
            superseded=channel.has_pending,
        )

    def apply_update(self, update: BackgroundUpdate) -> None:
        if self.image_manager is not None and self.image_manager.take_update(update):
            return
        ids = update.take("ids", list)
        if ids is None:
            return
        generation = update.take("generation", int)
        if generation is None:
            generation = self.shown_generation
        if generation < self.shown_generation:
            logger.debug("%s: dropping batch from generation %d", self.get_name(), generation)
            return
        if generation > self.shown_generation:
            self.ids = []
            self.navigatable.back_to_start()
            self.shown_generation = generation
        seen = set(self.ids)
        for anime_id in ids:
            if anime_id not in seen:
                self.ids.append(anime_id)
                seen.add(anime_id)

    # -- helpers -------------------------------------------------------------

    def selected_id(self) -> int | None:
        return self.navigatable.get_selected_item(self.ids)

    def _fit_columns(self, area: Region) -> None:
        cols = max(1, min(self.cols, area.width // MIN_CARD_WIDTH))
        if cols != self.navigatable.cols or self.rows != self.navigatable.rows:
            self.navigatable.change_size(self.rows, cols)

    # -- input ---------------------------------------------------------------

    def handle_grid_key(self, key: KeyEvent) -> Action | None:
        navigation = self.navigation
        total = len(self.ids)
        if nav(navigation, "nav_up", key) or is_focus_up(key):
            if self.navigatable.selected < self.navigatable.cols:
                return self.leave_grid_up()
            self.navigatable.move_up()
        elif nav(navigation, "nav_down", key):
            self.navigatable.move_down(total)
        elif nav(navigation, "nav_left", key):
            self.navigatable.move_left()
        elif nav(navigation, "nav_right", key):
            self.navigatable.move_right(total)
        elif nav(navigation, "select", key):
            anime_id = self.selected_id()
            if anime_id is not None:
                return ShowOverlay(anime_id)
        return None

    def leave_grid_up(self) -> Action | None:
        """Focus whatever sits above the grid; the navbar by default."""
        return NavbarSelect(True)

    def handle_keyboard(self, key: KeyEvent) -> Action | None:
        return self.handle_grid_key(key)

    def handle_grid_mouse(self, mouse: MouseEvent) -> Action | None:
        total = len(self.ids)
        if mouse.kind == "scroll_up":
            self.navigatable.move_up()
            return None
        if mouse.kind == "scroll_down":
            self.navigatable.move_down(total)
            return None
        index = self.navigatable.index_at(mouse.x, mouse.y)
        if index is None:
            return None
        self.grid_focused = True
        if index == self.navigatable.selected:
            return ShowOverlay(self.ids[index])
        self.navigatable.select(index, total)
        return None

    def handle_mouse(self, mouse: MouseEvent) -> Action | None:
        return self.handle_grid_mouse(mouse)

    # -- drawing -------------------------------------------------------------

    def draw_grid(self, frame: Frame, area: Region) -> None:
        if not self.ids:
            message = "Loading..." if self.fetching or not self.bg_loaded else self.empty_message
            frame.place(
                "body",
                area.centered(len(message) + 2, 1),
                Text(message, style=THEME_COLORS["primary"], justify="center"),
            )
            return
        self._fit_columns(area)
        store = self.info.store
        images = self.image_manager

        def _cell(anime_id: int, cell: Region, highlighted: bool) -> None:
            anime = store.get(anime_id)
            if anime is None:
                return
            frame.place("body", cell, self.card(anime, cell, images, highlighted and self.grid_focused))

        self.navigatable.construct(self.ids, area, _cell)


__all__ = ["GRID_COLS", "GRID_ROWS", "GridScreen", "stream_into_screen"]
