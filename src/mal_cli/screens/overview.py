"""Overview: what you are watching, what you watched recently, and suggestions."""

from __future__ import annotations

import logging

from rich.text import Text

from mal_cli.background import BackgroundInfo, BackgroundUpdate, CommandChannel, WorkerHandle
from mal_cli.events import Action, KeyEvent, MouseEvent, NavbarSelect, ShowOverlay
from mal_cli.images import ImageManager
from mal_cli.models import Anime
from mal_cli.screens.base import Screen
from mal_cli.themes import THEME_COLORS
from mal_cli.widgets.anime_box import anime_card
from mal_cli.widgets.frame import Frame, Region
from mal_cli.widgets.keys import is_focus_up, nav
from mal_cli.widgets.navigatable import Navigatable

logger = logging.getLogger(__name__)

ROW_LIMIT = 20
ROW_COLUMNS = 5
# (field name, heading)
SECTIONS: tuple[tuple[str, str], ...] = (
    ("watching", "Continue watching"),
    ("recent", "Recently watched"),
    ("suggested", "Suggested for you"),
)


def recent_on_list(info: BackgroundInfo, limit: int = ROW_LIMIT) -> list[Anime]:
    """Recently played anime that are still on the user's list, newest first."""
    if info.history is None:
        return []
    found: list[Anime] = []
    for anime_id in info.history.recent_ids(limit):
        anime = info.store.get(anime_id) or info.client.get_anime(anime_id)
        if anime is None or not anime.my_list_status.status:
            logger.debug("Eliding %d from recent history", anime_id)
            continue
        found.append(anime)
    return found


class OverviewScreen(Screen):
    def __init__(self, info: BackgroundInfo) -> None:
        super().__init__(info)
        self.rows: dict[str, list[int]] = {name: [] for name, _ in SECTIONS}
        self.loaded: set[str] = set()
        self.navigatables = {name: Navigatable(1, ROW_COLUMNS) for name, _ in SECTIONS}
        self.row_index = 0
        self.image_manager = ImageManager()
        self._row_regions: dict[str, Region] = {}

    def _worker(self, channel: CommandChannel) -> None:
        info = self.info
        name = self.get_name()
        loaders = (
            ("watching", lambda: info.client.get_user_list("watching", 0, ROW_LIMIT)),
            ("recent", lambda: recent_on_list(info)),
            ("suggested", lambda: info.client.get_suggested(0, ROW_LIMIT)),
        )
        for field, load in loaders:
            if channel.closed:
                return
            animes = load() or []
            info.store.add_bulk(animes)
            info.notify(BackgroundUpdate(name).set(field, [anime.id for anime in animes]))

    def background(self) -> WorkerHandle | None:
        return self.spawn(self._worker, action="load your overview")

    def apply_update(self, update: BackgroundUpdate) -> None:
        if self.image_manager is not None and self.image_manager.take_update(update):
            return
        for name, _ in SECTIONS:
            ids = update.take(name, list)
            if ids is not None:
                self.rows[name] = ids
                self.loaded.add(name)
                self.navigatables[name].back_to_start()

    @property
    def current_row(self) -> str:
        return SECTIONS[self.row_index][0]

    def handle_keyboard(self, key: KeyEvent) -> Action | None:
        navigation = self.navigation
        row = self.current_row
        ids = self.rows[row]
        navigatable = self.navigatables[row]
        if nav(navigation, "nav_up", key) or is_focus_up(key):
            if self.row_index == 0:
                return NavbarSelect(True)
            self.row_index -= 1
        elif nav(navigation, "nav_down", key):
            self.row_index = min(len(SECTIONS) - 1, self.row_index + 1)
        elif nav(navigation, "nav_left", key):
            navigatable.move_left()
        elif nav(navigation, "nav_right", key):
            navigatable.move_right(len(ids))
        elif nav(navigation, "select", key):
            anime_id = navigatable.get_selected_item(ids)
            if anime_id is not None:
                return ShowOverlay(anime_id)
        return None

    def handle_mouse(self, mouse: MouseEvent) -> Action | None:
        for index, (name, _) in enumerate(SECTIONS):
            region = self._row_regions.get(name)
            if region is None or not region.contains(mouse.x, mouse.y):
                continue
            navigatable = self.navigatables[name]
            ids = self.rows[name]
            if mouse.kind == "scroll_up":
                navigatable.move_left()
                return None
            if mouse.kind == "scroll_down":
                navigatable.move_right(len(ids))
                return None
            hit = navigatable.index_at(mouse.x, mouse.y)
            if hit is None:
                return None
            self.row_index = index
            if hit == navigatable.selected:
                return ShowOverlay(ids[hit])
            navigatable.select(hit, len(ids))
        return None

    def draw(self, frame: Frame) -> None:
        body = self.body(frame)
        store = self.info.store
        images = self.image_manager
        for index, ((name, heading), region) in enumerate(
            zip(SECTIONS, body.split_even(len(SECTIONS), horizontal=False), strict=True)
        ):
            title_area, row_area = region.split_rows(1, 0)
            self._row_regions[name] = row_area
            active = index == self.row_index
            frame.place(
                "body",
                title_area,
                Text(f" {heading}", style=f"bold {THEME_COLORS['highlight'] if active else THEME_COLORS['text']}"),
            )
            ids = self.rows[name]
            if not ids:
                message = "Nothing here yet" if name in self.loaded else "Loading..."
                frame.place("body", row_area.centered(len(message), 1), Text(message, style=THEME_COLORS["primary"]))
                continue

            def _cell(anime_id: int, cell: Region, highlighted: bool, active: bool = active) -> None:
                anime = store.get(anime_id)
                if anime is not None:
                    frame.place("body", cell, anime_card(anime, cell, images, highlighted and active))

            self.navigatables[name].construct(ids, row_area, _cell)


__all__ = ["SECTIONS", "OverviewScreen", "recent_on_list"]
