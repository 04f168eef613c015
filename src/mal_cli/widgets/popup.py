"""Modal overlays: the anime detail popup and the error popup.

The detail popup sits above whichever grid screen opened it. It has its own
focus graph, its own image slots and its own worker, which submits list
edits and looks up released-episode counts. Worker results come back as
``StorageUpdate`` events (record changes) and as ``BackgroundUpdate``s
addressed to ``"popup"``.
"""

from __future__ import annotations

import enum
import logging
import textwrap
from collections import deque
from dataclasses import dataclass
from functools import partial

from rich.box import HEAVY, ROUNDED
from rich.panel import Panel
from rich.text import Text

from mal_cli.action_messages import build_list_update_error
from mal_cli.background import BackgroundInfo, BackgroundUpdate, CommandChannel, WorkerHandle, spawn_worker
from mal_cli.errors import MalCliError
from mal_cli.events import Action, KeyEvent, MouseEvent, PlayAnime, ShowError, StorageUpdate, SwitchScreen
from mal_cli.images import ImageManager, Rect
from mal_cli.models import (
    LIST_STATUS_LABELS,
    LIST_STATUSES,
    MAX_SCORE,
    Anime,
    ListStatusUpdate,
    ListUpdateResult,
    MyListStatus,
    apply_list_update,
    build_list_update,
)
from mal_cli.player import next_episode
from mal_cli.themes import THEME_COLORS, status_color
from mal_cli.widgets.dropdown import Arrows, SelectionPopup
from mal_cli.widgets.formatting import format_count, format_score, humanize
from mal_cli.widgets.frame import Frame, Region
from mal_cli.widgets.keys import is_focus_down, is_focus_up, nav

logger = logging.getLogger(__name__)

POPUP_ID = "popup"
INFO_SCREEN_ID = "InfoScreen"
PLAY_BUTTONS = ("Play", "Info")
NOT_IN_LIST_LABEL = LIST_STATUS_LABELS[""]
STATUS_OPTIONS: tuple[str, ...] = (*(LIST_STATUS_LABELS[s] for s in LIST_STATUSES), NOT_IN_LIST_LABEL)
_STATUS_BY_LABEL = {label: status for status, label in LIST_STATUS_LABELS.items()}


class PopupFocus(enum.Enum):
    CLOSED = "closed"
    PLAY_BUTTONS = "play_buttons"
    STATUS_BUTTONS = "status_buttons"
    SYNOPSIS = "synopsis"


# ============================================================================
# Worker commands
# ============================================================================


@dataclass(frozen=True, slots=True)
class SubmitListStatus:
    update: ListStatusUpdate
    title: str


@dataclass(frozen=True, slots=True)
class DeleteFromList:
    anime_id: int
    title: str


@dataclass(frozen=True, slots=True)
class FetchReleasedEpisodes:
    anime_id: int
    titles: tuple[str, ...]


def _set_released(anime: Anime, *, count: int) -> None:
    anime.released_episodes = count


def _apply_result(anime: Anime, *, result: ListUpdateResult) -> None:
    if result.deleted:
        anime.my_list_status = MyListStatus()
    elif result.status is not None:
        anime.my_list_status = result.status


def _clear_status(anime: Anime) -> None:
    anime.my_list_status = MyListStatus()


def _run_popup_worker(info: BackgroundInfo, channel: CommandChannel) -> None:
    for command in channel:
        if isinstance(command, FetchReleasedEpisodes):
            try:
                count = info.client.get_available_episodes(command.anime_id, list(command.titles))
            except MalCliError as e:
                logger.debug("Released episodes for %d unavailable: %s", command.anime_id, e)
                continue
            if count is None:
                continue
            info.bus.send(StorageUpdate(command.anime_id, partial(_set_released, count=count)))
            info.notify(BackgroundUpdate(POPUP_ID).set("released_episodes", (command.anime_id, count)))
        elif isinstance(command, SubmitListStatus):
            try:
                result = info.client.update_user_list(command.update)
            except MalCliError as e:
                logger.warning("List update for %d failed: %s", command.update.anime_id, e)
                info.bus.send(ShowError(build_list_update_error(command.title, str(e))))
                continue
            info.bus.send(StorageUpdate(result.anime_id, partial(_apply_result, result=result)))
        elif isinstance(command, DeleteFromList):
            try:
                result = info.client.delete_from_list(command.anime_id)
            except MalCliError as e:
                logger.warning("Removing %d from the list failed: %s", command.anime_id, e)
                info.bus.send(ShowError(build_list_update_error(command.title, str(e))))
                continue
            info.bus.send(StorageUpdate(result.anime_id, partial(_apply_result, result=result)))


# ============================================================================
# Anime popup
# ============================================================================


class AnimePopup:
    """Detail overlay for one anime, with play buttons and list-status dropdowns."""

    def __init__(self, info: BackgroundInfo) -> None:
        self.info = info
        self.anime_id: int | None = None
        self.focus = PopupFocus.CLOSED
        self.play_index = 0
        self.status_index = 0
        self.synopsis_scroll = 0
        self.status_popup = SelectionPopup(arrows=Arrows.DYNAMIC).add_options(STATUS_OPTIONS)
        self.score_popup = SelectionPopup(arrows=Arrows.DYNAMIC, display_format="Score: {}").add_options(
            [str(n) for n in range(MAX_SCORE + 1)]
        )
        self.episode_popup = SelectionPopup(arrows=Arrows.DYNAMIC, display_format="Episodes: {}")
        self.images = ImageManager()
        self.channel: CommandChannel | None = None
        self.worker: WorkerHandle | None = None
        self._synopsis_lines = 0
        self._area: Region | None = None
        self._buttons: list[Region] = []
        self._anchors: list[Region] = []
        self._synopsis_area: Region | None = None

    @property
    def dropdowns(self) -> tuple[SelectionPopup, SelectionPopup, SelectionPopup]:
        return (self.status_popup, self.score_popup, self.episode_popup)

    def is_open(self) -> bool:
        return self.focus is not PopupFocus.CLOSED

    def _open_dropdown(self) -> SelectionPopup | None:
        for dropdown in self.dropdowns:
            if dropdown.is_open:
                return dropdown
        return None

    def _ensure_worker(self) -> None:
        if self.channel is not None:
            return
        self.images.start(self.info.bus, POPUP_ID)
        channel = CommandChannel()
        self.channel = channel
        self.worker = spawn_worker(
            "popup",
            lambda: _run_popup_worker(self.info, channel),
            bus=self.info.bus,
            action="update your list",
        )

    # -- lifecycle -----------------------------------------------------------

    def open(self, anime_id: int) -> bool:
        anime = self.info.store.get(anime_id)
        if anime is None:
            logger.debug("Cannot open popup for unknown anime %d", anime_id)
            return False
        self._ensure_worker()
        self.anime_id = anime_id
        self.focus = PopupFocus.PLAY_BUTTONS
        self.play_index = 0
        self.status_index = 0
        self.synopsis_scroll = 0
        self._sync_dropdowns(anime)
        titles = tuple(t for t in (anime.title, anime.alternative_titles.en, *anime.alternative_titles.synonyms) if t)
        if self.channel is not None:
            self.channel.send(FetchReleasedEpisodes(anime.id, titles))
        self.images.fetch_image(anime)
        return True

    def close(self) -> None:
        for dropdown in self.dropdowns:
            dropdown.close()
        self.focus = PopupFocus.CLOSED

    def dispose(self) -> None:
        self.close()
        if self.channel is not None:
            self.channel.close()
        self.images.close()

    def current_anime(self) -> Anime | None:
        if self.anime_id is None:
            return None
        return self.info.store.get(self.anime_id)

    def _sync_dropdowns(self, anime: Anime, released: int | None = None) -> None:
        status = anime.my_list_status
        self.status_popup.set_selected(LIST_STATUS_LABELS.get(status.status, NOT_IN_LIST_LABEL))
        self.score_popup.set_selected(str(status.score))
        top = max(anime.episode_cap(), released or 0, status.num_episodes_watched + 1)
        self.episode_popup.set_options([str(n) for n in range(top + 1)])
        self.episode_popup.set_selected(str(status.num_episodes_watched))

    # -- background ----------------------------------------------------------

    def apply_update(self, update: BackgroundUpdate) -> None:
        if self.images.take_update(update):
            return
        released = update.take("released_episodes", tuple)
        if released is None or released[0] != self.anime_id:
            return
        # The record itself is updated via StorageUpdate; re-derive the episode choices
        anime = self.current_anime()
        if anime is not None:
            self._sync_dropdowns(anime, released=released[1])

    def holds_image(self, image_id: int) -> bool:
        return self.is_open() and image_id in self.images.protocols

    def image_redraw(self, image_id: int, result: object) -> bool:
        return self.images.update_image(image_id, result)

    # -- edits ---------------------------------------------------------------

    def _submit(self, dropdown_index: int, choice: str) -> None:
        anime = self.current_anime()
        if anime is None or self.channel is None:
            return
        if dropdown_index == 0:
            status = _STATUS_BY_LABEL.get(choice, "")
            if not status:
                if anime.my_list_status.status:
                    self.info.store.update(anime.id, _clear_status)
                    self.channel.send(DeleteFromList(anime.id, anime.display_title))
                self.refresh(anime.id)
                return
            update = build_list_update(anime, status=status)
        elif dropdown_index == 1:
            update = build_list_update(anime, score=int(choice))
        else:
            update = build_list_update(anime, episodes_watched=int(choice))
        self.info.store.update(anime.id, partial(apply_list_update, update=update))
        self.channel.send(SubmitListStatus(update, anime.display_title))
        self.refresh(anime.id)

    def refresh(self, anime_id: int) -> None:
        anime = self.info.store.get(anime_id)
        if anime is not None:
            self._sync_dropdowns(anime)

    # -- input ---------------------------------------------------------------

    def _activate_play_button(self) -> Action | None:
        anime_id = self.anime_id
        if anime_id is None:
            return None
        self.close()
        if self.play_index == 0:
            return PlayAnime(anime_id)
        self.info.extras["info_anime_id"] = anime_id
        return SwitchScreen(INFO_SCREEN_ID)

    def handle_key(self, key: KeyEvent) -> Action | None:
        if not self.is_open():
            return None
        if self.current_anime() is None:
            self.close()
            return None
        navigation = self.info.config.navigation
        dropdown = self._open_dropdown()
        if key.key == "q":
            self.close()
            return None
        if key.key == "escape":
            if dropdown is not None:
                dropdown.close()
            else:
                self.close()
            return None

        if dropdown is not None:
            choice = dropdown.handle_key(key, navigation)
            if choice is not None:
                self._submit(self.dropdowns.index(dropdown), choice)
            return None

        if self.focus is PopupFocus.PLAY_BUTTONS:
            if nav(navigation, "nav_left", key):
                self.play_index = max(0, self.play_index - 1)
            elif nav(navigation, "nav_right", key):
                self.play_index = min(len(PLAY_BUTTONS) - 1, self.play_index + 1)
            elif nav(navigation, "nav_down", key) or is_focus_down(key):
                self.focus = PopupFocus.STATUS_BUTTONS
            elif nav(navigation, "select", key):
                return self._activate_play_button()
        elif self.focus is PopupFocus.STATUS_BUTTONS:
            if nav(navigation, "nav_left", key):
                self.status_index = max(0, self.status_index - 1)
            elif nav(navigation, "nav_right", key):
                self.status_index = min(len(self.dropdowns) - 1, self.status_index + 1)
            elif nav(navigation, "nav_up", key) or is_focus_up(key):
                self.focus = PopupFocus.PLAY_BUTTONS
            elif nav(navigation, "nav_down", key) or is_focus_down(key):
                self.focus = PopupFocus.SYNOPSIS
            elif nav(navigation, "select", key):
                self.dropdowns[self.status_index].open()
        elif self.focus is PopupFocus.SYNOPSIS:
            if is_focus_up(key) or (nav(navigation, "nav_up", key) and self.synopsis_scroll == 0):
                self.focus = PopupFocus.STATUS_BUTTONS
            elif nav(navigation, "nav_up", key):
                self.synopsis_scroll -= 1
            elif nav(navigation, "nav_down", key):
                self.synopsis_scroll = min(self.synopsis_scroll + 1, max(0, self._synopsis_lines - 1))
        return None

    def handle_mouse(self, mouse: MouseEvent) -> Action | None:
        if not self.is_open():
            return None
        dropdown = self._open_dropdown()
        if dropdown is not None:
            choice = dropdown.handle_mouse(mouse)
            if choice is not None:
                self._submit(self.dropdowns.index(dropdown), choice)
            return None
        if mouse.kind in ("scroll_up", "scroll_down"):
            if self._synopsis_area is not None and self._synopsis_area.contains(mouse.x, mouse.y):
                step = -1 if mouse.kind == "scroll_up" else 1
                self.synopsis_scroll = max(0, min(self.synopsis_scroll + step, max(0, self._synopsis_lines - 1)))
            return None
        if self._area is not None and not self._area.contains(mouse.x, mouse.y):
            self.close()
            return None
        for index, region in enumerate(self._buttons):
            if region.contains(mouse.x, mouse.y):
                self.focus = PopupFocus.PLAY_BUTTONS
                self.play_index = index
                return self._activate_play_button()
        for index, region in enumerate(self._anchors):
            if region.contains(mouse.x, mouse.y):
                self.focus = PopupFocus.STATUS_BUTTONS
                self.status_index = index
                self.dropdowns[index].open()
                return None
        if self._synopsis_area is not None and self._synopsis_area.contains(mouse.x, mouse.y):
            self.focus = PopupFocus.SYNOPSIS
        return None

    # -- drawing -------------------------------------------------------------

    def _details(self, anime: Anime) -> Text:
        text = Text(overflow="ellipsis")
        if anime.alternative_titles.ja:
            text.append(anime.alternative_titles.ja + "\n", style=THEME_COLORS["secondary"])
        text.append(f"{humanize(anime.media_type).upper() or '?'}", style=THEME_COLORS["text"])
        text.append(f"  {anime.num_episodes or '?'} eps", style=THEME_COLORS["text"])
        if anime.released_episodes is not None:
            text.append(f" ({anime.released_episodes} out)", style=THEME_COLORS["primary"])
        text.append(f"  {humanize(anime.airing_status)}\n", style=THEME_COLORS["text"])
        text.append(f"★ {format_score(anime.mean)}", style=THEME_COLORS["highlight"])
        text.append(f"  #{anime.rank or '?'} ranked  #{anime.popularity or '?'} popular\n", style=THEME_COLORS["text"])
        text.append(f"{format_count(anime.num_list_users)} members\n", style=THEME_COLORS["primary"])
        if anime.start_season is not None:
            text.append(f"{humanize(anime.start_season.season)} {anime.start_season.year}", style=THEME_COLORS["text"])
        if anime.studios:
            text.append("  " + ", ".join(s.name for s in anime.studios), style=THEME_COLORS["secondary"])
        return text

    def _button(self, label: str, focused: bool) -> Panel:
        color = THEME_COLORS["second_highlight"] if focused else THEME_COLORS["text"]
        border = THEME_COLORS["highlight"] if focused else THEME_COLORS["primary"]
        return Panel(Text(label, style=color, justify="center"), box=ROUNDED, border_style=border, padding=(0, 0))

    def draw(self, frame: Frame) -> None:
        if not self.is_open():
            return
        anime = self.current_anime()
        if anime is None:
            self.close()
            return
        area = frame.area.centered(frame.width * 7 // 10, frame.height * 8 // 10)
        self._area = area
        border = status_color(anime.my_list_status.status) if anime.my_list_status.status else THEME_COLORS["highlight"]
        frame.place(
            "overlay",
            area,
            Panel(Text(""), box=ROUNDED, border_style=border, title=anime.display_title, padding=(0, 0)),
        )
        inner = area.shrink(1, 1)
        left, _, right = inner.split_cols(inner.width * 35 // 100, 1, 0)

        rendered = self.images.render_image(anime.id, Rect(left.width, left.height))
        if rendered is not None:
            frame.place("overlay", left, rendered)
        else:
            frame.place("overlay", left, Text("Loading...", style=THEME_COLORS["primary"], justify="center"))

        details_area, buttons_area, status_area, synopsis_area = right.split_rows(6, 3, 3, 0)
        frame.place("overlay", details_area, self._details(anime))

        self._buttons = buttons_area.split_even(len(PLAY_BUTTONS))
        for index, (label, region) in enumerate(zip(PLAY_BUTTONS, self._buttons, strict=True)):
            if index == 0:
                if anime.airing_status == "upcoming":
                    label = "Not released"
                else:
                    label = f"{label} ep {next_episode(anime)}"
            focused = self.focus is PopupFocus.PLAY_BUTTONS and index == self.play_index
            frame.place("overlay", region, self._button(label, focused))

        self._anchors = status_area.split_even(len(self.dropdowns))
        self.status_popup.set_color(status_color(anime.my_list_status.status) if anime.my_list_status.status else None)
        for index, (dropdown, region) in enumerate(zip(self.dropdowns, self._anchors, strict=True)):
            focused = self.focus is PopupFocus.STATUS_BUTTONS and index == self.status_index
            frame.place("overlay", region, dropdown.render_anchor(focused))
            if dropdown.is_open:
                menu = dropdown.menu_region(region, frame.area)
                frame.place("overlay_menu", menu, dropdown.render_menu(menu))

        self._synopsis_area = synopsis_area
        wrap_width = max(1, synopsis_area.width - 2)
        lines: list[str] = []
        for paragraph in (anime.synopsis or "No synopsis available.").splitlines():
            lines.extend(textwrap.wrap(paragraph, wrap_width) or [""])
        self._synopsis_lines = len(lines)
        self.synopsis_scroll = max(0, min(self.synopsis_scroll, max(0, len(lines) - 1)))
        focused = self.focus is PopupFocus.SYNOPSIS
        frame.place(
            "overlay",
            synopsis_area,
            Panel(
                Text("\n".join(lines[self.synopsis_scroll :]), style=THEME_COLORS["text"]),
                box=ROUNDED,
                title="Synopsis",
                title_align="left",
                border_style=THEME_COLORS["highlight"] if focused else THEME_COLORS["primary"],
                padding=(0, 0),
            ),
        )


# ============================================================================
# Error popup
# ============================================================================


class ErrorPopup:
    """One error at a time; later errors wait in FIFO order."""

    def __init__(self) -> None:
        self.current: str | None = None
        self.queue: deque[str] = deque()

    def is_open(self) -> bool:
        return self.current is not None

    def set_error(self, message: str) -> None:
        if self.current is None:
            self.current = message
        else:
            self.queue.append(message)

    def dismiss(self) -> None:
        self.current = self.queue.popleft() if self.queue else None

    def handle_key(self, key: KeyEvent) -> Action | None:
        if key.key in ("q", "escape", "enter"):
            self.dismiss()
        return None

    def handle_mouse(self, mouse: MouseEvent) -> Action | None:
        if mouse.kind == "down":
            self.dismiss()
        return None

    def draw(self, frame: Frame) -> None:
        if self.current is None:
            return
        lines = self.current.splitlines() or [""]
        width = min(frame.width, max(40, max(len(line) for line in lines) + 6))
        wrapped = sum(max(1, -(-len(line) // max(1, width - 4))) for line in lines)
        area = frame.area.centered(width, wrapped + 4)
        footer = "q / Esc to dismiss"
        if self.queue:
            footer = f"{footer}  ({len(self.queue)} more)"
        frame.place(
            "error",
            area,
            Panel(
                Text(self.current, style=THEME_COLORS["text"], justify="center"),
                box=HEAVY,
                title="Error",
                subtitle=footer,
                border_style=THEME_COLORS["error"],
                padding=(1, 1),
            ),
        )


__all__ = [
    "POPUP_ID",
    "AnimePopup",
    "DeleteFromList",
    "ErrorPopup",
    "FetchReleasedEpisodes",
    "PopupFocus",
    "SubmitListStatus",
]
