"""The user's personal list, filtered by list status."""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass

from rich.box import ROUNDED
from rich.panel import Panel
from rich.text import Text

from mal_cli.background import BackgroundInfo, CommandChannel, WorkerHandle
from mal_cli.events import Action, KeyEvent, MouseEvent, NavbarSelect
from mal_cli.models import LIST_STATUS_LABELS, LIST_STATUSES
from mal_cli.screens.grid import GridScreen
from mal_cli.streaming import StreamableRunner
from mal_cli.themes import THEME_COLORS, status_color
from mal_cli.widgets.frame import Frame, Region
from mal_cli.widgets.keys import is_focus_down, is_focus_up, nav

logger = logging.getLogger(__name__)

LIST_PAGE_SIZE = 100
# "" is the unfiltered list
STATUS_TABS: tuple[str, ...] = ("", *LIST_STATUSES)


@dataclass(frozen=True, slots=True)
class StatusSwitch:
    status: str
    generation: int = 0


def list_runner() -> StreamableRunner:
    return StreamableRunner().with_batch_size(LIST_PAGE_SIZE).stop_early()


def tab_label(status: str) -> str:
    return LIST_STATUS_LABELS[status] if status else "All"


class Focus(enum.Enum):
    TABS = "tabs"
    GRID = "grid"


class ListScreen(GridScreen):
    empty_message = "No anime with this status"

    def __init__(self, info: BackgroundInfo) -> None:
        super().__init__(info)
        self.status = ""
        self.tab_index = 0
        self.focus = Focus.GRID
        self._tab_regions: list[Region] = []

    def _worker(self, channel: CommandChannel) -> None:
        info = self.info
        for command in channel:
            if not isinstance(command, StatusSwitch):
                continue
            logger.debug("Loading list with status %r", command.status or "all")
            self.stream(
                channel,
                command,
                list_runner(),
                lambda offset, limit, s=command.status: info.client.get_user_list(s or None, offset, limit),
            )

    def background(self) -> WorkerHandle | None:
        handle = self.spawn(self._worker, action="load your anime list")
        if handle is not None:
            self.begin_fetch(StatusSwitch(self.status))
        return handle

    def switch_status(self, index: int) -> bool:
        index = max(0, min(index, len(STATUS_TABS) - 1))
        self.tab_index = index
        if STATUS_TABS[index] == self.status and self.ids:
            return False
        self.status = STATUS_TABS[index]
        return self.begin_fetch(StatusSwitch(self.status))

    # -- input ---------------------------------------------------------------

    def leave_grid_up(self) -> Action | None:
        self.focus = Focus.TABS
        self.grid_focused = False
        self.tab_index = STATUS_TABS.index(self.status)
        return None

    def handle_keyboard(self, key: KeyEvent) -> Action | None:
        if self.focus is Focus.GRID:
            return self.handle_grid_key(key)
        navigation = self.navigation
        if nav(navigation, "nav_left", key):
            self.tab_index = max(0, self.tab_index - 1)
        elif nav(navigation, "nav_right", key):
            self.tab_index = min(len(STATUS_TABS) - 1, self.tab_index + 1)
        elif nav(navigation, "select", key):
            self.switch_status(self.tab_index)
            self.focus = Focus.GRID
            self.grid_focused = True
        elif nav(navigation, "nav_up", key) or is_focus_up(key):
            return NavbarSelect(True)
        elif nav(navigation, "nav_down", key) or is_focus_down(key):
            self.focus = Focus.GRID
            self.grid_focused = True
        return None

    def handle_mouse(self, mouse: MouseEvent) -> Action | None:
        if mouse.kind == "down":
            for index, region in enumerate(self._tab_regions):
                if region.contains(mouse.x, mouse.y):
                    self.switch_status(index)
                    return None
        action = self.handle_grid_mouse(mouse)
        if self.grid_focused:
            self.focus = Focus.GRID
        return action

    # -- drawing -------------------------------------------------------------

    def draw(self, frame: Frame) -> None:
        body = self.body(frame)
        tabs, grid_area = body.split_rows(3, 0)
        self._tab_regions = tabs.split_even(len(STATUS_TABS))
        for index, (status, region) in enumerate(zip(STATUS_TABS, self._tab_regions, strict=True)):
            active = status == self.status
            highlighted = self.focus is Focus.TABS and index == self.tab_index
            color = status_color(status) if status else THEME_COLORS["text"]
            border = THEME_COLORS["highlight"] if highlighted else (color if active else THEME_COLORS["primary"])
            style = f"bold {color}" if active else color
            frame.place(
                "body",
                region,
                Panel(Text(tab_label(status), style=style, justify="center"), box=ROUNDED, border_style=border, padding=(0, 0)),
            )
        self.draw_grid(frame, grid_area)


__all__ = ["STATUS_TABS", "ListScreen", "StatusSwitch", "list_runner", "tab_label"]
