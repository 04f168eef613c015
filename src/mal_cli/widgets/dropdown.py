"""Dropdown selection popup used for filters, seasons and list-status fields."""

from __future__ import annotations

import enum

from rich.box import ROUNDED
from rich.panel import Panel
from rich.text import Text

from mal_cli.config import NavigationConfig
from mal_cli.events import KeyEvent, MouseEvent
from mal_cli.themes import THEME_COLORS
from mal_cli.widgets.formatting import truncate
from mal_cli.widgets.frame import Region
from mal_cli.widgets.keys import nav


class Arrows(enum.Enum):
    """How the anchor hints that it opens."""

    NONE = "none"
    STATIC = "static"  # always shows ▼
    DYNAMIC = "dynamic"  # ▼ when closed, ▲ when open


class SelectionPopup:
    """A closed anchor showing the current choice, plus a list when open."""

    def __init__(
        self,
        *,
        arrows: Arrows = Arrows.NONE,
        display_format: str = "{}",
        color: str | None = None,
    ) -> None:
        self.options: list[str] = []
        self.is_open = False
        self.selected_index = 0
        self.next_index = 0
        self.longest_word = 0
        self.display_format = display_format
        self.arrows = arrows
        self.color = color
        self._scroll = 0
        self._menu_rows: list[tuple[int, Region]] = []

    # -- building ------------------------------------------------------------

    def add_option(self, option: str) -> SelectionPopup:
        self.options.append(option)
        self.longest_word = max(self.longest_word, len(option))
        return self

    def add_options(self, options: list[str] | tuple[str, ...]) -> SelectionPopup:
        for option in options:
            self.add_option(option)
        return self

    def set_options(self, options: list[str] | tuple[str, ...]) -> None:
        """Replace the options, keeping the selection by text when possible."""
        current = self.selected
        self.options = []
        self.longest_word = 0
        self.add_options(options)
        self.selected_index = 0
        if current is None or not self.set_selected(current):
            self.next_index = 0
        self._scroll = 0

    def set_selected(self, option: str) -> bool:
        """Select ``option`` by text. Returns False if it is not an option."""
        try:
            index = self.options.index(option)
        except ValueError:
            return False
        self.selected_index = index
        self.next_index = index
        return True

    def set_color(self, color: str | None) -> SelectionPopup:
        self.color = color
        return self

    @property
    def selected(self) -> str | None:
        if 0 <= self.selected_index < len(self.options):
            return self.options[self.selected_index]
        return None

    # -- state ---------------------------------------------------------------

    def open(self) -> None:
        if not self.options:
            return
        self.is_open = True
        self.next_index = self.selected_index

    def close(self) -> None:
        self.is_open = False
        self.next_index = self.selected_index

    def _commit(self) -> str | None:
        self.selected_index = self.next_index
        self.is_open = False
        return self.selected

    def handle_key(self, key: KeyEvent, navigation: NavigationConfig | None = None) -> str | None:
        """Drive the popup. Returns the chosen option when a choice is committed."""
        if not self.is_open:
            if nav(navigation, "select", key):
                self.open()
            return None
        if key.key in ("q", "escape"):
            self.close()
        elif nav(navigation, "nav_up", key):
            self.next_index = max(0, self.next_index - 1)
        elif nav(navigation, "nav_down", key):
            self.next_index = min(len(self.options) - 1, self.next_index + 1)
        elif nav(navigation, "select", key):
            return self._commit()
        return None

    def handle_mouse(self, mouse: MouseEvent) -> str | None:
        """Click on an open menu row commits it; scrolling moves the highlight."""
        if not self.is_open:
            return None
        if mouse.kind == "scroll_up":
            self.next_index = max(0, self.next_index - 1)
            return None
        if mouse.kind == "scroll_down":
            self.next_index = min(len(self.options) - 1, self.next_index + 1)
            return None
        for index, row in self._menu_rows:
            if row.contains(mouse.x, mouse.y):
                self.next_index = index
                return self._commit()
        self.close()
        return None

    # -- rendering -----------------------------------------------------------

    def display_text(self) -> str:
        value = self.selected or ""
        text = self.display_format.format(value)
        if self.arrows is Arrows.STATIC:
            return f"{text} ▼"
        if self.arrows is Arrows.DYNAMIC:
            return f"{text} {'▲' if self.is_open else '▼'}"
        return text

    def anchor_width(self) -> int:
        """Width that fits the longest option inside the border."""
        longest = self.display_format.format("x" * self.longest_word)
        return len(longest) + (2 if self.arrows is not Arrows.NONE else 0) + 4

    def render_anchor(self, focused: bool = False, title: str | None = None) -> Panel:
        if focused:
            border = THEME_COLORS["highlight"]
        else:
            border = self.color or THEME_COLORS["primary"]
        text_color = self.color or THEME_COLORS["text"]
        return Panel(
            Text(self.display_text(), style=text_color, justify="center", no_wrap=True, overflow="ellipsis"),
            box=ROUNDED,
            border_style=border,
            title=title,
            title_align="left",
            padding=(0, 0),
        )

    def menu_region(self, anchor: Region, bounds: Region) -> Region:
        """Where the open list goes: under the anchor, clipped to ``bounds``."""
        width = max(anchor.width, self.longest_word + 4)
        available = max(0, bounds.bottom - anchor.bottom)
        height = min(len(self.options) + 2, available)
        x = min(anchor.x, max(bounds.x, bounds.right - width))
        return Region(x, anchor.bottom, min(width, bounds.width), height)

    def render_menu(self, region: Region) -> Panel:
        """The open option list for ``region``; scrolls to keep the highlight visible."""
        rows = max(0, region.height - 2)
        if rows and self.next_index < self._scroll:
            self._scroll = self.next_index
        elif rows and self.next_index >= self._scroll + rows:
            self._scroll = self.next_index - rows + 1
        self._scroll = max(0, min(self._scroll, max(0, len(self.options) - rows)))

        self._menu_rows = []
        body = Text(no_wrap=True, overflow="crop")
        visible = self.options[self._scroll : self._scroll + rows]
        for offset, option in enumerate(visible):
            index = self._scroll + offset
            self._menu_rows.append((index, Region(region.x + 1, region.y + 1 + offset, region.width - 2, 1)))
            if index == self.next_index:
                style = f"bold {THEME_COLORS['second_highlight']}"
            elif index == self.selected_index:
                style = THEME_COLORS["highlight"]
            else:
                style = THEME_COLORS["text"]
            if offset:
                body.append("\n")
            body.append(truncate(option, region.width - 2), style=style)
        return Panel(body, box=ROUNDED, border_style=THEME_COLORS["highlight"], padding=(0, 0))


__all__ = ["Arrows", "SelectionPopup"]
