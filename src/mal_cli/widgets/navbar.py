"""Top navigation bar shared by the browsing screens."""

from __future__ import annotations

from rich.box import ROUNDED
from rich.panel import Panel
from rich.text import Text

from mal_cli.config import NavigationConfig
from mal_cli.events import Action, KeyEvent, MouseEvent, NavbarSelect, SwitchScreen
from mal_cli.themes import THEME_COLORS
from mal_cli.widgets.frame import NAVBAR_HEIGHT, Frame, Region
from mal_cli.widgets.keys import is_focus_down, nav


class NavBar:
    """Horizontal tabs. ``old_button`` remembers the tab of the active screen."""

    def __init__(self, options: list[tuple[str, str]] | None = None) -> None:
        # (label, screen id) pairs
        self.options: list[tuple[str, str]] = list(options or [])
        self.selected_button = 0
        self.old_button = 0
        self.is_selected = False
        self._regions: list[Region] = []

    def add_screen(self, label: str, screen_id: str) -> NavBar:
        self.options.append((label, screen_id))
        return self

    def select(self) -> None:
        self.is_selected = True

    def deselect(self) -> None:
        self.selected_button = self.old_button
        self.is_selected = False

    def set_current(self, screen_id: str) -> None:
        """Highlight the tab of ``screen_id`` when it has one."""
        for index, (_, option_id) in enumerate(self.options):
            if option_id == screen_id:
                self.selected_button = index
                self.old_button = index
                return

    def _activate(self, index: int) -> Action | None:
        if not 0 <= index < len(self.options):
            return None
        self.selected_button = index
        self.old_button = index
        return SwitchScreen(self.options[index][1])

    def handle_key(self, key: KeyEvent, navigation: NavigationConfig | None = None) -> Action | None:
        if is_focus_down(key) or key.key == "ctrl+k":
            self.deselect()
            return NavbarSelect(False)
        if nav(navigation, "nav_left", key):
            self.selected_button = max(0, self.selected_button - 1)
        elif nav(navigation, "nav_right", key):
            self.selected_button = min(len(self.options) - 1, self.selected_button + 1)
        elif nav(navigation, "select", key):
            return self._activate(self.selected_button)
        return None

    def handle_mouse(self, mouse: MouseEvent) -> Action | None:
        """Clicks below the bar hand focus back to the screen."""
        if mouse.y >= NAVBAR_HEIGHT:
            self.deselect()
            return NavbarSelect(False)
        if mouse.kind != "down":
            return None
        for index, region in enumerate(self._regions):
            if region.shrink(1, 0).contains(mouse.x, mouse.y):
                return self._activate(index)
        return None

    def draw(self, frame: Frame) -> None:
        bar = Region(0, 0, frame.width, min(NAVBAR_HEIGHT, frame.height))
        self._regions = bar.split_even(len(self.options))
        border = THEME_COLORS["highlight"] if self.is_selected else THEME_COLORS["primary"]
        for index, ((label, _), region) in enumerate(zip(self.options, self._regions, strict=True)):
            if self.is_selected and index == self.selected_button:
                style = THEME_COLORS["second_highlight"]
            elif index == self.old_button:
                style = THEME_COLORS["highlight"]
            else:
                style = THEME_COLORS["text"]
            frame.place(
                "navbar",
                region,
                Panel(Text(label, style=style, justify="center"), box=ROUNDED, border_style=border, padding=(0, 0)),
            )


__all__ = ["NavBar"]
