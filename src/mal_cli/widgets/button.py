"""Bordered push buttons and a vertical button menu."""

from __future__ import annotations

from rich.box import ROUNDED
from rich.panel import Panel
from rich.text import Text

from mal_cli.config import NavigationConfig
from mal_cli.events import KeyEvent, MouseEvent
from mal_cli.themes import THEME_COLORS
from mal_cli.widgets.frame import Frame, Region
from mal_cli.widgets.keys import nav

BUTTON_HEIGHT = 3


def button(label: str, selected: bool = False) -> Panel:
    return Panel(
        Text(label, style=THEME_COLORS["second_highlight"] if selected else THEME_COLORS["text"], justify="center"),
        box=ROUNDED,
        border_style=THEME_COLORS["highlight"] if selected else THEME_COLORS["primary"],
        padding=(0, 0),
    )


class ButtonColumn:
    """Buttons stacked vertically; up/down move, select presses."""

    def __init__(self, labels: list[str], width: int = 24) -> None:
        self.labels = list(labels)
        self.selected = 0
        self.width = width
        self._regions: list[Region] = []

    def set_labels(self, labels: list[str]) -> None:
        self.labels = list(labels)
        self.selected = min(self.selected, max(0, len(self.labels) - 1))

    @property
    def current(self) -> str | None:
        if 0 <= self.selected < len(self.labels):
            return self.labels[self.selected]
        return None

    def height(self) -> int:
        return BUTTON_HEIGHT * len(self.labels)

    def handle_key(self, key: KeyEvent, navigation: NavigationConfig | None = None) -> str | None:
        """Returns the pressed label."""
        if nav(navigation, "nav_up", key):
            self.selected = max(0, self.selected - 1)
        elif nav(navigation, "nav_down", key):
            self.selected = min(len(self.labels) - 1, self.selected + 1)
        elif nav(navigation, "select", key):
            return self.current
        return None

    def handle_mouse(self, mouse: MouseEvent) -> str | None:
        if mouse.kind != "down":
            return None
        for index, region in enumerate(self._regions):
            if region.contains(mouse.x, mouse.y):
                self.selected = index
                return self.labels[index]
        return None

    def draw(self, frame: Frame, area: Region, layer: str = "body") -> None:
        """Center the column inside ``area``."""
        column = area.centered(self.width, self.height())
        self._regions = column.split_rows(*([BUTTON_HEIGHT] * len(self.labels)))
        for index, (label, region) in enumerate(zip(self.labels, self._regions, strict=True)):
            frame.place(layer, region, button(label, index == self.selected))


__all__ = ["BUTTON_HEIGHT", "ButtonColumn", "button"]
