"""Settings: where the config lives, what it says, and a shortcut to edit it."""

from __future__ import annotations

from rich.box import ROUNDED
from rich.panel import Panel
from rich.text import Text

from mal_cli.background import BackgroundInfo
from mal_cli.config import config_to_toml, get_config_path
from mal_cli.events import Action, EditorRequested, KeyEvent, MouseEvent, NavbarSelect, Quit, SwitchScreen
from mal_cli.screens.base import PROFILE, SETTINGS, Screen
from mal_cli.themes import THEME_COLORS
from mal_cli.widgets.button import ButtonColumn
from mal_cli.widgets.frame import Frame
from mal_cli.widgets.keys import is_focus_up

OPEN_EDITOR = "Open config in editor"


class SettingsScreen(Screen):
    def __init__(self, info: BackgroundInfo) -> None:
        super().__init__(info)
        previous = info.extras.get("previous_screen")
        self.return_to = previous if previous and previous != SETTINGS else PROFILE
        self.buttons = ButtonColumn([OPEN_EDITOR, "Back", "Quit"], width=28)

    def should_store(self) -> bool:
        return False

    def _press(self, label: str | None) -> Action | None:
        if label == OPEN_EDITOR:
            self.info.bus.send(EditorRequested())
        elif label == "Back":
            return SwitchScreen(self.return_to)
        elif label == "Quit":
            return Quit()
        return None

    def handle_keyboard(self, key: KeyEvent) -> Action | None:
        if is_focus_up(key) or (self.buttons.selected == 0 and self.navigation.matches("nav_up", key.key)):
            return NavbarSelect(True)
        if key.key == "escape":
            return SwitchScreen(self.return_to)
        return self._press(self.buttons.handle_key(key, self.navigation))

    def handle_mouse(self, mouse: MouseEvent) -> Action | None:
        return self._press(self.buttons.handle_mouse(mouse))

    def draw(self, frame: Frame) -> None:
        body = self.body(frame)
        config_area, buttons_area = body.split_rows(max(0, body.height - self.buttons.height() - 2), 0)
        text = Text()
        text.append(f"{get_config_path()}\n\n", style=THEME_COLORS["secondary"])
        text.append(config_to_toml(self.info.config), style=THEME_COLORS["text"])
        frame.place(
            "body",
            config_area,
            Panel(text, box=ROUNDED, border_style=THEME_COLORS["primary"], title="Configuration", padding=(0, 1)),
        )
        self.buttons.draw(frame, buttons_area)


__all__ = ["OPEN_EDITOR", "SettingsScreen"]
