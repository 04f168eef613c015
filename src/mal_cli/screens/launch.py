"""First screen: browse, log in or out, exit."""

from __future__ import annotations

import logging

from rich.text import Text

from mal_cli.background import BackgroundInfo
from mal_cli.events import Action, KeyEvent, MouseEvent, Quit, SwitchScreen, report_error
from mal_cli.screens.base import LAUNCH, LOGIN, OVERVIEW, Screen
from mal_cli.themes import THEME_COLORS
from mal_cli.widgets.button import ButtonColumn
from mal_cli.widgets.frame import Frame

logger = logging.getLogger(__name__)

BANNER = "\n".join(
    (
        " ███╗   ███╗ █████╗ ██╗                ██████╗██╗     ██╗ ",
        " ████╗ ████║██╔══██╗██║               ██╔════╝██║     ██║ ",
        " ██╔████╔██║███████║██║     ███████╗  ██║     ██║     ██║ ",
        " ██║╚██╔╝██║██╔══██║██║     ╚══════╝  ██║     ██║     ██║ ",
        " ██║ ╚═╝ ██║██║  ██║███████╗          ╚██████╗███████╗██║ ",
        " ╚═╝     ╚═╝╚═╝  ╚═╝╚══════╝           ╚═════╝╚══════╝╚═╝ ",
    )
)


class LaunchScreen(Screen):
    def __init__(self, info: BackgroundInfo) -> None:
        super().__init__(info)
        self.buttons = ButtonColumn(self._labels(), width=20)

    def should_store(self) -> bool:
        return False

    def uses_navbar(self) -> bool:
        return False

    def _labels(self) -> list[str]:
        return ["Browse", "Log Out" if self.info.client.is_logged_in() else "Log In", "Exit"]

    def log_out(self) -> None:
        if self.info.tokens is not None:
            self.info.tokens.clear()
        self.info.client.update_user_login()
        logger.info("Logged out")

    def activate(self, label: str | None) -> Action | None:
        if label == "Browse":
            if self.info.client.is_logged_in():
                return SwitchScreen(OVERVIEW)
            report_error("Please log in to browse")
        elif label == "Log In":
            return SwitchScreen(LOGIN)
        elif label == "Log Out":
            self.log_out()
            return SwitchScreen(LAUNCH)
        elif label == "Exit":
            return Quit()
        return None

    def handle_keyboard(self, key: KeyEvent) -> Action | None:
        return self.activate(self.buttons.handle_key(key, self.navigation))

    def handle_mouse(self, mouse: MouseEvent) -> Action | None:
        return self.activate(self.buttons.handle_mouse(mouse))

    def draw(self, frame: Frame) -> None:
        self.buttons.set_labels(self._labels())
        top, bottom = frame.area.split_rows(frame.height // 2, 0)
        banner_area = top.split_rows(max(0, top.height - 7), 7)[1]
        frame.place("body", banner_area, Text(BANNER, style=THEME_COLORS["highlight"], justify="center"))
        self.buttons.draw(frame, bottom.split_rows(self.buttons.height() + 2, 0)[0])


__all__ = ["BANNER", "LaunchScreen"]
