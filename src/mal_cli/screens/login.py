"""Login screen: runs the delegated login and shows the authorization URL."""

from __future__ import annotations

import logging
import time

from rich.box import ROUNDED
from rich.panel import Panel
from rich.text import Text

from mal_cli.background import BackgroundInfo, BackgroundUpdate, CommandChannel, WorkerHandle
from mal_cli.errors import CancelledError
from mal_cli.events import Action, KeyEvent, MouseEvent, SwitchScreen
from mal_cli.persistence import TokenStore
from mal_cli.screens.base import LAUNCH, Screen
from mal_cli.services.auth import OAuthFlow
from mal_cli.themes import THEME_COLORS
from mal_cli.widgets.button import ButtonColumn
from mal_cli.widgets.frame import Frame

logger = logging.getLogger(__name__)

URL_CHAR_DELAY_SECONDS = 0.008
LOGIN_SUCCESS = "Login successful"


class LoginScreen(Screen):
    def __init__(self, info: BackgroundInfo) -> None:
        super().__init__(info)
        self.login_url = ""
        self.buttons = ButtonColumn(["Back"], width=20)
        self.flow: OAuthFlow | None = None

    def should_store(self) -> bool:
        return False

    def uses_navbar(self) -> bool:
        return False

    def _worker(self, channel: CommandChannel) -> None:
        info = self.info
        name = self.get_name()
        tokens = info.tokens or TokenStore()
        flow = OAuthFlow(
            token_store=tokens,
            auth_server=info.config.network.auth_server,
            port=info.config.network.callback_port,
            max_port_retries=info.config.network.max_port_retries,
        )
        self.flow = flow
        url = flow.start()
        # Typewriter effect; stop early if the screen went away
        for end in range(len(url) + 1):
            if channel.closed:
                flow.shutdown()
                return
            info.notify(BackgroundUpdate(name).set("login_url", url[:end]))
            time.sleep(URL_CHAR_DELAY_SECONDS)
        try:
            flow.wait()
        except CancelledError:
            logger.debug("Login abandoned before the callback arrived")
            return
        info.client.update_user_login()
        logger.info("Login completed")
        if channel.closed:
            return
        info.notify(BackgroundUpdate(name).set("login_url", LOGIN_SUCCESS))

    def background(self) -> WorkerHandle | None:
        if self.info.client.is_logged_in():
            return None
        return self.spawn(self._worker, action="log in")

    def apply_update(self, update: BackgroundUpdate) -> None:
        url = update.take("login_url", str)
        if url is not None:
            self.login_url = url

    def dispose(self) -> None:
        super().dispose()
        if self.flow is not None and self.login_url != LOGIN_SUCCESS:
            self.flow.shutdown()

    def _press(self, label: str | None) -> Action | None:
        if label == "Back":
            return SwitchScreen(LAUNCH)
        return None

    def handle_keyboard(self, key: KeyEvent) -> Action | None:
        return self._press(self.buttons.handle_key(key, self.navigation))

    def handle_mouse(self, mouse: MouseEvent) -> Action | None:
        return self._press(self.buttons.handle_mouse(mouse))

    def draw(self, frame: Frame) -> None:
        top, bottom = frame.area.split_rows(frame.height // 2, 0)
        heading = "Log in with your browser" if self.login_url != LOGIN_SUCCESS else "You are logged in"
        frame.place(
            "body",
            top.split_rows(max(0, top.height - 2), 2)[1],
            Text(heading, style=f"bold {THEME_COLORS['highlight']}", justify="center"),
        )
        url_area, buttons_area = bottom.split_rows(5, 0)
        width = max(min(url_area.width, 50), url_area.width * 3 // 4)
        frame.place(
            "body",
            url_area.centered(width, 5),
            Panel(
                Text(self.login_url or "Waiting for the login server...", style=f"bold {THEME_COLORS['highlight']}", justify="center"),
                box=ROUNDED,
                border_style=THEME_COLORS["primary"],
                title="Open this URL if your browser did not start",
                padding=(0, 1),
            ),
        )
        self.buttons.draw(frame, buttons_area.split_rows(self.buttons.height() + 2, 0)[0])


__all__ = ["LOGIN_SUCCESS", "LoginScreen"]
