"""Profile: avatar, account details and list statistics."""

from __future__ import annotations

import logging

from rich.box import ROUNDED
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from mal_cli.background import BackgroundInfo, BackgroundUpdate, CommandChannel, WorkerHandle
from mal_cli.events import Action, KeyEvent, MouseEvent, NavbarSelect, SwitchScreen
from mal_cli.images import ImageManager, Rect
from mal_cli.models import LIST_STATUS_LABELS, LIST_STATUSES, User
from mal_cli.screens.base import LAUNCH, SETTINGS, Screen
from mal_cli.themes import THEME_COLORS, status_color
from mal_cli.widgets.button import ButtonColumn
from mal_cli.widgets.formatting import format_date
from mal_cli.widgets.frame import Frame
from mal_cli.widgets.keys import is_focus_up

logger = logging.getLogger(__name__)

# Avatar slot; anime ids are positive so this never collides
AVATAR_IMAGE_ID = -1


class ProfileScreen(Screen):
    def __init__(self, info: BackgroundInfo) -> None:
        super().__init__(info)
        self.user: User | None = None
        self.buttons = ButtonColumn(["Settings", "Log Out"], width=20)
        self.image_manager = ImageManager()

    def _worker(self, channel: CommandChannel) -> None:
        user = self.info.client.get_user()
        if user is not None and not channel.closed:
            self.info.notify(BackgroundUpdate(self.get_name()).set("user", user))

    def background(self) -> WorkerHandle | None:
        return self.spawn(self._worker, action="load your profile")

    def apply_update(self, update: BackgroundUpdate) -> None:
        if self.image_manager is not None and self.image_manager.take_update(update):
            return
        user = update.take("user", User)
        if user is None:
            return
        self.user = user
        if self.image_manager is not None:
            self.image_manager.request(AVATAR_IMAGE_ID, user.picture)

    def _press(self, label: str | None) -> Action | None:
        if label == "Settings":
            return SwitchScreen(SETTINGS)
        if label == "Log Out":
            if self.info.tokens is not None:
                self.info.tokens.clear()
            self.info.client.update_user_login()
            logger.info("Logged out from the profile screen")
            return SwitchScreen(LAUNCH)
        return None

    def handle_keyboard(self, key: KeyEvent) -> Action | None:
        if is_focus_up(key) or (self.buttons.selected == 0 and self.navigation.matches("nav_up", key.key)):
            return NavbarSelect(True)
        return self._press(self.buttons.handle_key(key, self.navigation))

    def handle_mouse(self, mouse: MouseEvent) -> Action | None:
        return self._press(self.buttons.handle_mouse(mouse))

    # -- drawing -------------------------------------------------------------

    def _account(self, user: User) -> Text:
        text = Text()
        text.append(user.name + "\n\n", style=f"bold {THEME_COLORS['second_highlight']}")
        for label, value in (
            ("Joined", format_date(user.joined_at) if user.joined_at else "?"),
            ("Location", user.location or "-"),
            ("Gender", user.gender or "-"),
            ("Birthday", format_date(user.birthday) if user.birthday else "-"),
        ):
            text.append(f"{label}: ", style=THEME_COLORS["primary"])
            text.append(value + "\n", style=THEME_COLORS["text"])
        return text

    def _statistics(self, user: User) -> Table:
        stats = user.anime_statistics
        table = Table.grid(padding=(0, 2))
        table.add_column(style=THEME_COLORS["primary"])
        table.add_column(justify="right")
        for status in LIST_STATUSES:
            count = getattr(stats, f"num_items_{status}")
            table.add_row(LIST_STATUS_LABELS[status], Text(str(count), style=status_color(status)))
        table.add_row("", "")
        table.add_row("Total entries", str(stats.num_items))
        table.add_row("Episodes", str(stats.num_episodes))
        table.add_row("Days watched", f"{stats.num_days:.1f}")
        table.add_row("Mean score", f"{stats.mean_score:.2f}")
        table.add_row("Rewatched", str(stats.num_times_rewatched))
        return table

    def draw(self, frame: Frame) -> None:
        body = self.body(frame)
        left, right = body.split_cols(body.width * 32 // 100, 0)
        avatar_area, account_area, buttons_area = left.split_rows(left.height * 2 // 5, left.height * 2 // 5, 0)

        def _panel(renderable, title: str | None = None) -> Panel:
            return Panel(renderable, box=ROUNDED, border_style=THEME_COLORS["primary"], title=title, padding=(0, 1))

        user = self.user
        if user is None:
            frame.place("body", body.centered(12, 1), Text("Loading...", style=THEME_COLORS["primary"]))
            return

        inner = avatar_area.shrink(1, 1)
        avatar = None
        if self.image_manager is not None:
            avatar = self.image_manager.render_image(AVATAR_IMAGE_ID, Rect(inner.width, inner.height))
        frame.place("body", avatar_area, _panel(Text("")))
        if avatar is not None:
            frame.place("body", inner, avatar)
        frame.place("body", account_area, _panel(self._account(user)))
        frame.place("body", buttons_area, _panel(Text("")))
        self.buttons.draw(frame, buttons_area)
        frame.place("body", right, _panel(self._statistics(user), title="Statistics"))


__all__ = ["AVATAR_IMAGE_ID", "ProfileScreen"]
