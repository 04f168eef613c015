"""Screen capability set shared by every top-level UI mode."""

from __future__ import annotations

import logging
from collections.abc import Callable

from mal_cli.background import BackgroundInfo, BackgroundUpdate, CommandChannel, WorkerHandle, spawn_worker
from mal_cli.config import NavigationConfig
from mal_cli.events import Action, KeyEvent, MouseEvent
from mal_cli.images import ImageManager
from mal_cli.widgets.frame import Frame, Region, body_region

logger = logging.getLogger(__name__)

LAUNCH = "LaunchScreen"
LOGIN = "LoginScreen"
OVERVIEW = "OverviewScreen"
SEASONS = "SeasonsScreen"
SEARCH = "SearchScreen"
LIST = "ListScreen"
PROFILE = "ProfileScreen"
INFO = "InfoScreen"
SETTINGS = "SettingsScreen"


class Screen:
    """A top-level UI mode.

    Screens are plain objects: ``draw`` fills a ``Frame``, input handlers
    return an ``Action`` (or change internal state and return None), and
    ``background`` starts at most one worker for the life of the instance.
    Records are never held here, only their ids.
    """

    def __init__(self, info: BackgroundInfo) -> None:
        self.info = info
        self.bg_loaded = False
        self.channel: CommandChannel | None = None
        self.image_manager: ImageManager | None = None

    def get_name(self) -> str:
        return type(self).__name__

    def should_store(self) -> bool:
        return True

    def uses_navbar(self) -> bool:
        return True

    @property
    def navigation(self) -> NavigationConfig:
        return self.info.config.navigation

    def body(self, frame: Frame) -> Region:
        return body_region(frame, self.uses_navbar())

    def draw(self, frame: Frame) -> None:
        raise NotImplementedError

    def handle_keyboard(self, key: KeyEvent) -> Action | None:
        return None

    def handle_mouse(self, mouse: MouseEvent) -> Action | None:
        return None

    def background(self) -> WorkerHandle | None:
        """Start this screen's worker on first activation; None afterwards."""
        return None

    def apply_update(self, update: BackgroundUpdate) -> None:
        if self.image_manager is not None:
            self.image_manager.take_update(update)

    def image_redraw(self, image_id: int, result: object) -> bool:
        if self.image_manager is None:
            return False
        return self.image_manager.update_image(image_id, result)

    def dispose(self) -> None:
        """Close the command channel so the worker's receive loop ends."""
        if self.channel is not None:
            self.channel.close()
        if self.image_manager is not None:
            self.image_manager.close()

    # -- helpers for subclasses ---------------------------------------------

    def start_images(self) -> ImageManager:
        """Start the image threads for this screen, creating the manager if needed."""
        if self.image_manager is None:
            self.image_manager = ImageManager()
        self.image_manager.start(self.info.bus, self.get_name())
        return self.image_manager

    def spawn(
        self,
        target: Callable[[CommandChannel], None],
        *,
        action: str = "load data in the background",
    ) -> WorkerHandle | None:
        """Run ``target(channel)`` on this screen's single worker thread."""
        if self.bg_loaded:
            return None
        self.bg_loaded = True
        if self.image_manager is not None:
            self.start_images()
        channel = CommandChannel()
        self.channel = channel
        return spawn_worker(self.get_name(), lambda: target(channel), bus=self.info.bus, action=action)

    def send(self, command: object) -> bool:
        if self.channel is None:
            logger.debug("%s has no worker yet; dropping %r", self.get_name(), command)
            return False
        return self.channel.send(command)


__all__ = [
    "INFO",
    "LAUNCH",
    "LIST",
    "LOGIN",
    "OVERVIEW",
    "PROFILE",
    "SEARCH",
    "SEASONS",
    "SETTINGS",
    "Screen",
]
