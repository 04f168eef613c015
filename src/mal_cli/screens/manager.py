"""Active screen, stored screens, navbar and the two overlays."""

from __future__ import annotations

import logging

from mal_cli.background import BackgroundInfo, BackgroundUpdate, WorkerHandle
from mal_cli.events import Action, KeyEvent, MouseEvent, NavbarSelect
from mal_cli.screens import LAUNCH, create_screen, navbar_options
from mal_cli.screens.base import Screen
from mal_cli.widgets.frame import NAVBAR_HEIGHT, Frame
from mal_cli.widgets.navbar import NavBar
from mal_cli.widgets.popup import POPUP_ID, AnimePopup, ErrorPopup

logger = logging.getLogger(__name__)


def _fall_through(released: NavbarSelect, screen_action: Action | None) -> Action | None:
    """The screen sees the key that released the navbar, but cannot re-grab it."""
    if screen_action is None or isinstance(screen_action, NavbarSelect):
        return released
    return screen_action


class ScreenManager:
    """Owns the current screen and routes input, updates and redraws.

    Stored screens keep their state (and their worker's channel) while
    inactive; transient screens are disposed on switch-out.
    """

    def __init__(self, info: BackgroundInfo, initial: str = LAUNCH) -> None:
        self.info = info
        self.navbar = NavBar(navbar_options())
        self.overlay = AnimePopup(info)
        self.error_overlay = ErrorPopup()
        self.screen_storage: dict[str, Screen] = {}
        self.backgrounds: list[WorkerHandle] = []
        self.current_screen: Screen = create_screen(initial, info)
        self.navbar.set_current(self.current_screen.get_name())
        self.spawn_background()

    # -- switching -----------------------------------------------------------

    def change_screen(self, screen_id: str) -> None:
        previous = self.current_screen
        previous_id = previous.get_name()
        if previous.should_store():
            self.screen_storage[previous_id] = previous
        else:
            previous.dispose()
        self.info.extras["previous_screen"] = previous_id

        screen = self.screen_storage.pop(screen_id, None)
        if screen is None:
            screen = create_screen(screen_id, self.info)
            logger.debug("Created %s", screen.get_name())
        else:
            logger.debug("Restored %s from storage", screen_id)
        self.current_screen = screen
        self.overlay.close()
        self.navbar.deselect()
        self.navbar.set_current(screen.get_name())

        self.cleanup_backgrounds()
        self.spawn_background()

    def spawn_background(self) -> None:
        handle = self.current_screen.background()
        if handle is not None:
            self.backgrounds.append(handle)

    def cleanup_backgrounds(self) -> None:
        finished = [handle for handle in self.backgrounds if handle.is_finished()]
        for handle in finished:
            if handle.error is not None:
                logger.debug("Reaped failed worker %s: %s", handle.name, handle.error)
        self.backgrounds = [handle for handle in self.backgrounds if not handle.is_finished()]

    # -- background results --------------------------------------------------

    def update_screen(self, update: BackgroundUpdate) -> bool:
        """Deliver ``update`` to the overlay, the live screen or a stored one.

        Returns False when nobody is left to receive it.
        """
        if update.screen_id == POPUP_ID:
            self.overlay.apply_update(update)
            return True
        if update.screen_id == self.current_screen.get_name():
            self.current_screen.apply_update(update)
            return True
        stored = self.screen_storage.get(update.screen_id)
        if stored is not None:
            stored.apply_update(update)
            return True
        logger.debug("Dropping update for inactive %s", update.screen_id)
        return False

    def image_redraw(self, image_id: int, result: object, screen_id: str = "") -> bool:
        """Hand a resize result to the slot ``image_id`` of the screen that asked for it.

        Without a ``screen_id`` the live screen is tried first, then the
        overlay, then stored screens.
        """
        if screen_id == POPUP_ID:
            return self.overlay.image_redraw(image_id, result)
        if screen_id:
            if screen_id == self.current_screen.get_name():
                return self.current_screen.image_redraw(image_id, result)
            stored = self.screen_storage.get(screen_id)
            if stored is not None:
                return stored.image_redraw(image_id, result)
            logger.debug("Dropping image %d for inactive %s", image_id, screen_id)
            return False
        if self.current_screen.image_redraw(image_id, result):
            return True
        if self.overlay.holds_image(image_id) and self.overlay.image_redraw(image_id, result):
            return True
        return any(screen.image_redraw(image_id, result) for screen in self.screen_storage.values())

    # -- overlays and focus --------------------------------------------------

    def show_error(self, message: str) -> None:
        self.error_overlay.set_error(message)

    def show_overlay(self, anime_id: int) -> bool:
        return self.overlay.open(anime_id)

    def toggle_navbar(self, select: bool) -> None:
        if select and self.current_screen.uses_navbar():
            self.navbar.select()
        else:
            self.navbar.deselect()

    def refresh(self) -> None:
        """Re-read the overlay's record after an out-of-band store change."""
        anime_id = self.overlay.anime_id
        if self.overlay.is_open() and anime_id is not None:
            self.overlay.refresh(anime_id)

    # -- input ---------------------------------------------------------------

    def handle_key(self, key: KeyEvent) -> Action | None:
        if self.error_overlay.is_open():
            return self.error_overlay.handle_key(key)
        if self.overlay.is_open():
            return self.overlay.handle_key(key)
        if self.navbar.is_selected:
            action = self.navbar.handle_key(key, self.info.config.navigation)
            if not isinstance(action, NavbarSelect):
                return action
            return _fall_through(action, self.current_screen.handle_keyboard(key))
        return self.current_screen.handle_keyboard(key)

    def handle_mouse(self, mouse: MouseEvent) -> Action | None:
        if self.error_overlay.is_open():
            return self.error_overlay.handle_mouse(mouse)
        if self.overlay.is_open():
            return self.overlay.handle_mouse(mouse)
        if self.current_screen.uses_navbar() and mouse.y < NAVBAR_HEIGHT:
            self.navbar.select()
            return self.navbar.handle_mouse(mouse)
        if self.navbar.is_selected:
            action = self.navbar.handle_mouse(mouse)
            if not isinstance(action, NavbarSelect):
                return action
            return _fall_through(action, self.current_screen.handle_mouse(mouse))
        return self.current_screen.handle_mouse(mouse)

    # -- drawing and teardown ------------------------------------------------

    def render(self, width: int, height: int) -> Frame:
        frame = Frame(width, height)
        self.current_screen.draw(frame)
        if self.current_screen.uses_navbar():
            self.navbar.draw(frame)
        if self.overlay.is_open():
            self.overlay.draw(frame)
        self.error_overlay.draw(frame)
        return frame

    def shutdown(self, timeout: float = 1.0) -> None:
        """Close every channel and give workers a bounded moment to exit."""
        self.current_screen.dispose()
        for screen in self.screen_storage.values():
            screen.dispose()
        self.screen_storage.clear()
        self.overlay.dispose()
        for handle in self.backgrounds:
            if not handle.join(timeout):
                logger.debug("Worker %s still running at shutdown", handle.name)
        self.backgrounds.clear()


__all__ = ["ScreenManager"]
