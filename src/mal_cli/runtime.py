"""The app loop: the single consumer of the event bus.

``AppLoop`` knows nothing about Textual. The host feeds it batches of
events, asks it for a ``Frame`` and lends it the terminal for external
programs (player, editor) through ``run_external``.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime
from functools import partial
from pathlib import Path
from typing import Any, TypeVar

from mal_cli.action_messages import build_actionable_error, build_play_error_message
from mal_cli.background import BackgroundInfo
from mal_cli.config import load_config, open_in_editor
from mal_cli.events import (
    BackgroundNotice,
    EditorRequested,
    ImageRedraw,
    KeyEvent,
    KeyPress,
    MouseClick,
    NavbarSelect,
    PlayAnime,
    PlaybackFinished,
    PlaybackRequested,
    Quit,
    QuitRequested,
    Rerender,
    Resize,
    ShowError,
    ShowOverlay,
    StorageUpdate,
    SwitchScreen,
)
from mal_cli.models import Anime, ListStatusUpdate
from mal_cli.persistence import WatchHistoryEntry
from mal_cli.player import PlayError, PlayResult
from mal_cli.screens import LIST, OVERVIEW, PROFILE, SEARCH, SEASONS
from mal_cli.screens.manager import ScreenManager
from mal_cli.services.interfaces import PlaybackService
from mal_cli.themes import apply_theme_config
from mal_cli.widgets.frame import Frame

logger = logging.getLogger(__name__)

T = TypeVar("T")

QUIT_KEYS = frozenset({"ctrl+c"})
EDITOR_KEYS = frozenset({"ctrl+e"})

# ctrl+i reaches Textual as tab
SHORTCUT_SCREENS: dict[str, str] = {
    "ctrl+f": SEARCH,
    "ctrl+o": OVERVIEW,
    "ctrl+s": SEASONS,
    "ctrl+i": LIST,
    "tab": LIST,
    "ctrl+p": PROFILE,
}


def _run_directly(fn: Callable[[], T]) -> T:
    return fn()


def _count_finished_episode(anime: Anime) -> None:
    """Bump the watched count, or mark the show completed on its last episode."""
    status = anime.my_list_status
    if anime.num_episodes <= 0 or status.num_episodes_watched < anime.num_episodes:
        status.num_episodes_watched += 1
    if anime.num_episodes > 0 and status.num_episodes_watched >= anime.num_episodes:
        status.status = "completed"
    else:
        status.status = "watching"


class AppLoop:
    """Applies events to the screen manager and tracks whether the app should keep running."""

    def __init__(
        self,
        info: BackgroundInfo,
        *,
        player: PlaybackService,
        run_external: Callable[[Callable[[], Any]], Any] | None = None,
        config_path: Path | None = None,
        editor: Callable[[Path | None], bool] = open_in_editor,
        initial_screen: str | None = None,
    ) -> None:
        self.info = info
        self.player = player
        self.run_external = run_external or _run_directly
        self.config_path = config_path
        self.editor = editor
        self.manager = ScreenManager(info) if initial_screen is None else ScreenManager(info, initial_screen)
        self.running = True
        self.width = 80
        self.height = 24

    # -- event dispatch ------------------------------------------------------

    def handle_batch(self, events: list[Any]) -> bool:
        """Apply every event in order. Returns True when a redraw is due."""
        redraw = False
        for event in events:
            if not self.running:
                break
            redraw = self.handle_event(event) or redraw
        return redraw

    def handle_event(self, event: Any) -> bool:
        if isinstance(event, KeyPress):
            self.handle_key(event.key)
        elif isinstance(event, MouseClick):
            self.dispatch_action(self.manager.handle_mouse(event.mouse))
        elif isinstance(event, Resize):
            self.width, self.height = event.width, event.height
        elif isinstance(event, BackgroundNotice):
            self._apply_notice(event)
        elif isinstance(event, StorageUpdate):
            self.info.store.update(event.anime_id, event.fn)
            self.manager.refresh()
        elif isinstance(event, ImageRedraw):
            return self.manager.image_redraw(event.image_id, event.result, event.screen_id)
        elif isinstance(event, PlaybackRequested):
            self.play(event.anime_id)
        elif isinstance(event, PlaybackFinished):
            self.finish_playback(event)
        elif isinstance(event, ShowError):
            self.manager.show_error(event.message)
        elif isinstance(event, EditorRequested):
            self.edit_config()
        elif isinstance(event, QuitRequested):
            self.running = False
        elif isinstance(event, Rerender):
            pass
        else:
            logger.debug("Ignoring unknown event %r", event)
            return False
        return True

    def _apply_notice(self, event: BackgroundNotice) -> None:
        update = event.update
        records = update.take("animes", list)
        if records:
            self.info.store.add_bulk(records)
        self.manager.update_screen(update)

    def handle_key(self, key: KeyEvent) -> None:
        if key.key in QUIT_KEYS:
            self.running = False
            return
        if not self.manager.error_overlay.is_open():
            if key.key in EDITOR_KEYS:
                self.edit_config()
                return
            target = SHORTCUT_SCREENS.get(key.key)
            if target is not None and self.manager.current_screen.get_name() != target:
                if self.info.client.is_logged_in():
                    self.manager.change_screen(target)
                else:
                    self.manager.show_error("Please log in to browse")
                return
        self.dispatch_action(self.manager.handle_key(key))

    def dispatch_action(self, action: Any) -> None:
        if action is None:
            return
        if isinstance(action, SwitchScreen):
            logger.debug("Switching to %s", action.screen_id)
            self.manager.change_screen(action.screen_id)
        elif isinstance(action, ShowOverlay):
            self.manager.show_overlay(action.anime_id)
        elif isinstance(action, PlayAnime):
            # Queued so the closed overlay is redrawn before the terminal is handed over
            self.info.bus.send(PlaybackRequested(action.anime_id))
        elif isinstance(action, NavbarSelect):
            self.manager.toggle_navbar(action.selected)
        elif isinstance(action, Quit):
            self.running = False

    # -- playback ------------------------------------------------------------

    def play(self, anime_id: int) -> None:
        anime = self.info.store.get(anime_id)
        if anime is None:
            self.manager.show_error("Unexpected anime given")
            return
        logger.debug("Playing %s", anime.display_title)
        try:
            result: PlayResult | None = self.run_external(partial(self.player.play, anime))
            error: Exception | None = None
        except PlayError as e:
            result, error = None, e
        self.info.bus.send(PlaybackFinished(anime_id, result=result, error=error))

    def finish_playback(self, event: PlaybackFinished) -> None:
        anime = self.info.store.get(event.anime_id)
        title = anime.display_title if anime is not None else str(event.anime_id)
        if event.error is not None:
            logger.debug("Playback of %s failed: %s", title, event.error)
            self.manager.show_error(build_play_error_message(title, str(event.error)))
            return
        result = event.result
        if not isinstance(result, PlayResult) or anime is None:
            return
        logger.debug("Playback of %s finished at %d%%", title, result.percentage)
        if self.info.history is not None:
            self.info.history.append(
                WatchHistoryEntry(
                    timestamp=datetime.now(),
                    anime_id=anime.id,
                    title=title,
                    episode=result.episode,
                    watched_time=result.current_time,
                    percentage=result.percentage,
                    completed=result.completed,
                )
            )
        if not result.completed:
            return
        self.info.store.update(anime.id, _count_finished_episode)
        updated = self.info.store.get(anime.id)
        if updated is None:
            return
        status = updated.my_list_status
        self.info.client.update_user_list_async(
            ListStatusUpdate(
                anime_id=anime.id,
                status=status.status,
                score=status.score,
                num_watched_episodes=status.num_episodes_watched,
            )
        )
        self.manager.refresh()

    # -- config --------------------------------------------------------------

    def edit_config(self) -> None:
        """Open the config in the editor, then reload it and the palette."""
        opened = self.run_external(partial(self.editor, self.config_path))
        if not opened:
            self.manager.show_error(
                build_actionable_error(
                    "open the config", why="no editor could be started", next_step="set $EDITOR and retry"
                )
            )
            return
        config = load_config(self.config_path)
        self.info.config = config
        apply_theme_config(config.theme)
        logger.debug("Config reloaded")

    # -- output --------------------------------------------------------------

    def render(self) -> Frame:
        return self.manager.render(self.width, self.height)

    def shutdown(self) -> None:
        self.running = False
        self.manager.shutdown()


__all__ = ["SHORTCUT_SCREENS", "AppLoop"]
