"""Textual host: owns the terminal and pumps the event bus into the app loop."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from pathlib import Path
from typing import Any

from textual import events, work
from textual.app import App, ComposeResult, SuspendNotSupported
from textual.widgets import Static
from textual.worker import get_current_worker

from mal_cli.background import BackgroundInfo
from mal_cli.config import AppConfig
from mal_cli.events import EventBus, KeyEvent, KeyPress, error_bus
from mal_cli.input_dispatch import InputDispatcher
from mal_cli.runtime import AppLoop
from mal_cli.services.interfaces import AppServices, build_default_app_services
from mal_cli.store import EntityStore
from mal_cli.themes import THEME_NAME, apply_theme_config, build_textual_theme
from mal_cli.ui_constants import APP_BINDINGS, APP_CSS
from mal_cli.widgets.canvas import LayerCanvas, bounding_box
from mal_cli.widgets.frame import LAYERS

logger = logging.getLogger(__name__)

PUMP_POLL_SECONDS = 0.1


class MalApp(App):
    """A TUI client for MyAnimeList."""

    TITLE = "mal-cli"

    CSS = APP_CSS

    BINDINGS = APP_BINDINGS

    ENABLE_COMMAND_PALETTE = False

    def __init__(
        self,
        config: AppConfig | None = None,
        services: AppServices | None = None,
        *,
        config_path: Path | None = None,
        initial_screen: str | None = None,
    ) -> None:
        super().__init__()
        self._config = config or AppConfig()
        # Register the palette so $th-* CSS variables resolve before compose()
        self.register_theme(build_textual_theme(apply_theme_config(self._config.theme)))
        self.theme = THEME_NAME
        self._services = services or build_default_app_services(self._config)
        self.bus = EventBus()
        self.info = BackgroundInfo(
            bus=self.bus,
            client=self._services.catalog,
            store=EntityStore(),
            config=self._config,
            history=self._services.history,
            tokens=self._services.tokens,
        )
        self.dispatcher = InputDispatcher(self.bus, mouse_enabled=self._config.navigation.enable_mouse_capture)
        self._config_path = config_path
        self._initial_screen = initial_screen
        self.loop: AppLoop | None = None

    def compose(self) -> ComposeResult:
        for layer in LAYERS:
            yield Static("", id=f"layer-{layer}", classes="layer")

    def on_mount(self) -> None:
        error_bus.bind(self.bus)
        self.loop = AppLoop(
            self.info,
            player=self._services.player,
            run_external=self._run_external,
            config_path=self._config_path,
            initial_screen=self._initial_screen,
        )
        self.loop.width, self.loop.height = self.size.width, self.size.height
        self._paint()
        self._pump()

    def on_unmount(self) -> None:
        self.dispatcher.stop()
        self.bus.close()
        if self.loop is not None:
            self.loop.shutdown()
        error_bus.unbind()
        self._services.catalog.close()

    # -- event pump ----------------------------------------------------------

    @work(thread=True, exclusive=True, name="event-pump")
    def _pump(self) -> None:
        worker = get_current_worker()
        while not worker.is_cancelled and not self.bus.closed:
            batch = self.bus.drain(timeout=PUMP_POLL_SECONDS)
            if batch:
                self.call_from_thread(self._apply, batch)

    def _apply(self, batch: list[Any]) -> None:
        loop = self.loop
        if loop is None:
            return
        started = time.perf_counter()
        redraw = loop.handle_batch(batch)
        if not loop.running:
            self.exit()
            return
        if redraw:
            self._paint()
        logger.debug("Applied %d events in %.1fms", len(batch), (time.perf_counter() - started) * 1000)

    def _paint(self) -> None:
        if self.loop is None:
            return
        frame = self.loop.render()
        for layer in LAYERS:
            placements = frame.placements(layer)
            widget = self.query_one(f"#layer-{layer}", Static)
            box = bounding_box(placements)
            if box is None:
                widget.display = False
                continue
            widget.display = True
            widget.styles.offset = (box.x, box.y)
            widget.styles.width = box.width
            widget.styles.height = box.height
            widget.update(LayerCanvas(placements, box))

    # -- input ---------------------------------------------------------------

    def on_key(self, event: events.Key) -> None:
        event.stop()
        event.prevent_default()
        self.dispatcher.key(event)

    def on_mouse_down(self, event: events.MouseDown) -> None:
        self.dispatcher.mouse(event)

    def on_mouse_scroll_up(self, event: events.MouseScrollUp) -> None:
        self.dispatcher.mouse(event)

    def on_mouse_scroll_down(self, event: events.MouseScrollDown) -> None:
        self.dispatcher.mouse(event)

    def on_resize(self, event: events.Resize) -> None:
        self.dispatcher.resize(event.size.width, event.size.height)

    def action_forward_key(self, key: str) -> None:
        self.bus.send(KeyPress(KeyEvent(key=key)))

    # -- external programs ---------------------------------------------------

    def _run_external(self, fn: Callable[[], Any]) -> Any:
        """Run ``fn`` with the terminal handed back to the shell."""
        try:
            with self.suspend():
                return fn()
        except SuspendNotSupported:
            logger.debug("Terminal suspend unsupported; running in place")
            return fn()


__all__ = ["MalApp"]
