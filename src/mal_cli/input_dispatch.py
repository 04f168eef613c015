"""Translate Textual input events into bus events."""

from __future__ import annotations

import logging
import threading

from textual import events

from mal_cli.events import EventBus, KeyEvent, KeyPress, MouseClick, MouseEvent, Resize

logger = logging.getLogger(__name__)


def key_to_event(event: events.Key) -> KeyPress:
    return KeyPress(KeyEvent(key=event.key, character=event.character))


def mouse_to_event(event: events.MouseEvent) -> MouseClick | None:
    if isinstance(event, events.MouseScrollUp):
        kind = "scroll_up"
    elif isinstance(event, events.MouseScrollDown):
        kind = "scroll_down"
    elif isinstance(event, events.MouseDown):
        kind = "down"
    else:
        return None
    return MouseClick(MouseEvent(x=event.screen_x, y=event.screen_y, button=event.button or 1, kind=kind))


class InputDispatcher:
    """Forwards terminal input to the bus until stopped."""

    def __init__(self, bus: EventBus, *, mouse_enabled: bool = True) -> None:
        self.bus = bus
        self.mouse_enabled = mouse_enabled
        self._stop = threading.Event()

    @property
    def stopped(self) -> bool:
        return self._stop.is_set()

    def stop(self) -> None:
        self._stop.set()

    def key(self, event: events.Key) -> bool:
        if self.stopped:
            return False
        return self.bus.send(key_to_event(event))

    def mouse(self, event: events.MouseEvent) -> bool:
        if self.stopped or not self.mouse_enabled:
            return False
        translated = mouse_to_event(event)
        if translated is None:
            return False
        return self.bus.send(translated)

    def resize(self, width: int, height: int) -> bool:
        if self.stopped:
            return False
        logger.debug("Terminal resized to %dx%d", width, height)
        return self.bus.send(Resize(width, height))


__all__ = ["InputDispatcher", "key_to_event", "mouse_to_event"]
