"""Typed event bus, actions and the process-wide error bus.

Every thread is a producer on the ``EventBus``; the app loop is its only
consumer. Actions are what screens hand back from input handling.
"""

from __future__ import annotations

import logging
import queue
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from mal_cli.background import BackgroundUpdate
    from mal_cli.models import Anime

logger = logging.getLogger(__name__)

# ============================================================================
# Input payloads
# ============================================================================


@dataclass(frozen=True, slots=True)
class KeyEvent:
    """A key press using Textual key names (``"up"``, ``"enter"``, ``"ctrl+f"``, ``"j"``)."""

    key: str
    character: str | None = None

    @property
    def ctrl(self) -> bool:
        return self.key.startswith("ctrl+")

    @property
    def printable(self) -> str | None:
        """The typed character for plain printable keys, else None."""
        if self.ctrl or self.character is None or not self.character.isprintable():
            return None
        return self.character


@dataclass(frozen=True, slots=True)
class MouseEvent:
    x: int
    y: int
    button: int = 1
    kind: str = "down"  # "down", "scroll_up" or "scroll_down"


# ============================================================================
# Actions (returned by screens)
# ============================================================================


@dataclass(frozen=True, slots=True)
class SwitchScreen:
    screen_id: str


@dataclass(frozen=True, slots=True)
class ShowOverlay:
    anime_id: int


@dataclass(frozen=True, slots=True)
class PlayAnime:
    anime_id: int


@dataclass(frozen=True, slots=True)
class NavbarSelect:
    selected: bool


@dataclass(frozen=True, slots=True)
class Quit:
    pass


Action = SwitchScreen | ShowOverlay | PlayAnime | NavbarSelect | Quit

# ============================================================================
# Events (consumed by the app loop)
# ============================================================================


@dataclass(frozen=True, slots=True)
class KeyPress:
    key: KeyEvent


@dataclass(frozen=True, slots=True)
class MouseClick:
    mouse: MouseEvent


@dataclass(frozen=True, slots=True)
class Resize:
    width: int
    height: int


@dataclass(frozen=True, slots=True)
class BackgroundNotice:
    update: BackgroundUpdate


@dataclass(frozen=True, slots=True)
class StorageUpdate:
    """Apply ``fn`` to the stored record ``anime_id`` on the app loop."""

    anime_id: int
    fn: Callable[[Anime], None]


@dataclass(frozen=True, slots=True)
class ImageRedraw:
    """A finished resize for slot ``image_id`` of screen ``screen_id``.

    ``result`` is a response or an exception. An empty ``screen_id`` means
    the owner is unknown and any holder of the slot may take it.
    """

    image_id: int
    result: Any
    screen_id: str = ""


@dataclass(frozen=True, slots=True)
class PlaybackRequested:
    anime_id: int


@dataclass(frozen=True, slots=True)
class PlaybackFinished:
    anime_id: int
    result: Any = None
    error: Exception | None = None


@dataclass(frozen=True, slots=True)
class ShowError:
    message: str


@dataclass(frozen=True, slots=True)
class EditorRequested:
    """Open the config file in the user's editor, then reload it."""


@dataclass(frozen=True, slots=True)
class QuitRequested:
    pass


@dataclass(frozen=True, slots=True)
class Rerender:
    pass


Event = (
    KeyPress
    | MouseClick
    | Resize
    | BackgroundNotice
    | StorageUpdate
    | ImageRedraw
    | PlaybackRequested
    | PlaybackFinished
    | ShowError
    | EditorRequested
    | QuitRequested
    | Rerender
)

# ============================================================================
# Event bus
# ============================================================================


class EventBus:
    """Multi-producer, single-consumer FIFO of events."""

    def __init__(self) -> None:
        self._queue: queue.Queue[Any] = queue.Queue()
        self._closed = threading.Event()

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def send(self, event: Any) -> bool:
        """Enqueue an event. Returns False once the bus is closed."""
        if self._closed.is_set():
            return False
        self._queue.put(event)
        return True

    def recv(self, timeout: float | None = None) -> Any | None:
        """Block for the next event; None on timeout."""
        try:
            return self._queue.get(timeout=timeout)
        except queue.Empty:
            return None

    def drain(self, timeout: float | None = None) -> list[Any]:
        """Block for one event, then collect everything already queued behind it."""
        first = self.recv(timeout)
        if first is None:
            return []
        events = [first]
        while True:
            try:
                events.append(self._queue.get_nowait())
            except queue.Empty:
                return events

    def close(self) -> None:
        self._closed.set()


# ============================================================================
# Error bus
# ============================================================================


@dataclass(slots=True)
class ErrorBus:
    """Process-wide error dispatch. Posts ``ShowError`` once bound to a bus."""

    _bus: EventBus | None = None
    _lock: threading.Lock = field(default_factory=threading.Lock)

    def bind(self, bus: EventBus) -> None:
        with self._lock:
            self._bus = bus

    def unbind(self) -> None:
        with self._lock:
            self._bus = None

    def error(self, message: str) -> None:
        with self._lock:
            bus = self._bus
        if bus is None or not bus.send(ShowError(message)):
            logger.warning("Error reported with no UI attached: %s", message)


error_bus = ErrorBus()


def report_error(message: str) -> None:
    """Surface ``message`` in the error popup."""
    error_bus.error(message)


__all__ = [
    "Action",
    "BackgroundNotice",
    "EditorRequested",
    "ErrorBus",
    "Event",
    "EventBus",
    "ImageRedraw",
    "KeyEvent",
    "KeyPress",
    "MouseClick",
    "MouseEvent",
    "NavbarSelect",
    "PlayAnime",
    "PlaybackFinished",
    "PlaybackRequested",
    "Quit",
    "QuitRequested",
    "Rerender",
    "Resize",
    "ShowError",
    "ShowOverlay",
    "StorageUpdate",
    "SwitchScreen",
    "error_bus",
    "report_error",
]
