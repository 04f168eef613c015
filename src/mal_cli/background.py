"""Per-screen background work: field-bag updates, command channels and worker threads."""

from __future__ import annotations

import logging
import queue
import threading
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, TypeVar

from mal_cli.action_messages import build_actionable_error
from mal_cli.errors import MalCliError
from mal_cli.events import BackgroundNotice, EventBus, ShowError

if TYPE_CHECKING:
    from mal_cli.config import AppConfig
    from mal_cli.persistence import TokenStore, WatchHistory
    from mal_cli.services.episodes import EpisodeProvider
    from mal_cli.services.mal_client import MalClient
    from mal_cli.store import EntityStore

logger = logging.getLogger(__name__)

T = TypeVar("T")

_MISSING = object()

# ============================================================================
# Field-bag update
# ============================================================================


class BackgroundUpdate:
    """A bag of named values addressed to one screen.

    Producers chain ``set`` calls; the consumer moves values out with
    ``take``. A value of the wrong type is dropped rather than raised.
    """

    __slots__ = ("_fields", "screen_id")

    def __init__(self, screen_id: str) -> None:
        self.screen_id = screen_id
        self._fields: dict[str, Any] = {}

    def __repr__(self) -> str:
        return f"BackgroundUpdate({self.screen_id!r}, fields={sorted(self._fields)!r})"

    def set(self, name: str, value: Any) -> BackgroundUpdate:
        self._fields[name] = value
        return self

    def has(self, name: str) -> bool:
        return name in self._fields

    def fields(self) -> Iterator[str]:
        return iter(list(self._fields))

    def get(self, name: str, expected_type: type[T] | None = None) -> T | None:
        """Peek at a value without consuming it."""
        value = self._fields.get(name, _MISSING)
        if value is _MISSING:
            return None
        if expected_type is not None and not isinstance(value, expected_type):
            return None
        return value

    def take(self, name: str, expected_type: type[T] | None = None) -> T | None:
        """Move a value out of the bag. Each field can be taken once."""
        value = self._fields.pop(name, _MISSING)
        if value is _MISSING:
            return None
        if expected_type is not None and not isinstance(value, expected_type):
            logger.debug(
                "Ignoring mis-typed field %r for %s: expected %s, got %s",
                name,
                self.screen_id,
                expected_type.__name__,
                type(value).__name__,
            )
            return None
        return value


# ============================================================================
# Command channel
# ============================================================================

_CLOSED = object()


class CommandChannel:
    """Screen → worker channel. Closing it ends the worker's receive loop."""

    def __init__(self) -> None:
        self._queue: queue.Queue[Any] = queue.Queue()
        self._closed = False
        self._pending = 0
        self._lock = threading.Lock()

    @property
    def closed(self) -> bool:
        return self._closed

    def has_pending(self) -> bool:
        """True while a command is queued and not yet received."""
        with self._lock:
            return self._pending > 0

    def send(self, command: Any) -> bool:
        with self._lock:
            if self._closed:
                return False
            self._pending += 1
            self._queue.put(command)
            return True

    def _received(self, item: Any) -> Any | None:
        if item is _CLOSED:
            # Leave the marker for any other receiver
            self._queue.put(_CLOSED)
            return None
        with self._lock:
            self._pending -= 1
        return item

    def recv(self, timeout: float | None = None) -> Any | None:
        """Block for the next command. Returns None once closed (or on timeout)."""
        try:
            item = self._queue.get(timeout=timeout)
        except queue.Empty:
            return None
        return self._received(item)

    def try_recv(self) -> Any | None:
        try:
            item = self._queue.get_nowait()
        except queue.Empty:
            return None
        return self._received(item)

    def __iter__(self) -> Iterator[Any]:
        while True:
            command = self.recv()
            if command is None:
                return
            yield command

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self._queue.put(_CLOSED)


# ============================================================================
# Shared worker context
# ============================================================================


@dataclass(slots=True)
class BackgroundInfo:
    """Handles every screen and worker may use."""

    bus: EventBus
    client: MalClient
    store: EntityStore
    config: AppConfig
    history: WatchHistory | None = None
    tokens: TokenStore | None = None
    episodes: EpisodeProvider | None = None
    extras: dict[str, Any] = field(default_factory=dict)

    def notify(self, update: BackgroundUpdate) -> bool:
        """Send a field-bag update to its screen through the app loop."""
        return self.bus.send(BackgroundNotice(update))


class WorkerHandle:
    """A running worker thread plus the exception it died with, if any."""

    def __init__(self, name: str, thread: threading.Thread) -> None:
        self.name = name
        self.thread = thread
        self.error: BaseException | None = None

    def is_finished(self) -> bool:
        return not self.thread.is_alive()

    def join(self, timeout: float | None = None) -> bool:
        """Wait for the worker; returns True if it has finished."""
        self.thread.join(timeout)
        return not self.thread.is_alive()


def describe_worker_error(action: str, exc: BaseException) -> str:
    """User-facing copy for a failed background step."""
    if isinstance(exc, MalCliError) and exc.kind == "auth":
        return build_actionable_error(
            action, why="your session has expired", next_step="log in again from the launch screen"
        )
    if isinstance(exc, MalCliError) and exc.kind == "network":
        return build_actionable_error(
            action, why="the catalog could not be reached", next_step="check your connection and retry"
        )
    return build_actionable_error(action, why=str(exc) or type(exc).__name__, next_step="retry")


def spawn_worker(
    name: str,
    target: Callable[[], None],
    *,
    bus: EventBus,
    action: str = "load data in the background",
) -> WorkerHandle:
    """Start ``target`` on a daemon thread that never raises out.

    Any exception is logged and turned into a ``ShowError`` event.
    """
    handle: WorkerHandle

    def _run() -> None:
        try:
            target()
        except Exception as exc:
            handle.error = exc
            logger.error("Worker %s failed: %s", name, exc, exc_info=True)
            bus.send(ShowError(describe_worker_error(action, exc)))

    thread = threading.Thread(target=_run, name=f"worker-{name}", daemon=True)
    handle = WorkerHandle(name, thread)
    thread.start()
    logger.debug("Spawned worker %s", name)
    return handle


__all__ = [
    "BackgroundInfo",
    "BackgroundUpdate",
    "CommandChannel",
    "WorkerHandle",
    "describe_worker_error",
    "spawn_worker",
]
