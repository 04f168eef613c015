"""Cover-image pipeline: memoized fetch, off-thread resize and half-block encoding.

Each screen owns an ``ImageManager`` with two threads. The fetcher downloads
covers and hands a ``ThreadProtocol`` slot back to the screen through a
``BackgroundUpdate``; the resizer turns ``ResizeRequest``s into
``ResizeResponse``s and posts them as ``ImageRedraw`` events. A slot accepts
only the response whose id matches its current generation.
"""

from __future__ import annotations

import io
import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from urllib.parse import unquote, urlparse

import httpx
from PIL import Image as PILImage
from PIL import UnidentifiedImageError
from rich.style import Style
from rich.text import Text

from mal_cli.background import BackgroundUpdate, CommandChannel
from mal_cli.errors import DecodeError, MalCliError, NotFoundError, map_httpx_error
from mal_cli.events import BackgroundNotice, EventBus, ImageRedraw
from mal_cli.models import Anime
from mal_cli.services.mal_client import MemoCache

logger = logging.getLogger(__name__)

IMAGE_CACHE_SIZE = 2000
IMAGE_FETCH_TIMEOUT = 10.0
BACKGROUND_RGB = (0, 0, 0)
HALF_BLOCK = "▀"

# ============================================================================
# Fetching
# ============================================================================

_image_cache = MemoCache(IMAGE_CACHE_SIZE)
_http_lock = threading.Lock()
_http_client: httpx.Client | None = None


def _get_http_client() -> httpx.Client:
    global _http_client
    with _http_lock:
        if _http_client is None:
            _http_client = httpx.Client(timeout=IMAGE_FETCH_TIMEOUT, follow_redirects=True)
        return _http_client


def clear_image_cache() -> None:
    _image_cache.clear()


def _decode(data: bytes, source: str) -> PILImage.Image:
    try:
        with PILImage.open(io.BytesIO(data)) as img:
            return img.convert("RGB")
    except (UnidentifiedImageError, OSError, ValueError) as e:
        raise DecodeError(f"could not decode image {source}: {e}") from e


def _read_bytes(url: str, client: httpx.Client | None) -> bytes:
    parsed = urlparse(url)
    if parsed.scheme == "file":
        path = Path(unquote(parsed.path))
        try:
            return path.read_bytes()
        except FileNotFoundError as e:
            raise NotFoundError(str(path)) from e
        except OSError as e:
            raise DecodeError(f"could not read {path}: {e}") from e
    try:
        response = (client or _get_http_client()).get(url)
        response.raise_for_status()
    except httpx.HTTPError as e:
        raise map_httpx_error(e) from e
    return response.content


def fetch_image(url: str, *, client: httpx.Client | None = None) -> PILImage.Image:
    """Fetch and decode an image, memoized by URL. Raises MalCliError.

    ``file://`` URLs are read from disk. Failures are never cached.
    """
    if not url:
        raise NotFoundError("empty image URL")
    found, cached = _image_cache.get(url)
    if found:
        return cached
    image = _decode(_read_bytes(url, client), url)
    _image_cache.put(url, image)
    return image


# ============================================================================
# Encoding
# ============================================================================


@dataclass(frozen=True, slots=True)
class Rect:
    """A target area in terminal cells."""

    width: int
    height: int


def encode_half_blocks(
    image: PILImage.Image,
    area: Rect,
    *,
    background: tuple[int, int, int] = BACKGROUND_RGB,
) -> Text:
    """Fit ``image`` into ``area`` (letterboxed) as upper-half-block cells."""
    w, h = image.size
    if not w or not h or area.width <= 0 or area.height <= 0:
        return Text("")
    px_w = area.width
    px_h = area.height * 2
    scale = min(px_w / w, px_h / h)
    new_w = max(1, int(w * scale))
    new_h = max(1, int(h * scale))
    resized = image.resize((new_w, new_h), resample=PILImage.Resampling.LANCZOS)
    canvas = PILImage.new("RGB", (px_w, px_h), background)
    canvas.paste(resized, ((px_w - new_w) // 2, (px_h - new_h) // 2))

    out = Text(no_wrap=True, overflow="crop")
    pixels = canvas.load()
    for y in range(0, px_h, 2):
        for x in range(px_w):
            r1, g1, b1 = pixels[x, y]
            r2, g2, b2 = pixels[x, y + 1]
            out.append(
                HALF_BLOCK,
                style=Style(color=f"#{r1:02x}{g1:02x}{b1:02x}", bgcolor=f"#{r2:02x}{g2:02x}{b2:02x}"),
            )
        if y + 2 < px_h:
            out.append("\n")
    return out


class ImageProtocol:
    """A decoded source image plus its most recent encoding."""

    __slots__ = ("area", "rendered", "source")

    def __init__(self, source: PILImage.Image) -> None:
        self.source = source
        self.area: Rect | None = None
        self.rendered: Text | None = None

    def needs_resize(self, area: Rect) -> bool:
        return self.rendered is None or self.area != area

    def resize_encode(self, area: Rect) -> None:
        self.rendered = encode_half_blocks(self.source, area)
        self.area = area


@dataclass(slots=True)
class ResizeRequest:
    image_id: int
    protocol: ImageProtocol
    area: Rect
    id: int

    def resize_encode(self) -> ResizeResponse:
        """Perform the CPU-heavy resize. Raises on decode failure."""
        self.protocol.resize_encode(self.area)
        return ResizeResponse(image_id=self.image_id, protocol=self.protocol, id=self.id)


@dataclass(slots=True)
class ResizeResponse:
    image_id: int
    protocol: ImageProtocol
    id: int


class ThreadProtocol:
    """One image slot. Resizes run elsewhere; stale responses are rejected."""

    def __init__(
        self,
        image_id: int,
        sender: Callable[[ResizeRequest], object],
        inner: ImageProtocol | None = None,
    ) -> None:
        self.image_id = image_id
        self.inner = inner
        self._sender = sender
        self.id = 0

    def _increment_id(self) -> None:
        self.id += 1

    def replace_protocol(self, protocol: ImageProtocol) -> None:
        """Install a new source image, invalidating in-flight resizes."""
        self.inner = protocol
        self._increment_id()

    def empty_protocol(self) -> None:
        self.inner = None
        self._increment_id()

    def update_resized_protocol(self, response: ResizeResponse) -> bool:
        """Accept ``response`` only if it belongs to the current generation."""
        if response.id != self.id:
            logger.debug(
                "Dropping stale resize for image %d (got %d, want %d)",
                self.image_id,
                response.id,
                self.id,
            )
            return False
        self.inner = response.protocol
        return True

    def needs_resize(self, area: Rect) -> bool:
        return self.inner is not None and self.inner.needs_resize(area)

    def resize_encode(self, area: Rect) -> None:
        """Hand the protocol to the resizer. Nothing renders until it comes back."""
        protocol = self.inner
        if protocol is None:
            return
        self.inner = None
        self._increment_id()
        self._sender(ResizeRequest(image_id=self.image_id, protocol=protocol, area=area, id=self.id))

    def render(self) -> Text | None:
        if self.inner is None:
            return None
        return self.inner.rendered


# ============================================================================
# Manager
# ============================================================================


class ImageManager:
    """Per-screen image slots plus their fetcher and resizer threads."""

    def __init__(self) -> None:
        self.protocols: dict[int, ThreadProtocol] = {}
        self._pending: set[int] = set()
        self._failed: set[int] = set()
        self._bus: EventBus | None = None
        self._screen_id: str | None = None
        self._fetch_channel: CommandChannel | None = None
        self._resize_channel: CommandChannel | None = None
        self._threads: list[threading.Thread] = []

    @property
    def started(self) -> bool:
        return self._bus is not None

    def start(self, bus: EventBus, screen_id: str) -> None:
        """Spawn the fetcher and resizer for ``screen_id``. Idempotent."""
        if self.started:
            return
        self._bus = bus
        self._screen_id = screen_id
        self._fetch_channel = CommandChannel()
        self._resize_channel = CommandChannel()
        for name, target in (("fetch", self._fetch_loop), ("resize", self._resize_loop)):
            thread = threading.Thread(target=target, name=f"images-{name}-{screen_id}", daemon=True)
            thread.start()
            self._threads.append(thread)

    def _fetch_loop(self) -> None:
        assert self._fetch_channel is not None and self._resize_channel is not None
        resize_channel = self._resize_channel
        for image_id, url in self._fetch_channel:
            try:
                image = fetch_image(url)
            except MalCliError as e:
                logger.debug("Image for %d unavailable: %s", image_id, e)
                self._failed.add(image_id)
                continue
            slot = ThreadProtocol(image_id, resize_channel.send, ImageProtocol(image))
            update = BackgroundUpdate(self._screen_id or "").set("anime_id", image_id).set(
                "thread_protocol", slot
            )
            if self._bus is None or not self._bus.send(BackgroundNotice(update)):
                return

    def _resize_loop(self) -> None:
        assert self._resize_channel is not None
        for request in self._resize_channel:
            try:
                result: object = request.resize_encode()
            except (OSError, ValueError) as e:
                logger.warning("Image resize for %d failed: %s", request.image_id, e)
                result = DecodeError(str(e))
            redraw = ImageRedraw(request.image_id, result, self._screen_id or "")
            if self._bus is None or not self._bus.send(redraw):
                return

    def request(self, image_id: int, url: str) -> None:
        """Queue a download for slot ``image_id`` unless it exists, is pending or failed."""
        if self._fetch_channel is None or not url:
            return
        if image_id in self.protocols or image_id in self._pending or image_id in self._failed:
            return
        self._pending.add(image_id)
        self._fetch_channel.send((image_id, url))

    def fetch_image(self, anime: Anime) -> None:
        """Queue the cover of ``anime``."""
        self.request(anime.id, anime.main_picture.medium or anime.main_picture.large)

    def load_image(self, image_id: int, protocol: ThreadProtocol) -> None:
        self._pending.discard(image_id)
        self.protocols[image_id] = protocol

    def take_update(self, update: BackgroundUpdate) -> bool:
        """Install a slot delivered by the fetcher, if ``update`` carries one."""
        if not update.has("thread_protocol"):
            return False
        image_id = update.take("anime_id", int)
        protocol = update.take("thread_protocol", ThreadProtocol)
        if image_id is None or protocol is None:
            return False
        self.load_image(image_id, protocol)
        return True

    def remove_image(self, image_id: int) -> None:
        self.protocols.pop(image_id, None)

    def update_image(self, image_id: int, result: object) -> bool:
        """Apply a resize result. Errors and unknown slots leave everything blank."""
        protocol = self.protocols.get(image_id)
        if protocol is None:
            logger.debug("Image %d not found in this screen", image_id)
            return False
        if not isinstance(result, ResizeResponse):
            logger.debug("Failed to update image %d: %s", image_id, result)
            return False
        return protocol.update_resized_protocol(result)

    def render_image(self, image_id: int, area: Rect) -> Text | None:
        """Current encoding for a slot, requesting a resize when ``area`` changed."""
        protocol = self.protocols.get(image_id)
        if protocol is None:
            return None
        if protocol.needs_resize(area):
            protocol.resize_encode(area)
        return protocol.render()

    def close(self) -> None:
        for channel in (self._fetch_channel, self._resize_channel):
            if channel is not None:
                channel.close()

    def join(self, timeout: float = 1.0) -> None:
        for thread in self._threads:
            thread.join(timeout)


__all__ = [
    "IMAGE_CACHE_SIZE",
    "ImageManager",
    "ImageProtocol",
    "Rect",
    "ResizeRequest",
    "ResizeResponse",
    "ThreadProtocol",
    "clear_image_cache",
    "encode_half_blocks",
    "fetch_image",
]
