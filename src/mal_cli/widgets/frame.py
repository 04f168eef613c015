"""Immediate-mode drawing surface: regions in terminal cells and a layered frame."""

from __future__ import annotations

from dataclasses import dataclass, field

from rich.console import RenderableType

# Bottom to top; the host app keeps one widget per layer
LAYERS: tuple[str, ...] = ("body", "navbar", "menu", "overlay", "overlay_menu", "error")

NAVBAR_HEIGHT = 3


@dataclass(frozen=True, slots=True)
class Region:
    x: int
    y: int
    width: int
    height: int

    @property
    def right(self) -> int:
        return self.x + self.width

    @property
    def bottom(self) -> int:
        return self.y + self.height

    def contains(self, x: int, y: int) -> bool:
        return self.x <= x < self.right and self.y <= y < self.bottom

    def shrink(self, dx: int = 1, dy: int = 1) -> Region:
        return Region(
            self.x + dx,
            self.y + dy,
            max(0, self.width - 2 * dx),
            max(0, self.height - 2 * dy),
        )

    def split_rows(self, *heights: int) -> list[Region]:
        """Split top to bottom. A height of 0 takes whatever is left (at most one)."""
        fixed = sum(heights)
        remaining = max(0, self.height - fixed)
        out: list[Region] = []
        y = self.y
        for h in heights:
            size = h if h > 0 else remaining
            size = max(0, min(size, self.bottom - y))
            out.append(Region(self.x, y, self.width, size))
            y += size
        return out

    def split_cols(self, *widths: int) -> list[Region]:
        """Split left to right. A width of 0 takes whatever is left (at most one)."""
        fixed = sum(widths)
        remaining = max(0, self.width - fixed)
        out: list[Region] = []
        x = self.x
        for w in widths:
            size = w if w > 0 else remaining
            size = max(0, min(size, self.right - x))
            out.append(Region(x, self.y, size, self.height))
            x += size
        return out

    def split_even(self, count: int, *, horizontal: bool = True) -> list[Region]:
        """Split into ``count`` near-equal parts, the remainder going to the first ones."""
        if count <= 0:
            return []
        total = self.width if horizontal else self.height
        base, extra = divmod(total, count)
        out: list[Region] = []
        offset = 0
        for i in range(count):
            size = base + (1 if i < extra else 0)
            if horizontal:
                out.append(Region(self.x + offset, self.y, size, self.height))
            else:
                out.append(Region(self.x, self.y + offset, self.width, size))
            offset += size
        return out

    def centered(self, width: int, height: int) -> Region:
        width = min(width, self.width)
        height = min(height, self.height)
        return Region(
            self.x + (self.width - width) // 2,
            self.y + (self.height - height) // 2,
            width,
            height,
        )


@dataclass(slots=True)
class Placement:
    region: Region
    renderable: RenderableType


@dataclass(slots=True)
class Frame:
    """One redraw worth of output, keyed by layer."""

    width: int
    height: int
    layers: dict[str, list[Placement]] = field(default_factory=dict)

    @property
    def area(self) -> Region:
        return Region(0, 0, self.width, self.height)

    def place(self, layer: str, region: Region, renderable: RenderableType) -> None:
        if layer not in LAYERS:
            raise ValueError(f"unknown layer {layer!r}")
        if region.width <= 0 or region.height <= 0:
            return
        self.layers.setdefault(layer, []).append(Placement(region, renderable))

    def placements(self, layer: str) -> list[Placement]:
        return self.layers.get(layer, [])


def body_region(frame: Frame, uses_navbar: bool) -> Region:
    """The part of the frame a screen may draw into."""
    if not uses_navbar:
        return frame.area
    return Region(0, NAVBAR_HEIGHT, frame.width, max(0, frame.height - NAVBAR_HEIGHT))


__all__ = [
    "LAYERS",
    "NAVBAR_HEIGHT",
    "Frame",
    "Placement",
    "Region",
    "body_region",
]
