"""Composite absolutely placed Rich renderables into a single renderable."""

from __future__ import annotations

from collections.abc import Iterable, Sequence

from rich.console import Console, ConsoleOptions, RenderResult
from rich.segment import Segment
from rich.style import Style

from mal_cli.widgets.frame import Placement, Region


def bounding_box(placements: Sequence[Placement]) -> Region | None:
    if not placements:
        return None
    x0 = min(p.region.x for p in placements)
    y0 = min(p.region.y for p in placements)
    x1 = max(p.region.right for p in placements)
    y1 = max(p.region.bottom for p in placements)
    return Region(x0, y0, x1 - x0, y1 - y0)


def _blit(base: list[Segment], patch: Iterable[Segment], x: int, width: int) -> list[Segment]:
    parts = list(Segment.divide(base, [x, x + width, Segment.get_line_length(base)]))
    left = parts[0] if parts else []
    right = parts[2] if len(parts) > 2 else []
    return [*left, *patch, *right]


class LayerCanvas:
    """Renders ``placements`` relative to ``origin``; later placements paint over earlier ones."""

    def __init__(
        self,
        placements: Sequence[Placement],
        origin: Region,
        *,
        fill_style: Style | None = None,
    ) -> None:
        self.placements = list(placements)
        self.origin = origin
        self.fill_style = fill_style or Style()

    def __rich_console__(self, console: Console, options: ConsoleOptions) -> RenderResult:
        width, height = self.origin.width, self.origin.height
        if width <= 0 or height <= 0:
            return
        lines: list[list[Segment]] = [[Segment(" " * width, self.fill_style)] for _ in range(height)]
        for placement in self.placements:
            region = placement.region
            x = region.x - self.origin.x
            y = region.y - self.origin.y
            w = min(region.width, width - x)
            h = min(region.height, height - y)
            if w <= 0 or h <= 0 or x < 0 or y < 0:
                continue
            rendered = console.render_lines(
                placement.renderable,
                options.update(width=w, height=h),
                pad=True,
            )
            for row, line in enumerate(rendered[:h]):
                lines[y + row] = _blit(lines[y + row], Segment.adjust_line_length(line, w), x, w)
        new_line = Segment.line()
        for line in lines:
            yield from line
            yield new_line


__all__ = ["LayerCanvas", "bounding_box"]
