"""Renderers for one anime inside a grid cell."""

from __future__ import annotations

from rich.box import ROUNDED
from rich.console import Group, RenderableType
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from mal_cli.images import ImageManager, Rect
from mal_cli.models import LIST_STATUS_LABELS, Anime
from mal_cli.themes import THEME_COLORS, status_color
from mal_cli.widgets.formatting import format_score, humanize, truncate
from mal_cli.widgets.frame import Region

LONG_BOX_IMAGE_RATIO = 0.3


def _cover(anime: Anime, images: ImageManager | None, area: Rect) -> RenderableType:
    if images is None or area.width <= 0 or area.height <= 0:
        return Text("")
    rendered = images.render_image(anime.id, area)
    if rendered is None:
        images.fetch_image(anime)
        return Text("\n" * (area.height // 2) + "Loading...", style=THEME_COLORS["primary"], justify="center")
    return rendered


def _border(anime: Anime, highlighted: bool) -> str:
    if highlighted:
        return THEME_COLORS["highlight"]
    if anime.my_list_status.status:
        return status_color(anime.my_list_status.status)
    return THEME_COLORS["primary"]


def anime_card(anime: Anime, region: Region, images: ImageManager | None, highlighted: bool) -> Panel:
    """Cover with the title above and score/episodes below."""
    inner_width = max(0, region.width - 2)
    image_rect = Rect(inner_width, max(0, region.height - 4))
    title = Text(
        truncate(anime.display_title, inner_width),
        style=THEME_COLORS["second_highlight"] if highlighted else THEME_COLORS["text"],
        justify="center",
        no_wrap=True,
    )
    episodes = anime.num_episodes or "?"
    footer = Text(
        truncate(f"★ {format_score(anime.mean)}  ·  {episodes} eps", inner_width),
        style=THEME_COLORS["secondary"],
        justify="center",
        no_wrap=True,
    )
    return Panel(
        Group(title, _cover(anime, images, image_rect), footer),
        box=ROUNDED,
        border_style=_border(anime, highlighted),
        padding=(0, 0),
    )


def long_anime_box(anime: Anime, region: Region, images: ImageManager | None, highlighted: bool) -> Panel:
    """Cover on the left, title and details on the right."""
    inner_width = max(0, region.width - 2)
    inner_height = max(0, region.height - 2)
    image_width = int(inner_width * LONG_BOX_IMAGE_RATIO)
    text_width = max(0, inner_width - image_width - 1)

    details = Text(no_wrap=False, overflow="ellipsis")
    details.append(
        truncate(anime.display_title, text_width * 2),
        style=f"bold {THEME_COLORS['second_highlight'] if highlighted else THEME_COLORS['text']}",
    )
    details.append("\n")
    if anime.title and anime.title != anime.display_title:
        details.append(truncate(anime.title, text_width) + "\n", style=THEME_COLORS["secondary"])
    details.append(f"{humanize(anime.media_type).upper() or '?'}  ", style=THEME_COLORS["primary"])
    details.append(f"{anime.num_episodes or '?'} eps  ", style=THEME_COLORS["primary"])
    details.append(f"★ {format_score(anime.mean)}\n", style=THEME_COLORS["highlight"])
    status = anime.my_list_status.status
    details.append(LIST_STATUS_LABELS.get(status, humanize(status)), style=status_color(status))
    if anime.my_list_status.num_episodes_watched:
        details.append(f"  {anime.my_list_status.num_episodes_watched} watched", style=THEME_COLORS["text"])
    if anime.genres:
        details.append("\n" + truncate(", ".join(g.name for g in anime.genres), text_width), style=THEME_COLORS["secondary"])

    grid = Table.grid(padding=(0, 1), expand=True)
    grid.add_column(width=image_width, no_wrap=True)
    grid.add_column(ratio=1)
    grid.add_row(_cover(anime, images, Rect(image_width, inner_height)), details)
    return Panel(grid, box=ROUNDED, border_style=_border(anime, highlighted), padding=(0, 0))


__all__ = ["anime_card", "long_anime_box"]
