"""Full-page details for one anime, opened from the detail overlay."""

from __future__ import annotations

import io
import logging

from rich.box import ROUNDED
from rich.console import Console
from rich.panel import Panel
from rich.text import Text

from mal_cli.background import BackgroundInfo, WorkerHandle
from mal_cli.events import Action, KeyEvent, MouseEvent, NavbarSelect, PlayAnime, SwitchScreen
from mal_cli.images import ImageManager, Rect
from mal_cli.models import LIST_STATUS_LABELS, Anime, RelatedEntry
from mal_cli.screens.base import INFO, OVERVIEW, Screen
from mal_cli.themes import THEME_COLORS, status_color
from mal_cli.widgets.button import button
from mal_cli.widgets.formatting import format_count, format_date, format_score, humanize
from mal_cli.widgets.frame import Frame, Region
from mal_cli.widgets.keys import is_focus_up, nav

logger = logging.getLogger(__name__)

INFO_BUTTONS = ("Back", "Play")

# Only used to measure text while wrapping
_MEASURE_CONSOLE = Console(file=io.StringIO(), width=200, color_system=None)


def info_rows(anime: Anime) -> list[list[tuple[str, str]]]:
    """Label/value pairs grouped into display rows."""
    season = f"{humanize(anime.start_season.season)} {anime.start_season.year}" if anime.start_season else "?"
    broadcast = "?"
    if anime.broadcast is not None and anime.broadcast.day_of_the_week:
        broadcast = f"{humanize(anime.broadcast.day_of_the_week)} {anime.broadcast.start_time}".strip()
    duration = f"{anime.average_episode_duration // 60} min" if anime.average_episode_duration else "?"
    return [
        [
            ("Score", format_score(anime.mean)),
            ("Ranked", f"#{anime.rank}" if anime.rank else "N/A"),
            ("Popularity", f"#{anime.popularity}" if anime.popularity else "N/A"),
            ("Members", format_count(anime.num_list_users)),
        ],
        [
            ("Type", humanize(anime.media_type).upper() or "?"),
            ("Episodes", str(anime.num_episodes or "?")),
            ("Status", humanize(anime.airing_status)),
            ("Duration", duration),
        ],
        [
            ("Aired", f"{format_date(anime.start_date) or '?'} to {format_date(anime.end_date) or '?'}"),
            ("Season", season),
            ("Broadcast", broadcast),
        ],
        [
            ("Source", humanize(anime.source) or "?"),
            ("Rating", anime.rating.upper().replace("_", " ") or "?"),
            ("Studios", ", ".join(s.name for s in anime.studios) or "-"),
        ],
        [("Genres", ", ".join(g.name for g in anime.genres) or "-")],
    ]


def _related_lines(title: str, entries: list[RelatedEntry]) -> Text:
    text = Text()
    if not entries:
        return text
    text.append(f"\n{title}\n", style=f"bold {THEME_COLORS['primary']}")
    for entry in entries:
        text.append("  • " + entry.title, style=THEME_COLORS["text"])
        if entry.relation_type:
            text.append(f"  ({humanize(entry.relation_type)})", style=THEME_COLORS["secondary"])
        text.append("\n")
    return text


class InfoScreen(Screen):
    def __init__(self, info: BackgroundInfo) -> None:
        super().__init__(info)
        self.anime_id: int | None = info.extras.get("info_anime_id")
        self.return_to: str = info.extras.get("previous_screen") or OVERVIEW
        if self.return_to == INFO:
            self.return_to = OVERVIEW
        self.scroll = 0
        self.button_index = 0
        self.image_manager = ImageManager()
        self._content_lines = 0
        self._button_regions: list[Region] = []

    def should_store(self) -> bool:
        return False

    def background(self) -> WorkerHandle | None:
        if self.bg_loaded:
            return None
        self.bg_loaded = True
        self.start_images()
        return None

    def anime(self) -> Anime | None:
        if self.anime_id is None:
            return None
        return self.info.store.get(self.anime_id)

    def _press(self) -> Action | None:
        if INFO_BUTTONS[self.button_index] == "Play" and self.anime_id is not None:
            return PlayAnime(self.anime_id)
        return SwitchScreen(self.return_to)

    def handle_keyboard(self, key: KeyEvent) -> Action | None:
        navigation = self.navigation
        if key.key in ("q", "escape"):
            return SwitchScreen(self.return_to)
        if is_focus_up(key) or (nav(navigation, "nav_up", key) and self.scroll == 0):
            return NavbarSelect(True)
        if nav(navigation, "nav_up", key):
            self.scroll -= 1
        elif nav(navigation, "nav_down", key):
            self.scroll = min(self.scroll + 1, max(0, self._content_lines - 1))
        elif nav(navigation, "nav_left", key):
            self.button_index = 0
        elif nav(navigation, "nav_right", key):
            self.button_index = len(INFO_BUTTONS) - 1
        elif nav(navigation, "select", key):
            return self._press()
        return None

    def handle_mouse(self, mouse: MouseEvent) -> Action | None:
        if mouse.kind == "scroll_up":
            self.scroll = max(0, self.scroll - 1)
        elif mouse.kind == "scroll_down":
            self.scroll = min(self.scroll + 1, max(0, self._content_lines - 1))
        else:
            for index, region in enumerate(self._button_regions):
                if region.contains(mouse.x, mouse.y):
                    self.button_index = index
                    return self._press()
        return None

    # -- drawing -------------------------------------------------------------

    def _content(self, anime: Anime) -> Text:
        text = Text()
        text.append(anime.display_title + "\n", style=f"bold {THEME_COLORS['second_highlight']}")
        titles = anime.alternative_titles
        for label, value in (("Japanese", titles.ja), ("Romaji", anime.title), ("Synonyms", ", ".join(titles.synonyms))):
            if value and value != anime.display_title:
                text.append(f"{label}: ", style=THEME_COLORS["primary"])
                text.append(value + "\n", style=THEME_COLORS["secondary"])
        status = anime.my_list_status
        text.append("\nYour list: ", style=THEME_COLORS["primary"])
        text.append(LIST_STATUS_LABELS.get(status.status, humanize(status.status)), style=status_color(status.status))
        if status.status:
            text.append(
                f"  score {status.score or '-'}  ·  {status.num_episodes_watched}/{anime.num_episodes or '?'} eps",
                style=THEME_COLORS["text"],
            )
        text.append("\n")

        for row in info_rows(anime):
            text.append("\n")
            for index, (label, value) in enumerate(row):
                if index:
                    text.append("   ")
                text.append(f"{label}: ", style=THEME_COLORS["primary"])
                text.append(value, style=THEME_COLORS["text"])
        text.append("\n")

        text.append("\nSynopsis\n", style=f"bold {THEME_COLORS['primary']}")
        text.append((anime.synopsis or "No synopsis available.") + "\n", style=THEME_COLORS["text"])
        if anime.background:
            text.append("\nBackground\n", style=f"bold {THEME_COLORS['primary']}")
            text.append(anime.background + "\n", style=THEME_COLORS["text"])
        text.append_text(_related_lines("Related anime", anime.related_anime))
        text.append_text(_related_lines("Related manga", anime.related_manga))
        text.append_text(_related_lines("Recommendations", anime.recommendations))
        stats = anime.statistics
        if stats is not None:
            text.append("\nStatistics\n", style=f"bold {THEME_COLORS['primary']}")
            for label, value in (
                ("Watching", stats.watching),
                ("Completed", stats.completed),
                ("On hold", stats.on_hold),
                ("Dropped", stats.dropped),
                ("Plan to watch", stats.plan_to_watch),
                ("Total users", stats.num_list_users),
            ):
                text.append(f"  {label}: ", style=THEME_COLORS["primary"])
                text.append(format_count(value) + "\n", style=THEME_COLORS["text"])
        return text

    def draw(self, frame: Frame) -> None:
        body = self.body(frame)
        anime = self.anime()
        if anime is None:
            message = "This anime is no longer available"
            frame.place("body", body.centered(len(message), 1), Text(message, style=THEME_COLORS["error"]))
            return
        content, buttons = body.split_rows(0, 3)
        left, right = content.split_cols(content.width * 3 // 10, 0)

        frame.place("body", left, Panel(Text(""), box=ROUNDED, border_style=THEME_COLORS["primary"]))
        inner = left.shrink(1, 1)
        if self.image_manager is not None:
            cover = self.image_manager.render_image(anime.id, Rect(inner.width, inner.height))
            if cover is None:
                self.image_manager.fetch_image(anime)
            else:
                frame.place("body", inner, cover)

        text_width = max(1, right.width - 4)
        lines = self._content(anime).wrap(_MEASURE_CONSOLE, text_width)
        self._content_lines = len(lines)
        self.scroll = max(0, min(self.scroll, max(0, self._content_lines - 1)))
        visible = Text("\n").join(lines[self.scroll :])
        frame.place(
            "body",
            right,
            Panel(visible, box=ROUNDED, border_style=THEME_COLORS["primary"], title="Info", padding=(0, 1)),
        )

        self._button_regions = buttons.centered(40, 3).split_even(len(INFO_BUTTONS))
        for index, (label, region) in enumerate(zip(INFO_BUTTONS, self._button_regions, strict=True)):
            frame.place("body", region, button(label, index == self.button_index))


__all__ = ["INFO_BUTTONS", "InfoScreen", "info_rows"]
