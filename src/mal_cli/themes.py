"""Theme system: palette from config, list-status colours and the Textual theme builder."""

from __future__ import annotations

import logging
from dataclasses import asdict

from rich.color import Color, ColorParseError
from textual.theme import Theme as TextualTheme

from mal_cli.config import ThemeConfig

logger = logging.getLogger(__name__)

THEME_NAME = "mal-cli"

DEFAULT_THEME: dict[str, str] = asdict(ThemeConfig())

# Live palette read by every renderer; replaced wholesale by apply_theme_config()
THEME_COLORS: dict[str, str] = DEFAULT_THEME.copy()

# Personal-list status colours
STATUS_COLORS: dict[str, str] = {
    "watching": "rgb(64,201,255)",
    "completed": "rgb(83,209,131)",
    "on_hold": "rgb(181,105,16)",
    "dropped": "rgb(163,0,0)",
    "plan_to_watch": "rgb(176,86,255)",
}

_STATUS_ALIASES = {
    "rewatching": "watching",
    "on hold": "on_hold",
    "on-hold": "on_hold",
    "plan to watch": "plan_to_watch",
}


def status_color(status: str) -> str:
    """Colour for a list status name in any spelling; primary colour when unknown."""
    key = status.strip().lower()
    key = _STATUS_ALIASES.get(key, key)
    return STATUS_COLORS.get(key, THEME_COLORS["primary"])


def _to_hex(color_name: str, fallback: str) -> str:
    try:
        return Color.parse(color_name).get_truecolor().hex
    except ColorParseError:
        logger.warning("Unknown theme colour %r, using %s", color_name, fallback)
        return Color.parse(fallback).get_truecolor().hex


def apply_theme_config(theme: ThemeConfig) -> dict[str, str]:
    """Install the configured palette, replacing unparsable colours by defaults."""
    colors: dict[str, str] = {}
    for key, default in DEFAULT_THEME.items():
        value = getattr(theme, key, default)
        try:
            Color.parse(value)
        except ColorParseError:
            logger.warning("Unknown theme colour %r for %s, using default", value, key)
            value = default
        colors[key] = value
    THEME_COLORS.clear()
    THEME_COLORS.update(colors)
    return colors


def build_textual_theme(colors: dict[str, str]) -> TextualTheme:
    """Convert the palette into a Textual theme with ``$th-*`` CSS variables."""
    hexes = {key: _to_hex(value, DEFAULT_THEME[key]) for key, value in colors.items()}
    variables = {
        "th-primary": hexes["primary"],
        "th-highlight": hexes["highlight"],
        "th-highlight-alt": hexes["second_highlight"],
        "th-error": hexes["error"],
        "th-text": hexes["text"],
    }
    return TextualTheme(
        name=THEME_NAME,
        primary=hexes["highlight"],
        secondary=hexes["second_highlight"],
        accent=hexes["highlight"],
        foreground=hexes["text"],
        background="#000000",
        surface="#101010",
        panel=hexes["primary"],
        error=hexes["error"],
        dark=True,
        variables=variables,
    )


__all__ = [
    "DEFAULT_THEME",
    "STATUS_COLORS",
    "THEME_COLORS",
    "THEME_NAME",
    "apply_theme_config",
    "build_textual_theme",
    "status_color",
]
