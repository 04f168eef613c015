"""Key predicates shared by screens and widgets.

Plain movement follows the ``[navigation]`` config section; focus moves
between regions of a screen use fixed Ctrl chords.
"""

from __future__ import annotations

from mal_cli.config import NavigationConfig
from mal_cli.events import KeyEvent

FOCUS_UP = frozenset({"ctrl+up", "ctrl+k"})
FOCUS_DOWN = frozenset({"ctrl+down", "ctrl+j"})
# ctrl+h arrives as backspace, so only the arrow chord moves focus left
FOCUS_LEFT = frozenset({"ctrl+left"})
FOCUS_RIGHT = frozenset({"ctrl+right", "ctrl+l"})

_DEFAULT_NAVIGATION = NavigationConfig()


def nav(config: NavigationConfig | None, action: str, key: KeyEvent) -> bool:
    """True if ``key`` is bound to ``action`` (``"nav_up"``, ``"select"``, ...)."""
    return (config or _DEFAULT_NAVIGATION).matches(action, key.key)


def is_focus_up(key: KeyEvent) -> bool:
    return key.key in FOCUS_UP


def is_focus_down(key: KeyEvent) -> bool:
    return key.key in FOCUS_DOWN


def is_focus_left(key: KeyEvent) -> bool:
    return key.key in FOCUS_LEFT


def is_focus_right(key: KeyEvent) -> bool:
    return key.key in FOCUS_RIGHT


__all__ = [
    "FOCUS_DOWN",
    "FOCUS_LEFT",
    "FOCUS_RIGHT",
    "FOCUS_UP",
    "is_focus_down",
    "is_focus_left",
    "is_focus_right",
    "is_focus_up",
    "nav",
]
