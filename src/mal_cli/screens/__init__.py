"""Screen registry: ids, display names and constructors."""

from __future__ import annotations

from collections.abc import Callable

from mal_cli.background import BackgroundInfo
from mal_cli.screens.base import (
    INFO,
    LAUNCH,
    LIST,
    LOGIN,
    OVERVIEW,
    PROFILE,
    SEARCH,
    SEASONS,
    SETTINGS,
    Screen,
)
from mal_cli.screens.info import InfoScreen
from mal_cli.screens.launch import LaunchScreen
from mal_cli.screens.login import LoginScreen
from mal_cli.screens.overview import OverviewScreen
from mal_cli.screens.profile import ProfileScreen
from mal_cli.screens.search import SearchScreen
from mal_cli.screens.seasons import SeasonsScreen
from mal_cli.screens.settings import SettingsScreen
from mal_cli.screens.user_list import ListScreen

SCREEN_REGISTRY: dict[str, Callable[[BackgroundInfo], Screen]] = {
    LAUNCH: LaunchScreen,
    LOGIN: LoginScreen,
    OVERVIEW: OverviewScreen,
    SEASONS: SeasonsScreen,
    SEARCH: SearchScreen,
    LIST: ListScreen,
    PROFILE: ProfileScreen,
    INFO: InfoScreen,
    SETTINGS: SettingsScreen,
}

# Tabs shown in the navbar, left to right
NAVBAR_SCREENS: tuple[str, ...] = (OVERVIEW, SEASONS, SEARCH, LIST, PROFILE)


def screen_to_name(screen_id: str) -> str:
    """``"SearchScreen"`` -> ``"Search"``."""
    return screen_id.removesuffix("Screen") or screen_id


def name_to_screen(name: str) -> str:
    """``"Search"`` -> ``"SearchScreen"``; unknown names map to the launch screen."""
    screen_id = name if name.endswith("Screen") else f"{name}Screen"
    return screen_id if screen_id in SCREEN_REGISTRY else LAUNCH


def create_screen(screen_id: str, info: BackgroundInfo) -> Screen:
    """Build a fresh screen; unknown ids fall back to the launch screen."""
    factory = SCREEN_REGISTRY.get(screen_id, LaunchScreen)
    return factory(info)


def navbar_options() -> list[tuple[str, str]]:
    return [(screen_to_name(screen_id), screen_id) for screen_id in NAVBAR_SCREENS]


__all__ = [
    "INFO",
    "LAUNCH",
    "LIST",
    "LOGIN",
    "NAVBAR_SCREENS",
    "OVERVIEW",
    "PROFILE",
    "SCREEN_REGISTRY",
    "SEARCH",
    "SEASONS",
    "SETTINGS",
    "InfoScreen",
    "LaunchScreen",
    "ListScreen",
    "LoginScreen",
    "OverviewScreen",
    "ProfileScreen",
    "Screen",
    "SearchScreen",
    "SeasonsScreen",
    "SettingsScreen",
    "create_screen",
    "name_to_screen",
    "navbar_options",
    "screen_to_name",
]
