"""Service interfaces + default wiring for app-level dependency injection."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

from mal_cli.config import AppConfig
from mal_cli.errors import MalCliError
from mal_cli.models import Anime, ListStatusUpdate, ListUpdateResult, User
from mal_cli.persistence import TokenStore, WatchHistory
from mal_cli.player import AnimePlayer, PlayResult
from mal_cli.services.episodes import EpisodeProvider
from mal_cli.services.mal_client import MalClient


@runtime_checkable
class CatalogService(Protocol):
    """Interface for catalog reads and personal-list writes."""

    def is_logged_in(self) -> bool: ...

    def update_user_login(self) -> bool:
        """Reload persisted tokens after a login."""
        ...

    def get_seasonal(self, year: int, season: str, offset: int, limit: int) -> list[Anime] | None: ...

    def get_top(self, ranking_type: str, offset: int, limit: int) -> list[Anime] | None: ...

    def search(self, query: str, offset: int, limit: int) -> list[Anime] | None: ...

    def get_user_list(self, status: str | None, offset: int, limit: int) -> list[Anime] | None: ...

    def get_suggested(self, offset: int, limit: int) -> list[Anime] | None: ...

    def get_anime(self, anime_id: int) -> Anime | None: ...

    def get_user(self) -> User | None: ...

    def get_available_episodes(self, anime_id: int, titles: list[str] | None = None) -> int | None:
        """Released episode count, or None when unknown."""
        ...

    def update_user_list(self, update: ListStatusUpdate) -> ListUpdateResult: ...

    def delete_from_list(self, anime_id: int) -> ListUpdateResult: ...

    def update_user_list_async(
        self,
        update: ListStatusUpdate,
        *,
        on_done: Callable[[ListUpdateResult], None] | None = None,
        on_error: Callable[[MalCliError], None] | None = None,
    ) -> object: ...

    def close(self) -> None: ...


@runtime_checkable
class PlaybackService(Protocol):
    """Interface for running the external player."""

    def play(self, anime: Anime, episode: int | None = None) -> PlayResult:
        """Block until playback ends. Raises PlayError."""
        ...


@dataclass(slots=True)
class AppServices:
    """Aggregated services consumed by the app layer."""

    catalog: CatalogService
    player: PlaybackService
    tokens: TokenStore
    history: WatchHistory


def build_default_app_services(
    config: AppConfig,
    *,
    token_store: TokenStore | None = None,
    history: WatchHistory | None = None,
) -> AppServices:
    """Build the production services from the loaded config."""
    tokens = token_store or TokenStore()
    client = MalClient(
        token_store=tokens,
        auth_server=config.network.auth_server,
        timeout=config.network.request_timeout,
        episode_provider=EpisodeProvider(timeout=config.network.request_timeout),
    )
    return AppServices(
        catalog=client,
        player=AnimePlayer(config.player),
        tokens=tokens,
        history=history or WatchHistory(),
    )


__all__ = [
    "AppServices",
    "CatalogService",
    "PlaybackService",
    "build_default_app_services",
]
