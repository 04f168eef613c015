"""Shared test fixtures for mal-cli tests."""

from __future__ import annotations

import threading
from pathlib import Path
from typing import Any

import pytest

from mal_cli.background import BackgroundInfo
from mal_cli.config import AppConfig
from mal_cli.events import EventBus, error_bus
from mal_cli.images import clear_image_cache
from mal_cli.models import AlternativeTitles, Anime, ListStatusUpdate, ListUpdateResult, MyListStatus, Picture, User
from mal_cli.persistence import TokenStore, WatchHistory
from mal_cli.store import EntityStore
from mal_cli.themes import DEFAULT_THEME, THEME_COLORS

# ── Module-level state isolation ─────────────────────────────────────────────


@pytest.fixture(autouse=True)
def _reset_globals():
    """Unbind the error bus and restore the palette after each test.

    MalApp binds the process-wide error bus and installs the configured
    theme; without this fixture one test's app would leak into the next.
    """
    yield
    error_bus.unbind()
    THEME_COLORS.clear()
    THEME_COLORS.update(DEFAULT_THEME)
    clear_image_cache()


# ── Fakes ────────────────────────────────────────────────────────────────────


class FakeCatalog:
    """In-memory CatalogService; records every call it receives."""

    def __init__(self, animes: list[Anime] | None = None, *, logged_in: bool = True) -> None:
        self.animes = {anime.id: anime for anime in animes or []}
        self.logged_in = logged_in
        self.calls: list[tuple[Any, ...]] = []
        self.updates: list[ListStatusUpdate] = []
        self.released: dict[int, int] = {}
        self.closed = False
        self.update_done = threading.Event()

    def _page(self, offset: int, limit: int) -> list[Anime]:
        return list(self.animes.values())[offset : offset + limit]

    def is_logged_in(self) -> bool:
        return self.logged_in

    def update_user_login(self) -> bool:
        self.calls.append(("update_user_login",))
        return self.logged_in

    def get_seasonal(self, year: int, season: str, offset: int, limit: int) -> list[Anime] | None:
        self.calls.append(("get_seasonal", year, season, offset, limit))
        return self._page(offset, limit)

    def get_top(self, ranking_type: str, offset: int, limit: int) -> list[Anime] | None:
        self.calls.append(("get_top", ranking_type, offset, limit))
        return self._page(offset, limit)

    def search(self, query: str, offset: int, limit: int) -> list[Anime] | None:
        self.calls.append(("search", query, offset, limit))
        hits = [a for a in self.animes.values() if query.lower() in a.title.lower()]
        return hits[offset : offset + limit]

    def get_user_list(self, status: str | None, offset: int, limit: int) -> list[Anime] | None:
        self.calls.append(("get_user_list", status, offset, limit))
        hits = [
            a
            for a in self.animes.values()
            if a.my_list_status.status and (status is None or a.my_list_status.status == status)
        ]
        return hits[offset : offset + limit]

    def get_suggested(self, offset: int, limit: int) -> list[Anime] | None:
        self.calls.append(("get_suggested", offset, limit))
        return self._page(offset, limit)

    def get_anime(self, anime_id: int) -> Anime | None:
        self.calls.append(("get_anime", anime_id))
        return self.animes.get(anime_id)

    def get_user(self) -> User | None:
        return User(id=1, name="tester")

    def get_available_episodes(self, anime_id: int, titles: list[str] | None = None) -> int | None:
        return self.released.get(anime_id)

    def update_user_list(self, update: ListStatusUpdate) -> ListUpdateResult:
        self.updates.append(update)
        return ListUpdateResult(
            anime_id=update.anime_id,
            status=MyListStatus(
                status=update.status,
                score=update.score,
                num_episodes_watched=update.num_watched_episodes,
            ),
        )

    def delete_from_list(self, anime_id: int) -> ListUpdateResult:
        self.calls.append(("delete_from_list", anime_id))
        return ListUpdateResult(anime_id=anime_id, deleted=True)

    def update_user_list_async(self, update: ListStatusUpdate, *, on_done=None, on_error=None) -> object:
        result = self.update_user_list(update)
        if on_done is not None:
            on_done(result)
        self.update_done.set()
        return None

    def close(self) -> None:
        self.closed = True


class FakePlayer:
    def __init__(self, result: Any = None, error: Exception | None = None) -> None:
        self.result = result
        self.error = error
        self.played: list[int] = []

    def play(self, anime: Anime, episode: int | None = None) -> Any:
        self.played.append(anime.id)
        if self.error is not None:
            raise self.error
        return self.result


# ── Factories ────────────────────────────────────────────────────────────────


@pytest.fixture
def make_anime():
    """Factory fixture for Anime records with sensible defaults."""

    def _make(
        anime_id: int = 1,
        title: str = "Test Anime",
        *,
        english: str = "",
        num_episodes: int = 12,
        status: str = "currently_airing",
        list_status: str = "",
        score: int = 0,
        watched: int = 0,
        synopsis: str = "A test synopsis.",
        picture: str = "",
    ) -> Anime:
        return Anime(
            id=anime_id,
            title=title,
            alternative_titles=AlternativeTitles(en=english),
            main_picture=Picture(medium=picture),
            num_episodes=num_episodes,
            status=status,
            synopsis=synopsis,
            my_list_status=MyListStatus(status=list_status, score=score, num_episodes_watched=watched),
        )

    return _make


@pytest.fixture
def make_store():
    def _make(animes: list[Anime] | None = None) -> EntityStore:
        store = EntityStore()
        store.add_bulk(animes or [])
        return store

    return _make


@pytest.fixture
def fake_catalog_cls():
    return FakeCatalog


@pytest.fixture
def fake_player_cls():
    return FakePlayer


@pytest.fixture
def make_info(tmp_path: Path):
    """Factory for a BackgroundInfo wired to in-memory fakes and tmp files."""

    def _make(
        catalog: Any = None,
        *,
        store: EntityStore | None = None,
        config: AppConfig | None = None,
    ) -> BackgroundInfo:
        return BackgroundInfo(
            bus=EventBus(),
            client=catalog if catalog is not None else FakeCatalog(),
            store=store if store is not None else EntityStore(),
            config=config or AppConfig(),
            history=WatchHistory(tmp_path / "watch_history.log"),
            tokens=TokenStore(tmp_path / "tokens"),
        )

    return _make
