"""Catalog client: authenticated, memoized access to the MyAnimeList v2 API.

One long-lived ``MalClient`` is shared by every worker thread. GETs are
memoized by (URL, params, bearer token) in a bounded LRU; errors are never
cached. A 401 triggers at most one silent token refresh per call.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import OrderedDict
from collections.abc import Callable, Hashable
from datetime import date
from typing import Any

import httpx

from mal_cli.action_messages import build_actionable_error
from mal_cli.errors import AuthError, DecodeError, MalCliError, map_httpx_error
from mal_cli.events import report_error
from mal_cli.models import (
    ANIME_FIELDS,
    Anime,
    ListStatusUpdate,
    ListUpdateResult,
    User,
    parse_anime,
    parse_anime_page,
    parse_list_status,
    parse_user,
)
from mal_cli.persistence import Tokens, TokenStore
from mal_cli.services.auth import refresh_tokens
from mal_cli.services.episodes import EpisodeProvider

logger = logging.getLogger(__name__)

# ============================================================================
# Constants
# ============================================================================

MAL_API_BASE = "https://api.myanimelist.net/v2"
MAL_USER_AGENT = "mal-cli/0.4"
MEMO_CACHE_SIZE = 2000
# User-list and profile reads reflect mutable server state
MUTABLE_READ_TTL_SECONDS = 60.0
FIELDS_PARAM = ",".join(ANIME_FIELDS)


def current_season(today: date | None = None) -> tuple[int, str]:
    """(year, season) for a date: Jan-Mar winter, Apr-Jun spring, Jul-Sep summer, Oct-Dec fall."""
    day = today or date.today()
    season = ("winter", "spring", "summer", "fall")[(day.month - 1) // 3]
    return day.year, season


# ============================================================================
# Memo cache
# ============================================================================


class MemoCache:
    """Thread-safe LRU with optional per-entry expiry."""

    def __init__(self, maxsize: int = MEMO_CACHE_SIZE, *, clock: Callable[[], float] = time.monotonic):
        self.maxsize = maxsize
        self._clock = clock
        self._data: OrderedDict[Hashable, tuple[Any, float | None]] = OrderedDict()
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)

    def get(self, key: Hashable) -> tuple[bool, Any]:
        with self._lock:
            entry = self._data.get(key)
            if entry is None:
                self.misses += 1
                return False, None
            value, expires_at = entry
            if expires_at is not None and self._clock() >= expires_at:
                del self._data[key]
                self.misses += 1
                return False, None
            self._data.move_to_end(key)
            self.hits += 1
            return True, value

    def put(self, key: Hashable, value: Any, ttl: float | None = None) -> None:
        expires_at = self._clock() + ttl if ttl is not None else None
        with self._lock:
            self._data[key] = (value, expires_at)
            self._data.move_to_end(key)
            while len(self._data) > self.maxsize:
                self._data.popitem(last=False)

    def invalidate(self, predicate: Callable[[Hashable], bool]) -> int:
        with self._lock:
            stale = [key for key in self._data if predicate(key)]
            for key in stale:
                del self._data[key]
            return len(stale)

    def clear(self) -> None:
        with self._lock:
            self._data.clear()


def _freeze_params(params: dict[str, Any] | None) -> tuple[tuple[str, str], ...]:
    if not params:
        return ()
    return tuple(sorted((str(k), str(v)) for k, v in params.items() if v is not None))


# ============================================================================
# Client
# ============================================================================


class MalClient:
    """Catalog provider client shared across threads."""

    def __init__(
        self,
        *,
        token_store: TokenStore,
        auth_server: str,
        http_client: httpx.Client | None = None,
        timeout: float = 10.0,
        base_url: str = MAL_API_BASE,
        cache: MemoCache | None = None,
        episode_provider: EpisodeProvider | None = None,
        refresh_fn: Callable[[str, str, httpx.Client], Tokens] = refresh_tokens,
    ) -> None:
        self._token_store = token_store
        self._auth_server = auth_server
        self._base_url = base_url.rstrip("/")
        self._http = http_client or httpx.Client(
            timeout=timeout, headers={"User-Agent": MAL_USER_AGENT}, follow_redirects=True
        )
        self._owns_http = http_client is None
        self._cache = cache or MemoCache()
        self._episodes = episode_provider
        self._refresh_fn = refresh_fn
        self._token_lock = threading.Lock()
        self._tokens: Tokens | None = token_store.load()
        self.refresh_count = 0

    # -- session -------------------------------------------------------------

    @property
    def cache(self) -> MemoCache:
        return self._cache

    def is_logged_in(self) -> bool:
        with self._token_lock:
            return self._tokens is not None

    def update_user_login(self) -> bool:
        """Reload tokens from disk after a login. Returns True if now logged in."""
        tokens = self._token_store.load()
        with self._token_lock:
            self._tokens = tokens
        logger.debug("Reloaded tokens, logged_in=%s", tokens is not None)
        return tokens is not None

    def close(self) -> None:
        http = self._http
        if self._owns_http and http is not None:
            http.close()
        if self._episodes is not None:
            self._episodes.close()

    def _current_access_token(self) -> str:
        with self._token_lock:
            if self._tokens is None:
                raise AuthError("not logged in")
            return self._tokens.access_token

    def _refresh(self, stale_access_token: str) -> None:
        """Refresh tokens once; concurrent callers holding the same stale token share it."""
        with self._token_lock:
            if self._tokens is None:
                raise AuthError("not logged in")
            if self._tokens.access_token != stale_access_token:
                return
            refresh_token = self._tokens.refresh_token
            logger.info("Access token rejected, refreshing")
            try:
                tokens = self._refresh_fn(self._auth_server, refresh_token, self._http)
            except MalCliError as e:
                raise AuthError(f"token refresh failed: {e}") from e
            self.refresh_count += 1
            self._tokens = tokens
        try:
            self._token_store.save(tokens)
        except OSError as e:
            logger.warning("Refreshed tokens could not be persisted: %s", e)

    # -- transport -----------------------------------------------------------

    def _send(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        data: dict[str, str] | None = None,
    ) -> httpx.Response:
        """Send one authenticated request, refreshing once on 401."""
        url = f"{self._base_url}{path}"
        for attempt in range(2):
            token = self._current_access_token()
            try:
                response = self._http.request(
                    method,
                    url,
                    params=params,
                    data=data,
                    headers={"Authorization": f"Bearer {token}"},
                )
            except httpx.HTTPError as e:
                raise map_httpx_error(e) from e
            if response.status_code == 401 and attempt == 0:
                self._refresh(token)
                continue
            try:
                response.raise_for_status()
            except httpx.HTTPStatusError as e:
                raise map_httpx_error(e) from e
            return response
        raise AuthError("the catalog rejected the refreshed access token")

    def _get_json(self, path: str, params: dict[str, Any] | None = None, *, ttl: float | None = None) -> Any:
        token = self._current_access_token()
        key = (f"{self._base_url}{path}", _freeze_params(params), token)
        found, value = self._cache.get(key)
        if found:
            return value
        response = self._send("GET", path, params=params)
        try:
            payload = response.json()
        except ValueError as e:
            raise DecodeError(f"invalid JSON from {path}") from e
        # Re-key under the token actually used if a refresh happened
        used_token = self._current_access_token()
        self._cache.put((key[0], key[1], used_token), payload, ttl)
        return payload

    def _fetch_page(self, action: str, path: str, params: dict[str, Any], *, ttl: float | None = None) -> list[Anime] | None:
        try:
            return parse_anime_page(self._get_json(path, params, ttl=ttl))
        except MalCliError as e:
            logger.warning("Catalog request %s failed: %s", path, e)
            report_error(_describe(action, e))
            return None

    # -- reads ---------------------------------------------------------------

    def get_current_season(self, offset: int, limit: int) -> list[Anime] | None:
        year, season = current_season()
        return self.get_seasonal(year, season, offset, limit)

    def get_seasonal(self, year: int, season: str, offset: int, limit: int) -> list[Anime] | None:
        return self._fetch_page(
            "load the seasonal chart",
            f"/anime/season/{year}/{season}",
            {
                "fields": FIELDS_PARAM,
                "limit": limit,
                "offset": offset,
                "sort": "anime_num_list_users",
            },
        )

    def get_top(self, ranking_type: str, offset: int, limit: int) -> list[Anime] | None:
        return self._fetch_page(
            "load the top chart",
            "/anime/ranking",
            {"ranking_type": ranking_type, "fields": FIELDS_PARAM, "limit": limit, "offset": offset},
        )

    def search(self, query: str, offset: int, limit: int) -> list[Anime] | None:
        return self._fetch_page(
            f"search for {query.strip()!r}",
            "/anime",
            {"q": query, "fields": FIELDS_PARAM, "limit": limit, "offset": offset},
        )

    def get_user_list(self, status: str | None, offset: int, limit: int) -> list[Anime] | None:
        params: dict[str, Any] = {"fields": FIELDS_PARAM, "limit": limit, "offset": offset}
        if status:
            params["status"] = status
        return self._fetch_page(
            "load your anime list", "/users/@me/animelist", params, ttl=MUTABLE_READ_TTL_SECONDS
        )

    def get_suggested(self, offset: int, limit: int) -> list[Anime] | None:
        return self._fetch_page(
            "load suggestions",
            "/anime/suggestions",
            {"fields": FIELDS_PARAM, "limit": limit, "offset": offset},
        )

    def get_anime(self, anime_id: int) -> Anime | None:
        try:
            payload = self._get_json(f"/anime/{anime_id}", {"fields": FIELDS_PARAM})
        except MalCliError as e:
            logger.warning("Anime %d lookup failed: %s", anime_id, e)
            report_error(_describe("load anime details", e))
            return None
        return parse_anime(payload)

    def get_user(self) -> User | None:
        try:
            payload = self._get_json(
                "/users/@me", {"fields": "anime_statistics"}, ttl=MUTABLE_READ_TTL_SECONDS
            )
        except MalCliError as e:
            logger.warning("Profile lookup failed: %s", e)
            report_error(_describe("load your profile", e))
            return None
        return parse_user(payload)

    def get_available_episodes(self, anime_id: int, titles: list[str] | None = None) -> int | None:
        """Released episode count from the episode provider, or None if unknown."""
        if self._episodes is None:
            return None
        if not titles:
            anime = self.get_anime(anime_id)
            if anime is None:
                return None
            titles = [anime.title, anime.alternative_titles.en, *anime.alternative_titles.synonyms]
        return self._episodes.fetch_released_episodes([t for t in titles if t])

    # -- writes --------------------------------------------------------------

    def update_user_list(self, update: ListStatusUpdate) -> ListUpdateResult:
        """Submit a list-status mutation. Raises MalCliError on failure."""
        response = self._send("PATCH", f"/anime/{update.anime_id}/my_list_status", data=update.to_form())
        self._invalidate_user_reads()
        try:
            payload = response.json() if response.content else {}
        except ValueError as e:
            raise DecodeError("invalid JSON from list update") from e
        if not payload:
            return ListUpdateResult(anime_id=update.anime_id, deleted=True)
        return ListUpdateResult(anime_id=update.anime_id, status=parse_list_status(payload))

    def delete_from_list(self, anime_id: int) -> ListUpdateResult:
        self._send("DELETE", f"/anime/{anime_id}/my_list_status")
        self._invalidate_user_reads()
        return ListUpdateResult(anime_id=anime_id, deleted=True)

    def update_user_list_async(
        self,
        update: ListStatusUpdate,
        *,
        on_done: Callable[[ListUpdateResult], None] | None = None,
        on_error: Callable[[MalCliError], None] | None = None,
    ) -> threading.Thread:
        """Submit ``update`` on a daemon thread."""

        def _run() -> None:
            try:
                result = self.update_user_list(update)
            except MalCliError as e:
                logger.warning("List update for %d failed: %s", update.anime_id, e)
                if on_error is not None:
                    on_error(e)
                else:
                    report_error(_describe("update your list", e))
                return
            if on_done is not None:
                on_done(result)

        thread = threading.Thread(target=_run, name=f"list-update-{update.anime_id}", daemon=True)
        thread.start()
        return thread

    def _invalidate_user_reads(self) -> None:
        dropped = self._cache.invalidate(lambda key: "/users/@me" in str(key[0]))
        if dropped:
            logger.debug("Invalidated %d cached user reads", dropped)


def _describe(action: str, exc: MalCliError) -> str:
    if exc.kind == "auth":
        return build_actionable_error(action, why=str(exc), next_step="log in again from the launch screen")
    if exc.kind == "network":
        return build_actionable_error(action, why="the catalog could not be reached", next_step="check your connection and retry")
    return build_actionable_error(action, why=str(exc), next_step="retry in a moment")


__all__ = [
    "FIELDS_PARAM",
    "MAL_API_BASE",
    "MEMO_CACHE_SIZE",
    "MalClient",
    "MemoCache",
    "current_season",
]
