"""Released-episode counts from the AllAnime GraphQL API.

The catalog provider only knows the planned episode total; the number of
episodes actually out comes from the same source the playback tool streams
from. Functions here never raise; callers get None on failure.
"""

from __future__ import annotations

__all__ = [
    "ALLANIME_API_URL",
    "EpisodeProvider",
    "pick_best_show",
]

import json
import logging
from dataclasses import dataclass
from typing import Any

import httpx
from rapidfuzz import fuzz, process

logger = logging.getLogger(__name__)

# ============================================================================
# Constants
# ============================================================================

ALLANIME_API_URL = "https://api.allanime.day/api"
ALLANIME_REFERER = "https://allmanga.to"
ALLANIME_USER_AGENT = "Mozilla/5.0 (X11; Linux x86_64; rv:128.0) Gecko/20100101 Firefox/128.0"
ALLANIME_REQUEST_TIMEOUT = 10  # seconds
ALLANIME_SEARCH_LIMIT = 40
TITLE_MATCH_CUTOFF = 85  # rapidfuzz WRatio, 0-100

SEARCH_GQL = (
    "query( $search: SearchInput $limit: Int $page: Int "
    "$translationType: VaildTranslationTypeEnumType "
    "$countryOrigin: VaildCountryOriginEnumType ) "
    "{ shows( search: $search limit: $limit page: $page "
    "translationType: $translationType countryOrigin: $countryOrigin ) "
    "{ edges { _id name availableEpisodes __typename } } }"
)

# ============================================================================
# Matching
# ============================================================================


@dataclass(slots=True)
class ShowEdge:
    show_id: str
    name: str
    sub_episodes: int


def _parse_edges(payload: Any) -> list[ShowEdge]:
    if not isinstance(payload, dict):
        return []
    data = payload.get("data") or {}
    shows = data.get("shows") if isinstance(data, dict) else None
    edges = shows.get("edges") if isinstance(shows, dict) else None
    if not isinstance(edges, list):
        return []
    parsed: list[ShowEdge] = []
    for edge in edges:
        if not isinstance(edge, dict):
            continue
        name = edge.get("name")
        available = edge.get("availableEpisodes") or {}
        sub = available.get("sub") if isinstance(available, dict) else None
        if not isinstance(name, str) or not isinstance(sub, int):
            continue
        parsed.append(ShowEdge(show_id=str(edge.get("_id", "")), name=name, sub_episodes=sub))
    return parsed


def pick_best_show(titles: list[str], edges: list[ShowEdge]) -> ShowEdge | None:
    """Choose the edge whose name best matches any of ``titles``."""
    if not edges:
        return None
    names = [edge.name for edge in edges]
    best: tuple[float, int] | None = None
    for title in titles:
        if not title:
            continue
        match = process.extractOne(
            title, names, scorer=fuzz.WRatio, score_cutoff=TITLE_MATCH_CUTOFF
        )
        if match is None:
            continue
        _, score, index = match
        if best is None or score > best[0]:
            best = (score, index)
    if best is None:
        return None
    return edges[best[1]]


# ============================================================================
# Provider
# ============================================================================


class EpisodeProvider:
    """Looks up how many subbed episodes have been released for a title."""

    def __init__(
        self,
        client: httpx.Client | None = None,
        *,
        api_url: str = ALLANIME_API_URL,
        timeout: float = ALLANIME_REQUEST_TIMEOUT,
    ) -> None:
        self._client = client
        self._owns_client = client is None
        self._api_url = api_url
        self._timeout = timeout

    def _get_client(self) -> httpx.Client:
        if self._client is None:
            self._client = httpx.Client(
                headers={"Referer": ALLANIME_REFERER, "User-Agent": ALLANIME_USER_AGENT},
                timeout=self._timeout,
            )
        return self._client

    def close(self) -> None:
        client = self._client
        self._client = None
        if client is not None and self._owns_client:
            client.close()

    def fetch_released_episodes(self, titles: list[str]) -> int | None:
        """Return the released sub episode count for the best-matching show, or None."""
        query = next((t for t in titles if t), "")
        if not query:
            return None
        variables = {
            "search": {"allowAdult": False, "allowUnknown": False, "query": query},
            "limit": ALLANIME_SEARCH_LIMIT,
            "page": 1,
            "translationType": "sub",
            "countryOrigin": "ALL",
        }
        try:
            response = self._get_client().get(
                self._api_url,
                params={"variables": json.dumps(variables), "query": SEARCH_GQL},
                headers={"Referer": ALLANIME_REFERER, "User-Agent": ALLANIME_USER_AGENT},
            )
            response.raise_for_status()
            payload = response.json()
        except httpx.TimeoutException:
            logger.warning("Episode provider timed out for %r", query)
            return None
        except httpx.HTTPError:
            logger.warning("Episode provider HTTP error for %r", query, exc_info=True)
            return None
        except ValueError:
            logger.warning("Episode provider returned invalid JSON for %r", query)
            return None

        best = pick_best_show(titles, _parse_edges(payload))
        if best is None:
            logger.debug("No released-episode match for %r", query)
            return None
        logger.debug("Matched %r to %r with %d episodes", query, best.name, best.sub_episodes)
        return best.sub_episodes
