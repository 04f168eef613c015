"""Data models and constants for the mal-cli application."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

# Application identity, single source of truth for platformdirs paths
CONFIG_APP_NAME = "mal-cli"

# Catalog field selector: every request asks for the full union so a single
# record shape serves every screen.
ANIME_FIELDS: tuple[str, ...] = (
    "id",
    "title",
    "main_picture",
    "alternative_titles",
    "start_date",
    "end_date",
    "synopsis",
    "mean",
    "rank",
    "popularity",
    "num_list_users",
    "num_scoring_users",
    "nsfw",
    "created_at",
    "updated_at",
    "media_type",
    "status",
    "genres",
    "my_list_status",
    "num_episodes",
    "start_season",
    "broadcast",
    "source",
    "average_episode_duration",
    "rating",
    "pictures",
    "background",
    "related_anime",
    "related_manga",
    "recommendations",
    "studios",
    "statistics",
)

# Personal list status values as the catalog provider spells them
LIST_STATUSES: tuple[str, ...] = ("watching", "completed", "on_hold", "dropped", "plan_to_watch")
LIST_STATUS_LABELS: dict[str, str] = {
    "watching": "Watching",
    "completed": "Completed",
    "on_hold": "On Hold",
    "dropped": "Dropped",
    "plan_to_watch": "Plan to Watch",
    "": "Not in list",
}

# Airing status values and the coarse enum they collapse into
AIRING_STATUS_MAP: dict[str, str] = {
    "currently_airing": "airing",
    "finished_airing": "finished",
    "not_yet_aired": "upcoming",
}

SEASONS: tuple[str, ...] = ("winter", "spring", "summer", "fall")
RANKING_TYPES: tuple[str, ...] = (
    "all",
    "airing",
    "upcoming",
    "tv",
    "ova",
    "movie",
    "special",
    "bypopularity",
    "favorite",
)

MAX_SCORE = 10
DEFAULT_AVATAR_URL = "https://dogfetus.no/image/pfp"


def _as_int(value: Any, default: int = 0) -> int:
    if isinstance(value, bool):
        return default
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    return default


def _as_float(value: Any, default: float = 0.0) -> float:
    if isinstance(value, bool):
        return default
    if isinstance(value, (int, float)):
        return float(value)
    return default


def _as_str(value: Any, default: str = "") -> str:
    return value if isinstance(value, str) else default


def _as_dict(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _as_list(value: Any) -> list[Any]:
    return value if isinstance(value, list) else []


# ============================================================================
# Anime record
# ============================================================================


@dataclass(slots=True)
class Picture:
    """Cover picture URLs."""

    large: str = ""
    medium: str = ""


@dataclass(slots=True)
class AlternativeTitles:
    synonyms: list[str] = field(default_factory=list)
    en: str = ""
    ja: str = ""


@dataclass(slots=True)
class StartSeason:
    year: int
    season: str


@dataclass(slots=True)
class Broadcast:
    day_of_the_week: str
    start_time: str = ""


@dataclass(slots=True)
class NamedEntity:
    """A genre or studio reference."""

    id: int
    name: str


@dataclass(slots=True)
class RelatedEntry:
    """Related anime/manga or a recommendation."""

    id: int
    title: str
    picture: Picture | None = None
    relation_type: str = ""


@dataclass(slots=True)
class Statistics:
    """Per-status user counts for an anime."""

    watching: int = 0
    completed: int = 0
    on_hold: int = 0
    dropped: int = 0
    plan_to_watch: int = 0
    num_list_users: int = 0


@dataclass(slots=True)
class MyListStatus:
    """The signed-in user's list entry for an anime. ``status == ""`` means not in list."""

    status: str = ""
    score: int = 0
    num_episodes_watched: int = 0
    is_rewatching: bool = False
    start_date: str = ""
    finish_date: str = ""
    priority: int = 0
    num_times_rewatched: int = 0
    rewatch_value: int = 0
    tags: list[str] = field(default_factory=list)
    comments: str = ""
    updated_at: str = ""

    def __post_init__(self) -> None:
        """Clamp score and watched count into their valid ranges."""
        self.score = max(0, min(self.score, MAX_SCORE))
        self.num_episodes_watched = max(0, self.num_episodes_watched)


@dataclass(slots=True)
class Anime:
    """A catalog anime record. Keyed by ``id``; the entity store owns the canonical copy."""

    id: int
    title: str = ""
    main_picture: Picture = field(default_factory=Picture)
    alternative_titles: AlternativeTitles = field(default_factory=AlternativeTitles)
    start_date: str = ""
    end_date: str = ""
    created_at: str = ""
    updated_at: str = ""
    synopsis: str = ""
    background: str = ""
    rating: str = ""
    source: str = ""
    media_type: str = ""
    nsfw: str = ""
    mean: float = 0.0
    rank: int = 0
    popularity: int = 0
    num_list_users: int = 0
    num_scoring_users: int = 0
    num_episodes: int = 0
    average_episode_duration: int = 0
    status: str = ""
    start_season: StartSeason | None = None
    broadcast: Broadcast | None = None
    genres: list[NamedEntity] = field(default_factory=list)
    studios: list[NamedEntity] = field(default_factory=list)
    pictures: list[Picture] = field(default_factory=list)
    related_anime: list[RelatedEntry] = field(default_factory=list)
    related_manga: list[RelatedEntry] = field(default_factory=list)
    recommendations: list[RelatedEntry] = field(default_factory=list)
    statistics: Statistics | None = None
    my_list_status: MyListStatus = field(default_factory=MyListStatus)
    released_episodes: int | None = None  # filled lazily by the episode provider

    @property
    def airing_status(self) -> str:
        """Collapse the provider's status into airing/finished/upcoming/other."""
        return AIRING_STATUS_MAP.get(self.status, "other")

    @property
    def display_title(self) -> str:
        """English title when available, canonical title otherwise."""
        return self.alternative_titles.en or self.title

    def episode_cap(self) -> int:
        """Upper bound for episodes watched; 0 means unknown."""
        return max(self.num_episodes, self.released_episodes or 0)


@dataclass(slots=True)
class ListStatusUpdate:
    """Form payload for ``PATCH /anime/{id}/my_list_status``."""

    anime_id: int
    status: str
    score: int
    num_watched_episodes: int

    def to_form(self) -> dict[str, str]:
        form = {
            "score": str(self.score),
            "num_watched_episodes": str(self.num_watched_episodes),
        }
        if self.status:
            form["status"] = self.status
        return form


@dataclass(slots=True)
class ListUpdateResult:
    """Outcome of a list mutation: either the new status or a delete tombstone."""

    anime_id: int
    deleted: bool = False
    status: MyListStatus | None = None


def build_list_update(
    anime: Anime,
    *,
    status: str | None = None,
    score: int | None = None,
    episodes_watched: int | None = None,
) -> ListStatusUpdate:
    """Build a list mutation from the current record plus the user's edits.

    Episodes are clamped to ``anime.episode_cap()`` when it is known, score to
    0..10, and a positive episode count on an unset status promotes the
    status to ``watching``.
    """
    current = anime.my_list_status
    new_status = current.status if status is None else status
    new_score = current.score if score is None else score
    new_watched = current.num_episodes_watched if episodes_watched is None else episodes_watched

    new_score = max(0, min(new_score, MAX_SCORE))
    new_watched = max(0, new_watched)
    cap = anime.episode_cap()
    if cap > 0:
        new_watched = min(new_watched, cap)
    if new_watched > 0 and not new_status:
        new_status = "watching"

    return ListStatusUpdate(
        anime_id=anime.id,
        status=new_status,
        score=new_score,
        num_watched_episodes=new_watched,
    )


def apply_list_update(anime: Anime, update: ListStatusUpdate) -> None:
    """Write a submitted update into a record in place (used inside store updates)."""
    anime.my_list_status.status = update.status
    anime.my_list_status.score = update.score
    anime.my_list_status.num_episodes_watched = update.num_watched_episodes


# ============================================================================
# User record
# ============================================================================


@dataclass(slots=True)
class AnimeStatistics:
    """Per-status counts and totals from ``/users/@me?fields=anime_statistics``."""

    num_items_watching: int = 0
    num_items_completed: int = 0
    num_items_on_hold: int = 0
    num_items_dropped: int = 0
    num_items_plan_to_watch: int = 0
    num_items: int = 0
    num_days_watched: float = 0.0
    num_days_watching: float = 0.0
    num_days_completed: float = 0.0
    num_days_on_hold: float = 0.0
    num_days_dropped: float = 0.0
    num_days: float = 0.0
    num_episodes: int = 0
    num_times_rewatched: int = 0
    mean_score: float = 0.0


@dataclass(slots=True)
class User:
    id: int
    name: str
    picture: str = DEFAULT_AVATAR_URL
    gender: str = ""
    birthday: str = ""
    location: str = ""
    joined_at: str = ""
    time_zone: str = ""
    is_supporter: bool = False
    anime_statistics: AnimeStatistics = field(default_factory=AnimeStatistics)


# ============================================================================
# Response Parsing
# ============================================================================


def _parse_picture(raw: Any) -> Picture | None:
    data = _as_dict(raw)
    if not data:
        return None
    return Picture(large=_as_str(data.get("large")), medium=_as_str(data.get("medium")))


def _parse_named(raw: Any) -> list[NamedEntity]:
    entities: list[NamedEntity] = []
    for item in _as_list(raw):
        data = _as_dict(item)
        entity_id = _as_int(data.get("id"), -1)
        name = _as_str(data.get("name"))
        if entity_id >= 0 and name:
            entities.append(NamedEntity(id=entity_id, name=name))
    return entities


def _parse_related(raw: Any, key: str) -> list[RelatedEntry]:
    """Parse ``related_anime``/``related_manga``/``recommendations`` edges."""
    entries: list[RelatedEntry] = []
    for item in _as_list(raw):
        data = _as_dict(item)
        node = _as_dict(data.get("node"))
        node_id = _as_int(node.get("id"), -1)
        if node_id < 0:
            continue
        relation = _as_str(data.get("relation_type_formatted")) or _as_str(data.get("relation_type"))
        entries.append(
            RelatedEntry(
                id=node_id,
                title=_as_str(node.get("title")),
                picture=_parse_picture(node.get("main_picture")),
                relation_type=relation if key != "recommendations" else "",
            )
        )
    return entries


def _parse_statistics(raw: Any) -> Statistics | None:
    data = _as_dict(raw)
    if not data:
        return None
    status = _as_dict(data.get("status"))
    return Statistics(
        watching=_as_int(_coerce_numeric_str(status.get("watching"))),
        completed=_as_int(_coerce_numeric_str(status.get("completed"))),
        on_hold=_as_int(_coerce_numeric_str(status.get("on_hold"))),
        dropped=_as_int(_coerce_numeric_str(status.get("dropped"))),
        plan_to_watch=_as_int(_coerce_numeric_str(status.get("plan_to_watch"))),
        num_list_users=_as_int(data.get("num_list_users")),
    )


def _coerce_numeric_str(value: Any) -> Any:
    # The provider serialises per-status counts as strings
    if isinstance(value, str):
        try:
            return int(value)
        except ValueError:
            return 0
    return value


def parse_list_status(raw: Any) -> MyListStatus:
    """Parse a ``my_list_status`` object. Missing or malformed input yields an unset status."""
    data = _as_dict(raw)
    tags = [tag for tag in _as_list(data.get("tags")) if isinstance(tag, str)]
    return MyListStatus(
        status=_as_str(data.get("status")),
        score=_as_int(data.get("score")),
        num_episodes_watched=_as_int(data.get("num_episodes_watched")),
        is_rewatching=bool(data.get("is_rewatching", False)),
        start_date=_as_str(data.get("start_date")),
        finish_date=_as_str(data.get("finish_date")),
        priority=_as_int(data.get("priority")),
        num_times_rewatched=_as_int(data.get("num_times_rewatched")),
        rewatch_value=_as_int(data.get("rewatch_value")),
        tags=tags,
        comments=_as_str(data.get("comments")),
        updated_at=_as_str(data.get("updated_at")),
    )


def parse_anime(item: Any) -> Anime | None:
    """Parse a catalog anime node. Returns None if the id is missing."""
    data = _as_dict(item)
    if "node" in data:
        # Paged endpoints wrap records as {"node": {...}, "list_status": {...}}
        node = _as_dict(data.get("node"))
        if "list_status" in data and "my_list_status" not in node:
            node = {**node, "my_list_status": data.get("list_status")}
        data = node
    anime_id = _as_int(data.get("id"), -1)
    if anime_id < 0:
        return None

    alt = _as_dict(data.get("alternative_titles"))
    synonyms = [s for s in _as_list(alt.get("synonyms")) if isinstance(s, str)]

    season_data = _as_dict(data.get("start_season"))
    start_season = None
    if season_data.get("season") in SEASONS and _as_int(season_data.get("year")) > 0:
        start_season = StartSeason(year=_as_int(season_data.get("year")), season=season_data["season"])

    broadcast_data = _as_dict(data.get("broadcast"))
    broadcast = None
    if _as_str(broadcast_data.get("day_of_the_week")):
        broadcast = Broadcast(
            day_of_the_week=broadcast_data["day_of_the_week"],
            start_time=_as_str(broadcast_data.get("start_time")),
        )

    pictures = [p for p in (_parse_picture(raw) for raw in _as_list(data.get("pictures"))) if p]

    return Anime(
        id=anime_id,
        title=_as_str(data.get("title")),
        main_picture=_parse_picture(data.get("main_picture")) or Picture(),
        alternative_titles=AlternativeTitles(
            synonyms=synonyms,
            en=_as_str(alt.get("en")),
            ja=_as_str(alt.get("ja")),
        ),
        start_date=_as_str(data.get("start_date")),
        end_date=_as_str(data.get("end_date")),
        created_at=_as_str(data.get("created_at")),
        updated_at=_as_str(data.get("updated_at")),
        synopsis=_as_str(data.get("synopsis")),
        background=_as_str(data.get("background")),
        rating=_as_str(data.get("rating")),
        source=_as_str(data.get("source")),
        media_type=_as_str(data.get("media_type")),
        nsfw=_as_str(data.get("nsfw")),
        mean=_as_float(data.get("mean")),
        rank=_as_int(data.get("rank")),
        popularity=_as_int(data.get("popularity")),
        num_list_users=_as_int(data.get("num_list_users")),
        num_scoring_users=_as_int(data.get("num_scoring_users")),
        num_episodes=_as_int(data.get("num_episodes")),
        average_episode_duration=_as_int(data.get("average_episode_duration")),
        status=_as_str(data.get("status")),
        start_season=start_season,
        broadcast=broadcast,
        genres=_parse_named(data.get("genres")),
        studios=_parse_named(data.get("studios")),
        pictures=pictures,
        related_anime=_parse_related(data.get("related_anime"), "related_anime"),
        related_manga=_parse_related(data.get("related_manga"), "related_manga"),
        recommendations=_parse_related(data.get("recommendations"), "recommendations"),
        statistics=_parse_statistics(data.get("statistics")),
        my_list_status=parse_list_status(data.get("my_list_status")),
    )


def parse_anime_page(payload: Any) -> list[Anime]:
    """Parse a paged ``{"data": [...]}`` response into records, skipping bad items."""
    records: list[Anime] = []
    for item in _as_list(_as_dict(payload).get("data")):
        anime = parse_anime(item)
        if anime is not None:
            records.append(anime)
    return records


def parse_user(payload: Any) -> User | None:
    """Parse ``/users/@me``. Returns None if id or name is missing."""
    data = _as_dict(payload)
    user_id = _as_int(data.get("id"), -1)
    name = _as_str(data.get("name"))
    if user_id < 0 or not name:
        return None
    stats = _as_dict(data.get("anime_statistics"))
    return User(
        id=user_id,
        name=name,
        picture=_as_str(data.get("picture")) or DEFAULT_AVATAR_URL,
        gender=_as_str(data.get("gender")),
        birthday=_as_str(data.get("birthday")),
        location=_as_str(data.get("location")),
        joined_at=_as_str(data.get("joined_at")),
        time_zone=_as_str(data.get("time_zone")),
        is_supporter=bool(data.get("is_supporter", False)),
        anime_statistics=AnimeStatistics(
            num_items_watching=_as_int(stats.get("num_items_watching")),
            num_items_completed=_as_int(stats.get("num_items_completed")),
            num_items_on_hold=_as_int(stats.get("num_items_on_hold")),
            num_items_dropped=_as_int(stats.get("num_items_dropped")),
            num_items_plan_to_watch=_as_int(stats.get("num_items_plan_to_watch")),
            num_items=_as_int(stats.get("num_items")),
            num_days_watched=_as_float(stats.get("num_days_watched")),
            num_days_watching=_as_float(stats.get("num_days_watching")),
            num_days_completed=_as_float(stats.get("num_days_completed")),
            num_days_on_hold=_as_float(stats.get("num_days_on_hold")),
            num_days_dropped=_as_float(stats.get("num_days_dropped")),
            num_days=_as_float(stats.get("num_days")),
            num_episodes=_as_int(stats.get("num_episodes")),
            num_times_rewatched=_as_int(stats.get("num_times_rewatched")),
            mean_score=_as_float(stats.get("mean_score")),
        ),
    )


__all__ = [
    "AIRING_STATUS_MAP",
    "ANIME_FIELDS",
    "CONFIG_APP_NAME",
    "DEFAULT_AVATAR_URL",
    "LIST_STATUSES",
    "LIST_STATUS_LABELS",
    "MAX_SCORE",
    "RANKING_TYPES",
    "SEASONS",
    "AlternativeTitles",
    "Anime",
    "AnimeStatistics",
    "Broadcast",
    "ListStatusUpdate",
    "ListUpdateResult",
    "MyListStatus",
    "NamedEntity",
    "Picture",
    "RelatedEntry",
    "StartSeason",
    "Statistics",
    "User",
    "apply_list_update",
    "build_list_update",
    "parse_anime",
    "parse_anime_page",
    "parse_list_status",
    "parse_user",
]
