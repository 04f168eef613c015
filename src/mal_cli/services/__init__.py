"""Service layer: catalog client, delegated login and the released-episode provider."""

from mal_cli.services.auth import OAuthFlow, refresh_tokens, request_login_url
from mal_cli.services.episodes import EpisodeProvider, pick_best_show
from mal_cli.services.mal_client import MalClient, MemoCache, current_season

__all__ = [
    "EpisodeProvider",
    "MalClient",
    "MemoCache",
    "OAuthFlow",
    "current_season",
    "pick_best_show",
    "refresh_tokens",
    "request_login_url",
]
