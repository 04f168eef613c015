"""mal-cli: a terminal client for browsing and tracking anime on MyAnimeList."""

__version__ = "0.4.0"
