"""Tests for the token file and the watch-history log."""

from __future__ import annotations

import os
import stat
import sys
from datetime import datetime
from pathlib import Path

import pytest

from mal_cli.persistence import (
    TokenStore,
    Tokens,
    WatchHistory,
    WatchHistoryEntry,
    escape_title,
    format_history_line,
    parse_history_line,
    unescape_title,
)


def _entry(anime_id: int = 52991, title: str = "Sousou no Frieren", **overrides) -> WatchHistoryEntry:
    values = {
        "timestamp": datetime(2024, 10, 5, 21, 14, 3),
        "anime_id": anime_id,
        "title": title,
        "episode": 4,
        "watched_time": "00:22:10",
        "percentage": 94,
        "completed": True,
    }
    values.update(overrides)
    return WatchHistoryEntry(**values)


class TestTokenStore:
    def test_missing_file_loads_none(self, tmp_path: Path):
        store = TokenStore(tmp_path / "tokens")
        assert store.load() is None
        assert store.exists() is False

    def test_save_then_load(self, tmp_path: Path):
        store = TokenStore(tmp_path / "data" / "tokens")
        tokens = Tokens("access-1", "refresh-1", 1_900_000_000)

        store.save(tokens)

        assert store.load() == tokens
        assert store.exists() is True

    @pytest.mark.skipif(sys.platform == "win32", reason="POSIX permissions")
    def test_file_is_private(self, tmp_path: Path):
        store = TokenStore(tmp_path / "tokens")
        store.save(Tokens("a", "r", 0))
        assert stat.S_IMODE(os.stat(store.path).st_mode) == 0o600

    def test_file_format_is_key_value_lines(self, tmp_path: Path):
        store = TokenStore(tmp_path / "tokens")
        store.save(Tokens("a", "r", 42))
        text = store.path.read_text(encoding="utf-8")
        assert 'mal_access_token = "a"' in text
        assert 'mal_refresh_token = "r"' in text
        assert 'mal_token_expires_at = "42"' in text

    def test_incomplete_file_loads_none(self, tmp_path: Path):
        path = tmp_path / "tokens"
        path.write_text('mal_access_token = "only-access"\n', encoding="utf-8")
        assert TokenStore(path).load() is None

    def test_bad_expiry_treated_as_expired(self, tmp_path: Path):
        path = tmp_path / "tokens"
        path.write_text(
            'mal_access_token = "a"\nmal_refresh_token = "r"\nmal_token_expires_at = "soon"\n',
            encoding="utf-8",
        )
        tokens = TokenStore(path).load()
        assert tokens is not None
        assert tokens.is_expired()

    def test_clear_removes_file(self, tmp_path: Path):
        store = TokenStore(tmp_path / "tokens")
        store.save(Tokens("a", "r", 0))
        store.clear()
        store.clear()
        assert store.load() is None

    def test_from_expires_in(self):
        tokens = Tokens.from_expires_in("a", "r", "3600")
        assert not tokens.is_expired()
        assert tokens.is_expired(now=tokens.expires_at)


class TestHistoryLines:
    @pytest.mark.parametrize(
        ("title", "escaped"),
        [
            ("Re:Zero -> Season 2", "Re:Zero -\\> Season 2"),
            ("back\\slash", "back\\\\slash"),
            ("two\nlines", "two\\nlines"),
        ],
    )
    def test_escape_title(self, title, escaped):
        assert escape_title(title) == escaped
        assert unescape_title(escaped) == title

    def test_format_uses_arrow_separator(self):
        line = format_history_line(_entry())
        assert line == "2024-10-05T21:14:03 -> 52991 -> Sousou no Frieren -> 4 -> 00:22:10 -> 94 -> true"

    def test_title_with_separator_parses_back(self):
        entry = _entry(title="A -> B -> C")
        assert parse_history_line(format_history_line(entry)) == entry

    @pytest.mark.parametrize(
        "line",
        [
            "",
            "garbage",
            "2024-10-05T21:14:03 -> 1 -> t -> 4 -> 00:00:01 -> 5",
            "2024-10-05T21:14:03 -> x -> t -> 4 -> 00:00:01 -> 5 -> true",
            "yesterday -> 1 -> t -> 4 -> 00:00:01 -> 5 -> true",
            "2024-10-05T21:14:03 -> 1 -> t -> 4 -> 00:00:01 -> 5 -> maybe",
        ],
    )
    def test_malformed_lines_are_rejected(self, line):
        assert parse_history_line(line) is None


class TestWatchHistory:
    def test_append_and_read_back(self, tmp_path: Path):
        history = WatchHistory(tmp_path / "log" / "watch_history.log")
        first = _entry(1, "One")
        second = _entry(2, "Two", completed=False, percentage=40)

        history.append(first)
        history.append(second)

        assert history.entries() == [first, second]

    def test_malformed_lines_are_skipped(self, tmp_path: Path):
        path = tmp_path / "watch_history.log"
        good = format_history_line(_entry(3, "Three"))
        path.write_text(f"not a line\n{good}\n\n", encoding="utf-8")

        assert [e.anime_id for e in WatchHistory(path).entries()] == [3]

    def test_recent_ids_newest_first_and_distinct(self, tmp_path: Path):
        history = WatchHistory(tmp_path / "watch_history.log")
        for anime_id in (1, 2, 1, 3, 2):
            history.append(_entry(anime_id))

        assert history.recent_ids() == [2, 3, 1]
        assert history.recent_ids(limit=2) == [2, 3]

    def test_missing_log_is_empty(self, tmp_path: Path):
        history = WatchHistory(tmp_path / "nope.log")
        assert history.entries() == []
        assert history.recent_ids() == []
