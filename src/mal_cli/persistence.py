"""On-disk state: persisted auth tokens and the append-only watch-history log."""

from __future__ import annotations

import logging
import os
import re
import tempfile
import threading
import time
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from mal_cli.config import get_data_dir

logger = logging.getLogger(__name__)

TOKENS_FILENAME = "tokens"
HISTORY_FILENAME = "watch_history.log"
HISTORY_SEPARATOR = " -> "
HISTORY_TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S"

# Refresh a little before the provider's stated expiry
TOKEN_EXPIRY_MARGIN_SECONDS = 60

# ============================================================================
# Tokens
# ============================================================================


@dataclass(slots=True)
class Tokens:
    access_token: str
    refresh_token: str
    expires_at: int  # unix seconds

    @classmethod
    def from_expires_in(cls, access_token: str, refresh_token: str, expires_in: int | str) -> Tokens:
        return cls(
            access_token=access_token,
            refresh_token=refresh_token,
            expires_at=int(time.time()) + int(expires_in),
        )

    def is_expired(self, now: float | None = None) -> bool:
        current = time.time() if now is None else now
        return current >= self.expires_at - TOKEN_EXPIRY_MARGIN_SECONDS


_TOKEN_LINE = re.compile(r'^\s*(mal_[a-z_]+)\s*=\s*"(.*)"\s*$')


class TokenStore:
    """Reads and writes the token file (``key = "value"`` lines, mode 0600)."""

    def __init__(self, path: Path | None = None) -> None:
        self.path = path or get_data_dir() / TOKENS_FILENAME
        self._lock = threading.Lock()

    def exists(self) -> bool:
        return self.load() is not None

    def load(self) -> Tokens | None:
        """Return stored tokens, or None if the file is missing or incomplete."""
        try:
            text = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as e:
            logger.warning("Could not read token file %s: %s", self.path, e)
            return None
        values: dict[str, str] = {}
        for line in text.splitlines():
            match = _TOKEN_LINE.match(line)
            if match:
                values[match.group(1)] = match.group(2)
        access = values.get("mal_access_token", "")
        refresh = values.get("mal_refresh_token", "")
        expires = values.get("mal_token_expires_at", "")
        if not access or not refresh:
            return None
        try:
            expires_at = int(expires)
        except ValueError:
            expires_at = 0
        return Tokens(access_token=access, refresh_token=refresh, expires_at=expires_at)

    def save(self, tokens: Tokens) -> None:
        """Atomically replace the token file. Raises OSError on failure."""
        content = (
            f'mal_access_token = "{tokens.access_token}"\n'
            f'mal_refresh_token = "{tokens.refresh_token}"\n'
            f'mal_token_expires_at = "{tokens.expires_at}"\n'
        )
        with self._lock:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=self.path.parent, prefix=".tokens-", suffix=".tmp")
            try:
                os.chmod(tmp_path, 0o600)
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    f.write(content)
                os.replace(tmp_path, self.path)
            except BaseException:
                try:
                    os.unlink(tmp_path)
                except OSError:
                    pass
                raise
        logger.debug("Saved tokens to %s", self.path)

    def clear(self) -> None:
        with self._lock:
            try:
                self.path.unlink()
            except FileNotFoundError:
                pass


# ============================================================================
# Watch history
# ============================================================================


@dataclass(slots=True)
class WatchHistoryEntry:
    timestamp: datetime
    anime_id: int
    title: str
    episode: int
    watched_time: str
    percentage: int
    completed: bool


def escape_title(title: str) -> str:
    """Escape a title so it can never contain the field separator or a newline."""
    return (
        title.replace("\\", "\\\\")
        .replace("->", "-\\>")
        .replace("\r", "\\r")
        .replace("\n", "\\n")
    )


def unescape_title(text: str) -> str:
    out: list[str] = []
    i = 0
    while i < len(text):
        ch = text[i]
        if ch == "\\" and i + 1 < len(text):
            nxt = text[i + 1]
            out.append({"\\": "\\", ">": ">", "n": "\n", "r": "\r"}.get(nxt, nxt))
            i += 2
            continue
        out.append(ch)
        i += 1
    return "".join(out)


def format_history_line(entry: WatchHistoryEntry) -> str:
    fields = [
        entry.timestamp.strftime(HISTORY_TIMESTAMP_FORMAT),
        str(entry.anime_id),
        escape_title(entry.title),
        str(entry.episode),
        entry.watched_time,
        str(entry.percentage),
        "true" if entry.completed else "false",
    ]
    return HISTORY_SEPARATOR.join(fields)


def parse_history_line(line: str) -> WatchHistoryEntry | None:
    """Parse one log line; None for anything malformed."""
    parts = line.rstrip("\n").split(HISTORY_SEPARATOR)
    if len(parts) != 7:
        return None
    raw_ts, raw_id, raw_title, raw_episode, watched_time, raw_pct, raw_completed = parts
    if raw_completed not in ("true", "false"):
        return None
    try:
        return WatchHistoryEntry(
            timestamp=datetime.strptime(raw_ts, HISTORY_TIMESTAMP_FORMAT),
            anime_id=int(raw_id),
            title=unescape_title(raw_title),
            episode=int(raw_episode),
            watched_time=watched_time,
            percentage=int(raw_pct),
            completed=raw_completed == "true",
        )
    except ValueError:
        return None


class WatchHistory:
    """Append-only journal of playback outcomes."""

    def __init__(self, path: Path | None = None) -> None:
        self.path = path or get_data_dir() / HISTORY_FILENAME
        self._lock = threading.Lock()

    def append(self, entry: WatchHistoryEntry) -> None:
        line = format_history_line(entry) + "\n"
        with self._lock:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with self.path.open("a", encoding="utf-8") as f:
                f.write(line)

    def entries(self) -> list[WatchHistoryEntry]:
        """All well-formed entries, oldest first; malformed lines are skipped."""
        try:
            with self._lock:
                lines = self.path.read_text(encoding="utf-8").split("\n")
        except FileNotFoundError:
            return []
        except OSError as e:
            logger.warning("Could not read watch history %s: %s", self.path, e)
            return []
        parsed: list[WatchHistoryEntry] = []
        skipped = 0
        for line in lines:
            if not line.strip():
                continue
            entry = parse_history_line(line)
            if entry is None:
                skipped += 1
                continue
            parsed.append(entry)
        if skipped:
            logger.debug("Skipped %d malformed watch-history lines", skipped)
        return parsed

    def recent_ids(self, limit: int = 20) -> list[int]:
        """Most recently watched distinct anime ids, newest first."""
        seen: set[int] = set()
        ids: list[int] = []
        for entry in reversed(self.entries()):
            if entry.anime_id in seen:
                continue
            seen.add(entry.anime_id)
            ids.append(entry.anime_id)
            if len(ids) >= limit:
                break
        return ids


__all__ = [
    "HISTORY_SEPARATOR",
    "TokenStore",
    "Tokens",
    "WatchHistory",
    "WatchHistoryEntry",
    "escape_title",
    "format_history_line",
    "parse_history_line",
    "unescape_title",
]
