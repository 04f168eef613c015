"""External playback: spawn the player tool and parse how far the user got."""

from __future__ import annotations

import enum
import logging
import os
import re
import shlex
import subprocess
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from mal_cli.config import PlayerConfig
from mal_cli.errors import SubprocessError
from mal_cli.models import Anime

logger = logging.getLogger(__name__)

ANSI_RE = re.compile(r"\x1b\[[0-9;]*[a-zA-Z]|\x1b\([AB]|\r|\x1b[78]")
AV_RE = re.compile(r"AV: (\d{2}:\d{2}:\d{2}) / (\d{2}:\d{2}:\d{2}) \((\d+)%\)")
EXIT_RE = re.compile(r"Exiting\.\.\. \((.*?)\)")

NO_RESULTS_SENTINEL = "No results found!"
END_OF_FILE_REASON = "End of file"
COMPLETION_THRESHOLD = 90  # percent
ZERO_TIME = "00:00:00"


@dataclass(slots=True)
class PlayResult:
    episode: int
    current_time: str
    total_time: str
    percentage: int
    fully_watched: bool
    completed: bool


class PlayErrorKind(enum.Enum):
    NOT_RELEASED = "not_released"
    NOT_FOUND = "not_found"
    NO_RESULTS = "no_results"
    COMMAND_FAILED = "command_failed"
    OTHER = "other"


class PlayError(SubprocessError):
    """A playback attempt that produced no usable result."""

    def __init__(
        self,
        reason: PlayErrorKind,
        message: str,
        *,
        stderr: str = "",
        exit_code: int | None = None,
        stdout: str = "",
    ) -> None:
        super().__init__(stderr, exit_code)
        self.reason = reason
        self.message = message
        self.stdout = stdout
        self.args = (message,)

    def __str__(self) -> str:
        return self.message


# ============================================================================
# Output parsing
# ============================================================================


def strip_ansi(text: str) -> str:
    return ANSI_RE.sub("", text)


def parse_play_output(stdout: str, episode: int) -> PlayResult | None:
    """Extract progress from the player's stdout.

    The last ``AV:`` progress line wins. Empty output means nothing was
    watched; output without any progress line yields None.
    """
    if not stdout:
        return PlayResult(
            episode=episode,
            current_time=ZERO_TIME,
            total_time=ZERO_TIME,
            percentage=0,
            fully_watched=False,
            completed=False,
        )
    last_av = stdout.rfind("AV: ")
    if last_av < 0:
        return None
    match = AV_RE.search(stdout, last_av)
    if match is None:
        return None
    exit_match = EXIT_RE.search(stdout)
    reason = exit_match.group(1) if exit_match else None
    try:
        percentage = int(match.group(3))
    except ValueError:
        percentage = 0
    return PlayResult(
        episode=episode,
        current_time=match.group(1),
        total_time=match.group(2),
        percentage=percentage,
        fully_watched=reason == END_OF_FILE_REASON,
        completed=percentage >= COMPLETION_THRESHOLD,
    )


def next_episode(anime: Anime) -> int:
    """Episode to play next: one past the watched count, capped at the total when known."""
    candidate = anime.my_list_status.num_episodes_watched + 1
    if anime.num_episodes > 0:
        return min(candidate, anime.num_episodes)
    return candidate


def _expand_hook(template: str, anime: Anime, episode: int) -> str:
    return template.replace("{title}", anime.title).replace("{episode}", str(episode))


# ============================================================================
# Player
# ============================================================================


class AnimePlayer:
    """Runs the configured playback tool for one episode at a time."""

    def __init__(
        self,
        config: PlayerConfig,
        *,
        run: Callable[..., Any] = subprocess.run,
    ) -> None:
        self.config = config
        self._run = run

    def build_command(self, anime: Anime, episode: int) -> list[str]:
        argv = shlex.split(self.config.command, posix=os.name != "nt")
        return [
            *argv,
            *self.config.extra_args,
            "--no-detach",
            "--exit-after-play",
            "-e",
            str(episode),
            anime.title,
        ]

    def _run_hook(self, name: str, template: str, anime: Anime, episode: int) -> None:
        if not template.strip():
            return
        command = _expand_hook(template, anime, episode)
        try:
            completed = self._run(["sh", "-c", command], check=False)  # nosec B603
        except OSError as e:
            logger.warning("Could not run %s hook: %s", name, e)
            return
        code = getattr(completed, "returncode", 0)
        if code:
            logger.warning("%s hook exited with status %s", name, code)

    def _invoke(self, anime: Anime, episode: int) -> str:
        argv = self.build_command(anime, episode)
        logger.debug("Starting player: %s", argv)
        try:
            completed = self._run(argv, capture_output=True, text=True, check=False)  # nosec B603
        except FileNotFoundError as e:
            raise PlayError(
                PlayErrorKind.NOT_FOUND,
                f"Can't find {argv[0]!r}; is it installed and on PATH?",
            ) from e
        except OSError as e:
            raise PlayError(PlayErrorKind.OTHER, f"Error running {argv[0]}: {e}") from e

        stdout = strip_ansi(completed.stdout or "")
        stderr = strip_ansi(completed.stderr or "")
        code = completed.returncode
        logger.debug("Player exited with %s", code)
        if stderr and code != 0:
            if NO_RESULTS_SENTINEL in stderr:
                raise PlayError(
                    PlayErrorKind.NO_RESULTS,
                    f"The player found no results:\n{stderr.strip()}\nThe anime might not be available yet.",
                    stderr=stderr,
                    exit_code=code,
                    stdout=stdout,
                )
            raise PlayError(
                PlayErrorKind.COMMAND_FAILED,
                f"The player replied:\nError: {stderr.strip()}\nExit code: {code}",
                stderr=stderr,
                exit_code=code,
                stdout=stdout,
            )
        return stdout

    def play(self, anime: Anime, episode: int | None = None) -> PlayResult:
        """Play ``episode`` (default: the next unwatched one). Raises PlayError.

        Blocks until the player exits; the caller must have released the
        terminal first.
        """
        if anime.airing_status == "upcoming":
            raise PlayError(
                PlayErrorKind.NOT_RELEASED, f'"{anime.display_title}"\nis not yet released.'
            )
        episode = next_episode(anime) if episode is None else episode

        self._run_hook("pre-playback", self.config.pre_playback_hook, anime, episode)
        stdout = "" if self.config.disable_default_player else self._invoke(anime, episode)
        self._run_hook("post-playback", self.config.post_playback_hook, anime, episode)

        if self.config.always_complete_episode:
            return PlayResult(
                episode=episode,
                current_time=ZERO_TIME,
                total_time=ZERO_TIME,
                percentage=100,
                fully_watched=True,
                completed=True,
            )
        result = parse_play_output(stdout, episode)
        if result is None:
            raise PlayError(PlayErrorKind.OTHER, "The player did not report any progress.", stdout=stdout)
        return result


__all__ = [
    "AnimePlayer",
    "PlayError",
    "PlayErrorKind",
    "PlayResult",
    "next_episode",
    "parse_play_output",
    "strip_ansi",
]
