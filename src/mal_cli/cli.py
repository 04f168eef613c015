"""Command-line entry point: parse flags, set up logging, launch the TUI."""

from __future__ import annotations

import argparse
import logging
import logging.handlers
import sys
from collections.abc import Callable
from pathlib import Path
from typing import Any

from platformdirs import user_config_dir

from mal_cli.action_messages import build_actionable_error
from mal_cli.config import AppConfig, get_config_path, load_config, open_in_editor
from mal_cli.models import CONFIG_APP_NAME
from mal_cli.persistence import TokenStore
from mal_cli.screens import NAVBAR_SCREENS, name_to_screen, screen_to_name

logger = logging.getLogger(__name__)

LOG_FILENAME = "debug.log"
LOG_MAX_BYTES = 5 * 1024 * 1024
LOG_BACKUPS = 3
LOG_FORMAT = "%(asctime)s %(name)s %(levelname)s %(message)s"


def _configure_logging(debug: bool) -> None:
    """Log to a rotating file with --debug; otherwise stay silent."""
    if not debug:
        # Textual draws on stderr's terminal
        logging.disable(logging.CRITICAL)
        return

    log_dir = Path(user_config_dir(CONFIG_APP_NAME))
    log_dir.mkdir(parents=True, exist_ok=True)
    handler = logging.handlers.RotatingFileHandler(
        log_dir / LOG_FILENAME, maxBytes=LOG_MAX_BYTES, backupCount=LOG_BACKUPS, encoding="utf-8"
    )
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt="%H:%M:%S"))
    root = logging.getLogger()
    root.addHandler(handler)
    root.setLevel(logging.DEBUG)


def _validate_interactive_tty() -> bool:
    return sys.stdin.isatty() and sys.stdout.isatty()


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="mal-cli",
        description="Browse and track anime on MyAnimeList from the terminal",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help=f"Config file to use (default: {get_config_path()})",
    )
    parser.add_argument(
        "--screen",
        choices=[screen_to_name(screen_id) for screen_id in NAVBAR_SCREENS],
        default=None,
        help="Page to open on start when already logged in",
    )
    parser.add_argument(
        "--edit-config",
        action="store_true",
        help="Open the config file in $EDITOR and exit",
    )
    parser.add_argument(
        "--logout",
        action="store_true",
        help="Forget the stored MyAnimeList tokens and exit",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help=f"Write debug logs to {Path(user_config_dir(CONFIG_APP_NAME)) / LOG_FILENAME}",
    )
    return parser


def main(
    argv: list[str] | None = None,
    *,
    load_config_fn: Callable[[Path | None], AppConfig] = load_config,
    configure_logging_fn: Callable[[bool], None] = _configure_logging,
    validate_interactive_tty_fn: Callable[[], bool] = _validate_interactive_tty,
    open_in_editor_fn: Callable[[Path | None], bool] = open_in_editor,
    token_store: TokenStore | None = None,
    app_factory: Callable[..., Any] | None = None,
) -> int:
    """Run mal-cli and return the process exit code."""
    args = _build_parser().parse_args(argv)

    configure_logging_fn(args.debug)
    logger.debug("mal-cli starting, config=%s", args.config or get_config_path())
    tokens = token_store or TokenStore()

    if args.logout:
        tokens.clear()
        print(f"Logged out; removed {tokens.path}")
        return 0

    if args.edit_config:
        if open_in_editor_fn(args.config):
            return 0
        message = build_actionable_error(
            "open the config",
            why="no editor could be started",
            next_step="set $EDITOR or edit the file by hand",
        )
        print(message, file=sys.stderr)
        return 1

    config = load_config_fn(args.config)

    if not validate_interactive_tty_fn():
        print(
            "Error: mal-cli needs an interactive TTY.\n"
            "Next steps:\n"
            "  - Start mal-cli from a terminal, not a pipe or cron job\n"
            "  - Use --edit-config to change settings without the TUI\n"
            "  - Use --logout to forget the stored login",
            file=sys.stderr,
        )
        return 2

    initial_screen = None
    if args.screen is not None:
        if tokens.exists():
            initial_screen = name_to_screen(args.screen)
        else:
            logger.debug("Ignoring --screen %s: not logged in", args.screen)

    if app_factory is None:
        from mal_cli.app import MalApp

        app_factory = MalApp

    app = app_factory(config, config_path=args.config, initial_screen=initial_screen)
    app.run(mouse=config.navigation.enable_mouse_capture)
    return 0


__all__ = ["_configure_logging", "_validate_interactive_tty", "main"]
