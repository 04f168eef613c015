"""Configuration persistence: load, write defaults, open in an editor."""

from __future__ import annotations

import logging
import os
import subprocess
import tempfile
import tomllib
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

from platformdirs import user_config_dir, user_data_dir

from mal_cli.models import CONFIG_APP_NAME

logger = logging.getLogger(__name__)

# ============================================================================
# Configuration Model
# ============================================================================
#
# Validation contract: _dict_to_config() guarantees valid output for any input:
#
#   Field                  Rule                            Handler
#   ─────────────────────  ──────────────────────────────  ──────────────────
#   theme.*                non-empty string                _parse_section
#   navigation.*           list of non-empty key names     _parse_key_list
#   player.extra_args      list of strings                 _parse_str_list
#   network.callback_port  1024 ≤ x ≤ 65535                NetworkConfig.__post_init__
#   network.max_port_retries  0 ≤ x ≤ 100                  NetworkConfig.__post_init__
#   scalar fields          type-checked via _safe_get()    _parse_section
#
CONFIG_FILENAME = "config.toml"
DEFAULT_AUTH_SERVER = "https://mal-cli.dogfetus.no"
DEFAULT_CALLBACK_PORT = 53400
DEFAULT_MAX_PORT_RETRIES = 10


@dataclass(slots=True)
class ThemeConfig:
    """Rich colour names (or hex) used by the renderers."""

    primary: str = "bright_black"
    secondary: str = "white"
    highlight: str = "bright_cyan"
    second_highlight: str = "bright_yellow"
    error: str = "red"
    text: str = "white"
    second_text: str = "white"


@dataclass(slots=True)
class NavigationConfig:
    nav_up: list[str] = field(default_factory=lambda: ["up", "k"])
    nav_down: list[str] = field(default_factory=lambda: ["down", "j"])
    nav_left: list[str] = field(default_factory=lambda: ["left", "h"])
    nav_right: list[str] = field(default_factory=lambda: ["right", "l"])
    select: list[str] = field(default_factory=lambda: ["enter", "space"])
    close: list[str] = field(default_factory=lambda: ["escape", "q"])
    enable_mouse_capture: bool = True

    def matches(self, action: str, key: str) -> bool:
        """Return True if ``key`` is bound to navigation ``action`` (e.g. ``"nav_up"``)."""
        bound = getattr(self, action, None)
        return isinstance(bound, list) and key in bound


@dataclass(slots=True)
class NetworkConfig:
    auth_server: str = DEFAULT_AUTH_SERVER
    callback_port: int = DEFAULT_CALLBACK_PORT
    max_port_retries: int = DEFAULT_MAX_PORT_RETRIES
    request_timeout: float = 10.0

    def __post_init__(self) -> None:
        if not 1024 <= self.callback_port <= 65535:
            self.callback_port = DEFAULT_CALLBACK_PORT
        self.max_port_retries = max(0, min(self.max_port_retries, 100))
        if self.request_timeout <= 0:
            self.request_timeout = 10.0
        self.auth_server = self.auth_server.rstrip("/") or DEFAULT_AUTH_SERVER


@dataclass(slots=True)
class PlayerConfig:
    command: str = "ani-cli"
    extra_args: list[str] = field(default_factory=list)
    always_complete_episode: bool = False
    disable_default_player: bool = False
    pre_playback_hook: str = ""
    post_playback_hook: str = ""


@dataclass(slots=True)
class AppConfig:
    theme: ThemeConfig = field(default_factory=ThemeConfig)
    navigation: NavigationConfig = field(default_factory=NavigationConfig)
    network: NetworkConfig = field(default_factory=NetworkConfig)
    player: PlayerConfig = field(default_factory=PlayerConfig)


# ============================================================================
# Paths
# ============================================================================


def get_config_dir() -> Path:
    """Config directory (Linux: ``~/.config/mal-cli``)."""
    return Path(user_config_dir(CONFIG_APP_NAME))


def get_config_path() -> Path:
    return get_config_dir() / CONFIG_FILENAME


def get_data_dir() -> Path:
    """Data directory for tokens and watch history (Linux: ``~/.local/share/mal-cli``)."""
    return Path(user_data_dir(CONFIG_APP_NAME))


# ============================================================================
# Parsing
# ============================================================================


def _safe_get(data: dict, key: str, default: Any, expected_type: type | tuple[type, ...]) -> Any:
    """Get a value from dict with type validation.

    Returns default if key is missing or value has wrong type.
    """
    value = data.get(key, default)
    if isinstance(value, bool) and expected_type in (int, float, (int, float)):
        return default
    if not isinstance(value, expected_type):
        logger.warning("Config key %r has wrong type, using default", key)
        return default
    return value


def _parse_key_list(data: dict, key: str, default: list[str]) -> list[str]:
    raw = _safe_get(data, key, default, list)
    keys = [str(item).strip().lower() for item in raw if isinstance(item, str) and item.strip()]
    return keys or list(default)


def _parse_str_list(data: dict, key: str, default: list[str]) -> list[str]:
    raw = _safe_get(data, key, default, list)
    return [item for item in raw if isinstance(item, str)]


def _parse_section(section_cls: type, raw: Any) -> Any:
    """Build one config section dataclass, validating each field against its default."""
    defaults = section_cls()
    if not isinstance(raw, dict):
        return defaults
    kwargs: dict[str, Any] = {}
    for f in fields(section_cls):
        default = getattr(defaults, f.name)
        if isinstance(default, list) and section_cls is NavigationConfig:
            kwargs[f.name] = _parse_key_list(raw, f.name, default)
        elif isinstance(default, list):
            kwargs[f.name] = _parse_str_list(raw, f.name, default)
        elif isinstance(default, bool):
            kwargs[f.name] = _safe_get(raw, f.name, default, bool)
        elif isinstance(default, float):
            value = _safe_get(raw, f.name, default, (int, float))
            kwargs[f.name] = float(value)
        elif isinstance(default, int):
            kwargs[f.name] = _safe_get(raw, f.name, default, int)
        else:
            value = _safe_get(raw, f.name, default, str)
            kwargs[f.name] = value if (value or not default) else default
    return section_cls(**kwargs)


def _dict_to_config(data: dict[str, Any]) -> AppConfig:
    return AppConfig(
        theme=_parse_section(ThemeConfig, data.get("theme")),
        navigation=_parse_section(NavigationConfig, data.get("navigation")),
        network=_parse_section(NetworkConfig, data.get("network")),
        player=_parse_section(PlayerConfig, data.get("player")),
    )


# ============================================================================
# Serialisation
# ============================================================================


def _toml_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return repr(value)
    if isinstance(value, list):
        return "[" + ", ".join(_toml_value(item) for item in value) + "]"
    escaped = str(value).replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def config_to_toml(config: AppConfig) -> str:
    """Render a config as TOML text (flat sections of scalars and string lists)."""
    lines: list[str] = []
    for section_name in ("theme", "navigation", "network", "player"):
        section = getattr(config, section_name)
        lines.append(f"[{section_name}]")
        for f in fields(section):
            lines.append(f"{f.name} = {_toml_value(getattr(section, f.name))}")
        lines.append("")
    return "\n".join(lines)


def load_config(path: Path | None = None) -> AppConfig:
    """Load configuration from disk.

    Returns the default config if the file doesn't exist or is corrupted.
    """
    config_path = path or get_config_path()

    if not config_path.exists():
        return AppConfig()

    try:
        with config_path.open("rb") as fh:
            data = tomllib.load(fh)
        return _dict_to_config(data)
    except tomllib.TOMLDecodeError as e:
        logger.warning("Config file has invalid TOML, using defaults: %s", e)
        return AppConfig()
    except (KeyError, TypeError, ValueError) as e:
        logger.warning("Config file has invalid structure, using defaults: %s", e)
        return AppConfig()
    except OSError as e:
        logger.warning("Could not read config file, using defaults: %s", e)
        return AppConfig()


def save_config(config: AppConfig, path: Path | None = None) -> bool:
    """Write the config atomically. Returns True on success."""
    config_path = path or get_config_path()
    try:
        config_path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=config_path.parent, prefix=".config-", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(config_to_toml(config))
            os.replace(tmp_path, config_path)
        except BaseException:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            raise
        return True
    except OSError as e:
        logger.warning("Failed to save config to %s: %s", config_path, e)
        return False


def write_default_config(path: Path | None = None) -> Path:
    """Create the config file with defaults if it doesn't exist yet."""
    config_path = path or get_config_path()
    if not config_path.exists():
        save_config(AppConfig(), config_path)
    return config_path


def resolve_editor() -> str:
    return os.environ.get("EDITOR") or os.environ.get("VISUAL") or "nano"


def open_in_editor(
    path: Path | None = None,
    *,
    run: Any = subprocess.run,
) -> bool:
    """Open the config in ``$EDITOR``/``$VISUAL``/nano, creating it first if needed."""
    config_path = write_default_config(path)
    editor = resolve_editor()
    try:
        run([editor, str(config_path)], check=False)
    except OSError as e:
        logger.warning("Failed to open editor %r for %s: %s", editor, config_path, e)
        return False
    return True


__all__ = [
    "CONFIG_FILENAME",
    "AppConfig",
    "NavigationConfig",
    "NetworkConfig",
    "PlayerConfig",
    "ThemeConfig",
    "config_to_toml",
    "get_config_dir",
    "get_config_path",
    "get_data_dir",
    "load_config",
    "open_in_editor",
    "resolve_editor",
    "save_config",
    "write_default_config",
]
