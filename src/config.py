"""
Settings management for fmus.

Settings are persisted as ``key=value`` lines, one per line.
"""
import os
from dataclasses import dataclass, fields
from enum import IntEnum
from pathlib import Path
from typing import Optional, Dict, Any

from logging_config import get_logger, ConfigurationError

logger = get_logger('config')

VOLUME_MIN: int = 0
VOLUME_MAX: int = 100
DEFAULT_VOLUME: int = 100


class RepeatMode(IntEnum):
    """Repeat behaviour when a track or the queue ends."""
    NONE = 0
    DIRECTORY = 1
    ONE = 2

    @property
    def label(self) -> str:
        return {RepeatMode.NONE: "None", RepeatMode.DIRECTORY: "Dir", RepeatMode.ONE: "One"}[self]

    @property
    def short(self) -> str:
        return {RepeatMode.NONE: "N", RepeatMode.DIRECTORY: "D", RepeatMode.ONE: "O"}[self]


@dataclass
class Settings:
    """Player settings."""

    # Browser
    start_path: str = ""

    # Playback defaults
    repeat_mode: RepeatMode = RepeatMode.NONE
    shuffle_default: bool = False
    reshuffle_on_end: bool = False

    # Volume: -1 = default, 0 = keep last, >0 = explicit level
    initial_volume_mode: int = -1
    last_volume: int = DEFAULT_VOLUME

    # Icons
    icon_dirup: str = "/^/"
    icon_nowplaying: str = "!-"
    icon_nowplaying_sel: str = "!>"

    # Logging
    log_level: str = "INFO"
    log_file: Optional[str] = None

    # Event loop input wait, in seconds
    poll_interval: float = 0.03


# On-disk key -> Settings attribute
_KEYS: Dict[str, str] = {
    "start_path": "start_path",
    "repeat": "repeat_mode",
    "shuffle": "shuffle_default",
    "init_vol_mode": "initial_volume_mode",
    "last_vol": "last_volume",
    "reshuffle": "reshuffle_on_end",
    "icon_dirup": "icon_dirup",
    "icon_nowplaying": "icon_nowplaying",
    "icon_nowplaying_sel": "icon_nowplaying_sel",
    "log_level": "log_level",
    "log_file": "log_file",
    "poll_interval": "poll_interval",
}

_VALID_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def clamp_volume(volume: int) -> int:
    """Clamp a volume level to the supported range."""
    return max(VOLUME_MIN, min(VOLUME_MAX, int(volume)))


def _parse_bool(value: str) -> bool:
    value = value.strip().lower()
    if value in ("1", "true", "yes", "on"):
        return True
    if value in ("0", "false", "no", "off", ""):
        return False
    raise ValueError(f"not a boolean: {value!r}")


def parse_value(attr: str, raw: str) -> Any:
    """Convert a raw settings string into the type of ``attr``.

    Raises:
        ConfigurationError: If the value cannot be converted
    """
    try:
        if attr == "repeat_mode":
            return RepeatMode(int(raw))
        if attr in ("shuffle_default", "reshuffle_on_end"):
            return _parse_bool(raw)
        if attr in ("initial_volume_mode", "last_volume"):
            return int(raw)
        if attr == "poll_interval":
            return float(raw)
        if attr == "log_file":
            return raw or None
        if attr == "log_level":
            return raw.strip().upper()
        return raw
    except ValueError as e:
        raise ConfigurationError(f"Invalid value for {attr}: {raw!r} ({e})") from e


def format_value(value: Any) -> str:
    """Convert a settings value into its on-disk form."""
    if isinstance(value, bool):
        return "1" if value else "0"
    if isinstance(value, IntEnum):
        return str(int(value))
    if value is None:
        return ""
    return str(value)


class SettingsStore:
    """Loads, validates and persists the player settings."""

    def __init__(self, settings_path: Optional[Path] = None):
        self.settings_path = settings_path or self._get_default_settings_path()
        self.settings: Settings = Settings()
        self.load()

    def _get_default_settings_path(self) -> Path:
        """Get default settings file path."""
        override = os.environ.get("FMUS_SETTINGS")
        if override:
            return Path(override).expanduser()
        return Path.home() / ".fmus-settings"

    def load(self) -> bool:
        """Load settings from file, keeping defaults for anything missing."""
        if not self.settings_path.exists():
            logger.info(f"Settings file not found at {self.settings_path}, using defaults")
            return False

        try:
            with open(self.settings_path, 'r', encoding='utf-8') as f:
                lines = f.read().splitlines()
        except OSError as e:
            logger.error(f"Failed to read settings: {e}")
            logger.info("Using default settings")
            return False

        for line in lines:
            key, sep, raw = line.partition("=")
            if not sep:
                continue
            attr = _KEYS.get(key.strip())
            if attr is None:
                logger.debug(f"Ignoring unknown settings key: {key}")
                continue
            try:
                setattr(self.settings, attr, parse_value(attr, raw))
            except ConfigurationError as e:
                logger.warning(str(e))

        logger.info(f"Loaded settings from {self.settings_path}")
        self.validate()
        return True

    def save(self) -> bool:
        """Save current settings to file."""
        try:
            self.settings_path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.settings_path, 'w', encoding='utf-8') as f:
                for key, attr in _KEYS.items():
                    f.write(f"{key}={format_value(getattr(self.settings, attr))}\n")
            logger.info(f"Settings saved to {self.settings_path}")
            return True
        except OSError as e:
            logger.error(f"Failed to save settings: {e}")
            return False

    def get(self, key: str, default: Any = None) -> Any:
        """Get a settings value by attribute name."""
        return getattr(self.settings, key, default)

    def set(self, key: str, value: Any) -> None:
        """Set a settings value by attribute name."""
        if key in {f.name for f in fields(Settings)}:
            setattr(self.settings, key, value)
            logger.debug(f"Setting updated: {key} = {value}")

    def validate(self) -> bool:
        """Validate current settings, repairing out-of-range values."""
        issues = []
        s = self.settings

        if s.initial_volume_mode < -1 or s.initial_volume_mode > VOLUME_MAX:
            issues.append(f"Initial volume mode must be -1..{VOLUME_MAX}, got {s.initial_volume_mode}")
            s.initial_volume_mode = -1

        if not (VOLUME_MIN <= s.last_volume <= VOLUME_MAX):
            issues.append(f"Last volume out of range: {s.last_volume}")
            s.last_volume = clamp_volume(s.last_volume)

        if not (0.01 <= s.poll_interval <= 0.05):
            issues.append(f"Poll interval must be 0.01-0.05, got {s.poll_interval}")
            s.poll_interval = max(0.01, min(0.05, s.poll_interval))

        if s.log_level not in _VALID_LOG_LEVELS:
            issues.append(f"Invalid log level: {s.log_level}")
            s.log_level = "INFO"

        if s.start_path and not Path(s.start_path).expanduser().is_dir():
            issues.append(f"Start path is not a directory: {s.start_path}")

        if issues:
            logger.warning(f"Settings validation issues: {issues}")
            return False

        return True

    def resolve_volume(self) -> int:
        """Initial volume according to the volume mode.

        -1 uses the default level, 0 keeps the last used level, and any
        positive value is used as-is.
        """
        mode = self.settings.initial_volume_mode
        if mode == 0:
            return clamp_volume(self.settings.last_volume)
        if mode > 0:
            return clamp_volume(mode)
        return DEFAULT_VOLUME

    def start_directory(self) -> Path:
        """Directory the browser opens in."""
        if self.settings.start_path:
            path = Path(self.settings.start_path).expanduser()
            if path.is_dir():
                return path
        return Path.home()

    def reset_to_defaults(self) -> None:
        """Reset settings to defaults."""
        self.settings = Settings()
        logger.info("Settings reset to defaults")


# Global settings store
_settings_store = None


def get_settings_store() -> SettingsStore:
    """Get the global settings store instance."""
    global _settings_store
    if _settings_store is None:
        _settings_store = SettingsStore()
    return _settings_store


def load_settings(settings_path: Optional[Path] = None) -> SettingsStore:
    """Load settings and install the store as the global instance."""
    global _settings_store
    _settings_store = SettingsStore(settings_path)
    return _settings_store


def save_settings() -> bool:
    """Save current settings."""
    return get_settings_store().save()
