import os
import json
import logging
from dataclasses import dataclass, replace

from .utils import ensure_dir
from .errors import SettingsError
from .config import DEFAULT_INTERVAL_MINUTES, DEFAULT_BREAK_SECONDS


@dataclass(frozen=True)
class Settings:
    interval_minutes: int = DEFAULT_INTERVAL_MINUTES
    break_seconds: int = DEFAULT_BREAK_SECONDS
    start_with_os: bool = False
    speech_enabled: bool = True

    def with_changes(self, **changes) -> "Settings":
        return replace(self, **changes)

    def to_dict(self) -> dict:
        return {
            "intervalMinutes": self.interval_minutes,
            "breakSeconds": self.break_seconds,
            "startWithOS": self.start_with_os,
            "speechEnabled": self.speech_enabled,
        }


DEFAULT_SETTINGS = Settings()


def _is_positive_int(value) -> bool:
    # bool is an int subclass; True must not pass as 1 minute
    return isinstance(value, int) and not isinstance(value, bool) and value > 0


def validate_settings(settings: Settings) -> Settings:
    if not _is_positive_int(settings.interval_minutes):
        raise SettingsError(f"intervalMinutes must be a positive integer, got {settings.interval_minutes!r}")
    if not _is_positive_int(settings.break_seconds):
        raise SettingsError(f"breakSeconds must be a positive integer, got {settings.break_seconds!r}")
    return settings


def settings_from_dict(data) -> Settings:
    """Build settings from parsed JSON, falling back to the default per field."""
    if not isinstance(data, dict):
        return DEFAULT_SETTINGS

    def _pick_int(key: str, default: int) -> int:
        value = data.get(key)
        if isinstance(value, float) and value.is_integer():
            value = int(value)
        return value if _is_positive_int(value) else default

    def _pick_bool(key: str, default: bool) -> bool:
        value = data.get(key)
        return value if isinstance(value, bool) else default

    return Settings(
        interval_minutes=_pick_int("intervalMinutes", DEFAULT_SETTINGS.interval_minutes),
        break_seconds=_pick_int("breakSeconds", DEFAULT_SETTINGS.break_seconds),
        start_with_os=_pick_bool("startWithOS", DEFAULT_SETTINGS.start_with_os),
        speech_enabled=_pick_bool("speechEnabled", DEFAULT_SETTINGS.speech_enabled),
    )


class SettingsStore:
    def __init__(self, path: str, logger: logging.Logger):
        self._path = path
        self._logger = logger

    @property
    def path(self) -> str:
        return self._path

    def load(self) -> Settings:
        if not os.path.exists(self._path):
            self._logger.warning(f"Settings file not found at {self._path}; using defaults")
            return DEFAULT_SETTINGS
        try:
            with open(self._path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError):
            self._logger.warning(f"Failed to read settings from {self._path}; using defaults", exc_info=True)
            return DEFAULT_SETTINGS

        settings = settings_from_dict(data)
        self._logger.info(
            f"Settings loaded: interval={settings.interval_minutes}min "
            f"break={settings.break_seconds}s speech={settings.speech_enabled}"
        )
        return settings

    def save(self, settings: Settings) -> None:
        validate_settings(settings)
        ensure_dir(os.path.dirname(self._path))
        with open(self._path, "w", encoding="utf-8") as f:
            json.dump(settings.to_dict(), f, indent=2)
        self._logger.info(
            f"Settings saved: interval={settings.interval_minutes}min break={settings.break_seconds}s"
        )
