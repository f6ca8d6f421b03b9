"""Persisted per-user settings: one small file per key in the app-data directory."""
import json
import logging
import os
import threading
from pathlib import Path
from typing import Optional, Union

from constants import (
    SETTING_EXPORT_DIR,
    SETTING_INGEST_PROFILE,
    SETTING_INGEST_WINDOW_DAYS,
    SETTING_THEME,
    THEMES,
)
from datamodels.profile import (
    DEFAULT_INGEST_WINDOW_DAYS,
    MAX_INGEST_WINDOW_DAYS,
    MIN_INGEST_WINDOW_DAYS,
    IngestProfile,
)
from infra.errors import StorageError, ValidationError

logger = logging.getLogger(__name__)

_FILES = {
    SETTING_THEME: "theme.txt",
    SETTING_EXPORT_DIR: "export_dir.txt",
    SETTING_INGEST_WINDOW_DAYS: "ingest_window_days.txt",
    SETTING_INGEST_PROFILE: "ingest_profile.json",
}


class SettingsStore:
    """Opaque key/value persistence plus typed accessors for the ingest settings."""

    def __init__(self, base_dir: Union[str, Path]):
        self.base_dir = Path(base_dir)
        self._lock = threading.Lock()

    def _path(self, key: str) -> Path:
        return self.base_dir / _FILES.get(key, f"{key}.txt")

    # --- opaque key/value ---

    def get(self, key: str) -> Optional[str]:
        path = self._path(key)
        try:
            with open(path, "r", encoding="utf-8") as f:
                value = f.read().strip()
        except FileNotFoundError:
            return None
        except (IOError, UnicodeDecodeError) as e:
            logger.warning(f"Failed to read setting {key} from {path}: {e}")
            return None
        return value or None

    def set(self, key: str, value: Optional[str]) -> None:
        path = self._path(key)
        with self._lock:
            try:
                if value is None:
                    if path.exists():
                        path.unlink()
                    return
                os.makedirs(self.base_dir, exist_ok=True)
                tmp = path.with_suffix(path.suffix + ".tmp")
                with open(tmp, "w", encoding="utf-8") as f:
                    f.write(value)
                os.replace(tmp, path)
            except OSError as e:
                logger.error(f"Failed to write setting {key} to {path}: {e}")
                raise StorageError(f"Failed to save setting {key}: {e}")

    # --- ingest window ---

    def get_ingest_window_days(self) -> int:
        raw = self.get(SETTING_INGEST_WINDOW_DAYS)
        try:
            days = int(raw) if raw is not None else DEFAULT_INGEST_WINDOW_DAYS
        except ValueError:
            return DEFAULT_INGEST_WINDOW_DAYS
        if not MIN_INGEST_WINDOW_DAYS <= days <= MAX_INGEST_WINDOW_DAYS:
            return DEFAULT_INGEST_WINDOW_DAYS
        return days

    def set_ingest_window_days(self, days) -> int:
        try:
            value = int(days)
        except (TypeError, ValueError):
            raise ValidationError(f"Ingest window must be an integer, got {days!r}.")
        if isinstance(days, bool) or not MIN_INGEST_WINDOW_DAYS <= value <= MAX_INGEST_WINDOW_DAYS:
            raise ValidationError(
                f"Ingest window must be between {MIN_INGEST_WINDOW_DAYS} and {MAX_INGEST_WINDOW_DAYS} days."
            )
        self.set(SETTING_INGEST_WINDOW_DAYS, str(value))
        return value

    # --- ingest profile ---

    def get_ingest_profile(self) -> IngestProfile:
        raw = self.get(SETTING_INGEST_PROFILE)
        if raw is None:
            return IngestProfile()
        try:
            return IngestProfile.from_dict(json.loads(raw))
        except json.JSONDecodeError as e:
            logger.warning(f"Ignoring corrupt ingest profile: {e}")
            return IngestProfile()

    def set_ingest_profile(self, profile: Union[IngestProfile, dict]) -> IngestProfile:
        if isinstance(profile, IngestProfile):
            sanitized = IngestProfile.sanitized(
                profile.auto_sync_on_startup, profile.max_events_per_sync, profile.windows_channels
            )
        else:
            sanitized = IngestProfile.from_dict(profile)
        self.set(SETTING_INGEST_PROFILE, json.dumps(sanitized.to_dict(), indent=2))
        return sanitized

    # --- theme / export directory ---

    def get_theme(self) -> Optional[str]:
        value = self.get(SETTING_THEME)
        return value if value in THEMES else None

    def set_theme(self, theme: str) -> str:
        if theme not in THEMES:
            raise ValidationError(f"Invalid theme value: {theme!r}")
        self.set(SETTING_THEME, theme)
        return theme

    def get_export_dir(self) -> Optional[str]:
        value = self.get(SETTING_EXPORT_DIR)
        if value and Path(value).is_dir():
            return value
        return None

    def set_export_dir(self, path: Optional[str]) -> Optional[str]:
        if path is None or not str(path).strip():
            self.set(SETTING_EXPORT_DIR, None)
            return None
        candidate = Path(str(path).strip())
        if not candidate.exists():
            raise ValidationError("Export directory does not exist.")
        if not candidate.is_dir():
            raise ValidationError("Export path must be a directory.")
        self.set(SETTING_EXPORT_DIR, str(candidate))
        return str(candidate)
