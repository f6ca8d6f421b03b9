"""
config.py - Runtime configuration for the ingest engine and service.

Resolution order: built-in defaults < YAML file (HERMES_CONFIG) < environment.
"""
import logging
import os
import platform
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from dotenv import load_dotenv

from constants import (
    APP_DIR_NAME,
    DEFAULT_COLLECTOR_TIMEOUT_SECONDS,
    DEFAULT_LOG_RETENTION_DAYS,
    DEFAULT_QUERY_CAP,
    ENV_COLLECTOR_TIMEOUT,
    ENV_CONFIG_PATH,
    ENV_DATA_DIR,
    ENV_LOG_LEVEL,
    ENV_QUERY_CAP,
    ENV_TIMEZONE,
)

logger = logging.getLogger(__name__)


def default_data_dir() -> Path:
    """Per-user app-data location, mirroring each platform's convention."""
    if os.name == "nt":
        base = os.getenv("LOCALAPPDATA") or str(Path.home() / "AppData" / "Local")
        return Path(base) / APP_DIR_NAME
    if platform.system() == "Darwin":
        return Path.home() / "Library" / "Application Support" / APP_DIR_NAME
    base = os.getenv("XDG_DATA_HOME") or str(Path.home() / ".local" / "share")
    return Path(base) / APP_DIR_NAME


@dataclass(frozen=True)
class AppConfig:
    data_dir: Path = field(default_factory=default_data_dir)
    query_cap: int = DEFAULT_QUERY_CAP
    collector_timeout_seconds: float = DEFAULT_COLLECTOR_TIMEOUT_SECONDS
    log_level: str = "INFO"
    log_retention_days: int = DEFAULT_LOG_RETENTION_DAYS
    timezone: Optional[str] = None      # None -> host local time

    @property
    def db_path(self) -> Path:
        return self.data_dir / "events.db"

    @property
    def log_dir(self) -> Path:
        return self.data_dir / "logs"


def load_yaml_file(path) -> Optional[Dict[str, Any]]:
    """Load a YAML mapping, returning None when missing or unreadable."""
    if not path or not os.path.exists(path):
        return None
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except (yaml.YAMLError, IOError, UnicodeDecodeError) as e:
        logger.warning(f"Failed to load YAML config {path}: {e}")
        return None
    if not isinstance(data, dict):
        logger.warning(f"Ignoring YAML config {path}: top level is not a mapping")
        return None
    return data


def _coerce(overrides: Dict[str, Any]) -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    for key, value in overrides.items():
        if value is None or value == "":
            continue
        try:
            if key == "data_dir":
                out[key] = Path(value).expanduser()
            elif key in ("query_cap", "log_retention_days"):
                out[key] = int(value)
            elif key == "collector_timeout_seconds":
                out[key] = float(value)
            elif key in ("log_level", "timezone"):
                out[key] = str(value)
        except (TypeError, ValueError):
            logger.warning(f"Ignoring invalid config value {key}={value!r}")
    return out


def load_config(path: Optional[str] = None, use_dotenv: bool = True) -> AppConfig:
    if use_dotenv:
        load_dotenv()

    config = AppConfig()
    file_values = load_yaml_file(path or os.getenv(ENV_CONFIG_PATH))
    if file_values:
        config = replace(config, **_coerce(file_values))

    env_values = {
        "data_dir": os.getenv(ENV_DATA_DIR),
        "query_cap": os.getenv(ENV_QUERY_CAP),
        "collector_timeout_seconds": os.getenv(ENV_COLLECTOR_TIMEOUT),
        "log_level": os.getenv(ENV_LOG_LEVEL),
        "timezone": os.getenv(ENV_TIMEZONE),
    }
    config = replace(config, **_coerce(env_values))
    if config.query_cap <= 0:
        config = replace(config, query_cap=DEFAULT_QUERY_CAP)
    return config
