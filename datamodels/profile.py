# datamodels/profile.py
from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Tuple

from datamodels.events import WindowsChannel

MIN_MAX_EVENTS_PER_SYNC = 100
MAX_MAX_EVENTS_PER_SYNC = 20000
DEFAULT_MAX_EVENTS_PER_SYNC = 2000
DEFAULT_WINDOWS_CHANNELS: Tuple[str, ...] = (WindowsChannel.APPLICATION.value,)

MIN_INGEST_WINDOW_DAYS = 1
MAX_INGEST_WINDOW_DAYS = 365
DEFAULT_INGEST_WINDOW_DAYS = 7


def _clean_channels(values: Iterable[Any]) -> Tuple[str, ...]:
    channels = []
    for value in values or ():
        channel = WindowsChannel.parse(value)
        if channel is not None and channel.value not in channels:
            channels.append(channel.value)
    return tuple(channels) or DEFAULT_WINDOWS_CHANNELS


def _clamp_max_events(value: Any) -> int:
    try:
        n = int(value)
    except (TypeError, ValueError):
        return DEFAULT_MAX_EVENTS_PER_SYNC
    return max(MIN_MAX_EVENTS_PER_SYNC, min(MAX_MAX_EVENTS_PER_SYNC, n))


@dataclass(frozen=True)
class IngestProfile:
    auto_sync_on_startup: bool = False
    max_events_per_sync: int = DEFAULT_MAX_EVENTS_PER_SYNC
    windows_channels: Tuple[str, ...] = DEFAULT_WINDOWS_CHANNELS

    @classmethod
    def sanitized(cls, auto_sync_on_startup: Any = False,
                  max_events_per_sync: Any = DEFAULT_MAX_EVENTS_PER_SYNC,
                  windows_channels: Iterable[Any] = DEFAULT_WINDOWS_CHANNELS) -> "IngestProfile":
        return cls(
            auto_sync_on_startup=bool(auto_sync_on_startup),
            max_events_per_sync=_clamp_max_events(max_events_per_sync),
            windows_channels=_clean_channels(windows_channels),
        )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "IngestProfile":
        """Accepts camelCase (persisted/API) or snake_case keys."""
        if not isinstance(data, dict):
            return cls()
        return cls.sanitized(
            auto_sync_on_startup=data.get("autoSyncOnStartup", data.get("auto_sync_on_startup", False)),
            max_events_per_sync=data.get("maxEventsPerSync",
                                         data.get("max_events_per_sync", DEFAULT_MAX_EVENTS_PER_SYNC)),
            windows_channels=data.get("windowsChannels", data.get("windows_channels", ())),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "autoSyncOnStartup": self.auto_sync_on_startup,
            "maxEventsPerSync": self.max_events_per_sync,
            "windowsChannels": list(self.windows_channels),
        }
