# api/schemas.py
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from constants import DEFAULT_CRASH_IMPORT_LIMIT
from datamodels.profile import DEFAULT_MAX_EVENTS_PER_SYNC, DEFAULT_WINDOWS_CHANNELS


class CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class IngestWindowRequest(CamelModel):
    days: int


class IngestProfileRequest(CamelModel):
    auto_sync_on_startup: bool = Field(default=False, alias="autoSyncOnStartup")
    max_events_per_sync: int = Field(default=DEFAULT_MAX_EVENTS_PER_SYNC, alias="maxEventsPerSync")
    windows_channels: List[str] = Field(default_factory=lambda: list(DEFAULT_WINDOWS_CHANNELS),
                                        alias="windowsChannels")


class SyncRangeRequest(CamelModel):
    date_from: str = Field(alias="from")
    date_to: str = Field(alias="to")
    replace_outside_range: bool = Field(default=False, alias="replaceOutsideRange")


class SyncResultResponse(CamelModel):
    collected: int
    warnings: List[str] = Field(default_factory=list)


class ImportEventsRequest(CamelModel):
    """Either raw file ``content`` (JSON or CSV, chosen by ``filename``) or parsed ``records``."""
    filename: str = "events.json"
    content: Optional[str] = None
    records: Optional[List[Dict[str, Any]]] = None


class ImportHostCrashesRequest(CamelModel):
    limit: int = Field(default=DEFAULT_CRASH_IMPORT_LIMIT, ge=0)


class SampleCrashRequest(CamelModel):
    os: Optional[str] = None
