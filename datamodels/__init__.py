"""datamodels package

Canonical event, crash and ingest-profile types shared by collectors, the cache
store and the correlation engine.
"""

from datamodels.events import (  # noqa: F401
    Coverage,
    CrashRecord,
    EventCategory,
    EventSeverity,
    FallbackPreCrash,
    NormalizedEvent,
    PreCrashResult,
    QueryResult,
    StrictPreCrash,
    SupportedOs,
    SyncResult,
    WindowsChannel,
)
from datamodels.profile import IngestProfile  # noqa: F401
