# analysis/correlation.py
from __future__ import annotations
import logging
from datetime import datetime, timedelta
from typing import List, Optional, Tuple

from constants import (
    DEFAULT_CORRELATION_WINDOW_MINUTES,
    DEFAULT_PRE_CRASH_WINDOW_MINUTES,
    DEFAULT_RELATED_LIMIT,
    FALLBACK_WINDOW_MINUTES,
    MAX_CORRELATION_WINDOW_MINUTES,
    MAX_RELATED_LIMIT,
    MIN_CORRELATION_WINDOW_MINUTES,
)
from datamodels.events import (
    CrashRecord,
    FallbackPreCrash,
    NormalizedEvent,
    PreCrashResult,
    StrictPreCrash,
)
from infra.cache_store import CacheStore
from infra.errors import CrashNotFoundError

logger = logging.getLogger(__name__)


def clamp_window(minutes: Optional[int]) -> int:
    if minutes is None:
        return DEFAULT_CORRELATION_WINDOW_MINUTES
    return max(MIN_CORRELATION_WINDOW_MINUTES, min(MAX_CORRELATION_WINDOW_MINUTES, int(minutes)))


def clamp_limit(limit: Optional[int]) -> int:
    if limit is None:
        return DEFAULT_RELATED_LIMIT
    return max(0, min(MAX_RELATED_LIMIT, int(limit)))


def pre_crash_range(crash: CrashRecord,
                    pre_window_minutes: int = DEFAULT_PRE_CRASH_WINDOW_MINUTES) -> Tuple[datetime, datetime]:
    """Span that must be resident in the cache before ``pre_crash_focus`` is meaningful."""
    minutes = clamp_window(pre_window_minutes)
    return crash.timestamp - timedelta(minutes=minutes), crash.timestamp


class CorrelationEngine:
    """Crash-to-event correlation over the cache plus imported session events.

    Performs no collection; callers sync the needed span first (see
    ``pre_crash_range``). Empty results are normal outcomes, not errors.
    """

    def __init__(self, store: CacheStore, pool=None):
        self.store = store
        self.pool = pool

    def crash(self, crash_id: str) -> CrashRecord:
        record = self.store.get_crash(crash_id)
        if record is None:
            raise CrashNotFoundError(crash_id)
        return record

    def _events_between(self, crash: CrashRecord, start: datetime, end: datetime,
                        limit: Optional[int] = None) -> List[NormalizedEvent]:
        cached = self.store.query_range(start, end, limit=limit, os=crash.os).events
        imported = []
        if self.pool is not None:
            imported = [e for e in self.pool.events()
                        if e.os == crash.os and start <= e.timestamp <= end]
        merged = cached + imported
        return merged if limit is None else merged[:limit]

    def related_events(self, crash_id: str, window_minutes: Optional[int] = None,
                       limit: Optional[int] = None) -> List[NormalizedEvent]:
        """Events within +/- ``window_minutes`` of the crash, same OS, at most ``limit``."""
        crash = self.crash(crash_id)
        window = timedelta(minutes=clamp_window(window_minutes))
        events = self._events_between(crash, crash.timestamp - window, crash.timestamp + window,
                                      clamp_limit(limit))
        logger.debug(f"Crash {crash_id}: {len(events)} related events within {window}")
        return events

    def pre_crash_focus(self, crash_id: str,
                        pre_window_minutes: Optional[int] = DEFAULT_PRE_CRASH_WINDOW_MINUTES) -> PreCrashResult:
        crash = self.crash(crash_id)
        start, end = pre_crash_range(crash, clamp_window(pre_window_minutes))
        strict = self._events_between(crash, start, end)
        if strict:
            return StrictPreCrash(events=strict)

        fallback = timedelta(minutes=FALLBACK_WINDOW_MINUTES)
        correlated = self._events_between(crash, crash.timestamp - fallback, crash.timestamp + fallback)
        if correlated:
            logger.info(f"Crash {crash_id}: no events before the crash, "
                        f"falling back to {len(correlated)} correlated events")
            return FallbackPreCrash(events=correlated)
        return StrictPreCrash(events=[])
