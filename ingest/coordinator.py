# ingest/coordinator.py
from __future__ import annotations
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from datetime import datetime, timedelta, tzinfo
from typing import Optional, Sequence

from analysis.normalizer import normalize_all
from collectors.base import CollectionResult, Collector, TimeRange
from constants import COLLECTOR_HARD_MAX_EVENTS, DEFAULT_COLLECTOR_TIMEOUT_SECONDS
from datamodels.events import SyncResult
from infra.cache_store import CacheStore
from infra.errors import CollectorHardError
from infra.settings import SettingsStore
from utils.performance import PerformanceMonitor
from utils.timeutil import DateLike, normalize_range, resolve_tz, utc_now

logger = logging.getLogger(__name__)


class SyncCoordinator:
    """Runs collection, normalization and cache writes for one store.

    ``refresh``, ``sync_range`` and host crash import share ``sync_lock`` so only
    one write-side operation is active per store at a time.
    """

    def __init__(self, store: CacheStore, collector: Collector, settings: SettingsStore,
                 collector_timeout: float = DEFAULT_COLLECTOR_TIMEOUT_SECONDS,
                 monitor: Optional[PerformanceMonitor] = None,
                 sync_lock: Optional[threading.Lock] = None,
                 zone: Optional[tzinfo] = None):
        self.store = store
        self.collector = collector
        self.settings = settings
        self.collector_timeout = collector_timeout
        self.monitor = monitor or PerformanceMonitor()
        self.sync_lock = sync_lock or threading.Lock()
        self.zone = zone or resolve_tz()

    def _collect(self, time_range: TimeRange, channels: Sequence[str], max_events: int) -> CollectionResult:
        """Run the collector off-thread with an upper bound on how long it may take."""
        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="collector")
        future = executor.submit(self.collector.collect, time_range, channels, max_events)
        try:
            result = future.result(timeout=self.collector_timeout)
        except FutureTimeout:
            message = f"Log collection timed out after {self.collector_timeout:.0f}s."
            logger.error(message)
            raise CollectorHardError(message, errors=[message], timed_out=True)
        finally:
            # A hung collector keeps its worker thread; the lock is still released
            executor.shutdown(wait=False)

        hard = result.hard_error
        if hard is not None:
            logger.error(f"Log collection failed: {hard}")
            raise hard
        for warning in result.warnings:
            logger.warning(f"Collector warning: {warning}")
        return result

    def refresh(self, now: Optional[datetime] = None) -> SyncResult:
        """Collect the rolling ingest window, then prune everything older than it."""
        now = now or utc_now()
        window_days = self.settings.get_ingest_window_days()
        profile = self.settings.get_ingest_profile()
        start = now - timedelta(days=window_days)

        with self.sync_lock, self.monitor.monitor_operation("refresh") as metrics:
            logger.info(f"Refreshing local events for the last {window_days} day(s)")
            result = self._collect((start, now), profile.windows_channels,
                                   min(profile.max_events_per_sync, COLLECTOR_HARD_MAX_EVENTS))
            events = normalize_all(result.records, self.collector.os)
            self.store.apply_sync(events, prune_before=start)
            metrics.events_processed = len(events)

        return SyncResult(collected=len(events), warnings=list(result.warnings))

    def sync_range(self, start: DateLike, end: DateLike, replace_outside_range: bool = False,
                   max_events: Optional[int] = None) -> SyncResult:
        """Backfill exactly ``[start, end]``. Additive unless ``replace_outside_range``.

        Plain dates cover whole local days and reversed bounds are swapped.
        """
        lo, hi = normalize_range(start, end, self.zone)
        profile = self.settings.get_ingest_profile()
        limit = COLLECTOR_HARD_MAX_EVENTS if max_events is None else max(0, min(max_events, COLLECTOR_HARD_MAX_EVENTS))

        with self.sync_lock, self.monitor.monitor_operation("sync_range") as metrics:
            logger.info(f"Syncing local events from {lo.isoformat()} to {hi.isoformat()}"
                        f" (replace_outside_range={replace_outside_range})")
            result = self._collect((lo, hi), profile.windows_channels, limit)
            events = normalize_all(result.records, self.collector.os)
            self.store.apply_sync(events, keep_range=(lo, hi) if replace_outside_range else None)
            metrics.events_processed = len(events)

        return SyncResult(collected=len(events), warnings=list(result.warnings))
