# ingest/crash_importer.py
from __future__ import annotations
import logging
import threading
from typing import List, Optional

from collectors.crash_artifacts import CrashArtifactScanner, build_sample_crash
from constants import DEFAULT_CRASH_IMPORT_LIMIT
from datamodels.events import CrashRecord, SupportedOs
from infra.cache_store import CacheStore
from utils.performance import PerformanceMonitor

logger = logging.getLogger(__name__)


class CrashImporter:
    """Turns host crash artifacts into stored CrashRecords, deduplicated by artifact path."""

    def __init__(self, store: CacheStore, scanner: CrashArtifactScanner,
                 sync_lock: Optional[threading.Lock] = None,
                 monitor: Optional[PerformanceMonitor] = None):
        self.store = store
        self.scanner = scanner
        self.sync_lock = sync_lock or threading.Lock()
        self.monitor = monitor or PerformanceMonitor()

    def import_host_crashes(self, limit: int = DEFAULT_CRASH_IMPORT_LIMIT) -> int:
        """Persist up to ``limit`` new records, newest first. Returns how many were added."""
        if limit <= 0:
            return 0
        with self.sync_lock, self.monitor.monitor_operation("import_host_crashes") as metrics:
            known = self.store.known_crash_paths()
            fresh: List[CrashRecord] = []

            for path in self.scanner.candidates():
                if len(fresh) >= limit:
                    break
                if str(path) in known:
                    continue
                record = self.scanner.parse_path(path)
                if record is not None:
                    fresh.append(record)
                    known.add(str(path))

            for record in self.scanner.coredumps():
                if record.raw_path not in known:
                    fresh.append(record)
                    known.add(record.raw_path)

            fresh.sort(key=lambda r: r.timestamp, reverse=True)
            added = self.store.insert_crashes(fresh[:limit])
            metrics.events_processed = added

        logger.info(f"Imported {added} new host crash record(s)")
        return added

    def add_sample_crash(self, os_value: SupportedOs) -> CrashRecord:
        """Store the demo crash for ``os_value`` (once) and return the stored record."""
        sample = build_sample_crash(os_value)
        with self.sync_lock:
            self.store.insert_crashes([sample])
        return self.store.get_crash(sample.id) or sample
