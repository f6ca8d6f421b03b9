# api/context.py
from __future__ import annotations
import logging
import threading
from dataclasses import dataclass
from datetime import tzinfo
from typing import Optional

from analysis.correlation import CorrelationEngine
from collectors import CommandRunner, Collector, detect_host_os, select_collector
from collectors.crash_artifacts import CrashArtifactScanner
from datamodels.events import SupportedOs
from infra.cache_store import CacheStore
from infra.config import AppConfig
from infra.settings import SettingsStore
from ingest.coordinator import SyncCoordinator
from ingest.crash_importer import CrashImporter
from ingest.session_pool import ImportedEventPool
from utils.performance import PerformanceMonitor
from utils.timeutil import resolve_tz

logger = logging.getLogger(__name__)


@dataclass
class AppContext:
    """Everything the service needs, built once at startup and passed explicitly."""

    config: AppConfig
    host_os: SupportedOs
    zone: tzinfo
    store: CacheStore
    settings: SettingsStore
    collector: Collector
    coordinator: SyncCoordinator
    importer: CrashImporter
    pool: ImportedEventPool
    correlation: CorrelationEngine
    monitor: PerformanceMonitor

    @classmethod
    def build(cls, config: AppConfig, host_os: Optional[SupportedOs] = None,
              collector: Optional[Collector] = None, runner: Optional[CommandRunner] = None,
              scanner: Optional[CrashArtifactScanner] = None) -> "AppContext":
        host_os = host_os or detect_host_os()
        runner = runner or CommandRunner()
        zone = resolve_tz(config.timezone)
        store = CacheStore(config.db_path, query_cap=config.query_cap)
        settings = SettingsStore(config.data_dir)
        collector = collector or select_collector(host_os, runner)
        monitor = PerformanceMonitor()
        sync_lock = threading.Lock()
        pool = ImportedEventPool(host_os)

        coordinator = SyncCoordinator(store, collector, settings,
                                      collector_timeout=config.collector_timeout_seconds,
                                      monitor=monitor, sync_lock=sync_lock, zone=zone)
        importer = CrashImporter(store, scanner or CrashArtifactScanner(host_os=host_os, runner=runner, zone=zone),
                                 sync_lock=sync_lock, monitor=monitor)
        logger.info(f"Context ready: host={host_os.value}, cache={config.db_path}")
        return cls(
            config=config, host_os=host_os, zone=zone, store=store, settings=settings,
            collector=collector, coordinator=coordinator, importer=importer, pool=pool,
            correlation=CorrelationEngine(store, pool), monitor=monitor,
        )
