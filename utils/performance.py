# utils/performance.py
from __future__ import annotations
import logging
import threading
import time
from collections import deque
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Deque, Iterator, List

import psutil

logger = logging.getLogger(__name__)


@dataclass
class PerformanceMetrics:
    operation: str
    execution_time: float = 0.0
    memory_usage_mb: float = 0.0
    cpu_percent: float = 0.0
    events_processed: int = 0
    throughput_events_per_sec: float = 0.0


class PerformanceMonitor:
    """Time sync and import operations and keep a bounded history of the results."""

    def __init__(self, history_size: int = 100):
        self.metrics_history: Deque[PerformanceMetrics] = deque(maxlen=history_size)
        self.process = psutil.Process()
        self._lock = threading.Lock()

    @contextmanager
    def monitor_operation(self, operation_name: str, event_count: int = 0) -> Iterator[PerformanceMetrics]:
        """Context manager to monitor an operation.

        The yielded metrics object may have ``events_processed`` updated by the
        caller once the count is known.
        """
        metrics = PerformanceMetrics(operation=operation_name, events_processed=event_count)
        start_time = time.perf_counter()
        start_memory = self.process.memory_info().rss / 1024 / 1024  # MB
        start_cpu = self.process.cpu_percent()

        try:
            yield metrics
        finally:
            metrics.execution_time = time.perf_counter() - start_time
            metrics.memory_usage_mb = self.process.memory_info().rss / 1024 / 1024 - start_memory
            metrics.cpu_percent = (start_cpu + self.process.cpu_percent()) / 2
            if metrics.execution_time > 0:
                metrics.throughput_events_per_sec = metrics.events_processed / metrics.execution_time

            with self._lock:
                self.metrics_history.append(metrics)
            logger.info(
                f"[PERF] {operation_name}: {metrics.execution_time:.2f}s, "
                f"{metrics.events_processed} events, {metrics.throughput_events_per_sec:.0f} events/sec, "
                f"{metrics.memory_usage_mb:.1f}MB"
            )

    def recent(self) -> List[PerformanceMetrics]:
        with self._lock:
            return list(self.metrics_history)
