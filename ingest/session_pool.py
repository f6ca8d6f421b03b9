# ingest/session_pool.py
from __future__ import annotations
import io
import json
import logging
import threading
from typing import Any, Dict, Iterable, List

import pandas as pd

from analysis.normalizer import normalize_imported
from datamodels.events import NormalizedEvent, SupportedOs
from infra.errors import ValidationError

logger = logging.getLogger(__name__)


def parse_export(content: str, filename: str = "events.json") -> List[Dict[str, Any]]:
    """Rows from a JSON array or CSV export, keyed by the export's column names."""
    name = filename.lower()
    if name.endswith(".json"):
        try:
            data = json.loads(content)
        except json.JSONDecodeError as e:
            raise ValidationError(f"Invalid JSON export: {e}")
        if isinstance(data, dict):
            data = data.get("events", [data])
        if not isinstance(data, list):
            raise ValidationError("JSON export must be an array of events.")
        return [row for row in data if isinstance(row, dict)]
    if name.endswith(".csv"):
        if not content.strip():
            return []
        try:
            frame = pd.read_csv(io.StringIO(content), dtype=str, keep_default_na=False)
        except (pd.errors.ParserError, pd.errors.EmptyDataError) as e:
            raise ValidationError(f"Invalid CSV export: {e}")
        frame.columns = [str(c).strip().lower() for c in frame.columns]
        return frame.to_dict(orient="records")
    raise ValidationError("Unsupported import type. Use JSON or CSV exports.")


class ImportedEventPool:
    """Session-only events loaded from exported files. Never written to the cache."""

    def __init__(self, host_os: SupportedOs):
        self.host_os = host_os
        self._events: List[NormalizedEvent] = []
        self._lock = threading.Lock()

    def import_records(self, records: Iterable[Dict[str, Any]]) -> int:
        converted = [
            normalize_imported(record, self.host_os, index)
            for index, record in enumerate(records)
            if isinstance(record, dict)
        ]
        with self._lock:
            self._events.extend(converted)
        logger.info(f"Imported {len(converted)} session event(s)")
        return len(converted)

    def events(self) -> List[NormalizedEvent]:
        with self._lock:
            return list(self._events)

    def clear(self) -> int:
        with self._lock:
            removed = len(self._events)
            self._events.clear()
        return removed

    def __len__(self) -> int:
        with self._lock:
            return len(self._events)
