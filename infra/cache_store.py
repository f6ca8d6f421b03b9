"""
cache_store.py - Durable local cache of normalized events and crash records

One SQLite file per data directory. Every call opens its own connection; a
readers-writer lock keeps reads concurrent and writes exclusive, and compound
writes run in a single transaction so readers never see partial results.
"""

import json
import logging
import os
import sqlite3
from contextlib import closing, contextmanager
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple, Union

from analysis.filters import EventFilters
from constants import DEFAULT_QUERY_CAP
from datamodels.events import (
    Coverage,
    CrashRecord,
    EventCategory,
    EventSeverity,
    NormalizedEvent,
    QueryResult,
    SupportedOs,
    utc,
)
from infra.errors import StorageError, ValidationError
from infra.locks import ReadWriteLock

logger = logging.getLogger(__name__)

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

_EVENT_COLUMNS = "id, ts_us, os, log_name, category, provider, event_id, severity, message, raw"
_CRASH_COLUMNS = "id, ts_us, os, source, crash_type, code, summary, suspected_component, raw_path"


def to_micros(ts: datetime) -> int:
    delta = utc(ts) - _EPOCH
    return (delta.days * 86400 + delta.seconds) * 1_000_000 + delta.microseconds


def from_micros(value: int) -> datetime:
    return _EPOCH + timedelta(microseconds=value)


def _like(value: str) -> str:
    escaped = value.lower().replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


class CacheStore:
    """SQLite-backed event and crash cache."""

    def __init__(self, db_path: Union[str, Path], query_cap: int = DEFAULT_QUERY_CAP):
        self.db_path = str(db_path)
        self.query_cap = max(1, int(query_cap))
        self.lock = ReadWriteLock()
        self._initialize_storage()

    # --- plumbing ---

    def _connect(self) -> sqlite3.Connection:
        try:
            return sqlite3.connect(self.db_path, timeout=30)
        except sqlite3.Error as e:
            raise StorageError(f"Failed to open event cache {self.db_path}: {e}")

    @contextmanager
    def _reading(self):
        with self.lock.read():
            try:
                with closing(self._connect()) as conn:
                    yield conn.cursor()
            except sqlite3.Error as e:
                logger.error(f"Event cache read failed: {e}")
                raise StorageError(f"Event cache read failed: {e}")

    @contextmanager
    def _writing(self):
        """One transaction: committed on success, rolled back on any error."""
        with self.lock.write():
            try:
                with closing(self._connect()) as conn:
                    with conn:
                        yield conn.cursor()
            except (sqlite3.Error, OverflowError) as e:
                logger.error(f"Event cache write failed: {e}")
                raise StorageError(f"Event cache write failed: {e}")

    def _initialize_storage(self):
        """Initialize SQLite database for the event cache"""
        parent = os.path.dirname(os.path.abspath(self.db_path))
        try:
            os.makedirs(parent, exist_ok=True)
        except OSError as e:
            raise StorageError(f"Failed to create cache directory {parent}: {e}")

        with self._writing() as cursor:
            cursor.execute('''
                CREATE TABLE IF NOT EXISTS events (
                    id TEXT PRIMARY KEY,
                    ts_us INTEGER NOT NULL,
                    os TEXT NOT NULL,
                    log_name TEXT NOT NULL,
                    category TEXT NOT NULL,
                    provider TEXT NOT NULL,
                    event_id INTEGER,
                    severity TEXT NOT NULL,
                    message TEXT NOT NULL,
                    raw TEXT
                )
            ''')
            cursor.execute('CREATE INDEX IF NOT EXISTS idx_events_ts ON events(ts_us)')

            cursor.execute('''
                CREATE TABLE IF NOT EXISTS crashes (
                    id TEXT PRIMARY KEY,
                    ts_us INTEGER NOT NULL,
                    os TEXT NOT NULL,
                    source TEXT NOT NULL,
                    crash_type TEXT NOT NULL,
                    code TEXT,
                    summary TEXT NOT NULL,
                    suspected_component TEXT,
                    raw_path TEXT UNIQUE
                )
            ''')
            cursor.execute('CREATE INDEX IF NOT EXISTS idx_crashes_ts ON crashes(ts_us)')

    @staticmethod
    def _event_row(event: NormalizedEvent) -> Tuple:
        raw = json.dumps(event.raw, default=str) if event.raw is not None else None
        return (event.id, to_micros(event.timestamp), event.os.value, event.log_name,
                event.category.value, event.provider, event.event_id, event.severity.value,
                event.message, raw)

    @staticmethod
    def _event_from_row(row: Tuple) -> NormalizedEvent:
        raw: Optional[Dict[str, Any]] = None
        if row[9]:
            try:
                raw = json.loads(row[9])
            except json.JSONDecodeError:
                raw = None
        return NormalizedEvent(
            id=row[0], timestamp=from_micros(row[1]), os=SupportedOs(row[2]), log_name=row[3],
            category=EventCategory(row[4]), provider=row[5], event_id=row[6],
            severity=EventSeverity(row[7]), message=row[8], raw=raw,
        )

    @staticmethod
    def _crash_from_row(row: Tuple) -> CrashRecord:
        return CrashRecord(
            id=row[0], timestamp=from_micros(row[1]), os=SupportedOs(row[2]), source=row[3],
            crash_type=row[4], code=row[5], summary=row[6], suspected_component=row[7],
            raw_path=row[8],
        )

    def _effective_limit(self, limit: Optional[int]) -> int:
        if limit is None:
            return self.query_cap
        return max(0, min(int(limit), self.query_cap))

    # --- events: writes ---

    @staticmethod
    def _insert_events(cursor: sqlite3.Cursor, events: Iterable[NormalizedEvent]) -> int:
        rows = []
        for event in events:
            if event.imported:
                raise ValidationError("Imported events are session-only and cannot be cached.")
            rows.append(CacheStore._event_row(event))
        if not rows:
            return 0
        before = cursor.connection.total_changes
        cursor.executemany(
            f'INSERT INTO events ({_EVENT_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?) '
            f'ON CONFLICT(id) DO NOTHING',
            rows,
        )
        return cursor.connection.total_changes - before

    def upsert(self, events: Iterable[NormalizedEvent]) -> int:
        """Insert events not already cached; returns how many were new."""
        events = list(events)
        with self._writing() as cursor:
            inserted = self._insert_events(cursor, events)
        logger.debug(f"Upserted {len(events)} events, {inserted} new")
        return inserted

    def prune_outside_window(self, window_days: int, now: Optional[datetime] = None) -> int:
        cutoff = (now or datetime.now(timezone.utc)) - timedelta(days=window_days)
        with self._writing() as cursor:
            cursor.execute('DELETE FROM events WHERE ts_us < ?', (to_micros(cutoff),))
            return cursor.rowcount

    def remove_outside_range(self, start: datetime, end: datetime) -> int:
        with self._writing() as cursor:
            cursor.execute('DELETE FROM events WHERE ts_us < ? OR ts_us > ?',
                           (to_micros(start), to_micros(end)))
            return cursor.rowcount

    def apply_sync(self, events: Iterable[NormalizedEvent], prune_before: Optional[datetime] = None,
                   keep_range: Optional[Tuple[datetime, datetime]] = None) -> Tuple[int, int]:
        """Upsert plus optional pruning as one transaction. Returns (inserted, removed)."""
        events = list(events)
        removed = 0
        with self._writing() as cursor:
            inserted = self._insert_events(cursor, events)
            if prune_before is not None:
                cursor.execute('DELETE FROM events WHERE ts_us < ?', (to_micros(prune_before),))
                removed += cursor.rowcount
            if keep_range is not None:
                start, end = keep_range
                cursor.execute('DELETE FROM events WHERE ts_us < ? OR ts_us > ?',
                               (to_micros(start), to_micros(end)))
                removed += cursor.rowcount
        logger.info(f"Applied sync: {len(events)} collected, {inserted} new, {removed} removed")
        return inserted, removed

    # --- events: reads ---

    def _query(self, where: List[str], params: List[Any], limit: Optional[int]) -> QueryResult:
        clause = f"WHERE {' AND '.join(where)}" if where else ""
        effective = self._effective_limit(limit)
        with self._reading() as cursor:
            cursor.execute(f'SELECT COUNT(*) FROM events {clause}', params)
            total = cursor.fetchone()[0]
            cursor.execute(f'SELECT {_EVENT_COLUMNS} FROM events {clause} ORDER BY rowid LIMIT ?',
                           params + [effective])
            events = [self._event_from_row(row) for row in cursor.fetchall()]
        return QueryResult(events=events, truncated=max(0, total - len(events)))

    def query_range(self, start: datetime, end: datetime, limit: Optional[int] = None,
                    os: Optional[SupportedOs] = None) -> QueryResult:
        where = ['ts_us >= ?', 'ts_us <= ?']
        params: List[Any] = [to_micros(start), to_micros(end)]
        if os is not None:
            where.append('os = ?')
            params.append(os.value)
        return self._query(where, params, limit)

    def query_by_filter(self, filters: EventFilters, limit: Optional[int] = None, zone=None) -> QueryResult:
        where: List[str] = []
        params: List[Any] = []
        lo, hi = filters.bounds(zone)
        if lo is not None:
            where.append('ts_us >= ?')
            params.append(to_micros(lo))
        if hi is not None:
            where.append('ts_us <= ?')
            params.append(to_micros(hi))
        if filters.os is not None:
            where.append('os = ?')
            params.append(filters.os.value)
        if filters.severities:
            where.append(f"severity IN ({', '.join('?' for _ in filters.severities)})")
            params.extend(s.value for s in filters.severities)
        if filters.category is not None:
            where.append('category = ?')
            params.append(filters.category.value)
        if filters.log_name:
            where.append('log_name = ?')
            params.append(filters.log_name)
        if filters.event_id is not None:
            where.append('event_id = ?')
            params.append(filters.event_id)
        if filters.source and filters.source.strip():
            where.append("lower(provider) LIKE ? ESCAPE '\\'")
            params.append(_like(filters.source.strip()))
        if filters.text and filters.text.strip():
            where.append("(lower(message) LIKE ? ESCAPE '\\' OR lower(log_name) LIKE ? ESCAPE '\\')")
            needle = _like(filters.text.strip())
            params.extend([needle, needle])
        return self._query(where, params, limit)

    def coverage(self) -> Optional[Coverage]:
        with self._reading() as cursor:
            cursor.execute('SELECT MIN(ts_us), MAX(ts_us), COUNT(*) FROM events')
            lo, hi, count = cursor.fetchone()
        if not count:
            return None
        return Coverage(start=from_micros(lo), end=from_micros(hi), count=count)

    def count(self) -> int:
        with self._reading() as cursor:
            cursor.execute('SELECT COUNT(*) FROM events')
            return cursor.fetchone()[0]

    # --- crashes ---

    def insert_crashes(self, records: Iterable[CrashRecord]) -> int:
        rows = [
            (r.id, to_micros(r.timestamp), r.os.value, r.source, r.crash_type, r.code, r.summary,
             r.suspected_component, r.raw_path)
            for r in records
        ]
        if not rows:
            return 0
        with self._writing() as cursor:
            before = cursor.connection.total_changes
            cursor.executemany(
                f'INSERT OR IGNORE INTO crashes ({_CRASH_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)',
                rows,
            )
            return cursor.connection.total_changes - before

    def known_crash_paths(self) -> Set[str]:
        with self._reading() as cursor:
            cursor.execute('SELECT raw_path FROM crashes WHERE raw_path IS NOT NULL')
            return {row[0] for row in cursor.fetchall()}

    def get_crashes(self, limit: int) -> List[CrashRecord]:
        with self._reading() as cursor:
            cursor.execute(f'SELECT {_CRASH_COLUMNS} FROM crashes ORDER BY ts_us DESC, rowid DESC LIMIT ?',
                           (max(0, int(limit)),))
            return [self._crash_from_row(row) for row in cursor.fetchall()]

    def get_crash(self, crash_id: str) -> Optional[CrashRecord]:
        with self._reading() as cursor:
            cursor.execute(f'SELECT {_CRASH_COLUMNS} FROM crashes WHERE id = ?', (crash_id,))
            row = cursor.fetchone()
        return self._crash_from_row(row) if row else None
