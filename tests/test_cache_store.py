from dataclasses import replace
from datetime import datetime, timedelta, timezone

import pytest

from analysis.filters import EventFilters
from datamodels.events import CrashRecord, EventSeverity, SupportedOs
from infra.cache_store import CacheStore, from_micros, to_micros
from infra.errors import StorageError, ValidationError
from fakes import make_event

T0 = datetime(2026, 2, 24, 12, 0, tzinfo=timezone.utc)


def _events(count, step=timedelta(seconds=1), **kwargs):
    return [make_event(T0 + step * i, key=i, message=f"event {i}", **kwargs) for i in range(count)]


def test_micros_round_trip_keeps_precision():
    ts = datetime(2026, 2, 24, 12, 0, 0, 123456, tzinfo=timezone.utc)
    assert from_micros(to_micros(ts)) == ts


def test_upsert_is_idempotent(store):
    events = _events(25)
    assert store.upsert(events) == 25
    before = store.query_range(T0, T0 + timedelta(hours=1)).events

    assert store.upsert(events) == 0
    assert store.count() == 25
    assert store.query_range(T0, T0 + timedelta(hours=1)).events == before


def test_upsert_rejects_imported_events(store):
    imported = replace(make_event(T0), imported=True)
    with pytest.raises(ValidationError):
        store.upsert([imported])
    assert store.count() == 0


def test_raw_payload_survives_storage(store):
    event = replace(make_event(T0), raw={"PRIORITY": "3", "nested": {"a": 1}})
    store.upsert([event])
    (stored,) = store.query_range(T0, T0).events
    assert stored.raw == {"PRIORITY": "3", "nested": {"a": 1}}
    assert stored.timestamp == T0


def test_truncation_is_deterministic_at_the_hard_cap(tmp_path):
    store = CacheStore(tmp_path / "big.db", query_cap=10000)
    store.upsert(_events(12000))
    end = T0 + timedelta(days=1)

    first = store.query_range(T0, end, limit=50000)
    second = store.query_range(T0, end, limit=50000)
    assert len(first.events) == 10000
    assert first.truncated == 2000
    assert [e.id for e in first.events] == [e.id for e in second.events]
    assert second.truncated == 2000


def test_query_range_respects_limit_and_os(store):
    store.upsert(_events(10) + _events(5, os=SupportedOs.WINDOWS))
    result = store.query_range(T0, T0 + timedelta(minutes=1), limit=4, os=SupportedOs.WINDOWS)
    assert len(result.events) == 4
    assert result.truncated == 1
    assert {e.os for e in result.events} == {SupportedOs.WINDOWS}


def test_query_by_filter_text_source_and_severity(store):
    store.upsert([
        make_event(T0, key=1, message="Disk timeout on sda", severity=EventSeverity.ERROR, provider="kernel"),
        make_event(T0, key=2, message="Service started", provider="systemd"),
        make_event(T0, key=3, message="100% done", severity=EventSeverity.WARNING, provider="apt"),
    ])
    assert [e.message for e in store.query_by_filter(EventFilters(text="DISK")).events] == ["Disk timeout on sda"]
    assert [e.provider for e in store.query_by_filter(EventFilters(source="SYS")).events] == ["systemd"]
    assert [e.message for e in store.query_by_filter(EventFilters(text="100%")).events] == ["100% done"]
    severe = store.query_by_filter(EventFilters(severities=[EventSeverity.ERROR, EventSeverity.WARNING]))
    assert len(severe.events) == 2


def test_query_by_filter_swaps_reversed_dates(store):
    store.upsert(_events(3, step=timedelta(days=1)))
    zone = timezone.utc
    forward = store.query_by_filter(EventFilters(date_from="2026-02-24", date_to="2026-02-25"), zone=zone)
    backward = store.query_by_filter(EventFilters(date_from="2026-02-25", date_to="2026-02-24"), zone=zone)
    assert len(forward.events) == 2
    assert [e.id for e in forward.events] == [e.id for e in backward.events]


def test_prune_and_remove_outside_range(store):
    store.upsert(_events(10, step=timedelta(days=1)))
    removed = store.prune_outside_window(3, now=T0 + timedelta(days=9))
    assert removed == 6
    assert store.coverage().start == T0 + timedelta(days=6)

    removed = store.remove_outside_range(T0 + timedelta(days=7), T0 + timedelta(days=8))
    assert removed == 2
    assert store.count() == 2


def test_apply_sync_rolls_back_on_rejected_batch(store):
    store.upsert(_events(3))
    bad = _events(2, step=timedelta(hours=1)) + [replace(make_event(T0, key="x"), imported=True)]
    with pytest.raises(ValidationError):
        store.apply_sync(bad, prune_before=T0 + timedelta(days=1))
    assert store.count() == 3


def test_coverage_tracks_min_max_count(store):
    assert store.coverage() is None
    store.upsert(_events(5, step=timedelta(minutes=10)))
    coverage = store.coverage()
    assert coverage.start == T0
    assert coverage.end == T0 + timedelta(minutes=40)
    assert coverage.count == 5


def _crash(path, ts):
    return CrashRecord.from_artifact(path, timestamp=ts, os=SupportedOs.LINUX, source="apport",
                                     crash_type="Crash", summary=f"crash at {path}")


def test_crashes_dedupe_by_path_and_sort_newest_first(store):
    assert store.insert_crashes([_crash("/var/crash/a.crash", T0), _crash("/var/crash/b.crash", T0 + timedelta(hours=1))]) == 2
    assert store.insert_crashes([_crash("/var/crash/a.crash", T0)]) == 0
    crashes = store.get_crashes(10)
    assert [c.raw_path for c in crashes] == ["/var/crash/b.crash", "/var/crash/a.crash"]
    assert store.known_crash_paths() == {"/var/crash/a.crash", "/var/crash/b.crash"}
    assert store.get_crash(crashes[0].id) == crashes[0]
    assert store.get_crash("missing") is None


def test_unstorable_values_surface_as_storage_errors(store):
    event = replace(make_event(T0, key="huge"), event_id=10 ** 20)
    with pytest.raises(StorageError):
        store.upsert([event])
    assert store.count() == 0
