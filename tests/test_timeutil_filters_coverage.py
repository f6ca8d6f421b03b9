from datetime import date, datetime, timedelta, timezone

import pytest
from dateutil import tz as dt_tz

from analysis.coverage import CoverageStatus, coverage_status, coverage_summary, coverage_warning
from analysis.filters import EventFilters, apply_filters
from datamodels.events import Coverage, EventSeverity
from infra.errors import ErrorCodes, ValidationError
from utils.timeutil import normalize_range, parse_timestamp
from fakes import make_event

UTC = timezone.utc


def test_plain_dates_cover_whole_days_in_the_given_zone():
    berlin = dt_tz.gettz("Europe/Berlin")
    start, end = normalize_range("2026-02-20", "2026-02-21", berlin)
    assert start == datetime(2026, 2, 19, 23, 0, tzinfo=UTC)
    assert end == datetime(2026, 2, 21, 22, 59, 59, 999999, tzinfo=UTC)


def test_reversed_bounds_are_swapped():
    assert normalize_range("2026-02-27", "2026-02-20", UTC) == normalize_range("2026-02-20", "2026-02-27", UTC)
    a = datetime(2026, 2, 20, 8, tzinfo=UTC)
    b = datetime(2026, 2, 20, 6, tzinfo=UTC)
    assert normalize_range(a, b) == (b, a)


def test_mixed_date_and_datetime_bounds():
    start, end = normalize_range(date(2026, 2, 20), "2026-02-20T12:00:00Z", UTC)
    assert start == datetime(2026, 2, 20, tzinfo=UTC)
    assert end == datetime(2026, 2, 20, 23, 59, 59, 999999, tzinfo=UTC)


def test_invalid_date_is_rejected():
    with pytest.raises(ValidationError) as excinfo:
        normalize_range("2026-02-31", "2026-03-01", UTC)
    assert excinfo.value.error_code == ErrorCodes.INVALID_DATE
    with pytest.raises(ValidationError):
        normalize_range("yesterday-ish", "2026-03-01", UTC)


def test_parse_timestamp_variants():
    expected = datetime(2026, 2, 24, 9, 30, tzinfo=UTC)
    assert parse_timestamp("2026-02-24T09:30:00Z") == expected
    assert parse_timestamp("/Date(1771925400000)/") == expected
    assert parse_timestamp(1771925400) == expected
    assert parse_timestamp("") is None
    assert parse_timestamp("garbage") is None


def test_apply_filters_on_in_memory_events():
    t = datetime(2026, 2, 24, 12, tzinfo=UTC)
    events = [
        make_event(t, key=1, message="Kernel oops in ext4", severity=EventSeverity.CRITICAL, provider="kernel"),
        make_event(t + timedelta(days=2), key=2, message="Backup finished", provider="restic"),
    ]
    assert len(apply_filters(events, EventFilters(), UTC)) == 2
    assert [e.message for e in apply_filters(events, EventFilters(text="oops"), UTC)] == ["Kernel oops in ext4"]
    assert apply_filters(events, EventFilters(severities=[EventSeverity.ERROR]), UTC) == []
    dated = apply_filters(events, EventFilters(date_from="2026-02-26", date_to="2026-02-25"), UTC)
    assert [e.message for e in dated] == ["Backup finished"]
    assert EventFilters().is_empty
    assert not EventFilters(source="kernel").is_empty


COVERAGE = Coverage(start=datetime(2026, 2, 20, 8, tzinfo=UTC), end=datetime(2026, 2, 27, 18, tzinfo=UTC), count=42)


@pytest.mark.parametrize("date_from,date_to,expected", [
    (None, None, CoverageStatus.COVERED),
    ("2026-02-21", "2026-02-26", CoverageStatus.COVERED),
    ("2026-02-19", "2026-02-25", CoverageStatus.EXTENDS_BEYOND),
    ("2026-02-26", "2026-03-02", CoverageStatus.EXTENDS_BEYOND),
    ("2026-03-01", "2026-03-05", CoverageStatus.FULLY_OUTSIDE),
    ("2026-02-10", "2026-02-12", CoverageStatus.FULLY_OUTSIDE),
    ("2026-02-26", "2026-02-21", CoverageStatus.COVERED),
])
def test_coverage_status(date_from, date_to, expected):
    assert coverage_status(COVERAGE, date_from, date_to, UTC) == expected


def test_coverage_messages():
    assert coverage_status(None, "2026-02-21", None, UTC) == CoverageStatus.NO_COVERAGE
    assert coverage_summary(None) == "No local events cached yet."
    assert "42 events" in coverage_summary(COVERAGE, UTC)
    assert "fully outside" in coverage_warning(COVERAGE, "2026-03-01", "2026-03-02", UTC)
    assert "extend beyond" in coverage_warning(COVERAGE, "2026-02-19", None, UTC)
    assert coverage_warning(COVERAGE, "2026-02-21", "2026-02-22", UTC) is None
