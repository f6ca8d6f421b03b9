# analysis/coverage.py
from __future__ import annotations
from datetime import datetime, tzinfo
from enum import Enum
from typing import Optional

from datamodels.events import Coverage
from utils.timeutil import DateLike, optional_bound, resolve_tz


class CoverageStatus(str, Enum):
    NO_COVERAGE = "no_coverage"
    COVERED = "covered"
    EXTENDS_BEYOND = "extends_beyond"
    FULLY_OUTSIDE = "fully_outside"


def coverage_status(coverage: Optional[Coverage], date_from: Optional[DateLike],
                    date_to: Optional[DateLike], zone: Optional[tzinfo] = None) -> CoverageStatus:
    """Where a requested span sits relative to what the cache holds."""
    if coverage is None or coverage.count == 0:
        return CoverageStatus.NO_COVERAGE
    zone = zone or resolve_tz()
    lo = optional_bound(date_from, zone, upper=False)
    hi = optional_bound(date_to, zone, upper=True)
    if lo is not None and hi is not None and lo > hi:
        lo = optional_bound(date_to, zone, upper=False)
        hi = optional_bound(date_from, zone, upper=True)
    if lo is None and hi is None:
        return CoverageStatus.COVERED

    if (hi is not None and hi < coverage.start) or (lo is not None and lo > coverage.end):
        return CoverageStatus.FULLY_OUTSIDE
    if (lo is not None and lo < coverage.start) or (hi is not None and hi > coverage.end):
        return CoverageStatus.EXTENDS_BEYOND
    return CoverageStatus.COVERED


def _fmt(ts: datetime, zone: tzinfo) -> str:
    return ts.astimezone(zone).strftime("%Y-%m-%d %H:%M")


def coverage_summary(coverage: Optional[Coverage], zone: Optional[tzinfo] = None) -> str:
    if coverage is None or coverage.count == 0:
        return "No local events cached yet."
    zone = zone or resolve_tz()
    return (f"Local cache covers {_fmt(coverage.start, zone)} to {_fmt(coverage.end, zone)} "
            f"({coverage.count} events).")


def coverage_warning(coverage: Optional[Coverage], date_from: Optional[DateLike],
                     date_to: Optional[DateLike], zone: Optional[tzinfo] = None) -> Optional[str]:
    status = coverage_status(coverage, date_from, date_to, zone)
    if status == CoverageStatus.FULLY_OUTSIDE:
        return ("The selected dates are fully outside the cached range. "
                "Sync that range to load matching events.")
    if status == CoverageStatus.EXTENDS_BEYOND:
        return ("The selected dates extend beyond the cached range. "
                "Results may be incomplete until that range is synced.")
    return None
