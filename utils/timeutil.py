# utils/timeutil.py
from __future__ import annotations
import re
from datetime import date, datetime, time, timezone, tzinfo
from typing import Optional, Tuple, Union

from dateutil import parser as dt_parser
from dateutil import tz as dt_tz

from infra.errors import ErrorCodes, ValidationError

DateLike = Union[str, date, datetime]

_DATE_ONLY = re.compile(r"^\s*\d{4}-\d{2}-\d{2}\s*$")
_DOTNET_DATE = re.compile(r"^/Date\((-?\d+)([+-]\d{4})?\)/$")


def resolve_tz(name: Optional[str] = None) -> tzinfo:
    """Named zone, or the host local zone when ``name`` is empty."""
    if name:
        zone = dt_tz.gettz(name)
        if zone is not None:
            return zone
    return dt_tz.tzlocal()


def to_utc(ts: datetime, assume: Optional[tzinfo] = None) -> datetime:
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=assume or timezone.utc)
    return ts.astimezone(timezone.utc)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value, assume: Optional[tzinfo] = None) -> Optional[datetime]:
    """Best-effort instant parsing for collector payloads. Returns None instead of raising."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return to_utc(value, assume)
    if isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(float(value), tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    text = str(value).strip()
    if not text:
        return None
    m = _DOTNET_DATE.match(text)
    if m:
        try:
            return datetime.fromtimestamp(int(m.group(1)) / 1000.0, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    try:
        return to_utc(dt_parser.parse(text), assume)
    except (ValueError, OverflowError):
        return None


def _bounds_of(value: DateLike, zone: tzinfo) -> Tuple[datetime, datetime]:
    """(start, end) instants covered by one user-supplied bound.

    Plain dates cover the whole local day; datetimes are a single instant.
    """
    if isinstance(value, datetime):
        ts = to_utc(value, zone)
        return ts, ts
    if isinstance(value, date):
        day = value
    elif isinstance(value, str) and _DATE_ONLY.match(value):
        try:
            day = date.fromisoformat(value.strip())
        except ValueError:
            raise ValidationError(f"Invalid date: {value!r}", ErrorCodes.INVALID_DATE)
    else:
        ts = parse_timestamp(value, zone) if isinstance(value, str) else None
        if ts is None:
            raise ValidationError(f"Invalid date: {value!r}", ErrorCodes.INVALID_DATE)
        return ts, ts
    start = datetime.combine(day, time.min).replace(tzinfo=zone)
    end = datetime.combine(day, time.max).replace(tzinfo=zone)
    return start.astimezone(timezone.utc), end.astimezone(timezone.utc)


def normalize_range(start: DateLike, end: DateLike,
                    zone: Optional[tzinfo] = None) -> Tuple[datetime, datetime]:
    """Turn user-provided bounds into an ordered UTC span.

    Reversed bounds are swapped rather than rejected, so ``(to, from)`` yields
    the same span as ``(from, to)``.
    """
    zone = zone or resolve_tz()
    lo = _bounds_of(start, zone)
    hi = _bounds_of(end, zone)
    if lo[0] > hi[0]:
        lo, hi = hi, lo
    return lo[0], max(lo[1], hi[1])


def optional_bound(value: Optional[DateLike], zone: tzinfo, upper: bool) -> Optional[datetime]:
    """Single open-ended bound for filters; blank means unbounded."""
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    start, end = _bounds_of(value, zone)
    return end if upper else start
