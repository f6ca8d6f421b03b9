# analysis/filters.py
from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime, tzinfo
from typing import Iterable, List, Optional, Tuple

from datamodels.events import EventCategory, EventSeverity, NormalizedEvent, SupportedOs
from utils.timeutil import DateLike, optional_bound, resolve_tz


@dataclass
class EventFilters:
    text: Optional[str] = None
    severities: List[EventSeverity] = field(default_factory=list)
    category: Optional[EventCategory] = None
    log_name: Optional[str] = None
    event_id: Optional[int] = None
    source: Optional[str] = None
    date_from: Optional[DateLike] = None
    date_to: Optional[DateLike] = None
    os: Optional[SupportedOs] = None

    def bounds(self, zone: Optional[tzinfo] = None) -> Tuple[Optional[datetime], Optional[datetime]]:
        """Resolved UTC bounds; a reversed pair is swapped instead of matching nothing."""
        zone = zone or resolve_tz()
        lo = optional_bound(self.date_from, zone, upper=False)
        hi = optional_bound(self.date_to, zone, upper=True)
        if lo is not None and hi is not None and lo > hi:
            lo = optional_bound(self.date_to, zone, upper=False)
            hi = optional_bound(self.date_from, zone, upper=True)
        return lo, hi

    @property
    def is_empty(self) -> bool:
        return not any([
            self.text and self.text.strip(), self.severities, self.category, self.log_name,
            self.event_id is not None, self.source and self.source.strip(),
            self.date_from, self.date_to, self.os,
        ])


def matches(event: NormalizedEvent, filters: EventFilters,
            bounds: Tuple[Optional[datetime], Optional[datetime]]) -> bool:
    lo, hi = bounds
    if lo is not None and event.timestamp < lo:
        return False
    if hi is not None and event.timestamp > hi:
        return False
    if filters.os is not None and event.os != filters.os:
        return False
    if filters.severities and event.severity not in filters.severities:
        return False
    if filters.category is not None and event.category != filters.category:
        return False
    if filters.log_name and event.log_name != filters.log_name:
        return False
    if filters.event_id is not None and event.event_id != filters.event_id:
        return False
    if filters.source and filters.source.strip().lower() not in event.provider.lower():
        return False
    if filters.text and filters.text.strip():
        needle = filters.text.strip().lower()
        if needle not in event.message.lower() and needle not in event.log_name.lower():
            return False
    return True


def apply_filters(events: Iterable[NormalizedEvent], filters: EventFilters,
                  zone: Optional[tzinfo] = None) -> List[NormalizedEvent]:
    """In-memory counterpart of the store's filtered query, used for imported events."""
    bounds = filters.bounds(zone)
    return [e for e in events if matches(e, filters, bounds)]
