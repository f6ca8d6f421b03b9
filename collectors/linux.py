# collectors/linux.py
from __future__ import annotations
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

from dateutil import tz as dt_tz

from collectors.base import CollectionResult, Collector, RawRecord, TimeRange, stream_json_lines
from datamodels.events import SupportedOs


def format_journal_time(value: datetime) -> str:
    """journalctl takes local wall-clock time for --since/--until."""
    return value.astimezone(dt_tz.tzlocal()).strftime("%Y-%m-%d %H:%M:%S")


class JournalCollector(Collector):
    """systemd journal via ``journalctl -o json``."""

    os = SupportedOs.LINUX

    def build_command(self, time_range: TimeRange, max_events: int) -> List[str]:
        start, end = time_range
        args = ["journalctl", "--no-pager", "-o", "json"]
        if start is not None:
            args += ["--since", format_journal_time(start)]
        if end is not None:
            args += ["--until", format_journal_time(end)]
        args += ["-n", str(max_events)]
        return args

    def _record(self, payload: Dict[str, Any]) -> Optional[RawRecord]:
        return RawRecord(os=self.os, payload=payload, collected_at=datetime.now(timezone.utc))

    def collect(self, time_range: TimeRange, channels: Sequence[str], max_events: int) -> CollectionResult:
        # channels only apply to Windows event logs
        args = self.build_command(time_range, max_events)
        return stream_json_lines(self, args, max_events, "journalctl", self._record)
