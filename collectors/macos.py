# collectors/macos.py
from __future__ import annotations
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

from dateutil import tz as dt_tz

from collectors.base import CollectionResult, Collector, RawRecord, TimeRange, stream_json_lines
from datamodels.events import SupportedOs


def format_log_time(value: datetime) -> str:
    return value.astimezone(dt_tz.tzlocal()).strftime("%Y-%m-%d %H:%M:%S")


class UnifiedLogCollector(Collector):
    """macOS unified log via ``log show --style ndjson``."""

    os = SupportedOs.MACOS

    def build_command(self, time_range: TimeRange) -> List[str]:
        start, end = time_range
        args = ["log", "show", "--style", "ndjson", "--info"]
        if start is not None:
            args += ["--start", format_log_time(start)]
        if end is not None:
            args += ["--end", format_log_time(end)]
        return args

    def _record(self, payload: Dict[str, Any]) -> Optional[RawRecord]:
        # ndjson output ends with a summary object that is not a log entry
        if "eventMessage" not in payload and "timestamp" not in payload:
            return None
        return RawRecord(os=self.os, payload=payload, collected_at=datetime.now(timezone.utc))

    def collect(self, time_range: TimeRange, channels: Sequence[str], max_events: int) -> CollectionResult:
        args = self.build_command(time_range)
        return stream_json_lines(self, args, max_events, "macOS log collector", self._record)
