# collectors/windows.py
from __future__ import annotations
import json
import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from typing import List, Optional, Sequence, Tuple

from collectors.base import CollectionResult, CommandError, Collector, RawRecord, TimeRange
from datamodels.events import SupportedOs, WindowsChannel

logger = logging.getLogger(__name__)

NO_EVENTS_MARKERS = (
    "no events were found",
    "nomatchingeventsfound",
)
ACCESS_DENIED_MARKERS = (
    "unauthorized",
    "access is denied",
    "attempted to perform an unauthorized operation",
)

_SCRIPT = r"""
$ErrorActionPreference = 'Stop'
$filter = @{{ LogName = '{channel}' }}
{start_clause}
{end_clause}
try {{
  $events = Get-WinEvent -FilterHashtable $filter -MaxEvents {max_events} |
    Select-Object LogName, ProviderName, Id, Level, LevelDisplayName, RecordId, Message,
      @{{n='TimeCreated';e={{$_.TimeCreated.ToUniversalTime().ToString('o')}}}}
}} catch {{
  [Console]::Error.WriteLine($_.Exception.Message)
  exit 2
}}
if ($null -eq $events) {{ '[]' }} else {{ @($events) | ConvertTo-Json -Depth 4 -Compress }}
"""


def format_filter_time(value: datetime) -> str:
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def build_script(channel: str, time_range: TimeRange, max_events: int) -> str:
    start, end = time_range
    start_clause = f"$filter.StartTime = [datetime]'{format_filter_time(start)}'" if start else ""
    end_clause = f"$filter.EndTime = [datetime]'{format_filter_time(end)}'" if end else ""
    return _SCRIPT.format(channel=channel, start_clause=start_clause, end_clause=end_clause,
                          max_events=max_events)


class WindowsEventLogCollector(Collector):
    """Windows Event Log via PowerShell ``Get-WinEvent``, one query per channel."""

    os = SupportedOs.WINDOWS

    def __init__(self, runner=None, max_workers: int = 3, command_timeout: Optional[float] = None):
        super().__init__(runner)
        self.max_workers = max_workers
        self.command_timeout = command_timeout

    def _query_channel(self, channel: str, time_range: TimeRange,
                       max_events: int) -> Tuple[List[dict], Optional[str]]:
        """Returns (rows, failure message)."""
        script = build_script(channel, time_range, max_events)
        args = ["powershell", "-NoProfile", "-NonInteractive", "-Command", script]
        try:
            code, out, err = self.runner.run(args, timeout=self.command_timeout)
        except CommandError as e:
            return [], f"{channel}: {e}"

        if code != 0:
            detail = (err or out).strip()
            lower = detail.lower()
            if any(marker in lower for marker in NO_EVENTS_MARKERS):
                return [], None
            denied = any(marker in lower for marker in ACCESS_DENIED_MARKERS)
            first = detail.splitlines()[0] if detail else f"exit status {code}"
            if denied:
                return [], f"{channel}: access denied (elevation may be required): {first}"
            return [], f"{channel}: {first}"

        text = out.strip()
        if not text:
            return [], None
        try:
            parsed = json.loads(text)
        except json.JSONDecodeError as e:
            return [], f"{channel}: could not parse Get-WinEvent output: {e}"
        if isinstance(parsed, dict):
            parsed = [parsed]
        if not isinstance(parsed, list):
            return [], f"{channel}: unexpected Get-WinEvent output"
        return [row for row in parsed if isinstance(row, dict)], None

    def collect(self, time_range: TimeRange, channels: Sequence[str], max_events: int) -> CollectionResult:
        result = CollectionResult()
        if max_events <= 0:
            return result

        ordered = []
        for value in channels or (WindowsChannel.APPLICATION.value,):
            channel = WindowsChannel.parse(value)
            if channel is not None and channel.value not in ordered:
                ordered.append(channel.value)
        if not ordered:
            ordered = [WindowsChannel.APPLICATION.value]

        with ThreadPoolExecutor(max_workers=max(1, min(self.max_workers, len(ordered)))) as executor:
            futures = [executor.submit(self._query_channel, ch, time_range, max_events) for ch in ordered]
            outcomes = [f.result() for f in futures]

        # Merge in configured channel order, then native order, so truncation is reproducible
        failures = []
        now = datetime.now(timezone.utc)
        for channel, (rows, failure) in zip(ordered, outcomes):
            if failure:
                failures.append(failure)
            for row in rows:
                if len(result.records) >= max_events:
                    break
                result.records.append(RawRecord(os=self.os, payload=row, channel=channel, collected_at=now))

        for failure in failures:
            result.fail(failure)
        if failures:
            logger.warning(f"Windows collection had {len(failures)} channel failure(s): {failures}")
        return result
