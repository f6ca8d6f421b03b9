import json
from datetime import datetime, timedelta, timezone

from collectors import select_collector
from collectors.base import CommandError
from collectors.linux import JournalCollector
from collectors.macos import UnifiedLogCollector
from collectors.windows import WindowsEventLogCollector, build_script
from datamodels.events import SupportedOs
from fakes import FakeRunner, journal_lines

START = datetime(2026, 2, 20, tzinfo=timezone.utc)
END = datetime(2026, 2, 27, tzinfo=timezone.utc)


# --- journalctl ---

def test_journal_command_shape():
    args = JournalCollector(runner=FakeRunner()).build_command((START, END), 500)
    assert args[:4] == ["journalctl", "--no-pager", "-o", "json"]
    assert "--since" in args and "--until" in args
    assert args[-2:] == ["-n", "500"]


def test_journal_stops_at_max_events_without_warning():
    runner = FakeRunner(stream_lines=journal_lines(50, START, timedelta(minutes=1)))
    result = JournalCollector(runner=runner).collect((START, END), [], 10)
    assert len(result.records) == 10
    assert result.warnings == []
    assert result.hard_error is None
    assert runner.last_stream.stopped


def test_journal_counts_malformed_lines_once():
    lines = journal_lines(3, START, timedelta(minutes=1)) + ["not json\n", "[1, 2]\n", "\n"]
    result = JournalCollector(runner=FakeRunner(stream_lines=lines)).collect((START, END), [], 100)
    assert len(result.records) == 3
    assert result.warnings == ["Skipped 2 non-JSON or malformed journalctl entries."]


def test_journal_failure_with_no_records_is_hard_error():
    result = JournalCollector(runner=FakeRunner(stream_lines=[], stream_code=1)).collect((START, END), [], 100)
    assert result.records == []
    assert result.hard_error is not None
    assert "exited with status 1" in str(result.hard_error)


def test_journal_empty_range_is_not_an_error():
    result = JournalCollector(runner=FakeRunner(stream_lines=[])).collect((START, END), [], 100)
    assert result.records == []
    assert result.hard_error is None


def test_missing_binary_becomes_error():
    class MissingRunner(FakeRunner):
        def stream(self, args):
            raise CommandError("journalctl is not available")

    result = JournalCollector(runner=MissingRunner()).collect((START, END), [], 100)
    assert result.errors == ["journalctl is not available"]


# --- macOS log show ---

def test_unified_log_skips_trailing_summary_object():
    lines = [
        json.dumps({"timestamp": "2026-02-21 10:00:00.000000+0000", "eventMessage": "hello"}) + "\n",
        json.dumps({"count": 1, "finished": 1}) + "\n",
    ]
    collector = UnifiedLogCollector(runner=FakeRunner(stream_lines=lines))
    result = collector.collect((START, END), [], 100)
    assert len(result.records) == 1
    assert result.warnings == []
    assert collector.build_command((START, END))[:4] == ["log", "show", "--style", "ndjson"]


# --- Windows Get-WinEvent ---

def _channel_of(args):
    script = args[-1]
    for name in ("Application", "System", "Security"):
        if f"LogName = '{name}'" in script:
            return name
    raise AssertionError("no channel in script")


def _rows(channel, count):
    return json.dumps([
        {"LogName": channel, "ProviderName": "p", "Id": i, "RecordId": i, "Level": 4,
         "Message": f"{channel} {i}", "TimeCreated": "2026-02-21T10:00:00.0000000Z"}
        for i in range(count)
    ])


def test_build_script_includes_bounds_and_limit():
    script = build_script("System", (START, END), 250)
    assert "LogName = 'System'" in script
    assert "2026-02-20T00:00:00Z" in script
    assert "-MaxEvents 250" in script


def test_windows_merges_in_channel_order_and_truncates():
    runner = FakeRunner(lambda args: (0, _rows(_channel_of(args), 3), ""))
    result = WindowsEventLogCollector(runner=runner).collect((START, END), ["System", "Application"], 4)
    channels = [r.channel for r in result.records]
    assert channels == ["System", "System", "System", "Application"]
    assert result.warnings == []


def test_windows_access_denied_is_warning_when_other_channels_succeed():
    def responder(args):
        channel = _channel_of(args)
        if channel == "Security":
            return 2, "", "Attempted to perform an unauthorized operation."
        return 0, _rows(channel, 2), ""

    result = WindowsEventLogCollector(runner=FakeRunner(responder)).collect(
        (START, END), ["Application", "Security"], 100)
    assert len(result.records) == 2
    assert result.hard_error is None
    assert len(result.warnings) == 1
    assert "Security" in result.warnings[0] and "access denied" in result.warnings[0]


def test_windows_no_events_found_is_success():
    runner = FakeRunner(lambda args: (2, "", "No events were found that match the specified selection criteria."))
    result = WindowsEventLogCollector(runner=runner).collect((START, END), ["Application"], 100)
    assert result.records == []
    assert result.errors == []
    assert result.hard_error is None


def test_windows_all_channels_failing_is_hard_error():
    runner = FakeRunner(lambda args: (1, "", "RPC server is unavailable"))
    result = WindowsEventLogCollector(runner=runner).collect((START, END), ["Application", "System"], 100)
    assert result.records == []
    assert result.hard_error is not None
    assert len(result.hard_error.errors) == 2


def test_windows_single_object_output_and_default_channel():
    single = json.dumps({"LogName": "Application", "Id": 1, "Message": "one"})
    runner = FakeRunner(lambda args: (0, single, ""))
    result = WindowsEventLogCollector(runner=runner).collect((START, END), ["bogus"], 100)
    assert len(result.records) == 1
    assert "LogName = 'Application'" in runner.calls[0][-1]


def test_select_collector_per_os():
    assert isinstance(select_collector(SupportedOs.LINUX, FakeRunner()), JournalCollector)
    assert isinstance(select_collector(SupportedOs.MACOS, FakeRunner()), UnifiedLogCollector)
    assert isinstance(select_collector(SupportedOs.WINDOWS, FakeRunner()), WindowsEventLogCollector)
