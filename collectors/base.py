# collectors/base.py
from __future__ import annotations
import json
import logging
import platform
import subprocess
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence, Tuple

from datamodels.events import SupportedOs
from infra.errors import CollectorHardError

logger = logging.getLogger(__name__)

TimeRange = Tuple[Optional[datetime], Optional[datetime]]


@dataclass(frozen=True)
class RawRecord:
    os: SupportedOs
    payload: Dict[str, Any]
    channel: Optional[str] = None
    collected_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass
class CollectionResult:
    records: List[RawRecord] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    @property
    def hard_error(self) -> Optional[CollectorHardError]:
        """Only zero records plus a genuine failure is fatal; "nothing in range" is not."""
        if self.records or not self.errors:
            return None
        return CollectorHardError("; ".join(self.errors), errors=self.errors)

    def fail(self, message: str) -> None:
        """Record a failure: an error while nothing was read, a warning afterwards."""
        if self.records:
            self.warnings.append(message)
        else:
            self.errors.append(message)


class CommandError(Exception):
    """The native tool could not be started."""


class StreamingProcess:
    """Line iterator over a child process' stdout that can be stopped early."""

    def __init__(self, proc: subprocess.Popen):
        self._proc = proc

    def lines(self) -> Iterator[str]:
        assert self._proc.stdout is not None
        for line in self._proc.stdout:
            yield line

    def stop(self) -> None:
        if self._proc.poll() is None:
            self._proc.kill()

    def wait(self) -> int:
        if self._proc.stdout is not None:
            self._proc.stdout.close()
        return self._proc.wait()


class CommandRunner:
    """Thin seam over ``subprocess`` so collectors can be exercised with fakes."""

    def run(self, args: Sequence[str], timeout: Optional[float] = None) -> Tuple[int, str, str]:
        try:
            proc = subprocess.run(list(args), capture_output=True, text=True,
                                  encoding="utf-8", errors="replace", timeout=timeout)
        except FileNotFoundError as e:
            raise CommandError(f"{args[0]} is not available: {e}")
        except subprocess.TimeoutExpired:
            raise CommandError(f"{args[0]} timed out after {timeout}s")
        except OSError as e:
            raise CommandError(f"Failed to run {args[0]}: {e}")
        return proc.returncode, proc.stdout or "", proc.stderr or ""

    def stream(self, args: Sequence[str]) -> StreamingProcess:
        try:
            proc = subprocess.Popen(list(args), stdout=subprocess.PIPE, stderr=subprocess.DEVNULL,
                                    text=True, encoding="utf-8", errors="replace")
        except FileNotFoundError as e:
            raise CommandError(f"{args[0]} is not available: {e}")
        except OSError as e:
            raise CommandError(f"Failed to run {args[0]}: {e}")
        return StreamingProcess(proc)


class Collector:
    """Per-OS native log source. ``collect`` never raises for collection failures."""

    os: SupportedOs

    def __init__(self, runner: Optional[CommandRunner] = None):
        self.runner = runner or CommandRunner()

    def collect(self, time_range: TimeRange, channels: Sequence[str], max_events: int) -> CollectionResult:
        raise NotImplementedError


def stream_json_lines(collector: Collector, args: Sequence[str], max_events: int,
                      label: str, parse: Callable[[Dict[str, Any]], Optional[RawRecord]]) -> CollectionResult:
    """Shared ndjson streaming loop for journalctl and ``log show``.

    Stops the child once ``max_events`` records were read; that truncation is
    expected and not reported as a warning.
    """
    result = CollectionResult()
    if max_events <= 0:
        return result

    try:
        proc = collector.runner.stream(args)
    except CommandError as e:
        result.errors.append(str(e))
        return result

    parse_failures = 0
    truncated = False
    try:
        for line in proc.lines():
            if not line.strip():
                continue
            try:
                payload = json.loads(line)
            except json.JSONDecodeError:
                parse_failures += 1
                continue
            if not isinstance(payload, dict):
                parse_failures += 1
                continue
            record = parse(payload)
            if record is None:
                continue
            result.records.append(record)
            if len(result.records) >= max_events:
                truncated = True
                proc.stop()
                break
    except (OSError, UnicodeDecodeError) as e:
        result.fail(f"Failed reading {label} output: {e}")

    if parse_failures:
        result.warnings.append(f"Skipped {parse_failures} non-JSON or malformed {label} entries.")

    code = proc.wait()
    if code != 0 and not truncated:
        result.fail(f"{label} exited with status {code}.")
    logger.debug(f"{label}: {len(result.records)} records, truncated={truncated}")
    return result


def detect_host_os() -> SupportedOs:
    system = platform.system().lower()
    if system.startswith("win"):
        return SupportedOs.WINDOWS
    if system == "darwin":
        return SupportedOs.MACOS
    return SupportedOs.LINUX


def host_os_version(host_os: Optional[SupportedOs] = None, runner: Optional[CommandRunner] = None) -> str:
    host_os = host_os or detect_host_os()
    runner = runner or CommandRunner()

    def first_line(args) -> Optional[str]:
        try:
            code, out, _ = runner.run(args, timeout=10)
        except CommandError:
            return None
        value = out.strip()
        if code != 0 or not value or len(value) > 300:
            return None
        return value.splitlines()[0]

    if host_os == SupportedOs.MACOS:
        name = first_line(["sw_vers", "-productName"]) or "macOS"
        version = first_line(["sw_vers", "-productVersion"]) or "Unknown"
        return f"{name} {version}"
    if host_os == SupportedOs.WINDOWS:
        script = ("$os = Get-CimInstance Win32_OperatingSystem; "
                  "$os.Caption + ' ' + $os.Version")
        return first_line(["powershell", "-NoProfile", "-NonInteractive", "-Command", script]) \
            or "Windows (version unavailable)"
    try:
        with open("/etc/os-release", "r", encoding="utf-8") as f:
            for line in f:
                if line.startswith("PRETTY_NAME="):
                    value = line.split("=", 1)[1].strip().strip('"').strip()
                    if value:
                        return value
    except OSError:
        pass
    return f"Linux ({first_line(['uname', '-r']) or 'unknown-kernel'})"
