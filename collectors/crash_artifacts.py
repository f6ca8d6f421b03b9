# collectors/crash_artifacts.py
from __future__ import annotations
import json
import logging
import os
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone, tzinfo
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from collectors.base import CommandError, CommandRunner, detect_host_os
from datamodels.events import CrashRecord, SupportedOs
from utils.timeutil import parse_timestamp, resolve_tz

logger = logging.getLogger(__name__)

MAX_ARTIFACT_BYTES = 1024 * 1024
_FILETIME_EPOCH = datetime(1601, 1, 1, tzinfo=timezone.utc)


def _mtime(path: Path) -> datetime:
    return datetime.fromtimestamp(path.stat().st_mtime, tz=timezone.utc)


def _read_text(path: Path) -> str:
    """Decode a small artifact, detecting the UTF-16 encoding WER writes."""
    with open(path, "rb") as f:
        data = f.read(MAX_ARTIFACT_BYTES)
    if data[:2] in (b"\xff\xfe", b"\xfe\xff"):
        return data.decode("utf-16", errors="replace")
    if len(data) > 1 and data[1:2] == b"\x00":
        return data.decode("utf-16-le", errors="replace")
    return data.decode("utf-8-sig", errors="replace")


def _newest_first(paths: Iterable[Path]) -> List[Path]:
    stamped = []
    for p in paths:
        try:
            stamped.append((p.stat().st_mtime, p))
        except OSError:
            continue
    stamped.sort(key=lambda pair: pair[0], reverse=True)
    return [p for _, p in stamped]


# --- Windows ---

def filetime_to_datetime(value) -> Optional[datetime]:
    try:
        ticks = int(value)
    except (TypeError, ValueError):
        return None
    if ticks <= 0:
        return None
    return _FILETIME_EPOCH + timedelta(microseconds=ticks // 10)


def parse_wer_report(path: Path) -> Optional[CrashRecord]:
    values: Dict[str, str] = {}
    for line in _read_text(path).splitlines():
        if "=" not in line:
            continue
        key, value = line.split("=", 1)
        values[key.strip()] = value.strip()
    if not values:
        return None

    signatures = {}
    for key, value in values.items():
        if key.startswith("Sig[") and key.endswith("].Name"):
            index = key[4:-6]
            signatures[value.lower()] = values.get(f"Sig[{index}].Value")

    event_type = values.get("EventType") or "Unknown"
    app = values.get("AppName") or signatures.get("application name") or signatures.get("faulting application name")
    module = signatures.get("fault module name") or signatures.get("faulting module name")
    code = signatures.get("exception code") or signatures.get("bugcheck code")
    friendly = values.get("FriendlyEventName") or event_type
    crash_type = "BSOD" if "bluescreen" in event_type.lower() else event_type

    summary = friendly if not app else f"{friendly}: {app}"
    if module and module != app:
        summary += f" (faulting module {module})"
    return CrashRecord.from_artifact(
        str(path),
        timestamp=filetime_to_datetime(values.get("EventTime")) or _mtime(path),
        os=SupportedOs.WINDOWS,
        source="WER",
        crash_type=crash_type,
        code=code,
        summary=summary,
        suspected_component=module or app,
    )


def minidump_record(path: Path) -> CrashRecord:
    return CrashRecord.from_artifact(
        str(path),
        timestamp=_mtime(path),
        os=SupportedOs.WINDOWS,
        source="Minidump",
        crash_type="BSOD",
        summary=f"Kernel memory dump {path.name} written after a bugcheck.",
    )


# --- macOS ---

def parse_ips_report(path: Path) -> Optional[CrashRecord]:
    """``.ips`` files are a one-line JSON header followed by a JSON body."""
    text = _read_text(path)
    header_line, _, body_text = text.partition("\n")
    header = json.loads(header_line)
    if not isinstance(header, dict):
        return None
    try:
        body = json.loads(body_text) if body_text.strip() else {}
    except json.JSONDecodeError:
        body = {}
    if not isinstance(body, dict):
        body = {}

    bug_type = str(header.get("bug_type", ""))
    app = header.get("app_name") or header.get("name") or body.get("procName")
    exception = body.get("exception") if isinstance(body.get("exception"), dict) else {}
    code = exception.get("type") or exception.get("signal")
    if bug_type == "210" or "panic" in path.name.lower():
        crash_type = "Kernel Panic"
        code = code or (body.get("panicString") or "")[:120] or None
    elif bug_type == "288" or bug_type == "409":
        crash_type = "Hang"
    else:
        crash_type = "Application Crash"

    summary = f"{crash_type}: {app}" if app else crash_type
    return CrashRecord.from_artifact(
        str(path),
        timestamp=parse_timestamp(header.get("timestamp")) or _mtime(path),
        os=SupportedOs.MACOS,
        source="DiagnosticReports",
        crash_type=crash_type,
        code=str(code) if code else None,
        summary=summary,
        suspected_component=str(app) if app else None,
    )


def parse_crash_text(path: Path) -> Optional[CrashRecord]:
    """Legacy ``.crash``/``.panic``/``.diag`` text reports."""
    fields: Dict[str, str] = {}
    panic_line = None
    for line in _read_text(path).splitlines()[:200]:
        if panic_line is None and line.lower().startswith("panic("):
            panic_line = line.strip()
        if ":" in line:
            key, value = line.split(":", 1)
            key = key.strip()
            if key and key not in fields:
                fields[key] = value.strip()

    suffix = path.suffix.lower()
    process = fields.get("Process", "").split("[")[0].strip() or None
    if suffix == ".panic" or panic_line:
        crash_type = "Kernel Panic"
        code = panic_line[:120] if panic_line else None
        component = fields.get("Kernel Extensions in backtrace") or process
    elif suffix == ".diag":
        crash_type = fields.get("Event") or "Diagnostic"
        code = None
        component = process or fields.get("Command")
    else:
        crash_type = "Application Crash"
        code = fields.get("Exception Type")
        component = process

    return CrashRecord.from_artifact(
        str(path),
        timestamp=parse_timestamp(fields.get("Date/Time") or fields.get("Date")) or _mtime(path),
        os=SupportedOs.MACOS,
        source="DiagnosticReports",
        crash_type=crash_type,
        code=code,
        summary=f"{crash_type}: {component}" if component else crash_type,
        suspected_component=component,
    )


# --- Linux ---

def parse_apport_report(path: Path, zone: Optional[tzinfo] = None) -> Optional[CrashRecord]:
    """Apport reports are RFC822-style ``Key: value`` with space-indented continuations.

    ``Date`` carries no offset and is read in ``zone`` (host local when unset).
    """
    fields: Dict[str, str] = {}
    for line in _read_text(path).splitlines():
        # multi-line values (core dumps, stack traces) are not needed
        if line.startswith((" ", "\t")) or ":" not in line:
            continue
        key, value = line.split(":", 1)
        fields.setdefault(key.strip(), value.strip())
    if not fields:
        return None

    problem = fields.get("ProblemType", "Crash")
    exe = fields.get("ExecutablePath") or fields.get("Package")
    crash_type = "Kernel Oops" if "kernel" in problem.lower() else problem
    signal = fields.get("Signal")
    return CrashRecord.from_artifact(
        str(path),
        timestamp=parse_timestamp(fields.get("Date"), zone or resolve_tz()) or _mtime(path),
        os=SupportedOs.LINUX,
        source="apport",
        crash_type=crash_type,
        code=f"signal {signal}" if signal else None,
        summary=f"{crash_type}: {exe}" if exe else crash_type,
        suspected_component=os.path.basename(exe) if exe else None,
    )


def parse_coredumpctl(text: str) -> List[CrashRecord]:
    records = []
    entries = json.loads(text) if text.strip() else []
    if not isinstance(entries, list):
        return records
    for entry in entries:
        if not isinstance(entry, dict):
            continue
        usec = entry.get("time")
        exe = entry.get("exe") or "unknown"
        try:
            ts = datetime.fromtimestamp(int(usec) / 1_000_000, tz=timezone.utc)
        except (TypeError, ValueError, OverflowError, OSError):
            continue
        sig = entry.get("sig")
        records.append(CrashRecord.from_artifact(
            entry.get("filename") or f"coredump://{exe}@{usec}",
            timestamp=ts,
            os=SupportedOs.LINUX,
            source="coredump",
            crash_type="Core Dump",
            code=f"signal {sig}" if sig is not None else None,
            summary=f"Process {exe} (pid {entry.get('pid', '?')}) dumped core.",
            suspected_component=os.path.basename(str(exe)),
        ))
    return records


# --- scanner ---

def _windows_roots() -> Dict[str, List[Path]]:
    program_data = Path(os.getenv("ProgramData") or r"C:\ProgramData")
    local = os.getenv("LOCALAPPDATA")
    system_root = Path(os.getenv("SystemRoot") or r"C:\Windows")
    wer = [program_data / "Microsoft" / "Windows" / "WER"]
    if local:
        wer.append(Path(local) / "Microsoft" / "Windows" / "WER")
    return {
        "wer": [base / sub for base in wer for sub in ("ReportArchive", "ReportQueue")],
        "minidump": [system_root / "Minidump"],
        "memory_dump": [system_root / "MEMORY.DMP"],
    }


def _macos_roots() -> Dict[str, List[Path]]:
    return {"reports": [Path("/Library/Logs/DiagnosticReports"),
                        Path.home() / "Library" / "Logs" / "DiagnosticReports"]}


def _linux_roots() -> Dict[str, List[Path]]:
    return {"apport": [Path("/var/crash")]}


_DEFAULT_ROOTS = {
    SupportedOs.WINDOWS: _windows_roots,
    SupportedOs.MACOS: _macos_roots,
    SupportedOs.LINUX: _linux_roots,
}

_MAC_SUFFIXES = (".ips", ".crash", ".panic", ".diag")


@dataclass
class CrashArtifactScanner:
    """Finds crash artifacts on the host. Unreadable artifacts are logged and skipped."""

    host_os: SupportedOs = field(default_factory=detect_host_os)
    runner: CommandRunner = field(default_factory=CommandRunner)
    roots: Optional[Dict[str, List[Path]]] = None
    use_coredumpctl: bool = True
    zone: Optional[tzinfo] = None

    def __post_init__(self):
        if self.roots is None:
            self.roots = _DEFAULT_ROOTS[self.host_os]()

    def _parse(self, path: Path, parser) -> Optional[CrashRecord]:
        try:
            return parser(path)
        except (OSError, ValueError, UnicodeDecodeError) as e:
            logger.warning(f"Skipping unreadable crash artifact {path}: {e}")
            return None

    def candidates(self) -> List[Path]:
        """Artifact paths on disk, newest first."""
        found: List[Path] = []
        if self.host_os == SupportedOs.WINDOWS:
            for root in self.roots.get("wer", []):
                if root.is_dir():
                    found.extend(p for p in root.glob("*/Report.wer") if p.is_file())
            for root in self.roots.get("minidump", []):
                if root.is_dir():
                    found.extend(p for p in root.glob("*.dmp") if p.is_file())
            found.extend(p for p in self.roots.get("memory_dump", []) if p.is_file())
        elif self.host_os == SupportedOs.MACOS:
            for root in self.roots.get("reports", []):
                if root.is_dir():
                    found.extend(p for p in root.iterdir() if p.is_file() and p.suffix.lower() in _MAC_SUFFIXES)
        else:
            for root in self.roots.get("apport", []):
                if root.is_dir():
                    found.extend(p for p in root.glob("*.crash") if p.is_file())
        return _newest_first(found)

    def parse_path(self, path: Path) -> Optional[CrashRecord]:
        suffix = path.suffix.lower()
        if self.host_os == SupportedOs.WINDOWS:
            if path.name.lower() == "report.wer":
                return self._parse(path, parse_wer_report)
            return self._parse(path, minidump_record)
        if self.host_os == SupportedOs.MACOS:
            return self._parse(path, parse_ips_report if suffix == ".ips" else parse_crash_text)
        return self._parse(path, lambda p: parse_apport_report(p, self.zone))

    def coredumps(self) -> List[CrashRecord]:
        if self.host_os != SupportedOs.LINUX or not self.use_coredumpctl:
            return []
        try:
            code, out, err = self.runner.run(["coredumpctl", "list", "--json=short", "--no-pager"], timeout=30)
        except CommandError as e:
            logger.info(f"coredumpctl unavailable: {e}")
            return []
        if code != 0:
            # coredumpctl exits non-zero when there are no dumps
            logger.debug(f"coredumpctl exited with {code}: {err.strip()}")
            return []
        try:
            return parse_coredumpctl(out)
        except json.JSONDecodeError as e:
            logger.warning(f"Could not parse coredumpctl output: {e}")
            return []


def build_sample_crash(os_value: SupportedOs, now: Optional[datetime] = None) -> CrashRecord:
    """Deterministic demo crash for the given OS, stamped at ``now``."""
    ts = now or datetime.now(timezone.utc)
    if os_value == SupportedOs.WINDOWS:
        return CrashRecord.from_artifact(
            "C:\\Windows\\Minidump\\sample.dmp", timestamp=ts, os=SupportedOs.WINDOWS,
            source="WER", crash_type="BSOD", code="0x0000009F",
            summary="Bugcheck indicates DRIVER_POWER_STATE_FAILURE during resume.",
            suspected_component="nvlddmkm.sys",
        )
    if os_value == SupportedOs.MACOS:
        return CrashRecord.from_artifact(
            "/Library/Logs/DiagnosticReports/Kernel_sample.panic", timestamp=ts, os=SupportedOs.MACOS,
            source="DiagnosticReports", crash_type="Kernel Panic", code="panic(cpu 0 caller 0xffff...)",
            summary="Kernel panic appears related to GPU watchdog timeout.",
            suspected_component="AppleGPUWrangler",
        )
    return CrashRecord.from_artifact(
        "/var/crash/vmcore", timestamp=ts, os=SupportedOs.LINUX,
        source="kdump", crash_type="Kernel Panic", code="kernel panic - not syncing",
        summary="Kernel panic likely triggered by filesystem I/O timeout.",
        suspected_component="ext4",
    )
