# analysis/normalizer.py
from __future__ import annotations
import os
from typing import Any, Dict, Iterable, List, Optional

from collectors.base import RawRecord
from constants import NO_MESSAGE, UNKNOWN_PROVIDER
from datamodels.events import (
    EventCategory,
    EventSeverity,
    NormalizedEvent,
    SupportedOs,
    new_imported_id,
    stable_id,
)
from utils.timeutil import parse_timestamp, utc_now


def _text(payload: Dict[str, Any], key: str) -> Optional[str]:
    value = payload.get(key)
    if value is None or isinstance(value, (dict, list)):
        return None
    value = str(value)
    return value if value.strip() else None


def _first(*values: Optional[str]) -> Optional[str]:
    for v in values:
        if v is not None and v.strip():
            return v
    return None


def _message(value: Optional[str]) -> str:
    return value if value and value.strip() else NO_MESSAGE


_INT64_MAX = 2 ** 63 - 1
_WINDOWS_EVENT_ID_MAX = 65535


def _int_or_none(value: Any, upper: int = _INT64_MAX) -> Optional[int]:
    """Non-negative int within ``upper`` (SQLite INTEGER range by default), else None."""
    if value is None or isinstance(value, bool):
        return None
    try:
        n = int(value)
    except (TypeError, ValueError, OverflowError):
        return None
    return n if 0 <= n <= upper else None


def _keyword_category(values: Iterable[Optional[str]], security_words, system_words) -> EventCategory:
    lower = " ".join(v for v in values if v).lower()
    if "audit" in lower:
        return EventCategory.AUDIT
    if any(w in lower for w in security_words):
        return EventCategory.SECURITY
    if any(w in lower for w in system_words):
        return EventCategory.SYSTEM
    return EventCategory.APPLICATION


# --- Windows ---

_WINDOWS_LEVELS = {1: EventSeverity.CRITICAL, 2: EventSeverity.ERROR, 3: EventSeverity.WARNING}


def _windows_severity(display: Optional[str], level: Any) -> EventSeverity:
    if display:
        lower = display.lower()
        if "critical" in lower:
            return EventSeverity.CRITICAL
        if "error" in lower or "audit failure" in lower:
            return EventSeverity.ERROR
        if "warning" in lower:
            return EventSeverity.WARNING
        return EventSeverity.INFORMATION
    return _WINDOWS_LEVELS.get(_int_or_none(level), EventSeverity.INFORMATION)


def _windows_category(log_name: str) -> EventCategory:
    lower = log_name.lower()
    if "security" in lower:
        return EventCategory.SECURITY
    if "system" in lower:
        return EventCategory.SYSTEM
    return EventCategory.APPLICATION


def _normalize_windows(raw: RawRecord) -> NormalizedEvent:
    p = raw.payload
    log_name = _first(_text(p, "LogName"), raw.channel) or "Application"
    provider = _text(p, "ProviderName") or UNKNOWN_PROVIDER
    event_id = _int_or_none(p.get("Id"), _WINDOWS_EVENT_ID_MAX)
    ts = parse_timestamp(p.get("TimeCreated")) or raw.collected_at
    message = _message(_text(p, "Message"))
    record_id = _text(p, "RecordId")
    if record_id is not None:
        ident = stable_id(raw.os.value, log_name, record_id)
    else:
        ident = stable_id(raw.os.value, ts.isoformat(), log_name, provider, event_id, message)
    return NormalizedEvent(
        id=ident, timestamp=ts, os=SupportedOs.WINDOWS, log_name=log_name,
        category=_windows_category(log_name), provider=provider, event_id=event_id,
        severity=_windows_severity(_text(p, "LevelDisplayName"), p.get("Level")),
        message=message, raw=p,
    )


# --- Linux journal ---

def _journal_severity(priority: Any) -> EventSeverity:
    n = _int_or_none(priority)
    if n is None:
        return EventSeverity.INFORMATION
    if n <= 2:
        return EventSeverity.CRITICAL
    if n == 3:
        return EventSeverity.ERROR
    if n == 4:
        return EventSeverity.WARNING
    return EventSeverity.INFORMATION


def _journal_timestamp(p: Dict[str, Any]):
    raw = p.get("__REALTIME_TIMESTAMP", p.get("_SOURCE_REALTIME_TIMESTAMP"))
    micros = _int_or_none(raw)
    if micros is None:
        return None
    return parse_timestamp(micros / 1_000_000)


def _normalize_linux(raw: RawRecord) -> NormalizedEvent:
    p = raw.payload
    identifier = _text(p, "SYSLOG_IDENTIFIER")
    comm = _text(p, "_COMM")
    unit = _text(p, "_SYSTEMD_UNIT")
    transport = _text(p, "_TRANSPORT")
    exe = _text(p, "_EXE")

    log_name = _first(identifier, comm, unit, transport) or "journal"
    provider = _first(comm, identifier, os.path.basename(exe) if exe else None) or "unknown"
    category = _keyword_category(
        [identifier, comm, unit, transport, provider],
        security_words=("auth", "ssh", "sudo", "security", "polkit"),
        system_words=("kernel", "systemd", "dbus", "udev"),
    )
    ts = _journal_timestamp(p) or raw.collected_at
    message = _message(_text(p, "MESSAGE"))
    cursor = _text(p, "__CURSOR")
    if cursor is not None:
        ident = stable_id(raw.os.value, cursor)
    else:
        ident = stable_id(raw.os.value, ts.isoformat(), log_name, provider, None, message)
    return NormalizedEvent(
        id=ident, timestamp=ts, os=SupportedOs.LINUX, log_name=log_name, category=category,
        provider=provider, severity=_journal_severity(_first(_text(p, "PRIORITY"), _text(p, "SYSLOG_PRIORITY"))),
        message=message, raw=p,
    )


# --- macOS unified log ---

def _unified_severity(level: Optional[str]) -> EventSeverity:
    lower = (level or "default").lower()
    if "fault" in lower or "critical" in lower:
        return EventSeverity.CRITICAL
    if "error" in lower:
        return EventSeverity.ERROR
    if "warn" in lower:
        return EventSeverity.WARNING
    return EventSeverity.INFORMATION


def _normalize_macos(raw: RawRecord) -> NormalizedEvent:
    p = raw.payload
    subsystem = _text(p, "subsystem")
    category_name = _text(p, "category")
    image = _text(p, "processImagePath")
    process = _first(_text(p, "process"), os.path.basename(image) if image else None)
    sender_path = _text(p, "senderImagePath")
    sender = _first(_text(p, "sender"), os.path.basename(sender_path) if sender_path else None)

    log_name = _first(subsystem, category_name, process, sender) or "system"
    provider = _first(process, sender, subsystem) or "unknown"
    category = _keyword_category(
        [category_name, subsystem, provider],
        security_words=("auth", "security", "sandbox", "tcc"),
        system_words=("kernel", "system"),
    )
    ts = parse_timestamp(p.get("timestamp")) or raw.collected_at
    message = _message(_first(_text(p, "eventMessage"), _text(p, "message"), _text(p, "formattedMessage")))
    trace_id = _text(p, "traceID")
    mach_ts = _text(p, "machTimestamp")
    if trace_id is not None and mach_ts is not None:
        ident = stable_id(raw.os.value, trace_id, mach_ts, _text(p, "processID"))
    else:
        ident = stable_id(raw.os.value, ts.isoformat(), log_name, provider, None, message)
    return NormalizedEvent(
        id=ident, timestamp=ts, os=SupportedOs.MACOS, log_name=log_name, category=category,
        provider=provider, severity=_unified_severity(_first(_text(p, "messageType"), _text(p, "level"))),
        message=message, raw=p,
    )


_BY_OS = {
    SupportedOs.WINDOWS: _normalize_windows,
    SupportedOs.LINUX: _normalize_linux,
    SupportedOs.MACOS: _normalize_macos,
}


def normalize(raw: RawRecord, host_os: Optional[SupportedOs] = None) -> NormalizedEvent:
    """Map one platform record into the canonical schema. Never raises on malformed payloads."""
    return _BY_OS[host_os or raw.os](raw)


def normalize_all(records: Iterable[RawRecord], host_os: Optional[SupportedOs] = None) -> List[NormalizedEvent]:
    return [normalize(r, host_os) for r in records]


def normalize_imported(payload: Dict[str, Any], host_os: SupportedOs, index: int = 0) -> NormalizedEvent:
    """Loosely typed exported record (JSON/CSV row) -> imported event."""
    def pick(*keys):
        for k in keys:
            v = payload.get(k)
            if v is not None and str(v).strip():
                return v
        return None

    ts = parse_timestamp(pick("timestamp", "Timestamp")) or utc_now()
    return NormalizedEvent(
        id=new_imported_id(),
        timestamp=ts,
        os=SupportedOs.parse(pick("os"), default=host_os),
        log_name=str(pick("logName", "logname", "log_name") or "Imported"),
        category=EventCategory.parse(pick("category")),
        provider=str(pick("provider") or "import"),
        event_id=_int_or_none(pick("eventId", "eventid", "event_id")),
        severity=EventSeverity.parse(pick("severity")),
        message=str(pick("message") or f"Imported event {index + 1}"),
        raw=dict(payload),
        imported=True,
    )
