# datamodels/events.py
from __future__ import annotations
import hashlib
import json
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional


class SupportedOs(str, Enum):
    WINDOWS = "windows"
    LINUX = "linux"
    MACOS = "macos"

    @classmethod
    def parse(cls, value: Any, default: "SupportedOs" = None) -> "SupportedOs":
        key = str(value or "").strip().lower()
        if "mac" in key or "darwin" in key or "osx" in key:
            return cls.MACOS
        if "win" in key:
            return cls.WINDOWS
        if "lin" in key:
            return cls.LINUX
        return default or cls.LINUX


class EventSeverity(str, Enum):
    INFORMATION = "information"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]

    def __lt__(self, other):
        if not isinstance(other, EventSeverity):
            return NotImplemented
        return self.rank < other.rank

    def __le__(self, other):
        if not isinstance(other, EventSeverity):
            return NotImplemented
        return self.rank <= other.rank

    def __gt__(self, other):
        if not isinstance(other, EventSeverity):
            return NotImplemented
        return self.rank > other.rank

    def __ge__(self, other):
        if not isinstance(other, EventSeverity):
            return NotImplemented
        return self.rank >= other.rank

    @classmethod
    def parse(cls, value: Any) -> "EventSeverity":
        """Fuzzy match used for imported and loosely typed input. Never raises."""
        key = str(value or "").strip().lower()
        if "crit" in key or "fatal" in key or "fault" in key:
            return cls.CRITICAL
        if "err" in key:
            return cls.ERROR
        if "warn" in key:
            return cls.WARNING
        return cls.INFORMATION


_SEVERITY_RANK = {
    EventSeverity.INFORMATION: 0,
    EventSeverity.WARNING: 1,
    EventSeverity.ERROR: 2,
    EventSeverity.CRITICAL: 3,
}


class EventCategory(str, Enum):
    APPLICATION = "application"
    SECURITY = "security"
    SYSTEM = "system"
    AUDIT = "audit"
    OTHER = "other"

    @classmethod
    def parse(cls, value: Any) -> "EventCategory":
        key = str(value or "").strip().lower()
        if not key:
            return cls.OTHER
        for member in cls:
            if key == member.value:
                return member
        if "audit" in key:
            return cls.AUDIT
        if "app" in key:
            return cls.APPLICATION
        if "sec" in key or "auth" in key:
            return cls.SECURITY
        if "sys" in key or "kernel" in key:
            return cls.SYSTEM
        return cls.OTHER


class WindowsChannel(str, Enum):
    APPLICATION = "Application"
    SYSTEM = "System"
    SECURITY = "Security"

    @classmethod
    def parse(cls, value: Any) -> Optional["WindowsChannel"]:
        key = str(value or "").strip().lower()
        for member in cls:
            if member.value.lower() == key:
                return member
        return None


def utc(ts: datetime) -> datetime:
    """Return ``ts`` as an aware UTC datetime (naive values are taken as UTC)."""
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


def stable_id(*parts: Any) -> str:
    payload = json.dumps([str(p) if p is not None else None for p in parts], ensure_ascii=False)
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class NormalizedEvent:
    id: str
    timestamp: datetime                 # aware UTC
    os: SupportedOs
    log_name: str                       # Log Name / Subsystem / Unit depending on os
    category: EventCategory
    provider: str
    severity: EventSeverity
    message: str
    event_id: Optional[int] = None      # Windows only
    raw: Optional[Dict[str, Any]] = None
    imported: bool = False

    def to_dict(self, include_raw: bool = False) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "id": self.id,
            "timestamp": self.timestamp.isoformat(),
            "os": self.os.value,
            "logName": self.log_name,
            "category": self.category.value,
            "provider": self.provider,
            "eventId": self.event_id,
            "severity": self.severity.value,
            "message": self.message,
            "imported": self.imported,
        }
        if include_raw and self.raw is not None:
            out["raw"] = self.raw
        return out


def new_imported_id() -> str:
    return str(uuid.uuid4())


@dataclass(frozen=True)
class CrashRecord:
    id: str
    timestamp: datetime
    os: SupportedOs
    source: str                         # WER, DiagnosticReports, apport, ...
    crash_type: str
    summary: str
    code: Optional[str] = None
    suspected_component: Optional[str] = None
    raw_path: Optional[str] = None
    imported: bool = False

    @classmethod
    def from_artifact(cls, raw_path: str, **fields: Any) -> "CrashRecord":
        """Build a record whose identity is derived from its artifact path."""
        return cls(id=stable_id("crash", raw_path), raw_path=raw_path, **fields)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "timestamp": self.timestamp.isoformat(),
            "os": self.os.value,
            "source": self.source,
            "crashType": self.crash_type,
            "code": self.code,
            "summary": self.summary,
            "suspectedComponent": self.suspected_component,
            "rawPath": self.raw_path,
            "imported": self.imported,
        }


@dataclass(frozen=True)
class Coverage:
    start: datetime
    end: datetime
    count: int


@dataclass
class SyncResult:
    collected: int
    warnings: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class QueryResult:
    events: List[NormalizedEvent]
    truncated: int = 0


@dataclass(frozen=True)
class PreCrashResult:
    events: List[NormalizedEvent]
    mode = "strict"

    @property
    def is_fallback(self) -> bool:
        return self.mode == "fallback"


@dataclass(frozen=True)
class StrictPreCrash(PreCrashResult):
    """Events inside [crash - window, crash] only."""
    mode = "strict"


@dataclass(frozen=True)
class FallbackPreCrash(PreCrashResult):
    """Strict window was empty; events come from the symmetric correlated window."""
    mode = "fallback"
