"""collectors package

Native log sources per host OS. ``select_collector`` picks the variant once at
startup; callers hold the returned instance instead of re-checking the OS.
"""

from typing import Optional

from collectors.base import (  # noqa: F401
    CollectionResult,
    Collector,
    CommandError,
    CommandRunner,
    RawRecord,
    detect_host_os,
    host_os_version,
)
from collectors.linux import JournalCollector
from collectors.macos import UnifiedLogCollector
from collectors.windows import WindowsEventLogCollector
from datamodels.events import SupportedOs

_COLLECTORS = {
    SupportedOs.WINDOWS: WindowsEventLogCollector,
    SupportedOs.LINUX: JournalCollector,
    SupportedOs.MACOS: UnifiedLogCollector,
}


def select_collector(host_os: Optional[SupportedOs] = None,
                     runner: Optional[CommandRunner] = None) -> Collector:
    return _COLLECTORS[host_os or detect_host_os()](runner=runner)
