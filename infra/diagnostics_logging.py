import logging
import time
from pathlib import Path
from typing import Optional, Union

from constants import DEFAULT_LOG_RETENTION_DAYS, LOG_FILE_PREFIX

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'

_HANDLER_TAG = "_hermes_handler"


def cleanup_old_logs(log_dir: Path, retention_days: int = DEFAULT_LOG_RETENTION_DAYS) -> int:
    """Deletes diagnostics log files older than the retention. Returns the count removed."""
    if not log_dir.is_dir():
        return 0

    removed = 0
    cutoff = time.time() - retention_days * 24 * 60 * 60
    for log_file in log_dir.glob(f"{LOG_FILE_PREFIX}_*.log"):
        try:
            if log_file.stat().st_mtime < cutoff:
                log_file.unlink()
                removed += 1
        except OSError as e:
            logging.getLogger(__name__).warning(f"Error deleting log {log_file.name}: {e}")
    return removed


def setup_logging(level: Union[str, int] = "INFO",
                  log_dir: Optional[Path] = None,
                  retention_days: int = DEFAULT_LOG_RETENTION_DAYS) -> Optional[Path]:
    """Configure root logging once.

    - Always logs to stderr.
    - When ``log_dir`` is given, also logs to a dated file there and prunes
      files older than ``retention_days``.

    Returns the active log file path, if any.
    """
    root = logging.getLogger()
    root.setLevel(level if isinstance(level, int) else str(level).upper())

    # Drop handlers from a previous call so repeated setup does not duplicate output
    for handler in list(root.handlers):
        if getattr(handler, _HANDLER_TAG, False):
            root.removeHandler(handler)
            handler.close()

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    stream = logging.StreamHandler()
    stream.setFormatter(formatter)
    setattr(stream, _HANDLER_TAG, True)
    root.addHandler(stream)

    log_file = None
    if log_dir is not None:
        log_dir.mkdir(parents=True, exist_ok=True)
        cleanup_old_logs(log_dir, retention_days)
        log_file = log_dir / f"{LOG_FILE_PREFIX}_{time.strftime('%Y%m%d')}.log"
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(formatter)
        setattr(file_handler, _HANDLER_TAG, True)
        root.addHandler(file_handler)

    # Set specific log levels
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    return log_file
