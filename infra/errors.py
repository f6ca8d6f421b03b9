"""Error taxonomy shared by collectors, the cache store and the service layer."""
from typing import List, Optional


# Error code taxonomy
class ErrorCodes:
    # Client errors (4xx)
    INVALID_INPUT = "E.REQ.001"
    INVALID_DATE = "E.REQ.002"
    CRASH_NOT_FOUND = "E.REQ.003"
    MISSING_REQUIRED_FIELD = "E.REQ.004"

    # Server errors (5xx)
    PROCESSING_FAILED = "E.SRV.001"
    COLLECTION_FAILED = "E.SRV.002"
    STORAGE_ERROR = "E.SRV.003"
    COLLECTION_TIMEOUT = "E.SRV.004"


class HermesError(Exception):
    """Base error; ``error_code`` feeds the structured API response."""
    error_code = ErrorCodes.PROCESSING_FAILED


class ValidationError(HermesError, ValueError):
    """Malformed input rejected at the command boundary before any I/O."""
    error_code = ErrorCodes.INVALID_INPUT

    def __init__(self, message: str, error_code: Optional[str] = None):
        super().__init__(message)
        if error_code:
            self.error_code = error_code


class CollectorHardError(HermesError):
    """Zero events collected and at least one genuine collection failure."""
    error_code = ErrorCodes.COLLECTION_FAILED

    def __init__(self, message: str, errors: Optional[List[str]] = None, timed_out: bool = False):
        super().__init__(message)
        self.errors = list(errors or [])
        self.timed_out = timed_out
        if timed_out:
            self.error_code = ErrorCodes.COLLECTION_TIMEOUT


class CrashNotFoundError(HermesError, KeyError):
    error_code = ErrorCodes.CRASH_NOT_FOUND

    def __init__(self, crash_id: str):
        super().__init__(f"Crash not found: {crash_id}")
        self.crash_id = crash_id

    def __str__(self) -> str:
        return f"Crash not found: {self.crash_id}"


class StorageError(HermesError):
    """Custom storage error for cache and settings file operations."""
    error_code = ErrorCodes.STORAGE_ERROR
