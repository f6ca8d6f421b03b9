"""Global error handling for the FastAPI service."""
import logging
from datetime import datetime, timezone

from fastapi import HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from infra.errors import (
    CollectorHardError,
    CrashNotFoundError,
    ErrorCodes,
    HermesError,
    StorageError,
    ValidationError,
)

logger = logging.getLogger(__name__)


def create_error_response(error_code: str, message: str, status_code: int = 500, **extra) -> JSONResponse:
    """Create standardized error response."""
    content = {
        "success": False,
        "error_code": error_code,
        "message": message,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
    content.update(extra)
    return JSONResponse(status_code=status_code, content=content)


class GlobalErrorHandler:
    """Maps the error taxonomy onto structured JSON responses."""

    def __init__(self, app):
        self.app = app
        self.setup_handlers()

    def setup_handlers(self):
        """Setup global exception handlers."""

        @self.app.exception_handler(HTTPException)
        async def http_exception_handler(request: Request, exc: HTTPException):
            logger.warning(f"HTTP {exc.status_code}: {exc.detail}")
            if isinstance(exc.detail, dict):
                return JSONResponse(status_code=exc.status_code, content=exc.detail)
            return create_error_response(ErrorCodes.PROCESSING_FAILED, str(exc.detail), exc.status_code)

        @self.app.exception_handler(RequestValidationError)
        async def request_validation_handler(request: Request, exc: RequestValidationError):
            logger.warning(f"Validation error: {exc.errors()}")
            return create_error_response(ErrorCodes.MISSING_REQUIRED_FIELD, "Invalid request data", 422)

        @self.app.exception_handler(ValidationError)
        async def validation_handler(request: Request, exc: ValidationError):
            logger.warning(f"Rejected input on {request.url.path}: {exc}")
            return create_error_response(exc.error_code, str(exc), 400)

        @self.app.exception_handler(CrashNotFoundError)
        async def not_found_handler(request: Request, exc: CrashNotFoundError):
            return create_error_response(exc.error_code, str(exc), 404)

        @self.app.exception_handler(CollectorHardError)
        async def collector_handler(request: Request, exc: CollectorHardError):
            logger.error(f"Collection failed on {request.url.path}: {exc}")
            return create_error_response(exc.error_code, str(exc), 502, errors=exc.errors)

        @self.app.exception_handler(StorageError)
        async def storage_handler(request: Request, exc: StorageError):
            logger.error(f"Storage failure on {request.url.path}: {exc}")
            return create_error_response(exc.error_code, "Local storage operation failed.", 500)

        @self.app.exception_handler(HermesError)
        async def hermes_handler(request: Request, exc: HermesError):
            logger.error(f"Request failed on {request.url.path}: {exc}")
            return create_error_response(exc.error_code, str(exc), 500)

        @self.app.exception_handler(Exception)
        async def general_exception_handler(request: Request, exc: Exception):
            # Full traceback goes to the log only
            logger.error(f"Unhandled exception: {str(exc)}", exc_info=True)
            return create_error_response(ErrorCodes.PROCESSING_FAILED, "An internal error occurred", 500)
