"""
playfield/errors.py
Error envelope shared by every non-2xx response.

    {"success": false, "error": ..., "message": ..., "code": ..., "details": {...}}

`details` is omitted when empty. Status discipline:
400 bad input or a reference into the wrong parent, 401 no/expired token,
403 not allowed, 404 unknown id, 409 state/ordering/capacity/race,
422 request body shape, 429 rate limited, 500 internal only.
"""
import logging
import uuid
from typing import Optional, Dict, Any

from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class ErrorCode:
    """Machine-readable codes carried in the `code` field"""

    VALIDATION_ERROR = "VALIDATION_ERROR"
    INVALID_INPUT = "INVALID_INPUT"
    INVALID_REFERENCE = "INVALID_REFERENCE"

    AUTH_REQUIRED = "AUTH_REQUIRED"
    AUTH_INVALID = "AUTH_INVALID"

    FORBIDDEN = "FORBIDDEN"
    PERMISSION_DENIED = "PERMISSION_DENIED"

    NOT_FOUND = "NOT_FOUND"

    # Lifecycle + ledger
    STATE_TRANSITION_INVALID = "STATE_TRANSITION_INVALID"
    OUT_OF_ORDER = "OUT_OF_ORDER"
    CONCURRENCY_CONFLICT = "CONCURRENCY_CONFLICT"

    # Tournament registration
    REGISTRATION_NOT_OPEN = "REGISTRATION_NOT_OPEN"
    REGISTRATION_DEADLINE_PASSED = "REGISTRATION_DEADLINE_PASSED"
    TOURNAMENT_FULL = "TOURNAMENT_FULL"
    ALREADY_REGISTERED = "ALREADY_REGISTERED"

    RATE_LIMITED = "RATE_LIMITED"
    INTERNAL_ERROR = "INTERNAL_ERROR"


def error_body(error: str, message: str, code: str, details: Optional[Any] = None) -> Dict[str, Any]:
    body = {"success": False, "error": error, "message": message, "code": code}
    if details:
        body["details"] = details
    return body


class APIError(Exception):
    """An error that is already an HTTP response: status plus envelope."""

    def __init__(self, status_code: int, error: str, message: str, code: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.status_code = status_code
        self.error = error
        self.message = message
        self.code = code
        self.details = details

    def to_dict(self) -> Dict[str, Any]:
        return error_body(self.error, self.message, self.code, self.details)

    def to_response(self) -> JSONResponse:
        return JSONResponse(status_code=self.status_code, content=self.to_dict())


# Bare HTTP statuses (framework 401s, unknown routes, ...) -> (error, code)
STATUS_DEFAULTS = {
    400: ("Bad Request", ErrorCode.INVALID_INPUT),
    401: ("Unauthorized", ErrorCode.AUTH_REQUIRED),
    403: ("Forbidden", ErrorCode.FORBIDDEN),
    404: ("Not Found", ErrorCode.NOT_FOUND),
    405: ("Method Not Allowed", ErrorCode.INVALID_INPUT),
    409: ("Conflict", ErrorCode.STATE_TRANSITION_INVALID),
    422: ("Validation Error", ErrorCode.VALIDATION_ERROR),
    429: ("Too Many Requests", ErrorCode.RATE_LIMITED),
}


def error_for_status(status_code: int, message: str, details: Optional[Dict] = None) -> APIError:
    error, code = STATUS_DEFAULTS.get(status_code, ("Internal Error", ErrorCode.INTERNAL_ERROR))
    return APIError(status_code=status_code, error=error, message=message, code=code, details=details)


def internal_error(error: Exception, context: str = "") -> APIError:
    """
    Log an unexpected exception under a short reference id and return a
    500 that exposes only that id.
    """
    ref = uuid.uuid4().hex[:8]
    logger.error(f"[{ref}] Unhandled {type(error).__name__} in {context}: {error}", exc_info=error)
    return APIError(
        status_code=500,
        error="Internal Error",
        message="Something went wrong on our side. Quote the reference when reporting it.",
        code=ErrorCode.INTERNAL_ERROR,
        details={"ref": ref},
    )
