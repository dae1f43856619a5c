"""
playfield/exceptions.py
Domain exceptions raised by the service layer.

Every service operation either commits all of its writes or raises one of
these after rolling back. The HTTP layer renders them through the handler
registered in main.py.
"""
from typing import Any, Dict, Optional

from playfield.errors import ErrorCode, error_body


class PlayfieldError(Exception):
    """Base exception for playfield domain errors"""
    status_code: int = 500
    code: str = ErrorCode.INTERNAL_ERROR
    error: str = "Internal Error"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return error_body(self.error, self.message, self.code, self.details)


class ValidationError(PlayfieldError):
    """
    Raised when input is malformed or internally inconsistent.

    Examples:
    - Wicket recorded without a dismissal type
    - open_individual challenge carrying a sender team
    """
    status_code = 400
    code = ErrorCode.VALIDATION_ERROR
    error = "Validation Error"


class InvalidStateError(PlayfieldError):
    """Raised when a transition is not permitted from the current state."""
    status_code = 409
    code = ErrorCode.STATE_TRANSITION_INVALID
    error = "Invalid State"

    def __init__(
        self,
        message: str,
        current_state: Optional[str] = None,
        action: Optional[str] = None,
    ):
        details = None
        if current_state is not None:
            details = {"current_state": current_state, "action": action}
        super().__init__(message, details)
        self.current_state = current_state
        self.action = action


class InvalidReferenceError(PlayfieldError):
    """
    Raised when a referenced entity does not belong to the expected parent.

    Examples:
    - Winning team that is not one of the match's teams
    - Bowler who is not in the bowling side's lineup
    """
    status_code = 400
    code = ErrorCode.INVALID_REFERENCE
    error = "Invalid Reference"


class OrderingError(PlayfieldError):
    """Raised when a delivery is recorded out of logical sequence."""
    status_code = 409
    code = ErrorCode.OUT_OF_ORDER
    error = "Ordering Error"


class NotFoundError(PlayfieldError):
    """Raised when a referenced aggregate doesn't exist."""
    status_code = 404
    code = ErrorCode.NOT_FOUND
    error = "Not Found"

    def __init__(self, resource: str, identifier: Any = None):
        message = f"{resource} not found"
        if identifier is not None:
            message = f"{resource} with id '{identifier}' not found"
        super().__init__(message)
        self.resource = resource
        self.identifier = identifier


class ForbiddenError(PlayfieldError):
    """Raised when the acting user may not perform the operation."""
    status_code = 403
    code = ErrorCode.FORBIDDEN
    error = "Forbidden"


class ConcurrencyConflictError(PlayfieldError):
    """
    Raised when a transaction lost a race on shared state.
    The caller may retry.
    """
    status_code = 409
    code = ErrorCode.CONCURRENCY_CONFLICT
    error = "Conflict"


# ================= TOURNAMENT REGISTRATION =================

class RegistrationError(PlayfieldError):
    """Base for tournament registration precondition failures."""
    status_code = 409
    error = "Registration Rejected"


class NotOpenError(RegistrationError):
    code = ErrorCode.REGISTRATION_NOT_OPEN


class DeadlineExpiredError(RegistrationError):
    code = ErrorCode.REGISTRATION_DEADLINE_PASSED


class CapacityExceededError(RegistrationError):
    code = ErrorCode.TOURNAMENT_FULL


class AlreadyRegisteredError(RegistrationError):
    code = ErrorCode.ALREADY_REGISTERED
