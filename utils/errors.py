"""Error taxonomy shared by the lifecycle core and the JSON blueprints."""
from typing import Any, Dict, Optional


class ComplaintDeskError(Exception):
    """Base error; rendered as a JSON envelope by the app error handler."""

    error_code: str = "COMPLAINT_DESK_ERROR"
    http_status: int = 400

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None, error_code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        if error_code:
            self.error_code = error_code

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": {
                "code": self.error_code,
                "message": self.message,
                "details": self.details,
            }
        }


class ValidationError(ComplaintDeskError):
    """Missing or malformed required field."""

    error_code = "VALIDATION_ERROR"
    http_status = 400

    @classmethod
    def from_form(cls, form) -> "ValidationError":
        """Collapse WTForms field errors into one error, keyed by field name."""
        fields = {name: list(messages) for name, messages in form.errors.items()}
        first = next(iter(fields.values()), ["Invalid input."])
        return cls(first[0] if first else "Invalid input.", details={"fields": fields})


class AuthenticationError(ComplaintDeskError):
    """Missing session or bad credentials."""

    error_code = "AUTHENTICATION_REQUIRED"
    http_status = 401


class AuthorizationError(ComplaintDeskError):
    """Actor role is not permitted to perform the requested action."""

    error_code = "AUTHORIZATION_ERROR"
    http_status = 403


class NotFoundError(ComplaintDeskError):
    error_code = "NOT_FOUND"
    http_status = 404


class ConflictError(ComplaintDeskError):
    error_code = "CONFLICT"
    http_status = 409


class InvalidTransitionError(ConflictError):
    """Requested action is not an outgoing edge of the complaint's current status."""

    error_code = "INVALID_TRANSITION"


class ConcurrentModificationError(ConflictError):
    """The complaint changed between read and write."""

    error_code = "CONCURRENT_MODIFICATION"

    def __init__(self, message: str = "Complaint state changed, please refresh.", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)


class RateLimitError(ComplaintDeskError):
    error_code = "RATE_LIMITED"
    http_status = 429


class DependencyError(ComplaintDeskError):
    """Storage, email or identity collaborator failure."""

    error_code = "DEPENDENCY_ERROR"
    http_status = 503


class DuplicateReferenceError(ConflictError):
    """Generated reference number already exists; callers retry with a fresh one."""

    error_code = "DUPLICATE_REFERENCE"
