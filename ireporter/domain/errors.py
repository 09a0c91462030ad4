"""
Error taxonomy for iReporter.

Every failure surfaced to a client is one of these kinds. Each carries the
HTTP status it maps to and a stable code the frontend can switch on; the
handlers registered in ``ireporter.main`` render them uniformly.
"""
from typing import Optional


class IReporterError(Exception):
    """Base class for all domain errors."""
    status_code: int = 500
    code: str = "Error"
    default_message: str = "Request failed"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class DuplicateEmail(IReporterError):
    status_code = 409
    code = "DuplicateEmail"
    default_message = "Email already registered"


class InvalidCredentials(IReporterError):
    # Same message for unknown email and wrong password
    status_code = 401
    code = "InvalidCredentials"
    default_message = "Invalid email or password"


class Unauthenticated(IReporterError):
    status_code = 401
    code = "Unauthenticated"
    default_message = "Not authenticated"


class Forbidden(IReporterError):
    status_code = 403
    code = "Forbidden"
    default_message = "Not authorized to perform this action"


class NotFound(IReporterError):
    status_code = 404
    code = "NotFound"
    default_message = "Resource not found"


class InvalidTransition(IReporterError):
    status_code = 409
    code = "InvalidTransition"
    default_message = "Status transition not allowed"

    def __init__(self, current: Optional[str] = None, target: Optional[str] = None, message: Optional[str] = None):
        self.current = current
        self.target = target
        if message is None and current is not None and target is not None:
            message = f"Cannot move report from '{current}' to '{target}'"
        super().__init__(message)


class ValidationFailed(IReporterError, ValueError):
    # Also a ValueError so pydantic validators report it as a field error
    status_code = 422
    code = "ValidationFailed"
    default_message = "Request validation failed"


class StorageFailure(IReporterError):
    """Unexpected persistence error. Never retried."""
    status_code = 500
    code = "StorageFailure"
    default_message = "Storage operation failed"
