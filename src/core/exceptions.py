"""Custom exceptions for the application.

Every exception carries an ``ErrorKind`` so the HTTP layer can pick a status
code from an explicit table instead of inspecting the message text.
"""

from enum import Enum
from typing import Any, Dict, Mapping, Optional


class ErrorKind(str, Enum):
    """Category of a marketplace failure."""

    CONFIGURATION = "configuration"
    CONNECTION = "connection"
    NOT_FOUND = "not_found"
    PERMISSION = "permission"
    VALIDATION = "validation"
    CONFLICT = "conflict"
    TRACKING = "tracking"
    UNAUTHORIZED = "unauthorized"
    INTERNAL = "internal"


class BaseAPIException(Exception):
    """Base exception for all API exceptions."""

    kind: ErrorKind = ErrorKind.INTERNAL

    def __init__(
        self,
        message: str = "An error occurred",
        status_code: int = 500,
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)


class ConfigurationError(BaseAPIException):
    """Raised when no MongoDB connection string can be resolved."""

    kind = ErrorKind.CONFIGURATION

    def __init__(self, message: str = "Configuration error", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, 500, details)


class DatabaseConnectionError(BaseAPIException):
    """Raised when the datastore is unreachable or rejects the credentials."""

    kind = ErrorKind.CONNECTION

    def __init__(self, message: str = "Database connection failed", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, 503, details)


class ValidationError(BaseAPIException):
    """Raised when an identifier or payload is malformed."""

    kind = ErrorKind.VALIDATION

    def __init__(self, message: str = "Validation failed", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, 400, details)


class NotFoundError(BaseAPIException):
    """Raised when a resource is not found."""

    kind = ErrorKind.NOT_FOUND

    def __init__(self, message: str = "Resource not found", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, 404, details)


class UnauthorizedError(BaseAPIException):
    """Raised when a route needs a caller identity and none was sent."""

    kind = ErrorKind.UNAUTHORIZED

    def __init__(self, message: str = "Authentication required", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, 401, details)


class PermissionDeniedError(BaseAPIException):
    """Raised when the caller does not own the entry it tries to change."""

    kind = ErrorKind.PERMISSION

    def __init__(self, message: str = "Permission denied", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, 403, details)


class ConflictError(BaseAPIException):
    """Raised when there's a conflict with existing data."""

    kind = ErrorKind.CONFLICT

    def __init__(self, message: str = "Conflict", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, 409, details)


class InternalServerError(BaseAPIException):
    """Raised when the datastore fails an otherwise valid operation."""

    def __init__(self, message: str = "Internal server error", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, 500, details)


class TrackingError(BaseAPIException):
    """Raised internally when an install counter could not be adjusted.

    Never reaches a caller: install tracking failures are logged and dropped.
    """

    kind = ErrorKind.TRACKING

    def __init__(self, message: str = "Install tracking failed", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, 500, details)


# Status tables per route family. Anything not listed maps to 500.
MUTATION_STATUS_CODES: Mapping[ErrorKind, int] = {
    ErrorKind.PERMISSION: 403,
    ErrorKind.NOT_FOUND: 404,
}

LOOKUP_STATUS_CODES: Mapping[ErrorKind, int] = {
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.VALIDATION: 400,
}

REVIEW_STATUS_CODES: Mapping[ErrorKind, int] = {
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.VALIDATION: 400,
    ErrorKind.CONFLICT: 409,
}


def status_for(exc: Exception, table: Mapping[ErrorKind, int], default: int = 500) -> int:
    """Pick the HTTP status for *exc* from a kind-to-status table."""
    kind = getattr(exc, "kind", ErrorKind.INTERNAL)
    return table.get(kind, default)
