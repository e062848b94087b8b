"""
Error taxonomy for the catalogue core.

Every failure a component can report is a ``CatalogError`` subclass tagged
with an ``ErrorKind``. The HTTP boundary maps kinds to status codes; message
text is for humans only and is never used for dispatch.
"""

from enum import Enum
from typing import Any, Dict, Optional


class ErrorKind(str, Enum):
    """Closed set of error kinds surfaced by the catalogue."""
    VALIDATION = "validation_error"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    AUTH_HEADER_MISSING = "auth_header_missing"
    INVALID_CREDENTIAL = "invalid_credential"
    FORBIDDEN = "forbidden"
    INVALID_REFERENCE = "invalid_reference"
    UNEXPECTED = "unexpected"


class CatalogError(Exception):
    """Base class for all catalogue errors."""

    kind: ErrorKind = ErrorKind.UNEXPECTED
    default_message: str = "An unexpected error occurred"

    def __init__(self, message: Optional[str] = None, **context: Any):
        self.message = message or self.default_message
        self.context: Dict[str, Any] = context
        super().__init__(self.message)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(kind={self.kind.value!r}, message={self.message!r})"


class CatalogValidationError(CatalogError):
    """Malformed or missing input."""
    kind = ErrorKind.VALIDATION
    default_message = "Invalid input"


class NotFoundError(CatalogError):
    """The addressed entity does not exist."""
    kind = ErrorKind.NOT_FOUND
    default_message = "Resource not found"


class ConflictError(CatalogError):
    """Duplicate unique key, or the entity changed underneath a versioned write."""
    kind = ErrorKind.CONFLICT
    default_message = "Resource already exists"


class AuthHeaderMissingError(CatalogError):
    kind = ErrorKind.AUTH_HEADER_MISSING
    default_message = "Authorization header missing or malformed"


class InvalidCredentialError(CatalogError):
    kind = ErrorKind.INVALID_CREDENTIAL
    default_message = "Invalid or expired token"


class ForbiddenError(CatalogError):
    kind = ErrorKind.FORBIDDEN
    default_message = "You do not have the required permissions"


class InvalidReferenceError(CatalogError):
    """A relationship target does not exist."""
    kind = ErrorKind.INVALID_REFERENCE
    default_message = "Referenced resource does not exist"
