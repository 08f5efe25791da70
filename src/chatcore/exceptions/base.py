"""
Domain and storage exceptions for the chat core.

Every error raised by a service or repository is a `ChatError`. Callers (a
transport layer, a worker, a test) only need to look at `error_code` to know
which kind of failure happened; `http_status()` and `to_payload()` exist so an
outer HTTP layer can map errors without knowing anything else about the core.
"""

from typing import Iterable


class ChatError(Exception):
    """
    Base exception for service/repository errors.

    - message: human-friendly message (safe to show to clients)
    - fields: optional list of field names related to the error (e.g., ['name'])
    - constraint: optional DB constraint name or identifier (for logs only)
    - error_code: canonical short code (e.g., 'not_found', 'forbidden') used by clients
    """

    # Map canonical error_code -> default HTTP status.
    ERROR_CODE_TO_STATUS = {
        "not_found": 404,
        "bad_request": 400,
        "invalid_field": 422,
        "forbidden": 403,
        "conflict": 409,
        "duplicate": 409,
        "unauthorized": 401,
        "internal": 500,
    }

    default_message = "Request failed"
    default_code: str | None = None

    def __init__(self, message: str | None = None, *, fields: Iterable[str] | None = None,
                 constraint: str | None = None, error_code: str | None = None):
        message = message or self.default_message
        super().__init__(message)
        self.message = message
        self.fields = list(fields) if fields else None
        self.constraint = constraint
        self.error_code = error_code or self.default_code

    def __str__(self) -> str:
        base = self.message
        parts = []
        if self.fields:
            parts.append(f"fields: {', '.join(self.fields)}")
        if self.constraint:
            parts.append(f"constraint: {self.constraint}")
        if self.error_code:
            parts.append(f"code: {self.error_code}")
        if parts:
            return f"{base} ({'; '.join(parts)})"
        return base

    def to_payload(self) -> dict:
        """
        Return a JSON-serializable dict suitable for responses.
        Standard shape:
            {
                "detail": "A human-friendly message",
                "code": "not_found",
                "fields": ["conversation_id"],
            }
        `constraint` is never part of the payload.
        """
        payload = {"detail": self.message}
        if self.error_code:
            payload["code"] = self.error_code
        if self.fields:
            payload["fields"] = list(self.fields)
        return payload

    def http_status(self) -> int:
        """Status code hint for this error; 400 when the code is unknown."""
        if self.error_code:
            return self.ERROR_CODE_TO_STATUS.get(self.error_code, 400)
        return 400


class NotFoundError(ChatError):
    """Entity missing or soft-deleted."""
    default_message = "Not found"
    default_code = "not_found"


class BadRequestError(ChatError):
    """Malformed input or an operation not applicable to the target."""
    default_message = "Bad request"
    default_code = "bad_request"


class InvalidFieldError(BadRequestError):
    """Raised when the caller passes unexpected/unknown fields to repository methods."""
    default_message = "Invalid field"
    default_code = "invalid_field"


class ForbiddenError(ChatError):
    """Caller lacks participancy or the required role."""
    default_message = "Forbidden"
    default_code = "forbidden"


class ConflictError(ChatError):
    """Operation conflicts with current state."""
    default_message = "Conflict"
    default_code = "conflict"


class DuplicateError(ConflictError):
    default_message = "Already exists"
    default_code = "duplicate"


class UnauthorizedError(ChatError):
    """Caller identity could not be established. Raised by the identity layer."""
    default_message = "Unauthorized"
    default_code = "unauthorized"


class RepositoryError(ChatError):
    """Opaque storage failure."""
    default_message = "Storage failure"
    default_code = "internal"


__all__ = [
    "ChatError",
    "NotFoundError",
    "BadRequestError",
    "InvalidFieldError",
    "ForbiddenError",
    "ConflictError",
    "DuplicateError",
    "UnauthorizedError",
    "RepositoryError",
]
