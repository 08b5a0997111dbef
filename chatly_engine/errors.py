"""
Error taxonomy for the scoring engine.

Every failure that crosses a service boundary is one of the classes below.
`recoverable` tells the caller whether retrying the same request can succeed.
"""

from __future__ import annotations


class ChatlyError(Exception):
    """Base exception for engine errors."""

    default_code = "INTERNAL_ERROR"
    default_recoverable = False

    def __init__(self, message: str, code: str | None = None, recoverable: bool | None = None):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.recoverable = self.default_recoverable if recoverable is None else recoverable

    def __str__(self) -> str:
        return f"{self.message} (code={self.code})"


class NotFoundError(ChatlyError):
    default_code = "NOT_FOUND"


class PermissionDeniedError(ChatlyError):
    default_code = "PERMISSION_DENIED"


class RateLimitedError(ChatlyError):
    """Raised on admission overflow or request-count limits."""

    default_code = "RATE_LIMITED"
    default_recoverable = True

    def __init__(
        self,
        message: str,
        key: str | None = None,
        capacity: int | None = None,
        queue_depth: int | None = None,
        code: str | None = None,
    ):
        super().__init__(message, code=code)
        self.key = key
        self.capacity = capacity
        self.queue_depth = queue_depth


class DuplicateReportError(RateLimitedError):
    """A reporter already reported this user today."""

    default_code = "DUPLICATE_REPORT"
    default_recoverable = False

    def __init__(self, reporter_id: str, reported_user_id: str, day_bucket: str):
        super().__init__(
            "You can only report a user once per day",
            key=f"{reporter_id}:{reported_user_id}:{day_bucket}",
            capacity=1,
        )
        self.reporter_id = reporter_id
        self.reported_user_id = reported_user_id
        self.day_bucket = day_bucket


class RequestTimeoutError(ChatlyError):
    default_code = "TIMEOUT"
    default_recoverable = True


class InputValidationError(ChatlyError):
    default_code = "VALIDATION_ERROR"


class ModerationRejectedError(ChatlyError):
    """Terminal rejection of a message by content moderation."""

    default_code = "MODERATION_REJECTED"

    def __init__(
        self,
        message: str,
        reason_code: str,
        toxicity_score: float | None = None,
        banned_term: str | None = None,
    ):
        super().__init__(message, code=reason_code, recoverable=False)
        self.reason_code = reason_code
        self.toxicity_score = toxicity_score
        self.banned_term = banned_term


class ConflictError(ChatlyError):
    """A create-only write found the document already present."""

    default_code = "ALREADY_EXISTS"


class UnavailableError(ChatlyError):
    default_code = "UNAVAILABLE"
    default_recoverable = True


class InternalError(ChatlyError):
    default_code = "INTERNAL_ERROR"


class EncryptionError(InternalError):
    default_code = "ENCRYPTION_ERROR"


class StoreError(Exception):
    """Raised by document store implementations with a backend error code."""

    def __init__(self, code: str, message: str = ""):
        super().__init__(message or code)
        self.code = code
        self.message = message or code


def translate_store_error(error: StoreError, operation: str) -> ChatlyError:
    """Map a document store error code onto the engine taxonomy."""
    code = error.code
    if code == "not-found":
        return NotFoundError(f"Resource not found for {operation}")
    if code == "permission-denied":
        return PermissionDeniedError(f"Insufficient permissions to {operation}")
    if code == "unavailable":
        return UnavailableError(f"Service unavailable for {operation}")
    if code == "deadline-exceeded":
        return RequestTimeoutError(f"Operation timed out for {operation}")
    if code == "resource-exhausted":
        return RateLimitedError(f"Resource limit exceeded for {operation}", key=operation)
    if code == "invalid-argument":
        return InputValidationError(f"Invalid argument for {operation}")
    if code == "already-exists":
        return ConflictError(f"Document already exists for {operation}")
    return InternalError(f"Database error during {operation}: {error.message}")
