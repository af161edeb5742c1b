"""
Error types for RiskWatch.

Every error raised across a module boundary carries a stable error code and
the HTTP status an outer surface should map it to. Callers branch on the
class, never on the message.
"""

from typing import Any


class RiskWatchError(Exception):
    """Base exception for RiskWatch."""

    error_code = "INTERNAL_ERROR"
    status_code = 500
    retryable = False

    def __init__(self, message: str, *, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        return {
            "error_code": self.error_code,
            "message": self.message,
            "retryable": self.retryable,
            "details": self.details,
        }


class ValidationError(RiskWatchError):
    """Malformed input (unknown agent name, bad threshold band, ...)."""

    error_code = "VALIDATION_ERROR"
    status_code = 400


class NotFoundError(RiskWatchError):
    error_code = "RESOURCE_NOT_FOUND"
    status_code = 404


class PermissionDeniedError(RiskWatchError):
    error_code = "INSUFFICIENT_PERMISSIONS"
    status_code = 403


class BusinessRuleViolation(RiskWatchError):
    """Request is well-formed but the current state does not allow it."""

    error_code = "BUSINESS_RULE_VIOLATION"
    status_code = 422


class ConcurrencyConflictError(RiskWatchError):
    """The row changed since it was read. Re-read and retry."""

    error_code = "CONCURRENCY_CONFLICT"
    status_code = 409
    retryable = True
