# Overview: Domain error taxonomy shared by services and routes.

from __future__ import annotations


class DomainError(ValueError):
    """
    Base class for errors the core raises on purpose.

    Every subclass carries a stable ``kind`` so callers can branch on it
    (retry vs refresh vs fix input) and an HTTP status for the route layer.
    ``details`` holds the offending values, e.g. the outstanding quantity
    a receipt line exceeded.
    """

    kind = "ERROR"
    status_code = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        payload = {"error": self.message, "kind": self.kind}
        if self.details:
            payload["details"] = self.details
        return payload


class NotFoundError(DomainError):
    """Entity absent, or present in another tenant (never distinguished)."""

    kind = "NOT_FOUND"
    status_code = 404


class InvalidStateError(DomainError):
    """Status transition rejected, session not open, PO not receivable."""

    kind = "INVALID_STATE"
    status_code = 400


class ValidationFailedError(DomainError):
    kind = "VALIDATION_FAILED"
    status_code = 400


class ConflictError(DomainError):
    """Duplicate open session, taken document number, contended resume."""

    kind = "CONFLICT"
    status_code = 409


class TransientInfraError(DomainError):
    """Storage timeout or lock-wait exhaustion. Safe to retry."""

    kind = "TRANSIENT"
    status_code = 503


class InternalError(DomainError):
    kind = "INTERNAL"
    status_code = 500

    def __init__(self, message: str = "An internal error occurred", details: dict | None = None):
        super().__init__(message, details)
