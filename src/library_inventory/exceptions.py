"""
Domain errors for the library inventory backend.

Every error carries a stable machine-readable ``kind`` and a default HTTP
status; the API layer maps them to responses in one place. ``details``
holds structured context for the caller (for example who currently holds an
item).
"""

from datetime import datetime
from typing import Any


class RepositoryException(Exception):
    """Base exception for data access and domain operations."""

    kind = "database_error"
    status_code = 500

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"error": self.message, "kind": self.kind}
        if self.details:
            body["details"] = self.details
        return body


class NotFoundError(RepositoryException):
    """Raised when a barcode or id does not resolve to an entity."""

    kind = "not_found"
    status_code = 404


class DuplicateError(RepositoryException):
    """Raised when a create collides with a unique barcode or code."""

    kind = "duplicate"
    status_code = 409


class ValidationError(RepositoryException):
    """Raised for malformed input that passed schema parsing."""

    kind = "validation_error"
    status_code = 422


class ConflictError(RepositoryException):
    """Raised when a concurrent write lost the race on the open-loan constraint."""

    kind = "conflict"
    status_code = 409


class NoActiveLoanError(RepositoryException):
    """Raised when a return is attempted for an item with no open loan."""

    kind = "no_active_loan"
    status_code = 404


class AlreadyLoanedError(RepositoryException):
    """Raised when issuing an item somebody already holds."""

    kind = "already_loaned"
    status_code = 400

    def __init__(self, holder: str, holder_barcode: str, issued_at: datetime):
        super().__init__(
            f"Item is already on loan to {holder} since {issued_at:%d.%m.%Y}",
            details={
                "holder": holder,
                "holder_barcode": holder_barcode,
                "issued_at": issued_at.isoformat(),
            },
        )
        self.holder = holder
        self.holder_barcode = holder_barcode
        self.issued_at = issued_at


class Unauthorized(RepositoryException):
    """Raised when a request carries no valid staff identity."""

    kind = "unauthorized"
    status_code = 401
