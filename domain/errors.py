"""
Domain error types.

Every failure raised by the ledger is per-request and recoverable by the
caller. The API layer maps each class to an HTTP status.
"""

from __future__ import annotations

from typing import Optional


class ValidationError(ValueError):
    """Invalid input: missing field, out-of-range number, unknown enum value."""

    def __init__(self, message: str, field: Optional[str] = None) -> None:
        super().__init__(message)
        self.field = field


class NotFoundError(LookupError):
    """A sales record or customer identifier does not resolve."""
    pass


class ConflictError(RuntimeError):
    """The request conflicts with the stored state of the record."""
    pass


class DuplicateRecordNumberError(ConflictError):
    """An insert hit the unique constraint on record_number."""

    def __init__(self, record_number: str) -> None:
        super().__init__(f"Record number already exists: {record_number}")
        self.record_number = record_number


class RepositoryError(RuntimeError):
    """The document store reported an error."""
    pass


__all__ = [
    "ValidationError",
    "NotFoundError",
    "ConflictError",
    "DuplicateRecordNumberError",
    "RepositoryError",
]
