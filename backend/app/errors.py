"""
Error taxonomy shared by services and routes.

- ValidationError (400): bad input, rejected before any mutation.
- NotFoundError (404): order or product absent.
- VersionConflictError (409): optimistic lock failure. Callers re-fetch and retry.
- ConflictError (409): other business rule conflicts.
- StoreFailure (500): persistence error. Not retried here.
"""

from __future__ import annotations

from .validation import ValidationError, ConflictError


class NotFoundError(LookupError):
    """404-level: the referenced entity does not exist."""


class VersionConflictError(ConflictError):
    """409-level: caller's expected version no longer matches the stored one."""

    def __init__(self, message: str, current_version: str | None = None):
        super().__init__(message)
        self.current_version = current_version


class StoreFailure(RuntimeError):
    """Underlying database error, surfaced as a generic failure."""


__all__ = [
    "ValidationError",
    "ConflictError",
    "NotFoundError",
    "VersionConflictError",
    "StoreFailure",
]
