"""
registry/errors.py -- Failure signals raised by member storage.

Both storage variants raise the same exceptions so callers never need to know
which one is wired in. The HTTP layer maps them to status codes in
api/main.py: ConflictError -> 409, StorageUnavailableError -> 500.

Absence of a record is not an error: get_* and update_member() return None.
"""

from __future__ import annotations

from typing import Any, Optional


class StorageError(Exception):
    """Base exception for all registry storage failures."""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ConflictError(StorageError):
    """Raised when a write would duplicate a unique field.

    field names the offending attribute ("email", "identifier" or "username").
    Nothing is written when this is raised.
    """

    def __init__(self, field: str) -> None:
        super().__init__(f"A record with that {field} already exists.", {"field": field})
        self.field = field


class StorageUnavailableError(StorageError):
    """Raised when the persistence medium cannot be reached.

    The message is safe to log but is never sent to clients; the original
    driver exception is chained as __cause__.
    """
