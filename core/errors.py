"""Typed errors raised by the Intel Hub core.

Only ``QuerySyntaxError`` is recoverable: the search engine absorbs it and
falls back to structured filtering. Everything else escapes to the caller.
"""

from __future__ import annotations


class HubError(Exception):
    """Base class for every error raised by the core."""


class ValidationError(HubError, ValueError):
    """Malformed input (e.g. an item without an id). No partial effect."""


class QuerySyntaxError(HubError):
    """The full-text index rejected a MATCH expression."""

    def __init__(self, query: str, reason: str) -> None:
        super().__init__(f"Invalid full-text query {query!r}: {reason}")
        self.query = query
        self.reason = reason


class NotFoundError(HubError, LookupError):
    """An operation referenced an id that does not exist."""


class StoreUnavailable(HubError):
    """The SQLite layer failed (locked, corrupt, unreadable)."""
