"""
SQLite-backed search history and saved searches for Intel Hub.

Schema
──────
table: search_history
  query        TEXT PRIMARY KEY  (trimmed, lower-cased)
  count        INTEGER NOT NULL  (+1 per recorded search, never decreases)
  last_used_at TEXT NOT NULL     (ISO-8601 UTC)

table: saved_searches
  id         INTEGER PRIMARY KEY AUTOINCREMENT
  name       TEXT NOT NULL
  query      TEXT NOT NULL
  filters    TEXT NOT NULL  (opaque JSON object)
  sort_by    TEXT NOT NULL
  created_at TEXT NOT NULL  (ISO-8601 UTC)
"""

from __future__ import annotations

import json
import logging
from typing import Any

from core.db import Database
from core.errors import NotFoundError, ValidationError
from core.models import HistoryEntry, SavedSearch, from_iso, to_iso
from core.query import normalize_query

logger = logging.getLogger(__name__)

#: Maximum entries returned by suggest() and recent().
MAX_SUGGESTIONS = 10


def _escape_like(text: str) -> str:
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class SearchHistory:
    """Frequency-ranked record of past free-text queries."""

    def __init__(self, db: Database) -> None:
        self.db = db

    def record(self, query: str) -> str | None:
        """Increment the counter for *query*, creating it on first use.

        Returns:
            The normalised query that was recorded, or None if it was blank.
        """
        normalized = normalize_query(query)
        if not normalized:
            return None

        with self.db.connect() as conn:
            conn.execute(
                """
                INSERT INTO search_history (query, count, last_used_at)
                VALUES (?, 1, ?)
                ON CONFLICT(query) DO UPDATE SET
                    count = count + 1,
                    last_used_at = excluded.last_used_at
                """,
                (normalized, to_iso(self.db.now())),
            )
        logger.debug("Recorded search query=%r", normalized)
        return normalized

    def suggest(self, prefix: str) -> list[HistoryEntry]:
        """Return past queries starting with *prefix*, most used first.

        Ties on count are broken by recency.
        """
        pattern = _escape_like(normalize_query(prefix)) + "%"
        with self.db.connect() as conn:
            rows = conn.execute(
                """
                SELECT query, count, last_used_at FROM search_history
                WHERE query LIKE ? ESCAPE '\\'
                ORDER BY count DESC, last_used_at DESC
                LIMIT ?
                """,
                (pattern, MAX_SUGGESTIONS),
            ).fetchall()
        return [self._entry(row) for row in rows]

    def recent(self) -> list[HistoryEntry]:
        """Return the most recently used queries regardless of frequency."""
        with self.db.connect() as conn:
            rows = conn.execute(
                "SELECT query, count, last_used_at FROM search_history "
                "ORDER BY last_used_at DESC LIMIT ?",
                (MAX_SUGGESTIONS,),
            ).fetchall()
        return [self._entry(row) for row in rows]

    @staticmethod
    def _entry(row) -> HistoryEntry:
        return HistoryEntry(
            query=row["query"],
            count=row["count"],
            last_used_at=from_iso(row["last_used_at"]),
        )


class SavedSearches:
    """Named query templates. Created and deleted, never edited."""

    def __init__(self, db: Database) -> None:
        self.db = db

    def save(
        self,
        name: str,
        query: str = "",
        filters: dict[str, Any] | None = None,
        sort_by: str = "score",
    ) -> int:
        """Persist a saved search and return its new row ID.

        Args:
            name: Display name; must not be blank.
            query: Free-text part of the search.
            filters: Structured filters, stored as-is without validation.
            sort_by: Sort key to replay with.

        Returns:
            The integer primary key of the inserted row.
        """
        if not name or not name.strip():
            raise ValidationError("Saved search name must not be empty.")

        with self.db.connect() as conn:
            cursor = conn.execute(
                "INSERT INTO saved_searches (name, query, filters, sort_by, created_at) "
                "VALUES (?, ?, ?, ?, ?)",
                (
                    name.strip(),
                    query or "",
                    json.dumps(filters or {}, sort_keys=True, default=str),
                    sort_by or "score",
                    to_iso(self.db.now()),
                ),
            )
            row_id = cursor.lastrowid

        logger.info("Saved search id=%d name=%r", row_id, name)
        return row_id

    def get_all(self) -> list[SavedSearch]:
        """Return every saved search, newest first."""
        with self.db.connect() as conn:
            rows = conn.execute(
                "SELECT * FROM saved_searches ORDER BY created_at DESC, id DESC"
            ).fetchall()

        entries: list[SavedSearch] = []
        for row in rows:
            try:
                entries.append(self._saved(row))
            except ValueError as exc:
                logger.warning("Skipping corrupt saved search id=%d: %s", row["id"], exc)
        return entries

    def get(self, search_id: int) -> SavedSearch:
        with self.db.connect() as conn:
            row = conn.execute(
                "SELECT * FROM saved_searches WHERE id = ?", (search_id,)
            ).fetchone()
        if row is None:
            raise NotFoundError(f"No saved search with id {search_id}")
        return self._saved(row)

    def delete(self, search_id: int) -> None:
        """Delete a saved search by ID.

        Raises:
            NotFoundError: If no saved search has that ID.
        """
        with self.db.connect() as conn:
            cursor = conn.execute("DELETE FROM saved_searches WHERE id = ?", (search_id,))
            if cursor.rowcount == 0:
                raise NotFoundError(f"No saved search with id {search_id}")
        logger.info("Deleted saved search id=%d", search_id)

    @staticmethod
    def _saved(row) -> SavedSearch:
        return SavedSearch(
            id=row["id"],
            name=row["name"],
            query=row["query"],
            filters=json.loads(row["filters"] or "{}"),
            sort_by=row["sort_by"],
            created_at=from_iso(row["created_at"]),
        )
