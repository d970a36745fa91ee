"""FTS5 full-text shadow of the items table.

Schema
──────
virtual table: items_fts  (external content over ``items``)
  title        weighted 2.0 in bm25
  description  weighted 1.0 in bm25

Three triggers keep the shadow in step with ``items`` inside the same
transaction as the write that touched the row, so a reader can never see an
item whose index entry is stale.
"""

from __future__ import annotations

import logging
import sqlite3
from typing import TYPE_CHECKING

from core.errors import QuerySyntaxError
from core.models import ItemRecord

if TYPE_CHECKING:
    from core.db import Database

logger = logging.getLogger(__name__)

TITLE_WEIGHT = 2.0
DESCRIPTION_WEIGHT = 1.0

FTS_SCHEMA = """
CREATE VIRTUAL TABLE IF NOT EXISTS items_fts USING fts5(
    title, description,
    content='items',
    content_rowid='rowid'
);

CREATE TRIGGER IF NOT EXISTS items_fts_ai
AFTER INSERT ON items BEGIN
    INSERT INTO items_fts(rowid, title, description)
    VALUES (new.rowid, new.title, new.description);
END;

CREATE TRIGGER IF NOT EXISTS items_fts_ad
AFTER DELETE ON items BEGIN
    INSERT INTO items_fts(items_fts, rowid, title, description)
    VALUES ('delete', old.rowid, old.title, old.description);
END;

CREATE TRIGGER IF NOT EXISTS items_fts_au
AFTER UPDATE ON items BEGIN
    INSERT INTO items_fts(items_fts, rowid, title, description)
    VALUES ('delete', old.rowid, old.title, old.description);
    INSERT INTO items_fts(rowid, title, description)
    VALUES (new.rowid, new.title, new.description);
END;
"""

_SEARCH_SQL = f"""
    SELECT i.*, b.id AS bookmark_id, b.note AS bookmark_note,
           bm25(items_fts, {TITLE_WEIGHT}, {DESCRIPTION_WEIGHT}) AS fts_rank
    FROM items_fts
    JOIN items i ON items_fts.rowid = i.rowid
    LEFT JOIN bookmarks b ON b.item_id = i.id
    WHERE items_fts MATCH :query
    ORDER BY fts_rank, i.id
    LIMIT :limit
"""

#: Fragments of sqlite3 error messages that mean "the MATCH expression is bad"
#: rather than "the database is broken".
_SYNTAX_MARKERS: tuple[str, ...] = (
    "fts5: syntax error",
    "unterminated string",
    "no such column",
    "unknown special query",
    "malformed match",
    "expected integer",
)


def is_syntax_error(exc: sqlite3.Error) -> bool:
    """Return True if *exc* is an FTS5 query parse failure."""
    message = str(exc).lower()
    return isinstance(exc, sqlite3.OperationalError) and any(m in message for m in _SYNTAX_MARKERS)


class FullTextIndex:
    """Ranked full-text lookups over the items corpus."""

    def __init__(self, db: Database) -> None:
        self.db = db

    def search(self, match_query: str, limit: int = 100) -> list[ItemRecord]:
        """Return up to *limit* items matching *match_query*, best first.

        Raises:
            QuerySyntaxError: If FTS5 cannot parse *match_query*.
            StoreUnavailable: On any other database failure.
        """
        with self.db.connect() as conn:
            try:
                rows = conn.execute(
                    _SEARCH_SQL, {"query": match_query, "limit": limit}
                ).fetchall()
            except sqlite3.OperationalError as exc:
                if is_syntax_error(exc):
                    raise QuerySyntaxError(match_query, str(exc)) from exc
                raise
        return [ItemRecord.from_row(row) for row in rows]

    def rebuild(self) -> None:
        """Regenerate the whole shadow table from ``items``."""
        with self.db.connect() as conn:
            conn.execute("INSERT INTO items_fts(items_fts) VALUES ('rebuild')")
        logger.info("Full-text index rebuilt")
