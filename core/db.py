"""
SQLite database handle for Intel Hub.

One ``Database`` is built at process start and handed to every component
that needs storage. Each operation opens its own connection and runs in its
own transaction; the file runs in WAL mode so readers never block the
writer and never observe a half-applied batch.

Schema
──────
table: items            corpus, keyed by source-qualified id
table: bookmarks        one optional annotation per item
table: sources          configured source catalog
table: keywords         weighted keyword catalog
table: search_history   normalised query → count, last_used_at
table: saved_searches   named query templates
virtual: items_fts      FTS5 shadow of items (see core.fulltext)
"""

from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Iterator

from core.errors import StoreUnavailable
from core.fulltext import FTS_SCHEMA

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS items (
    id           TEXT PRIMARY KEY,
    source       TEXT NOT NULL,
    title        TEXT NOT NULL DEFAULT '',
    url          TEXT NOT NULL DEFAULT '',
    description  TEXT NOT NULL DEFAULT '',
    author       TEXT NOT NULL DEFAULT '',
    stars        INTEGER,
    score        REAL NOT NULL DEFAULT 0,
    published_at TEXT,
    fetched_at   TEXT NOT NULL,
    metadata     TEXT NOT NULL DEFAULT '{}'
);

CREATE INDEX IF NOT EXISTS idx_items_source ON items(source);
CREATE INDEX IF NOT EXISTS idx_items_score ON items(score DESC);
CREATE INDEX IF NOT EXISTS idx_items_published ON items(published_at DESC);
CREATE INDEX IF NOT EXISTS idx_items_fetched ON items(fetched_at);

CREATE TABLE IF NOT EXISTS bookmarks (
    id         INTEGER PRIMARY KEY AUTOINCREMENT,
    item_id    TEXT NOT NULL UNIQUE REFERENCES items(id) ON DELETE CASCADE,
    note       TEXT NOT NULL DEFAULT '',
    tags       TEXT NOT NULL DEFAULT '[]',
    reviewed   INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS sources (
    id                 TEXT PRIMARY KEY,
    name               TEXT NOT NULL,
    type               TEXT NOT NULL,
    url                TEXT NOT NULL DEFAULT '',
    enabled            INTEGER NOT NULL DEFAULT 1,
    rate_limit_minutes INTEGER NOT NULL DEFAULT 60,
    config             TEXT NOT NULL DEFAULT '{}',
    last_fetched_at    TEXT
);

CREATE TABLE IF NOT EXISTS keywords (
    id       INTEGER PRIMARY KEY AUTOINCREMENT,
    category TEXT NOT NULL,
    keyword  TEXT NOT NULL,
    weight   REAL NOT NULL DEFAULT 1.0,
    UNIQUE(category, keyword)
);

CREATE TABLE IF NOT EXISTS search_history (
    query        TEXT PRIMARY KEY,
    count        INTEGER NOT NULL DEFAULT 1,
    last_used_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS saved_searches (
    id         INTEGER PRIMARY KEY AUTOINCREMENT,
    name       TEXT NOT NULL,
    query      TEXT NOT NULL DEFAULT '',
    filters    TEXT NOT NULL DEFAULT '{}',
    sort_by    TEXT NOT NULL DEFAULT 'score',
    created_at TEXT NOT NULL
);
"""


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Database:
    """Explicit handle on the SQLite file backing the hub.

    Args:
        path: Database file; its parent directory is created on demand.
        timeout: Seconds a connection waits on a competing writer's lock.
        clock: Source of "now" for every timestamp the core writes.
    """

    def __init__(
        self,
        path: str | Path,
        timeout: float = 5.0,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.path = Path(path)
        self.timeout = timeout
        self._clock = clock or _utcnow

    def now(self) -> datetime:
        return self._clock()

    @contextmanager
    def connect(self) -> Iterator[sqlite3.Connection]:
        """Yield a connection wrapped in a single transaction.

        Commits on success and rolls back on any exception. Raw
        ``sqlite3.Error`` escaping the block is re-raised as
        ``StoreUnavailable``.
        """
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(str(self.path), timeout=self.timeout)
        except (OSError, sqlite3.Error) as exc:
            raise StoreUnavailable(f"Cannot open database at {self.path}: {exc}") from exc

        conn.row_factory = sqlite3.Row
        try:
            conn.execute("PRAGMA foreign_keys = ON")
            yield conn
            conn.commit()
        except sqlite3.Error as exc:
            conn.rollback()
            raise StoreUnavailable(f"Database error: {exc}") from exc
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def init_schema(self) -> None:
        """Create every table, index, trigger and the FTS shadow if missing."""
        with self.connect() as conn:
            conn.execute("PRAGMA journal_mode = WAL")
            conn.executescript(SCHEMA)
            conn.executescript(FTS_SCHEMA)
        logger.info("Hub DB initialised at %s", self.path)
