"""Corpus store: items, bookmarks and the source/keyword catalogs.

Every write stamps ``fetched_at`` from the database clock and re-serialises
``metadata``. ``upsert_many`` is a single transaction: one bad item rolls the
whole batch back.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from collections.abc import Iterable, Mapping
from datetime import timedelta
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from core.db import Database
from core.errors import NotFoundError, ValidationError
from core.models import (
    Bookmark,
    BookmarkedItem,
    Item,
    ItemRecord,
    Keyword,
    Source,
    Stats,
    from_iso,
    to_iso,
)
from core.query import BASE_SELECT

logger = logging.getLogger(__name__)

ItemInput = Item | Mapping[str, Any]

_UPSERT_ITEM = """
    INSERT INTO items (id, source, title, url, description, author, stars,
                       score, published_at, fetched_at, metadata)
    VALUES (:id, :source, :title, :url, :description, :author, :stars,
            :score, :published_at, :fetched_at, :metadata)
    ON CONFLICT(id) DO UPDATE SET
        title        = excluded.title,
        url          = excluded.url,
        description  = excluded.description,
        author       = excluded.author,
        stars        = excluded.stars,
        score        = excluded.score,
        published_at = COALESCE(excluded.published_at, items.published_at),
        fetched_at   = excluded.fetched_at,
        metadata     = excluded.metadata
"""

_UPSERT_SOURCE = """
    INSERT INTO sources (id, name, type, url, enabled, rate_limit_minutes, config)
    VALUES (:id, :name, :type, :url, :enabled, :rate_limit_minutes, :config)
    ON CONFLICT(id) DO UPDATE SET
        name = excluded.name, type = excluded.type, url = excluded.url,
        enabled = excluded.enabled,
        rate_limit_minutes = excluded.rate_limit_minutes,
        config = excluded.config
"""

_UPSERT_KEYWORD = """
    INSERT INTO keywords (category, keyword, weight)
    VALUES (:category, :keyword, :weight)
    ON CONFLICT(category, keyword) DO UPDATE SET weight = excluded.weight
"""


def _coerce_item(item: ItemInput, position: int) -> Item:
    if isinstance(item, Item):
        return item
    try:
        return Item.model_validate(item)
    except PydanticValidationError as exc:
        raise ValidationError(f"Invalid item at position {position}: {exc}") from exc


def _bookmark_from_row(row: sqlite3.Row) -> Bookmark:
    return Bookmark(
        id=row["id"],
        item_id=row["item_id"],
        note=row["note"],
        tags=json.loads(row["tags"] or "[]"),
        reviewed=bool(row["reviewed"]),
        created_at=from_iso(row["created_at"]),
    )


def _source_from_row(row: sqlite3.Row) -> Source:
    return Source(
        id=row["id"],
        name=row["name"],
        type=row["type"],
        url=row["url"],
        enabled=bool(row["enabled"]),
        rate_limit_minutes=row["rate_limit_minutes"],
        config=json.loads(row["config"] or "{}"),
        last_fetched_at=from_iso(row["last_fetched_at"]),
    )


class CorpusStore:
    """Owns item rows and the annotations that hang off them."""

    def __init__(self, db: Database) -> None:
        self.db = db

    # ── Items: writes ──────────────────────────────────────────────────────

    def _item_params(self, item: Item) -> dict[str, Any]:
        return {
            "id": item.id,
            "source": item.source,
            "title": item.title,
            "url": item.url,
            "description": item.description,
            "author": item.author,
            "stars": item.stars,
            "score": item.score,
            "published_at": to_iso(item.published_at),
            "fetched_at": to_iso(self.db.now()),
            "metadata": json.dumps(item.metadata, sort_keys=True, default=str),
        }

    def upsert_one(self, item: ItemInput) -> None:
        """Insert *item* or update the stored row with the same id.

        Raises:
            ValidationError: If *item* is malformed (e.g. no id).
        """
        self.upsert_many([item])

    def upsert_many(self, items: Iterable[ItemInput]) -> int:
        """Upsert *items* in order inside one transaction.

        Returns:
            The number of items written.

        Raises:
            ValidationError: If any item is malformed. Nothing from the
                batch is kept.
        """
        count = 0
        with self.db.connect() as conn:
            for position, raw in enumerate(items):
                item = _coerce_item(raw, position)
                conn.execute(_UPSERT_ITEM, self._item_params(item))
                count += 1
        logger.info("Upserted %d items", count)
        return count

    def retention_sweep(self, max_age_days: int) -> int:
        """Delete unbookmarked items not refreshed within *max_age_days*.

        Returns:
            The number of items deleted.
        """
        if max_age_days < 0:
            raise ValidationError(f"max_age_days must be >= 0, got {max_age_days}")
        cutoff = to_iso(self.db.now() - timedelta(days=max_age_days))
        with self.db.connect() as conn:
            cursor = conn.execute(
                "DELETE FROM items WHERE fetched_at < :cutoff "
                "AND id NOT IN (SELECT item_id FROM bookmarks)",
                {"cutoff": cutoff},
            )
        deleted = cursor.rowcount
        logger.info("Retention sweep removed %d items older than %d days", deleted, max_age_days)
        return deleted

    # ── Items: reads ───────────────────────────────────────────────────────

    def get(self, item_id: str) -> ItemRecord | None:
        """Fetch one item with its bookmark state, or None if absent."""
        with self.db.connect() as conn:
            row = conn.execute(BASE_SELECT + " WHERE i.id = ?", (item_id,)).fetchone()
        return ItemRecord.from_row(row) if row else None

    def require(self, item_id: str) -> ItemRecord:
        record = self.get(item_id)
        if record is None:
            raise NotFoundError(f"No item with id {item_id!r}")
        return record

    def list_by_source(self, source: str, limit: int = 100) -> list[ItemRecord]:
        """Return *source*'s items, highest score first."""
        with self.db.connect() as conn:
            rows = conn.execute(
                BASE_SELECT + " WHERE i.source = ? ORDER BY i.score DESC, i.id LIMIT ?",
                (source, limit),
            ).fetchall()
        return [ItemRecord.from_row(row) for row in rows]

    def count_total(self) -> int:
        with self.db.connect() as conn:
            return conn.execute("SELECT COUNT(*) FROM items").fetchone()[0]

    def count_by_source(self) -> dict[str, int]:
        with self.db.connect() as conn:
            rows = conn.execute(
                "SELECT source, COUNT(*) AS n FROM items GROUP BY source ORDER BY source"
            ).fetchall()
        return {row["source"]: row["n"] for row in rows}

    def get_stats(self) -> Stats:
        with self.db.connect() as conn:
            total = conn.execute("SELECT COUNT(*) FROM items").fetchone()[0]
            rows = conn.execute(
                "SELECT source, COUNT(*) AS n FROM items GROUP BY source ORDER BY source"
            ).fetchall()
            bookmarks = conn.execute("SELECT COUNT(*) FROM bookmarks").fetchone()[0]
        return Stats(
            total_items=total,
            by_source={row["source"]: row["n"] for row in rows},
            bookmark_count=bookmarks,
        )

    # ── Bookmarks ──────────────────────────────────────────────────────────

    def add_bookmark(self, item_id: str, note: str = "", tags: list[str] | None = None) -> Bookmark:
        """Bookmark *item_id*. Bookmarking an already bookmarked item is a no-op.

        Raises:
            NotFoundError: If the item does not exist.
        """
        with self.db.connect() as conn:
            if conn.execute("SELECT 1 FROM items WHERE id = ?", (item_id,)).fetchone() is None:
                raise NotFoundError(f"No item with id {item_id!r}")
            conn.execute(
                "INSERT INTO bookmarks (item_id, note, tags, created_at) "
                "VALUES (?, ?, ?, ?) ON CONFLICT(item_id) DO NOTHING",
                (item_id, note, json.dumps(tags or []), to_iso(self.db.now())),
            )
            row = conn.execute("SELECT * FROM bookmarks WHERE item_id = ?", (item_id,)).fetchone()
        logger.info("Bookmarked item id=%r", item_id)
        return _bookmark_from_row(row)

    def update_bookmark(
        self,
        item_id: str,
        note: str | None = None,
        tags: list[str] | None = None,
        reviewed: bool | None = None,
    ) -> Bookmark:
        """Change the fields given; leave the others as stored.

        Raises:
            ValidationError: If a given field has the wrong type.
            NotFoundError: If *item_id* has no bookmark.
        """
        if note is not None and not isinstance(note, str):
            raise ValidationError("note must be a string")
        if tags is not None and not (isinstance(tags, list) and all(isinstance(t, str) for t in tags)):
            raise ValidationError("tags must be a list of strings")
        if reviewed is not None and not isinstance(reviewed, bool):
            raise ValidationError("reviewed must be true or false")

        with self.db.connect() as conn:
            row = conn.execute("SELECT * FROM bookmarks WHERE item_id = ?", (item_id,)).fetchone()
            if row is None:
                raise NotFoundError(f"Item {item_id!r} is not bookmarked")
            current = _bookmark_from_row(row)
            conn.execute(
                "UPDATE bookmarks SET note = ?, tags = ?, reviewed = ? WHERE item_id = ?",
                (
                    current.note if note is None else note,
                    json.dumps(current.tags if tags is None else tags),
                    int(current.reviewed if reviewed is None else reviewed),
                    item_id,
                ),
            )
            row = conn.execute("SELECT * FROM bookmarks WHERE item_id = ?", (item_id,)).fetchone()
        return _bookmark_from_row(row)

    def remove_bookmark(self, item_id: str) -> bool:
        """Delete the bookmark on *item_id*; False if there was none."""
        with self.db.connect() as conn:
            cursor = conn.execute("DELETE FROM bookmarks WHERE item_id = ?", (item_id,))
        removed = cursor.rowcount > 0
        if removed:
            logger.info("Removed bookmark on item id=%r", item_id)
        return removed

    def get_bookmark(self, item_id: str) -> Bookmark | None:
        with self.db.connect() as conn:
            row = conn.execute("SELECT * FROM bookmarks WHERE item_id = ?", (item_id,)).fetchone()
        return _bookmark_from_row(row) if row else None

    def list_bookmarks(self) -> list[BookmarkedItem]:
        """All bookmarks with their item fields, newest first."""
        with self.db.connect() as conn:
            rows = conn.execute(
                """
                SELECT b.*, i.title, i.url, i.source, i.description, i.stars,
                       i.score, i.published_at
                FROM bookmarks b
                JOIN items i ON b.item_id = i.id
                ORDER BY b.created_at DESC, b.id DESC
                """
            ).fetchall()
        return [
            BookmarkedItem(
                **_bookmark_from_row(row).model_dump(),
                title=row["title"],
                url=row["url"],
                source=row["source"],
                description=row["description"],
                stars=row["stars"],
                score=row["score"],
                published_at=from_iso(row["published_at"]),
            )
            for row in rows
        ]

    # ── Catalogs ───────────────────────────────────────────────────────────

    def upsert_sources(self, sources: Iterable[Source | Mapping[str, Any]]) -> int:
        """Persist the source catalog. Ids must be unique within the batch."""
        seen: set[str] = set()
        with self.db.connect() as conn:
            for raw in sources:
                try:
                    source = raw if isinstance(raw, Source) else Source.model_validate(raw)
                except PydanticValidationError as exc:
                    raise ValidationError(f"Invalid source: {exc}") from exc
                if source.id in seen:
                    raise ValidationError(f"Duplicate source id {source.id!r}")
                seen.add(source.id)
                conn.execute(
                    _UPSERT_SOURCE,
                    {
                        **source.model_dump(exclude={"config", "last_fetched_at"}),
                        "enabled": int(source.enabled),
                        "config": json.dumps(source.config, sort_keys=True),
                    },
                )
        return len(seen)

    def list_sources(self, enabled_only: bool = False) -> list[Source]:
        sql = "SELECT * FROM sources"
        if enabled_only:
            sql += " WHERE enabled = 1"
        with self.db.connect() as conn:
            rows = conn.execute(sql + " ORDER BY id").fetchall()
        return [_source_from_row(row) for row in rows]

    def set_source_enabled(self, source_id: str, enabled: bool) -> None:
        with self.db.connect() as conn:
            cursor = conn.execute(
                "UPDATE sources SET enabled = ? WHERE id = ?", (int(enabled), source_id)
            )
            if cursor.rowcount == 0:
                raise NotFoundError(f"No source with id {source_id!r}")

    def mark_source_fetched(self, source_id: str) -> None:
        with self.db.connect() as conn:
            cursor = conn.execute(
                "UPDATE sources SET last_fetched_at = ? WHERE id = ?",
                (to_iso(self.db.now()), source_id),
            )
            if cursor.rowcount == 0:
                raise NotFoundError(f"No source with id {source_id!r}")

    def upsert_keywords(self, keywords: Iterable[Keyword | Mapping[str, Any]]) -> int:
        count = 0
        with self.db.connect() as conn:
            for raw in keywords:
                try:
                    keyword = raw if isinstance(raw, Keyword) else Keyword.model_validate(raw)
                except PydanticValidationError as exc:
                    raise ValidationError(f"Invalid keyword: {exc}") from exc
                conn.execute(_UPSERT_KEYWORD, keyword.model_dump())
                count += 1
        return count

    def list_keywords(self) -> list[Keyword]:
        with self.db.connect() as conn:
            rows = conn.execute(
                "SELECT category, keyword, weight FROM keywords ORDER BY category, keyword"
            ).fetchall()
        return [Keyword(category=r["category"], keyword=r["keyword"], weight=r["weight"]) for r in rows]
