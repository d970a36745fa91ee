"""
Pydantic models shared across the Intel Hub core.
"""

from __future__ import annotations

import json
import re
import sqlite3
from datetime import date, datetime, time, timezone
from typing import Any, Callable, TypeVar

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

T = TypeVar("T")

MAX_LIMIT = 10_000
MAX_OFFSET = 2**63 - 1  # largest SQLite INTEGER

_DATE_ONLY = re.compile(r"^\d{4}-\d{2}-\d{2}$")


# ── Helpers ────────────────────────────────────────────────────────────────────


def to_iso(value: datetime | None) -> str | None:
    """Serialise *value* as a UTC ISO-8601 string with fixed precision.

    Naive datetimes are taken to be UTC already. Fixed microsecond precision
    keeps lexicographic order identical to chronological order, which the
    SQL range predicates rely on.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def from_iso(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


def _typed(mapping: dict[str, Any], key: str, cast: Callable[[Any], T], default: T | None) -> T | None:
    """Read *key* from an opaque map, coercing with *cast* or returning *default*."""
    value = mapping.get(key)
    if value is None:
        return default
    try:
        return cast(value)
    except (TypeError, ValueError):
        return default


def _widen_date(value: Any, bound: time) -> Any:
    """Expand a bare calendar date to a full timestamp at *bound*."""
    if isinstance(value, str) and _DATE_ONLY.match(value.strip()):
        value = date.fromisoformat(value.strip())
    if isinstance(value, date) and not isinstance(value, datetime):
        return datetime.combine(value, bound, tzinfo=timezone.utc)
    return value


# ── Corpus ─────────────────────────────────────────────────────────────────────


class Item(BaseModel):
    """One aggregated unit of content as supplied by an ingestion adapter."""

    id: str = Field(min_length=1)
    source: str
    title: str = ""
    url: str = ""
    description: str = ""
    author: str = ""
    stars: int | None = Field(default=None, ge=0)
    score: float = Field(default=0.0, allow_inf_nan=False)
    published_at: datetime | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    @field_validator("id")
    @classmethod
    def _id_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("id must not be blank")
        return value

    def meta(self, key: str, cast: Callable[[Any], T] = str, default: T | None = None) -> T | None:
        """Typed accessor over the schema-less ``metadata`` map."""
        return _typed(self.metadata, key, cast, default)


class ItemRecord(Item):
    """A stored item with its joined bookmark annotation.

    Both search strategies return this shape; ``fts_rank`` is only populated
    on the full-text path (bm25, lower is better).
    """

    fetched_at: datetime
    bookmark_id: int | None = None
    bookmark_note: str | None = None
    fts_rank: float | None = None

    @property
    def is_bookmarked(self) -> bool:
        return self.bookmark_id is not None

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "ItemRecord":
        keys = row.keys()
        return cls(
            id=row["id"],
            source=row["source"],
            title=row["title"] or "",
            url=row["url"] or "",
            description=row["description"] or "",
            author=row["author"] or "",
            stars=row["stars"],
            score=row["score"] or 0.0,
            published_at=from_iso(row["published_at"]),
            fetched_at=from_iso(row["fetched_at"]),
            metadata=json.loads(row["metadata"] or "{}"),
            bookmark_id=row["bookmark_id"],
            bookmark_note=row["bookmark_note"],
            fts_rank=row["fts_rank"] if "fts_rank" in keys else None,
        )


class Bookmark(BaseModel):
    """A one-to-one annotation on an item."""

    id: int
    item_id: str
    note: str = ""
    tags: list[str] = Field(default_factory=list)
    reviewed: bool = False
    created_at: datetime


class BookmarkedItem(Bookmark):
    """A bookmark joined with the fields of the item it annotates."""

    title: str = ""
    url: str = ""
    source: str = ""
    description: str = ""
    stars: int | None = None
    score: float = 0.0
    published_at: datetime | None = None


# ── Search ─────────────────────────────────────────────────────────────────────


class SearchRequest(BaseModel):
    """Structured search request.

    Accepts both snake_case and camelCase keys (``dateFrom``,
    ``bookmarksOnly``, ...). ``sort_by`` and ``sort_order`` are left as free
    strings: they are only ever resolved through the sort allow-list.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    search: str | None = None
    sources: list[str] = Field(default_factory=list)
    date_from: datetime | None = None
    date_to: datetime | None = None
    score_min: float | None = None
    score_max: float | None = None
    bookmarks_only: bool = False
    sort_by: str | None = None
    sort_order: str | None = None
    limit: int = Field(default=100, ge=1, le=MAX_LIMIT)
    offset: int = Field(default=0, ge=0, le=MAX_OFFSET)

    @field_validator("date_from", mode="before")
    @classmethod
    def _start_of_day(cls, value: Any) -> Any:
        return _widen_date(value, time.min)

    @field_validator("date_to", mode="before")
    @classmethod
    def _end_of_day(cls, value: Any) -> Any:
        return _widen_date(value, time.max)

    @property
    def search_term(self) -> str | None:
        """The trimmed free-text term, or ``None`` when blank or absent."""
        if self.search is None:
            return None
        term = self.search.strip()
        return term or None


class HistoryEntry(BaseModel):
    """One normalised query in the search history."""

    query: str
    count: int
    last_used_at: datetime


class SavedSearch(BaseModel):
    """A named, persisted query template."""

    id: int
    name: str
    query: str = ""
    filters: dict[str, Any] = Field(default_factory=dict)
    sort_by: str = "score"
    created_at: datetime

    def filter_value(self, key: str, cast: Callable[[Any], T] = str, default: T | None = None) -> T | None:
        """Typed accessor over the opaque ``filters`` map."""
        return _typed(self.filters, key, cast, default)

    def to_request(self) -> SearchRequest:
        """Replay this template as a ``SearchRequest``.

        Filter keys unknown to the current request schema are ignored.
        """
        payload = {**self.filters, "search": self.query or None, "sortBy": self.sort_by}
        payload.pop("sort_by", None)
        return SearchRequest.model_validate(payload)


class Stats(BaseModel):
    """Corpus statistics; serialises with camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    total_items: int
    by_source: dict[str, int]
    bookmark_count: int


# ── Catalogs ───────────────────────────────────────────────────────────────────


class Source(BaseModel):
    """A configured content source."""

    id: str = Field(min_length=1)
    name: str
    type: str
    url: str = ""
    enabled: bool = True
    rate_limit_minutes: int = 60
    config: dict[str, Any] = Field(default_factory=dict)
    last_fetched_at: datetime | None = None

    @model_validator(mode="before")
    @classmethod
    def _fold_color(cls, data: Any) -> Any:
        # Catalog files carry ``color`` at the top level; it lives in config.
        if isinstance(data, dict) and "color" in data:
            data = dict(data)
            color = data.pop("color")
            data["config"] = {**(data.get("config") or {}), "color": color}
        return data


class Keyword(BaseModel):
    """A weighted keyword within a scoring category."""

    category: str
    keyword: str
    weight: float = 1.0
