"""Query compilation for structured and full-text search.

Responsibilities:
- Normalise free-text queries for the history table
- Rewrite bare single terms into FTS5 prefix queries
- Assemble one parameterised SELECT from the optional structured filters
- Post-filter ranked full-text hits in memory

Sort columns only ever come from ``SORT_COLUMNS``; request values are used as
lookup keys, never spliced into SQL.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable

from core.models import ItemRecord, SearchRequest, to_iso

logger = logging.getLogger(__name__)

# ── Constants ──────────────────────────────────────────────────────────────────

#: sort_by key → stored column.
SORT_COLUMNS: dict[str, str] = {
    "score": "i.score",
    "date": "i.published_at",
    "stars": "i.stars",
    "recent": "i.fetched_at",
    "title": "i.title",
}

DEFAULT_SORT = "score"
DEFAULT_LIMIT = 100

BASE_SELECT = """
    SELECT i.*, b.id AS bookmark_id, b.note AS bookmark_note
    FROM items i
    LEFT JOIN bookmarks b ON b.item_id = i.id
"""

_PREFIX_MARKER = "*"


# ── Free-text helpers ──────────────────────────────────────────────────────────


def normalize_query(text: str) -> str:
    """Trim and lower-case *text* for the search history.

    Examples:
        >>> normalize_query("  Rust Async ")
        'rust async'
    """
    return text.strip().lower()


def to_match_query(text: str) -> str:
    """Turn a user search string into an FTS5 MATCH expression.

    A bare term (no whitespace, no double quote, no trailing ``*``) becomes a
    prefix query so single words behave like "starts with". Anything else is
    treated as deliberate FTS5 syntax and passed through untouched.

    Examples:
        >>> to_match_query("rust")
        'rust*'
        >>> to_match_query("rust OR go")
        'rust OR go'
        >>> to_match_query('"claude code"')
        '"claude code"'
    """
    term = text.strip()
    if any(ch.isspace() for ch in term) or '"' in term or term.endswith(_PREFIX_MARKER):
        return term
    return f"{term}{_PREFIX_MARKER}"


# ── Structured query builder ───────────────────────────────────────────────────


@dataclass(frozen=True)
class Predicate:
    """One WHERE clause and the parameters it binds."""

    clause: str
    params: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class CompiledQuery:
    """A ready-to-execute SQL string and its named parameters."""

    sql: str
    params: dict[str, Any]


def resolve_sort(sort_by: str | None) -> str:
    """Map a requested sort key to a column, falling back to score."""
    column = SORT_COLUMNS.get(sort_by or DEFAULT_SORT)
    if column is None:
        logger.warning("Unknown sort key %r, using %s", sort_by, DEFAULT_SORT)
        column = SORT_COLUMNS[DEFAULT_SORT]
    return column


def resolve_order(sort_order: str | None) -> str:
    return "ASC" if (sort_order or "").strip().upper() == "ASC" else "DESC"


class QueryBuilder:
    """Collects optional predicates then emits one parameterised query."""

    def __init__(self, base_sql: str = BASE_SELECT) -> None:
        self._base_sql = base_sql
        self._predicates: list[Predicate] = []
        self._order_by = f"{SORT_COLUMNS[DEFAULT_SORT]} DESC"
        self._limit = DEFAULT_LIMIT
        self._offset = 0

    def where(self, clause: str, **params: Any) -> QueryBuilder:
        self._predicates.append(Predicate(clause, params))
        return self

    def order_by(self, sort_by: str | None, sort_order: str | None) -> QueryBuilder:
        self._order_by = f"{resolve_sort(sort_by)} {resolve_order(sort_order)}"
        return self

    def paginate(self, limit: int, offset: int) -> QueryBuilder:
        self._limit = limit
        self._offset = offset
        return self

    @property
    def predicates(self) -> list[Predicate]:
        return list(self._predicates)

    def build(self) -> CompiledQuery:
        params: dict[str, Any] = {}
        for predicate in self._predicates:
            clash = params.keys() & predicate.params.keys()
            if clash:
                raise ValueError(f"Duplicate query parameters: {sorted(clash)}")
            params.update(predicate.params)

        sql = self._base_sql
        if self._predicates:
            sql += " WHERE " + " AND ".join(p.clause for p in self._predicates)
        # i.id breaks ties so consecutive pages never overlap
        sql += f" ORDER BY {self._order_by}, i.id ASC LIMIT :limit OFFSET :offset"
        params.update(limit=self._limit, offset=self._offset)
        return CompiledQuery(sql=sql, params=params)


def build_structured_query(request: SearchRequest) -> CompiledQuery:
    """Compile every present structured filter of *request* into one query.

    Absent filters add no predicate at all. The free-text ``search`` field is
    ignored here.
    """
    builder = QueryBuilder()

    if request.sources:
        names = {f"source_{n}": source for n, source in enumerate(request.sources)}
        placeholders = ", ".join(f":{name}" for name in names)
        builder.where(f"i.source IN ({placeholders})", **names)
    if request.date_from is not None:
        builder.where("i.published_at >= :date_from", date_from=to_iso(request.date_from))
    if request.date_to is not None:
        builder.where("i.published_at <= :date_to", date_to=to_iso(request.date_to))
    if request.score_min is not None:
        builder.where("i.score >= :score_min", score_min=request.score_min)
    if request.score_max is not None:
        builder.where("i.score <= :score_max", score_max=request.score_max)
    if request.bookmarks_only:
        builder.where("b.id IS NOT NULL")

    builder.order_by(request.sort_by, request.sort_order)
    builder.paginate(request.limit, request.offset)
    return builder.build()


# ── Full-text post filter ──────────────────────────────────────────────────────


def apply_post_filters(records: Iterable[ItemRecord], request: SearchRequest) -> list[ItemRecord]:
    """Drop ranked hits that fail the source, bookmark or score_min filters.

    Only removes rows; the incoming relevance order is kept.
    """
    sources = set(request.sources)
    kept: list[ItemRecord] = []
    for record in records:
        if sources and record.source not in sources:
            continue
        if request.bookmarks_only and not record.is_bookmarked:
            continue
        if request.score_min is not None and record.score < request.score_min:
            continue
        kept.append(record)
    return kept
