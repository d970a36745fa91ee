"""Hybrid search: ranked full-text lookup plus structured filtering.

Responsibilities:
- Pick a strategy from the request (free text present or not)
- Record every free-text query in the history before it runs
- Run the FTS5 lookup and post-filter the ranked hits in memory
- Fall back to the structured query when FTS5 rejects the syntax

Known limitation of the text path:
    Only ``sources``, ``bookmarks_only`` and ``score_min`` are applied to
    ranked hits. Date bounds, ``score_max``, sort order and offset are not,
    so relevance order stays intact.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from core.errors import HubError, QuerySyntaxError
from core.fulltext import FullTextIndex
from core.history import SearchHistory
from core.models import ItemRecord, SearchRequest
from core.query import apply_post_filters, build_structured_query, to_match_query
from core.store import CorpusStore

logger = logging.getLogger(__name__)

RequestInput = SearchRequest | Mapping[str, Any] | None


class SearchEngine:
    """Single entry point for item search.

    Both strategies return ``ItemRecord`` objects with the bookmark join, so
    callers never need to know which one ran.
    """

    def __init__(self, store: CorpusStore, index: FullTextIndex, history: SearchHistory) -> None:
        self.store = store
        self.index = index
        self.history = history
        #: Number of history writes that failed; searches carried on regardless.
        self.history_failures = 0

    def search(self, request: RequestInput = None) -> list[ItemRecord]:
        """Run *request* and return the matching items.

        Args:
            request: A ``SearchRequest`` or a mapping of its fields
                (snake_case or camelCase). ``None`` lists everything with
                default sort and pagination.

        Returns:
            Items in relevance order (text path) or in the requested sort
            order (structured path).

        Raises:
            StoreUnavailable: On database failure. Malformed full-text
                syntax never raises.
        """
        if request is None:
            request = SearchRequest()
        elif not isinstance(request, SearchRequest):
            request = SearchRequest.model_validate(request)

        term = request.search_term
        if term:
            self._record(term)
            results = self._text_search(term, request)
            if results is not None:
                return results

        return self._structured_search(request)

    # ── Strategies ─────────────────────────────────────────────────────────

    def _text_search(self, term: str, request: SearchRequest) -> list[ItemRecord] | None:
        """Ranked FTS5 lookup; None means the syntax was rejected."""
        match_query = to_match_query(term)
        try:
            hits = self.index.search(match_query, limit=request.limit)
        except QuerySyntaxError as exc:
            logger.warning("Full-text query failed, falling back to filters: %s", exc.reason)
            return None

        results = apply_post_filters(hits, request)
        logger.info(
            "Search query=%r match=%r hits=%d kept=%d",
            term, match_query, len(hits), len(results),
        )
        return results

    def _structured_search(self, request: SearchRequest) -> list[ItemRecord]:
        compiled = build_structured_query(request)
        with self.store.db.connect() as conn:
            rows = conn.execute(compiled.sql, compiled.params).fetchall()
        logger.info("Structured search returned %d items", len(rows))
        return [ItemRecord.from_row(row) for row in rows]

    # ── History ────────────────────────────────────────────────────────────

    def _record(self, term: str) -> None:
        """Record *term* in the history; failure is logged, never raised."""
        try:
            self.history.record(term)
        except HubError as exc:
            self.history_failures += 1
            logger.warning("Could not record search history for %r: %s", term, exc)
