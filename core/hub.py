"""The Hub facade: one object wiring every core component to one database.

Collaborators (the Flask layer, ingestion runs, maintenance jobs) hold a
``Hub`` and never reach for module-level state.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from typing import TYPE_CHECKING, Any

from core.db import Database
from core.fulltext import FullTextIndex
from core.history import SavedSearches, SearchHistory
from core.models import (
    Bookmark,
    BookmarkedItem,
    HistoryEntry,
    ItemRecord,
    Keyword,
    SavedSearch,
    Source,
    Stats,
)
from core.search import RequestInput, SearchEngine
from core.store import CorpusStore, ItemInput

if TYPE_CHECKING:
    from config.settings import Settings

logger = logging.getLogger(__name__)


class Hub:
    """The core's public interface."""

    def __init__(self, db: Database) -> None:
        self.db = db
        self.store = CorpusStore(db)
        self.index = FullTextIndex(db)
        self.history = SearchHistory(db)
        self.saved = SavedSearches(db)
        self.engine = SearchEngine(self.store, self.index, self.history)

    @classmethod
    def from_settings(cls, settings: Settings) -> Hub:
        """Open (and if needed create) the database named by *settings*."""
        db = Database(settings.db_path, timeout=settings.db_timeout)
        db.init_schema()
        return cls(db)

    # ── Search ─────────────────────────────────────────────────────────────

    def search(self, request: RequestInput = None) -> list[ItemRecord]:
        return self.engine.search(request)

    def suggestions(self, prefix: str) -> list[HistoryEntry]:
        return self.history.suggest(prefix)

    def recent_searches(self) -> list[HistoryEntry]:
        return self.history.recent()

    # ── Ingestion ──────────────────────────────────────────────────────────

    def upsert_one(self, item: ItemInput) -> None:
        self.store.upsert_one(item)

    def upsert_many(self, items: Iterable[ItemInput]) -> int:
        return self.store.upsert_many(items)

    def get_item(self, item_id: str) -> ItemRecord:
        return self.store.require(item_id)

    def get_stats(self) -> Stats:
        return self.store.get_stats()

    def retention_sweep(self, max_age_days: int) -> int:
        return self.store.retention_sweep(max_age_days)

    # ── Bookmarks ──────────────────────────────────────────────────────────

    def add_bookmark(self, item_id: str, note: str = "", tags: list[str] | None = None) -> Bookmark:
        return self.store.add_bookmark(item_id, note, tags)

    def update_bookmark(self, item_id: str, **changes: Any) -> Bookmark:
        return self.store.update_bookmark(item_id, **changes)

    def remove_bookmark(self, item_id: str) -> bool:
        return self.store.remove_bookmark(item_id)

    def list_bookmarks(self) -> list[BookmarkedItem]:
        return self.store.list_bookmarks()

    # ── Saved searches ─────────────────────────────────────────────────────

    def save_search(
        self,
        name: str,
        query: str = "",
        filters: dict[str, Any] | None = None,
        sort_by: str = "score",
    ) -> int:
        return self.saved.save(name, query, filters, sort_by)

    def list_saved_searches(self) -> list[SavedSearch]:
        return self.saved.get_all()

    def delete_saved_search(self, search_id: int) -> None:
        self.saved.delete(search_id)

    def run_saved_search(self, search_id: int) -> list[ItemRecord]:
        """Replay a saved search against the current corpus."""
        return self.search(self.saved.get(search_id).to_request())

    # ── Catalogs ───────────────────────────────────────────────────────────

    def upsert_sources(self, sources: Iterable[Source | Mapping[str, Any]]) -> int:
        return self.store.upsert_sources(sources)

    def list_sources(self, enabled_only: bool = False) -> list[Source]:
        return self.store.list_sources(enabled_only)

    def set_source_enabled(self, source_id: str, enabled: bool) -> None:
        self.store.set_source_enabled(source_id, enabled)

    def mark_source_fetched(self, source_id: str) -> None:
        self.store.mark_source_fetched(source_id)

    def upsert_keywords(self, keywords: Iterable[Keyword | Mapping[str, Any]]) -> int:
        return self.store.upsert_keywords(keywords)

    def list_keywords(self) -> list[Keyword]:
        return self.store.list_keywords()
