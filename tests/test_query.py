"""Tests for core/query.py — prefix rewrite, predicate builder, post filters."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest
from pydantic import ValidationError as PydanticValidationError

from core.models import ItemRecord, SearchRequest
from core.query import (
    QueryBuilder,
    apply_post_filters,
    build_structured_query,
    normalize_query,
    resolve_order,
    resolve_sort,
    to_match_query,
)

FETCHED = datetime(2026, 2, 1, tzinfo=timezone.utc)


def _record(item_id: str, **fields) -> ItemRecord:
    return ItemRecord(id=item_id, source=fields.pop("source", "github"), fetched_at=FETCHED, **fields)


# ── Free-text helpers ──────────────────────────────────────────────────────────


class TestToMatchQuery:
    def test_bare_term_becomes_prefix(self):
        assert to_match_query("rust") == "rust*"

    def test_surrounding_whitespace_trimmed(self):
        assert to_match_query("  rust ") == "rust*"

    def test_boolean_query_passed_through(self):
        assert to_match_query("rust OR go") == "rust OR go"

    def test_phrase_passed_through(self):
        assert to_match_query('"claude code"') == '"claude code"'

    def test_single_quoted_word_passed_through(self):
        assert to_match_query('"hooks"') == '"hooks"'

    def test_explicit_wildcard_not_doubled(self):
        assert to_match_query("rus*") == "rus*"


class TestNormalizeQuery:
    def test_trims_and_lowercases(self):
        assert normalize_query("  Rust OR Go ") == "rust or go"


# ── Structured query ───────────────────────────────────────────────────────────


class TestBuildStructuredQuery:
    def test_no_filters_adds_no_predicates(self):
        compiled = build_structured_query(SearchRequest())

        assert "WHERE" not in compiled.sql
        assert "ORDER BY i.score DESC, i.id ASC" in compiled.sql
        assert compiled.params == {"limit": 100, "offset": 0}

    def test_every_filter_present(self):
        request = SearchRequest(
            sources=["github", "docs"],
            date_from="2026-01-01",
            date_to="2026-01-31",
            score_min=0,
            score_max=50,
            bookmarks_only=True,
        )
        compiled = build_structured_query(request)

        assert "i.source IN (:source_0, :source_1)" in compiled.sql
        assert "i.published_at >= :date_from" in compiled.sql
        assert "i.published_at <= :date_to" in compiled.sql
        assert "i.score >= :score_min" in compiled.sql
        assert "i.score <= :score_max" in compiled.sql
        assert "b.id IS NOT NULL" in compiled.sql
        assert compiled.params["source_0"] == "github"
        assert compiled.params["date_from"] == "2026-01-01T00:00:00.000000+00:00"
        assert compiled.params["date_to"] == "2026-01-31T23:59:59.999999+00:00"

    def test_zero_score_bound_still_applied(self):
        compiled = build_structured_query(SearchRequest(score_min=0))
        assert compiled.params["score_min"] == 0

    def test_empty_sources_imposes_no_constraint(self):
        assert "source" not in build_structured_query(SearchRequest(sources=[])).sql

    def test_injected_sort_key_uses_default_column(self):
        compiled = build_structured_query(SearchRequest(sort_by="'; DROP TABLE items;"))

        assert "DROP" not in compiled.sql
        assert "ORDER BY i.score DESC" in compiled.sql

    def test_pagination_applied_last(self):
        compiled = build_structured_query(SearchRequest(limit=10, offset=20, score_min=1))

        assert compiled.sql.rstrip().endswith("LIMIT :limit OFFSET :offset")
        assert compiled.params["limit"] == 10
        assert compiled.params["offset"] == 20

    @pytest.mark.parametrize(
        "sort_by, column",
        [
            ("score", "i.score"),
            ("date", "i.published_at"),
            ("stars", "i.stars"),
            ("recent", "i.fetched_at"),
            ("title", "i.title"),
            (None, "i.score"),
            ("popularity", "i.score"),
        ],
    )
    def test_sort_allow_list(self, sort_by, column):
        assert resolve_sort(sort_by) == column

    @pytest.mark.parametrize("order, expected", [("ASC", "ASC"), ("asc", "ASC"), ("DESC", "DESC"), (None, "DESC"), ("sideways", "DESC")])
    def test_sort_direction(self, order, expected):
        assert resolve_order(order) == expected


class TestQueryBuilder:
    def test_predicates_kept_in_order(self):
        builder = QueryBuilder().where("a = :a", a=1).where("b = :b", b=2)

        assert [p.clause for p in builder.predicates] == ["a = :a", "b = :b"]
        assert " WHERE a = :a AND b = :b " in builder.build().sql

    def test_duplicate_parameter_names_rejected(self):
        builder = QueryBuilder().where("a = :x", x=1).where("b = :x", x=2)
        with pytest.raises(ValueError):
            builder.build()


# ── Post filters ───────────────────────────────────────────────────────────────


class TestApplyPostFilters:
    def test_filters_keep_rank_order(self):
        hits = [
            _record("c", score=5),
            _record("a", score=1),
            _record("b", score=9, source="docs"),
        ]
        kept = apply_post_filters(hits, SearchRequest(score_min=2))
        assert [r.id for r in kept] == ["c", "b"]

    def test_sources_and_bookmarks(self):
        hits = [
            _record("a", source="docs", bookmark_id=1),
            _record("b", source="docs"),
            _record("c", source="github", bookmark_id=2),
        ]
        kept = apply_post_filters(hits, SearchRequest(sources=["docs"], bookmarks_only=True))
        assert [r.id for r in kept] == ["a"]

    def test_other_filters_not_applied(self):
        hits = [_record("a", score=100)]
        kept = apply_post_filters(hits, SearchRequest(score_max=1, date_from="2030-01-01"))
        assert [r.id for r in kept] == ["a"]


# ── Request model ──────────────────────────────────────────────────────────────


class TestSearchRequest:
    def test_camel_case_aliases(self):
        request = SearchRequest.model_validate(
            {"dateFrom": "2026-01-01", "scoreMin": "3", "bookmarksOnly": "true", "sortBy": "stars", "sortOrder": "ASC"}
        )
        assert request.date_from == datetime(2026, 1, 1, tzinfo=timezone.utc)
        assert request.score_min == 3.0
        assert request.bookmarks_only is True
        assert request.sort_by == "stars"

    def test_blank_search_term_is_none(self):
        assert SearchRequest(search="   ").search_term is None
        assert SearchRequest(search=" rust ").search_term == "rust"

    def test_invalid_limit_rejected(self):
        with pytest.raises(PydanticValidationError):
            SearchRequest(limit=0)

    @pytest.mark.parametrize("field, value", [("limit", 10**20), ("limit", 10_001), ("offset", 2**63)])
    def test_out_of_range_paging_rejected(self, field, value):
        with pytest.raises(PydanticValidationError):
            SearchRequest(**{field: value})

    def test_paging_upper_bounds_accepted(self):
        request = SearchRequest(limit=10_000, offset=2**63 - 1)
        assert (request.limit, request.offset) == (10_000, 2**63 - 1)
