"""Tests for core/catalog.py and config/settings.py."""

from __future__ import annotations

import json

import pytest

from config.settings import Settings
from core.catalog import flatten_keywords, load_catalogs
from core.errors import ValidationError


@pytest.fixture
def catalog_files(tmp_path):
    sources = tmp_path / "sources.json"
    keywords = tmp_path / "keywords.json"
    sources.write_text(
        json.dumps(
            {
                "sources": [
                    {"id": "rel", "name": "Releases", "type": "changelog", "color": "#d97706"},
                    {"id": "docs", "name": "Docs", "type": "changelog", "enabled": False},
                ]
            }
        )
    )
    keywords.write_text(
        json.dumps(
            {
                "categories": [
                    {"id": "agents", "weight": 2.0, "keywords": ["agent", "mcp"]},
                    {"id": "tooling", "keywords": ["cli"]},
                ]
            }
        )
    )
    return sources, keywords


class TestLoadCatalogs:
    def test_loads_both_files(self, hub, catalog_files):
        assert load_catalogs(hub, *catalog_files) == (2, 3)

        assert [s.id for s in hub.store.list_sources(enabled_only=True)] == ["rel"]
        assert hub.store.list_sources()[1].config == {"color": "#d97706"}
        weights = {k.keyword: k.weight for k in hub.store.list_keywords()}
        assert weights == {"agent": 2.0, "mcp": 2.0, "cli": 1.0}

    def test_reload_is_idempotent(self, hub, catalog_files):
        load_catalogs(hub, *catalog_files)
        load_catalogs(hub, *catalog_files)

        assert len(hub.store.list_sources()) == 2
        assert len(hub.store.list_keywords()) == 3

    def test_missing_files_skipped(self, hub, tmp_path):
        assert load_catalogs(hub, tmp_path / "nope.json", tmp_path / "nada.json") == (0, 0)

    def test_malformed_json_raises(self, hub, tmp_path, catalog_files):
        broken = tmp_path / "broken.json"
        broken.write_text("{not json")

        with pytest.raises(ValidationError):
            load_catalogs(hub, broken, catalog_files[1])

    def test_keyword_block_without_id_raises(self, hub, tmp_path, catalog_files):
        bad = tmp_path / "bad_keywords.json"
        bad.write_text(json.dumps({"categories": [{"keywords": ["x"]}]}))

        with pytest.raises(ValidationError):
            load_catalogs(hub, catalog_files[0], bad)


class TestFlattenKeywords:
    def test_one_row_per_keyword(self):
        rows = flatten_keywords([{"id": "ai", "weight": 2, "keywords": ["llm", "agent"]}])
        assert rows == [
            {"category": "ai", "keyword": "llm", "weight": 2},
            {"category": "ai", "keyword": "agent", "weight": 2},
        ]


class TestSettings:
    def test_reads_environment(self, monkeypatch, tmp_path):
        monkeypatch.setenv("DB_PATH", str(tmp_path / "x.db"))
        monkeypatch.setenv("RETENTION_DAYS", "7")
        monkeypatch.setenv("FLASK_DEBUG", "1")

        settings = Settings()

        assert settings.db_path == str(tmp_path / "x.db")
        assert settings.retention_days == 7
        assert settings.debug is True

    def test_validate_rejects_negative_retention(self, monkeypatch):
        monkeypatch.setenv("RETENTION_DAYS", "-1")
        with pytest.raises(ValueError):
            Settings().validate()

    def test_validate_rejects_zero_timeout(self, monkeypatch):
        monkeypatch.setenv("DB_TIMEOUT", "0")
        with pytest.raises(ValueError):
            Settings().validate()
