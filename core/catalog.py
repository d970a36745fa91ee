"""Load the source and keyword catalogs from JSON config files.

File formats
────────────
sources.json   {"sources": [{"id", "name", "type", "url", "enabled", ...}]}
keywords.json  {"categories": [{"id", "weight", "keywords": ["...", ...]}]}
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any

from core.errors import ValidationError

if TYPE_CHECKING:
    from core.hub import Hub

logger = logging.getLogger(__name__)


def _read_json(path: Path) -> dict[str, Any] | None:
    """Return the parsed file, or None if it does not exist."""
    if not path.exists():
        logger.info("Catalog file %s not found, skipping", path)
        return None
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ValidationError(f"Malformed catalog file {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ValidationError(f"Catalog file {path} must contain a JSON object")
    return data


def flatten_keywords(categories: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Expand category blocks into one keyword row per keyword.

    Examples:
        >>> flatten_keywords([{"id": "ai", "weight": 2, "keywords": ["llm", "agent"]}])
        [{'category': 'ai', 'keyword': 'llm', 'weight': 2}, {'category': 'ai', 'keyword': 'agent', 'weight': 2}]
    """
    rows: list[dict[str, Any]] = []
    for category in categories:
        for keyword in category.get("keywords", []):
            rows.append(
                {
                    "category": category["id"],
                    "keyword": keyword,
                    "weight": category.get("weight", 1.0),
                }
            )
    return rows


def load_catalogs(hub: Hub, sources_path: str | Path, keywords_path: str | Path) -> tuple[int, int]:
    """Persist both catalogs into *hub*'s store.

    Returns:
        ``(sources_loaded, keywords_loaded)``.
    """
    n_sources = n_keywords = 0

    sources_doc = _read_json(Path(sources_path))
    if sources_doc is not None:
        n_sources = hub.upsert_sources(sources_doc.get("sources", []))
        logger.info("Loaded %d sources", n_sources)

    keywords_doc = _read_json(Path(keywords_path))
    if keywords_doc is not None:
        try:
            rows = flatten_keywords(keywords_doc.get("categories", []))
        except (KeyError, TypeError, AttributeError) as exc:
            raise ValidationError(f"Malformed keyword catalog {keywords_path}: {exc}") from exc
        n_keywords = hub.upsert_keywords(rows)
        logger.info("Loaded %d keywords", n_keywords)

    return n_sources, n_keywords
