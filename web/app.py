"""
Flask web server for Intel Hub.

Routes
──────
GET    /api/health                      Liveness + corpus counts
GET    /api/items                       Search / filter items (query params)
GET    /api/items/<id>                  Fetch one item
GET    /api/stats                       Totals by source, bookmark count
GET    /api/bookmarks                   List bookmarks (newest first)
POST   /api/bookmarks                   Bookmark an item
PATCH  /api/bookmarks/<item_id>         Update note / tags / reviewed
DELETE /api/bookmarks/<item_id>         Remove a bookmark
GET    /api/search/suggestions?q=...    Autocomplete from search history
GET    /api/search/recent               Recent searches
GET    /api/search/saved                List saved searches
POST   /api/search/saved                Create a saved search
GET    /api/search/saved/<id>/run       Replay a saved search
DELETE /api/search/saved/<id>           Delete a saved search
GET    /api/sources                     Source catalog
PATCH  /api/sources/<id>                Enable / disable a source
POST   /api/maintenance/retention       Run a retention sweep
"""

from __future__ import annotations

import logging
import os
import sys

from dotenv import load_dotenv
from flask import Flask, current_app, jsonify, request
from pydantic import ValidationError as PydanticValidationError

# Allow running as `python web/app.py` from the project root
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

load_dotenv()

from config.settings import Settings
from core.catalog import load_catalogs
from core.errors import NotFoundError, StoreUnavailable, ValidationError
from core.hub import Hub
from core.models import SearchRequest

logger = logging.getLogger(__name__)


def _hub() -> Hub:
    return current_app.extensions["hub"]


def _search_request_from_args() -> SearchRequest:
    """Build a SearchRequest from query params; ``sources`` may be comma-joined."""
    payload = {key: value for key, value in request.args.items() if key != "sources"}
    payload["sources"] = [
        name.strip()
        for raw in request.args.getlist("sources")
        for name in raw.split(",")
        if name.strip()
    ]
    return SearchRequest.model_validate(payload)


def _json_body() -> dict:
    body = request.get_json(silent=True)
    if not isinstance(body, dict):
        raise ValidationError("Request body must be a JSON object")
    return body


def create_app(settings: Settings | None = None, hub: Hub | None = None) -> Flask:
    """Build the Flask app around one Hub instance."""
    settings = settings or Settings()
    settings.validate()
    hub = hub or Hub.from_settings(settings)
    load_catalogs(hub, settings.sources_config, settings.keywords_config)

    app = Flask(__name__)
    app.config["HUB_SETTINGS"] = settings
    app.extensions["hub"] = hub

    # ── Error mapping ──────────────────────────────────────────────────────

    @app.errorhandler(ValidationError)
    @app.errorhandler(PydanticValidationError)
    def bad_request(exc):
        return jsonify({"error": str(exc)}), 400

    @app.errorhandler(NotFoundError)
    def not_found(exc):
        return jsonify({"error": str(exc)}), 404

    @app.errorhandler(StoreUnavailable)
    def store_unavailable(exc):
        logger.error("Store unavailable: %s", exc)
        return jsonify({"error": "Storage unavailable"}), 503

    # ── Items ──────────────────────────────────────────────────────────────

    @app.route("/api/health")
    def health():
        stats = _hub().get_stats()
        return jsonify(
            {
                "status": "healthy",
                "totalItems": stats.total_items,
                "bookmarks": stats.bookmark_count,
            }
        )

    @app.route("/api/items")
    def list_items():
        """Search items; see SearchRequest for the accepted parameters."""
        results = _hub().search(_search_request_from_args())
        return jsonify([r.model_dump(mode="json") for r in results])

    @app.route("/api/items/<item_id>")
    def get_item(item_id: str):
        return jsonify(_hub().get_item(item_id).model_dump(mode="json"))

    @app.route("/api/stats")
    def stats():
        return jsonify(_hub().get_stats().model_dump(by_alias=True))

    # ── Bookmarks ──────────────────────────────────────────────────────────

    @app.route("/api/bookmarks")
    def list_bookmarks():
        return jsonify([b.model_dump(mode="json") for b in _hub().list_bookmarks()])

    @app.route("/api/bookmarks", methods=["POST"])
    def add_bookmark():
        body = _json_body()
        item_id = body.get("item_id") or body.get("itemId")
        if not item_id:
            raise ValidationError("item_id is required")
        bookmark = _hub().add_bookmark(item_id, body.get("note", ""), body.get("tags") or [])
        return jsonify(bookmark.model_dump(mode="json")), 201

    @app.route("/api/bookmarks/<item_id>", methods=["PATCH"])
    def update_bookmark(item_id: str):
        body = _json_body()
        changes = {k: body[k] for k in ("note", "tags", "reviewed") if k in body}
        bookmark = _hub().update_bookmark(item_id, **changes)
        return jsonify(bookmark.model_dump(mode="json"))

    @app.route("/api/bookmarks/<item_id>", methods=["DELETE"])
    def remove_bookmark(item_id: str):
        if not _hub().remove_bookmark(item_id):
            return jsonify({"error": "Not found"}), 404
        return jsonify({"deleted": item_id})

    # ── Search history & saved searches ────────────────────────────────────

    @app.route("/api/search/suggestions")
    def suggestions():
        entries = _hub().suggestions(request.args.get("q", ""))
        return jsonify([{"query": e.query, "count": e.count} for e in entries])

    @app.route("/api/search/recent")
    def recent_searches():
        entries = _hub().recent_searches()
        return jsonify([{"query": e.query, "count": e.count} for e in entries])

    @app.route("/api/search/saved")
    def list_saved():
        return jsonify([s.model_dump(mode="json") for s in _hub().list_saved_searches()])

    @app.route("/api/search/saved", methods=["POST"])
    def create_saved():
        body = _json_body()
        search_id = _hub().save_search(
            body.get("name", ""),
            body.get("query", ""),
            body.get("filters") or {},
            body.get("sortBy") or body.get("sort_by") or "score",
        )
        return jsonify({"id": search_id}), 201

    @app.route("/api/search/saved/<int:search_id>/run")
    def run_saved(search_id: int):
        results = _hub().run_saved_search(search_id)
        return jsonify([r.model_dump(mode="json") for r in results])

    @app.route("/api/search/saved/<int:search_id>", methods=["DELETE"])
    def delete_saved(search_id: int):
        _hub().delete_saved_search(search_id)
        return jsonify({"deleted": search_id})

    # ── Sources & maintenance ──────────────────────────────────────────────

    @app.route("/api/sources")
    def list_sources():
        return jsonify([s.model_dump(mode="json") for s in _hub().list_sources()])

    @app.route("/api/sources/<source_id>", methods=["PATCH"])
    def toggle_source(source_id: str):
        body = _json_body()
        if not isinstance(body.get("enabled"), bool):
            raise ValidationError("enabled must be true or false")
        _hub().set_source_enabled(source_id, body["enabled"])
        return jsonify({"id": source_id, "enabled": body["enabled"]})

    @app.route("/api/maintenance/retention", methods=["POST"])
    def retention():
        body = request.get_json(silent=True)
        days = body.get("days", settings.retention_days) if isinstance(body, dict) else settings.retention_days
        if not isinstance(days, int) or isinstance(days, bool):
            raise ValidationError("days must be an integer")
        deleted = _hub().retention_sweep(days)
        return jsonify({"deleted": deleted, "days": days})

    return app


# ── Entry point ────────────────────────────────────────────────────────────

if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    settings = Settings()
    create_app(settings).run(debug=settings.debug, host="0.0.0.0", port=settings.port)
