"""
Intel Hub core package.

Modules
───────
models    — Pydantic data models (Item, ItemRecord, SearchRequest, Bookmark, …)
errors    — Typed error taxonomy (ValidationError, NotFoundError, …)
db        — Explicit SQLite handle: schema, per-call transactions, clock
store     — Corpus store: idempotent upserts, bookmarks, catalogs, retention
fulltext  — FTS5 shadow index with bm25 ranking and syntax-error detection
query     — Query compiler: prefix rewrite, predicate builder, post filters
search    — Hybrid search engine with structured fallback
history   — Search history suggestions and saved searches
catalog   — JSON source/keyword catalog loader
hub       — Facade wiring every component to one Database
"""
