"""Application settings — all configuration loaded from environment variables.

Usage:
    from config.settings import Settings
    settings = Settings()
    settings.validate()   # raises ValueError on nonsensical values
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

_ROOT = Path(__file__).parent.parent


@dataclass
class Settings:
    """Centralised application configuration.

    All values are read from environment variables at instantiation time
    so that tests can override them by patching ``os.environ``.
    """

    # ── Storage ─────────────────────────────────────────────────────────────
    db_path: str = field(
        default_factory=lambda: os.environ.get("DB_PATH", str(_ROOT / "data" / "hub.db"))
    )
    #: Seconds a connection waits for a competing writer before failing.
    db_timeout: float = field(
        default_factory=lambda: float(os.environ.get("DB_TIMEOUT", "5"))
    )
    retention_days: int = field(
        default_factory=lambda: int(os.environ.get("RETENTION_DAYS", "30"))
    )

    # ── Catalogs ────────────────────────────────────────────────────────────
    sources_config: str = field(
        default_factory=lambda: os.environ.get(
            "SOURCES_CONFIG", str(_ROOT / "config" / "sources.json")
        )
    )
    keywords_config: str = field(
        default_factory=lambda: os.environ.get(
            "KEYWORDS_CONFIG", str(_ROOT / "config" / "keywords.json")
        )
    )

    # ── Flask ───────────────────────────────────────────────────────────────
    debug: bool = field(
        default_factory=lambda: os.environ.get("FLASK_DEBUG", "0") == "1"
    )
    port: int = field(
        default_factory=lambda: int(os.environ.get("PORT", "4444"))
    )

    def validate(self) -> None:
        """Raise ``ValueError`` if any setting is out of range."""
        if not self.db_path:
            raise ValueError("DB_PATH must not be empty.")
        if self.db_timeout <= 0:
            raise ValueError(f"DB_TIMEOUT must be positive, got {self.db_timeout}.")
        if self.retention_days < 0:
            raise ValueError(f"RETENTION_DAYS must be >= 0, got {self.retention_days}.")
