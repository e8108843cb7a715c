from __future__ import annotations

import os
from dataclasses import dataclass


@dataclass(frozen=True)
class Settings:
    db_url: str = os.getenv("CELLAR_DB_URL", "sqlite:///data/cellar.db")
    db_timeout_s: float = float(os.getenv("CELLAR_DB_TIMEOUT_S", 30))
    invitation_ttl_ms: int = int(os.getenv("CELLAR_INVITATION_TTL_MS", 14 * 24 * 60 * 60 * 1000))
    max_suggestion_candidates: int = int(os.getenv("CELLAR_MAX_SUGGESTION_CANDIDATES", 50))
    max_photo_bytes: int = int(os.getenv("CELLAR_MAX_PHOTO_BYTES", 5 * 1024 * 1024))
    log_level: str = os.getenv("CELLAR_LOG_LEVEL", "INFO")


settings = Settings()
