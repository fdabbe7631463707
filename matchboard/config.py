# matchboard/config.py

import logging
import os
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

# Identity resolution
SIMILARITY_THRESHOLD = 0.85

# Ingestion limits
MAX_CONCURRENT_DOWNLOADS = 3
DOWNLOAD_TIMEOUT_SECONDS = 10
MAX_IMAGE_BYTES = 10 * 1024 * 1024
EXTRACTION_TIMEOUT_SECONDS = 60

# Stats
DEFAULT_SEASON_START = datetime(2025, 1, 1, tzinfo=timezone.utc)
WIPE_SEASON_START = datetime(2000, 1, 1, tzinfo=timezone.utc)
DEFAULT_HISTORY_LIMIT = 10
MIN_DEATHS_FOR_KDA = 1

DEFAULT_DB_PATH = "data/matchboard.db"
DATE_INPUT_FORMAT = "%Y-%m-%d"


def _env(name: str, default: str = "") -> str:
    return os.getenv(name, default).strip()


def _env_int(name: str, default: int) -> int:
    raw = _env(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


@dataclass
class Settings:
    """Process configuration read from MATCHBOARD_* environment variables."""

    db_path: str = DEFAULT_DB_PATH
    extractor_url: Optional[str] = None
    extractor_key: Optional[str] = None
    max_workers: int = MAX_CONCURRENT_DOWNLOADS
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            db_path=_env("MATCHBOARD_DB_PATH") or DEFAULT_DB_PATH,
            extractor_url=_env("MATCHBOARD_EXTRACTOR_URL") or None,
            extractor_key=_env("MATCHBOARD_EXTRACTOR_KEY") or None,
            max_workers=max(1, _env_int("MATCHBOARD_MAX_WORKERS", MAX_CONCURRENT_DOWNLOADS)),
            log_level=(_env("MATCHBOARD_LOG_LEVEL") or "INFO").upper(),
        )


def setup_logging(level: str = "INFO", verbose: bool = False) -> None:
    """Configure root logging for entry points (CLI, web app)."""
    resolved = logging.DEBUG if verbose else getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(
        level=resolved,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
