# matchboard/service.py

import logging
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence

from matchboard.config import DATE_INPUT_FORMAT, DEFAULT_HISTORY_LIMIT, MAX_CONCURRENT_DOWNLOADS, WIPE_SEASON_START, Settings
from matchboard.database import Database, utc_now
from matchboard.downloader import ImageDownloader
from matchboard.errors import NotFoundError, ValidationError
from matchboard.extraction import Extractor, HttpExtractionClient, UnconfiguredExtractor
from matchboard.identity import IdentityResolver
from matchboard.ingestion import BatchSummary, IngestionCoordinator, IngestionPipeline
from matchboard.names import canonicalize
from matchboard.stats import PlayerStats, StatsAggregator

LOGGER = logging.getLogger(__name__)


def parse_date(value: str, allow_now: bool = False) -> datetime:
    """Parse a YYYY-MM-DD date (midnight UTC), or "now" when allowed."""
    text = str(value or "").strip()
    if allow_now and text.lower() == "now":
        return utc_now()
    try:
        return datetime.strptime(text, DATE_INPUT_FORMAT).replace(tzinfo=timezone.utc)
    except ValueError:
        expected = "YYYY-MM-DD or 'now'" if allow_now else "YYYY-MM-DD"
        raise ValidationError(f"Invalid date '{value}', use {expected}")


class MatchService:
    """Operations the chat-bot, CLI and web layers call."""

    def __init__(
        self,
        db: Database,
        extractor: Optional[Extractor] = None,
        downloader: Optional[ImageDownloader] = None,
        max_workers: int = MAX_CONCURRENT_DOWNLOADS,
    ):
        self.db = db
        self.resolver = IdentityResolver(db)
        self.resolver.warm()
        self.pipeline = IngestionPipeline(db, extractor or UnconfiguredExtractor(), self.resolver, downloader)
        self.coordinator = IngestionCoordinator(self.pipeline, max_workers=max_workers)
        self.stats = StatsAggregator(db)

    @classmethod
    def from_settings(cls, settings: Settings, extractor: Optional[Extractor] = None) -> "MatchService":
        if extractor is None and settings.extractor_url:
            extractor = HttpExtractionClient(settings.extractor_url, api_key=settings.extractor_key)
        return cls(Database(settings.db_path), extractor=extractor, max_workers=settings.max_workers)

    # --- Ingestion ---

    def submit_images(self, urls: Sequence[str]) -> BatchSummary:
        return self.coordinator.ingest_urls(urls)

    def submit_image_bytes(self, payloads: Sequence[bytes]) -> BatchSummary:
        return self.coordinator.ingest_payloads(payloads)

    # --- Queries ---

    def get_leaderboard(self, sort_key: str = "winrate") -> List[PlayerStats]:
        return self.stats.leaderboard(sort_key)

    def get_player_stats(self, player_id: Optional[int] = None, name: Optional[str] = None) -> PlayerStats:
        return self.stats.player_stats(player_id=player_id, name=name)

    def get_history(self, player_id: int, limit: int = DEFAULT_HISTORY_LIMIT) -> List[Dict]:
        return self.stats.history(player_id, limit)

    def export_leaderboard(self, sort_key: str = "winrate") -> List[List]:
        return self.stats.export_rows(sort_key)

    def list_players(self, include_deleted: bool = False) -> List[Dict]:
        return self.db.get_all_players(include_deleted=include_deleted)

    # --- Season administration ---

    def set_season_start(self, date_str: str) -> datetime:
        start = parse_date(date_str)
        self.db.set_season_start_date(start)
        LOGGER.info("Season start set to %s", start.isoformat())
        return start

    def reset_season_now(self) -> datetime:
        start = utc_now()
        self.db.set_season_start_date(start)
        LOGGER.info("Season restarted at %s", start.isoformat())
        return start

    def reset_player(self, name: str, date_str: str = "now") -> datetime:
        reset_at = parse_date(date_str, allow_now=True)
        canonical_name = canonicalize(name)
        if not canonical_name:
            raise ValidationError(f"Player name '{name}' has no usable characters")
        if self.db.get_player_by_canonical(canonical_name) is None:
            raise NotFoundError(f"Player '{name}' not found")
        self.db.set_player_reset_date(canonical_name, reset_at)
        LOGGER.info("Personal reset for '%s' set to %s", canonical_name, reset_at.isoformat())
        return reset_at

    # --- Match administration ---

    def delete_match(self, match_id: int) -> None:
        self.db.soft_delete_match(match_id)
        LOGGER.info("Match %s deleted", match_id)

    def restore_match(self, match_id: int) -> None:
        self.db.restore_match(match_id)
        LOGGER.info("Match %s restored", match_id)

    def wipe_all(self) -> Dict[str, int]:
        # Evicted inside the write unit, before commit.
        with self.db.transaction():
            counts = self.db.wipe_all()
            self.resolver.on_wipe()
            self.db.set_season_start_date(WIPE_SEASON_START)
        LOGGER.warning(
            "All data wiped (%s matches, %s players)", counts["matches"], counts["players"]
        )
        return counts

    # --- Player administration ---

    def rename_player(self, player_id: int, new_name: str) -> Dict:
        new_name = str(new_name or "").strip()
        new_canonical = canonicalize(new_name)
        if not new_canonical:
            raise ValidationError(f"Player name '{new_name}' has no usable characters")
        with self.db.transaction() as uow:
            old = self.db.rename_player(player_id, new_name, new_canonical)
            self.resolver.on_delete(player_id)
            uow.after_commit(
                lambda: self.resolver.on_rename(player_id, old["canonical_name"], new_canonical)
            )
        LOGGER.info("Player %s renamed '%s' -> '%s'", player_id, old["name"], new_name)
        return self.db.get_player_by_id(player_id)

    def delete_player(self, player_id: int) -> Dict:
        with self.db.transaction():
            player = self.db.soft_delete_player(player_id)
            self.resolver.on_delete(player_id)
        LOGGER.info("Player %s ('%s') deleted", player_id, player["name"])
        return player

    def restore_player(self, player_id: int) -> Dict:
        with self.db.transaction() as uow:
            player = self.db.restore_player(player_id)
            uow.after_commit(lambda: self.resolver.on_restore(player_id, player["canonical_name"]))
        LOGGER.info("Player %s ('%s') restored", player_id, player["name"])
        return player

    def close(self) -> None:
        self.db.close()
