# matchboard/identity.py

import logging
from typing import Dict, Optional

from matchboard.config import SIMILARITY_THRESHOLD
from matchboard.database import Database
from matchboard.errors import ValidationError
from matchboard.identity_cache import IdentityCache
from matchboard.names import canonicalize, similarity

LOGGER = logging.getLogger(__name__)


class IdentityResolver:
    """
    Map raw, possibly misspelled player names to stable player ids.

    Lookup order: cache, then a full scan of live players (exact canonical
    match first, otherwise the first candidate scoring above the threshold),
    then insert-or-return-existing on the live-name unique index. The scan
    follows storage order (player_id ascending); which of two equally close
    names wins is not part of the contract.

    Cache writes are deferred until the surrounding transaction commits, so
    a rolled-back match never leaves a phantom id in the cache.
    """

    def __init__(self, db: Database, cache: Optional[IdentityCache] = None,
                 threshold: float = SIMILARITY_THRESHOLD):
        self.db = db
        self.cache = cache if cache is not None else IdentityCache()
        self.threshold = threshold

    def warm(self) -> int:
        """Reload the cache from live players. Returns the number of entries."""
        players = self.db.get_live_players()
        self.cache.load((p["canonical_name"], p["player_id"]) for p in players)
        LOGGER.info("Identity cache warmed with %s players", len(players))
        return len(players)

    def _find_existing(self, canonical_name: str) -> Optional[Dict]:
        for player in self.db.get_live_players():
            candidate = player["canonical_name"]
            if candidate == canonical_name:
                return player
            if similarity(canonical_name, candidate) > self.threshold:
                LOGGER.debug("Fuzzy-matched '%s' to '%s'", canonical_name, candidate)
                return player
        return None

    def ensure_player(self, raw_name: str) -> int:
        """Return the id for raw_name, creating the player on first sighting."""
        canonical_name = canonicalize(raw_name)
        if not canonical_name:
            raise ValidationError(f"Player name '{raw_name}' has no usable characters")

        cached = self.cache.get(canonical_name)
        if cached is not None:
            return cached

        with self.db.transaction() as uow:
            existing = self._find_existing(canonical_name)
            if existing is not None:
                player_id = existing["player_id"]
            else:
                player_id = self.db.insert_or_get_player(raw_name.strip(), canonical_name)
                LOGGER.info("Created player %s for '%s'", player_id, raw_name)
            uow.after_commit(lambda: self.cache.set(canonical_name, player_id))
        return player_id

    # --- Invalidation hooks ---

    def on_rename(self, player_id: int, old_canonical: str, new_canonical: str) -> None:
        self.cache.delete(old_canonical)
        self.cache.set(new_canonical, player_id)
        LOGGER.debug("Cache re-keyed player %s: '%s' -> '%s'", player_id, old_canonical, new_canonical)

    def on_delete(self, player_id: int) -> None:
        evicted = self.cache.evict_player(player_id)
        LOGGER.debug("Cache evicted %s entries for player %s", evicted, player_id)

    def on_restore(self, player_id: int, canonical_name: str) -> None:
        self.cache.set(canonical_name, player_id)

    def on_wipe(self) -> None:
        self.cache.clear()
