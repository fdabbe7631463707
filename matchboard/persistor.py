# matchboard/persistor.py

import logging
from datetime import datetime
from typing import List, Optional, Sequence

from matchboard.database import Database
from matchboard.dedup import DeduplicationGuard
from matchboard.errors import DuplicateMatchError, MatchboardError, PersistenceError
from matchboard.extraction import ExtractedRow
from matchboard.identity import IdentityResolver

LOGGER = logging.getLogger(__name__)


class MatchPersistor:
    """
    Write one match and its result rows as a single atomic unit.

    Inside one transaction: re-check both fingerprints, resolve every
    participant (player inserts included), insert the match, batch-insert
    the rows. Any failure rolls all of it back, players created for
    previously unseen names included.
    """

    def __init__(self, db: Database, resolver: IdentityResolver, guard: Optional[DeduplicationGuard] = None):
        self.db = db
        self.resolver = resolver
        self.guard = guard or DeduplicationGuard(db)

    def persist(self, rows: Sequence[ExtractedRow], content_hash: str, signature: str,
                created_at: Optional[datetime] = None) -> int:
        try:
            with self.db.transaction():
                if self.guard.exists(content_hash=content_hash, signature=signature):
                    raise DuplicateMatchError(fingerprint=signature)

                resolved: List[dict] = []
                for row in rows:
                    resolved.append({
                        "player_id": self.resolver.ensure_player(row.name),
                        "raw_name": row.name,
                        "result": row.result,
                        "kills": row.kills,
                        "deaths": row.deaths,
                        "assists": row.assists,
                    })

                match_id = self.db.insert_match(content_hash, signature, created_at=created_at)
                self.db.insert_player_results(match_id, resolved)
        except DuplicateMatchError:
            LOGGER.info("Duplicate match rejected (hash=%s sig=%s)", content_hash[:12], signature[:12])
            raise
        except PersistenceError as e:
            LOGGER.error(
                "Persist match failed (hash=%s sig=%s rows=%s): %s",
                content_hash[:12], signature[:12], len(rows), e,
            )
            raise
        except MatchboardError as e:
            LOGGER.warning(
                "Match rejected (hash=%s sig=%s rows=%s): %s",
                content_hash[:12], signature[:12], len(rows), e,
            )
            raise

        LOGGER.info("Stored match %s with %s player rows", match_id, len(rows))
        return match_id
