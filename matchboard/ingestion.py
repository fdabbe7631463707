# matchboard/ingestion.py
"""
Screenshot ingestion: single-image pipeline and the batch coordinator.

One inbound submission may carry several screenshots. The coordinator runs
them on a bounded thread pool, isolates failures per item, waits for every
item, and reports outcomes in submission order regardless of which worker
finished first.
"""

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Sequence

from matchboard.config import MAX_CONCURRENT_DOWNLOADS
from matchboard.database import Database
from matchboard.dedup import DeduplicationGuard, content_hash, match_signature
from matchboard.downloader import ImageDownloader
from matchboard.errors import DuplicateMatchError, ExtractionError, MatchboardError, PersistenceError
from matchboard.extraction import ExtractedRow, Extractor, parse_extraction_payload
from matchboard.identity import IdentityResolver
from matchboard.persistor import MatchPersistor

LOGGER = logging.getLogger(__name__)

STATUS_SUCCESS = "success"
STATUS_DUPLICATE = "duplicate"
STATUS_ERROR = "error"

GENERIC_FAILURE_MESSAGE = "Could not save this screenshot, please try again later"


@dataclass
class ItemOutcome:
    index: int
    status: str
    match_id: Optional[int] = None
    error: Optional[str] = None
    message: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "index": self.index,
            "status": self.status,
            "match_id": self.match_id,
            "error": self.error,
            "message": self.message,
        }


@dataclass
class BatchSummary:
    outcomes: List[ItemOutcome] = field(default_factory=list)

    def _count(self, status: str) -> int:
        return sum(1 for o in self.outcomes if o.status == status)

    @property
    def succeeded(self) -> int:
        return self._count(STATUS_SUCCESS)

    @property
    def duplicates(self) -> int:
        return self._count(STATUS_DUPLICATE)

    @property
    def failed(self) -> int:
        return self._count(STATUS_ERROR)

    @property
    def match_ids(self) -> List[int]:
        return [o.match_id for o in self.outcomes if o.status == STATUS_SUCCESS]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total": len(self.outcomes),
            "succeeded": self.succeeded,
            "duplicates": self.duplicates,
            "failed": self.failed,
            "outcomes": [o.to_dict() for o in self.outcomes],
        }


class IngestionPipeline:
    """hash pre-check -> extract -> signature pre-check -> transactional persist."""

    def __init__(
        self,
        db: Database,
        extractor: Extractor,
        resolver: Optional[IdentityResolver] = None,
        downloader: Optional[ImageDownloader] = None,
    ):
        self.db = db
        self.extractor = extractor
        self.resolver = resolver or IdentityResolver(db)
        self.downloader = downloader or ImageDownloader()
        self.guard = DeduplicationGuard(db)
        self.persistor = MatchPersistor(db, self.resolver, self.guard)

    def _extract(self, image_bytes: bytes) -> List[ExtractedRow]:
        try:
            rows = self.extractor.extract(image_bytes)
        except ExtractionError:
            raise
        except Exception as exc:
            raise ExtractionError(f"Extraction failed: {exc}") from exc

        # Rows from any extractor go through the same result and name rules.
        return parse_extraction_payload(
            [row.to_dict() if isinstance(row, ExtractedRow) else row for row in (rows or [])]
        )

    def process_image(self, image_bytes: bytes, created_at: Optional[datetime] = None) -> int:
        fingerprint = content_hash(image_bytes)
        if self.guard.exists(content_hash=fingerprint):
            LOGGER.info("Duplicate screenshot rejected before extraction (hash=%s)", fingerprint[:12])
            raise DuplicateMatchError(fingerprint=fingerprint)

        rows = self._extract(image_bytes)
        signature = match_signature(rows)
        if self.guard.exists(signature=signature):
            LOGGER.info("Duplicate match rejected after extraction (sig=%s)", signature[:12])
            raise DuplicateMatchError(fingerprint=signature)

        return self.persistor.persist(rows, fingerprint, signature, created_at=created_at)

    def process_url(self, url: str) -> int:
        return self.process_image(self.downloader.download(url))


class IngestionCoordinator:
    """Fan a batch of screenshots out to at most ``max_workers`` threads."""

    def __init__(self, pipeline: IngestionPipeline, max_workers: int = MAX_CONCURRENT_DOWNLOADS):
        if max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        self.pipeline = pipeline
        self.max_workers = max_workers

    def ingest_urls(self, urls: Sequence[str]) -> BatchSummary:
        return self._run(list(urls), self.pipeline.process_url)

    def ingest_payloads(self, payloads: Sequence[bytes]) -> BatchSummary:
        return self._run(list(payloads), self.pipeline.process_image)

    def _run(self, items: List[Any], handler: Callable[[Any], int]) -> BatchSummary:
        if not items:
            return BatchSummary()

        outcomes: List[Optional[ItemOutcome]] = [None] * len(items)
        with ThreadPoolExecutor(max_workers=min(self.max_workers, len(items))) as executor:
            futures = {executor.submit(handler, item): index for index, item in enumerate(items)}
            for future in as_completed(futures):
                index = futures[future]
                outcomes[index] = self._classify(index, future)

        summary = BatchSummary(outcomes=outcomes)
        LOGGER.info(
            "Batch of %s finished: %s saved, %s duplicate, %s failed",
            len(items), summary.succeeded, summary.duplicates, summary.failed,
        )
        return summary

    @staticmethod
    def _classify(index: int, future) -> ItemOutcome:
        try:
            match_id = future.result()
        except DuplicateMatchError as exc:
            return ItemOutcome(index, STATUS_DUPLICATE, error=str(exc), message="Match already recorded")
        except PersistenceError as exc:
            return ItemOutcome(index, STATUS_ERROR, error=str(exc), message=GENERIC_FAILURE_MESSAGE)
        except MatchboardError as exc:
            LOGGER.warning("Screenshot %s rejected: %s", index + 1, exc)
            return ItemOutcome(index, STATUS_ERROR, error=str(exc), message=str(exc))
        except Exception as exc:
            LOGGER.exception("Unexpected failure ingesting screenshot %s", index + 1)
            return ItemOutcome(index, STATUS_ERROR, error=str(exc), message=GENERIC_FAILURE_MESSAGE)
        return ItemOutcome(index, STATUS_SUCCESS, match_id=match_id, message=f"Saved as match {match_id}")
