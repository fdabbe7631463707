# matchboard/dedup.py
"""
Duplicate-submission detection.

Two independent fingerprints are checked against live matches:

* content hash - SHA-256 of the raw image bytes. Catches byte-identical
  re-uploads before the vision call is made.
* match signature - SHA-256 over the extracted rows, each rendered as
  ``name|kills/deaths/assists|RESULT`` and sorted before hashing so row
  order from extraction never changes it. Catches re-encoded or
  re-cropped screenshots of the same match.

The signature check must be repeated inside the transaction that inserts
the match; the live-row unique indexes settle any race that remains.
"""

import hashlib
from typing import Iterable, Optional

from matchboard.database import Database
from matchboard.extraction import ExtractedRow
from matchboard.names import canonicalize

SIGNATURE_SEPARATOR = "\n"


def content_hash(image_bytes: bytes) -> str:
    return hashlib.sha256(image_bytes).hexdigest()


def signature_line(row: ExtractedRow) -> str:
    return f"{canonicalize(row.name)}|{row.kills}/{row.deaths}/{row.assists}|{row.result}"


def match_signature(rows: Iterable[ExtractedRow]) -> str:
    lines = sorted(signature_line(row) for row in rows)
    return hashlib.sha256(SIGNATURE_SEPARATOR.join(lines).encode("utf-8")).hexdigest()


class DeduplicationGuard:
    """Answers "was this match already recorded?" for either fingerprint."""

    def __init__(self, db: Database):
        self.db = db

    def exists(self, content_hash: Optional[str] = None, signature: Optional[str] = None) -> bool:
        return self.db.match_exists(content_hash=content_hash, signature=signature)
