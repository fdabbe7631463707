# tests/helpers.py

import os
import tempfile
import threading
from typing import Dict, List, Tuple

from matchboard.database import Database
from matchboard.errors import ExtractionError
from matchboard.extraction import ExtractedRow, Extractor


def create_temp_db() -> Tuple[Database, str]:
    """Create a fresh database in a temp file. Caller removes it via cleanup_db."""
    fd, db_path = tempfile.mkstemp(suffix=".db")
    os.close(fd)
    return Database(db_path), db_path


def cleanup_db(db: Database, db_path: str) -> None:
    db.close()
    for suffix in ("", "-wal", "-shm"):
        if os.path.exists(db_path + suffix):
            os.remove(db_path + suffix)


def row(name: str, result: str = "WIN", kills: int = 0, deaths: int = 0, assists: int = 0) -> ExtractedRow:
    return ExtractedRow(name=name, result=result, kills=kills, deaths=deaths, assists=assists)


def scoreboard(winners: List[str], losers: List[str], kda: Tuple[int, int, int] = (5, 3, 2)) -> List[ExtractedRow]:
    kills, deaths, assists = kda
    rows = [row(n, "WIN", kills, deaths, assists) for n in winners]
    rows += [row(n, "LOSE", deaths, kills, assists) for n in losers]
    return rows


class FakeExtractor(Extractor):
    """Returns canned rows keyed by image bytes; unknown images fail extraction."""

    def __init__(self, responses: Dict[bytes, object] = None):
        self.responses = dict(responses or {})
        self.calls: List[bytes] = []
        self._lock = threading.Lock()

    def extract(self, image_bytes: bytes) -> List[ExtractedRow]:
        with self._lock:
            self.calls.append(image_bytes)
        response = self.responses.get(image_bytes)
        if response is None:
            raise ExtractionError("vision service could not read the scoreboard")
        if isinstance(response, Exception):
            raise response
        return list(response)
