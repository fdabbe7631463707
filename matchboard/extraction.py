# matchboard/extraction.py

from __future__ import annotations

import base64
import json
import logging
import socket
from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Optional
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

from matchboard.config import EXTRACTION_TIMEOUT_SECONDS
from matchboard.errors import ExtractionError
from matchboard.names import canonicalize

LOGGER = logging.getLogger(__name__)

RESULT_WIN = "WIN"
RESULT_LOSE = "LOSE"
VALID_RESULTS = (RESULT_WIN, RESULT_LOSE)


@dataclass(frozen=True)
class ExtractedRow:
    """One scoreboard line as returned by the vision collaborator."""

    name: str
    result: str
    kills: int = 0
    deaths: int = 0
    assists: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _safe_int(value: Any, default: int = 0) -> int:
    if value is None or value == "":
        return default
    try:
        return max(0, int(value))
    except (TypeError, ValueError):
        return default


def normalize_result(value: Any) -> str:
    """Interpret a result case-insensitively as WIN or LOSE."""
    text = str(value or "").strip().upper()
    if text not in VALID_RESULTS:
        raise ExtractionError(f"Unrecognized match result '{value}'")
    return text


def _strip_code_fence(text: str) -> str:
    text = text.strip()
    if text.startswith("```"):
        text = text[3:]
        if text[:4].lower() == "json":
            text = text[4:]
        if text.rstrip().endswith("```"):
            text = text.rstrip()[:-3]
    return text.strip()


def parse_extraction_payload(payload: Any) -> List[ExtractedRow]:
    """
    Turn a vision-service reply into rows.

    Accepts a list of row objects, an object wrapping the list under
    ``players`` or ``rows``, or the same as JSON text (optionally wrapped in
    a Markdown code fence). Rows whose name canonicalizes to nothing are
    dropped; an unknown
    result or an empty row set is an ExtractionError.
    """
    if isinstance(payload, bytes):
        payload = payload.decode("utf-8", errors="replace")
    if isinstance(payload, str):
        try:
            payload = json.loads(_strip_code_fence(payload))
        except json.JSONDecodeError as exc:
            raise ExtractionError(f"Extraction response is not valid JSON: {exc}")
    if isinstance(payload, dict):
        payload = payload.get("players", payload.get("rows"))
    if not isinstance(payload, list):
        raise ExtractionError("Extraction response does not contain a list of players")

    rows: List[ExtractedRow] = []
    for item in payload:
        if not isinstance(item, dict):
            raise ExtractionError(f"Extraction row is not an object: {item!r}")
        name = str(item.get("player_name") or item.get("name") or "").strip()
        if not canonicalize(name):
            LOGGER.warning("Dropping extraction row without a usable player name: %r", item)
            continue
        rows.append(
            ExtractedRow(
                name=name,
                result=normalize_result(item.get("result")),
                kills=_safe_int(item.get("kills")),
                deaths=_safe_int(item.get("deaths")),
                assists=_safe_int(item.get("assists")),
            )
        )

    if not rows:
        raise ExtractionError("Extraction returned no player rows")
    return rows


class Extractor:
    """Contract for the vision collaborator."""

    def extract(self, image_bytes: bytes) -> List[ExtractedRow]:
        raise NotImplementedError


class UnconfiguredExtractor(Extractor):
    """Stand-in used when no extraction endpoint is configured."""

    def extract(self, image_bytes: bytes) -> List[ExtractedRow]:
        raise ExtractionError("No extraction service is configured (set MATCHBOARD_EXTRACTOR_URL)")


def _sniff_mime_type(data: bytes) -> str:
    if data.startswith(b"\x89PNG\r\n\x1a\n"):
        return "image/png"
    if data.startswith(b"\xff\xd8"):
        return "image/jpeg"
    if data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return "image/webp"
    return "application/octet-stream"


class HttpExtractionClient(Extractor):
    """Posts a screenshot to a JSON extraction endpoint and parses the reply."""

    HEADERS = {
        "Content-Type": "application/json",
        "Accept": "application/json, text/plain, */*",
        "User-Agent": "matchboard/1.0",
    }

    def __init__(self, endpoint: str, api_key: Optional[str] = None,
                 timeout_seconds: int = EXTRACTION_TIMEOUT_SECONDS):
        if not endpoint:
            raise ValueError("Extraction endpoint is required")
        self.endpoint = endpoint
        self.api_key = api_key
        self.timeout_seconds = timeout_seconds

    def _build_request(self, image_bytes: bytes) -> Request:
        headers = dict(self.HEADERS)
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        body = json.dumps({
            "mime_type": _sniff_mime_type(image_bytes),
            "image": base64.b64encode(image_bytes).decode("ascii"),
        }).encode("utf-8")
        return Request(self.endpoint, data=body, headers=headers, method="POST")

    def extract(self, image_bytes: bytes) -> List[ExtractedRow]:
        req = self._build_request(image_bytes)
        try:
            with urlopen(req, timeout=self.timeout_seconds) as resp:
                raw = resp.read()
        except HTTPError as exc:
            raise ExtractionError(f"Extraction service returned HTTP {exc.code}")
        except URLError as exc:
            raise ExtractionError(f"Extraction service unreachable: {exc.reason}")
        except (TimeoutError, socket.timeout):
            raise ExtractionError(f"Extraction timed out after {self.timeout_seconds}s")

        rows = parse_extraction_payload(raw)
        LOGGER.debug("Extracted %s rows from %s bytes", len(rows), len(image_bytes))
        return rows
