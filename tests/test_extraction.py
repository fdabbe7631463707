import base64
import json
import socket
from io import BytesIO
from urllib.error import HTTPError, URLError

import pytest

import matchboard.downloader as downloader_module
import matchboard.extraction as extraction_module
from matchboard.downloader import ImageDownloader
from matchboard.errors import DownloadError, ExtractionError
from matchboard.extraction import (
    ExtractedRow,
    HttpExtractionClient,
    UnconfiguredExtractor,
    normalize_result,
    parse_extraction_payload,
)

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 16


def test_parse_list_payload():
    rows = parse_extraction_payload([
        {"player_name": "Ghost", "result": "win", "kills": 7, "deaths": 2, "assists": 1},
        {"name": "Raven", "result": "LOSE", "kills": "3", "deaths": None},
    ])
    assert rows == [
        ExtractedRow("Ghost", "WIN", 7, 2, 1),
        ExtractedRow("Raven", "LOSE", 3, 0, 0),
    ]


def test_parse_wrapped_and_fenced_text():
    body = '```json\n{"players": [{"player_name": "Ghost", "result": "Win", "kills": 1}]}\n```'
    rows = parse_extraction_payload(body)
    assert rows == [ExtractedRow("Ghost", "WIN", 1, 0, 0)]


def test_parse_drops_rows_without_usable_name():
    rows = parse_extraction_payload([
        {"player_name": "***", "result": "WIN"},
        {"player_name": "", "result": "WIN"},
        {"player_name": "Ghost", "result": "LOSE"},
    ])
    assert [r.name for r in rows] == ["Ghost"]


def test_negative_and_garbage_numbers_are_clamped():
    rows = parse_extraction_payload([{"player_name": "Ghost", "result": "WIN", "kills": -4, "deaths": "x"}])
    assert rows[0].kills == 0
    assert rows[0].deaths == 0


@pytest.mark.parametrize(
    "payload",
    [
        "not json at all",
        {"something": "else"},
        [],
        [{"player_name": "***", "result": "WIN"}],
        ["Ghost"],
    ],
)
def test_unusable_payloads_raise(payload):
    with pytest.raises(ExtractionError):
        parse_extraction_payload(payload)


def test_normalize_result():
    assert normalize_result(" lose ") == "LOSE"
    with pytest.raises(ExtractionError):
        normalize_result("DRAW")
    with pytest.raises(ExtractionError):
        parse_extraction_payload([{"player_name": "Ghost", "result": "victory"}])


def test_unconfigured_extractor_fails():
    with pytest.raises(ExtractionError):
        UnconfiguredExtractor().extract(PNG_BYTES)


def test_http_client_posts_base64_image(monkeypatch):
    seen = {}

    def fake_urlopen(req, timeout=60):
        seen["url"] = req.full_url
        seen["auth"] = req.get_header("Authorization")
        seen["body"] = json.loads(req.data.decode("utf-8"))
        seen["timeout"] = timeout
        return BytesIO(b'[{"player_name": "Ghost", "result": "WIN", "kills": 4, "deaths": 1, "assists": 2}]')

    monkeypatch.setattr(extraction_module, "urlopen", fake_urlopen)
    client = HttpExtractionClient("https://vision.example/extract", api_key="secret", timeout_seconds=5)
    rows = client.extract(PNG_BYTES)

    assert rows == [ExtractedRow("Ghost", "WIN", 4, 1, 2)]
    assert seen["url"] == "https://vision.example/extract"
    assert seen["auth"] == "Bearer secret"
    assert seen["timeout"] == 5
    assert seen["body"]["mime_type"] == "image/png"
    assert base64.b64decode(seen["body"]["image"]) == PNG_BYTES


@pytest.mark.parametrize(
    "error",
    [
        HTTPError("https://vision.example/extract", 503, "Unavailable", hdrs=None, fp=BytesIO(b"")),
        URLError("connection refused"),
        TimeoutError("timed out"),
        socket.timeout("timed out"),
    ],
)
def test_http_client_maps_transport_errors(monkeypatch, error):
    def fake_urlopen(req, timeout=60):
        raise error

    monkeypatch.setattr(extraction_module, "urlopen", fake_urlopen)
    with pytest.raises(ExtractionError):
        HttpExtractionClient("https://vision.example/extract").extract(PNG_BYTES)


def test_http_client_requires_endpoint():
    with pytest.raises(ValueError):
        HttpExtractionClient("")


class TestImageDownloader:
    def test_download_returns_bytes(self, monkeypatch):
        monkeypatch.setattr(downloader_module, "urlopen", lambda req, timeout=10: BytesIO(PNG_BYTES))
        assert ImageDownloader().download("https://cdn.example/a.png") == PNG_BYTES

    def test_exact_cap_is_allowed(self, monkeypatch):
        monkeypatch.setattr(downloader_module, "urlopen", lambda req, timeout=10: BytesIO(b"x" * 8))
        assert ImageDownloader(max_bytes=8).download("https://cdn.example/a.png") == b"x" * 8

    def test_oversized_image_is_rejected(self, monkeypatch):
        monkeypatch.setattr(downloader_module, "urlopen", lambda req, timeout=10: BytesIO(b"x" * 9))
        with pytest.raises(DownloadError):
            ImageDownloader(max_bytes=8).download("https://cdn.example/a.png")

    def test_empty_body_is_rejected(self, monkeypatch):
        monkeypatch.setattr(downloader_module, "urlopen", lambda req, timeout=10: BytesIO(b""))
        with pytest.raises(DownloadError):
            ImageDownloader().download("https://cdn.example/a.png")

    def test_timeout_is_passed_and_mapped(self, monkeypatch):
        seen = {}

        def fake_urlopen(req, timeout=None):
            seen["timeout"] = timeout
            raise TimeoutError("timed out")

        monkeypatch.setattr(downloader_module, "urlopen", fake_urlopen)
        with pytest.raises(DownloadError):
            ImageDownloader(timeout_seconds=3).download("https://cdn.example/a.png")
        assert seen["timeout"] == 3

    def test_http_error_is_mapped(self, monkeypatch):
        def fake_urlopen(req, timeout=10):
            raise HTTPError(req.full_url, 404, "Not Found", hdrs=None, fp=BytesIO(b""))

        monkeypatch.setattr(downloader_module, "urlopen", fake_urlopen)
        with pytest.raises(DownloadError):
            ImageDownloader().download("https://cdn.example/missing.png")

    def test_socket_timeout_is_mapped(self, monkeypatch):
        def fake_urlopen(req, timeout=10):
            raise socket.timeout("timed out")

        monkeypatch.setattr(downloader_module, "urlopen", fake_urlopen)
        with pytest.raises(DownloadError):
            ImageDownloader().download("https://cdn.example/slow.png")
