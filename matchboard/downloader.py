# matchboard/downloader.py

import logging
import socket
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

from matchboard.config import DOWNLOAD_TIMEOUT_SECONDS, MAX_IMAGE_BYTES
from matchboard.errors import DownloadError

LOGGER = logging.getLogger(__name__)


class ImageDownloader:
    """Fetch attachment bytes with a hard timeout and size cap."""

    HEADERS = {
        "User-Agent": "matchboard/1.0",
        "Accept": "image/*, application/octet-stream;q=0.9, */*;q=0.5",
    }

    def __init__(self, timeout_seconds: int = DOWNLOAD_TIMEOUT_SECONDS, max_bytes: int = MAX_IMAGE_BYTES):
        self.timeout_seconds = timeout_seconds
        self.max_bytes = max_bytes

    def download(self, url: str) -> bytes:
        req = Request(url, headers=self.HEADERS, method="GET")
        try:
            with urlopen(req, timeout=self.timeout_seconds) as resp:
                # One byte past the cap tells an exact-size file from an oversized one.
                data = resp.read(self.max_bytes + 1)
        except HTTPError as exc:
            raise DownloadError(f"Download failed with HTTP {exc.code}: {url}")
        except URLError as exc:
            raise DownloadError(f"Download failed: {exc.reason}")
        except (TimeoutError, socket.timeout):
            raise DownloadError(f"Download timed out after {self.timeout_seconds}s: {url}")

        if len(data) > self.max_bytes:
            raise DownloadError(f"Image exceeds {self.max_bytes} bytes: {url}")
        if not data:
            raise DownloadError(f"Downloaded image is empty: {url}")
        LOGGER.debug("Downloaded %s bytes from %s", len(data), url)
        return data
