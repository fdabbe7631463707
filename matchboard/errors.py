# matchboard/errors.py
"""
Typed failures raised by the ingestion pipeline and the stats layer.

Upstream callers (CLI, web app, chat bot) catch these and turn them into
user-facing messages; nothing here is meant to crash the process.
"""


class MatchboardError(Exception):
    """Base class for all domain errors."""


class DuplicateMatchError(MatchboardError):
    """The content hash or the signature is already recorded for a live match."""

    def __init__(self, message: str = "Duplicate match detected", fingerprint: str = None):
        super().__init__(message)
        self.fingerprint = fingerprint


class ExtractionError(MatchboardError):
    """The vision collaborator failed, timed out, or returned something unusable."""


class DownloadError(MatchboardError):
    """The screenshot could not be fetched within the timeout or size cap."""


class PersistenceError(MatchboardError, RuntimeError):
    """A query or transaction failed; the unit of work was rolled back."""


class ValidationError(MatchboardError, ValueError):
    """Malformed caller input (dates, sort keys, names)."""


class NotFoundError(MatchboardError, LookupError):
    """Unknown player or match id."""
