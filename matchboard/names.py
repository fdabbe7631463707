# matchboard/names.py
"""
Name canonicalization and similarity scoring.

The canonical form is the identity comparison key used by both the
in-memory cache and the persisted uniqueness constraint, so the two can
never disagree about whether two raw names are the same candidate.
"""

import re

from rapidfuzz.distance import Levenshtein

_WHITESPACE_RE = re.compile(r"\s+")


def canonicalize(raw: str) -> str:
    """Lowercase, keep letters/digits/whitespace, trim, collapse whitespace."""
    text = str(raw or "").lower()
    kept = "".join(ch for ch in text if ch.isalnum() or ch.isspace())
    return _WHITESPACE_RE.sub(" ", kept).strip()


def levenshtein_distance(a: str, b: str) -> int:
    """Character-level edit distance (insert, delete, substitute)."""
    return Levenshtein.distance(a or "", b or "")


def similarity(a: str, b: str) -> float:
    """
    Similarity of two names in [0, 1], computed over canonical forms.

    1 - distance / max(len(a), len(b)). Equal names score 1.0, and an
    empty name against a non-empty one scores 0.0.
    """
    a = canonicalize(a)
    b = canonicalize(b)
    if a == b:
        return 1.0
    if not a or not b:
        return 0.0
    return 1.0 - levenshtein_distance(a, b) / max(len(a), len(b))
