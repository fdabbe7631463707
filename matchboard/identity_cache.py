# matchboard/identity_cache.py

import threading
from contextlib import contextmanager
from typing import Dict, Iterable, Optional, Tuple


class ReadWriteLock:
    """Many concurrent readers or one writer. Writers are not starved."""

    def __init__(self):
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._waiting_writers = 0

    @contextmanager
    def read(self):
        with self._cond:
            while self._writer or self._waiting_writers:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if self._readers == 0:
                    self._cond.notify_all()

    @contextmanager
    def write(self):
        with self._cond:
            self._waiting_writers += 1
            while self._writer or self._readers:
                self._cond.wait()
            self._waiting_writers -= 1
            self._writer = True
        try:
            yield
        finally:
            with self._cond:
                self._writer = False
                self._cond.notify_all()


class IdentityCache:
    """
    Process-local canonical name -> player id map.

    An accelerator only: the live-name unique index in the database is the
    source of truth. Every rename, delete, restore and wipe must go through
    the invalidation methods below.
    """

    def __init__(self):
        self._lock = ReadWriteLock()
        self._entries: Dict[str, int] = {}

    def get(self, canonical_name: str) -> Optional[int]:
        with self._lock.read():
            return self._entries.get(canonical_name)

    def set(self, canonical_name: str, player_id: int) -> None:
        with self._lock.write():
            self._entries[canonical_name] = player_id

    def delete(self, canonical_name: str) -> None:
        with self._lock.write():
            self._entries.pop(canonical_name, None)

    def evict_player(self, player_id: int) -> int:
        """Drop every key pointing at player_id (fuzzy aliases included)."""
        with self._lock.write():
            stale = [key for key, value in self._entries.items() if value == player_id]
            for key in stale:
                del self._entries[key]
            return len(stale)

    def clear(self) -> None:
        with self._lock.write():
            self._entries = {}

    def load(self, entries: Iterable[Tuple[str, int]]) -> None:
        """Replace the whole map, e.g. when warming from storage at start-up."""
        fresh = {key: value for key, value in entries if key}
        with self._lock.write():
            self._entries = fresh

    def __len__(self) -> int:
        with self._lock.read():
            return len(self._entries)

    def __contains__(self, canonical_name: str) -> bool:
        with self._lock.read():
            return canonical_name in self._entries
