# matchboard/database.py

import logging
import os
import sqlite3
import threading
import time
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence

from matchboard.config import DEFAULT_DB_PATH, DEFAULT_SEASON_START
from matchboard.errors import DuplicateMatchError, NotFoundError, PersistenceError, ValidationError
from matchboard.names import canonicalize

LOGGER = logging.getLogger(__name__)

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S.%f"
SEASON_START_KEY = "season_start_date"


def ensure_utc(value: datetime) -> datetime:
    """Naive datetimes are taken as UTC; aware ones are converted."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_db_timestamp(value: datetime) -> str:
    """Render a datetime as sortable UTC text."""
    return ensure_utc(value).strftime(TIMESTAMP_FORMAT)


def from_db_timestamp(value: str) -> datetime:
    return datetime.strptime(value, TIMESTAMP_FORMAT).replace(tzinfo=timezone.utc)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class UnitOfWork:
    """An open write transaction plus callbacks to run once it has committed."""

    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn
        self.cursor = conn.cursor()
        self._after_commit: List[Callable[[], None]] = []

    def after_commit(self, callback: Callable[[], None]) -> None:
        self._after_commit.append(callback)

    def run_after_commit(self) -> None:
        callbacks, self._after_commit = self._after_commit, []
        for callback in callbacks:
            callback()

    def discard(self) -> None:
        self._after_commit = []


class Database:
    """
    Handle all database operations.

    One SQLite connection shared by every worker thread. Access is serialized
    by a re-entrant lock; write units run inside ``transaction()`` which opens
    ``BEGIN IMMEDIATE`` and joins an outer transaction when nested.
    """

    def __init__(self, db_path: str = DEFAULT_DB_PATH):
        self.db_path = self._resolve_db_path(db_path)
        self.conn = None
        self._lock = threading.RLock()
        self._active: Optional[UnitOfWork] = None
        self.init_database()

    @staticmethod
    def _resolve_db_path(db_path: str) -> str:
        """Return an absolute database path anchored to project root when relative."""
        if db_path == ":memory:":
            return db_path
        path = Path(db_path)
        if path.is_absolute():
            return str(path)

        project_root = Path(__file__).resolve().parents[1]
        return str(project_root / path)

    def init_database(self):
        """Create tables and indexes if they don't exist."""
        try:
            db_dir = os.path.dirname(self.db_path) if self.db_path != ":memory:" else ""
            if db_dir:
                try:
                    os.makedirs(db_dir, exist_ok=True)
                except OSError as e:
                    raise PersistenceError(f"Failed to create database directory '{db_dir}': {e}")

            self.conn = sqlite3.connect(self.db_path, timeout=30.0, check_same_thread=False)
            self.conn.row_factory = sqlite3.Row
            self.conn.execute("PRAGMA busy_timeout = 30000")
            self.conn.execute("PRAGMA foreign_keys = ON")
            self._set_wal_mode_best_effort()

            cursor = self.conn.cursor()

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS players (
                    player_id       INTEGER PRIMARY KEY AUTOINCREMENT,
                    name            TEXT NOT NULL,
                    canonical_name  TEXT NOT NULL DEFAULT '',
                    created_at      TEXT NOT NULL,
                    is_deleted      INTEGER NOT NULL DEFAULT 0,
                    deleted_at      TEXT
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS matches (
                    match_id        INTEGER PRIMARY KEY AUTOINCREMENT,
                    content_hash    TEXT NOT NULL,
                    signature       TEXT NOT NULL,
                    created_at      TEXT NOT NULL,
                    is_deleted      INTEGER NOT NULL DEFAULT 0,
                    deleted_at      TEXT
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS player_results (
                    result_id       INTEGER PRIMARY KEY AUTOINCREMENT,
                    match_id        INTEGER NOT NULL,
                    player_id       INTEGER NOT NULL,
                    raw_name        TEXT NOT NULL,
                    result          TEXT NOT NULL CHECK (result IN ('WIN', 'LOSE')),
                    kills           INTEGER NOT NULL DEFAULT 0,
                    deaths          INTEGER NOT NULL DEFAULT 0,
                    assists         INTEGER NOT NULL DEFAULT 0,
                    is_deleted      INTEGER NOT NULL DEFAULT 0,
                    FOREIGN KEY (match_id) REFERENCES matches(match_id),
                    FOREIGN KEY (player_id) REFERENCES players(player_id)
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS settings (
                    key     TEXT PRIMARY KEY,
                    value   TEXT NOT NULL
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS player_resets (
                    canonical_name  TEXT PRIMARY KEY,
                    reset_date      TEXT NOT NULL
                )
            """)

            self._commit_with_retry(context="init schema commit")
            self._migrate_schema()
            self._create_indexes()
        except sqlite3.Error as e:
            raise PersistenceError(f"Failed to initialize database at '{self.db_path}': {e}")

    def _create_indexes(self) -> None:
        cursor = self.conn.cursor()
        # Uniqueness only among live rows so soft-deleted history never blocks re-entry.
        cursor.execute("""
            CREATE UNIQUE INDEX IF NOT EXISTS ux_players_live_canonical
            ON players (canonical_name) WHERE is_deleted = 0
        """)
        cursor.execute("""
            CREATE UNIQUE INDEX IF NOT EXISTS ux_matches_live_content_hash
            ON matches (content_hash) WHERE is_deleted = 0
        """)
        cursor.execute("""
            CREATE UNIQUE INDEX IF NOT EXISTS ux_matches_live_signature
            ON matches (signature) WHERE is_deleted = 0
        """)
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_matches_created_at ON matches (created_at)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_player_results_match ON player_results (match_id)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_player_results_player ON player_results (player_id)")
        self._commit_with_retry(context="create indexes commit")

    def _migrate_schema(self) -> None:
        """
        Apply additive, idempotent schema migrations for older local databases.
        """
        try:
            self._add_column_if_missing("players", "canonical_name TEXT NOT NULL DEFAULT ''", "canonical_name")
            self._add_column_if_missing("players", "deleted_at TEXT", "deleted_at")
            self._add_column_if_missing("matches", "deleted_at TEXT", "deleted_at")
            self._backfill_canonical_names()
            self._commit_with_retry(context="migrate schema commit")
        except sqlite3.Error as e:
            self.conn.rollback()
            raise PersistenceError(f"Failed to migrate database schema: {e}")

    def _backfill_canonical_names(self) -> None:
        cursor = self.conn.cursor()
        cursor.execute("SELECT player_id, name FROM players WHERE canonical_name IS NULL OR canonical_name = ''")
        rows = cursor.fetchall()
        for row in rows:
            cursor.execute(
                "UPDATE players SET canonical_name = ? WHERE player_id = ?",
                (canonicalize(row["name"]), row["player_id"]),
            )
        if rows:
            LOGGER.info("Backfilled canonical_name for %s players", len(rows))

    def _get_table_columns(self, table_name: str) -> set:
        cursor = self.conn.cursor()
        cursor.execute(f"PRAGMA table_info({table_name})")
        return {row["name"] for row in cursor.fetchall()}

    def _add_column_if_missing(self, table_name: str, column_sql: str, column_name: str) -> None:
        columns = self._get_table_columns(table_name)
        if column_name not in columns:
            cursor = self.conn.cursor()
            cursor.execute(f"ALTER TABLE {table_name} ADD COLUMN {column_sql}")

    def _commit_with_retry(self, retries: int = 8, delay_seconds: float = 0.25, context: str = "commit") -> None:
        """
        Retry commit on transient SQLITE_BUSY/locked errors.
        """
        last_error = None
        for attempt in range(retries):
            try:
                self.conn.commit()
                return
            except sqlite3.OperationalError as e:
                last_error = e
                if "locked" not in str(e).lower() and "busy" not in str(e).lower():
                    raise
                if attempt == retries - 1:
                    break
                time.sleep(delay_seconds)
        raise PersistenceError(
            f"Failed to {context}: database remained locked after {retries} attempts ({last_error})"
        )

    def _set_wal_mode_best_effort(self, retries: int = 5, delay_seconds: float = 0.2) -> None:
        """Try to enable WAL without failing startup if the DB is temporarily locked."""
        if self.db_path == ":memory:":
            return
        for attempt in range(retries):
            try:
                self.conn.execute("PRAGMA journal_mode = WAL")
                return
            except sqlite3.OperationalError as e:
                msg = str(e).lower()
                if "locked" not in msg and "busy" not in msg:
                    raise
                if attempt == retries - 1:
                    LOGGER.warning("Could not enable WAL mode (database locked); continuing. (%s)", e)
                    return
                time.sleep(delay_seconds)

    # --- Transactions ---

    @contextmanager
    def transaction(self):
        """
        Open a write transaction, or join the one this thread already holds.

        Commit runs only at the outermost level; callbacks registered with
        ``uow.after_commit`` fire after a successful commit and are dropped on
        rollback.
        """
        with self._lock:
            if self._active is not None:
                yield self._active
                return

            uow = UnitOfWork(self.conn)
            self._active = uow
            try:
                try:
                    uow.cursor.execute("BEGIN IMMEDIATE")
                except sqlite3.Error as e:
                    raise PersistenceError(f"Failed to begin transaction: {e}")
                yield uow
                try:
                    self._commit_with_retry(context="commit transaction")
                except sqlite3.Error as e:
                    raise PersistenceError(f"Failed to commit transaction: {e}")
            except BaseException:
                uow.discard()
                self._rollback()
                raise
            finally:
                self._active = None
            uow.run_after_commit()

    def _rollback(self) -> None:
        try:
            self.conn.rollback()
        except sqlite3.Error as e:
            LOGGER.error("Rollback failed: %s", e)

    def _query(self, sql: str, params: Sequence[Any] = (), context: str = "query") -> List[Dict]:
        with self._lock:
            try:
                cursor = self.conn.cursor()
                cursor.execute(sql, tuple(params))
                return [dict(row) for row in cursor.fetchall()]
            except sqlite3.Error as e:
                raise PersistenceError(f"Failed to {context}: {e}")

    # --- Players ---

    def get_live_players(self) -> List[Dict]:
        """Live players in storage order (player_id ascending)."""
        return self._query(
            "SELECT player_id, name, canonical_name, created_at FROM players "
            "WHERE is_deleted = 0 ORDER BY player_id",
            context="get live players",
        )

    def get_all_players(self, include_deleted: bool = False) -> List[Dict]:
        sql = "SELECT player_id, name, canonical_name, created_at, is_deleted, deleted_at FROM players"
        if not include_deleted:
            sql += " WHERE is_deleted = 0"
        return self._query(sql + " ORDER BY player_id", context="get players list")

    def get_player_by_id(self, player_id: int, include_deleted: bool = False) -> Optional[Dict]:
        sql = (
            "SELECT player_id, name, canonical_name, created_at, is_deleted, deleted_at "
            "FROM players WHERE player_id = ?"
        )
        if not include_deleted:
            sql += " AND is_deleted = 0"
        rows = self._query(sql, (player_id,), context=f"get player {player_id}")
        return rows[0] if rows else None

    def get_player_by_canonical(self, canonical_name: str) -> Optional[Dict]:
        rows = self._query(
            "SELECT player_id, name, canonical_name, created_at FROM players "
            "WHERE canonical_name = ? AND is_deleted = 0",
            (canonical_name,),
            context=f"get player '{canonical_name}'",
        )
        return rows[0] if rows else None

    def insert_or_get_player(self, name: str, canonical_name: str) -> int:
        """
        Insert a player keyed by canonical name, or return the live row that
        already holds it. Two racing inserts converge on the unique index.
        """
        with self.transaction() as uow:
            try:
                uow.cursor.execute(
                    "INSERT OR IGNORE INTO players (name, canonical_name, created_at) VALUES (?, ?, ?)",
                    (name, canonical_name, to_db_timestamp(utc_now())),
                )
                uow.cursor.execute(
                    "SELECT player_id FROM players WHERE canonical_name = ? AND is_deleted = 0",
                    (canonical_name,),
                )
                row = uow.cursor.fetchone()
            except sqlite3.Error as e:
                raise PersistenceError(f"Failed to add player '{name}': {e}")
            if row is None:
                raise PersistenceError(f"Failed to add player '{name}': row missing after insert")
            return row["player_id"]

    def rename_player(self, player_id: int, new_name: str, new_canonical: str) -> Dict:
        """Rename a live player. Returns the row as it was before the rename."""
        with self.transaction() as uow:
            old = self.get_player_by_id(player_id)
            if old is None:
                raise NotFoundError(f"Player {player_id} not found")
            try:
                uow.cursor.execute(
                    "UPDATE players SET name = ?, canonical_name = ? WHERE player_id = ? AND is_deleted = 0",
                    (new_name, new_canonical, player_id),
                )
                # A personal reset follows the identity, not the old spelling.
                if old["canonical_name"] != new_canonical:
                    uow.cursor.execute(
                        "DELETE FROM player_resets WHERE canonical_name = ?", (new_canonical,)
                    )
                    uow.cursor.execute(
                        "UPDATE player_resets SET canonical_name = ? WHERE canonical_name = ?",
                        (new_canonical, old["canonical_name"]),
                    )
            except sqlite3.IntegrityError:
                raise ValidationError(f"Name '{new_name}' is already used by another player")
            except sqlite3.Error as e:
                raise PersistenceError(f"Failed to rename player {player_id}: {e}")
            return old

    def soft_delete_player(self, player_id: int) -> Dict:
        """Soft-delete a player, its results and its personal reset. Returns the row."""
        with self.transaction() as uow:
            player = self.get_player_by_id(player_id)
            if player is None:
                raise NotFoundError(f"Player {player_id} not found")
            try:
                uow.cursor.execute(
                    "UPDATE player_results SET is_deleted = 1 WHERE player_id = ?", (player_id,)
                )
                uow.cursor.execute(
                    "DELETE FROM player_resets WHERE canonical_name = ?", (player["canonical_name"],)
                )
                uow.cursor.execute(
                    "UPDATE players SET is_deleted = 1, deleted_at = ? WHERE player_id = ?",
                    (to_db_timestamp(utc_now()), player_id),
                )
            except sqlite3.Error as e:
                raise PersistenceError(f"Failed to delete player {player_id}: {e}")
            return player

    def restore_player(self, player_id: int) -> Dict:
        """Restore a soft-deleted player and its results on live matches."""
        with self.transaction() as uow:
            player = self.get_player_by_id(player_id, include_deleted=True)
            if player is None or not player["is_deleted"]:
                raise NotFoundError(f"Deleted player {player_id} not found")
            try:
                uow.cursor.execute(
                    "UPDATE players SET is_deleted = 0, deleted_at = NULL WHERE player_id = ?",
                    (player_id,),
                )
                uow.cursor.execute(
                    """
                    UPDATE player_results SET is_deleted = 0
                    WHERE player_id = ?
                      AND match_id IN (SELECT match_id FROM matches WHERE is_deleted = 0)
                    """,
                    (player_id,),
                )
            except sqlite3.IntegrityError:
                raise ValidationError(
                    f"Cannot restore player {player_id}: name '{player['name']}' is taken by a live player"
                )
            except sqlite3.Error as e:
                raise PersistenceError(f"Failed to restore player {player_id}: {e}")
            player["is_deleted"] = 0
            player["deleted_at"] = None
            return player

    # --- Matches ---

    def match_exists(self, content_hash: Optional[str] = None, signature: Optional[str] = None) -> bool:
        """True when a live match carries either fingerprint. None fingerprints are ignored."""
        clauses = []
        params: List[str] = []
        if content_hash:
            clauses.append("content_hash = ?")
            params.append(content_hash)
        if signature:
            clauses.append("signature = ?")
            params.append(signature)
        if not clauses:
            return False
        rows = self._query(
            f"SELECT EXISTS(SELECT 1 FROM matches WHERE ({' OR '.join(clauses)}) AND is_deleted = 0) AS found",
            params,
            context="check match existence",
        )
        return bool(rows[0]["found"])

    def insert_match(self, content_hash: str, signature: str, created_at: Optional[datetime] = None) -> int:
        with self.transaction() as uow:
            try:
                uow.cursor.execute(
                    "INSERT INTO matches (content_hash, signature, created_at) VALUES (?, ?, ?)",
                    (content_hash, signature, to_db_timestamp(created_at or utc_now())),
                )
            except sqlite3.IntegrityError:
                raise DuplicateMatchError(fingerprint=signature)
            except sqlite3.Error as e:
                raise PersistenceError(f"Failed to insert match: {e}")
            return uow.cursor.lastrowid

    def insert_player_results(self, match_id: int, rows: Sequence[Dict[str, Any]]) -> int:
        """Batch-insert result rows; each row needs player_id, raw_name, result, kills, deaths, assists."""
        if not rows:
            return 0
        with self.transaction() as uow:
            try:
                uow.cursor.executemany(
                    """
                    INSERT INTO player_results
                        (match_id, player_id, raw_name, result, kills, deaths, assists)
                    VALUES (?, ?, ?, ?, ?, ?, ?)
                    """,
                    [
                        (
                            match_id,
                            row["player_id"],
                            row["raw_name"],
                            row["result"],
                            row["kills"],
                            row["deaths"],
                            row["assists"],
                        )
                        for row in rows
                    ],
                )
            except sqlite3.Error as e:
                raise PersistenceError(f"Failed to insert player results for match {match_id}: {e}")
            return len(rows)

    def get_match(self, match_id: int, include_deleted: bool = False) -> Optional[Dict]:
        sql = "SELECT match_id, content_hash, signature, created_at, is_deleted, deleted_at FROM matches WHERE match_id = ?"
        if not include_deleted:
            sql += " AND is_deleted = 0"
        rows = self._query(sql, (match_id,), context=f"get match {match_id}")
        return rows[0] if rows else None

    def get_match_results(self, match_id: int) -> List[Dict]:
        return self._query(
            """
            SELECT result_id, match_id, player_id, raw_name, result, kills, deaths, assists, is_deleted
            FROM player_results WHERE match_id = ? ORDER BY result_id
            """,
            (match_id,),
            context=f"get results for match {match_id}",
        )

    def soft_delete_match(self, match_id: int) -> None:
        with self.transaction() as uow:
            try:
                uow.cursor.execute(
                    "UPDATE matches SET is_deleted = 1, deleted_at = ? WHERE match_id = ? AND is_deleted = 0",
                    (to_db_timestamp(utc_now()), match_id),
                )
                if uow.cursor.rowcount == 0:
                    raise NotFoundError(f"Match {match_id} not found")
                uow.cursor.execute("UPDATE player_results SET is_deleted = 1 WHERE match_id = ?", (match_id,))
            except sqlite3.Error as e:
                raise PersistenceError(f"Failed to delete match {match_id}: {e}")

    def restore_match(self, match_id: int) -> None:
        with self.transaction() as uow:
            try:
                uow.cursor.execute(
                    "UPDATE matches SET is_deleted = 0, deleted_at = NULL WHERE match_id = ? AND is_deleted = 1",
                    (match_id,),
                )
                if uow.cursor.rowcount == 0:
                    raise NotFoundError(f"Deleted match {match_id} not found")
                uow.cursor.execute(
                    """
                    UPDATE player_results SET is_deleted = 0
                    WHERE match_id = ?
                      AND player_id IN (SELECT player_id FROM players WHERE is_deleted = 0)
                    """,
                    (match_id,),
                )
            except sqlite3.IntegrityError:
                raise DuplicateMatchError(f"Cannot restore match {match_id}: an identical live match exists")
            except sqlite3.Error as e:
                raise PersistenceError(f"Failed to restore match {match_id}: {e}")

    def get_matches_since(self, since: datetime) -> List[Dict]:
        """
        Live matches created at or after ``since`` with their live result rows.

        Each result row carries the owning player's current display and
        canonical name alongside the raw name seen on the screenshot.
        """
        rows = self._query(
            """
            SELECT m.match_id, m.created_at,
                   pr.result_id, pr.player_id, pr.raw_name, pr.result,
                   pr.kills, pr.deaths, pr.assists,
                   p.name AS player_name, p.canonical_name
            FROM matches m
            JOIN player_results pr ON pr.match_id = m.match_id
            JOIN players p ON p.player_id = pr.player_id
            WHERE m.created_at >= ? AND m.is_deleted = 0 AND pr.is_deleted = 0
            ORDER BY m.match_id, pr.result_id
            """,
            (to_db_timestamp(since),),
            context="query matches",
        )

        matches: Dict[int, Dict] = {}
        for row in rows:
            match = matches.get(row["match_id"])
            if match is None:
                match = {
                    "match_id": row["match_id"],
                    "created_at": from_db_timestamp(row["created_at"]),
                    "players": [],
                }
                matches[row["match_id"]] = match
            match["players"].append({
                "result_id": row["result_id"],
                "player_id": row["player_id"],
                "player_name": row["player_name"],
                "canonical_name": row["canonical_name"],
                "raw_name": row["raw_name"],
                "result": row["result"],
                "kills": row["kills"],
                "deaths": row["deaths"],
                "assists": row["assists"],
            })
        return list(matches.values())

    def get_player_history(self, player_id: int, limit: int) -> List[Dict]:
        rows = self._query(
            """
            SELECT m.match_id, m.created_at, pr.raw_name, pr.result, pr.kills, pr.deaths, pr.assists
            FROM matches m
            JOIN player_results pr ON pr.match_id = m.match_id
            WHERE pr.player_id = ? AND m.is_deleted = 0 AND pr.is_deleted = 0
            ORDER BY m.created_at DESC, m.match_id DESC
            LIMIT ?
            """,
            (player_id, limit),
            context=f"get history for player {player_id}",
        )
        for row in rows:
            row["created_at"] = from_db_timestamp(row["created_at"])
        return rows

    def wipe_all(self) -> Dict[str, int]:
        """Soft-delete every live match, result and player."""
        now = to_db_timestamp(utc_now())
        with self.transaction() as uow:
            try:
                uow.cursor.execute(
                    "UPDATE matches SET is_deleted = 1, deleted_at = ? WHERE is_deleted = 0", (now,)
                )
                matches = uow.cursor.rowcount
                uow.cursor.execute("UPDATE player_results SET is_deleted = 1 WHERE is_deleted = 0")
                results = uow.cursor.rowcount
                uow.cursor.execute(
                    "UPDATE players SET is_deleted = 1, deleted_at = ? WHERE is_deleted = 0", (now,)
                )
                players = uow.cursor.rowcount
            except sqlite3.Error as e:
                raise PersistenceError(f"Failed to wipe data: {e}")
        return {"matches": matches, "results": results, "players": players}

    # --- Season settings ---

    def get_season_start_date(self) -> datetime:
        rows = self._query(
            "SELECT value FROM settings WHERE key = ?", (SEASON_START_KEY,), context="get season start date"
        )
        if not rows:
            return DEFAULT_SEASON_START
        try:
            return from_db_timestamp(rows[0]["value"])
        except ValueError as e:
            raise PersistenceError(f"Failed to parse season start date '{rows[0]['value']}': {e}")

    def set_season_start_date(self, value: datetime) -> None:
        with self.transaction() as uow:
            try:
                uow.cursor.execute(
                    """
                    INSERT INTO settings (key, value) VALUES (?, ?)
                    ON CONFLICT (key) DO UPDATE SET value = excluded.value
                    """,
                    (SEASON_START_KEY, to_db_timestamp(value)),
                )
            except sqlite3.Error as e:
                raise PersistenceError(f"Failed to set season start date: {e}")

    def set_player_reset_date(self, canonical_name: str, value: datetime) -> None:
        with self.transaction() as uow:
            try:
                uow.cursor.execute(
                    """
                    INSERT INTO player_resets (canonical_name, reset_date) VALUES (?, ?)
                    ON CONFLICT (canonical_name) DO UPDATE SET reset_date = excluded.reset_date
                    """,
                    (canonical_name, to_db_timestamp(value)),
                )
            except sqlite3.Error as e:
                raise PersistenceError(f"Failed to set player reset date for '{canonical_name}': {e}")

    def get_player_reset_dates(self) -> Dict[str, datetime]:
        rows = self._query(
            "SELECT canonical_name, reset_date FROM player_resets", context="get player reset dates"
        )
        return {row["canonical_name"]: from_db_timestamp(row["reset_date"]) for row in rows}

    def close(self):
        """Close database connection."""
        with self._lock:
            if self.conn:
                self.conn.close()
                self.conn = None
