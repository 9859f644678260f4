"""
Per-folder sync state for spotify-dl.

Every destination folder has its own SQLite file (.spotify-dl.db) that
records what has been downloaded into it, so repeated runs only fetch
what is new.

Schema:
    meta:       key/value pairs (schema_version, last_synced, last_identifiers)
    history:    One row per completed track (track_id, file_name, completed_at)
    membership: Which tracks each playlist/album contained at the last sync

Guarantees:
    - A history row is committed immediately after each completed track,
      so an interrupted run keeps everything finished before the interrupt.
    - A missing file means "no history". A corrupt file is moved aside
      with a warning and also means "no history"; it never aborts a run.
    - Unknown tables/columns and newer schema versions are ignored, so a
      state file written by a newer release still loads.
    - Writes are retried once; a second failure raises PersistenceError.

Usage:
    store = SyncStateStore(Path("~/Music"))
    record = store.load()
    if not store.is_known(track_id):
        ...
        store.record_success(track_id, "Artist - Title.mp3")
    store.close()
"""

import json
import sqlite3
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Callable, Iterable, TypeVar

from spotify_dl.core.exceptions import PersistenceError
from spotify_dl.core.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


STATE_FILENAME = ".spotify-dl.db"
SCHEMA_VERSION = 1

_SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS meta (
    key TEXT PRIMARY KEY,
    value TEXT
);

CREATE TABLE IF NOT EXISTS history (
    track_id TEXT PRIMARY KEY,
    file_name TEXT,
    completed_at TEXT
);

CREATE TABLE IF NOT EXISTS membership (
    container_uri TEXT NOT NULL,
    track_id TEXT NOT NULL,
    position INTEGER NOT NULL DEFAULT 0,
    PRIMARY KEY (container_uri, track_id)
);

CREATE INDEX IF NOT EXISTS idx_membership_container ON membership(container_uri);
"""


class ResetScope(Enum):
    """What reset() clears."""
    HISTORY = "history"
    MEMBERSHIP = "membership"
    ALL = "all"


@dataclass(frozen=True)
class HistoryEntry:
    track_id: str
    file_name: str
    completed_at: str


@dataclass
class SyncRecord:
    """
    Snapshot of a folder's state as loaded at the start of a run.

    Attributes:
        folder: The destination folder.
        history: Track ID -> completed download.
        membership: Container URI -> track IDs it held at the last sync.
        last_synced: ISO timestamp of the last finished run, or None.
        last_identifiers: Identifiers requested in the last run.
    """
    folder: Path
    history: dict[str, HistoryEntry] = field(default_factory=dict)
    membership: dict[str, set[str]] = field(default_factory=dict)
    last_synced: str | None = None
    last_identifiers: list[str] = field(default_factory=list)

    def is_known(self, track_id: str) -> bool:
        return track_id in self.history


class SyncStateStore:
    """
    Thread-safe SQLite store bound to one destination folder.

    Uses a single persistent connection with a lock; all public methods
    acquire self._lock before touching it.
    """

    def __init__(self, folder: Path) -> None:
        self.folder = folder
        self.db_path = folder / STATE_FILENAME
        self._lock = threading.Lock()
        self._conn: sqlite3.Connection | None = None

    # =========================================================================
    # Connection handling
    # =========================================================================

    def _connect(self) -> sqlite3.Connection:
        """Open (once) and return the connection, creating tables if needed."""
        if self._conn is None:
            conn = sqlite3.connect(
                str(self.db_path),
                timeout=30.0,
                check_same_thread=False  # We handle thread safety with _lock
            )
            try:
                conn.executescript(_SCHEMA_SQL)
                row = conn.execute("SELECT value FROM meta WHERE key = 'schema_version'").fetchone()
                if row is None:
                    conn.execute(
                        "INSERT INTO meta (key, value) VALUES ('schema_version', ?)",
                        (str(SCHEMA_VERSION),)
                    )
                elif _as_int(row[0]) > SCHEMA_VERSION:
                    logger.debug(
                        f"State file schema {row[0]} is newer than {SCHEMA_VERSION}; "
                        "unknown fields are ignored"
                    )
                conn.commit()
            except sqlite3.Error:
                conn.close()
                raise
            self._conn = conn
        return self._conn

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None

    def _quarantine(self, error: Exception) -> None:
        """Move an unreadable state file aside so a fresh one can be created."""
        if self._conn is not None:
            try:
                self._conn.close()
            except sqlite3.Error:
                pass
            self._conn = None

        stamp = datetime.now().strftime("%Y%m%d-%H%M%S")
        corrupt_path = self.db_path.with_name(f"{STATE_FILENAME}.corrupt-{stamp}")
        try:
            self.db_path.replace(corrupt_path)
            logger.warning(
                f"Sync state in {self.folder} is unreadable ({error}); moved to "
                f"{corrupt_path.name}, continuing without history"
            )
        except OSError as e:
            logger.warning(
                f"Sync state in {self.folder} is unreadable ({error}) and could not be "
                f"moved aside ({e}); continuing without history"
            )

    def _write(self, operation: Callable[[sqlite3.Connection], T], description: str) -> T:
        """
        Run a write inside a transaction, retrying once.

        Raises:
            PersistenceError: Both attempts failed.
        """
        last_error: Exception | None = None
        for attempt in range(2):
            with self._lock:
                try:
                    conn = self._connect()
                    with conn:
                        return operation(conn)
                except sqlite3.Error as e:
                    last_error = e
                    logger.debug(f"State write '{description}' failed (attempt {attempt + 1}): {e}")
                    if self._conn is not None:
                        self._conn.close()
                        self._conn = None
        raise PersistenceError(
            f"Failed to save sync state ({description}): {last_error}",
            details={"path": str(self.db_path), "original_error": str(last_error)}
        )

    # =========================================================================
    # Reading
    # =========================================================================

    def load(self) -> SyncRecord:
        """
        Read the folder's state.

        Never raises: a missing file gives an empty record, an unreadable
        one is quarantined and also gives an empty record.
        """
        record = SyncRecord(folder=self.folder)
        if not self.db_path.exists():
            return record

        with self._lock:
            try:
                self._read_into(self._connect(), record)
            except sqlite3.DatabaseError as e:
                self._quarantine(e)
                return SyncRecord(folder=self.folder)

        logger.debug(
            f"Loaded sync state: {len(record.history)} downloaded, "
            f"{len(record.membership)} playlists/albums"
        )
        return record

    @staticmethod
    def _read_into(conn: sqlite3.Connection, record: SyncRecord) -> None:
        for track_id, file_name, completed_at in conn.execute(
            "SELECT track_id, file_name, completed_at FROM history"
        ):
            record.history[track_id] = HistoryEntry(track_id, file_name or "", completed_at or "")

        for container_uri, track_id in conn.execute(
            "SELECT container_uri, track_id FROM membership ORDER BY container_uri, position"
        ):
            record.membership.setdefault(container_uri, set()).add(track_id)

        meta = dict(conn.execute("SELECT key, value FROM meta").fetchall())
        record.last_synced = meta.get("last_synced")
        record.last_identifiers = _decode_identifiers(meta.get("last_identifiers"))

    def is_known(self, track_id: str) -> bool:
        """True if the track has a history entry."""
        if not self.db_path.exists():
            return False
        with self._lock:
            try:
                row = self._connect().execute(
                    "SELECT 1 FROM history WHERE track_id = ?", (track_id,)
                ).fetchone()
            except sqlite3.DatabaseError as e:
                logger.warning(f"Could not read sync state: {e}")
                return False
        return row is not None

    # =========================================================================
    # Writing
    # =========================================================================

    def reset(self, scope: ResetScope = ResetScope.ALL) -> None:
        """
        Clear history, membership, or everything.

        ALL also forgets the last run's identifiers and sync time.
        """
        def operation(conn: sqlite3.Connection) -> None:
            if scope in (ResetScope.HISTORY, ResetScope.ALL):
                conn.execute("DELETE FROM history")
            if scope in (ResetScope.MEMBERSHIP, ResetScope.ALL):
                conn.execute("DELETE FROM membership")
            if scope is ResetScope.ALL:
                conn.execute("DELETE FROM meta WHERE key IN ('last_synced', 'last_identifiers')")

        if not self.db_path.exists():
            return
        try:
            self._write(operation, f"reset {scope.value}")
        except PersistenceError as e:
            # A file we cannot even write is as good as corrupt
            with self._lock:
                self._quarantine(e)
        logger.info(f"Sync state reset ({scope.value})")

    def record_success(self, track_id: str, file_name: str) -> None:
        """
        Add a completed download to history and commit it.

        Raises:
            PersistenceError: The entry could not be written after one retry.
        """
        completed_at = _now_iso()
        self._write(
            lambda conn: conn.execute(
                """
                INSERT INTO history (track_id, file_name, completed_at)
                VALUES (?, ?, ?)
                ON CONFLICT(track_id) DO UPDATE SET
                    file_name = excluded.file_name,
                    completed_at = excluded.completed_at
                """,
                (track_id, file_name, completed_at)
            ),
            f"history {track_id}"
        )

    def update_membership(self, container_uri: str, track_ids: Iterable[str]) -> set[str]:
        """
        Replace the stored track list of a playlist/album.

        Returns:
            IDs that were members at the previous sync but are not anymore.
        """
        ordered = list(dict.fromkeys(track_ids))

        def operation(conn: sqlite3.Connection) -> set[str]:
            previous = {
                row[0] for row in conn.execute(
                    "SELECT track_id FROM membership WHERE container_uri = ?", (container_uri,)
                )
            }
            conn.execute("DELETE FROM membership WHERE container_uri = ?", (container_uri,))
            conn.executemany(
                "INSERT INTO membership (container_uri, track_id, position) VALUES (?, ?, ?)",
                [(container_uri, track_id, position) for position, track_id in enumerate(ordered, 1)]
            )
            return previous - set(ordered)

        return self._write(operation, f"membership {container_uri}")

    def remember_identifiers(self, identifiers: Iterable[str]) -> None:
        """Store the identifiers of this run for the next identifier-less run."""
        payload = json.dumps(list(identifiers))
        self._write(
            lambda conn: _set_meta(conn, "last_identifiers", payload),
            "last identifiers"
        )

    def mark_synced(self) -> None:
        self._write(lambda conn: _set_meta(conn, "last_synced", _now_iso()), "last synced")


def _set_meta(conn: sqlite3.Connection, key: str, value: str) -> None:
    conn.execute(
        "INSERT INTO meta (key, value) VALUES (?, ?) "
        "ON CONFLICT(key) DO UPDATE SET value = excluded.value",
        (key, value)
    )


def _decode_identifiers(raw: str | None) -> list[str]:
    if not raw:
        return []
    try:
        value = json.loads(raw)
    except (json.JSONDecodeError, TypeError):
        logger.warning("Ignoring unreadable last-run identifiers in sync state")
        return []
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, str)]


def _as_int(value: str | None) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()
