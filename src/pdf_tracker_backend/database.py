"""
SQLite bookkeeping for completed stamping runs.

Each completed run stores the output file it produced and the identifiers it
issued, so a scanned tracking code can be traced back to its document. The
same database optionally holds the identifier counter so it survives restarts.
"""

import json
import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from .errors import PersistenceError, SequenceOverflowError
from .models import RunRecord

logger = logging.getLogger(__name__)

# Default database path
DEFAULT_DB_PATH = Path("data/runs.db")


def _ensure_db_dir(db_path: Path) -> None:
    """Ensure the database directory exists."""
    db_path.parent.mkdir(parents=True, exist_ok=True)


def _serialize_datetime(dt: datetime) -> Optional[str]:
    """Serialize datetime to ISO format string."""
    return dt.isoformat() if dt else None


def _deserialize_datetime(s: str) -> Optional[datetime]:
    """Deserialize ISO format string to datetime."""
    if not s:
        return None
    return datetime.fromisoformat(s)


class RunDatabase:
    """
    SQLite database for run records and sequence state.

    Thread-safe: every call opens its own connection and SQLite serializes
    writers (WAL mode).
    """

    def __init__(self, db_path: Path = DEFAULT_DB_PATH):
        self.db_path = Path(db_path)
        _ensure_db_dir(self.db_path)
        self._init_db()

    @contextmanager
    def _get_connection(self):
        """Get a database connection with proper settings."""
        conn = sqlite3.connect(str(self.db_path), timeout=30.0)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA foreign_keys=ON")
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _init_db(self) -> None:
        """Initialize database schema."""
        with self._get_connection() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS runs (
                    id TEXT PRIMARY KEY,
                    filename TEXT NOT NULL,
                    output_path TEXT NOT NULL,
                    download_url TEXT NOT NULL,
                    source_filename TEXT,
                    s3_key TEXT,
                    identifiers TEXT NOT NULL,
                    created_at TEXT NOT NULL
                )
            """)

            conn.execute("""
                CREATE TABLE IF NOT EXISTS run_identifiers (
                    identifier TEXT PRIMARY KEY,
                    run_id TEXT NOT NULL REFERENCES runs(id) ON DELETE CASCADE,
                    position INTEGER NOT NULL
                )
            """)

            conn.execute("""
                CREATE TABLE IF NOT EXISTS sequences (
                    name TEXT PRIMARY KEY,
                    last_value INTEGER NOT NULL
                )
            """)

            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_runs_created_at
                ON runs(created_at DESC)
            """)

    def save(self, record: RunRecord) -> None:
        """
        Save a run record and index its identifiers.

        An identifier that already belongs to an earlier run (possible after a
        counter reset) is re-pointed at this run.

        Raises:
            PersistenceError: If the record could not be written
        """
        try:
            with self._get_connection() as conn:
                conn.execute("""
                    INSERT OR REPLACE INTO runs (
                        id, filename, output_path, download_url,
                        source_filename, s3_key, identifiers, created_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """, (
                    record.id,
                    record.filename,
                    record.output_path,
                    record.download_url,
                    record.source_filename,
                    record.s3_key,
                    json.dumps(record.identifiers),
                    _serialize_datetime(record.created_at),
                ))
                conn.executemany(
                    "INSERT OR REPLACE INTO run_identifiers (identifier, run_id, position) VALUES (?, ?, ?)",
                    [(identifier, record.id, position) for position, identifier in enumerate(record.identifiers)],
                )
        except sqlite3.Error as exc:
            raise PersistenceError(f"Failed to save run {record.id}: {exc}") from exc

    def get_run(self, run_id: str) -> Optional[RunRecord]:
        """
        Retrieve a run by ID.

        Returns:
            The run record or None if not found
        """
        try:
            with self._get_connection() as conn:
                row = conn.execute("SELECT * FROM runs WHERE id = ?", (run_id,)).fetchone()
        except sqlite3.Error as exc:
            raise PersistenceError(f"Failed to read run {run_id}: {exc}") from exc
        return self._row_to_record(row) if row else None

    def get_by_identifier(self, identifier: str) -> Optional[RunRecord]:
        """Retrieve the run that issued ``identifier``."""
        try:
            with self._get_connection() as conn:
                row = conn.execute("""
                    SELECT runs.* FROM runs
                    JOIN run_identifiers ON run_identifiers.run_id = runs.id
                    WHERE run_identifiers.identifier = ?
                """, (identifier,)).fetchone()
        except sqlite3.Error as exc:
            raise PersistenceError(f"Failed to look up {identifier}: {exc}") from exc
        return self._row_to_record(row) if row else None

    def list_runs(self) -> List[RunRecord]:
        """List all runs ordered by creation time (newest first)."""
        try:
            with self._get_connection() as conn:
                rows = conn.execute("SELECT * FROM runs ORDER BY created_at DESC").fetchall()
        except sqlite3.Error as exc:
            raise PersistenceError(f"Failed to list runs: {exc}") from exc
        return [self._row_to_record(row) for row in rows]

    def delete_run(self, run_id: str) -> bool:
        """
        Delete a run record and its identifier index entries.

        Returns:
            True if deleted, False if not found
        """
        try:
            with self._get_connection() as conn:
                cursor = conn.execute("DELETE FROM runs WHERE id = ?", (run_id,))
        except sqlite3.Error as exc:
            raise PersistenceError(f"Failed to delete run {run_id}: {exc}") from exc
        return cursor.rowcount > 0

    def get_sequence(self, name: str) -> Optional[int]:
        """Return the last value stored for sequence ``name``."""
        try:
            with self._get_connection() as conn:
                row = conn.execute("SELECT last_value FROM sequences WHERE name = ?", (name,)).fetchone()
        except sqlite3.Error as exc:
            raise PersistenceError(f"Failed to read sequence {name}: {exc}") from exc
        return row["last_value"] if row else None

    def reserve_sequence(self, name: str, count: int, initial_value: int, maximum: int) -> int:
        """
        Atomically advance sequence ``name`` by ``count`` and return the first reserved value.

        The read and the write happen inside one ``BEGIN IMMEDIATE``
        transaction, so separate processes sharing the file cannot reserve
        overlapping blocks.

        Raises:
            SequenceOverflowError: If the block would pass ``maximum``; nothing is stored
            PersistenceError: If the database cannot be read or written
        """
        try:
            with self._get_connection() as conn:
                conn.execute("BEGIN IMMEDIATE")
                row = conn.execute("SELECT last_value FROM sequences WHERE name = ?", (name,)).fetchone()
                last = row["last_value"] if row else initial_value - 1
                end = last + count
                if end > maximum:
                    raise SequenceOverflowError(
                        f"Cannot issue {count} identifier(s) after {last}: the sequence is limited to {maximum}"
                    )
                conn.execute(
                    "INSERT OR REPLACE INTO sequences (name, last_value) VALUES (?, ?)",
                    (name, end),
                )
        except sqlite3.Error as exc:
            raise PersistenceError(f"Failed to reserve sequence {name}: {exc}") from exc
        return last + 1

    def _row_to_record(self, row: sqlite3.Row) -> RunRecord:
        """Convert a database row to a run record."""
        data: Dict[str, Any] = {
            "id": row["id"],
            "filename": row["filename"],
            "output_path": row["output_path"],
            "download_url": row["download_url"],
            "source_filename": row["source_filename"],
            "s3_key": row["s3_key"],
            "identifiers": json.loads(row["identifiers"] or "[]"),
            "created_at": _deserialize_datetime(row["created_at"]),
        }
        return RunRecord(**data)
