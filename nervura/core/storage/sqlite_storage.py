"""
SQLite key-value backend.

Stores the serialized record collection in a single-row-per-key table for:
- ACID writes of the whole collection
- Single-file portability
- Offline operation

Suitable for single-user scenarios where a database file is preferred.
"""

import json
import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Generator, Optional

from nervura.core.errors import StorageUnavailableError
from nervura.core.schema import finite_json

logger = logging.getLogger(__name__)

# Schema version of the kv table itself; the payload carries its own key tag
SCHEMA_VERSION = 1

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY
);

CREATE TABLE IF NOT EXISTS kv (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL,  -- JSON
    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);
"""


class SQLiteBackend:
    """SQLite database storage for the record collection.

    Implements the KeyValueBackend protocol.
    """

    def __init__(self, db_path: Path):
        """Initialize SQLite storage.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = Path(db_path)
        self._conn: Optional[sqlite3.Connection] = None

        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            self._init_db()
        except (OSError, sqlite3.Error) as e:
            raise StorageUnavailableError(f"Cannot open {self.db_path}: {e}") from e

    def _init_db(self) -> None:
        """Initialize database schema."""
        with self._get_connection() as conn:
            conn.executescript(SCHEMA_SQL)

            cursor = conn.execute("SELECT version FROM schema_version LIMIT 1")
            if cursor.fetchone() is None:
                conn.execute(
                    "INSERT INTO schema_version (version) VALUES (?)",
                    (SCHEMA_VERSION,),
                )
            conn.commit()

    @contextmanager
    def _get_connection(self) -> Generator[sqlite3.Connection, None, None]:
        """Get database connection with automatic rollback on error."""
        if self._conn is None:
            # Writes are serialized by the record store's writer lock
            self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
            self._conn.row_factory = sqlite3.Row

        try:
            yield self._conn
        except Exception:
            self._conn.rollback()
            raise

    def read(self, key: str) -> Any:
        """Return the value under ``key`` or None if absent or undecodable."""
        try:
            with self._get_connection() as conn:
                row = conn.execute("SELECT value FROM kv WHERE key = ?", (key,)).fetchone()
        except sqlite3.Error as e:
            raise StorageUnavailableError(f"Cannot read {self.db_path}: {e}") from e

        if row is None:
            return None
        try:
            return json.loads(row["value"])
        except json.JSONDecodeError as e:
            logger.warning(f"Ignoring malformed value for key {key}: {e}")
            return None

    def write(self, key: str, value: Any) -> None:
        """Replace the value under ``key`` in one transaction."""
        try:
            with self._get_connection() as conn:
                conn.execute(
                    """
                    INSERT INTO kv (key, value, updated_at)
                    VALUES (?, ?, CURRENT_TIMESTAMP)
                    ON CONFLICT(key) DO UPDATE SET
                        value = excluded.value,
                        updated_at = CURRENT_TIMESTAMP
                    """,
                    (key, json.dumps(finite_json(value), ensure_ascii=False, allow_nan=False)),
                )
                conn.commit()
        except sqlite3.Error as e:
            logger.error(f"Failed to write key {key}: {e}")
            raise StorageUnavailableError(f"Cannot write {self.db_path}: {e}") from e

    def close(self) -> None:
        """Close database connection."""
        if self._conn:
            self._conn.close()
            self._conn = None
