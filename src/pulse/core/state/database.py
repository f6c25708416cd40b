"""SQLite storage for local client state.

Holds small JSON documents under string keys (UI preferences such as
section expansion and card ordering). Handles connection lifecycle, schema
creation and migrations.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

# Current schema version
SCHEMA_VERSION = 1

_SCHEMA_V1 = """
CREATE TABLE IF NOT EXISTS client_state (
    key        TEXT PRIMARY KEY,
    value_json TEXT NOT NULL,
    updated_at TEXT NOT NULL DEFAULT (datetime('now'))
);

CREATE TABLE IF NOT EXISTS schema_version (
    version    INTEGER NOT NULL,
    applied_at TEXT NOT NULL DEFAULT (datetime('now'))
);
"""


class StateDatabaseError(Exception):
    """Raised when state database operations fail."""


class StateDatabase:
    """SQLite key/value store for client state.

    Supports both file-based and in-memory (`:memory:`) databases.
    In-memory mode is used for testing.

    Usage::

        db = StateDatabase(":memory:")
        db.initialize()
        db.put("view", {"expanded": {"goal": True}})
        db.get("view")
        db.close()
    """

    def __init__(self, db_path: str = ":memory:") -> None:
        self._db_path = db_path
        self._conn: sqlite3.Connection | None = None

    @property
    def connection(self) -> sqlite3.Connection:
        """Get the active database connection.

        Raises:
            StateDatabaseError: If the database has not been initialized.
        """
        if self._conn is None:
            raise StateDatabaseError("Database not initialized. Call initialize() first.")
        return self._conn

    def initialize(self) -> None:
        """Open the connection and ensure the schema exists. Idempotent."""
        if self._conn is not None:
            return

        if self._db_path != ":memory:":
            db_file = Path(self._db_path).expanduser()
            db_file.parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(str(db_file))
        else:
            self._conn = sqlite3.connect(":memory:")

        self._conn.row_factory = sqlite3.Row
        self._ensure_schema()
        logger.info("State database initialized: %s", self._db_path)

    def _ensure_schema(self) -> None:
        conn = self.connection
        conn.executescript(_SCHEMA_V1)

        current_version = self.get_schema_version()
        if current_version < SCHEMA_VERSION:
            conn.execute("INSERT INTO schema_version (version) VALUES (?)", (SCHEMA_VERSION,))
            conn.commit()
            logger.info("Schema updated from version %d to %d", current_version, SCHEMA_VERSION)

    def get_schema_version(self) -> int:
        row = self.connection.execute("SELECT MAX(version) FROM schema_version").fetchone()
        return row[0] if row[0] is not None else 0

    def get(self, key: str) -> Any | None:
        """Return the decoded value for ``key``, or None if absent or unreadable."""
        row = self.connection.execute(
            "SELECT value_json FROM client_state WHERE key = ?", (key,)
        ).fetchone()
        if row is None:
            return None
        try:
            return json.loads(row["value_json"])
        except json.JSONDecodeError:
            logger.warning("Discarding unreadable state entry %r", key)
            return None

    def put(self, key: str, value: Any) -> None:
        try:
            payload = json.dumps(value)
        except (TypeError, ValueError) as exc:
            raise StateDatabaseError(f"State value for {key!r} is not JSON serializable") from exc
        try:
            self.connection.execute(
                """
                INSERT INTO client_state (key, value_json, updated_at)
                VALUES (?, ?, datetime('now'))
                ON CONFLICT(key) DO UPDATE SET value_json = excluded.value_json,
                                               updated_at = excluded.updated_at
                """,
                (key, payload),
            )
            self.connection.commit()
        except sqlite3.Error as exc:
            raise StateDatabaseError(f"Failed to write state entry {key!r}: {exc}") from exc

    def delete(self, key: str) -> bool:
        try:
            cursor = self.connection.execute("DELETE FROM client_state WHERE key = ?", (key,))
            self.connection.commit()
        except sqlite3.Error as exc:
            raise StateDatabaseError(f"Failed to delete state entry {key!r}: {exc}") from exc
        return cursor.rowcount > 0

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None
            logger.info("State database closed")

    def __enter__(self) -> StateDatabase:
        self.initialize()
        return self

    def __exit__(self, *args) -> None:
        self.close()
