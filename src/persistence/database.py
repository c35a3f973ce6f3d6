"""
SQLite database manager for workbench state persistence.
"""

import sqlite3
import json
import os
from typing import Any, List
import threading

from src.utils.unified_logger import error as log_error


class Database:
    """
    Key-value store for workbench state (chapters, usage, durations, glossary).
    Values are stored as JSON. Thread-safe for concurrent access.
    """

    def __init__(self, db_path: str = "data/workbench.db"):
        """
        Initialize database connection.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = db_path
        self._local = threading.local()
        self._lock = threading.RLock()

        directory = os.path.dirname(db_path)
        if directory:
            os.makedirs(directory, exist_ok=True)

        self._initialize_schema()

    def _get_connection(self) -> sqlite3.Connection:
        """Get thread-local database connection."""
        if not hasattr(self._local, 'connection') or self._local.connection is None:
            self._local.connection = sqlite3.connect(
                self.db_path,
                check_same_thread=False,
                timeout=30.0
            )
            self._local.connection.row_factory = sqlite3.Row
        return self._local.connection

    def _initialize_schema(self):
        """Create database tables if they don't exist."""
        with self._lock:
            conn = self._get_connection()
            conn.execute("""
                CREATE TABLE IF NOT EXISTS app_state (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """)
            conn.commit()

    def get(self, key: str, default: Any = None) -> Any:
        """
        Read a stored value.

        Args:
            key: State key
            default: Returned when the key is missing or unreadable

        Returns:
            The decoded JSON value
        """
        with self._lock:
            try:
                row = self._get_connection().execute(
                    "SELECT CAST(value AS TEXT) AS value FROM app_state WHERE key = ?", (key,)
                ).fetchone()
            except sqlite3.Error as e:
                log_error(f"Error reading state '{key}': {e}")
                return default

        if row is None:
            return default
        try:
            return json.loads(row['value'])
        except (json.JSONDecodeError, TypeError):
            log_error(f"Stored state '{key}' is not valid JSON, ignoring it")
            return default

    def set(self, key: str, value: Any) -> bool:
        """
        Insert or replace a value.

        Returns:
            True if saved successfully
        """
        with self._lock:
            try:
                conn = self._get_connection()
                conn.execute("""
                    INSERT INTO app_state (key, value, updated_at)
                    VALUES (?, ?, CURRENT_TIMESTAMP)
                    ON CONFLICT(key) DO UPDATE SET
                        value = excluded.value,
                        updated_at = CURRENT_TIMESTAMP
                """, (key, json.dumps(value, ensure_ascii=False)))
                conn.commit()
                return True
            except (sqlite3.Error, TypeError, ValueError) as e:
                log_error(f"Error saving state '{key}': {e}")
                return False

    def delete(self, key: str) -> bool:
        with self._lock:
            try:
                conn = self._get_connection()
                conn.execute("DELETE FROM app_state WHERE key = ?", (key,))
                conn.commit()
                return True
            except sqlite3.Error as e:
                log_error(f"Error deleting state '{key}': {e}")
                return False

    def keys(self) -> List[str]:
        with self._lock:
            rows = self._get_connection().execute(
                "SELECT key FROM app_state ORDER BY key"
            ).fetchall()
        return [row['key'] for row in rows]

    def close(self):
        """Close database connection."""
        if hasattr(self._local, 'connection') and self._local.connection:
            self._local.connection.close()
            self._local.connection = None
