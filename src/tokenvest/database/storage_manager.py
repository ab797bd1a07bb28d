# src/tokenvest/database/storage_manager.py
from __future__ import annotations

"""
Provides a simple, persistent key-value storage layer using SQLite.

The vesting CLI persists the token and ledger state here between
invocations. Values are serialized to JSON; Python ints keep full precision
through the round trip, so 18-decimal token amounts survive unchanged.
"""

import json
import logging
import sqlite3
from pathlib import Path
from typing import Any, Dict

logger = logging.getLogger(__name__)


class StorageManager:
    """
    Manages a persistent key-value store backed by a SQLite database.

    Each instance owns its own connection, so independent ledgers (and
    tests) can keep separate database files open at the same time.
    """

    def __init__(self, db_path: Path):
        """
        Opens the database, creating the file and table if needed.

        Args:
            db_path (Path): The path to the SQLite database file. The directory
                            will be created if it does not exist.
        """
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn: sqlite3.Connection | None = None

        try:
            self._conn = sqlite3.connect(
                self.db_path, check_same_thread=False, isolation_level="EXCLUSIVE"
            )
            self._conn.execute("PRAGMA journal_mode=WAL;")
            self._conn.execute("PRAGMA synchronous=NORMAL;")
            self._create_table()
        except sqlite3.Error as e:
            logger.error("Database connection failed: %s", e, extra={"event": "storage.connect_failed"})
            raise

    def _create_table(self):
        """
        Creates the key_value_store table if it does not already exist.
        """
        with self._conn:
            self._conn.execute(
                """
                CREATE TABLE IF NOT EXISTS key_value_store (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL
                )
                """
            )

    def set(self, key: str, value: Any):
        """
        Saves or updates a value in the key-value store.

        Args:
            key (str): The unique key for the data.
            value (Any): The JSON-serializable object to store.
        """
        try:
            value_json = json.dumps(value)
            with self._conn:
                self._conn.execute(
                    """
                    INSERT INTO key_value_store (key, value)
                    VALUES (?, ?)
                    ON CONFLICT(key) DO UPDATE SET value = excluded.value
                    """,
                    (key, value_json),
                )
        except (sqlite3.Error, TypeError) as e:
            # TypeError for objects that can't be JSON serialized
            logger.error("Failed to set key '%s': %s", key, e, extra={"event": "storage.set_failed"})
            raise

    def set_many(self, values: Dict[str, Any]):
        """Write several keys in one transaction."""
        rows = [(key, json.dumps(value)) for key, value in values.items()]
        with self._conn:
            self._conn.executemany(
                """
                INSERT INTO key_value_store (key, value)
                VALUES (?, ?)
                ON CONFLICT(key) DO UPDATE SET value = excluded.value
                """,
                rows,
            )

    def get(self, key: str, default: Any | None = None) -> Any:
        """
        Retrieves a value from the key-value store by its key.

        Args:
            key (str): The key of the data to retrieve.
            default (Any | None): The value to return if the key is not found.

        Returns:
            Any: The deserialized Python object, or the default value if not found.
        """
        cursor = self._conn.cursor()
        cursor.execute("SELECT value FROM key_value_store WHERE key = ?", (key,))
        row = cursor.fetchone()
        if row:
            return json.loads(row[0])
        return default

    def close(self):
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
