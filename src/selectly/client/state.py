"""Persisted sync progress for the client.

This module provides:
- SyncStateStore: SQLite key/value store holding one SyncState per domain

Each sync domain owns one key. The stored value is a JSON object with the
watermark and the last cycle error; the syncing flag is never written as
true, so a crash in the middle of a cycle cannot leave a domain locked.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import threading
from pathlib import Path

from selectly.client.sync.types import SyncState

logger = logging.getLogger(__name__)


class SyncStateStore:
    """SQLite-based key/value store for sync progress."""

    def __init__(self, db_path: Path | None = None) -> None:
        """Initialize the state database.

        Args:
            db_path: Path to SQLite database file (None keeps it in memory).
        """
        self._lock = threading.RLock()

        if db_path is not None:
            db_path = Path(db_path)
            db_path.parent.mkdir(parents=True, exist_ok=True)
            target = str(db_path)
        else:
            target = ":memory:"

        self._conn = sqlite3.connect(
            target,
            check_same_thread=False,
            isolation_level=None,  # Autocommit mode
        )
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("""
            CREATE TABLE IF NOT EXISTS sync_state (
                key TEXT PRIMARY KEY,
                value TEXT
            )
        """)

    def close(self) -> None:
        """Close the database connection."""
        self._conn.close()

    def get_raw(self, key: str) -> str | None:
        """Get the stored value for a key."""
        with self._lock:
            row = self._conn.execute(
                "SELECT value FROM sync_state WHERE key = ?",
                (key,),
            ).fetchone()
        return row["value"] if row else None

    def set_raw(self, key: str, value: str) -> None:
        """Set the stored value for a key."""
        with self._lock:
            self._conn.execute(
                "INSERT OR REPLACE INTO sync_state (key, value) VALUES (?, ?)",
                (key, value),
            )

    def load(self, key: str) -> SyncState:
        """Load the sync state stored under a key.

        Returns an empty state when nothing is stored or the stored value
        cannot be decoded.
        """
        raw = self.get_raw(key)
        if not raw:
            return SyncState()
        try:
            return SyncState.from_dict(json.loads(raw))
        except (ValueError, TypeError, AttributeError):
            logger.warning("Discarding unreadable sync state for %s", key)
            return SyncState()

    def save(self, key: str, state: SyncState) -> None:
        """Persist a sync state under a key."""
        self.set_raw(key, json.dumps(state.to_dict()))

    def delete(self, key: str) -> None:
        """Remove the state stored under a key."""
        with self._lock:
            self._conn.execute("DELETE FROM sync_state WHERE key = ?", (key,))

    def keys(self) -> list[str]:
        """List stored keys."""
        with self._lock:
            rows = self._conn.execute("SELECT key FROM sync_state ORDER BY key").fetchall()
        return [row["key"] for row in rows]
