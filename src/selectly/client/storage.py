"""Local SQLite storage for synced records.

This module provides:
- ItemStore: Generic store for one record type (one table per domain)
- HighlightStore: ItemStore with per-URL queries and aggregate replacement
- ItemNotFoundError: Raised when updating a record that does not exist

Deletion is logical: soft_delete() sets deleted_at and bumps updated_at so the
tombstone wins last-write-wins against older remote copies. remove() is a
local hard delete and is never synced.

Rows keep the indexed fields as columns and the whole record as JSON.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import threading
import uuid
from collections.abc import Callable, Iterable
from dataclasses import replace
from pathlib import Path
from typing import Any, Generic, Protocol, TypeVar

from selectly.client.models import CollectedItem, DictionaryEntry, HighlightItem
from selectly.core.types import now_ms

logger = logging.getLogger(__name__)


class StoredRecord(Protocol):
    id: str
    url: str
    owner_id: str | None
    created_at: int
    deleted_at: int | None

    def to_dict(self) -> dict[str, Any]: ...


RecordT = TypeVar("RecordT", bound=StoredRecord)


class ItemNotFoundError(LookupError):
    """No record with the given id exists."""


class ItemStore(Generic[RecordT]):
    """SQLite-backed store for one record type."""

    def __init__(
        self,
        table: str,
        factory: Callable[[dict[str, Any]], RecordT],
        db_path: Path | None = None,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        """Initialize the store.

        Args:
            table: Table name, one per domain.
            factory: Builds a record from its stored dictionary.
            db_path: SQLite file (None keeps the data in memory).
            clock: Source of timestamps (epoch milliseconds).
        """
        self.table = table
        self._factory = factory
        self._clock = clock
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
        if db_path is not None:
            self._conn.execute("PRAGMA journal_mode=WAL")
        self._create_tables()

    def _create_tables(self) -> None:
        self._conn.executescript(f"""
            CREATE TABLE IF NOT EXISTS {self.table} (
                id TEXT PRIMARY KEY,
                owner_id TEXT,
                url TEXT,
                source TEXT,
                created_at INTEGER NOT NULL DEFAULT 0,
                updated_at INTEGER NOT NULL DEFAULT 0,
                deleted_at INTEGER,
                payload TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_{self.table}_updated
                ON {self.table} (updated_at);
            CREATE INDEX IF NOT EXISTS idx_{self.table}_url
                ON {self.table} (url);
        """)

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            self._conn.close()

    @staticmethod
    def _updated_at(item: RecordT) -> int:
        # Dictionary entries may lack updated_at
        return getattr(item, "updated_at", None) or item.created_at or 0

    def _write(self, item: RecordT) -> None:
        self._conn.execute(
            f"""
            INSERT OR REPLACE INTO {self.table}
            (id, owner_id, url, source, created_at, updated_at, deleted_at, payload)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                item.id,
                item.owner_id,
                item.url,
                getattr(item, "source", None),
                item.created_at,
                self._updated_at(item),
                item.deleted_at,
                json.dumps(item.to_dict()),
            ),
        )

    def _select(self, where: str = "", params: tuple[Any, ...] = ()) -> list[RecordT]:
        query = f"SELECT payload FROM {self.table}"
        if where:
            query += f" WHERE {where}"
        query += " ORDER BY created_at DESC, id"
        with self._lock:
            rows = self._conn.execute(query, params).fetchall()
        return [self._factory(json.loads(row["payload"])) for row in rows]

    # === Local mutations ===

    def add_item(self, item: RecordT) -> str:
        """Insert a new record, assigning an id and timestamps.

        Returns:
            Id of the stored record.
        """
        now = self._clock()
        item = replace(
            item,
            id=item.id or str(uuid.uuid4()),
            created_at=item.created_at or now,
            updated_at=now,
            deleted_at=None,
        )
        with self._lock:
            self._write(item)
        logger.debug("[%s] Added item %s", self.table, item.id)
        return item.id

    def update_item(self, item_id: str, **changes: Any) -> RecordT:
        """Apply changes to a record and bump its update time.

        Raises:
            ItemNotFoundError: If no record has this id.
        """
        with self._lock:
            current = self.get_by_id(item_id)
            if current is None:
                raise ItemNotFoundError(item_id)
            for key in ("id", "updated_at"):
                changes.pop(key, None)
            updated = replace(current, **changes, updated_at=self._clock())
            self._write(updated)
        return updated

    def soft_delete(self, item_id: str) -> bool:
        """Mark a record as deleted.

        Returns:
            True if the record exists and was not already deleted.
        """
        with self._lock:
            current = self.get_by_id(item_id)
            if current is None or current.deleted_at is not None:
                return False
            now = self._clock()
            self._write(replace(current, deleted_at=now, updated_at=now))
        logger.debug("[%s] Soft-deleted item %s", self.table, item_id)
        return True

    def remove(self, item_id: str) -> bool:
        """Hard-delete a record locally. Not synced."""
        with self._lock:
            cursor = self._conn.execute(f"DELETE FROM {self.table} WHERE id = ?", (item_id,))
        return cursor.rowcount > 0

    def clear_all(self) -> int:
        """Hard-delete every record locally.

        Returns:
            Number of records removed.
        """
        with self._lock:
            cursor = self._conn.execute(f"DELETE FROM {self.table}")
        logger.info("[%s] Cleared %d local items", self.table, cursor.rowcount)
        return cursor.rowcount

    # === Sync ===

    def upsert(self, item: RecordT) -> None:
        """Insert or replace a record as-is (timestamps untouched)."""
        with self._lock:
            self._write(item)

    def batch_upsert(self, items: Iterable[RecordT]) -> int:
        """Insert or replace several records in one transaction.

        Returns:
            Number of records written.
        """
        count = 0
        with self._lock:
            self._conn.execute("BEGIN")
            try:
                for item in items:
                    self._write(item)
                    count += 1
            except Exception:
                self._conn.execute("ROLLBACK")
                raise
            self._conn.execute("COMMIT")
        return count

    def update_owner(self, item_id: str, owner_id: str) -> bool:
        """Stamp the owner on a record without bumping its update time."""
        with self._lock:
            current = self.get_by_id(item_id)
            if current is None:
                return False
            self._write(replace(current, owner_id=owner_id))
        return True

    # === Queries ===

    def get_by_id(self, item_id: str) -> RecordT | None:
        """Get a record by id, tombstones included."""
        with self._lock:
            row = self._conn.execute(
                f"SELECT payload FROM {self.table} WHERE id = ?", (item_id,)
            ).fetchone()
        return self._factory(json.loads(row["payload"])) if row else None

    def get_all(self, owner_id: str | None = None) -> list[RecordT]:
        """Get live records, newest first.

        Args:
            owner_id: When set, hide records stamped with a different owner.
        """
        if owner_id is None:
            return self._select("deleted_at IS NULL")
        return self._select(
            "deleted_at IS NULL AND (owner_id IS NULL OR owner_id = ?)", (owner_id,)
        )

    def get_all_including_deleted(self) -> list[RecordT]:
        """Get every record, tombstones included."""
        return self._select()

    def get_modified_since(self, since: int) -> list[RecordT]:
        """Get records updated at or after a timestamp, tombstones included."""
        return self._select("updated_at >= ?", (since,))

    def count(self) -> int:
        """Count live records."""
        with self._lock:
            row = self._conn.execute(
                f"SELECT COUNT(*) FROM {self.table} WHERE deleted_at IS NULL"
            ).fetchone()
        return int(row[0])


class HighlightStore(ItemStore[HighlightItem]):
    """Highlight store with per-page queries."""

    def __init__(
        self,
        db_path: Path | None = None,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        super().__init__("highlights", HighlightItem.from_dict, db_path, clock)

    def get_by_url(self, url: str) -> list[HighlightItem]:
        """Get live highlights of a page, own and aggregated."""
        return self._select("deleted_at IS NULL AND url = ?", (url,))

    def replace_aggregates_for_url(self, url: str, items: Iterable[HighlightItem]) -> int:
        """Swap the aggregated highlights of a page for a fresh set.

        Own highlights of the page are untouched.

        Returns:
            Number of aggregates written.
        """
        count = 0
        with self._lock:
            self._conn.execute("BEGIN")
            try:
                self._conn.execute(
                    f"DELETE FROM {self.table} WHERE url = ? AND source = 'others'", (url,)
                )
                for item in items:
                    self._write(item)
                    count += 1
            except Exception:
                self._conn.execute("ROLLBACK")
                raise
            self._conn.execute("COMMIT")
        logger.debug("[%s] Replaced aggregates for %s: %d", self.table, url, count)
        return count


def collect_store(
    db_path: Path | None = None, clock: Callable[[], int] = now_ms
) -> ItemStore[CollectedItem]:
    """Create the store for collected items."""
    return ItemStore("collect_items", CollectedItem.from_dict, db_path, clock)


def dictionary_store(
    db_path: Path | None = None, clock: Callable[[], int] = now_ms
) -> ItemStore[DictionaryEntry]:
    """Create the store for dictionary entries."""
    return ItemStore("dictionary_entries", DictionaryEntry.from_dict, db_path, clock)
