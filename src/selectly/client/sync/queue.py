"""Mutation queue for pending local changes.

This module provides:
- MutationQueue: SQLite-backed queue holding at most one pending
  operation per item

Collapsing rules applied by enqueue() (existing -> incoming = result):

    none   -> any     = insert new entry
    create -> update  = keep create (first upload carries full content)
    create -> delete  = remove entry (item never reached the server)
    update -> update  = keep update, refresh timestamp
    update -> delete  = overwrite to delete
    delete -> any     = no-op (delete is terminal until dequeued)

Entries are only removed by a successful upload (dequeue), by the
create -> delete collapse, or by clear(). Failed uploads increment
retry_count and keep the entry for the next cycle.

Persistence (SQLite):
    Each operation commits immediately. Several queues (one per domain)
    can share one database file; entries are partitioned by domain name.
"""

from __future__ import annotations

import logging
import sqlite3
import threading
from collections.abc import Callable
from pathlib import Path
from typing import TYPE_CHECKING

from selectly.client.sync.types import QueueEntry
from selectly.core.types import SyncOperation, now_ms

if TYPE_CHECKING:
    from collections.abc import Iterator

logger = logging.getLogger(__name__)


class MutationQueue:
    """Persistent queue of pending mutations, deduplicated by item id.

    Attributes:
        domain: Name partitioning this queue inside the database.
    """

    def __init__(
        self,
        domain: str,
        db_path: Path | None = None,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        """Initialize the queue.

        Args:
            domain: Name of the sync domain owning this queue.
            db_path: SQLite file (None keeps the queue in memory).
            clock: Source of enqueue timestamps (epoch milliseconds).
        """
        self.domain = domain
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
        """Create the queue table if it doesn't exist."""
        self._conn.executescript("""
            CREATE TABLE IF NOT EXISTS mutation_queue (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                domain TEXT NOT NULL,
                item_id TEXT NOT NULL,
                operation TEXT NOT NULL,
                timestamp INTEGER NOT NULL,
                retry_count INTEGER NOT NULL DEFAULT 0,
                last_error TEXT,
                UNIQUE (domain, item_id)
            );

            CREATE INDEX IF NOT EXISTS idx_mutation_queue_order
                ON mutation_queue (domain, timestamp, id);
        """)

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            self._conn.close()
        logger.debug("Mutation queue '%s' closed", self.domain)

    @staticmethod
    def _from_row(row: sqlite3.Row) -> QueueEntry:
        return QueueEntry(
            id=row["id"],
            item_id=row["item_id"],
            operation=SyncOperation(row["operation"]),
            timestamp=row["timestamp"],
            retry_count=row["retry_count"],
            last_error=row["last_error"],
        )

    def enqueue(self, item_id: str, operation: SyncOperation | str) -> QueueEntry | None:
        """Record a mutation, collapsing it with any pending one.

        Args:
            item_id: Id of the mutated item.
            operation: Kind of mutation.

        Returns:
            The pending entry for the item after collapsing, or None if the
            item no longer has a pending entry.
        """
        operation = SyncOperation(operation)

        with self._lock:
            existing = self.get_by_item_id(item_id)

            if existing is None:
                cursor = self._conn.execute(
                    """
                    INSERT INTO mutation_queue
                    (domain, item_id, operation, timestamp, retry_count)
                    VALUES (?, ?, ?, ?, 0)
                    """,
                    (self.domain, item_id, operation.value, self._clock()),
                )
                logger.debug(
                    "[%s] Queued %s for item %s", self.domain, operation.value, item_id
                )
                return self.get(int(cursor.lastrowid or 0))

            if existing.operation is SyncOperation.CREATE:
                if operation is SyncOperation.DELETE:
                    # Never uploaded, nothing to tell the server
                    self.dequeue(existing.id)
                    logger.debug(
                        "[%s] Dropped pending create for deleted item %s",
                        self.domain,
                        item_id,
                    )
                    return None
                return existing

            if existing.operation is SyncOperation.UPDATE:
                if operation is SyncOperation.CREATE:
                    return existing
                self._conn.execute(
                    "UPDATE mutation_queue SET operation = ?, timestamp = ? WHERE id = ?",
                    (operation.value, self._clock(), existing.id),
                )
                if operation is SyncOperation.DELETE:
                    logger.debug(
                        "[%s] Pending update for %s replaced by delete",
                        self.domain,
                        item_id,
                    )
                return self.get(existing.id)

            # Pending delete is terminal
            return existing

    def get_all(self) -> list[QueueEntry]:
        """Get all pending entries, oldest first."""
        with self._lock:
            rows = self._conn.execute(
                """
                SELECT * FROM mutation_queue
                WHERE domain = ?
                ORDER BY timestamp, id
                """,
                (self.domain,),
            ).fetchall()
        return [self._from_row(row) for row in rows]

    def get(self, queue_id: int) -> QueueEntry | None:
        """Get an entry by queue id."""
        with self._lock:
            row = self._conn.execute(
                "SELECT * FROM mutation_queue WHERE id = ? AND domain = ?",
                (queue_id, self.domain),
            ).fetchone()
        return self._from_row(row) if row else None

    def get_by_item_id(self, item_id: str) -> QueueEntry | None:
        """Get the pending entry for an item, if any."""
        with self._lock:
            row = self._conn.execute(
                "SELECT * FROM mutation_queue WHERE domain = ? AND item_id = ?",
                (self.domain, item_id),
            ).fetchone()
        return self._from_row(row) if row else None

    def dequeue(self, queue_id: int) -> None:
        """Remove an entry by queue id."""
        with self._lock:
            self._conn.execute(
                "DELETE FROM mutation_queue WHERE id = ? AND domain = ?",
                (queue_id, self.domain),
            )

    def dequeue_by_item_id(self, item_id: str) -> int:
        """Remove all entries for an item.

        Returns:
            Number of entries removed.
        """
        with self._lock:
            cursor = self._conn.execute(
                "DELETE FROM mutation_queue WHERE domain = ? AND item_id = ?",
                (self.domain, item_id),
            )
        return cursor.rowcount

    def mark_failed(self, queue_id: int, error: str) -> None:
        """Record a failed upload attempt. The entry stays queued."""
        with self._lock:
            self._conn.execute(
                """
                UPDATE mutation_queue
                SET retry_count = retry_count + 1, last_error = ?
                WHERE id = ? AND domain = ?
                """,
                (error, queue_id, self.domain),
            )

    def clear(self) -> int:
        """Remove all entries of this domain.

        Returns:
            Number of entries removed.
        """
        with self._lock:
            cursor = self._conn.execute(
                "DELETE FROM mutation_queue WHERE domain = ?", (self.domain,)
            )
        logger.info("[%s] Cleared %d entries from queue", self.domain, cursor.rowcount)
        return cursor.rowcount

    def count(self) -> int:
        """Get number of pending entries."""
        with self._lock:
            row = self._conn.execute(
                "SELECT COUNT(*) FROM mutation_queue WHERE domain = ?", (self.domain,)
            ).fetchone()
        return int(row[0])

    def __len__(self) -> int:
        """Get number of pending entries."""
        return self.count()

    def __iter__(self) -> Iterator[QueueEntry]:
        """Iterate over entries in upload order (does not remove them)."""
        return iter(self.get_all())

    def __bool__(self) -> bool:
        """Check if queue has entries."""
        return self.count() > 0

    def stats(self) -> dict[str, int]:
        """Get queue statistics.

        Returns:
            Dictionary with entry counts by operation and failure count
        """
        stats: dict[str, int] = {
            "total": 0,
            "create": 0,
            "update": 0,
            "delete": 0,
            "failing": 0,
        }
        for entry in self.get_all():
            stats["total"] += 1
            stats[entry.operation.value] += 1
            if entry.retry_count > 0:
                stats["failing"] += 1
        return stats
