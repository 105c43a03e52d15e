"""Adapter contract binding the sync engine to one entity type.

This module provides:
- SyncAdapter: Protocol every domain adapter implements

Required members are declared on the protocol. Three members are optional
and looked up with getattr() by the engine:

- should_upload_item(item) -> bool: last-chance upload filter (default: True)
- update_local_owner(item_id): stamp ownership after a successful upload
- fetch_all() -> FetchResponse: full pull (default: fetch_remote(0))

upload_items() must be idempotent: uploading an already-synced item again
must neither duplicate it nor fail destructively.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, TypeVar

from selectly.core.types import SyncItem

if TYPE_CHECKING:
    from selectly.client.sync.types import FetchResponse, QueueEntry, UploadResponse
    from selectly.core.types import SyncOperation

ItemT = TypeVar("ItemT", bound=SyncItem)


class SyncAdapter(Protocol[ItemT]):
    """Storage and transport operations for one sync domain.

    Attributes:
        name: Label used in log messages.
        sync_state_key: Key of this domain's slot in the SyncStateStore.
    """

    name: str
    sync_state_key: str

    async def is_sync_enabled(self) -> bool:
        """Check if sync may run (signed in and entitled)."""
        ...

    # === Local items ===

    async def get_item_by_id(self, item_id: str) -> ItemT | None:
        """Get the local copy of an item, tombstones included."""
        ...

    def get_item_id(self, item: ItemT) -> str | None:
        """Get an item's id (None for malformed items)."""
        ...

    def get_updated_at(self, item: ItemT) -> int:
        """Get an item's update time in epoch milliseconds."""
        ...

    def is_deleted(self, item: ItemT) -> bool:
        """Check if an item is a tombstone."""
        ...

    async def upsert_local(self, item: ItemT) -> None:
        """Insert or replace the local copy of an item."""
        ...

    # === Queue ===

    async def get_queue(self) -> list[QueueEntry]:
        """Get all pending queue entries in upload order."""
        ...

    async def enqueue(self, item_id: str, operation: SyncOperation) -> None:
        """Queue a mutation, applying the collapsing rules."""
        ...

    async def dequeue(self, queue_id: int) -> None:
        """Remove one queue entry."""
        ...

    async def dequeue_by_item_id(self, item_id: str) -> None:
        """Remove all queue entries of an item."""
        ...

    async def mark_failed(self, queue_id: int, error: str) -> None:
        """Record a failed upload attempt on a queue entry."""
        ...

    async def clear_queue(self) -> None:
        """Remove every queue entry."""
        ...

    async def count_queue(self) -> int:
        """Count pending queue entries."""
        ...

    # === Remote ===

    async def upload_items(self, items: list[ItemT]) -> UploadResponse:
        """Upload a batch of items in one call."""
        ...

    async def fetch_remote(self, since: int) -> FetchResponse[ItemT]:
        """Fetch remote items changed at or after a watermark."""
        ...
