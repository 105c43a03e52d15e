"""Adapter and service plumbing shared by the sync domains.

This module provides:
- StoreAdapter: SyncAdapter over an ItemStore, a MutationQueue, a
  ResourceAPI and the AccountSession
- FullFetchAdapter: StoreAdapter that can pull the whole remote collection
- DomainSyncService: One SyncCore plus local mutation helpers
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import TYPE_CHECKING, Any, Generic

from selectly.client.sync.adapter import ItemT
from selectly.client.sync.engine import SyncCore
from selectly.core.config import DEFAULT_SYNC_INTERVAL
from selectly.core.types import SyncOperation, now_ms

if TYPE_CHECKING:
    from selectly.client.account import AccountSession
    from selectly.client.api import ResourceAPI
    from selectly.client.state import SyncStateStore
    from selectly.client.storage import ItemStore
    from selectly.client.sync.queue import MutationQueue
    from selectly.client.sync.types import (
        FetchResponse,
        QueueEntry,
        SyncReport,
        SyncState,
        UploadResponse,
    )

logger = logging.getLogger(__name__)


class StoreAdapter(Generic[ItemT]):
    """Binds the sync engine to local SQLite storage and the HTTP API."""

    def __init__(
        self,
        name: str,
        sync_state_key: str,
        store: ItemStore[Any],
        queue: MutationQueue,
        api: ResourceAPI[ItemT],
        account: AccountSession,
    ) -> None:
        self.name = name
        self.sync_state_key = sync_state_key
        self.store = store
        self.queue = queue
        self.api = api
        self.account = account

    async def is_sync_enabled(self) -> bool:
        return await self.account.is_sync_enabled()

    # === Local items ===

    async def get_item_by_id(self, item_id: str) -> ItemT | None:
        return self.store.get_by_id(item_id)

    def get_item_id(self, item: ItemT) -> str | None:
        return item.id or None

    def get_updated_at(self, item: ItemT) -> int:
        return item.updated_at or 0

    def is_deleted(self, item: ItemT) -> bool:
        return bool(item.deleted_at)

    async def upsert_local(self, item: ItemT) -> None:
        self.store.upsert(item)

    async def update_local_owner(self, item_id: str) -> None:
        """Stamp the signed-in user on an item after it reached the server."""
        user_id = self.account.user_id
        if user_id:
            self.store.update_owner(item_id, user_id)

    # === Queue ===

    async def get_queue(self) -> list[QueueEntry]:
        return self.queue.get_all()

    async def enqueue(self, item_id: str, operation: SyncOperation) -> None:
        self.queue.enqueue(item_id, operation)

    async def dequeue(self, queue_id: int) -> None:
        self.queue.dequeue(queue_id)

    async def dequeue_by_item_id(self, item_id: str) -> None:
        self.queue.dequeue_by_item_id(item_id)

    async def mark_failed(self, queue_id: int, error: str) -> None:
        self.queue.mark_failed(queue_id, error)

    async def clear_queue(self) -> None:
        self.queue.clear()

    async def count_queue(self) -> int:
        return self.queue.count()

    # === Remote ===

    async def upload_items(self, items: list[ItemT]) -> UploadResponse:
        return await self.api.batch_upload(items)

    async def fetch_remote(self, since: int) -> FetchResponse[ItemT]:
        return await self.api.incremental_fetch(since)


class FullFetchAdapter(StoreAdapter[ItemT]):
    """Adapter whose resource supports pulling the whole collection."""

    async def fetch_all(self) -> FetchResponse[ItemT]:
        return await self.api.fetch_all()


class DomainSyncService(Generic[ItemT]):
    """Composition root of one sync domain.

    Local mutations go through add(), update() and delete(): each writes the
    store first, then queues the mutation for the next cycle.
    """

    def __init__(
        self,
        adapter: StoreAdapter[ItemT],
        state_store: SyncStateStore,
        interval: float = DEFAULT_SYNC_INTERVAL,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self.adapter = adapter
        self.store = adapter.store
        self.core: SyncCore[ItemT] = SyncCore(adapter, state_store, interval, clock)
        self._initialized = False

    @property
    def name(self) -> str:
        return self.adapter.name

    async def initialize(self) -> None:
        """Load persisted sync state. Later calls are no-ops."""
        if self._initialized:
            return
        await self.core.initialize()
        self._initialized = True

    # === Sync pass-throughs ===

    def start_periodic_sync(self) -> None:
        self.core.start_periodic_sync()

    def stop_periodic_sync(self) -> None:
        self.core.stop_periodic_sync()

    async def sync(self) -> SyncReport | None:
        return await self.core.sync()

    async def full_sync(self) -> SyncReport | None:
        return await self.core.full_sync()

    async def queue_for_sync(self, item_id: str, operation: SyncOperation | str) -> None:
        await self.core.queue_for_sync(item_id, operation)

    def get_sync_status(self) -> SyncState:
        return self.core.get_sync_status()

    async def get_pending_sync_count(self) -> int:
        return await self.core.get_pending_sync_count()

    async def clear_sync_state(self) -> None:
        await self.core.clear_sync_state()

    # === Local mutations ===

    async def add(self, item: ItemT) -> str:
        """Store a new item and queue its creation.

        Returns:
            Id of the stored item.
        """
        item_id = self.store.add_item(item)
        await self.queue_for_sync(item_id, SyncOperation.CREATE)
        return item_id

    async def update(self, item_id: str, **changes: Any) -> ItemT:
        """Change an item and queue the update.

        Raises:
            ItemNotFoundError: If no item has this id.
        """
        item = self.store.update_item(item_id, **changes)
        await self.queue_for_sync(item_id, SyncOperation.UPDATE)
        return item

    async def delete(self, item_id: str) -> bool:
        """Soft-delete an item and queue the deletion.

        Returns:
            True if a live item was deleted.
        """
        if not self.store.soft_delete(item_id):
            return False
        await self.queue_for_sync(item_id, SyncOperation.DELETE)
        return True

    def get_all(self) -> list[ItemT]:
        """Live items visible to the signed-in user, newest first."""
        return self.store.get_all(owner_id=self.adapter.account.user_id)

    def get(self, item_id: str) -> ItemT | None:
        return self.store.get_by_id(item_id)


async def sync_all(
    services: list[DomainSyncService[Any]], full: bool = False
) -> dict[str, SyncReport | None]:
    """Run one cycle on several domains concurrently.

    A failing domain does not stop the others; its exception is logged and
    its report is None.

    Returns:
        Report per domain name.
    """
    cycles = [service.full_sync() if full else service.sync() for service in services]
    results = await asyncio.gather(*cycles, return_exceptions=True)

    reports: dict[str, SyncReport | None] = {}
    for service, result in zip(services, results):
        if isinstance(result, BaseException):
            logger.error("[%s] Sync failed: %s", service.name, result)
            reports[service.name] = None
        else:
            reports[service.name] = result
    return reports
