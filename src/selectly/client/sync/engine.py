"""Sync engine reconciling a local collection with its remote copy.

This module provides:
- SyncCore: Runs upload/download/merge cycles for one adapter

Cycle (sync):
    1. Upload: drain the mutation queue in one batch call
    2. Download: fetch remote changes since the watermark
    3. Merge: last-write-wins on updated_at, tombstones win ties

Upload always precedes download, so a queued local edit reaches the server
before a pull could overwrite it locally.

Concurrency:
    Runs on one asyncio event loop. The syncing flag is checked and set with
    no await in between, so at most one cycle runs per engine. A call made
    while a cycle is running returns immediately; it is not queued.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import replace
from typing import TYPE_CHECKING, Generic

from selectly.client.sync.adapter import ItemT
from selectly.client.sync.merge import decide_merge
from selectly.client.sync.types import (
    FetchResponse,
    MergeAction,
    QueueEntry,
    SyncReport,
    SyncState,
    UploadError,
)
from selectly.core.config import DEFAULT_SYNC_INTERVAL
from selectly.core.types import SyncOperation, now_ms

if TYPE_CHECKING:
    from selectly.client.state import SyncStateStore
    from selectly.client.sync.adapter import SyncAdapter

logger = logging.getLogger(__name__)


class SyncCore(Generic[ItemT]):
    """Generic offline-first sync engine for one adapter."""

    def __init__(
        self,
        adapter: SyncAdapter[ItemT],
        state_store: SyncStateStore,
        interval: float = DEFAULT_SYNC_INTERVAL,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        """Initialize the sync engine.

        Args:
            adapter: Storage and transport binding for one entity type.
            state_store: Persistence for the sync state.
            interval: Seconds between periodic cycles.
            clock: Source of the watermark (epoch milliseconds).
        """
        self._adapter = adapter
        self._state_store = state_store
        self._interval = interval
        self._clock = clock
        self._state = SyncState()
        self._initialized = False
        # Bumped by clear_sync_state; cycles started earlier do not persist
        self._generation = 0
        self._timer: asyncio.Task[None] | None = None
        self._cycles: set[asyncio.Task[None]] = set()

    @property
    def name(self) -> str:
        """Adapter name used in log messages."""
        return self._adapter.name

    @property
    def is_periodic_running(self) -> bool:
        """Check if the periodic timer is active."""
        return self._timer is not None and not self._timer.done()

    # === Lifecycle ===

    async def initialize(self) -> None:
        """Load persisted sync state. Later calls are no-ops."""
        if self._initialized:
            return

        self._state = self._state_store.load(self._adapter.sync_state_key)
        self._state.syncing = False
        self._initialized = True
        logger.info(
            "[%s] Initialized with last_sync_time: %d",
            self.name,
            self._state.last_sync_time,
        )

    def start_periodic_sync(self) -> None:
        """Run one cycle now, then one every interval.

        Must be called from a running event loop. A second call while the
        timer is active is a no-op.
        """
        if self.is_periodic_running:
            return

        logger.info("[%s] Starting periodic sync every %.1fs", self.name, self._interval)
        self._timer = asyncio.get_running_loop().create_task(
            self._periodic_loop(), name=f"{self.name}-periodic-sync"
        )

    def stop_periodic_sync(self) -> None:
        """Stop the periodic timer.

        A cycle already in flight runs to completion.
        """
        if self._timer is None:
            return
        self._timer.cancel()
        self._timer = None
        logger.info("[%s] Stopped periodic sync", self.name)

    async def _periodic_loop(self) -> None:
        """Fire a cycle on every tick without waiting for the previous one."""
        while True:
            cycle = asyncio.get_running_loop().create_task(self._periodic_cycle())
            self._cycles.add(cycle)
            cycle.add_done_callback(self._cycles.discard)
            await asyncio.sleep(self._interval)

    async def _periodic_cycle(self) -> None:
        """One timer-driven cycle. Errors are logged, never raised."""
        try:
            await self.sync()
        except Exception:
            logger.exception("[%s] Periodic sync failed", self.name)

    # === Cycles ===

    async def sync(self) -> SyncReport | None:
        """Run one incremental cycle: upload, then download and merge.

        Returns:
            SyncReport for a completed cycle, or None when sync is disabled
            or another cycle is already running.

        Raises:
            Exception: Whatever aborted the cycle, after it was recorded in
                last_error and the state was persisted.
        """
        if not await self._acquire("sync"):
            return None

        generation = self._generation
        report = SyncReport()
        try:
            await self._upload_local_changes(report)
            await self._download_remote_updates(report)
            self._complete_cycle(generation)
            logger.info(
                "[%s] Sync completed: %d uploaded, %d downloaded, %d requeued",
                self.name,
                report.uploaded,
                report.downloaded,
                report.requeued,
            )
            return report
        except Exception as e:
            logger.error("[%s] Sync failed: %s", self.name, e)
            self._fail_cycle(generation, e)
            raise
        finally:
            self._state.syncing = False

    async def full_sync(self) -> SyncReport | None:
        """Merge everything the server has, then upload local changes.

        Used to bootstrap a new device or cleared local state, where the
        incremental watermark is meaningless.

        Returns:
            SyncReport for a completed cycle, or None when skipped.
        """
        if not await self._acquire("full sync"):
            return None

        generation = self._generation
        report = SyncReport()
        try:
            fetch_all = getattr(self._adapter, "fetch_all", None)
            if fetch_all is not None:
                response = await fetch_all()
            else:
                response = await self._adapter.fetch_remote(0)

            logger.info("[%s] Full sync received %d items", self.name, len(response.items))
            if response.items:
                await self._merge_remote_items(response.items, report)

            await self._upload_local_changes(report)
            self._complete_cycle(generation)
            logger.info("[%s] Full sync completed", self.name)
            return report
        except Exception as e:
            logger.error("[%s] Full sync failed: %s", self.name, e)
            self._fail_cycle(generation, e)
            raise
        finally:
            self._state.syncing = False

    async def _acquire(self, label: str) -> bool:
        """Take the cycle guard if sync is enabled and idle."""
        if self._state.syncing:
            logger.debug("[%s] Sync already in progress, skipping %s", self.name, label)
            return False

        if not await self._adapter.is_sync_enabled():
            return False

        # Re-check: another cycle may have started while awaiting the gate
        if self._state.syncing:
            logger.debug("[%s] Sync already in progress, skipping %s", self.name, label)
            return False

        self._state.syncing = True
        logger.info("[%s] Starting %s...", self.name, label)
        return True

    def _complete_cycle(self, generation: int) -> None:
        if generation != self._generation:
            logger.info("[%s] Sync state was cleared during the cycle, not saving", self.name)
            return
        self._state.last_sync_time = self._clock()
        self._state.last_error = None
        self._save_state()

    def _fail_cycle(self, generation: int, error: Exception) -> None:
        if generation != self._generation:
            return
        self._state.last_error = str(error) or type(error).__name__
        self._save_state()

    def _save_state(self) -> None:
        self._state_store.save(self._adapter.sync_state_key, self._state)

    # === Upload phase ===

    async def _upload_local_changes(self, report: SyncReport) -> None:
        """Upload every queued item in one batch call."""
        adapter = self._adapter
        queue = await adapter.get_queue()
        if not queue:
            logger.debug("[%s] No local changes to upload", self.name)
            return

        logger.info("[%s] Uploading %d local changes", self.name, len(queue))

        should_upload = getattr(adapter, "should_upload_item", None)
        items_to_upload: list[ItemT] = []

        for entry in queue:
            item = await adapter.get_item_by_id(entry.item_id)
            if item is not None and (should_upload is None or should_upload(item)):
                items_to_upload.append(item)
            elif entry.operation is not SyncOperation.DELETE:
                # Nothing left to upload for this entry
                await adapter.dequeue(entry.id)
                report.dropped += 1

        if not items_to_upload:
            if all(entry.operation is SyncOperation.DELETE for entry in queue):
                logger.debug("[%s] Only delete operations in queue", self.name)
                for entry in queue:
                    await adapter.dequeue(entry.id)
                    report.dropped += 1
            return

        try:
            response = await adapter.upload_items(items_to_upload)
        except Exception as e:
            message = str(e) or type(e).__name__
            logger.warning("[%s] Upload failed: %s", self.name, message)
            for entry in queue:
                await adapter.mark_failed(entry.id, message)
            raise UploadError(message) from e

        update_owner = getattr(adapter, "update_local_owner", None)
        for item_id in response.synced:
            await adapter.dequeue_by_item_id(item_id)
            if update_owner is not None:
                await update_owner(item_id)
        report.uploaded += len(response.synced)

        entries_by_item = self._index_queue(queue)
        for failed in response.failed:
            entry = entries_by_item.get(failed.id)
            if entry is not None:
                await adapter.mark_failed(entry.id, failed.error)
                logger.warning(
                    "[%s] Server rejected %s: %s", self.name, failed.id, failed.error
                )
        report.failed += len(response.failed)

        logger.info("[%s] Successfully synced %d items", self.name, len(response.synced))

    @staticmethod
    def _index_queue(queue: list[QueueEntry]) -> dict[str, QueueEntry]:
        entries: dict[str, QueueEntry] = {}
        for entry in queue:
            entries.setdefault(entry.item_id, entry)
        return entries

    # === Download phase ===

    async def _download_remote_updates(self, report: SyncReport) -> None:
        """Fetch remote changes since the watermark and merge them."""
        response: FetchResponse[ItemT] = await self._adapter.fetch_remote(
            self._state.last_sync_time
        )
        if not response.items:
            logger.debug("[%s] No remote updates", self.name)
            return

        logger.info("[%s] Received %d remote updates", self.name, len(response.items))
        await self._merge_remote_items(response.items, report)

    async def _merge_remote_items(self, remote_items: list[ItemT], report: SyncReport) -> None:
        """Apply last-write-wins to each remote item."""
        adapter = self._adapter

        for remote_item in remote_items:
            remote_id = adapter.get_item_id(remote_item)
            if not remote_id:
                logger.warning("[%s] Skipping remote item without id", self.name)
                report.skipped += 1
                continue

            local_item = await adapter.get_item_by_id(remote_id)
            action = decide_merge(
                local_updated_at=(
                    adapter.get_updated_at(local_item) if local_item is not None else None
                ),
                local_deleted=local_item is not None and adapter.is_deleted(local_item),
                remote_updated_at=adapter.get_updated_at(remote_item),
                remote_deleted=adapter.is_deleted(remote_item),
            )

            if action is MergeAction.ACCEPT_REMOTE:
                await adapter.upsert_local(remote_item)
                report.downloaded += 1
                logger.debug("[%s] Applied remote version of %s", self.name, remote_id)
            elif action is MergeAction.REQUEUE_UPDATE:
                await adapter.enqueue(remote_id, SyncOperation.UPDATE)
                report.requeued += 1
                logger.debug("[%s] Local %s is newer, queued update", self.name, remote_id)
            elif action is MergeAction.REQUEUE_DELETE:
                await adapter.enqueue(remote_id, SyncOperation.DELETE)
                report.requeued += 1
                logger.debug("[%s] Local %s is deleted, queued delete", self.name, remote_id)

    # === Pass-throughs ===

    async def queue_for_sync(self, item_id: str, operation: SyncOperation | str) -> None:
        """Queue a local mutation for the next cycle."""
        operation = SyncOperation(operation)
        await self._adapter.enqueue(item_id, operation)
        logger.debug("[%s] Queued %s for item: %s", self.name, operation.value, item_id)

    def get_sync_status(self) -> SyncState:
        """Get a copy of the current sync state."""
        return replace(self._state)

    async def get_pending_sync_count(self) -> int:
        """Count queued mutations."""
        return await self._adapter.count_queue()

    async def clear_sync_state(self) -> None:
        """Reset the watermark and wipe the queue.

        Used when sync is disabled or the user signs out, so progress never
        leaks across identities.
        A cycle in flight keeps the guard until it ends but no longer saves
        its watermark or error.
        """
        self._generation += 1
        self._state = SyncState(syncing=self._state.syncing)
        self._save_state()
        await self._adapter.clear_queue()
        logger.info("[%s] Sync state cleared", self.name)
