"""Per-domain sync services and their composition root.

Each service wires one adapter (store + queue + API + account gate) into
one SyncCore. build_services() creates all of them around a shared HTTP
client, account session and state store.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import httpx

from selectly.client.account import AccountSession
from selectly.client.api import HTTPClient
from selectly.client.services.base import (
    DomainSyncService,
    FullFetchAdapter,
    StoreAdapter,
    sync_all,
)
from selectly.client.services.collect import CollectAdapter, CollectSyncService
from selectly.client.services.dictionary import DictionaryAdapter, DictionarySyncService
from selectly.client.services.highlight import HighlightAdapter, HighlightSyncService
from selectly.client.state import SyncStateStore
from selectly.client.storage import HighlightStore, collect_store, dictionary_store
from selectly.client.sync.queue import MutationQueue
from selectly.core.config import ServerConfig, SyncSettings
from selectly.core.types import SyncResource, now_ms

logger = logging.getLogger(__name__)


@dataclass
class Services:
    """Everything the client needs to sync, built once per process."""

    client: HTTPClient
    account: AccountSession
    state_store: SyncStateStore
    collect: CollectSyncService
    dictionary: DictionarySyncService
    highlights: HighlightSyncService
    settings: SyncSettings

    def get(self, resource: SyncResource | str) -> DomainSyncService[Any]:
        """Get the service of a resource."""
        resource = SyncResource(resource)
        if resource is SyncResource.COLLECT:
            return self.collect
        if resource is SyncResource.DICTIONARY:
            return self.dictionary
        return self.highlights

    def enabled(self) -> list[DomainSyncService[Any]]:
        """Services of the resources enabled in the settings."""
        return [
            self.get(resource) for resource in SyncResource if self.settings.is_enabled(resource)
        ]

    async def initialize(self) -> None:
        for service in self.enabled():
            await service.initialize()

    def start_periodic_sync(self) -> None:
        for service in self.enabled():
            service.start_periodic_sync()

    def stop_periodic_sync(self) -> None:
        for service in (self.collect, self.dictionary, self.highlights):
            service.stop_periodic_sync()

    async def clear_sync_state(self) -> None:
        """Reset every domain's watermark and queue."""
        for service in (self.collect, self.dictionary, self.highlights):
            await service.clear_sync_state()

    async def close(self) -> None:
        """Stop timers and release connections."""
        self.stop_periodic_sync()
        await self.client.close()
        for service in (self.collect, self.dictionary, self.highlights):
            service.store.close()
            service.adapter.queue.close()
        self.state_store.close()


def build_services(
    config: ServerConfig,
    settings: SyncSettings,
    user_id: str | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
    clock: Callable[[], int] = now_ms,
) -> Services:
    """Create the stores, queues, API client and sync services.

    Args:
        config: Server connection settings (token included).
        settings: Local data directory, interval and enabled domains.
        user_id: Id of the signed-in user.
        transport: Custom HTTP transport (tests).
        clock: Source of time (epoch milliseconds).
    """
    client = HTTPClient(config, transport=transport)
    account = AccountSession(client, user_id=user_id, clock=clock)
    state_store = SyncStateStore(settings.state_db_path)
    interval = settings.interval_seconds

    def queue(resource: SyncResource) -> MutationQueue:
        return MutationQueue(resource.value, settings.queue_db_path, clock=clock)

    collect = CollectSyncService(
        CollectAdapter(
            collect_store(settings.items_db_path, clock),
            queue(SyncResource.COLLECT),
            client,
            account,
        ),
        state_store,
        interval,
        clock,
    )
    dictionary = DictionarySyncService(
        DictionaryAdapter(
            dictionary_store(settings.items_db_path, clock),
            queue(SyncResource.DICTIONARY),
            client,
            account,
        ),
        state_store,
        interval,
        clock,
    )
    highlights = HighlightSyncService(
        HighlightAdapter(
            HighlightStore(settings.items_db_path, clock),
            queue(SyncResource.HIGHLIGHTS),
            client,
            account,
        ),
        state_store,
        interval,
        clock,
    )
    logger.debug("Services built for %s (data dir %s)", config.server_url, settings.data_dir)

    return Services(
        client=client,
        account=account,
        state_store=state_store,
        collect=collect,
        dictionary=dictionary,
        highlights=highlights,
        settings=settings,
    )


__all__ = [
    # Composition
    "Services",
    "build_services",
    "sync_all",
    # Adapters
    "CollectAdapter",
    "DictionaryAdapter",
    "FullFetchAdapter",
    "HighlightAdapter",
    "StoreAdapter",
    # Services
    "CollectSyncService",
    "DictionarySyncService",
    "DomainSyncService",
    "HighlightSyncService",
]
