"""Sync service for collected items."""

from __future__ import annotations

from typing import TYPE_CHECKING

from selectly.client.api import ResourceAPI
from selectly.client.models import CollectedItem
from selectly.client.services.base import DomainSyncService, FullFetchAdapter
from selectly.core.types import SyncResource

if TYPE_CHECKING:
    from selectly.client.account import AccountSession
    from selectly.client.api import HTTPClient
    from selectly.client.storage import ItemStore
    from selectly.client.sync.queue import MutationQueue


class CollectAdapter(FullFetchAdapter[CollectedItem]):
    """Adapter for collected items."""

    def __init__(
        self,
        store: ItemStore[CollectedItem],
        queue: MutationQueue,
        client: HTTPClient,
        account: AccountSession,
    ) -> None:
        super().__init__(
            name="CollectSync",
            sync_state_key="collectSyncState",
            store=store,
            queue=queue,
            api=ResourceAPI(
                client,
                SyncResource.COLLECT,
                CollectedItem.from_wire,
                CollectedItem.to_wire,
            ),
            account=account,
        )


class CollectSyncService(DomainSyncService[CollectedItem]):
    """Collected items with automatic cloud sync."""

    async def collect(self, text: str, url: str = "", title: str = "", hostname: str = "") -> str:
        """Collect a snippet from a page.

        Returns:
            Id of the new item.
        """
        return await self.add(
            CollectedItem(id="", text=text, url=url, title=title, hostname=hostname)
        )
