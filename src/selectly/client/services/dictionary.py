"""Sync service for dictionary entries."""

from __future__ import annotations

from typing import TYPE_CHECKING

from selectly.client.api import ResourceAPI
from selectly.client.models import DictionaryEntry
from selectly.client.services.base import DomainSyncService, FullFetchAdapter
from selectly.core.types import SyncResource

if TYPE_CHECKING:
    from selectly.client.account import AccountSession
    from selectly.client.api import HTTPClient
    from selectly.client.storage import ItemStore
    from selectly.client.sync.queue import MutationQueue


class DictionaryAdapter(FullFetchAdapter[DictionaryEntry]):
    """Adapter for dictionary entries.

    Entries saved before updated_at existed compare by created_at.
    """

    def __init__(
        self,
        store: ItemStore[DictionaryEntry],
        queue: MutationQueue,
        client: HTTPClient,
        account: AccountSession,
    ) -> None:
        super().__init__(
            name="DictionarySync",
            sync_state_key="dictionarySyncState",
            store=store,
            queue=queue,
            api=ResourceAPI(
                client,
                SyncResource.DICTIONARY,
                DictionaryEntry.from_wire,
                DictionaryEntry.to_wire,
            ),
            account=account,
        )

    def get_updated_at(self, item: DictionaryEntry) -> int:
        return item.effective_updated_at


class DictionarySyncService(DomainSyncService[DictionaryEntry]):
    """Dictionary entries with automatic cloud sync."""

    async def save_word(
        self,
        source: str,
        translation: str,
        sentence: str = "",
        url: str = "",
        title: str = "",
        hostname: str = "",
    ) -> str:
        """Save a word with its translation.

        Returns:
            Id of the new entry.
        """
        return await self.add(
            DictionaryEntry(
                id="",
                source=source,
                translation=translation,
                sentence=sentence,
                url=url,
                title=title,
                hostname=hostname,
            )
        )
