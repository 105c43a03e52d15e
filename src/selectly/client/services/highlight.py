"""Sync service for highlights.

Besides the user's own highlights, the local store holds read-only
aggregates of other users' highlights on the same page (source "others").
Aggregates are refreshed per page and never uploaded.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import TYPE_CHECKING

import httpx

from selectly.client.api import APIError, HighlightAPI
from selectly.client.models import HighlightAnchor, HighlightItem
from selectly.client.services.base import DomainSyncService, StoreAdapter
from selectly.core.config import DEFAULT_SYNC_INTERVAL
from selectly.core.types import now_ms

if TYPE_CHECKING:
    from selectly.client.account import AccountSession
    from selectly.client.api import HTTPClient
    from selectly.client.state import SyncStateStore
    from selectly.client.storage import HighlightStore
    from selectly.client.sync.queue import MutationQueue

logger = logging.getLogger(__name__)


class HighlightAdapter(StoreAdapter[HighlightItem]):
    """Adapter for highlights.

    Has no fetch_all(): a full sync pulls with fetch_remote(0).
    """

    def __init__(
        self,
        store: HighlightStore,
        queue: MutationQueue,
        client: HTTPClient,
        account: AccountSession,
    ) -> None:
        super().__init__(
            name="HighlightSync",
            sync_state_key="highlightSyncState",
            store=store,
            queue=queue,
            api=HighlightAPI(client),
            account=account,
        )

    def should_upload_item(self, item: HighlightItem) -> bool:
        return not item.is_aggregate


class HighlightSyncService(DomainSyncService[HighlightItem]):
    """Highlights with automatic cloud sync and per-page aggregates."""

    adapter: HighlightAdapter
    store: HighlightStore

    def __init__(
        self,
        adapter: HighlightAdapter,
        state_store: SyncStateStore,
        interval: float = DEFAULT_SYNC_INTERVAL,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        super().__init__(adapter, state_store, interval, clock)
        self._clock = clock

    async def highlight(
        self,
        text: str,
        url: str,
        anchor: HighlightAnchor | None = None,
        color: str | None = None,
        title: str = "",
        hostname: str = "",
    ) -> str:
        """Highlight a text span on a page.

        Returns:
            Id of the new highlight.
        """
        return await self.add(
            HighlightItem(
                id="",
                text=text,
                url=url,
                anchor=anchor or HighlightAnchor(text=text),
                color=color,
                title=title,
                hostname=hostname,
            )
        )

    def get_by_url(self, url: str) -> list[HighlightItem]:
        """Own and aggregated highlights of a page."""
        return self.store.get_by_url(url)

    async def refresh_aggregates_for_url(self, url: str) -> int | None:
        """Replace the page's aggregates with fresh counts from the server.

        Only spans highlighted by more than one user are kept. Does nothing
        when sync is disabled. Failures are logged, not raised.

        Returns:
            Number of aggregates stored, or None if nothing was refreshed.
        """
        if not await self.adapter.account.is_sync_enabled():
            return None

        try:
            aggregates = await self.adapter.api.fetch_aggregates_by_url(url)
        except (APIError, httpx.RequestError) as e:
            logger.warning("[%s] Failed to refresh aggregates: %s", self.name, e)
            return None

        now = self._clock()
        items = [agg.to_highlight(now) for agg in aggregates if agg.count > 1]
        return self.store.replace_aggregates_for_url(url, items)
