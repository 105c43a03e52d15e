"""Signed-in account and cloud sync entitlement.

This module provides:
- AccountSession: Token, user id and cached subscription status
- NotAuthenticatedError: Raised when a token is required but absent

The subscription status is cached. An inactive status is re-checked at most
every 30 seconds (so a fresh purchase is picked up quickly), an active one
at most every 30 minutes.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

import httpx

from selectly.client.api import APIError, HTTPClient, NotAuthenticatedError, Subscription
from selectly.core.types import now_ms

logger = logging.getLogger(__name__)

ACTIVE_REFRESH_MS = 30 * 60 * 1000
INACTIVE_REFRESH_MS = 30 * 1000

__all__ = ["AccountSession", "NotAuthenticatedError"]


class AccountSession:
    """Credentials of the signed-in user and their entitlement."""

    def __init__(
        self,
        client: HTTPClient,
        user_id: str | None = None,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        """Initialize the session.

        Args:
            client: HTTP client carrying the bearer token.
            user_id: Id of the signed-in user, stamped as owner after upload.
            clock: Source of time for the status cache (epoch milliseconds).
        """
        self._client = client
        self._user_id = user_id
        self._clock = clock
        self._subscription: Subscription | None = None
        self._checked_at: int | None = None

    @property
    def user_id(self) -> str | None:
        return self._user_id

    @property
    def subscription(self) -> Subscription | None:
        """Last known subscription status (None before the first check)."""
        return self._subscription

    def sign_in(self, token: str, user_id: str) -> None:
        """Store credentials and drop the cached entitlement."""
        self._client.token = token
        self._user_id = user_id
        self.invalidate()

    def sign_out(self) -> None:
        """Forget credentials and the cached entitlement."""
        self._client.token = None
        self._user_id = None
        self.invalidate()

    def invalidate(self) -> None:
        """Force the next entitlement check to ask the server."""
        self._subscription = None
        self._checked_at = None

    async def is_authenticated(self) -> bool:
        """Check if a token is available."""
        return bool(self._client.token)

    async def is_subscription_active(self) -> bool:
        """Check cloud sync entitlement, refreshing the cache when stale.

        Network and server errors keep the last known status (inactive when
        nothing is known).
        """
        now = self._clock()
        cached = self._fresh_subscription(now)
        if cached is not None:
            return cached.is_active(now)

        try:
            self._subscription = await self._client.get_subscription()
            self._checked_at = now
        except NotAuthenticatedError:
            return False
        except (APIError, httpx.RequestError) as e:
            logger.warning("Subscription check failed: %s", e)
            if self._subscription is None:
                return False

        return self._subscription.is_active(now)

    def _fresh_subscription(self, now: int) -> Subscription | None:
        """Get the cached subscription if it is still within its refresh TTL."""
        subscription = self._subscription
        if subscription is None or self._checked_at is None:
            return None
        ttl = ACTIVE_REFRESH_MS if subscription.is_active(now) else INACTIVE_REFRESH_MS
        if now - self._checked_at >= ttl:
            return None
        return subscription

    async def is_sync_enabled(self) -> bool:
        """Check if cloud sync may run: signed in and subscribed."""
        if not await self.is_authenticated():
            return False
        return await self.is_subscription_active()

    def require_user_id(self) -> str:
        """Get the user id, raising if signed out.

        Raises:
            NotAuthenticatedError: If no user is signed in.
        """
        if not self._user_id:
            raise NotAuthenticatedError("Not authenticated")
        return self._user_id
