"""Tests for the account session and entitlement cache."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from selectly.client.account import (
    ACTIVE_REFRESH_MS,
    INACTIVE_REFRESH_MS,
    AccountSession,
    NotAuthenticatedError,
)
from selectly.client.api import APIError, Subscription


class FakeClock:
    """Settable millisecond clock."""

    def __init__(self, now: int = 1_000_000) -> None:
        self.now = now

    def __call__(self) -> int:
        return self.now


def make_session(
    subscription: Subscription | Exception | None = None,
    token: str | None = "token123",
    user_id: str | None = "user-1",
    clock: FakeClock | None = None,
) -> tuple[AccountSession, MagicMock]:
    """Create a session over a mocked HTTP client."""
    client = MagicMock()
    client.token = token
    if isinstance(subscription, Exception):
        client.get_subscription = AsyncMock(side_effect=subscription)
    else:
        client.get_subscription = AsyncMock(
            return_value=subscription or Subscription(active=True)
        )
    session = AccountSession(client, user_id=user_id, clock=clock or FakeClock())
    return session, client


class TestCredentials:
    """Tests for sign in and sign out."""

    @pytest.mark.asyncio
    async def test_is_authenticated(self) -> None:
        """Should depend on the token only."""
        session, _ = make_session()
        assert await session.is_authenticated() is True

        anonymous, _ = make_session(token=None)
        assert await anonymous.is_authenticated() is False

    @pytest.mark.asyncio
    async def test_sign_in_sets_token_and_user(self) -> None:
        """Should update the client token and the user id."""
        session, client = make_session(token=None, user_id=None)

        session.sign_in("new-token", "user-2")

        assert client.token == "new-token"
        assert session.user_id == "user-2"
        assert await session.is_authenticated() is True

    @pytest.mark.asyncio
    async def test_sign_out_clears_everything(self) -> None:
        """Should drop token, user id and cached entitlement."""
        session, client = make_session()
        await session.is_subscription_active()

        session.sign_out()

        assert client.token is None
        assert session.user_id is None
        assert session.subscription is None
        assert await session.is_sync_enabled() is False

    def test_require_user_id(self) -> None:
        """Should raise when nobody is signed in."""
        session, _ = make_session()
        assert session.require_user_id() == "user-1"

        anonymous, _ = make_session(user_id=None)
        with pytest.raises(NotAuthenticatedError):
            anonymous.require_user_id()


class TestSubscriptionCache:
    """Tests for the entitlement cache."""

    @pytest.mark.asyncio
    async def test_active_is_cached(self) -> None:
        """Should not ask again within the active refresh window."""
        clock = FakeClock()
        session, client = make_session(clock=clock)

        assert await session.is_subscription_active() is True
        clock.now += ACTIVE_REFRESH_MS - 1
        assert await session.is_subscription_active() is True

        assert client.get_subscription.await_count == 1

        clock.now += 1
        await session.is_subscription_active()
        assert client.get_subscription.await_count == 2

    @pytest.mark.asyncio
    async def test_inactive_is_rechecked_sooner(self) -> None:
        """Should pick up a new purchase after the short window."""
        clock = FakeClock()
        session, client = make_session(Subscription(active=False), clock=clock)

        assert await session.is_subscription_active() is False
        clock.now += INACTIVE_REFRESH_MS - 1
        assert await session.is_subscription_active() is False
        assert client.get_subscription.await_count == 1

        client.get_subscription.return_value = Subscription(active=True)
        clock.now += 1
        assert await session.is_subscription_active() is True
        assert client.get_subscription.await_count == 2

    @pytest.mark.asyncio
    async def test_cached_period_lapses(self) -> None:
        """Should serve a lapsed cached period as inactive, then refresh on the short window."""
        clock = FakeClock(now=1_000_000)
        session, client = make_session(
            Subscription(active=True, period_end=1_010_000), clock=clock
        )

        assert await session.is_subscription_active() is True

        clock.now = 1_020_000
        assert await session.is_subscription_active() is False
        assert client.get_subscription.await_count == 1

        clock.now = 1_000_000 + INACTIVE_REFRESH_MS
        await session.is_subscription_active()
        assert client.get_subscription.await_count == 2

    @pytest.mark.asyncio
    async def test_expired_period(self) -> None:
        """Should treat a lapsed period end as inactive."""
        clock = FakeClock(now=5_000)
        session, _ = make_session(Subscription(active=True, period_end=4_000), clock=clock)

        assert await session.is_subscription_active() is False

    @pytest.mark.asyncio
    async def test_invalidate_forces_refresh(self) -> None:
        """Should ask the server again after invalidate()."""
        session, client = make_session()
        await session.is_subscription_active()

        session.invalidate()
        await session.is_subscription_active()

        assert client.get_subscription.await_count == 2

    @pytest.mark.asyncio
    async def test_error_without_cache_is_inactive(self) -> None:
        """Should report inactive when the first check fails."""
        session, _ = make_session(APIError("boom", 500))

        assert await session.is_subscription_active() is False

    @pytest.mark.asyncio
    async def test_network_error_keeps_last_status(self) -> None:
        """Should keep the cached status when a refresh fails."""
        clock = FakeClock()
        session, client = make_session(clock=clock)
        assert await session.is_subscription_active() is True

        client.get_subscription.side_effect = httpx.ConnectError("offline")
        clock.now += ACTIVE_REFRESH_MS

        assert await session.is_subscription_active() is True
        assert session.subscription is not None

    @pytest.mark.asyncio
    async def test_not_authenticated_is_inactive(self) -> None:
        """Should report inactive when the client has no token."""
        session, _ = make_session(NotAuthenticatedError("Not authenticated"))

        assert await session.is_subscription_active() is False


class TestSyncEnabled:
    """Tests for the sync gate."""

    @pytest.mark.asyncio
    async def test_requires_token(self) -> None:
        """Should not call the server without a token."""
        session, client = make_session(token=None)

        assert await session.is_sync_enabled() is False
        client.get_subscription.assert_not_called()

    @pytest.mark.asyncio
    async def test_requires_subscription(self) -> None:
        """Should follow the subscription status."""
        active, _ = make_session(Subscription(active=True))
        inactive, _ = make_session(Subscription(active=False))

        assert await active.is_sync_enabled() is True
        assert await inactive.is_sync_enabled() is False
