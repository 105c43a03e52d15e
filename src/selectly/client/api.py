"""HTTP client for the Selectly sync API.

This module provides:
- HTTPClient: Async HTTP client with bearer auth and error mapping
- ResourceAPI: Batch upload and incremental fetch for one resource
- HighlightAPI: ResourceAPI with per-page highlight aggregates
- Subscription: Entitlement returned by the server

Wire format:
    POST /api/<resource>/batch   {"items": [...]}
        -> {"success": true, "data": {"synced": [id], "failed": [{id, error}]}}
    GET  /api/<resource>?since=<ms>
        -> {"data": [item], "timestamp": <ms>}
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

import httpx

from selectly.client.models import HighlightAggregate, HighlightItem
from selectly.client.sync.types import FetchResponse, UploadResponse
from selectly.core.config import ServerConfig
from selectly.core.types import SyncResource, now_ms

logger = logging.getLogger(__name__)

ItemT = TypeVar("ItemT")


class APIError(Exception):
    """Base exception for API errors."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class AuthenticationError(APIError):
    """Authentication failed."""


class NotAuthenticatedError(AuthenticationError):
    """No token is available for an authenticated request."""


class ForbiddenError(APIError):
    """Authenticated but not allowed (e.g. no active subscription)."""


class NotFoundError(APIError):
    """Resource not found."""


@dataclass
class Subscription:
    """Cloud sync entitlement of the current user."""

    active: bool
    period_end: int | None = None
    plan: str | None = None

    def is_active(self, now: int | None = None) -> bool:
        """Check entitlement, treating a past period end as expired."""
        if not self.active:
            return False
        if self.period_end is None:
            return True
        return self.period_end > (now if now is not None else now_ms())

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Subscription:
        """Create from API response dictionary."""
        payload = data.get("data", data) or {}
        period_end = payload.get("period_end")
        return cls(
            active=bool(payload.get("active")),
            period_end=int(period_end) if period_end is not None else None,
            plan=payload.get("plan"),
        )


class HTTPClient:
    """Async HTTP client for the Selectly server."""

    def __init__(
        self,
        config: ServerConfig,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            config: Server URL, token and timeouts.
            transport: Custom transport (tests use httpx.MockTransport).
        """
        self._config = config
        self.token = config.token or None
        self._client = httpx.AsyncClient(
            base_url=config.server_url,
            timeout=config.timeout,
            verify=config.verify_ssl,
            transport=transport,
        )

    @property
    def server_url(self) -> str:
        return self._config.server_url

    async def close(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()

    async def __aenter__(self) -> HTTPClient:
        """Async context manager entry."""
        return self

    async def __aexit__(self, *args: object) -> None:
        """Async context manager exit."""
        await self.close()

    def _auth_headers(self) -> dict[str, str]:
        if not self.token:
            raise NotAuthenticatedError("Not authenticated")
        return {"Authorization": f"Bearer {self.token}"}

    @staticmethod
    def _detail(response: httpx.Response, default: str) -> str:
        try:
            detail = response.json().get("detail", default)
        except ValueError:
            return response.text or default
        return str(detail)

    def _handle_response(self, response: httpx.Response) -> httpx.Response:
        """Handle API response and raise appropriate exceptions."""
        if response.status_code == 401:
            raise AuthenticationError("Invalid or expired token", 401)
        if response.status_code == 403:
            raise ForbiddenError(self._detail(response, "Forbidden"), 403)
        if response.status_code == 404:
            raise NotFoundError("Resource not found", 404)
        if response.status_code >= 400:
            raise APIError(
                self._detail(response, "Unknown error"), response.status_code
            )
        return response

    async def request(self, method: str, path: str, **kwargs: Any) -> Any:
        """Send an authenticated request and decode the JSON body.

        Raises:
            NotAuthenticatedError: If no token is set.
            APIError: On an error status.
            httpx.RequestError: On network failure.
        """
        response = await self._client.request(
            method, path, headers=self._auth_headers(), **kwargs
        )
        return self._handle_response(response).json()

    # === Health check ===

    async def health_check(self) -> bool:
        """Check if the server is healthy.

        Returns:
            True if server is healthy.
        """
        try:
            response = await self._client.get("/health")
            return response.status_code == 200
        except httpx.RequestError:
            return False

    # === Account ===

    async def get_subscription(self) -> Subscription:
        """Get the cloud sync entitlement of the current user."""
        return Subscription.from_dict(await self.request("GET", "/api/subscription"))


class ResourceAPI(Generic[ItemT]):
    """Batch upload and incremental fetch for one resource."""

    def __init__(
        self,
        client: HTTPClient,
        resource: SyncResource,
        parse: Callable[[dict[str, Any]], ItemT],
        serialize: Callable[[ItemT], dict[str, Any]],
    ) -> None:
        """Initialize the resource API.

        Args:
            client: Shared HTTP client.
            resource: Resource name in the URL path.
            parse: Builds an item from a server record.
            serialize: Builds a server record from an item.
        """
        self._client = client
        self.resource = SyncResource(resource)
        self._parse = parse
        self._serialize = serialize

    @property
    def path(self) -> str:
        return f"/api/{self.resource.value}"

    async def batch_upload(self, items: list[ItemT]) -> UploadResponse:
        """Upload items in one call.

        Returns:
            Ids the server stored and ids it rejected with a reason.
        """
        data = await self._client.request(
            "POST",
            f"{self.path}/batch",
            json={"items": [self._serialize(item) for item in items]},
        )
        result = UploadResponse.from_dict(data)
        logger.debug(
            "[%s] Batch upload: %d synced, %d failed",
            self.resource.value,
            len(result.synced),
            len(result.failed),
        )
        return result

    async def incremental_fetch(self, since: int | None = None) -> FetchResponse[ItemT]:
        """Fetch records changed at or after a watermark.

        Args:
            since: Watermark in epoch milliseconds (None fetches everything).
        """
        params = {"since": str(since)} if since is not None else None
        data = await self._client.request("GET", self.path, params=params)
        return FetchResponse(
            items=self._parse_items(data.get("data", data.get("items")) or []),
            timestamp=data.get("timestamp"),
        )

    async def fetch_all(self) -> FetchResponse[ItemT]:
        """Fetch every record of the user, tombstones included."""
        return await self.incremental_fetch(None)

    def _parse_items(self, records: list[Any]) -> list[ItemT]:
        items: list[ItemT] = []
        for record in records:
            try:
                items.append(self._parse(record))
            except (KeyError, TypeError, ValueError, AttributeError) as e:
                logger.warning(
                    "[%s] Skipping malformed record: %s", self.resource.value, e
                )
        return items


class HighlightAPI(ResourceAPI[HighlightItem]):
    """Highlight resource with aggregates of other users' highlights."""

    def __init__(self, client: HTTPClient) -> None:
        super().__init__(
            client,
            SyncResource.HIGHLIGHTS,
            HighlightItem.from_wire,
            HighlightItem.to_wire,
        )

    async def fetch_aggregates_by_url(self, url: str) -> list[HighlightAggregate]:
        """Fetch per-text highlight counts of a page across all users."""
        data = await self._client.request(
            "GET", f"{self.path}/aggregate", params={"url": url}
        )
        aggregates: list[HighlightAggregate] = []
        for record in data.get("data") or []:
            try:
                aggregates.append(HighlightAggregate.from_wire(record))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning("[highlights] Skipping malformed aggregate: %s", e)
        return aggregates
