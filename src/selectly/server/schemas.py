"""Pydantic schemas for API request/response models."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from selectly.server.models import SyncedRecord, User

# === Sync schemas ===


class BatchUploadRequest(BaseModel):
    """Request body for a batch upload."""

    items: list[dict[str, Any]] = Field(default_factory=list)


class FailedItemResponse(BaseModel):
    """An item the server rejected."""

    id: str | None
    error: str


class BatchUploadData(BaseModel):
    """Per-item outcome of a batch upload."""

    synced: list[str]
    failed: list[FailedItemResponse]


class BatchUploadResponse(BaseModel):
    """Response for a batch upload."""

    success: bool
    data: BatchUploadData


class FetchResponse(BaseModel):
    """Records changed since a watermark."""

    data: list[dict[str, Any]]
    timestamp: int


# === Highlight aggregate schemas ===


class HighlightAggregateResponse(BaseModel):
    """Highlights of one text span on a page, counted across users."""

    aggregate_id: str
    url: str
    hostname: str
    title: str
    text: str
    anchor: dict[str, Any] | None = None
    count: int
    updated_at: int | None = None


class HighlightAggregateListResponse(BaseModel):
    """Aggregates of one page."""

    data: list[HighlightAggregateResponse]
    timestamp: int


# === Account schemas ===


class SubscriptionResponse(BaseModel):
    """Cloud sync entitlement of the current user."""

    active: bool
    period_end: int | None = None
    plan: str | None = None


# === Health schemas ===


class HealthResponse(BaseModel):
    """Health check response."""

    status: str


# === Helper functions ===


def record_to_item(record: SyncedRecord) -> dict[str, Any]:
    """Convert a stored record to its wire form."""
    item = dict(record.payload)
    item["id"] = record.id
    item["user_id"] = record.user_id
    item["updated_at"] = record.updated_at
    item["deleted_at"] = record.deleted_at
    return item


def user_to_subscription(user: User, active: bool) -> SubscriptionResponse:
    """Convert a user to their subscription response."""
    return SubscriptionResponse(active=active, period_end=user.period_end, plan=user.plan)
