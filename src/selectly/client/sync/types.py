"""Shared types and dataclasses for sync operations.

This module provides:
- SyncError, UploadError: Exception classes
- QueueEntry: One pending mutation in the queue
- SyncState: Persisted progress of one sync domain
- FailedItem, UploadResponse: Result of a batch upload
- FetchResponse: Result of a remote fetch
- MergeAction: Outcome of the last-write-wins comparison
- SyncReport: Counters for one completed cycle
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Any, Generic, TypeVar

from selectly.core.types import SyncOperation

ItemT = TypeVar("ItemT")


class SyncError(Exception):
    """Base exception for sync errors."""


class UploadError(SyncError):
    """The batch upload call failed as a whole."""


@dataclass
class QueueEntry:
    """A pending local mutation waiting to be uploaded.

    Attributes:
        id: Queue-local autoincrement id (unrelated to the item id).
        item_id: Id of the item the mutation applies to.
        operation: Kind of mutation.
        timestamp: Enqueue time in epoch milliseconds, used only for ordering.
        retry_count: Number of failed upload attempts.
        last_error: Error message of the last failed attempt.
    """

    id: int
    item_id: str
    operation: SyncOperation
    timestamp: int
    retry_count: int = 0
    last_error: str | None = None

    def __repr__(self) -> str:
        """Human-readable representation."""
        return (
            f"QueueEntry({self.operation.value}, "
            f"item_id={self.item_id!r}, "
            f"retries={self.retry_count})"
        )


@dataclass
class SyncState:
    """Progress of one sync domain.

    Attributes:
        last_sync_time: Watermark for incremental fetch (epoch milliseconds).
        syncing: True while a cycle runs. Never persisted as True.
        last_error: Message of the last failed cycle, cleared on success.
    """

    last_sync_time: int = 0
    syncing: bool = False
    last_error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Serialize for persistence (syncing is always stored as False)."""
        return {
            "last_sync_time": self.last_sync_time,
            "syncing": False,
            "last_error": self.last_error,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SyncState:
        """Create from persisted dictionary."""
        return cls(
            last_sync_time=int(data.get("last_sync_time") or 0),
            syncing=False,
            last_error=data.get("last_error"),
        )


@dataclass
class FailedItem:
    """An item the server rejected during a batch upload."""

    id: str
    error: str


@dataclass
class UploadResponse:
    """Result of one batch upload call."""

    synced: list[str] = field(default_factory=list)
    failed: list[FailedItem] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> UploadResponse:
        """Create from API response dictionary.

        Accepts both the enveloped form ``{"data": {...}}`` and the bare form.
        """
        payload = data.get("data", data) or {}
        return cls(
            synced=[str(item_id) for item_id in payload.get("synced") or []],
            failed=[
                FailedItem(id=str(entry["id"]), error=str(entry.get("error", "")))
                for entry in payload.get("failed") or []
                if entry.get("id") is not None
            ],
        )


@dataclass
class FetchResponse(Generic[ItemT]):
    """Result of a remote fetch.

    Attributes:
        items: Remote items changed at or after the requested watermark.
        timestamp: Server time of the response (epoch milliseconds), if sent.
    """

    items: list[ItemT] = field(default_factory=list)
    timestamp: int | None = None


class MergeAction(Enum):
    """What to do with one remote item during merge."""

    ACCEPT_REMOTE = auto()  # Remote wins, upsert it locally
    REQUEUE_UPDATE = auto()  # Local is newer, upload it again
    REQUEUE_DELETE = auto()  # Local tombstone is newer or wins the tie
    NONE = auto()  # Identical, nothing to do


@dataclass
class SyncReport:
    """Counters for one completed sync cycle."""

    uploaded: int = 0
    failed: int = 0
    dropped: int = 0
    downloaded: int = 0
    requeued: int = 0
    skipped: int = 0

    @property
    def has_failures(self) -> bool:
        """Check if some items were rejected by the server."""
        return self.failed > 0
