"""Shared types for selectly.

This module defines types and enums used by both client and server:
- SyncOperation: kind of pending local mutation
- HasId, HasUpdatedAt, HasTombstone: capabilities a syncable item exposes
- now_ms: wall-clock time in epoch milliseconds
"""

from __future__ import annotations

import time
from enum import Enum
from typing import Protocol, runtime_checkable


class SyncOperation(str, Enum):
    """Operation recorded in the mutation queue for an item."""

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class SyncResource(str, Enum):
    """Remote collections served by the backend.

    Values are the path segment under /api.
    """

    COLLECT = "collect"
    DICTIONARY = "dictionary"
    HIGHLIGHTS = "highlights"


@runtime_checkable
class HasId(Protocol):
    """Item carrying a client-assigned identifier."""

    id: str | None


@runtime_checkable
class HasUpdatedAt(Protocol):
    """Item carrying its last mutation time (epoch milliseconds)."""

    updated_at: int | None


@runtime_checkable
class HasTombstone(Protocol):
    """Item that can be soft-deleted."""

    deleted_at: int | None


class SyncItem(HasId, HasUpdatedAt, HasTombstone, Protocol):
    """Everything the sync engine needs from an item."""


def now_ms() -> int:
    """Get current time in milliseconds since epoch."""
    return int(time.time() * 1000)
