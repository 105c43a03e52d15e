"""Core module - Shared configuration and types."""

from selectly.core.config import DEFAULT_SYNC_INTERVAL, ServerConfig, SyncSettings
from selectly.core.types import (
    HasId,
    HasTombstone,
    HasUpdatedAt,
    SyncItem,
    SyncOperation,
    SyncResource,
    now_ms,
)

__all__ = [
    # Config
    "DEFAULT_SYNC_INTERVAL",
    "ServerConfig",
    "SyncSettings",
    # Types
    "HasId",
    "HasTombstone",
    "HasUpdatedAt",
    "SyncItem",
    "SyncOperation",
    "SyncResource",
    "now_ms",
]
