"""Generic offline-first sync engine.

Architecture:
    local mutation → MutationQueue → SyncCore → SyncAdapter → remote API

Components:
- **MutationQueue**: Persistent queue holding at most one pending operation
  per item
- **SyncAdapter**: Contract binding the engine to one entity type
- **SyncCore**: Runs upload, download and merge cycles for one adapter
- **decide_merge**: Last-write-wins with tombstone precedence on ties

All public symbols are re-exported here.
"""

from selectly.client.sync.adapter import SyncAdapter
from selectly.client.sync.engine import SyncCore
from selectly.client.sync.merge import decide_merge
from selectly.client.sync.queue import MutationQueue
from selectly.client.sync.types import (
    FailedItem,
    FetchResponse,
    MergeAction,
    QueueEntry,
    SyncError,
    SyncReport,
    SyncState,
    UploadError,
    UploadResponse,
)

__all__ = [
    # Types and dataclasses
    "FailedItem",
    "FetchResponse",
    "MergeAction",
    "QueueEntry",
    "SyncError",
    "SyncReport",
    "SyncState",
    "UploadError",
    "UploadResponse",
    # Engine
    "MutationQueue",
    "SyncAdapter",
    "SyncCore",
    "decide_merge",
]
