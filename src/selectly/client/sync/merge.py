"""Last-write-wins merge decision.

Compares a remote item with its local copy using only their update
timestamps and tombstones:

| Local          | Timestamps          | Action          |
|----------------|---------------------|-----------------|
| absent         | -                   | ACCEPT_REMOTE   |
| any            | remote > local      | ACCEPT_REMOTE   |
| deleted        | remote < local      | REQUEUE_DELETE  |
| not deleted    | remote < local      | REQUEUE_UPDATE  |
| not deleted    | equal, remote dead  | ACCEPT_REMOTE   |
| deleted        | equal, remote alive | REQUEUE_DELETE  |
| -              | equal, same state   | NONE            |

Pure logic: no I/O, no suspension points.
"""

from __future__ import annotations

from selectly.client.sync.types import MergeAction


def decide_merge(
    local_updated_at: int | None,
    local_deleted: bool,
    remote_updated_at: int,
    remote_deleted: bool,
) -> MergeAction:
    """Decide how to reconcile one remote item with local state.

    Args:
        local_updated_at: Update time of the local copy (None if absent).
        local_deleted: Whether the local copy is a tombstone.
        remote_updated_at: Update time of the remote item.
        remote_deleted: Whether the remote item is a tombstone.

    Returns:
        The merge action to apply.
    """
    if local_updated_at is None:
        return MergeAction.ACCEPT_REMOTE

    if remote_updated_at > local_updated_at:
        return MergeAction.ACCEPT_REMOTE

    if remote_updated_at < local_updated_at:
        return MergeAction.REQUEUE_DELETE if local_deleted else MergeAction.REQUEUE_UPDATE

    # Same instant: a tombstone beats a live record
    if remote_deleted and not local_deleted:
        return MergeAction.ACCEPT_REMOTE
    if local_deleted and not remote_deleted:
        return MergeAction.REQUEUE_DELETE
    return MergeAction.NONE
