"""Batch upload and incremental fetch routes for synced resources."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Query

from selectly.core.types import SyncResource
from selectly.server.api.deps import get_db, require_subscription
from selectly.server.database import Database
from selectly.server.models import User
from selectly.server.schemas import (
    BatchUploadData,
    BatchUploadRequest,
    BatchUploadResponse,
    FailedItemResponse,
    FetchResponse,
    record_to_item,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["sync"])


@router.post("/{resource}/batch", response_model=BatchUploadResponse)
def batch_upload(
    resource: SyncResource,
    request: BatchUploadRequest,
    db: Database = Depends(get_db),
    user: User = Depends(require_subscription),
) -> BatchUploadResponse:
    """Store a batch of items.

    Each item is accepted or rejected on its own; the response lists both.
    """
    result = db.upsert_records(resource, user.id, request.items)
    if result.failed:
        logger.info(
            "[%s] User %s: %d synced, %d failed",
            resource.value,
            user.id,
            len(result.synced),
            len(result.failed),
        )
    return BatchUploadResponse(
        success=True,
        data=BatchUploadData(
            synced=result.synced,
            failed=[
                FailedItemResponse(id=item_id, error=error) for item_id, error in result.failed
            ],
        ),
    )


@router.get("/{resource}", response_model=FetchResponse)
def incremental_fetch(
    resource: SyncResource,
    since: int | None = Query(
        default=None,
        ge=0,
        description="Epoch milliseconds. Omit to fetch everything.",
    ),
    db: Database = Depends(get_db),
    user: User = Depends(require_subscription),
) -> FetchResponse:
    """Get the user's records written at or after a watermark.

    Tombstones are included so deletions reach every device.
    """
    timestamp = db.now()
    records = db.get_records_since(resource, user.id, since)
    return FetchResponse(data=[record_to_item(r) for r in records], timestamp=timestamp)
