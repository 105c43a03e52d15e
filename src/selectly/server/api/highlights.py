"""Highlight aggregate API route."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from selectly.server.api.deps import get_db, require_subscription
from selectly.server.database import Database
from selectly.server.models import User
from selectly.server.schemas import (
    HighlightAggregateListResponse,
    HighlightAggregateResponse,
)

router = APIRouter(prefix="/api/highlights", tags=["highlights"])


@router.get("/aggregate", response_model=HighlightAggregateListResponse)
def get_aggregates(
    url: str = Query(..., description="Page URL."),
    db: Database = Depends(get_db),
    _user: User = Depends(require_subscription),
) -> HighlightAggregateListResponse:
    """Count highlights of each text span on a page across all users."""
    return HighlightAggregateListResponse(
        data=[HighlightAggregateResponse(**agg) for agg in db.aggregate_highlights(url)],
        timestamp=db.now(),
    )
