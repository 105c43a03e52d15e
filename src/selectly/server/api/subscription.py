"""Subscription API route."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from selectly.server.api.deps import get_current_user, get_db
from selectly.server.database import Database
from selectly.server.models import User
from selectly.server.schemas import SubscriptionResponse, user_to_subscription

router = APIRouter(prefix="/api", tags=["subscription"])


@router.get("/subscription", response_model=SubscriptionResponse)
def get_subscription(
    db: Database = Depends(get_db),
    user: User = Depends(get_current_user),
) -> SubscriptionResponse:
    """Get the cloud sync entitlement of the current user."""
    return user_to_subscription(user, db.is_subscription_active(user))
