"""Main API router that includes all sub-routers."""

from __future__ import annotations

from fastapi import APIRouter

from selectly.server.api import health, highlights, items, subscription

router = APIRouter()

# Include all API routers
router.include_router(health.router)
router.include_router(subscription.router)
router.include_router(highlights.router)
router.include_router(items.router)
