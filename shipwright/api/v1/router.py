"""Main router for API v1."""

from fastapi import APIRouter

from shipwright.api.v1 import health, monitoring

router = APIRouter(prefix="/v1")

# Include sub-routers
router.include_router(health.router, tags=["health"])
router.include_router(monitoring.router, prefix="/monitoring", tags=["monitoring"])
