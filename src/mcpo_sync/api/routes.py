"""Main API routes for mcpo-sync."""

from fastapi import APIRouter

from .config import router as config_router
from .notifications import router as notifications_router
from .settings import router as settings_router

router = APIRouter()

router.include_router(config_router, tags=["config"])
router.include_router(settings_router, tags=["settings"])
router.include_router(notifications_router, tags=["notifications"])
