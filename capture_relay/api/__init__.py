"""
API routers for Capture Relay.
"""

from fastapi import APIRouter

from .health import router as health_router
from .websocket import router as websocket_router

# JSON endpoints, mounted under /api/v1
router = APIRouter()

router.include_router(health_router)

__all__ = ["router", "websocket_router"]
