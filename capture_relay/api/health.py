"""
Health check endpoints.
"""

from fastapi import APIRouter, Depends

from ..relay.service import RelayService
from .dependencies import get_relay

router = APIRouter(tags=["Health"])


@router.get("/ping")
async def ping():
    """Simple endpoint to verify server is running."""
    return {"status": "ok", "message": "pong"}


@router.get("/health")
async def health(relay: RelayService = Depends(get_relay)):
    """Detailed health check with relay status."""
    return {
        "status": "ok",
        "services": relay.status(),
    }
