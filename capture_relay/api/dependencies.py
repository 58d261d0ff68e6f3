"""
FastAPI dependencies for service injection.
"""

from fastapi import HTTPException, Request, status

from ..relay.service import RelayService


def get_relay(request: Request) -> RelayService:
    """
    FastAPI dependency that provides the running relay service.

    Raises:
        HTTPException: 503 if the relay has not been started
    """
    relay = getattr(request.app.state, "relay", None)
    if relay is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Relay service is not running.",
        )
    return relay
