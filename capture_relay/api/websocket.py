"""
Observer WebSocket endpoint.

Protocol:
  Server -> Client:
    {"event": "connected", "data": "<greeting>"}   once, on connect
    {"event": "sendData",  "data": "<artifact_id>"} each settled capture
    {"event": "pong",      "data": null}            reply to "ping"

  Client -> Server:
    "ping" keepalive; anything else is ignored.
"""

import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from ..relay.session import EVENT_PONG, ObserverSession

logger = logging.getLogger("relay.api.websocket")

router = APIRouter(prefix="/ws", tags=["observer"])


@router.websocket("/observe")
async def observer_websocket(websocket: WebSocket):
    """Register the connection as an observer until it disconnects."""
    relay = getattr(websocket.app.state, "relay", None)
    if relay is None:
        await websocket.close(code=1013, reason="Relay not running")
        return

    await websocket.accept()
    session = ObserverSession(websocket)
    hub = relay.hub

    try:
        if not await hub.register_session(session):
            return

        while True:
            message = await websocket.receive_text()
            if message.strip().lower() == "ping":
                if not await session.send(EVENT_PONG, None):
                    break
            else:
                logger.debug("Ignoring message from %s", session.session_id[:8])

    except WebSocketDisconnect:
        logger.debug("Observer %s closed the socket", session.session_id[:8])
    except Exception as e:
        logger.exception("Observer session error: %s", e)
    finally:
        hub.unregister_session(session)
