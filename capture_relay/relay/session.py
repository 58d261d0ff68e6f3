"""
Observer session: one connected WebSocket client.
"""

import asyncio
import logging
import time
from typing import Any
from uuid import uuid4

from fastapi import WebSocket

logger = logging.getLogger("relay.relay.session")

# Server -> client message names
EVENT_CONNECTED = "connected"
EVENT_SEND_DATA = "sendData"
EVENT_PONG = "pong"


class ObserverSession:
    """Represents a single observer connection."""

    def __init__(self, websocket: WebSocket, session_id: str | None = None):
        self.websocket = websocket
        self.session_id = session_id or uuid4().hex
        self.connected_at = time.time()
        self.messages_sent = 0
        self._send_lock = asyncio.Lock()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def mark_closed(self) -> None:
        self._closed = True

    async def send(self, event: str, data: Any) -> bool:
        """
        Send one ``{"event", "data"}`` frame.

        Writes are serialised per session so concurrent publishes do not
        interleave on the Starlette socket. A failed write marks the
        session closed.

        Returns:
            True if the frame was written
        """
        if self._closed:
            return False
        async with self._send_lock:
            try:
                await self.websocket.send_json({"event": event, "data": data})
            except Exception as e:
                logger.debug("Send to %s failed: %s", self.session_id[:8], e)
                self._closed = True
                return False
        self.messages_sent += 1
        return True

    def to_dict(self) -> dict[str, Any]:
        return {
            "session_id": self.session_id,
            "connected_at": self.connected_at,
            "messages_sent": self.messages_sent,
        }
