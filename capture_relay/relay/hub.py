"""
Broadcast hub.

Tracks live observer sessions and is the only place that pushes data
out to them. New sessions get a one-time welcome; settled artifacts are
fanned out to whoever is registered at the moment of publish.
"""

import asyncio
import logging
from typing import Optional

from ..config import BroadcastConfig, settings
from .session import EVENT_CONNECTED, EVENT_SEND_DATA, ObserverSession

logger = logging.getLogger("relay.relay.hub")


class BroadcastHub:
    """Registry of observer sessions keyed by session id."""

    def __init__(self, config: Optional[BroadcastConfig] = None):
        self._config = config or settings.broadcast
        self._sessions: dict[str, ObserverSession] = {}
        self._total_published = 0
        self._total_failed_sends = 0

    @property
    def session_count(self) -> int:
        return len(self._sessions)

    def sessions(self) -> list[ObserverSession]:
        """Snapshot of registered sessions."""
        return list(self._sessions.values())

    def is_registered(self, session: ObserverSession) -> bool:
        return session.session_id in self._sessions

    @property
    def stats(self) -> dict:
        return {
            "sessions": len(self._sessions),
            "observers": [s.to_dict() for s in self._sessions.values()],
            "total_published": self._total_published,
            "total_failed_sends": self._total_failed_sends,
        }

    async def register_session(self, session: ObserverSession) -> bool:
        """
        Welcome a new session and add it to the registry.

        Registering an id that is already present does nothing, so a
        session is never welcomed twice.

        Returns:
            True if the session is registered after the call
        """
        if session.session_id in self._sessions:
            logger.debug("Session %s already registered", session.session_id[:8])
            return True

        if not await session.send(EVENT_CONNECTED, self._config.welcome_message):
            logger.info("Session %s dropped before welcome", session.session_id[:8])
            return False

        self._sessions[session.session_id] = session
        logger.info(
            "Observer connected: %s (active: %d)",
            session.session_id[:8], len(self._sessions),
        )
        return True

    def unregister_session(self, session: ObserverSession) -> None:
        """Remove a session. Unknown sessions are ignored."""
        session.mark_closed()
        if self._sessions.pop(session.session_id, None) is not None:
            logger.info(
                "Observer disconnected: %s (active: %d)",
                session.session_id[:8], len(self._sessions),
            )

    async def publish(self, artifact_id: str) -> int:
        """
        Send ``sendData`` with ``artifact_id`` to every registered session.

        Membership is snapshotted first; sessions joining during the
        fan-out are not included. Each send runs independently with its
        own timeout; sessions whose send fails are unregistered and
        their sockets closed.

        Returns:
            Number of sessions that received the artifact
        """
        targets = list(self._sessions.values())
        self._total_published += 1
        if not targets:
            logger.info("Artifact %s ready, no observers connected", artifact_id)
            return 0

        results = await asyncio.gather(
            *(self._deliver(session, artifact_id) for session in targets),
            return_exceptions=True,
        )

        delivered = 0
        for session, ok in zip(targets, results):
            if ok is True:
                delivered += 1
            else:
                self._total_failed_sends += 1
                await self._drop(session, code=1011)

        logger.info("Published %s to %d/%d observers", artifact_id, delivered, len(targets))
        return delivered

    async def _deliver(self, session: ObserverSession, artifact_id: str) -> bool:
        try:
            return await asyncio.wait_for(
                session.send(EVENT_SEND_DATA, artifact_id),
                timeout=self._config.send_timeout,
            )
        except asyncio.TimeoutError:
            logger.warning("Send to %s timed out", session.session_id[:8])
            return False

    async def _drop(self, session: ObserverSession, code: int) -> None:
        """Unregister a session and close its socket so the client reconnects."""
        self.unregister_session(session)
        try:
            await session.websocket.close(code=code)
        except Exception as e:
            logger.debug("Error closing %s: %s", session.session_id[:8], e)

    async def close_all(self) -> None:
        """Close every registered socket (shutdown)."""
        for session in self.sessions():
            await self._drop(session, code=1001)
