"""
Relay service: capture source -> settle scheduler -> broadcast hub.

One instance is created at application startup and handed to the web
layer through ``app.state.relay``.
"""

import logging
from typing import Any, Optional

from ..capture.source import CaptureSource
from ..config import Settings, settings as default_settings
from .hub import BroadcastHub
from .settle import SettleScheduler

logger = logging.getLogger("relay.relay.service")


class RelayService:
    """Owns and wires the relay components."""

    def __init__(
        self,
        config: Optional[Settings] = None,
        *,
        source: Optional[CaptureSource] = None,
        hub: Optional[BroadcastHub] = None,
        scheduler: Optional[SettleScheduler] = None,
    ):
        self.config = config or default_settings
        self.hub = hub or BroadcastHub(self.config.broadcast)
        self.scheduler = scheduler or SettleScheduler(self.hub.publish, self.config.settle)
        self.source = source or CaptureSource(self.config.capture)

        self.source.register_request_callback(self.scheduler.expect)
        self.source.register_event_callback(self.scheduler.on_capture_event)
        self.source.register_keep_callback(self.scheduler.in_flight)

    async def start(self) -> bool:
        """Start the capture loop if enabled."""
        if not self.config.capture.enabled:
            logger.info("Capture disabled, relay running without a source")
            return False
        started = await self.source.start()
        if not started:
            logger.warning("Capture source failed to start")
        return started

    async def stop(self) -> None:
        """Stop capturing, drop pending artifacts and close observers."""
        await self.source.stop()
        await self.scheduler.shutdown()
        await self.hub.close_all()
        logger.info("Relay stopped")

    def status(self) -> dict[str, Any]:
        return {
            "capture": self.source.stats,
            "settle": self.scheduler.stats,
            "broadcast": self.hub.stats,
        }
