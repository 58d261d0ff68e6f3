"""
Event relay for capture_relay.

Capture events are settled, then broadcast to every connected observer.
"""

from .hub import BroadcastHub
from .service import RelayService
from .session import EVENT_CONNECTED, EVENT_SEND_DATA, ObserverSession
from .settle import OverlapPolicy, PendingArtifact, SettleScheduler

__all__ = [
    "BroadcastHub",
    "EVENT_CONNECTED",
    "EVENT_SEND_DATA",
    "ObserverSession",
    "OverlapPolicy",
    "PendingArtifact",
    "RelayService",
    "SettleScheduler",
]
