"""
Camera capture source for capture_relay.

Produces one CaptureEvent per poll interval.
"""

from .exceptions import CaptureCommandError, CaptureError, CaptureTimeoutError
from .models import CaptureEvent, artifact_id_for
from .source import CaptureSource

__all__ = [
    "CaptureCommandError",
    "CaptureError",
    "CaptureEvent",
    "CaptureSource",
    "CaptureTimeoutError",
    "artifact_id_for",
]
