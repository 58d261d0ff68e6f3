"""
Capture event models.

A CaptureEvent is what the capture source reports once per cycle.
"""

import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional


def artifact_id_for(when: Optional[float] = None, extension: str = "jpg") -> str:
    """Derive an artifact identifier from a capture time (epoch milliseconds)."""
    if when is None:
        when = time.time()
    return f"{int(when * 1000)}.{extension}"


@dataclass
class CaptureEvent:
    """Completion signal for a single capture cycle."""
    artifact_id: str
    path: Optional[Path] = None
    failure: Optional[str] = None
    captured_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def failed(self) -> bool:
        return self.failure is not None

    def to_dict(self) -> dict:
        return {
            "artifact_id": self.artifact_id,
            "path": str(self.path) if self.path else None,
            "failure": self.failure,
            "captured_at": self.captured_at.isoformat(),
        }
