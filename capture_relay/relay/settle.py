"""
Settle scheduler.

Sits between the capture source and the broadcast hub. A capture that
reports completion may still be finishing its write on the device, so a
matched artifact is only published after a fixed settle delay.

Overlap handling is explicit (see OverlapPolicy):
- queue:   every matched artifact is published, in arrival order
- replace: a newer artifact cancels the one being timed
"""

import asyncio
import logging
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

from ..capture.models import CaptureEvent
from ..config import SettleConfig, settings

logger = logging.getLogger("relay.relay.settle")

PublishFn = Callable[[str], Awaitable[Any]]


class OverlapPolicy(str, Enum):
    """What to do with a new artifact while another is being timed."""
    QUEUE = "queue"
    REPLACE = "replace"


@dataclass
class PendingArtifact:
    """An artifact waiting out its settle delay."""
    artifact_id: str
    received_at: float  # event loop time of the matching event


class SettleScheduler:
    """
    Delays matched capture events before handing them to ``publish``.

    Failed events and events for an artifact other than the expected one
    never reach ``publish``.
    """

    def __init__(
        self,
        publish: PublishFn,
        config: Optional[SettleConfig] = None,
        *,
        delay: Optional[float] = None,
        policy: Optional[OverlapPolicy | str] = None,
    ):
        config = config or settings.settle
        self._publish = publish
        self._delay = config.delay if delay is None else delay
        self._policy = OverlapPolicy(policy or config.overlap_policy)

        self._expected: Optional[str] = None
        self._pending: Optional[PendingArtifact] = None
        self._queue: deque[PendingArtifact] = deque()
        self._timer_task: Optional[asyncio.Task] = None
        self._publishing = False

        self._total_received = 0
        self._total_ignored = 0
        self._total_failed = 0
        self._total_replaced = 0
        self._total_published = 0

    # -- Public API -------------------------------------------------------

    @property
    def delay(self) -> float:
        return self._delay

    @property
    def policy(self) -> OverlapPolicy:
        return self._policy

    @property
    def expected(self) -> Optional[str]:
        return self._expected

    @property
    def pending(self) -> Optional[PendingArtifact]:
        return self._pending

    @property
    def stats(self) -> dict[str, Any]:
        """Return scheduler statistics."""
        return {
            "delay": self._delay,
            "policy": self._policy.value,
            "expected": self._expected,
            "pending": self._pending.artifact_id if self._pending else None,
            "queued": [a.artifact_id for a in self._queue],
            "total_received": self._total_received,
            "total_ignored": self._total_ignored,
            "total_failed": self._total_failed,
            "total_replaced": self._total_replaced,
            "total_published": self._total_published,
        }

    def in_flight(self) -> list[str]:
        """Artifacts that are settling or queued and must stay on disk."""
        ids = [a.artifact_id for a in self._queue]
        if self._pending is not None:
            ids.append(self._pending.artifact_id)
        return ids

    def expect(self, artifact_id: str) -> None:
        """Set the artifact the next completion signal should be for."""
        self._expected = artifact_id

    async def on_capture_event(self, event: CaptureEvent) -> bool:
        """
        Handle a completion signal from the capture source.

        Returns:
            True if a settle timer was started or the artifact was queued
        """
        self._total_received += 1

        if event.failed:
            self._total_failed += 1
            logger.warning("Capture %s failed: %s", event.artifact_id, event.failure)
            return False

        if event.artifact_id != self._expected:
            self._total_ignored += 1
            logger.debug(
                "Ignoring capture %s (expecting %s)", event.artifact_id, self._expected
            )
            return False

        if self._is_tracked(event.artifact_id):
            logger.debug("Capture %s already settling", event.artifact_id)
            return False

        artifact = PendingArtifact(
            artifact_id=event.artifact_id,
            received_at=asyncio.get_running_loop().time(),
        )

        if self._pending is None:
            self._start(artifact)
        elif self._policy is OverlapPolicy.REPLACE:
            if self._publishing:
                # Current artifact is already going out; keep only the newest next.
                self._total_replaced += len(self._queue)
                self._queue.clear()
                self._queue.append(artifact)
            else:
                self._cancel_timer()
                self._total_replaced += 1
                logger.info(
                    "Artifact %s replaced by %s before settling",
                    self._pending.artifact_id, artifact.artifact_id,
                )
                self._start(artifact)
        else:
            self._queue.append(artifact)
            logger.debug("Queued %s behind %s", artifact.artifact_id, self._pending.artifact_id)

        return True

    async def shutdown(self) -> None:
        """Cancel the pending timer and drop queued artifacts."""
        self._queue.clear()
        task = self._timer_task
        self._cancel_timer()
        if task is not None:
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._pending = None

    # -- Internal ---------------------------------------------------------

    def _is_tracked(self, artifact_id: str) -> bool:
        if self._pending is not None and self._pending.artifact_id == artifact_id:
            return True
        return any(a.artifact_id == artifact_id for a in self._queue)

    def _start(self, artifact: PendingArtifact) -> None:
        self._pending = artifact
        self._timer_task = asyncio.create_task(
            self._settle(artifact), name=f"settle-{artifact.artifact_id}"
        )
        logger.debug("Settling %s for %.1fs", artifact.artifact_id, self._delay)

    def _cancel_timer(self) -> None:
        if self._timer_task and not self._timer_task.done():
            self._timer_task.cancel()
        self._timer_task = None

    async def _settle(self, artifact: PendingArtifact) -> None:
        """Wait out the delay from receipt, publish, then start the next one."""
        loop = asyncio.get_running_loop()
        deadline = artifact.received_at + self._delay
        remaining = deadline - loop.time()
        while remaining > 0:
            await asyncio.sleep(remaining)
            remaining = deadline - loop.time()

        self._publishing = True
        try:
            await self._publish(artifact.artifact_id)
            self._total_published += 1
            logger.info("Artifact %s settled and published", artifact.artifact_id)
        except Exception as e:
            logger.error("Publish of %s failed: %s", artifact.artifact_id, e)
        finally:
            self._publishing = False
            self._pending = None
            self._timer_task = None

        if self._queue:
            self._start(self._queue.popleft())
