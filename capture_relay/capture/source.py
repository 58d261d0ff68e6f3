"""
Periodic still-capture source.

Runs the configured capture command once per poll interval and reports
each cycle as a CaptureEvent to the registered callbacks.
"""

import asyncio
import logging
import time
from pathlib import Path
from typing import Awaitable, Callable, Iterable, Optional

from ..config import CaptureConfig, settings
from .exceptions import CaptureCommandError, CaptureError, CaptureTimeoutError
from .models import CaptureEvent, artifact_id_for

logger = logging.getLogger("relay.capture.source")


# Callback type aliases
RequestCallback = Callable[[str], None]
KeepCallback = Callable[[], Iterable[str]]
EventCallback = Callable[[CaptureEvent], Awaitable[None]]


class CaptureSource:
    """
    Timed capture loop for a single camera.

    Each cycle:
    - derives the artifact id from the current time
    - tells request callbacks which artifact is about to be written
    - runs the capture command and prunes old captures
    - dispatches the resulting CaptureEvent (failed or not) to event callbacks
    """

    def __init__(
        self,
        config: Optional[CaptureConfig] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.config = config or settings.capture
        self._clock = clock

        self._running = False
        self._poll_task: Optional[asyncio.Task] = None

        self._request_callbacks: list[RequestCallback] = []
        self._event_callbacks: list[EventCallback] = []
        self._keep_callbacks: list[KeepCallback] = []

        self._last_event: Optional[CaptureEvent] = None
        self._total_cycles = 0
        self._total_failures = 0
        self._total_pruned = 0

    def register_request_callback(self, callback: RequestCallback) -> None:
        """Register a callback told the artifact id before each capture."""
        self._request_callbacks.append(callback)

    def register_event_callback(self, callback: EventCallback) -> None:
        """Register a callback for capture completion events."""
        self._event_callbacks.append(callback)
        logger.debug("Registered capture callback: %s", getattr(callback, "__name__", callback))

    def register_keep_callback(self, callback: KeepCallback) -> None:
        """Register a callback naming artifacts that must survive pruning."""
        self._keep_callbacks.append(callback)

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def image_dir(self) -> Path:
        return self.config.image_dir

    @property
    def last_event(self) -> Optional[CaptureEvent]:
        return self._last_event

    @property
    def stats(self) -> dict:
        """Return capture loop statistics."""
        return {
            "running": self._running,
            "poll_interval": self.config.poll_interval,
            "total_cycles": self._total_cycles,
            "total_failures": self._total_failures,
            "total_pruned": self._total_pruned,
            "last_event": self._last_event.to_dict() if self._last_event else None,
        }

    async def start(self) -> bool:
        """
        Start the capture loop.

        Returns:
            True if the loop is running
        """
        if self._running:
            return True

        try:
            self.image_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.error("Cannot create image directory %s: %s", self.image_dir, e)
            return False

        self._running = True
        self._poll_task = asyncio.create_task(self._poll_loop(), name="capture-poll")
        logger.info(
            "CaptureSource started: every %.1fs into %s",
            self.config.poll_interval, self.image_dir,
        )
        return True

    async def stop(self) -> None:
        """Stop the capture loop."""
        if not self._running:
            return

        self._running = False
        if self._poll_task:
            self._poll_task.cancel()
            try:
                await self._poll_task
            except asyncio.CancelledError:
                pass
            self._poll_task = None

        logger.info("CaptureSource stopped")

    async def _poll_loop(self) -> None:
        """Run one cycle per poll interval until stopped."""
        loop = asyncio.get_running_loop()
        next_at = loop.time()
        while self._running:
            next_at += self.config.poll_interval
            await asyncio.sleep(max(0.0, next_at - loop.time()))
            if not self._running:
                break
            try:
                await self.run_cycle()
            except Exception as e:
                logger.error("Capture cycle error: %s", e)
            # A slow capture must not cause a burst of catch-up cycles
            next_at = max(next_at, loop.time())

    async def run_cycle(self) -> CaptureEvent:
        """Capture one image and dispatch the resulting event."""
        artifact_id = artifact_id_for(self._clock(), self.config.extension)
        path = self.image_dir / artifact_id
        self._total_cycles += 1

        for callback in self._request_callbacks:
            try:
                callback(artifact_id)
            except Exception as e:
                logger.warning("Request callback error: %s", e)

        try:
            await self.capture_once(path)
            event = CaptureEvent(artifact_id=artifact_id, path=path)
            self.prune()
        except CaptureError as e:
            self._total_failures += 1
            event = CaptureEvent(artifact_id=artifact_id, path=path, failure=str(e))

        logger.info("Capture %s: %s", artifact_id, event.failure or "ok")
        self._last_event = event
        await self._dispatch(event)
        return event

    async def capture_once(self, path: Path) -> None:
        """
        Run the capture command for ``path``.

        Raises:
            CaptureCommandError: command could not start, exited non-zero
                or did not write the file
            CaptureTimeoutError: command ran longer than the configured timeout
        """
        argv = self.config.build_command(path)
        name = argv[0] if argv else ""

        try:
            proc = await asyncio.create_subprocess_exec(
                *argv,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise CaptureCommandError(name, str(e)) from e

        try:
            _, stderr = await asyncio.wait_for(proc.communicate(), timeout=self.config.timeout)
        except asyncio.TimeoutError:
            proc.kill()
            await proc.wait()
            raise CaptureTimeoutError(name, self.config.timeout)

        if proc.returncode != 0:
            detail = (stderr or b"").decode(errors="replace").strip()[-200:]
            raise CaptureCommandError(name, f"exit code {proc.returncode}: {detail}")

        if not path.exists():
            raise CaptureCommandError(name, f"no file written at {path}")

    def prune(self) -> int:
        """
        Delete the oldest captures beyond ``keep_last``.

        Artifacts named by keep callbacks (still settling) are never removed.

        Returns:
            Number of files deleted
        """
        keep: set[str] = set()
        for callback in self._keep_callbacks:
            try:
                keep.update(callback())
            except Exception as e:
                logger.warning("Keep callback error: %s", e)

        # Epoch-millisecond names order numerically by (length, text)
        captures = sorted(
            self.image_dir.glob(f"*.{self.config.extension}"),
            key=lambda p: (len(p.stem), p.stem),
        )
        excess = captures[:-self.config.keep_last]

        removed = 0
        for path in excess:
            if path.name in keep:
                continue
            try:
                path.unlink()
                removed += 1
            except OSError as e:
                logger.warning("Could not remove old capture %s: %s", path, e)

        if removed:
            self._total_pruned += removed
            logger.debug("Pruned %d old captures", removed)
        return removed

    async def _dispatch(self, event: CaptureEvent) -> None:
        for callback in self._event_callbacks:
            try:
                await callback(event)
            except Exception as e:
                logger.warning("Capture callback error: %s", e)
