"""
Exceptions raised by the capture source.

These never leave the capture loop: they are turned into failed
CaptureEvents so a broken cycle does not stop the relay.
"""


class CaptureError(Exception):
    """Base exception for all capture errors."""

    pass


class CaptureCommandError(CaptureError):
    """Raised when the capture command fails or produces no file."""

    def __init__(self, command: str, reason: str):
        self.command = command
        self.reason = reason
        super().__init__(f"Capture command '{command}' failed: {reason}")


class CaptureTimeoutError(CaptureError):
    """Raised when the capture command does not finish in time."""

    def __init__(self, command: str, timeout: float):
        self.command = command
        self.timeout = timeout
        super().__init__(f"Capture command '{command}' timed out after {timeout:.1f}s")
