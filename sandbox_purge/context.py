"""
Cancellable execution context shared by every external call in a run.
"""

import threading
import time
from typing import Optional

from .errors import Cancelled


class RunContext:
    """Carries a cancellation flag and an optional deadline."""

    def __init__(self, timeout: Optional[float] = None):
        self._cancelled = threading.Event()
        self.deadline = time.monotonic() + timeout if timeout else None

    def cancel(self) -> None:
        self._cancelled.set()

    def check(self) -> None:
        """Raise ``Cancelled`` if the run was cancelled or its deadline passed."""
        if self._cancelled.is_set():
            raise Cancelled("run cancelled")
        if self.deadline is not None and time.monotonic() >= self.deadline:
            raise Cancelled("run deadline exceeded")

    def remaining(self) -> Optional[float]:
        if self.deadline is None:
            return None
        return max(self.deadline - time.monotonic(), 0.0)

    def sleep(self, seconds: float) -> None:
        """Sleep, waking early (and raising) on cancellation."""
        self.check()
        remaining = self.remaining()
        if remaining is not None:
            seconds = min(seconds, remaining)
        if self._cancelled.wait(seconds):
            raise Cancelled("run cancelled")
        self.check()

    def timeout_for(self, default: float) -> float:
        """Request timeout capped at the remaining deadline."""
        remaining = self.remaining()
        if remaining is None:
            return default
        return max(min(default, remaining), 0.001)
