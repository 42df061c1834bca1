"""Wall-clock budget shared by a scheduled run and the syncs it drives."""

import time
from typing import Callable, Optional


class RunBudget:
    """Deadline that callers consult before starting more work."""

    def __init__(self, seconds: Optional[float], clock: Callable[[], float] = time.monotonic):
        self.seconds = seconds
        self._clock = clock
        self.started = clock()

    def elapsed(self) -> float:
        return self._clock() - self.started

    def remaining(self) -> float:
        if self.seconds is None:
            return float("inf")
        return max(0.0, self.seconds - self.elapsed())

    def can_fit(self, seconds: float) -> bool:
        """True if ``seconds`` more work still finishes before the deadline."""
        return self.remaining() >= seconds

    @property
    def expired(self) -> bool:
        return self.remaining() <= 0
