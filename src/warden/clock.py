"""Process clock: the start-of-process epoch used as the trace time base."""

import time


class ProcessClock:
    """Records when the process started.

    start() is called once during startup, before any tracing happens.
    """

    def __init__(self):
        self.started_at: float | None = None

    def start(self) -> float:
        """Capture the process start epoch and return it."""
        self.started_at = time.time()
        return self.started_at

    def elapsed(self, now: float = None) -> float:
        """Seconds since start(). Returns 0.0 if the clock was never started."""
        if self.started_at is None:
            return 0.0
        if now is None:
            now = time.time()
        return max(0.0, now - self.started_at)
