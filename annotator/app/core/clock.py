"""Time sources.

Window arithmetic throughout the service is done in epoch milliseconds.
Components take a ``Clock`` so tests can drive time explicitly.
"""

import time
from typing import Callable

Clock = Callable[[], int]


def system_clock() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


class ManualClock:
    """Clock that only moves when told to.

    Usage:
        clock = ManualClock(start_ms=0)
        limiter = FixedWindowRateLimiter(window_ms=60_000, max_requests=2, clock=clock)
        clock.advance(61_000)
    """

    def __init__(self, start_ms: int = 0):
        self.now_ms = start_ms

    def __call__(self) -> int:
        return self.now_ms

    def advance(self, ms: int) -> None:
        self.now_ms += ms

    def set(self, ms: int) -> None:
        self.now_ms = ms
