"""Fixed-window rate limiter backend.

The window table is split into stripes, each guarded by its own lock, so
concurrent checks for unrelated clients do not contend on a single lock.
A key always hashes to the same stripe; the sweep takes that stripe's lock
before deciding an entry is expired, so it can never remove a window that
is being incremented.
"""

import math
import threading
from typing import Dict, List, Optional

from annotator.app.core.clock import Clock, system_clock
from annotator.app.middleware.rate_limit.models import RateLimitEntry, RateLimitResult


class _Stripe:
    __slots__ = ("lock", "entries")

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.entries: Dict[str, RateLimitEntry] = {}


def retry_after_seconds(reset_time: int, now: int) -> int:
    """Whole seconds until ``reset_time``, rounded up."""
    return max(0, math.ceil((reset_time - now) / 1000))


class FixedWindowRateLimiter:
    """In-memory fixed-window counter keyed by client.

    A window opens on the first request from a key and lasts ``window_ms``.
    Requests beyond ``max_requests`` inside the window are rejected without
    consuming anything; the first request after the window ends starts a
    fresh window with a count of one.

    Suitable for single-instance deployments: state is process-local.
    """

    DEFAULT_STRIPES = 16

    def __init__(
        self,
        window_ms: int,
        max_requests: int,
        clock: Clock = system_clock,
        stripes: int = DEFAULT_STRIPES,
    ):
        """Initialize rate limiter.

        Args:
            window_ms: Window duration in milliseconds
            max_requests: Maximum requests admitted per window
            clock: Time source returning epoch milliseconds
            stripes: Number of independently locked partitions
        """
        if window_ms < 1:
            raise ValueError("window_ms must be at least 1")
        if max_requests < 1:
            raise ValueError("max_requests must be at least 1")
        if stripes < 1:
            raise ValueError("stripes must be at least 1")
        self.window_ms = window_ms
        self.max_requests = max_requests
        self._clock = clock
        self._stripes: List[_Stripe] = [_Stripe() for _ in range(stripes)]

    def _stripe_for(self, key: str) -> _Stripe:
        return self._stripes[hash(key) % len(self._stripes)]

    def check_limit(self, key: str) -> RateLimitResult:
        """Admit or reject one request for ``key``. Never raises."""
        stripe = self._stripe_for(key)
        with stripe.lock:
            now = self._clock()
            entry = stripe.entries.get(key)

            if entry is None or now >= entry.reset_at:
                entry = RateLimitEntry(count=1, reset_at=now + self.window_ms)
                stripe.entries[key] = entry
                return RateLimitResult(
                    allowed=True,
                    limit=self.max_requests,
                    remaining=self.max_requests - 1,
                    reset_time=entry.reset_at,
                )

            if entry.count >= self.max_requests:
                return RateLimitResult(
                    allowed=False,
                    limit=self.max_requests,
                    remaining=0,
                    reset_time=entry.reset_at,
                    retry_after=retry_after_seconds(entry.reset_at, now),
                )

            entry.count += 1
            return RateLimitResult(
                allowed=True,
                limit=self.max_requests,
                remaining=self.max_requests - entry.count,
                reset_time=entry.reset_at,
            )

    def sweep(self) -> int:
        """Remove every expired window.

        Returns:
            Number of entries removed
        """
        removed = 0
        for stripe in self._stripes:
            with stripe.lock:
                now = self._clock()
                expired = [
                    key for key, entry in stripe.entries.items()
                    if now >= entry.reset_at
                ]
                for key in expired:
                    del stripe.entries[key]
                removed += len(expired)
        return removed

    def peek(self, key: str) -> Optional[RateLimitEntry]:
        """Snapshot of the stored window for ``key``, expired or not."""
        stripe = self._stripe_for(key)
        with stripe.lock:
            entry = stripe.entries.get(key)
            if entry is None:
                return None
            return RateLimitEntry(count=entry.count, reset_at=entry.reset_at)

    def __len__(self) -> int:
        total = 0
        for stripe in self._stripes:
            with stripe.lock:
                total += len(stripe.entries)
        return total
