"""Per-client request admission.

One fixed-window limiter per category (general, upload, chat), held by a
``RateLimiter`` that lives on ``app.state``. Routes declare their category
through the ``rate_limit`` dependency, which rejects with
``RateLimitExceededError`` and stamps ``X-RateLimit-*`` headers on admitted
responses. A background task sweeps expired windows while the app runs.
"""

import asyncio
import contextlib
from typing import Annotated, Dict, Mapping, Optional

from fastapi import Depends, Request, Response

from annotator.app.core.client_identity import ClientKeyDep
from annotator.app.core.clock import Clock, system_clock
from annotator.app.core.config import Settings
from annotator.app.core.logging import get_log_context, get_logger
from annotator.app.exceptions import RateLimitExceededError

# Re-export models
from annotator.app.middleware.rate_limit.models import (
    LimiterCategory,
    LimitPolicy,
    RateLimitEntry,
    RateLimitResult,
)

# Re-export backends
from annotator.app.middleware.rate_limit.backends import (
    FixedWindowRateLimiter,
    retry_after_seconds,
)

logger = get_logger(__name__)

__all__ = [
    # Models
    "LimiterCategory",
    "LimitPolicy",
    "RateLimitEntry",
    "RateLimitResult",
    # Backends
    "FixedWindowRateLimiter",
    "retry_after_seconds",
    # Main classes
    "RateLimiter",
    "DEFAULT_POLICIES",
    "get_rate_limiter",
    "rate_limit",
    "GeneralLimitDep",
    "UploadLimitDep",
    "ChatLimitDep",
]

DEFAULT_POLICIES: Dict[LimiterCategory, LimitPolicy] = {
    LimiterCategory.GENERAL: LimitPolicy(window_ms=60_000, max_requests=100),
    LimiterCategory.UPLOAD: LimitPolicy(window_ms=300_000, max_requests=10),
    LimiterCategory.CHAT: LimitPolicy(window_ms=60_000, max_requests=50),
}


class RateLimiter:
    """Category-aware rate limiter with periodic cleanup.

    Each category gets its own ``FixedWindowRateLimiter`` so the same client
    is counted independently per category.
    """

    def __init__(
        self,
        policies: Optional[Mapping[LimiterCategory, LimitPolicy]] = None,
        clock: Clock = system_clock,
        stripes: int = FixedWindowRateLimiter.DEFAULT_STRIPES,
        cleanup_interval_seconds: float = 60.0,
    ):
        """Initialize one backend per category.

        Args:
            policies: Window/allowance per category; defaults to DEFAULT_POLICIES
            clock: Time source returning epoch milliseconds
            stripes: Lock stripes per category table
            cleanup_interval_seconds: Period of the background sweep
        """
        policies = dict(DEFAULT_POLICIES if policies is None else policies)
        missing = set(LimiterCategory) - set(policies)
        if missing:
            raise ValueError(
                f"Missing rate limit policy for: {', '.join(sorted(c.value for c in missing))}"
            )
        self.clock = clock
        self.cleanup_interval_seconds = cleanup_interval_seconds
        self._limiters: Dict[LimiterCategory, FixedWindowRateLimiter] = {
            category: FixedWindowRateLimiter(
                window_ms=policy.window_ms,
                max_requests=policy.max_requests,
                clock=clock,
                stripes=stripes,
            )
            for category, policy in policies.items()
        }
        self._cleanup_task: Optional[asyncio.Task] = None

    @classmethod
    def from_settings(cls, settings: Settings, clock: Clock = system_clock) -> "RateLimiter":
        policies = {
            LimiterCategory.GENERAL: LimitPolicy(
                window_ms=settings.rate_limit_general_window_seconds * 1000,
                max_requests=settings.rate_limit_general_requests,
            ),
            LimiterCategory.UPLOAD: LimitPolicy(
                window_ms=settings.rate_limit_upload_window_seconds * 1000,
                max_requests=settings.rate_limit_upload_requests,
            ),
            LimiterCategory.CHAT: LimitPolicy(
                window_ms=settings.rate_limit_chat_window_seconds * 1000,
                max_requests=settings.rate_limit_chat_requests,
            ),
        }
        return cls(
            policies=policies,
            clock=clock,
            stripes=settings.rate_limit_stripes,
            cleanup_interval_seconds=settings.rate_limit_cleanup_interval_seconds,
        )

    def limiter_for(self, category: LimiterCategory) -> FixedWindowRateLimiter:
        return self._limiters[LimiterCategory(category)]

    def check_limit(self, category: LimiterCategory, client_key: str) -> RateLimitResult:
        """Check and count one request. Denial is reported only via ``allowed``."""
        return self.limiter_for(category).check_limit(client_key)

    def sweep(self) -> int:
        """Remove expired windows from every category; returns the count removed."""
        return sum(limiter.sweep() for limiter in self._limiters.values())

    def size(self) -> int:
        return sum(len(limiter) for limiter in self._limiters.values())

    async def _cleanup_loop(self) -> None:
        while True:
            await asyncio.sleep(self.cleanup_interval_seconds)
            removed = self.sweep()
            if removed:
                logger.debug(f"Rate limit sweep removed {removed} expired windows")

    def start(self) -> None:
        """Start the background sweep on the running event loop."""
        if self._cleanup_task is None or self._cleanup_task.done():
            self._cleanup_task = asyncio.create_task(self._cleanup_loop())
            logger.debug(
                f"Rate limit sweep started (interval={self.cleanup_interval_seconds}s)"
            )

    async def stop(self) -> None:
        """Cancel the background sweep and wait for it to finish."""
        task, self._cleanup_task = self._cleanup_task, None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    @property
    def running(self) -> bool:
        return self._cleanup_task is not None and not self._cleanup_task.done()


def get_rate_limiter(request: Request) -> RateLimiter:
    """Get the application's rate limiter from app state."""
    return request.app.state.rate_limiter


def rate_limit(category: LimiterCategory):
    """Build a dependency that admits the caller under ``category``.

    Usage:
        @router.get("/user/images")
        async def list_user_images(_: GeneralLimitDep, client_key: ClientKeyDep):
            ...
    """

    async def dependency(
        request: Request,
        response: Response,
        client_key: ClientKeyDep,
    ) -> RateLimitResult:
        limiter = get_rate_limiter(request)
        result = limiter.check_limit(category, client_key)

        if not result.allowed:
            logger.warning(
                f"Rate limit exceeded for {category.value}",
                extra=get_log_context(
                    request_id=getattr(request.state, "request_id", None),
                    client_key=client_key,
                    path=request.url.path,
                    category=category.value,
                    reset_time=result.reset_time,
                ),
            )
            raise RateLimitExceededError(
                retry_after=result.retry_after or 0,
                reset_time=result.reset_time,
                limit=result.limit,
                category=category.value,
            )

        response.headers["X-RateLimit-Limit"] = str(result.limit)
        response.headers["X-RateLimit-Remaining"] = str(result.remaining)
        response.headers["X-RateLimit-Reset"] = str(result.reset_time)
        return result

    dependency.__name__ = f"rate_limit_{category.value}"
    return dependency


GeneralLimitDep = Annotated[RateLimitResult, Depends(rate_limit(LimiterCategory.GENERAL))]
UploadLimitDep = Annotated[RateLimitResult, Depends(rate_limit(LimiterCategory.UPLOAD))]
ChatLimitDep = Annotated[RateLimitResult, Depends(rate_limit(LimiterCategory.CHAT))]
