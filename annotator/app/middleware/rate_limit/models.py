"""Rate limiting data models.

This module contains the limiter categories and dataclasses for window
state and check results. All timestamps are epoch milliseconds.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class LimiterCategory(str, Enum):
    """Named rate-limit buckets, each with its own isolated keyspace."""
    GENERAL = "general"
    UPLOAD = "upload"
    CHAT = "chat"


@dataclass(frozen=True)
class LimitPolicy:
    """Fixed window size and request allowance for one category."""
    window_ms: int
    max_requests: int


@dataclass
class RateLimitEntry:
    """Counter for one client within its current fixed window."""
    count: int
    reset_at: int


@dataclass
class RateLimitResult:
    """Result of a rate limit check."""
    allowed: bool
    limit: int
    remaining: int
    reset_time: int
    retry_after: Optional[int] = None
