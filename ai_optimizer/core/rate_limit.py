"""
Fixed-window rate limiting.

Counts requests per client identifier inside a fixed, non-sliding window.
A rejected request is a normal outcome reported in the result, never an
exception.
"""

import logging
import math
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from .token_counter import now_ms

logger = logging.getLogger(__name__)

DEFAULT_MAX_REQUESTS = 10
DEFAULT_WINDOW_MS = 60 * 1000  # 1 minute


@dataclass(frozen=True)
class RateLimitConfig:
    """Request allowance per window."""
    max_requests: int
    window_ms: int

    def __post_init__(self):
        """Validate limits are positive."""
        if self.max_requests <= 0:
            raise ValueError("max_requests must be > 0")
        if self.window_ms <= 0:
            raise ValueError("window_ms must be > 0")


# Presets per feature class
RATE_LIMITS: Dict[str, RateLimitConfig] = {
    # AI features - more restrictive
    "ai_generation": RateLimitConfig(max_requests=5, window_ms=60 * 1000),
    "ai_summary": RateLimitConfig(max_requests=10, window_ms=60 * 1000),
    "ai_quiz": RateLimitConfig(max_requests=3, window_ms=60 * 1000),
    # General features - less restrictive
    "general": RateLimitConfig(max_requests=30, window_ms=60 * 1000),
    "ui": RateLimitConfig(max_requests=100, window_ms=60 * 1000),
}


@dataclass
class RateLimitEntry:
    count: int
    reset_at_ms: int


@dataclass(frozen=True)
class RateLimitResult:
    """Outcome of a single limit check."""
    allowed: bool
    remaining: int
    reset_at_ms: int


@dataclass(frozen=True)
class RateLimitUsage:
    count: int
    reset_at_ms: int


class RateLimitExceeded(Exception):
    """Raised by library helpers that cannot return a 429 response."""
    def __init__(self, identifier: str, result: RateLimitResult):
        super().__init__(f"Rate limit exceeded for {identifier}. Please try again later.")
        self.identifier = identifier
        self.result = result


def retry_after_seconds(result: RateLimitResult, now: int) -> int:
    """Whole seconds until the window resets (never negative)."""
    return max(0, math.ceil((result.reset_at_ms - now) / 1000))


class RateLimiter:
    """Per-identifier fixed-window request counter.

    A window has elapsed once the clock passes its reset instant. Expired
    entries are dropped lazily on read and by ``cleanup``, which the owning
    process calls periodically.
    """

    def __init__(
        self,
        default_max_requests: int = DEFAULT_MAX_REQUESTS,
        default_window_ms: int = DEFAULT_WINDOW_MS,
        clock: Callable[[], int] = now_ms,
    ):
        if default_max_requests <= 0:
            raise ValueError("default_max_requests must be > 0")
        if default_window_ms <= 0:
            raise ValueError("default_window_ms must be > 0")

        self.default_max_requests = default_max_requests
        self.default_window_ms = default_window_ms
        self._clock = clock
        self._limits: Dict[str, RateLimitEntry] = {}

    def now(self) -> int:
        return self._clock()

    def __len__(self) -> int:
        return len(self._limits)

    def check_limit(
        self,
        identifier: str,
        max_requests: Optional[int] = None,
        window_ms: Optional[int] = None,
    ) -> RateLimitResult:
        """Check whether a request should be allowed, counting it if so."""
        if max_requests is None:
            max_requests = self.default_max_requests
        if window_ms is None:
            window_ms = self.default_window_ms

        now = self._clock()
        entry = self._limits.get(identifier)

        if entry is None or now > entry.reset_at_ms:
            # First request or window expired
            reset_at = now + window_ms
            self._limits[identifier] = RateLimitEntry(count=1, reset_at_ms=reset_at)
            return RateLimitResult(allowed=True, remaining=max_requests - 1, reset_at_ms=reset_at)

        if entry.count >= max_requests:
            logger.info("Rate limit exceeded for %s (%d/%d)", identifier, entry.count, max_requests)
            return RateLimitResult(allowed=False, remaining=0, reset_at_ms=entry.reset_at_ms)

        entry.count += 1
        return RateLimitResult(
            allowed=True,
            remaining=max_requests - entry.count,
            reset_at_ms=entry.reset_at_ms,
        )

    def check(self, identifier: str, config: RateLimitConfig) -> RateLimitResult:
        return self.check_limit(identifier, config.max_requests, config.window_ms)

    def get_usage(self, identifier: str) -> Optional[RateLimitUsage]:
        """Current usage for an identifier, or None if no window is open."""
        entry = self._limits.get(identifier)
        if entry is None:
            return None

        if self._clock() > entry.reset_at_ms:
            del self._limits[identifier]
            return None

        return RateLimitUsage(count=entry.count, reset_at_ms=entry.reset_at_ms)

    def cleanup(self) -> int:
        """Remove entries whose window has elapsed.

        Returns:
            Number of entries removed
        """
        now = self._clock()
        expired = [key for key, entry in self._limits.items() if now > entry.reset_at_ms]
        for key in expired:
            del self._limits[key]
        if expired:
            logger.info("Rate limiter cleanup removed %d entries", len(expired))
        return len(expired)

    def clear(self) -> None:
        """Clear all limits (useful for testing)."""
        self._limits.clear()
