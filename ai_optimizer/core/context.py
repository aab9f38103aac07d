"""
Process-wide optimizer components.

The cache, rate limiter and token monitor are built once at startup and
handed to whatever composes the request layer, instead of living as
module-level singletons.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, Optional

from ai_optimizer.config.loader import DEFAULT_CLEANUP_INTERVAL_SECONDS, OptimizerConfig
from .cache import ResponseCache
from .fallbacks import SmartProcessor
from .monitor import DEFAULT_RETENTION_DAYS, TokenMonitor
from .pricing import DEFAULT_PRICING
from .rate_limit import RATE_LIMITS, RateLimitConfig, RateLimiter
from .token_counter import now_ms

logger = logging.getLogger(__name__)


@dataclass
class OptimizationContext:
    cache: ResponseCache = field(default_factory=ResponseCache)
    limiter: RateLimiter = field(default_factory=RateLimiter)
    monitor: TokenMonitor = field(default_factory=TokenMonitor)
    processor: SmartProcessor = field(default_factory=SmartProcessor)
    rate_limits: Dict[str, RateLimitConfig] = field(default_factory=lambda: dict(RATE_LIMITS))
    cleanup_interval_seconds: float = DEFAULT_CLEANUP_INTERVAL_SECONDS
    retention_days: int = DEFAULT_RETENTION_DAYS

    @classmethod
    def from_config(
        cls,
        config: OptimizerConfig,
        clock: Callable[[], int] = now_ms,
    ) -> "OptimizationContext":
        """Build all components from a loaded configuration."""
        pricing = DEFAULT_PRICING.copy()
        pricing.prices.update(config.pricing)

        rate_limits = dict(RATE_LIMITS)
        rate_limits.update(config.rate_limits)

        return cls(
            cache=ResponseCache(
                default_ttl_ms=config.cache.default_ttl_ms,
                max_size=config.cache.max_size,
                single_flight=config.cache.single_flight,
                clock=clock,
            ),
            limiter=RateLimiter(clock=clock),
            monitor=TokenMonitor(
                max_records=config.monitor.max_records,
                pricing=pricing,
                clock=clock,
            ),
            rate_limits=rate_limits,
            cleanup_interval_seconds=config.cleanup_interval_seconds,
            retention_days=config.monitor.retention_days,
        )

    def rate_limit(self, name: str) -> RateLimitConfig:
        """Look up a named preset.

        Raises:
            ValueError: If the preset does not exist
        """
        if name not in self.rate_limits:
            raise ValueError(f"Unknown rate limit preset: {name}")
        return self.rate_limits[name]

    def sweep(self) -> None:
        """One cleanup pass over every component."""
        self.limiter.cleanup()
        self.cache.cleanup()
        self.monitor.cleanup(self.retention_days)


async def run_periodic_cleanup(
    context: OptimizationContext,
    stop_event: asyncio.Event,
    interval_seconds: Optional[float] = None,
) -> None:
    """Sweep expired state every interval until ``stop_event`` is set."""
    interval = interval_seconds or context.cleanup_interval_seconds
    while not stop_event.is_set():
        try:
            await asyncio.wait_for(stop_event.wait(), timeout=interval)
        except asyncio.TimeoutError:
            pass
        else:
            break

        try:
            context.sweep()
        except Exception:
            logger.exception("Periodic cleanup failed")
