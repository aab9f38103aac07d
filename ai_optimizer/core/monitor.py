"""
Token and cost monitoring.

Keeps a bounded, append-only buffer of usage records and aggregates them by
feature and model over a recency window.
"""

import functools
import json
import logging
import uuid
from collections import deque
from dataclasses import asdict, dataclass, field
from typing import Any, Awaitable, Callable, Deque, Dict, List, Mapping, Optional, Tuple, TypeVar

from .pricing import DEFAULT_PRICING, PricingTable, calculate_cost
from .token_counter import GenerationResult, TokenUsage, estimate_tokens, now_ms

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_MAX_RECORDS = 10_000
DEFAULT_RETENTION_DAYS = 30

HOUR_MS = 60 * 60 * 1000
DAY_MS = 24 * HOUR_MS


@dataclass(frozen=True)
class UsageRecord:
    """Immutable record of one AI call.

    Cost is fixed when the record is created; later rate changes do not
    rewrite history.
    """
    id: str
    timestamp_ms: int
    feature: str
    model: str
    prompt_tokens: int
    completion_tokens: int
    total_tokens: int
    cost: float
    user_id: Optional[str] = None
    prompt: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class BreakdownEntry:
    tokens: int = 0
    cost: float = 0.0
    calls: int = 0


@dataclass
class UsageStats:
    """Aggregates over the records inside a recency window."""
    total_tokens: int = 0
    total_cost: float = 0.0
    calls: int = 0
    feature_breakdown: Dict[str, BreakdownEntry] = field(default_factory=dict)
    model_breakdown: Dict[str, BreakdownEntry] = field(default_factory=dict)


@dataclass(frozen=True)
class FeatureCost:
    feature: str
    cost: float
    tokens: int


class TokenMonitor:
    """Bounded in-memory ledger of token usage and derived cost."""

    def __init__(
        self,
        max_records: int = DEFAULT_MAX_RECORDS,
        pricing: Optional[PricingTable] = None,
        clock: Callable[[], int] = now_ms,
    ):
        if max_records <= 0:
            raise ValueError("max_records must be > 0")

        self.max_records = max_records
        self.pricing = pricing if pricing is not None else DEFAULT_PRICING.copy()
        self._clock = clock
        self._records: Deque[UsageRecord] = deque(maxlen=max_records)

    def __len__(self) -> int:
        return len(self._records)

    def record_usage(
        self,
        feature: str,
        model: str,
        prompt_tokens: int,
        completion_tokens: int,
        user_id: Optional[str] = None,
        prompt: Optional[str] = None,
        metadata: Optional[Mapping[str, Any]] = None,
    ) -> UsageRecord:
        """Append a usage record, evicting the oldest once the buffer is full.

        Raises:
            ValueError: If a token count is negative
        """
        usage = TokenUsage(prompt_tokens=prompt_tokens, completion_tokens=completion_tokens)
        cost = calculate_cost(model, usage, self.pricing)
        timestamp = self._clock()

        record = UsageRecord(
            id=f"usage-{timestamp}-{uuid.uuid4().hex[:9]}",
            timestamp_ms=timestamp,
            feature=feature,
            model=model,
            prompt_tokens=usage.prompt_tokens,
            completion_tokens=usage.completion_tokens,
            total_tokens=usage.total_tokens,
            cost=cost,
            user_id=user_id,
            prompt=prompt,
            metadata=dict(metadata) if metadata is not None else None,
        )
        self._records.append(record)

        logger.debug("%s: %d tokens ($%.6f)", feature, usage.total_tokens, cost)
        return record

    def _recent(self, hours: float) -> List[UsageRecord]:
        cutoff = self._clock() - int(hours * HOUR_MS)
        return [record for record in self._records if record.timestamp_ms > cutoff]

    def get_usage_stats(self, hours: float = 24) -> UsageStats:
        """Totals plus per-feature and per-model breakdowns for the window."""
        stats = UsageStats()

        for record in self._recent(hours):
            stats.total_tokens += record.total_tokens
            stats.total_cost += record.cost
            stats.calls += 1

            for breakdown, key in (
                (stats.feature_breakdown, record.feature),
                (stats.model_breakdown, record.model),
            ):
                entry = breakdown.setdefault(key, BreakdownEntry())
                entry.tokens += record.total_tokens
                entry.cost += record.cost
                entry.calls += 1

        return stats

    def get_top_features(self, limit: int = 5) -> List[FeatureCost]:
        """Most expensive features over the last 24 hours."""
        stats = self.get_usage_stats(24)
        ranked = sorted(
            (FeatureCost(feature=name, cost=data.cost, tokens=data.tokens)
             for name, data in stats.feature_breakdown.items()),
            key=lambda item: item.cost,
            reverse=True,
        )
        return ranked[:limit]

    def export_data(self, hours: float = 24) -> List[UsageRecord]:
        """Raw records in the window, oldest first."""
        return self._recent(hours)

    def cleanup(self, days: float = DEFAULT_RETENTION_DAYS) -> int:
        """Drop records older than the retention window.

        Returns:
            Number of records removed
        """
        cutoff = self._clock() - int(days * DAY_MS)
        kept = [record for record in self._records if record.timestamp_ms > cutoff]
        removed = len(self._records) - len(kept)
        if removed:
            self._records = deque(kept, maxlen=self.max_records)
            logger.info("Token monitor cleanup removed %d records", removed)
        return removed

    def update_cost_rates(self, model: str, input_rate: float, output_rate: float) -> None:
        """Change a model's rates; only affects records made afterwards."""
        self.pricing.update_rates(model, input_rate, output_rate)

    def clear(self) -> None:
        self._records.clear()


def _field(obj: Any, name: str) -> Any:
    if isinstance(obj, Mapping):
        return obj.get(name)
    return getattr(obj, name, None)


def _as_text(value: Any) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(value, default=str)


def _extract_token_counts(args: Tuple[Any, ...], result: Any) -> Tuple[int, int]:
    """Work out (prompt_tokens, completion_tokens) for a finished call.

    Priority: a GenerationResult envelope, a provider ``usage`` block, a
    ``metadata.tokenCount`` block, then the character estimate.
    """
    if isinstance(result, GenerationResult):
        return result.usage.prompt_tokens, result.usage.completion_tokens

    usage = _field(result, "usage")
    if usage is not None:
        return (
            int(_field(usage, "prompt_tokens") or 0),
            int(_field(usage, "completion_tokens") or 0),
        )

    token_count = _field(_field(result, "metadata") or {}, "tokenCount")
    if token_count is not None:
        return (
            int(_field(token_count, "prompt") or 0),
            int(_field(token_count, "response") or 0),
        )

    prompt = _as_text(args[0]) if args else ""
    return estimate_tokens(prompt), estimate_tokens(_as_text(result))


def with_monitoring(
    fn: Callable[..., Awaitable[T]],
    monitor: TokenMonitor,
    feature: str,
    model: str = "unknown",
) -> Callable[..., Awaitable[T]]:
    """Record token usage for every call of an async AI function.

    The wrapped function's result is returned unchanged. If it raises, a
    zero-token record carrying the error message is made and the exception
    is re-raised as is.
    """
    def _record(prompt_tokens: int, completion_tokens: int, prompt: Optional[str],
                metadata: Optional[Dict[str, Any]] = None) -> None:
        try:
            monitor.record_usage(feature, model, prompt_tokens, completion_tokens,
                                 prompt=prompt, metadata=metadata)
        except Exception:
            logger.warning("Failed to record usage for %s", feature, exc_info=True)

    @functools.wraps(fn)
    async def wrapper(*args: Any, **kwargs: Any) -> T:
        prompt = args[0] if args and isinstance(args[0], str) else None
        try:
            result = await fn(*args, **kwargs)
        except Exception as e:
            _record(0, 0, prompt, {"error": str(e)})
            raise

        try:
            prompt_tokens, completion_tokens = _extract_token_counts(args, result)
        except (TypeError, ValueError):
            logger.warning("Could not read token counts from %s result", feature, exc_info=True)
            prompt_tokens, completion_tokens = 0, 0

        _record(prompt_tokens, completion_tokens, prompt)
        return result

    return wrapper
