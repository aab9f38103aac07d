"""
Token counting and usage tracking.

Holds exact token counts reported by a provider and the rough
character-based estimate used when no counts are available.
"""

import math
import time
from dataclasses import dataclass
from typing import Any


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


def estimate_tokens(text: str) -> int:
    """Rough token estimate: ~4 characters per token for English text."""
    return math.ceil(len(text) / 4)


@dataclass(frozen=True)
class TokenUsage:
    """Token usage data for cost calculation.

    Contains exact token counts without estimation or model-specific logic.
    """
    prompt_tokens: int
    completion_tokens: int

    def __post_init__(self):
        if self.prompt_tokens < 0 or self.completion_tokens < 0:
            raise ValueError("token counts cannot be negative")

    @property
    def total_tokens(self) -> int:
        """Total tokens used (prompt + completion)."""
        return self.prompt_tokens + self.completion_tokens


@dataclass(frozen=True)
class GenerationResult:
    """Envelope a generation function returns to report its own usage.

    Wrapped functions that return this type are monitored with the exact
    counts in ``usage`` instead of having them guessed from the result shape.
    """
    result: Any
    usage: TokenUsage
