"""
Pricing calculations and rate management.

Handles cost computations for the AI models the platform calls.
"""

import logging
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_UP
from typing import Dict, List, Set, Union

from .token_counter import TokenUsage

logger = logging.getLogger(__name__)

Rate = Union[Decimal, float, int, str]

# Costs are kept to a hundred-millionth of a dollar; cheap models bill
# fractions of a cent per call.
COST_QUANTUM = Decimal("0.00000001")


@dataclass(frozen=True)
class ModelPricing:
    """Per-token pricing for a specific model."""
    input_per_1k: Decimal  # Cost per 1K prompt tokens
    output_per_1k: Decimal  # Cost per 1K completion tokens

    def __post_init__(self):
        if self.input_per_1k < 0 or self.output_per_1k < 0:
            raise ValueError("rates cannot be negative")


ZERO_PRICING = ModelPricing(input_per_1k=Decimal("0"), output_per_1k=Decimal("0"))

LOCAL_MODEL = "none"


def _as_decimal(value: Rate) -> Decimal:
    # str() first so floats keep their printed value (0.0015, not 0.00149999...)
    return value if isinstance(value, Decimal) else Decimal(str(value))


@dataclass
class PricingTable:
    """Mutable pricing table keyed by model name.

    Rates can be changed at runtime with ``update_rates``. Costs already
    recorded keep the rate that was in force when they were computed.
    """
    prices: Dict[str, ModelPricing]
    _warned: Set[str] = field(default_factory=set, repr=False, compare=False)

    def get_pricing(self, model: str) -> ModelPricing:
        """Get pricing for a specific model.

        Args:
            model: Model identifier

        Returns:
            ModelPricing for the model

        Raises:
            ValueError: If model is not supported
        """
        if model not in self.prices:
            raise ValueError(f"Unsupported model: {model}")
        return self.prices[model]

    def rates_for(self, model: str) -> ModelPricing:
        """Lenient lookup: unknown models are priced at zero.

        A warning is logged the first time each unknown model is seen, since
        a zero rate under-reports spend.
        """
        pricing = self.prices.get(model)
        if pricing is not None:
            return pricing
        if model not in self._warned:
            self._warned.add(model)
            logger.warning("No pricing for model %r; recording its cost as 0", model)
        return ZERO_PRICING

    def update_rates(self, model: str, input_rate: Rate, output_rate: Rate) -> None:
        self.prices[model] = ModelPricing(
            input_per_1k=_as_decimal(input_rate),
            output_per_1k=_as_decimal(output_rate),
        )
        self._warned.discard(model)

    def models(self) -> List[str]:
        return sorted(self.prices)

    def copy(self) -> "PricingTable":
        return PricingTable(dict(self.prices))


# USD per 1K tokens
DEFAULT_PRICING = PricingTable({
    "gpt-3.5-turbo": ModelPricing(
        input_per_1k=Decimal("0.0015"),
        output_per_1k=Decimal("0.002")
    ),
    "gpt-4": ModelPricing(
        input_per_1k=Decimal("0.03"),
        output_per_1k=Decimal("0.06")
    ),
    "gemini-pro": ModelPricing(
        input_per_1k=Decimal("0.00025"),
        output_per_1k=Decimal("0.0005")
    ),
    "claude-3-haiku": ModelPricing(
        input_per_1k=Decimal("0.00025"),
        output_per_1k=Decimal("0.00125")
    ),
    # Local fallbacks, recorded for call counts only
    LOCAL_MODEL: ZERO_PRICING,
})


def calculate_cost(
    model: str,
    usage: TokenUsage,
    table: PricingTable = DEFAULT_PRICING
) -> float:
    """Calculate total cost for model usage with conservative rounding.

    Args:
        model: Model identifier
        usage: Token usage data
        table: Pricing table to read rates from

    Returns:
        Total cost in USD, rounded UP to the nearest 1e-8
    """
    pricing = table.rates_for(model)

    # (tokens / 1000) * cost_per_1k for each side
    prompt_cost = (Decimal(usage.prompt_tokens) / Decimal("1000")) * pricing.input_per_1k
    completion_cost = (Decimal(usage.completion_tokens) / Decimal("1000")) * pricing.output_per_1k

    total_cost = prompt_cost + completion_cost
    return float(total_cost.quantize(COST_QUANTUM, rounding=ROUND_UP))
