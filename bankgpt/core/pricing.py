"""
Pricing calculations and rate management.

Per-model token rates used by the cost tracker. Adding a model is a
table entry, not a code change.
"""

from dataclasses import dataclass
from typing import Dict
from decimal import Decimal, ROUND_UP

from .token_counter import TokenUsage

# Six places keeps sub-cent requests visible in the daily totals
COST_QUANTUM = Decimal("0.000001")


@dataclass(frozen=True)
class ModelPricing:
    """Per-token pricing for a specific model."""
    prompt_cost_per_1k: Decimal  # Cost per 1K prompt tokens
    completion_cost_per_1k: Decimal  # Cost per 1K completion tokens


@dataclass(frozen=True)
class PricingTable:
    """Fixed pricing table for supported models."""
    prices: Dict[str, ModelPricing]

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

    def supports(self, model: str) -> bool:
        return model in self.prices


# USD per 1K tokens. gpt-3.5-turbo is the default tier, gpt-4 the premium tier.
PRICING_TABLE = PricingTable({
    "gpt-3.5-turbo": ModelPricing(
        prompt_cost_per_1k=Decimal("0.0015"),
        completion_cost_per_1k=Decimal("0.002")
    ),
    "gpt-4": ModelPricing(
        prompt_cost_per_1k=Decimal("0.03"),
        completion_cost_per_1k=Decimal("0.06")
    ),
    "gpt-4o-mini": ModelPricing(
        prompt_cost_per_1k=Decimal("0.00015"),
        completion_cost_per_1k=Decimal("0.0006")
    ),
})


def calculate_cost_decimal(
    model: str,
    usage: TokenUsage,
    table: PricingTable = PRICING_TABLE
) -> Decimal:
    """Calculate request cost as a Decimal, rounded UP to six places.

    Args:
        model: Model identifier
        usage: Token usage data
        table: Pricing table to use

    Returns:
        Cost in USD

    Raises:
        ValueError: If model is not supported
    """
    pricing = table.get_pricing(model)

    # (tokens / 1000) * cost_per_1k
    prompt_cost = (Decimal(usage.prompt_tokens) / Decimal("1000")) * pricing.prompt_cost_per_1k
    completion_cost = (Decimal(usage.completion_tokens) / Decimal("1000")) * pricing.completion_cost_per_1k

    # Conservative rounding (always round UP)
    return (prompt_cost + completion_cost).quantize(COST_QUANTUM, rounding=ROUND_UP)

