"""Cost estimation from token usage and model pricing.

Provides a static pricing table for supported models, the token total
used in run aggregates, and a function that estimates the USD cost of
a single agent call including prompt-cache reads and writes.
"""

from __future__ import annotations

from dataclasses import dataclass

from skilleval.models.result import UsageCounters


class UnknownModelError(KeyError):
    """Raised when a model has no entry in the pricing table.

    Attributes:
        model: The model identifier that was looked up.
    """

    def __init__(self, model: str) -> None:
        self.model = model
        known = ", ".join(sorted(PRICING_TABLE))
        super().__init__(f"No pricing for model '{model}'. Known models: {known}")

    def __str__(self) -> str:
        # KeyError.__str__ would repr() the message
        return self.args[0]


@dataclass(frozen=True)
class ModelPricing:
    """Pricing per million tokens for a single model."""

    input_per_million: float
    output_per_million: float
    cache_read_per_million: float
    cache_write_per_million: float

    @property
    def rate_in(self) -> float:
        return self.input_per_million / 1_000_000

    @property
    def rate_out(self) -> float:
        return self.output_per_million / 1_000_000

    @property
    def rate_cache_read(self) -> float:
        return self.cache_read_per_million / 1_000_000

    @property
    def rate_cache_write(self) -> float:
        return self.cache_write_per_million / 1_000_000


# Static pricing table. Prices are in USD per million tokens;
# cache writes are the 5-minute TTL rate.
PRICING_TABLE: dict[str, ModelPricing] = {
    "claude-opus-4-5": ModelPricing(5.00, 25.00, 0.50, 6.25),
    "claude-opus-4-1": ModelPricing(15.00, 75.00, 1.50, 18.75),
    "claude-opus-4": ModelPricing(15.00, 75.00, 1.50, 18.75),
    "claude-sonnet-4-5": ModelPricing(3.00, 15.00, 0.30, 3.75),
    "claude-sonnet-4": ModelPricing(3.00, 15.00, 0.30, 3.75),
    "claude-haiku-4-5": ModelPricing(1.00, 5.00, 0.10, 1.25),
    "claude-3-5-haiku": ModelPricing(0.80, 4.00, 0.08, 1.00),
}

# Aliases for dated model versions that share pricing with their base model.
MODEL_ALIASES: dict[str, str] = {
    "claude-opus-4-5-20251101": "claude-opus-4-5",
    "claude-opus-4-1-20250805": "claude-opus-4-1",
    "claude-opus-4-20250514": "claude-opus-4",
    "claude-sonnet-4-5-20250929": "claude-sonnet-4-5",
    "claude-sonnet-4-20250514": "claude-sonnet-4",
    "claude-haiku-4-5-20251001": "claude-haiku-4-5",
    "claude-3-5-haiku-20241022": "claude-3-5-haiku",
    # Short names accepted by the Agent SDK
    "opus": "claude-opus-4-5",
    "sonnet": "claude-sonnet-4-5",
    "haiku": "claude-haiku-4-5",
}


def get_pricing(model: str) -> ModelPricing:
    """Look up pricing for a model, resolving aliases first.

    Raises:
        UnknownModelError: If the model is not in the pricing table.
    """
    resolved = MODEL_ALIASES.get(model, model)
    pricing = PRICING_TABLE.get(resolved)
    if pricing is None:
        raise UnknownModelError(model)
    return pricing


def total_tokens(usage: UsageCounters) -> int:
    """Sum billed token counters.

    Thinking tokens are tracked separately and not included.
    """
    return (
        usage.input_tokens
        + usage.output_tokens
        + usage.cache_creation_tokens
        + usage.cache_read_tokens
    )


def estimate_cost(usage: UsageCounters, model: str) -> float:
    """Estimate the USD cost of one agent call.

    cost = input * rate_in + output * rate_out
           + cache_read * rate_cache_read + cache_creation * rate_cache_write

    Args:
        usage: Accumulated token counters for the call.
        model: The model identifier (dated ids resolve through aliases).

    Returns:
        Estimated cost in USD rounded to 6 decimal places.

    Raises:
        UnknownModelError: If the model has no pricing entry.
    """
    pricing = get_pricing(model)

    cost = (
        usage.input_tokens * pricing.rate_in
        + usage.output_tokens * pricing.rate_out
        + usage.cache_read_tokens * pricing.rate_cache_read
        + usage.cache_creation_tokens * pricing.rate_cache_write
    )

    return round(cost, 6)
