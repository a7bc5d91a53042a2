"""Tests for cost estimation and token totals."""

from __future__ import annotations

import pytest

from skilleval.execution.cost import (
    PRICING_TABLE,
    UnknownModelError,
    estimate_cost,
    get_pricing,
    total_tokens,
)
from skilleval.models.result import UsageCounters


class TestEstimateCostSonnet:
    """Test cost estimation for claude-sonnet-4-5."""

    def test_input_output_and_cache_read(self) -> None:
        """1000 in, 500 out, 200 cache read: 0.003 + 0.0075 + 0.00006."""
        usage = UsageCounters(input_tokens=1000, output_tokens=500, cache_read_tokens=200)
        result = estimate_cost(usage, "claude-sonnet-4-5-20250929")
        assert result == pytest.approx(1000 * 3e-6 + 500 * 15e-6 + 200 * 0.3e-6)
        assert result == pytest.approx(0.01056)

    def test_cache_creation_uses_write_rate(self) -> None:
        """Cache creation tokens are billed at the cache-write rate."""
        usage = UsageCounters(cache_creation_tokens=1_000_000)
        assert estimate_cost(usage, "claude-sonnet-4-5") == pytest.approx(3.75)

    def test_thinking_tokens_not_billed_separately(self) -> None:
        """Thinking tokens do not add to the estimate."""
        base = UsageCounters(input_tokens=100, output_tokens=100)
        with_thinking = UsageCounters(input_tokens=100, output_tokens=100, thinking_tokens=5000)
        assert estimate_cost(base, "claude-sonnet-4-5") == estimate_cost(with_thinking, "claude-sonnet-4-5")


class TestEstimateCostOtherModels:
    """Test cost estimation for other Claude models."""

    def test_haiku(self) -> None:
        """claude-haiku-4-5: (1000/1M * 1.00) + (500/1M * 5.00) = 0.0035"""
        usage = UsageCounters(input_tokens=1000, output_tokens=500)
        assert estimate_cost(usage, "claude-haiku-4-5") == pytest.approx(0.0035)

    def test_opus_short_alias(self) -> None:
        """The SDK short name 'opus' resolves to claude-opus-4-5 pricing."""
        usage = UsageCounters(input_tokens=1000, output_tokens=1000)
        assert estimate_cost(usage, "opus") == estimate_cost(usage, "claude-opus-4-5")

    def test_dated_alias_matches_base(self) -> None:
        """Dated ids share pricing with their base model."""
        assert get_pricing("claude-haiku-4-5-20251001") == PRICING_TABLE["claude-haiku-4-5"]


class TestEstimateCostEdgeCases:
    """Test edge cases for cost estimation."""

    def test_unknown_model_raises(self) -> None:
        """Unknown models raise instead of silently costing zero."""
        with pytest.raises(UnknownModelError) as exc_info:
            estimate_cost(UsageCounters(input_tokens=10), "gpt-4o")
        assert exc_info.value.model == "gpt-4o"
        assert "gpt-4o" in str(exc_info.value)

    def test_unknown_model_is_key_error(self) -> None:
        """UnknownModelError can be caught as KeyError."""
        with pytest.raises(KeyError):
            get_pricing("no-such-model")

    def test_zero_usage_costs_nothing(self) -> None:
        """Zero tokens cost 0.0 for known models."""
        assert estimate_cost(UsageCounters(), "claude-sonnet-4-5") == 0.0

    @pytest.mark.parametrize(
        "field",
        ["input_tokens", "output_tokens", "cache_creation_tokens", "cache_read_tokens"],
    )
    def test_monotone_in_each_counter(self, field: str) -> None:
        """Raising any billed counter never lowers the cost."""
        low = UsageCounters(input_tokens=100, output_tokens=100, cache_creation_tokens=100, cache_read_tokens=100)
        high = UsageCounters(input_tokens=100, output_tokens=100, cache_creation_tokens=100, cache_read_tokens=100)
        setattr(high, field, 10_000)
        assert estimate_cost(high, "claude-sonnet-4-5") > estimate_cost(low, "claude-sonnet-4-5") >= 0


class TestTotalTokens:
    """Test the billed-token total."""

    def test_sums_billed_counters_excluding_thinking(self) -> None:
        """total = input + output + cache_creation + cache_read."""
        usage = UsageCounters(
            input_tokens=10,
            output_tokens=20,
            cache_creation_tokens=30,
            cache_read_tokens=40,
            thinking_tokens=1000,
        )
        assert total_tokens(usage) == 100
