"""Tests for the model price table and cost calculator."""

import pytest

from pulse.sdk.pricing import MODEL_ALIASES, calculate_cost, get_pricing, has_pricing


class TestCalculateCost:
    def test_gpt_4o(self) -> None:
        assert calculate_cost("gpt-4o", 1000, 500) == pytest.approx(0.75)

    def test_zero_tokens_cost_nothing(self) -> None:
        assert calculate_cost("gpt-4o", 0, 0) == 0

    def test_claude_sonnet(self) -> None:
        # 1M in at 300 + 1M out at 1500
        assert calculate_cost("claude-3-5-sonnet-20241022", 1_000_000, 1_000_000) == pytest.approx(1800)

    def test_gpt_4o_mini(self) -> None:
        assert calculate_cost("gpt-4o-mini", 2_000_000, 1_000_000) == pytest.approx(90)

    @pytest.mark.parametrize("alias", sorted(MODEL_ALIASES))
    def test_alias_costs_same_as_target(self, alias: str) -> None:
        target = MODEL_ALIASES[alias]
        assert calculate_cost(alias, 1234, 567) == calculate_cost(target, 1234, 567)

    def test_unknown_model_returns_none(self) -> None:
        assert calculate_cost("llama-3-70b", 1000, 1000) is None

    def test_empty_model_returns_none(self) -> None:
        assert calculate_cost("", 1000, 1000) is None


class TestHasPricing:
    def test_direct_and_alias(self) -> None:
        assert has_pricing("gpt-3.5-turbo")
        assert has_pricing("claude-3.5-haiku")
        assert get_pricing("claude-3-opus") == get_pricing("claude-3-opus-20240229")

    def test_unknown(self) -> None:
        assert not has_pricing("mistral-large")
