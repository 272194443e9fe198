"""
Model Pricing

Static price table used to estimate the cost of a call in cents.
Prices are cents per 1M tokens.
"""

from typing import Dict, Optional


# =============================================================================
# MODEL PRICING (cents per 1M tokens)
# =============================================================================

MODEL_PRICING: Dict[str, Dict[str, float]] = {
    # OpenAI
    "gpt-4o": {"input": 250, "output": 1000},
    "gpt-4o-mini": {"input": 15, "output": 60},
    "gpt-4-turbo": {"input": 1000, "output": 3000},
    "gpt-3.5-turbo": {"input": 50, "output": 150},

    # Anthropic
    "claude-3-5-sonnet-20241022": {"input": 300, "output": 1500},
    "claude-3-5-sonnet-latest": {"input": 300, "output": 1500},
    "claude-3-5-haiku-20241022": {"input": 80, "output": 400},
    "claude-3-5-haiku-latest": {"input": 80, "output": 400},
    "claude-3-opus-20240229": {"input": 1500, "output": 7500},
    "claude-3-opus-latest": {"input": 1500, "output": 7500},
}

# Dated snapshots and short names that share a price with a table entry
MODEL_ALIASES: Dict[str, str] = {
    "gpt-4o-2024-11-20": "gpt-4o",
    "gpt-4o-2024-08-06": "gpt-4o",
    "gpt-4o-2024-05-13": "gpt-4o",
    "gpt-4o-mini-2024-07-18": "gpt-4o-mini",
    "gpt-4-turbo-2024-04-09": "gpt-4-turbo",
    "gpt-4-turbo-preview": "gpt-4-turbo",
    "gpt-3.5-turbo-0125": "gpt-3.5-turbo",
    "gpt-3.5-turbo-1106": "gpt-3.5-turbo",

    "claude-3-5-sonnet": "claude-3-5-sonnet-20241022",
    "claude-3.5-sonnet": "claude-3-5-sonnet-20241022",
    "claude-3-5-haiku": "claude-3-5-haiku-20241022",
    "claude-3.5-haiku": "claude-3-5-haiku-20241022",
    "claude-3-opus": "claude-3-opus-20240229",
}


def get_pricing(model: str) -> Optional[Dict[str, float]]:
    """Get pricing for a model: exact match first, then alias."""
    if not model:
        return None
    if model in MODEL_PRICING:
        return MODEL_PRICING[model]

    target = MODEL_ALIASES.get(model)
    if target:
        return MODEL_PRICING.get(target)
    return None


def has_pricing(model: str) -> bool:
    return get_pricing(model) is not None


def calculate_cost(model: str, input_tokens: int, output_tokens: int) -> Optional[float]:
    """
    Calculate cost in cents for a request.

    Returns None when the model has no known price.

    Example:
        calculate_cost("gpt-4o", 1000, 500)
        # (1000 * 250 / 1M) + (500 * 1000 / 1M) = 0.75 cents
    """
    pricing = get_pricing(model)
    if pricing is None:
        return None

    input_cost = (input_tokens * pricing["input"]) / 1_000_000
    output_cost = (output_tokens * pricing["output"]) / 1_000_000
    return input_cost + output_cost
