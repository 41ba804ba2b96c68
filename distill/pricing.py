# distill/pricing.py

from __future__ import annotations


# USD per 1M tokens. Declarative: update prices without changing logic.
MODEL_PRICING: dict[str, dict[str, float]] = {
    "claude-sonnet-4-20250514": {"input": 3.0, "output": 15.0},
    "claude-sonnet-4-5-20250929": {"input": 3.0, "output": 15.0},
    "claude-opus-4-20250514": {"input": 15.0, "output": 75.0},
    "claude-haiku-4-5-20251001": {"input": 1.0, "output": 5.0},
    "claude-3-5-haiku-20241022": {"input": 0.8, "output": 4.0},
    "gpt-4o": {"input": 2.5, "output": 10.0},
    "gpt-4o-mini": {"input": 0.15, "output": 0.6},
    "gemini-2.0-flash": {"input": 0.1, "output": 0.4},
}

# Used for models missing from the table
DEFAULT_PRICING: dict[str, float] = {"input": 1.0, "output": 3.0}


def compute_cost(model: str, input_tokens: int, output_tokens: int) -> float:
    """Cost in USD of one call. Unknown models fall back to DEFAULT_PRICING."""
    pricing = MODEL_PRICING.get(model, DEFAULT_PRICING)
    return (
        input_tokens / 1_000_000 * pricing["input"]
        + output_tokens / 1_000_000 * pricing["output"]
    )
