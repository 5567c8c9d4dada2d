"""Deterministic token and cost estimation."""

from __future__ import annotations

import math

COST_DECIMALS = 6


def estimate_tokens(text: str, tokens_per_char: float) -> int:
    """Estimate tokens as ``ceil(len(text) / tokens_per_char)``.

    ``tokens_per_char`` is the configured characters-per-token ratio; the
    estimate counts code points, so it never depends on the encoding.
    """
    if not text:
        return 0
    return math.ceil(len(text) / max(tokens_per_char, 1e-9))


def estimate_cost_usd(
    input_tokens: int,
    output_tokens: int,
    *,
    price_per_k_in: float,
    price_per_k_out: float,
) -> float:
    """Return the estimated monetary cost of one run in USD."""
    cost = (input_tokens / 1000) * price_per_k_in + (
        output_tokens / 1000
    ) * price_per_k_out
    return round(cost, COST_DECIMALS)


def truncate(text: str, limit: int) -> str:
    """Cut ``text`` to ``limit`` characters, marking the cut with an ellipsis."""
    if len(text) <= limit:
        return text
    return f"{text[:limit]}…"
