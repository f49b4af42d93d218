"""
Market making strategy exports.

Volatility and liquidity estimators, the inventory skew and the quote
calculator that combines them into one bid/ask pair per cycle.
"""

from .estimators import (
    ComputationDegenerate,
    microstructure_term,
    momentum,
    resting_amount,
    spread_scale,
    traded_amount,
    variance,
)
from .quote import QuoteCalculator, QuoteDecision, QuoteParams, round_down_to_tick
from .skew import apply_trend_bias, inventory_offset, net_size, should_flatten

__all__ = [
    # Estimators
    "ComputationDegenerate",
    "microstructure_term",
    "momentum",
    "resting_amount",
    "spread_scale",
    "traded_amount",
    "variance",

    # Inventory skew
    "apply_trend_bias",
    "inventory_offset",
    "net_size",
    "should_flatten",

    # Quote calculator
    "QuoteCalculator",
    "QuoteDecision",
    "QuoteParams",
    "round_down_to_tick",
]
