"""
Volatility and liquidity estimators.

All functions are pure and take the execution window oldest first. A window
that cannot support an estimate raises ``ComputationDegenerate`` instead of
letting NaN or infinity reach an order price.
"""

import math
import statistics
from datetime import datetime
from typing import Any, Dict, Iterable, Sequence

from ...core.models import BookLevel, Execution


class ComputationDegenerate(ValueError):
    """An estimator was fed a window it cannot produce a finite value from."""

    def __init__(self, message: str, **context: Any):
        """Initialize the error.

        Args:
            message: What could not be computed
            **context: Numeric values in effect, logged alongside the error
        """
        super().__init__(message)
        self.context: Dict[str, Any] = context


def variance(executions: Sequence[Execution]) -> float:
    """Population variance of trade prices, E[X^2] - E[X]^2.

    Raises:
        ComputationDegenerate: If the window is empty.
    """
    if not executions:
        raise ComputationDegenerate("No executions in window", executions=0)
    return statistics.pvariance([e.price for e in executions])


def spread_scale(price_variance: float, exponent: float) -> float:
    """Map variance to the spread scale ``d = variance ** exponent``."""
    if price_variance < 0 or not math.isfinite(price_variance):
        raise ComputationDegenerate("Variance is not a finite non-negative number", variance=price_variance)
    return price_variance ** exponent


def traded_amount(executions: Iterable[Execution], mid: float, d: float) -> float:
    """Total size traded strictly inside ``(mid - d, mid + d)``."""
    return sum(e.size for e in executions if mid - d < e.price < mid + d)


def resting_amount(bids: Iterable[BookLevel], asks: Iterable[BookLevel], mid: float, d: float) -> float:
    """Total resting size on both sides of the book strictly inside ``(mid - d, mid + d)``."""
    bid_total = sum(level.size for level in bids if mid - d < level.price < mid + d)
    ask_total = sum(level.size for level in asks if mid - d < level.price < mid + d)
    return bid_total + ask_total


def microstructure_term(traded: float, resting: float, risk: float) -> float:
    """Liquidity penalty ``2 / traded * ln(1 + risk / resting)``.

    Raises:
        ComputationDegenerate: If nothing traded or nothing rests inside the band.
    """
    if traded <= 0:
        raise ComputationDegenerate("No traded volume inside the band", traded=traded, resting=resting)
    if resting <= 0:
        raise ComputationDegenerate("No resting volume inside the band", traded=traded, resting=resting)
    return 2 / traded * math.log(1 + risk / resting)


def momentum(executions: Sequence[Execution], split_at: datetime) -> float:
    """Latest price after ``split_at`` relative to the mean of the whole window.

    Returns 0.0 when either side of the split holds no prints.
    """
    before = [e for e in executions if e.timestamp < split_at]
    after = [e for e in executions if e.timestamp >= split_at]
    if not before or not after:
        return 0.0
    return after[-1].price - statistics.fmean(e.price for e in executions)
