"""
Quote calculator.

Combines the volatility estimate, the optional liquidity penalty and the
inventory skew into one bid/ask pair around the board mid. The marketmake and
sma commands differ only in coefficients, so both run through this one class
with parameters taken from the strategy preset.
"""

import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import ROUND_FLOOR, Decimal
from typing import Optional, Sequence

from ...core.config.settings import MarketMakingSettings
from ...core.models import Board, Execution, Position, Quote
from ...utils.logging import get_logger
from .estimators import (
    ComputationDegenerate,
    microstructure_term,
    momentum,
    resting_amount,
    spread_scale,
    traded_amount,
    variance,
)
from .skew import apply_trend_bias, inventory_offset, net_size, should_flatten


def round_down_to_tick(price: float, tick_size: float) -> float:
    """Round a price down to the instrument tick, never to nearest or up."""
    tick = Decimal(str(tick_size))
    steps = (Decimal(str(price)) / tick).to_integral_value(rounding=ROUND_FLOOR)
    return float(steps * tick)


@dataclass(frozen=True)
class QuoteParams:
    """Coefficients for one quoting strategy."""
    risk_rate: float = 1.0
    lot_size: float = 0.01
    max_inventory_multiple: float = 4.0
    volatility_exponent: float = 0.55
    microstructure_enabled: bool = False
    dead_band: float = 1.0
    trend_bias: float = 0.0
    momentum_split: float = 1.0
    min_spread: float = 0.0
    tick_size: float = 1.0

    @classmethod
    def from_settings(cls, settings: MarketMakingSettings) -> "QuoteParams":
        return cls(
            risk_rate=settings.risk_rate,
            lot_size=settings.lot_size,
            max_inventory_multiple=settings.max_inventory_multiple,
            volatility_exponent=settings.volatility_exponent,
            microstructure_enabled=settings.microstructure_enabled,
            dead_band=settings.dead_band,
            trend_bias=settings.trend_bias,
            momentum_split=settings.momentum_split,
            min_spread=settings.min_spread,
            tick_size=settings.tick_size,
        )


@dataclass(frozen=True)
class QuoteDecision:
    """Everything computed for one cycle.

    ``quote`` is None when ``flatten`` is set: the residual position is
    below the dead band and the cycle should cancel instead of quoting.
    """
    net_size: float
    mid: float
    variance: Optional[float] = None
    d: Optional[float] = None
    spread: Optional[float] = None
    offset: Optional[float] = None
    momentum: float = 0.0
    quote: Optional[Quote] = None
    flatten: bool = False

    def log_context(self) -> dict:
        """Numeric fields for structured log events."""
        context = {
            'variance': self.variance,
            'd': self.d,
            'spread': self.spread,
            'offset': self.offset,
            'mid': self.mid,
            'net_size': self.net_size,
            'momentum': self.momentum,
        }
        if self.quote is not None:
            context.update(
                sell_price=self.quote.ask_price,
                buy_price=self.quote.bid_price,
                size=self.quote.size,
            )
        return context


class QuoteCalculator:
    """Turns a market snapshot and the current inventory into a quote."""

    def __init__(self, params: QuoteParams):
        self.params = params
        self.logger = get_logger("strategies.quote")

    def compute(
        self,
        executions: Sequence[Execution],
        board: Board,
        positions: Sequence[Position],
        now: Optional[datetime] = None,
    ) -> QuoteDecision:
        """Compute the decision for one cycle.

        Args:
            executions: Trailing execution window, oldest first
            board: Current board snapshot
            positions: Open positions
            now: Reference instant for the momentum split. Defaults to the
                latest execution time.

        Returns:
            The quote decision

        Raises:
            ComputationDegenerate: If the window is empty, the liquidity
                penalty has nothing to measure, or any price is not finite.
        """
        p = self.params
        mid = board.mid_price
        net = net_size(positions)

        if should_flatten(net, p.lot_size, p.dead_band):
            self.logger.info("Residual inventory inside dead band", net_size=net, dead_band=p.dead_band)
            return QuoteDecision(net_size=net, mid=mid, flatten=True)

        price_variance = variance(executions)
        d = spread_scale(price_variance, p.volatility_exponent)

        spread = p.risk_rate * d
        if p.microstructure_enabled:
            traded = traded_amount(executions, mid, d)
            resting = resting_amount(board.bids, board.asks, mid, d)
            spread += microstructure_term(traded, resting, p.risk_rate)
        spread = max(spread, p.min_spread)

        trend = 0.0
        skewed_net = net
        if p.trend_bias > 0:
            reference = now if now is not None else executions[-1].timestamp
            trend = momentum(executions, reference - timedelta(seconds=p.momentum_split))
            skewed_net = apply_trend_bias(net, trend, p.trend_bias)

        offset = inventory_offset(skewed_net, d, p.risk_rate, p.lot_size, p.max_inventory_multiple)

        context = dict(variance=price_variance, d=d, spread=spread, offset=offset, mid=mid, net_size=net)
        if not (math.isfinite(spread) and math.isfinite(offset) and math.isfinite(mid)):
            raise ComputationDegenerate("Quote inputs are not finite", **context)

        sell_price = round_down_to_tick(mid + offset + spread / 2, p.tick_size)
        buy_price = round_down_to_tick(mid + offset - spread / 2, p.tick_size)
        if buy_price <= 0:
            raise ComputationDegenerate("Buy price is not positive", buy_price=buy_price, **context)

        return QuoteDecision(
            net_size=net,
            mid=mid,
            variance=price_variance,
            d=d,
            spread=spread,
            offset=offset,
            momentum=trend,
            quote=Quote(bid_price=buy_price, ask_price=sell_price, size=p.lot_size),
        )
