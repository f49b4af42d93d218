"""Inventory skew: shifts both quotes against the current net position."""

from typing import Iterable

from ...core.models import Position


def net_size(positions: Iterable[Position]) -> float:
    """Signed inventory, LONG positive and SHORT negative."""
    return sum(p.signed_size for p in positions)


def inventory_offset(
    net: float,
    d: float,
    risk: float,
    lot_size: float,
    max_inventory_multiple: float,
) -> float:
    """Price shift ``-risk * d * net / lot_size / max_inventory_multiple``.

    Negative for a long book (quotes move down to sell it off), positive for
    a short one, zero when flat.
    """
    return -risk * d * net / lot_size / max_inventory_multiple


def should_flatten(net: float, lot_size: float, dead_band: float) -> bool:
    """True for a residual position smaller than ``dead_band`` lots.

    A dead band of 0 disables the check. The residual is compared in lots
    rounded to six places, so float residue from summed fills counts as flat.
    """
    if dead_band <= 0:
        return False
    lots = round(abs(net) / lot_size, 6)
    return 0 < lots < dead_band


def apply_trend_bias(net: float, momentum_value: float, trend_bias: float) -> float:
    """Lean the inventory figure against short-term momentum.

    Rising prints make the book look shorter than it is, so quotes move up
    with the market; falling prints do the opposite.
    """
    if trend_bias <= 0 or momentum_value == 0:
        return net
    if momentum_value > 0:
        return net - trend_bias
    return net + trend_bias
