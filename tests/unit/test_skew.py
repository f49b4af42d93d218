"""
Unit tests for the inventory skew.
"""
import pytest

from quotebot.core.models import Position, PositionSide
from quotebot.strategies.market_making.skew import (
    apply_trend_bias,
    inventory_offset,
    net_size,
    should_flatten,
)
from tests.utils.base_test import UnitTestCase


class TestNetSize(UnitTestCase):
    """Test cases for the signed inventory."""

    def test_long_and_short_net_out(self):
        positions = [Position(PositionSide.LONG, 1.0), Position(PositionSide.SHORT, 0.4)]
        assert net_size(positions) == pytest.approx(0.6)

    def test_flat(self):
        assert net_size([]) == 0

    def test_short_only(self):
        assert net_size([Position(PositionSide.SHORT, 0.02), Position(PositionSide.SHORT, 0.01)]) == pytest.approx(-0.03)

    def test_exchange_spelling_is_normalized(self):
        positions = [Position(PositionSide.parse("BUY"), 0.5), Position(PositionSide.parse("SELL"), 0.2)]
        assert net_size(positions) == pytest.approx(0.3)


class TestInventoryOffset(UnitTestCase):
    """Test cases for the price offset."""

    def test_flat_book_has_no_offset(self):
        assert inventory_offset(0.0, d=2.0, risk=1.0, lot_size=0.01, max_inventory_multiple=4) == 0

    def test_formula(self):
        offset = inventory_offset(0.02, d=2.0, risk=1.5, lot_size=0.01, max_inventory_multiple=4)
        assert offset == pytest.approx(-1.5 * 2.0 * 0.02 / 0.01 / 4)

    def test_monotonic_in_inventory(self):
        offsets = [
            inventory_offset(net, d=1.0, risk=1.0, lot_size=0.01, max_inventory_multiple=4)
            for net in (-0.04, -0.02, 0.0, 0.02, 0.04)
        ]
        assert offsets == sorted(offsets, reverse=True)
        assert offsets[0] > 0 > offsets[-1]


class TestShouldFlatten(UnitTestCase):
    """Test cases for the dead band signal."""

    def test_zero_band_disables(self):
        assert should_flatten(0.001, lot_size=0.01, dead_band=0) is False

    def test_residual_inside_band(self):
        assert should_flatten(0.004, lot_size=0.01, dead_band=0.5) is True
        assert should_flatten(-0.004, lot_size=0.01, dead_band=0.5) is True

    def test_flat_book_never_flattens(self):
        assert should_flatten(0.0, lot_size=0.01, dead_band=0.5) is False

    def test_full_lot_is_quoted(self):
        assert should_flatten(0.01, lot_size=0.01, dead_band=0.5) is False

    def test_float_residue_counts_as_flat(self):
        net = 0.1 + 0.2 - 0.3
        assert net != 0
        assert should_flatten(net, lot_size=0.01, dead_band=1.0) is False

    def test_summed_lots_are_not_a_residual(self):
        net = 0.1 + 0.2 - 0.29  # a hair under one lot
        assert should_flatten(net, lot_size=0.01, dead_band=1.0) is False
        assert should_flatten(0.004, lot_size=0.01, dead_band=1.0) is True


class TestTrendBias(UnitTestCase):
    """Test cases for the momentum lean."""

    def test_positive_momentum_reduces_net(self):
        assert apply_trend_bias(0.0, 3.0, 0.02) == pytest.approx(-0.02)

    def test_negative_momentum_increases_net(self):
        assert apply_trend_bias(0.01, -3.0, 0.02) == pytest.approx(0.03)

    def test_no_momentum(self):
        assert apply_trend_bias(0.01, 0.0, 0.02) == 0.01

    def test_disabled(self):
        assert apply_trend_bias(0.01, 5.0, 0.0) == 0.01
