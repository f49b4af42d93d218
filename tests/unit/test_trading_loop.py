"""
Unit tests for the trading loop scheduler.
"""
import asyncio

import pytest

from quotebot.core.api.exceptions import DataFetchError, OrderSubmitError
from quotebot.core.api.paper import PaperAccountClient
from quotebot.core.config.settings import MarketMakingSettings, PaperSettings
from quotebot.core.engine.order_cycle import OrderCycleCoordinator
from quotebot.core.engine.trading_loop import TradingLoopScheduler
from tests.mocks import FakeAccountClient, FakeMarketData, ScriptedCoordinator, disconnect_error, simple_board
from tests.utils.base_test import UnitTestCase


class TestTradingLoopScheduler(UnitTestCase):
    """Test suite for TradingLoopScheduler."""

    def setup_method(self):
        """Setup for each test."""
        super().setup_method()
        self.settings = MarketMakingSettings(interval=0.01)
        self.market_data = FakeMarketData()

    def make_scheduler(self, coordinator, **overrides) -> TradingLoopScheduler:
        settings = self.settings.model_copy(update=overrides) if overrides else self.settings
        return TradingLoopScheduler(settings, self.market_data, coordinator, stop_event=coordinator.stop_event)

    @pytest.mark.asyncio
    async def test_runs_cycles_until_stopped(self):
        coordinator = ScriptedCoordinator(asyncio.Event(), stop_after=3)
        scheduler = self.make_scheduler(coordinator)

        await asyncio.wait_for(scheduler.run_forever(), timeout=2.0)

        assert coordinator.completed == 3
        assert scheduler.stats['restarts'] == 0
        assert scheduler.stats['sessions'] == 1
        assert scheduler.is_running is False

    @pytest.mark.asyncio
    async def test_market_data_disconnect_restarts_session(self):
        self.market_data.subscribe_script = [disconnect_error()]
        coordinator = ScriptedCoordinator(asyncio.Event(), default_duration=0.01, stop_after=5)
        scheduler = self.make_scheduler(coordinator)

        await asyncio.wait_for(scheduler.run_forever(), timeout=2.0)

        assert self.market_data.subscribe_calls == 2
        assert scheduler.stats['restarts'] == 1
        assert scheduler.stats['sessions'] == 2

    @pytest.mark.asyncio
    async def test_stream_ending_counts_as_failure(self):
        self.market_data.subscribe_script = ["return"]
        coordinator = ScriptedCoordinator(asyncio.Event(), default_duration=0.01, stop_after=3)
        scheduler = self.make_scheduler(coordinator)

        await asyncio.wait_for(scheduler.run_forever(), timeout=2.0)

        assert scheduler.stats['restarts'] == 1

    @pytest.mark.asyncio
    async def test_trading_failure_restarts_session(self):
        steps = [OrderSubmitError("rejected"), DataFetchError("board unavailable")]
        coordinator = ScriptedCoordinator(asyncio.Event(), steps=steps, stop_after=4)
        scheduler = self.make_scheduler(coordinator)

        await asyncio.wait_for(scheduler.run_forever(), timeout=2.0)

        assert scheduler.stats['restarts'] == 2
        assert self.market_data.subscribe_calls == 3
        assert coordinator.calls == 4

    @pytest.mark.asyncio
    async def test_restart_delay_is_observed(self):
        steps = [OrderSubmitError("rejected")]
        coordinator = ScriptedCoordinator(asyncio.Event(), steps=steps, stop_after=2)
        scheduler = self.make_scheduler(coordinator, restart_delay=0.1)

        loop = asyncio.get_running_loop()
        started = loop.time()
        await asyncio.wait_for(scheduler.run_forever(), timeout=2.0)

        assert loop.time() - started >= 0.09

    @pytest.mark.asyncio
    async def test_slow_cycles_absorb_missed_ticks(self):
        coordinator = ScriptedCoordinator(asyncio.Event(), default_duration=0.035, stop_after=3)
        scheduler = self.make_scheduler(coordinator)

        await asyncio.wait_for(scheduler.run_forever(), timeout=2.0)

        assert coordinator.max_active == 1
        assert coordinator.calls == 3
        assert scheduler.stats['missed_ticks'] >= 3

    @pytest.mark.asyncio
    async def test_stop_waits_for_running_cycle(self):
        coordinator = ScriptedCoordinator(asyncio.Event(), default_duration=0.1)
        scheduler = self.make_scheduler(coordinator)

        task = asyncio.create_task(scheduler.run_forever())
        assert await self.wait_for_condition(lambda: coordinator.active == 1)
        scheduler.stop()
        await asyncio.wait_for(task, timeout=2.0)

        assert coordinator.calls == 1
        assert coordinator.completed == 1

    @pytest.mark.asyncio
    async def test_failed_session_cancels_trading_task_and_recovers(self):
        market_data = FakeMarketData(self.make_executions([99, 100, 101, 100, 100]), simple_board(100.0))
        # Disconnect while the first cycle is holding its orders.
        market_data.subscribe_script = [(0.07, disconnect_error())]
        account = FakeAccountClient()
        settings = MarketMakingSettings(interval=0.05)
        coordinator = OrderCycleCoordinator(settings, market_data, account)
        scheduler = TradingLoopScheduler(settings, market_data, coordinator)

        task = asyncio.create_task(scheduler.run_forever())
        assert await self.wait_for_condition(lambda: scheduler.stats['restarts'] == 1)
        scheduler.stop()
        await asyncio.wait_for(task, timeout=2.0)

        assert scheduler.stop_event is coordinator.stop_event
        assert len(account.calls_named("place_order")) == 2
        assert account.cancel_all_calls >= 1
        assert all(not order.is_open for order in account.orders.values())

    @pytest.mark.asyncio
    async def test_first_cycle_waits_one_interval(self):
        coordinator = ScriptedCoordinator(asyncio.Event(), stop_after=1)
        scheduler = self.make_scheduler(coordinator, interval=0.05)

        started = asyncio.get_running_loop().time()
        await asyncio.wait_for(scheduler.run_forever(), timeout=2.0)

        assert coordinator.started[0] - started >= 0.045

    @pytest.mark.asyncio
    async def test_board_arriving_after_subscribe_is_quoted(self):
        market_data = FakeMarketData(self.make_executions([99, 100, 101, 100, 100]))
        market_data.seed_board = simple_board(100.0)
        market_data.seed_delay = 0.005
        account = PaperAccountClient(market_data, PaperSettings())
        settings = MarketMakingSettings(interval=0.05, dwell=0.01)
        coordinator = OrderCycleCoordinator(settings, market_data, account)
        scheduler = TradingLoopScheduler(settings, market_data, coordinator)

        task = asyncio.create_task(scheduler.run_forever())
        assert await self.wait_for_condition(lambda: coordinator.stats['orders_submitted'] >= 4)
        scheduler.stop()
        await asyncio.wait_for(task, timeout=2.0)

        assert scheduler.stats['restarts'] == 0
        assert market_data.subscribe_calls == 1
        assert coordinator.stats['failed'] == 0

    @pytest.mark.asyncio
    async def test_overrunning_cycle_is_followed_immediately(self):
        coordinator = ScriptedCoordinator(asyncio.Event(), default_duration=0.06, stop_after=3)
        scheduler = self.make_scheduler(coordinator, interval=0.05)

        await asyncio.wait_for(scheduler.run_forever(), timeout=2.0)

        gaps = [b - a for a, b in zip(coordinator.started, coordinator.started[1:])]
        assert len(gaps) == 2
        assert all(gap < 0.09 for gap in gaps)
        assert scheduler.stats['missed_ticks'] == 0
