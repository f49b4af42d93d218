"""Trading loop scheduler with restart-on-failure sessions."""

from __future__ import annotations

import asyncio
from typing import Optional

from ...utils.logging import get_logger, log_error_with_context
from ..api.exceptions import MarketDataConnectionError
from ..api.ports import MarketDataClient
from ..config.settings import MarketMakingSettings
from .order_cycle import OrderCycleCoordinator


class TradingLoopScheduler:
    """Keeps the market data subscription and the cycle timer running.

    A session owns two tasks: the market data subscription and the trading
    task that fires one cycle per tick. When either one fails, the other is
    canceled, the failure is logged and a fresh session starts. The process
    itself never exits because of a trading error.
    """

    def __init__(
        self,
        settings: MarketMakingSettings,
        market_data: MarketDataClient,
        coordinator: OrderCycleCoordinator,
        stop_event: Optional[asyncio.Event] = None,
    ):
        """Initialize the scheduler.

        Args:
            settings: Quoting and order cycle settings
            market_data: Market data client to subscribe each session
            coordinator: Runs one cycle per tick
            stop_event: Shutdown signal shared with the coordinator. Defaults
                to the coordinator's own event.
        """
        self.settings = settings
        self.market_data = market_data
        self.coordinator = coordinator
        self.stop_event = stop_event or coordinator.stop_event
        self.logger = get_logger("engine.trading_loop", product_code=settings.product_code)

        self.is_running = False
        self.stats = {
            'sessions': 0,
            'restarts': 0,
            'cycles': 0,
            'missed_ticks': 0,
        }

    async def run_forever(self) -> None:
        """Run sessions until ``stop()`` is called."""
        self.is_running = True
        self.logger.info("Trading loop started", interval=self.settings.interval,
                         dwell=self.settings.hold_duration)
        if self.settings.hold_duration >= self.settings.interval:
            self.logger.debug("Hold covers the whole interval; cycles will run back to back",
                              interval=self.settings.interval, dwell=self.settings.hold_duration)
        try:
            while not self.stop_event.is_set():
                try:
                    await self._run_session()
                except Exception as e:
                    if self.stop_event.is_set():
                        self.logger.warning("Session failed during shutdown", error=str(e))
                        break
                    self.stats['restarts'] += 1
                    self._log_failure(e)
                    if self.settings.restart_delay > 0:
                        await self._wait_or_stop(self.settings.restart_delay)
        finally:
            self.is_running = False
            self.logger.info("Trading loop stopped", **self.stats)

    def stop(self) -> None:
        """Request shutdown; the loop ends once the current cycle quiesces."""
        self.logger.info("Stopping trading loop")
        self.stop_event.set()

    async def _run_session(self) -> None:
        self.stats['sessions'] += 1
        self.logger.info("Starting session", session=self.stats['sessions'], restarts=self.stats['restarts'])

        subscription = asyncio.create_task(self.market_data.subscribe(self.stop_event))
        trading = asyncio.create_task(self._trading_loop())
        tasks = (subscription, trading)

        try:
            done, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)

            # A clean end of the stream on shutdown: let the running cycle finish.
            if (
                subscription in done
                and trading in pending
                and self.stop_event.is_set()
                and not subscription.cancelled()
                and subscription.exception() is None
            ):
                await trading
        finally:
            for task in tasks:
                if not task.done():
                    task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)

        for task in tasks:
            if task.cancelled():
                continue
            error = task.exception()
            if error is not None:
                raise error

        if not self.stop_event.is_set():
            raise MarketDataConnectionError("Session ended without a shutdown request")

    async def _trading_loop(self) -> None:
        """Fire one cycle per tick at a fixed rate.

        The first tick comes one interval after the session starts, so the
        subscription has seeded the window and board before anything is
        quoted. A cycle that overruns its tick is followed at once by the
        next one; any further ticks it covered are dropped, never queued.
        """
        loop = asyncio.get_running_loop()
        interval = self.settings.interval
        next_tick = loop.time() + interval

        while True:
            await self._wait_or_stop(next_tick - loop.time())
            if self.stop_event.is_set():
                return

            await self.coordinator.run_cycle()
            self.stats['cycles'] += 1

            next_tick += interval
            now = loop.time()
            if now > next_tick:
                missed = int((now - next_tick) // interval)
                if missed:
                    self.stats['missed_ticks'] += missed
                    next_tick += missed * interval
                    self.logger.debug("Dropped missed ticks", missed=missed)

    async def _wait_or_stop(self, delay: float) -> None:
        if delay <= 0:
            return
        try:
            await asyncio.wait_for(self.stop_event.wait(), timeout=delay)
        except asyncio.TimeoutError:
            pass

    def _log_failure(self, error: BaseException) -> None:
        decision = self.coordinator.last_decision
        context = decision.log_context() if decision is not None else {}
        log_error_with_context(
            self.logger,
            error,
            context,
            restarts=self.stats['restarts'],
            cycles=self.stats['cycles'],
            risk_rate=self.settings.risk_rate,
            lot_size=self.settings.lot_size,
        )
        self.logger.info("Restarting session", restart_delay=self.settings.restart_delay)

    def get_stats(self) -> dict:
        """Get scheduler statistics."""
        return {'is_running': self.is_running, **self.stats, 'coordinator': self.coordinator.get_stats()}
