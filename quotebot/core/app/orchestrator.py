"""Application orchestrator: wires the components together and owns shutdown."""

from __future__ import annotations

import asyncio
import signal
from typing import Any, Dict, List, Optional

from ...utils.logging import get_logger, log_error_with_context
from ..api.paper import PaperAccountClient
from ..api.ports import AccountClient, GaugeSink, MarketDataClient
from ..api.public import PublicRestClient
from ..config.settings import Settings
from ..engine.order_cycle import OrderCycleCoordinator
from ..engine.trading_loop import TradingLoopScheduler
from ..telemetry import CollateralTracer, LogGaugeSink
from ..websocket.market_data import BitflyerMarketDataClient


class ApplicationOrchestrator:
    """
    Builds every component from one Settings value and runs them.

    The scheduler and the collateral tracer run side by side on one event
    loop and share a stop event. SIGINT and SIGTERM set that event; the
    scheduler lets the current cycle reconcile, and a final cancel-all is
    issued before the process exits.

    Any collaborator can be injected, which is how a live account client
    replaces the paper account and how tests replace the network.

    Example:
        >>> orchestrator = ApplicationOrchestrator(settings)
        >>> await orchestrator.run()
    """

    def __init__(
        self,
        settings: Settings,
        account: Optional[AccountClient] = None,
        market_data: Optional[MarketDataClient] = None,
        gauge_sink: Optional[GaugeSink] = None,
    ):
        """
        Initialize the orchestrator.

        Components are created in ``initialize()`` so they bind to the
        running event loop.

        Args:
            settings: Application settings
            account: Account client; defaults to the in-memory paper account
            market_data: Market data client; defaults to the bitFlyer feed
            gauge_sink: Gauge destination; defaults to structured log events
        """
        self.settings = settings
        self.logger = get_logger("app.orchestrator", product_code=settings.market_making.product_code)

        self.account = account
        self.market_data = market_data
        self.gauge_sink = gauge_sink

        self.stop_event: Optional[asyncio.Event] = None
        self.rest_client: Optional[PublicRestClient] = None
        self.coordinator: Optional[OrderCycleCoordinator] = None
        self.scheduler: Optional[TradingLoopScheduler] = None
        self.tracer: Optional[CollateralTracer] = None

        self.is_running = False
        self._signals_installed: List[signal.Signals] = []

    async def initialize(self) -> None:
        """Create every component that was not injected."""
        mm = self.settings.market_making
        self.stop_event = asyncio.Event()

        if self.market_data is None:
            self.rest_client = PublicRestClient(
                self.settings.market_data.rest_base_url,
                timeout=self.settings.market_data.timeout,
            )
            self.market_data = BitflyerMarketDataClient(
                mm.product_code,
                self.settings.market_data,
                rest_client=self.rest_client,
            )

        if self.account is None:
            self.account = PaperAccountClient(self.market_data, self.settings.paper)

        self.coordinator = OrderCycleCoordinator(
            mm,
            self.market_data,
            self.account,
            stop_event=self.stop_event,
        )
        self.scheduler = TradingLoopScheduler(mm, self.market_data, self.coordinator, stop_event=self.stop_event)

        if self.settings.telemetry.enabled:
            sink = self.gauge_sink or LogGaugeSink(product_code=mm.product_code)
            self.tracer = CollateralTracer(self.account, sink, self.settings.telemetry, stop_event=self.stop_event)

        self.logger.info(
            "Components initialized",
            strategy=mm.strategy,
            risk_rate=mm.risk_rate,
            lot_size=mm.lot_size,
            max_inventory_multiple=mm.max_inventory_multiple,
            interval=mm.interval,
            dwell=mm.hold_duration,
            telemetry=self.settings.telemetry.enabled,
        )

    async def run(self) -> None:
        """Run until a shutdown signal arrives, then clean up."""
        await self.initialize()
        self._install_signal_handlers()
        self.is_running = True

        tasks = [asyncio.create_task(self.scheduler.run_forever())]
        if self.tracer is not None:
            tasks.append(asyncio.create_task(self.tracer.run()))

        try:
            await asyncio.gather(*tasks)
        finally:
            for task in tasks:
                if not task.done():
                    task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            await self.shutdown()

    def request_shutdown(self, reason: str = "requested") -> None:
        """Ask every loop to stop after its current unit of work."""
        if self.stop_event is None or self.stop_event.is_set():
            return
        self.logger.info("Shutdown requested", reason=reason)
        self.stop_event.set()

    async def shutdown(self) -> None:
        """Cancel whatever is still resting and release resources."""
        self.request_shutdown("shutdown")
        self._remove_signal_handlers()

        if self.account is not None:
            try:
                await self.account.cancel_all_orders()
                self.logger.info("Final cancel-all issued")
            except Exception as e:
                log_error_with_context(self.logger, e, {'component': 'orchestrator', 'phase': 'shutdown'})

        if self.rest_client is not None:
            await self.rest_client.close()

        self.is_running = False
        self.logger.info("Shutdown complete")

    def _install_signal_handlers(self) -> None:
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, self.request_shutdown, sig.name)
            except (NotImplementedError, RuntimeError):
                # Event loops without signal support (Windows, non-main threads)
                continue
            self._signals_installed.append(sig)

    def _remove_signal_handlers(self) -> None:
        if not self._signals_installed:
            return
        loop = asyncio.get_running_loop()
        for sig in self._signals_installed:
            loop.remove_signal_handler(sig)
        self._signals_installed = []

    def get_status(self) -> Dict[str, Any]:
        """Get application status."""
        return {
            'is_running': self.is_running,
            'strategy': self.settings.market_making.strategy,
            'product_code': self.settings.market_making.product_code,
            'scheduler': self.scheduler.get_stats() if self.scheduler else None,
            'tracer': dict(self.tracer.stats) if self.tracer else None,
        }
