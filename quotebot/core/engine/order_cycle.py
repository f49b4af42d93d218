"""Order cycle coordinator: one quote, two legs, then a clean book."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, List, Optional

import structlog

from ...strategies.market_making import (
    ComputationDegenerate,
    QuoteCalculator,
    QuoteDecision,
    QuoteParams,
)
from ...utils.logging import get_logger, log_error_with_context
from ..api.exceptions import DataFetchError, ExchangeError, OrderCancelError, OrderSubmitError
from ..api.ports import AccountClient, MarketDataClient
from ..config.settings import MarketMakingSettings
from ..models import Cycle, OrderStatus, Side


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CycleState(str, Enum):
    """Where the coordinator is within a cycle."""
    IDLE = "IDLE"
    QUOTING = "QUOTING"
    SUBMITTING = "SUBMITTING"
    HOLDING = "HOLDING"
    RECONCILING = "RECONCILING"
    ERROR_RECOVERY = "ERROR_RECOVERY"


@dataclass
class LegResult:
    """Outcome of one side of the quote."""
    side: Side
    price: float
    size: float
    order_id: Optional[str] = None
    final_status: Optional[OrderStatus] = None
    canceled: bool = False
    cancel_failed: bool = False


@dataclass
class CycleResult:
    """Outcome of one cycle."""
    cycle: Cycle
    decision: Optional[QuoteDecision] = None
    legs: List[LegResult] = field(default_factory=list)
    skipped: bool = False
    skip_reason: Optional[str] = None
    swept: bool = False


class OrderCycleCoordinator:
    """Runs submit -> hold -> reconcile for a SELL and a BUY leg each cycle.

    Either every leg ends in a terminal state or the cycle issues exactly one
    cancel-all before surfacing the failure to the scheduler. Nothing is
    retried within a cycle.
    """

    def __init__(
        self,
        settings: MarketMakingSettings,
        market_data: MarketDataClient,
        account: AccountClient,
        calculator: Optional[QuoteCalculator] = None,
        stop_event: Optional[asyncio.Event] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        """Initialize the coordinator.

        Args:
            settings: Quoting and order cycle settings
            market_data: Source of executions and the board
            account: Positions and order management
            calculator: Quote calculator; built from ``settings`` if None
            stop_event: Shutdown signal; ends a hold early when set
            clock: Source of "now" for cycle timestamps and momentum
        """
        self.settings = settings
        self.market_data = market_data
        self.account = account
        self.calculator = calculator or QuoteCalculator(QuoteParams.from_settings(settings))
        self.stop_event = stop_event or asyncio.Event()
        self.logger = get_logger("engine.order_cycle", product_code=settings.product_code)
        self._clock = clock

        self.state = CycleState.IDLE
        self.last_decision: Optional[QuoteDecision] = None
        self._cycle_number = 0

        self.stats = {
            'cycles': 0,
            'skipped': 0,
            'failed': 0,
            'orders_submitted': 0,
            'orders_canceled': 0,
            'orders_filled': 0,
            'cancel_all': 0,
        }

    async def run_cycle(self) -> CycleResult:
        """Run one full cycle.

        Returns:
            The cycle result; ``skipped`` is set when nothing was quoted.

        Raises:
            DataFetchError: If positions, executions or the board are unavailable.
            OrderSubmitError: If a leg could not be placed.
        """
        self._cycle_number += 1
        self.stats['cycles'] += 1
        cycle = Cycle(
            number=self._cycle_number,
            started_at=self._clock(),
            dwell=self.settings.hold_duration,
        )

        with structlog.contextvars.bound_contextvars(cycle=cycle.number):
            try:
                return await self._run(cycle)
            except asyncio.CancelledError as e:
                await self._recover(e)
                raise
            except Exception as e:
                self.stats['failed'] += 1
                await self._recover(e)
                raise
            finally:
                self._transition(CycleState.IDLE)

    async def _run(self, cycle: Cycle) -> CycleResult:
        self._transition(CycleState.QUOTING)
        self.last_decision = None

        positions = await self.account.get_positions()
        executions = self.market_data.recent_executions(self.settings.window_duration)
        board = self.market_data.current_board()

        try:
            decision = self.calculator.compute(executions, board, positions, now=self._clock())
        except ComputationDegenerate as e:
            self.stats['skipped'] += 1
            context = {'executions': len(executions), 'mid': board.mid_price, **e.context}
            self.logger.warning("Skipping cycle", reason=str(e), **context)
            return CycleResult(cycle=cycle, skipped=True, skip_reason=str(e))

        self.last_decision = decision

        if decision.flatten:
            self.stats['skipped'] += 1
            await self._cancel_all("flatten")
            return CycleResult(cycle=cycle, decision=decision, skipped=True, skip_reason="flatten")

        self.logger.info("Quote computed", executions=len(executions), **decision.log_context())

        self._transition(CycleState.SUBMITTING)
        quote = decision.quote
        tasks = [
            asyncio.create_task(self._run_leg(Side.SELL, quote.ask_price, quote.size, cycle)),
            asyncio.create_task(self._run_leg(Side.BUY, quote.bid_price, quote.size, cycle)),
        ]
        legs = await self._join_legs(tasks)

        result = CycleResult(cycle=cycle, decision=decision, legs=legs)
        if any(leg.cancel_failed for leg in legs):
            await self._cancel_all("reconcile sweep")
            result.swept = True
        return result

    async def _run_leg(self, side: Side, price: float, size: float, cycle: Cycle) -> LegResult:
        leg = LegResult(side=side, price=price, size=size)

        try:
            leg.order_id = await self.account.place_order(side, price, size, self.settings.order_type)
        except OrderSubmitError:
            raise
        except ExchangeError as e:
            raise OrderSubmitError(str(e), side=side.value, price=price, size=size,
                                   status_code=e.status_code, response_data=e.response_data) from e

        self.stats['orders_submitted'] += 1
        self.logger.info("Order created", side=side.value, order_id=leg.order_id, price=price, size=size)

        self._transition(CycleState.HOLDING)
        await self._hold(cycle.dwell)

        self._transition(CycleState.RECONCILING)
        await self._reconcile(leg)
        return leg

    async def _hold(self, dwell: float) -> None:
        """Wait out the dwell, returning early if shutdown is requested."""
        try:
            await asyncio.wait_for(self.stop_event.wait(), timeout=dwell)
        except asyncio.TimeoutError:
            return
        self.logger.info("Hold interrupted by shutdown", dwell=dwell)

    async def _reconcile(self, leg: LegResult) -> None:
        """Cancel the leg's order unless it already reached a terminal state."""
        try:
            order = await self.account.get_order(leg.order_id)
            leg.final_status = order.status
        except DataFetchError as e:
            self.logger.warning("Order status unavailable, canceling", order_id=leg.order_id, error=str(e))

        if leg.final_status is not None and leg.final_status.is_terminal:
            if leg.final_status is OrderStatus.FILLED:
                self.stats['orders_filled'] += 1
            self.logger.info("Order already terminal", side=leg.side.value, order_id=leg.order_id,
                             status=leg.final_status.value)
            return

        try:
            await self.account.cancel_order(leg.order_id)
        except ExchangeError as e:
            leg.cancel_failed = True
            error = e if isinstance(e, OrderCancelError) else OrderCancelError(str(e), order_id=leg.order_id)
            log_error_with_context(self.logger, error, {'side': leg.side.value, 'order_id': leg.order_id})
            return

        leg.canceled = True
        leg.final_status = OrderStatus.CANCELED
        self.stats['orders_canceled'] += 1
        self.logger.info("Order canceled", side=leg.side.value, order_id=leg.order_id)

    async def _join_legs(self, tasks: List[asyncio.Task]) -> List[LegResult]:
        """Wait for both legs; the first failure to complete is the one raised."""
        first_error: Optional[BaseException] = None
        pending = set(tasks)

        try:
            while pending:
                done, pending = await asyncio.wait(pending, return_when=asyncio.FIRST_COMPLETED)
                for task in (t for t in tasks if t in done):
                    if task.cancelled():
                        continue
                    error = task.exception()
                    if error is not None and first_error is None:
                        first_error = error

                if first_error is not None and self.settings.fail_fast and pending:
                    self.logger.info("Canceling sibling leg", error=str(first_error))
                    for task in pending:
                        task.cancel()
                    await asyncio.gather(*pending, return_exceptions=True)
                    pending = set()
        finally:
            leftovers = [t for t in tasks if not t.done()]
            for task in leftovers:
                task.cancel()
            if leftovers:
                await asyncio.gather(*leftovers, return_exceptions=True)

        if first_error is not None:
            raise first_error
        return [task.result() for task in tasks]

    async def _cancel_all(self, reason: str) -> bool:
        """Best-effort cancel-all; failures are logged, never raised."""
        self.stats['cancel_all'] += 1
        try:
            await self.account.cancel_all_orders()
        except Exception as e:
            log_error_with_context(self.logger, e, {'reason': reason})
            return False
        self.logger.info("Canceled all orders", reason=reason)
        return True

    async def _recover(self, error: BaseException) -> None:
        failed_state = self.state
        self._transition(CycleState.ERROR_RECOVERY)
        context = self.last_decision.log_context() if self.last_decision else {}
        if isinstance(error, asyncio.CancelledError):
            self.logger.warning("Cycle interrupted", failed_state=failed_state.value, **context)
        else:
            log_error_with_context(self.logger, error, context, failed_state=failed_state.value)
        await self._cancel_all("error recovery")

    def _transition(self, state: CycleState) -> None:
        if state is not self.state:
            self.logger.debug("Cycle state", state=state.value, previous=self.state.value)
            self.state = state

    def get_stats(self) -> dict:
        """Get coordinator statistics."""
        return {'state': self.state.value, **self.stats}
