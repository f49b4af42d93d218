"""In-memory paper account.

Implements the account contract against the live public feed so the bot can
run end to end without exchange credentials. Fill model:

- a resting SELL fills once a later print trades above its price;
- a resting BUY fills once a later print trades below its price;
- with ``fill_on_touch`` a print at exactly the order price also fills;
- MARKET orders fill immediately at the board mid.

Nothing is persisted. Open orders are kept until they fill or are canceled;
after that only the most recent ``closed_order_history`` stay queryable.
"""

from __future__ import annotations

import itertools
import math
from collections import OrderedDict
from dataclasses import replace
from datetime import datetime, timezone
from typing import Callable, Dict, List

from ...utils.logging import get_logger
from ..config.settings import PaperSettings
from ..models import Order, OrderStatus, Position, PositionSide, Side
from .exceptions import DataFetchError, OrderCancelError, OrderSubmitError
from .ports import MarketDataClient


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PaperAccountClient:
    """Simulated account backed by a market data client."""

    def __init__(
        self,
        market_data: MarketDataClient,
        settings: PaperSettings,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.market_data = market_data
        self.settings = settings
        self.logger = get_logger("api.paper")
        self._clock = clock

        self._orders: Dict[str, Order] = {}
        self._closed: OrderedDict[str, Order] = OrderedDict()
        self._ids = itertools.count(1)
        self.cash = settings.initial_collateral
        self.net_position = 0.0

    async def get_positions(self) -> List[Position]:
        self._match()
        if self.net_position == 0:
            return []
        side = PositionSide.LONG if self.net_position > 0 else PositionSide.SHORT
        return [Position(side=side, size=abs(self.net_position))]

    async def place_order(self, side: Side, price: float, size: float, order_type: str = "LIMIT") -> str:
        if not math.isfinite(price) or price <= 0:
            raise OrderSubmitError(f"Invalid price {price}", side=side.value, price=price, size=size)
        if not math.isfinite(size) or size <= 0:
            raise OrderSubmitError(f"Invalid size {size}", side=side.value, price=price, size=size)

        order_id = f"PAPER-{next(self._ids)}"
        order = Order(id=order_id, side=side, price=price, size=size,
                      status=OrderStatus.ACTIVE, created_at=self._clock())
        self._orders[order_id] = order

        if order_type.upper() == "MARKET":
            try:
                fill_price = self.market_data.current_board().mid_price
            except DataFetchError as e:
                del self._orders[order_id]
                raise OrderSubmitError(f"No board to fill market order: {e}",
                                       side=side.value, price=price, size=size) from e
            self._fill(order, fill_price)

        self.logger.debug("Paper order placed", order_id=order_id, side=side.value,
                          price=price, size=size, order_type=order_type)
        return order_id

    async def cancel_order(self, order_id: str) -> None:
        self._match()
        order = self._orders.get(order_id)
        if order is None:
            closed = self._closed.get(order_id)
            if closed is None:
                raise OrderCancelError(f"Unknown order {order_id}", order_id=order_id)
            raise OrderCancelError(f"Order {order_id} is already {closed.status.value}", order_id=order_id)
        self._close(order, OrderStatus.CANCELED)

    async def cancel_all_orders(self) -> None:
        self._match()
        for order in list(self._orders.values()):
            self._close(order, OrderStatus.CANCELED)

    async def get_order(self, order_id: str) -> Order:
        self._match()
        order = self._orders.get(order_id) or self._closed.get(order_id)
        if order is None:
            raise DataFetchError(f"Unknown order {order_id}")
        return replace(order)

    async def get_collateral(self) -> float:
        """Cash plus the open position marked at the board mid."""
        self._match()
        if self.net_position == 0:
            return self.cash
        return self.cash + self.net_position * self.market_data.current_board().mid_price

    def open_orders(self) -> List[Order]:
        return [replace(order) for order in self._orders.values()]

    def _match(self) -> None:
        now = self._clock()
        for order in list(self._orders.values()):
            window = max((now - order.created_at).total_seconds(), 0.0)
            for execution in self.market_data.recent_executions(window):
                if execution.timestamp < order.created_at:
                    continue
                if self._crosses(order, execution.price):
                    self._fill(order, order.price)
                    break

    def _crosses(self, order: Order, trade_price: float) -> bool:
        if order.side is Side.SELL:
            return trade_price > order.price or (self.settings.fill_on_touch and trade_price == order.price)
        return trade_price < order.price or (self.settings.fill_on_touch and trade_price == order.price)

    def _close(self, order: Order, status: OrderStatus) -> None:
        """Move an order to the bounded closed history."""
        order.status = status
        self._orders.pop(order.id, None)
        self._closed[order.id] = order
        while len(self._closed) > self.settings.closed_order_history:
            self._closed.popitem(last=False)

    def _fill(self, order: Order, price: float) -> None:
        self._close(order, OrderStatus.FILLED)
        signed = order.size if order.side is Side.BUY else -order.size
        self.net_position += signed
        self.cash -= signed * price
        self.logger.info("Paper order filled", order_id=order.id, side=order.side.value,
                         price=price, size=order.size, net_position=self.net_position)
