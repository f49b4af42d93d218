"""Contracts the trading core expects from its collaborators."""

from __future__ import annotations

import asyncio
from typing import Protocol, Sequence, Tuple

from ..models import Board, Execution, Order, Position, Side


class MarketDataClient(Protocol):
    """Single writer of the execution window and board snapshot."""

    async def subscribe(self, stop_event: asyncio.Event) -> None:
        """Block until the stream ends or ``stop_event`` is set.

        Raises:
            MarketDataConnectionError: On disconnect.
        """
        ...

    def recent_executions(self, window: float) -> Tuple[Execution, ...]:
        """Executions from the last ``window`` seconds, oldest first."""
        ...

    def current_board(self) -> Board:
        """Latest board snapshot.

        Raises:
            DataFetchError: If no snapshot has been received yet.
        """
        ...


class AccountClient(Protocol):
    """Positions and order management for one account."""

    async def get_positions(self) -> Sequence[Position]: ...

    async def place_order(self, side: Side, price: float, size: float, order_type: str = "LIMIT") -> str: ...

    async def cancel_order(self, order_id: str) -> None: ...

    async def cancel_all_orders(self) -> None: ...

    async def get_order(self, order_id: str) -> Order: ...

    async def get_collateral(self) -> float: ...


class GaugeSink(Protocol):
    """Destination for periodic scalar measurements."""

    async def write_gauge(self, metric: str, value: float) -> None: ...
