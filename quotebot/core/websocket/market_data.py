"""Market data client: keeps the execution window and the board snapshot current."""

from __future__ import annotations

import asyncio
from collections import deque
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Deque, Dict, Iterable, Optional, Tuple

from ...utils.logging import get_logger
from ..api.exceptions import DataFetchError, MarketDataConnectionError
from ..api.public import PublicRestClient, parse_board, parse_execution
from ..config.settings import MarketDataSettings
from ..models import Board, Execution
from .client import WebSocketClient

Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class BitflyerMarketDataClient(WebSocketClient):
    """Realtime executions and board snapshots for one product.

    This client is the only writer of the window and the board. Readers get
    a tuple copy of the window and the current immutable ``Board``.
    """

    def __init__(
        self,
        product_code: str,
        settings: MarketDataSettings,
        rest_client: Optional[PublicRestClient] = None,
        clock: Clock = _utcnow,
    ):
        """Initialize market data client.

        Args:
            product_code: Product to subscribe to, e.g. ``FX_BTC_JPY``
            settings: Feed settings
            rest_client: Public REST client used to seed the window on subscribe
            clock: Source of "now" for window cutoffs
        """
        self.executions_channel = f"lightning_executions_{product_code}"
        self.board_channel = f"lightning_board_snapshot_{product_code}"

        super().__init__(
            uri=settings.ws_uri,
            channels=[self.executions_channel, self.board_channel],
            ping_interval=settings.ping_interval,
            timeout=settings.timeout,
        )

        self.logger = get_logger("websocket.market_data", product_code=product_code)
        self.product_code = product_code
        self.settings = settings
        self.rest_client = rest_client
        self._clock = clock

        self._executions: Deque[Execution] = deque(maxlen=settings.max_executions)
        self._board: Optional[Board] = None
        self._last_execution_id: Optional[int] = None

        self.add_message_handler(self.executions_channel, self._handle_executions)
        self.add_message_handler(self.board_channel, self._handle_board_snapshot)

    async def subscribe(self, stop_event: asyncio.Event) -> None:
        """Seed from REST, then stream until ``stop_event`` is set.

        Raises:
            MarketDataConnectionError: On disconnect, or if the stream ends
                while the bot is still running.
        """
        await self._seed()
        await self.run(stop_event)
        if not stop_event.is_set():
            raise MarketDataConnectionError("Market data stream ended", connection_url=self.uri)

    async def _seed(self) -> None:
        if self.rest_client is None or self.settings.seed_count == 0:
            return

        try:
            executions = await self.rest_client.get_executions(self.product_code, self.settings.seed_count)
            board = await self.rest_client.get_board(self.product_code)
        except DataFetchError as e:
            self.logger.warning("Failed to seed market data from REST", error=str(e))
            return

        self.ingest_executions(executions)
        self.update_board(board)
        self.logger.info("Seeded market data", executions=len(executions), mid_price=board.mid_price)

    async def _handle_executions(self, message: Any) -> None:
        self.ingest_executions(parse_execution(item) for item in message or [])

    async def _handle_board_snapshot(self, message: Any) -> None:
        self.update_board(parse_board(message))

    def ingest_executions(self, executions: Iterable[Execution]) -> None:
        """Append new prints, skipping ones already seen, and drop expired ones."""
        for execution in executions:
            if (
                execution.id is not None
                and self._last_execution_id is not None
                and execution.id <= self._last_execution_id
            ):
                continue
            self._executions.append(execution)
            if execution.id is not None:
                self._last_execution_id = execution.id
        self._prune()

    def update_board(self, board: Board) -> None:
        """Replace the board snapshot."""
        self._board = board

    def _prune(self) -> None:
        cutoff = self._clock() - timedelta(seconds=self.settings.retention)
        while self._executions and self._executions[0].timestamp < cutoff:
            self._executions.popleft()

    def recent_executions(self, window: float) -> Tuple[Execution, ...]:
        """Executions from the last ``window`` seconds, oldest first."""
        cutoff = self._clock() - timedelta(seconds=window)
        return tuple(e for e in self._executions if e.timestamp >= cutoff)

    def current_board(self) -> Board:
        """Latest board snapshot.

        Raises:
            DataFetchError: If no snapshot has been received yet.
        """
        board = self._board
        if board is None:
            raise DataFetchError(f"No board snapshot received yet for {self.product_code}")
        return board

    def get_market_data_summary(self) -> Dict[str, Any]:
        """Get summary of current market data."""
        return {
            'product_code': self.product_code,
            'executions_buffered': len(self._executions),
            'mid_price': self._board.mid_price if self._board else None,
            **self.get_stats(),
        }
