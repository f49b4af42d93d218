"""
Unit tests for the bitFlyer market data client.

Tests cover JSON-RPC message dispatch, execution window maintenance, board
snapshots and REST seeding on subscribe.
"""
import asyncio
import json
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, patch

import pytest

from quotebot.core.api.exceptions import DataFetchError, MarketDataConnectionError
from quotebot.core.api.public import parse_board, parse_exec_date, parse_execution
from quotebot.core.config.settings import MarketDataSettings
from quotebot.core.models import Board, BookLevel, Side
from quotebot.core.websocket.market_data import BitflyerMarketDataClient
from tests.utils.base_test import UnitTestCase

NOW = datetime(2024, 1, 1, 0, 1, tzinfo=timezone.utc)


def channel_message(channel: str, message) -> str:
    return json.dumps({
        "jsonrpc": "2.0",
        "method": "channelMessage",
        "params": {"channel": channel, "message": message},
    })


def execution_payload(id_: int, price: float, seconds_ago: float, side: str = "BUY", size: float = 0.01) -> dict:
    exec_date = (NOW - timedelta(seconds=seconds_ago)).strftime("%Y-%m-%dT%H:%M:%S.%f") + "3Z"
    return {
        "id": id_,
        "side": side,
        "price": price,
        "size": size,
        "exec_date": exec_date,
        "buy_child_order_acceptance_id": "JRF20240101-000000-000001",
        "sell_child_order_acceptance_id": "JRF20240101-000000-000002",
    }


class TestParsers(UnitTestCase):
    """Test cases for the payload parsers."""

    def test_exec_date_with_seven_digit_fraction(self):
        parsed = parse_exec_date("2019-04-10T05:47:06.7712345Z")
        assert parsed == datetime(2019, 4, 10, 5, 47, 6, 771234, tzinfo=timezone.utc)

    def test_exec_date_without_fraction(self):
        assert parse_exec_date("2019-04-10T05:47:06Z") == datetime(2019, 4, 10, 5, 47, 6, tzinfo=timezone.utc)

    def test_execution(self):
        execution = parse_execution(execution_payload(7, 1000000.0, 1.0, side="SELL"))
        assert execution.id == 7
        assert execution.side is Side.SELL
        assert execution.price == 1000000.0

    def test_execution_without_side(self):
        payload = execution_payload(8, 100.0, 0.0)
        payload["side"] = ""
        assert parse_execution(payload).side is None

    def test_board_uses_given_mid(self):
        board = parse_board({
            "mid_price": 100.5,
            "bids": [{"price": 99, "size": 1}, {"price": 100, "size": 2}],
            "asks": [{"price": 102, "size": 1}, {"price": 101, "size": 3}],
        })
        assert board.mid_price == 100.5
        assert board.best_bid == 100
        assert board.best_ask == 101

    def test_board_derives_mid(self):
        board = parse_board({"bids": [{"price": 99, "size": 1}], "asks": [{"price": 101, "size": 1}]})
        assert board.mid_price == 100

    def test_one_sided_board_without_mid_is_rejected(self):
        with pytest.raises(ValueError):
            parse_board({"bids": [{"price": 99, "size": 1}], "asks": []})


class TestBitflyerMarketDataClient(UnitTestCase):
    """Test suite for BitflyerMarketDataClient."""

    def setup_method(self):
        """Setup for each test."""
        super().setup_method()
        self.settings = MarketDataSettings(retention=60.0)
        self.rest_client = self.create_async_mock("rest_client")
        self.client = BitflyerMarketDataClient(
            "FX_BTC_JPY", self.settings, rest_client=self.rest_client, clock=lambda: NOW,
        )

    def test_channels(self):
        assert self.client.channels == [
            "lightning_executions_FX_BTC_JPY",
            "lightning_board_snapshot_FX_BTC_JPY",
        ]

    def test_subscription_message(self):
        message = self.client._create_subscription_message("lightning_executions_FX_BTC_JPY")
        assert message["method"] == "subscribe"
        assert message["params"] == {"channel": "lightning_executions_FX_BTC_JPY"}
        assert message["jsonrpc"] == "2.0"

    @pytest.mark.asyncio
    async def test_handle_executions_message(self):
        payload = [execution_payload(1, 100.0, 3.0), execution_payload(2, 101.0, 1.0)]

        await self.client._handle_message(channel_message(self.client.executions_channel, payload))

        window = self.client.recent_executions(10.0)
        assert [e.price for e in window] == [100.0, 101.0]
        assert isinstance(window, tuple)

    @pytest.mark.asyncio
    async def test_window_cutoff(self):
        payload = [execution_payload(1, 100.0, 5.0), execution_payload(2, 101.0, 1.0)]
        await self.client._handle_message(channel_message(self.client.executions_channel, payload))

        assert [e.price for e in self.client.recent_executions(2.0)] == [101.0]

    @pytest.mark.asyncio
    async def test_duplicate_executions_are_skipped(self):
        payload = [execution_payload(1, 100.0, 3.0), execution_payload(2, 101.0, 1.0)]
        await self.client._handle_message(channel_message(self.client.executions_channel, payload))
        await self.client._handle_message(channel_message(self.client.executions_channel, payload[1:]))

        assert len(self.client.recent_executions(10.0)) == 2

    @pytest.mark.asyncio
    async def test_expired_executions_are_pruned(self):
        payload = [execution_payload(1, 100.0, 120.0), execution_payload(2, 101.0, 1.0)]
        await self.client._handle_message(channel_message(self.client.executions_channel, payload))

        assert self.client.get_market_data_summary()["executions_buffered"] == 1

    @pytest.mark.asyncio
    async def test_handle_board_snapshot(self):
        snapshot = {
            "mid_price": 100.0,
            "bids": [{"price": 99.0, "size": 1.0}],
            "asks": [{"price": 101.0, "size": 2.0}],
        }

        await self.client._handle_message(channel_message(self.client.board_channel, snapshot))

        board = self.client.current_board()
        assert board.mid_price == 100.0
        assert board.asks == (BookLevel(101.0, 2.0),)

    def test_current_board_before_snapshot(self):
        with pytest.raises(DataFetchError):
            self.client.current_board()

    @pytest.mark.asyncio
    async def test_malformed_message_is_ignored(self):
        await self.client._handle_message("not json")
        await self.client._handle_message(channel_message(self.client.board_channel, {"bids": []}))

        assert self.client.stats['errors'] == 1
        assert self.client.recent_executions(10.0) == ()

    @pytest.mark.asyncio
    async def test_subscribe_seeds_from_rest(self):
        seeded = [parse_execution(execution_payload(1, 100.0, 2.0))]
        self.rest_client.get_executions.return_value = seeded
        self.rest_client.get_board.return_value = Board(mid_price=100.0)
        stop_event = asyncio.Event()
        stop_event.set()

        with patch.object(self.client, "run", AsyncMock()) as run:
            await self.client.subscribe(stop_event)

        self.rest_client.get_executions.assert_awaited_once_with("FX_BTC_JPY", self.settings.seed_count)
        run.assert_awaited_once_with(stop_event)
        assert self.client.recent_executions(10.0) == tuple(seeded)
        assert self.client.current_board().mid_price == 100.0

    @pytest.mark.asyncio
    async def test_seed_failure_is_not_fatal(self):
        self.rest_client.get_executions.side_effect = DataFetchError("GET /v1/executions failed", status_code=500)
        stop_event = asyncio.Event()
        stop_event.set()

        with patch.object(self.client, "run", AsyncMock()) as run:
            await self.client.subscribe(stop_event)

        run.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_stream_ending_without_stop_raises(self):
        with patch.object(self.client, "run", AsyncMock()):
            with pytest.raises(MarketDataConnectionError):
                await self.client.subscribe(asyncio.Event())

    @pytest.mark.asyncio
    async def test_connect_failure_raises_connection_error(self):
        with patch("quotebot.core.websocket.client.websockets") as websockets_module:
            websockets_module.connect.side_effect = OSError("refused")
            with pytest.raises(ConnectionError):
                await self.client.connect()

        assert self.client.is_connected is False
