"""WebSocket clients for real-time data streaming."""

from .client import WebSocketClient
from .market_data import BitflyerMarketDataClient

__all__ = [
    'WebSocketClient',
    'BitflyerMarketDataClient',
]
