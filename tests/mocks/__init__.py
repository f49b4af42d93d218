"""
Fakes for the exchange contracts.
"""
from .exchange_mock import (
    FakeAccountClient,
    FakeMarketData,
    RecordingGaugeSink,
    ScriptedCoordinator,
    disconnect_error,
    simple_board,
)

__all__ = [
    'FakeAccountClient',
    'FakeMarketData',
    'RecordingGaugeSink',
    'ScriptedCoordinator',
    'disconnect_error',
    'simple_board',
]
