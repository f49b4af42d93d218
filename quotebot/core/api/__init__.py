"""Exchange contracts and client implementations."""

from .exceptions import (
    DataFetchError,
    ExchangeError,
    MarketDataConnectionError,
    OrderCancelError,
    OrderSubmitError,
)
from .paper import PaperAccountClient
from .ports import AccountClient, GaugeSink, MarketDataClient
from .public import PublicRestClient

__all__ = [
    'DataFetchError',
    'ExchangeError',
    'MarketDataConnectionError',
    'OrderCancelError',
    'OrderSubmitError',
    'PaperAccountClient',
    'AccountClient',
    'GaugeSink',
    'MarketDataClient',
    'PublicRestClient',
]
