"""Exchange-facing exceptions for the market making bot."""

from __future__ import annotations

from typing import Any, Dict, Optional


class ExchangeError(Exception):
    """Base exception for all exchange-related errors."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        response_data: Optional[Dict[str, Any]] = None,
    ):
        """Initialize exchange error.

        Args:
            message: Error message
            status_code: HTTP status code, when the failure came from a response
            response_data: Response payload from the exchange
        """
        super().__init__(message)
        self.status_code = status_code
        self.response_data = response_data or {}

    def __str__(self) -> str:
        parts = [self.args[0]]
        if self.status_code:
            parts.append(f"(Status: {self.status_code})")
        return " ".join(parts)


class DataFetchError(ExchangeError):
    """Position, board or execution retrieval failed."""
    pass


class MarketDataConnectionError(DataFetchError, ConnectionError):
    """The market data stream disconnected or could not be established."""

    def __init__(
        self,
        message: str,
        connection_url: Optional[str] = None,
        **kwargs
    ):
        super().__init__(message, **kwargs)
        self.connection_url = connection_url


class OrderSubmitError(ExchangeError):
    """The exchange rejected an order placement."""

    def __init__(
        self,
        message: str,
        side: Optional[str] = None,
        price: Optional[float] = None,
        size: Optional[float] = None,
        **kwargs
    ):
        """Initialize order submit error.

        Args:
            message: Error message
            side: Order side
            price: Limit price that was rejected
            size: Order size
            **kwargs: Additional arguments passed to parent
        """
        super().__init__(message, **kwargs)
        self.side = side
        self.price = price
        self.size = size


class OrderCancelError(ExchangeError):
    """A cancel request failed."""

    def __init__(
        self,
        message: str,
        order_id: Optional[str] = None,
        **kwargs
    ):
        super().__init__(message, **kwargs)
        self.order_id = order_id
