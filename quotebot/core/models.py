"""Domain types shared by the estimators, the order cycle and the exchange clients."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Iterable, Optional, Tuple


class Side(str, Enum):
    """Order side."""
    BUY = "BUY"
    SELL = "SELL"


class PositionSide(str, Enum):
    """Direction of an open position."""
    LONG = "LONG"
    SHORT = "SHORT"

    @classmethod
    def parse(cls, value: str) -> "PositionSide":
        """Accept LONG/SHORT as well as the BUY/SELL spelling exchanges report."""
        normalized = str(value).upper()
        if normalized in ("LONG", "BUY"):
            return cls.LONG
        if normalized in ("SHORT", "SELL"):
            return cls.SHORT
        raise ValueError(f"Unknown position side: {value!r}")


class OrderStatus(str, Enum):
    """Lifecycle of an order placed by the bot."""
    PENDING = "PENDING"
    ACTIVE = "ACTIVE"
    FILLED = "FILLED"
    CANCELED = "CANCELED"

    @property
    def is_terminal(self) -> bool:
        return self in (OrderStatus.FILLED, OrderStatus.CANCELED)


@dataclass(frozen=True)
class Execution:
    """A trade print from the public feed."""
    price: float
    size: float
    timestamp: datetime
    side: Optional[Side] = None
    id: Optional[int] = None


@dataclass(frozen=True)
class Position:
    """An open position as reported by the account."""
    side: PositionSide
    size: float

    @property
    def signed_size(self) -> float:
        return self.size if self.side is PositionSide.LONG else -self.size


@dataclass(frozen=True)
class BookLevel:
    """Resting liquidity at one price."""
    price: float
    size: float


@dataclass(frozen=True)
class Board:
    """Immutable order book snapshot."""
    mid_price: float
    bids: Tuple[BookLevel, ...] = ()
    asks: Tuple[BookLevel, ...] = ()

    @classmethod
    def from_levels(
        cls,
        bids: Iterable[BookLevel],
        asks: Iterable[BookLevel],
        mid_price: Optional[float] = None,
    ) -> "Board":
        """Build a snapshot, deriving the mid from the best bid and ask when not given.

        Raises:
            ValueError: If no mid is given and either side of the book is empty.
        """
        bids = tuple(sorted(bids, key=lambda level: level.price, reverse=True))
        asks = tuple(sorted(asks, key=lambda level: level.price))
        if mid_price is None:
            if not bids or not asks:
                raise ValueError("Cannot derive a mid price from a one-sided book")
            mid_price = (bids[0].price + asks[0].price) / 2
        return cls(mid_price=float(mid_price), bids=bids, asks=asks)

    @property
    def best_bid(self) -> Optional[float]:
        return self.bids[0].price if self.bids else None

    @property
    def best_ask(self) -> Optional[float]:
        return self.asks[0].price if self.asks else None


@dataclass(frozen=True)
class Quote:
    """Bid/ask pair derived for one cycle."""
    bid_price: float
    ask_price: float
    size: float

    @property
    def spread(self) -> float:
        return self.ask_price - self.bid_price


@dataclass
class Order:
    """An order placed by the bot; lives for one cycle."""
    id: str
    side: Side
    price: float
    size: float
    status: OrderStatus = OrderStatus.PENDING
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def is_open(self) -> bool:
        """Still able to trade, so it must be canceled at cycle end."""
        return not self.status.is_terminal


@dataclass(frozen=True)
class Cycle:
    """One tick of work."""
    number: int
    started_at: datetime
    dwell: float
