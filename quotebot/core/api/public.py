"""Public (unauthenticated) REST endpoints used to seed market data.

Also hosts the payload parsers shared with the realtime feed, since both
transports deliver executions and boards in the same JSON shape.
"""

from __future__ import annotations

import time
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import aiohttp

from ...utils.logging import get_logger
from ..models import Board, BookLevel, Execution, Side
from .exceptions import DataFetchError


def parse_exec_date(value: str) -> datetime:
    """Parse exchange timestamps such as ``2019-04-10T05:47:06.7712345Z``.

    Fractions longer than microseconds are truncated; the result is UTC.
    """
    text = value.rstrip("Z")
    if "." in text:
        whole, fraction = text.split(".", 1)
        text = f"{whole}.{fraction[:6].ljust(6, '0')}"
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def parse_execution(data: Dict[str, Any]) -> Execution:
    """Build an Execution from one feed or REST record."""
    side = data.get("side") or None
    return Execution(
        price=float(data["price"]),
        size=float(data["size"]),
        timestamp=parse_exec_date(data["exec_date"]),
        side=Side(side) if side in ("BUY", "SELL") else None,
        id=data.get("id"),
    )


def parse_board(data: Dict[str, Any]) -> Board:
    """Build a Board from a snapshot payload."""
    bids = [BookLevel(price=float(b["price"]), size=float(b["size"])) for b in data.get("bids", [])]
    asks = [BookLevel(price=float(a["price"]), size=float(a["size"])) for a in data.get("asks", [])]
    mid = data.get("mid_price")
    return Board.from_levels(bids, asks, mid_price=float(mid) if mid is not None else None)


class PublicRestClient:
    """Minimal aiohttp client for the public board and execution endpoints."""

    def __init__(
        self,
        base_url: str,
        timeout: int = 10,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        """Initialize the client.

        Args:
            base_url: REST root, e.g. ``https://api.bitflyer.com``
            timeout: Request timeout in seconds
            session: Shared aiohttp session. If None, one is created lazily.
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.logger = get_logger("api.public")
        self._owned_session = session is None
        self.session = session

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def close(self) -> None:
        """Close the HTTP session if this client created it."""
        if self._owned_session and self.session is not None and not self.session.closed:
            await self.session.close()
        if self._owned_session:
            self.session = None

    def _get_session(self) -> aiohttp.ClientSession:
        if self.session is None or self.session.closed:
            self.session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout),
                headers={'Accept': 'application/json'},
            )
            self._owned_session = True
        return self.session

    async def _get(self, endpoint: str, params: Dict[str, Any]) -> Any:
        url = f"{self.base_url}{endpoint}"
        start_time = time.monotonic()

        try:
            async with self._get_session().get(url, params=params) as response:
                duration_ms = (time.monotonic() - start_time) * 1000
                data = await response.json(content_type=None)
                self.logger.debug("API call", http_method="GET", url=url,
                                  status_code=response.status, duration_ms=duration_ms)

                if response.status >= 400:
                    raise DataFetchError(
                        f"GET {endpoint} failed",
                        status_code=response.status,
                        response_data=data if isinstance(data, dict) else {"body": data},
                    )
                return data

        except aiohttp.ClientError as e:
            raise DataFetchError(f"GET {endpoint} failed: {e}") from e
        except ValueError as e:
            raise DataFetchError(f"GET {endpoint} returned invalid JSON: {e}") from e

    async def get_board(self, product_code: str) -> Board:
        """Fetch the current board snapshot."""
        data = await self._get("/v1/getboard", {"product_code": product_code})
        try:
            return parse_board(data)
        except (KeyError, TypeError, ValueError) as e:
            raise DataFetchError(f"Malformed board payload: {e}") from e

    async def get_executions(self, product_code: str, count: int = 100) -> List[Execution]:
        """Fetch recent executions, oldest first."""
        data = await self._get("/v1/executions", {"product_code": product_code, "count": count})
        try:
            executions = [parse_execution(item) for item in data]
        except (KeyError, TypeError, ValueError) as e:
            raise DataFetchError(f"Malformed executions payload: {e}") from e
        executions.reverse()
        return executions
