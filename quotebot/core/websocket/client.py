"""JSON-RPC WebSocket client for real-time market data streaming."""

from __future__ import annotations

import asyncio
import json
from typing import Any, Awaitable, Callable, Dict, List, Optional

import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

from ...utils.logging import get_logger
from ..api.exceptions import MarketDataConnectionError

MessageHandler = Callable[[Any], Awaitable[None]]


class WebSocketClient:
    """Connects, subscribes to channels and dispatches channel messages to handlers.

    The client never reconnects on its own: a dropped connection surfaces as
    ``MarketDataConnectionError`` and the caller decides how to restart.
    """

    def __init__(
        self,
        uri: str,
        channels: Optional[List[str]] = None,
        ping_interval: int = 20,
        timeout: int = 10,
    ):
        """Initialize WebSocket client.

        Args:
            uri: WebSocket server URI
            channels: Channels to subscribe to after connecting
            ping_interval: Ping interval in seconds
            timeout: Connection and receive timeout in seconds
        """
        self.logger = get_logger("websocket.client")

        self.uri = uri
        self.channels = list(channels or [])
        self.ping_interval = ping_interval
        self.timeout = timeout

        self.websocket = None
        self.is_connected = False

        self.message_handlers: Dict[str, List[MessageHandler]] = {}
        self._request_id = 0

        self.stats = {
            'messages_received': 0,
            'messages_sent': 0,
            'connections': 0,
            'errors': 0,
        }

    async def connect(self) -> None:
        """Open the connection and subscribe to every channel.

        Raises:
            MarketDataConnectionError: If the connection cannot be established.
        """
        self.logger.info("Connecting to WebSocket server", uri=self.uri)

        try:
            self.websocket = await asyncio.wait_for(
                websockets.connect(self.uri, ping_interval=self.ping_interval),
                timeout=self.timeout,
            )
        except (OSError, asyncio.TimeoutError, WebSocketException) as e:
            self.stats['errors'] += 1
            raise MarketDataConnectionError(f"Failed to connect: {e}", connection_url=self.uri) from e

        self.is_connected = True
        self.stats['connections'] += 1
        self.logger.info("WebSocket connection established", uri=self.uri)

        for channel in self.channels:
            await self.send_message(self._create_subscription_message(channel))
            self.logger.info("Subscribed to channel", channel=channel)

    async def disconnect(self) -> None:
        """Close the connection if open."""
        if self.websocket is None:
            return

        self.is_connected = False
        try:
            await self.websocket.close()
        except WebSocketException as e:
            self.logger.warning("Error closing WebSocket", error=str(e))
        finally:
            self.websocket = None
        self.logger.info("WebSocket disconnected")

    async def run(self, stop_event: asyncio.Event) -> None:
        """Connect and pump messages until ``stop_event`` is set.

        Raises:
            MarketDataConnectionError: If the server closes the connection.
        """
        await self.connect()
        try:
            await self._message_loop(stop_event)
        finally:
            await self.disconnect()

    async def _message_loop(self, stop_event: asyncio.Event) -> None:
        while not stop_event.is_set():
            try:
                message = await asyncio.wait_for(self.websocket.recv(), timeout=self.timeout)
            except asyncio.TimeoutError:
                await self._send_ping()
                continue
            except ConnectionClosed as e:
                self.is_connected = False
                self.stats['errors'] += 1
                raise MarketDataConnectionError(
                    f"WebSocket connection closed: {e}", connection_url=self.uri
                ) from e

            self.stats['messages_received'] += 1
            await self._handle_message(message)

    async def _send_ping(self) -> None:
        """Ping an idle connection; a dead peer shows up as ConnectionClosed on the next recv."""
        try:
            await self.websocket.ping()
        except ConnectionClosed as e:
            raise MarketDataConnectionError(
                f"WebSocket ping failed: {e}", connection_url=self.uri
            ) from e

    async def _handle_message(self, message: str) -> None:
        """Parse a JSON-RPC frame and dispatch ``channelMessage`` payloads."""
        try:
            data = json.loads(message)
        except json.JSONDecodeError as e:
            self.logger.error("Invalid JSON message", error=str(e))
            return

        if not isinstance(data, dict):
            return

        if data.get('method') != 'channelMessage':
            if 'error' in data:
                self.logger.warning("JSON-RPC error response", response=data['error'])
            return

        params = data.get('params') or {}
        channel = params.get('channel')
        for handler in self.message_handlers.get(channel, []):
            try:
                await handler(params.get('message'))
            except Exception as e:
                self.stats['errors'] += 1
                self.logger.error("Error in message handler", channel=channel, error=str(e))

    def _next_request_id(self) -> int:
        self._request_id += 1
        return self._request_id

    def _create_subscription_message(self, channel: str) -> Dict[str, Any]:
        return {
            'jsonrpc': '2.0',
            'method': 'subscribe',
            'params': {'channel': channel},
            'id': self._next_request_id(),
        }

    async def send_message(self, message: Dict[str, Any]) -> None:
        """Send a JSON message.

        Raises:
            MarketDataConnectionError: If not connected or the send fails.
        """
        if not self.is_connected or self.websocket is None:
            raise MarketDataConnectionError("Not connected", connection_url=self.uri)

        try:
            await self.websocket.send(json.dumps(message))
        except ConnectionClosed as e:
            self.is_connected = False
            raise MarketDataConnectionError(f"Send failed: {e}", connection_url=self.uri) from e
        self.stats['messages_sent'] += 1

    def add_message_handler(self, channel: str, handler: MessageHandler) -> None:
        """Register an async handler for a channel."""
        self.message_handlers.setdefault(channel, []).append(handler)
        self.logger.debug("Added message handler", channel=channel)

    def get_stats(self) -> Dict[str, Any]:
        """Get client statistics."""
        return {
            'is_connected': self.is_connected,
            'channels': list(self.channels),
            **self.stats,
        }
