"""Collateral telemetry.

Polls the account collateral on a fixed period and writes it as a gauge.
Failures are logged and the loop keeps going; it never touches trading.
"""

from __future__ import annotations

import asyncio
from typing import Optional

from ..utils.logging import get_logger
from .api.ports import AccountClient, GaugeSink
from .config.settings import TelemetrySettings


class LogGaugeSink:
    """Writes gauges as structured log events."""

    def __init__(self, **labels):
        self.logger = get_logger("telemetry.gauge", **labels)

    async def write_gauge(self, metric: str, value: float) -> None:
        self.logger.info("Gauge", metric=metric, value=value)


class CollateralTracer:
    """Periodic collateral gauge writer."""

    def __init__(
        self,
        account: AccountClient,
        sink: GaugeSink,
        settings: TelemetrySettings,
        stop_event: Optional[asyncio.Event] = None,
    ):
        self.account = account
        self.sink = sink
        self.settings = settings
        self.stop_event = stop_event or asyncio.Event()
        self.logger = get_logger("telemetry.collateral")

        self.stats = {
            'samples': 0,
            'errors': 0,
        }

    async def run(self) -> None:
        """Sample once per interval until ``stop_event`` is set."""
        self.logger.info("Collateral tracer started", interval=self.settings.interval, metric=self.settings.metric)
        while not self.stop_event.is_set():
            await self.sample()
            try:
                await asyncio.wait_for(self.stop_event.wait(), timeout=self.settings.interval)
            except asyncio.TimeoutError:
                continue
        self.logger.info("Collateral tracer stopped", **self.stats)

    async def sample(self) -> Optional[float]:
        """Read collateral and write the gauge.

        Returns:
            The value written, or None if reading or writing failed.
        """
        try:
            collateral = await self.account.get_collateral()
            await self.sink.write_gauge(self.settings.metric, collateral)
        except Exception as e:
            self.stats['errors'] += 1
            self.logger.error("Failed to trace collateral", error=str(e), error_type=type(e).__name__)
            return None

        self.stats['samples'] += 1
        return collateral
