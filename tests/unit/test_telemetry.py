"""
Unit tests for the collateral tracer.
"""
import asyncio

import pytest

from quotebot.core.api.exceptions import DataFetchError
from quotebot.core.config.settings import TelemetrySettings
from quotebot.core.telemetry import CollateralTracer, LogGaugeSink
from tests.mocks import FakeAccountClient, RecordingGaugeSink
from tests.utils.base_test import UnitTestCase


class TestCollateralTracer(UnitTestCase):
    """Test suite for CollateralTracer."""

    def setup_method(self):
        """Setup for each test."""
        super().setup_method()
        self.account = FakeAccountClient()
        self.sink = RecordingGaugeSink()
        self.settings = TelemetrySettings(interval=0.01)

    @pytest.mark.asyncio
    async def test_sample_writes_gauge(self):
        self.account.collateral = 123456.0
        tracer = CollateralTracer(self.account, self.sink, self.settings)

        value = await tracer.sample()

        assert value == 123456.0
        assert self.sink.writes == [("collateral", 123456.0)]

    @pytest.mark.asyncio
    async def test_failures_are_logged_not_raised(self):
        self.account.collateral_error = DataFetchError("collateral unavailable")
        tracer = CollateralTracer(self.account, self.sink, self.settings)

        assert await tracer.sample() is None
        assert tracer.stats['errors'] == 1
        assert self.sink.writes == []

    @pytest.mark.asyncio
    async def test_run_samples_until_stopped(self):
        stop_event = asyncio.Event()
        tracer = CollateralTracer(self.account, self.sink, self.settings, stop_event=stop_event)

        task = asyncio.create_task(tracer.run())
        assert await self.wait_for_condition(lambda: len(self.sink.writes) >= 3)
        stop_event.set()
        await asyncio.wait_for(task, timeout=1.0)

        assert tracer.stats['samples'] >= 3

    @pytest.mark.asyncio
    async def test_run_survives_errors(self):
        self.account.collateral_error = DataFetchError("collateral unavailable")
        stop_event = asyncio.Event()
        tracer = CollateralTracer(self.account, self.sink, self.settings, stop_event=stop_event)

        task = asyncio.create_task(tracer.run())
        assert await self.wait_for_condition(lambda: tracer.stats['errors'] >= 2)
        self.account.collateral_error = None
        assert await self.wait_for_condition(lambda: tracer.stats['samples'] >= 1)
        stop_event.set()
        await asyncio.wait_for(task, timeout=1.0)

    @pytest.mark.asyncio
    async def test_log_sink(self):
        sink = LogGaugeSink(product_code="FX_BTC_JPY")
        await sink.write_gauge("collateral", 1.0)
