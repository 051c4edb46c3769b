"""Tests for the price monitor agent."""
import asyncio
import pytest
from unittest.mock import AsyncMock

from crossarb.config import AgentConfig, MonitoringConfig
from crossarb.core.event_bus import EventBus
from crossarb.core.price_monitor import PriceMonitor, PriceSourceStage, PriceUnavailableError
from crossarb.events import AgentErrorEvent, PriceUpdate, Topic
from crossarb.models import Chain, MonitorRole
from helpers import FakeClock, Recorder, StubPriceSource


def make_monitor(primaries, fallbacks=(), role=MonitorRole.BUY, clock=None, **monitoring):
    settings = dict(interval_seconds=0.01, allow_proxy_fallback=False)
    settings.update(monitoring)
    monitor = PriceMonitor(
        name="TEST_MONITOR",
        chain=Chain.SOLANA,
        role=role,
        primaries=primaries,
        fallbacks=fallbacks,
        monitoring=MonitoringConfig(**settings),
        agents=AgentConfig(retry_attempts=3, retry_delay_seconds=0.0),
        clock=clock or FakeClock(),
    )
    bus = EventBus()
    monitor.attach_bus(bus)
    return monitor, Recorder(bus, Topic.PRICE_UPDATE, Topic.AGENT_ERROR)


class TestPriceSelection:
    """Which price wins when several sources answer."""

    @pytest.mark.asyncio
    async def test_buy_side_keeps_lowest(self):
        monitor, recorder = make_monitor([
            PriceSourceStage("a", StubPriceSource(101.0), "SOL"),
            PriceSourceStage("b", StubPriceSource(99.5), "SOL"),
        ])

        quote = await monitor.poll()

        assert quote.price == 99.5
        assert quote.venue == "b"
        updates = recorder.of_type(PriceUpdate)
        assert len(updates) == 1
        assert updates[0].quote is quote

    @pytest.mark.asyncio
    async def test_sell_side_keeps_highest(self):
        monitor, _ = make_monitor([
            PriceSourceStage("a", StubPriceSource(101.0), "SOL"),
            PriceSourceStage("b", StubPriceSource(99.5), "SOL"),
        ], role=MonitorRole.SELL)

        quote = await monitor.poll()

        assert quote.price == 101.0

    @pytest.mark.asyncio
    async def test_one_failing_primary_does_not_hide_the_other(self):
        monitor, _ = make_monitor([
            PriceSourceStage("down", StubPriceSource(ConnectionError("refused")), "SOL"),
            PriceSourceStage("up", StubPriceSource(100.0), "SOL"),
        ])

        quote = await monitor.poll()

        assert quote.price == 100.0
        assert quote.fallback_level == 0


class TestFallbacks:
    """Fallback chain behaviour."""

    @pytest.mark.asyncio
    async def test_fallback_used_after_primary_retries(self):
        primary = StubPriceSource(Exception("getaddrinfo ENOTFOUND"))
        fallback = StubPriceSource(98.0)
        monitor, recorder = make_monitor(
            [PriceSourceStage("jupiter", primary, "SOL")],
            [PriceSourceStage("coingecko", fallback, "solana")],
        )

        quote = await monitor.poll()

        assert len(primary.calls) == 3
        assert fallback.calls == ["solana"]
        assert quote.price == 98.0
        assert quote.is_fallback
        assert quote.fallback_level == 1
        assert quote.metadata['fallback'] is True

        errors = recorder.of_type(AgentErrorEvent)
        assert len(errors) == 1
        assert errors[0].critical is False

    @pytest.mark.asyncio
    async def test_invalid_primary_price_is_not_retried(self):
        primary = StubPriceSource(0.0)
        monitor, _ = make_monitor(
            [PriceSourceStage("jupiter", primary, "SOL")],
            [PriceSourceStage("coingecko", StubPriceSource(97.0), "solana")],
        )

        quote = await monitor.poll()

        assert len(primary.calls) == 1
        assert quote.price == 97.0

    @pytest.mark.asyncio
    async def test_fallbacks_tried_in_order_until_one_succeeds(self):
        first = StubPriceSource(ValueError("bad payload"))
        second = StubPriceSource(96.0)
        monitor, _ = make_monitor(
            [PriceSourceStage("jupiter", StubPriceSource(ValueError("down")), "SOL")],
            [PriceSourceStage("first", first, "x"), PriceSourceStage("second", second, "y")],
        )

        quote = await monitor.poll()

        assert len(first.calls) == 1
        assert quote.venue == "second"
        assert quote.fallback_level == 2

    @pytest.mark.asyncio
    async def test_proxy_fallback_skipped_unless_allowed(self):
        proxy = StubPriceSource(95.0)
        monitor, recorder = make_monitor(
            [PriceSourceStage("jupiter", StubPriceSource(ValueError("down")), "SOL")],
            [PriceSourceStage("binance SOL/USDC", proxy, "SOL/USDC", proxy=True)],
        )

        quote = await monitor.poll()

        assert quote is None
        assert proxy.calls == []
        assert monitor.misses == 1
        assert recorder.of_type(PriceUpdate) == []
        error_types = [e.error_type for e in recorder.of_type(AgentErrorEvent)]
        assert PriceUnavailableError.__name__ in error_types

    @pytest.mark.asyncio
    async def test_proxy_fallback_marked_when_allowed(self):
        monitor, _ = make_monitor(
            [PriceSourceStage("jupiter", StubPriceSource(ValueError("down")), "SOL")],
            [PriceSourceStage("binance SOL/USDC", StubPriceSource(95.0), "SOL/USDC", proxy=True)],
            allow_proxy_fallback=True,
        )

        quote = await monitor.poll()

        assert quote.price == 95.0
        assert quote.metadata['proxy'] is True


class TestHistory:
    """Timestamps and history."""

    @pytest.mark.asyncio
    async def test_sourced_at_never_goes_backwards(self):
        clock = FakeClock()
        monitor, _ = make_monitor([PriceSourceStage("a", StubPriceSource(100.0), "SOL")], clock=clock)

        first = await monitor.poll()
        clock.advance(-5)
        second = await monitor.poll()

        assert second.sourced_at == first.sourced_at

    @pytest.mark.asyncio
    async def test_history_is_bounded(self):
        monitor, _ = make_monitor(
            [PriceSourceStage("a", StubPriceSource(100.0), "SOL")], price_history_size=3
        )

        for _ in range(5):
            await monitor.poll()

        assert len(monitor.price_history) == 3
        assert monitor.updates == 5

    @pytest.mark.asyncio
    async def test_average_price_window(self):
        clock = FakeClock()
        source = StubPriceSource(90.0, 100.0, 110.0)
        monitor, _ = make_monitor([PriceSourceStage("a", source, "SOL")], clock=clock)

        await monitor.poll()
        clock.advance(120)
        await monitor.poll()
        clock.advance(10)
        await monitor.poll()

        assert monitor.average_price(window_seconds=60) == pytest.approx(105.0)
        assert monitor.average_price(window_seconds=1000) == pytest.approx(100.0)

    def test_average_price_empty(self):
        monitor, _ = make_monitor([PriceSourceStage("a", StubPriceSource(100.0), "SOL")])
        assert monitor.average_price() is None


class TestLifecycle:

    def test_requires_primary(self):
        with pytest.raises(ValueError):
            PriceMonitor("X", Chain.SOLANA, MonitorRole.BUY, primaries=[])

    @pytest.mark.asyncio
    async def test_start_polls_until_stopped(self):
        source = StubPriceSource(100.0)
        monitor, recorder = make_monitor([PriceSourceStage("a", source, "SOL")])

        await monitor.start()
        assert source.initialized
        assert monitor.is_running()

        await asyncio.sleep(0.05)
        await monitor.stop()

        assert not monitor.is_running()
        assert len(recorder.of_type(PriceUpdate)) >= 1

    @pytest.mark.asyncio
    async def test_start_failure_is_critical(self):
        source = StubPriceSource(100.0)
        source.initialize = AsyncMock(side_effect=RuntimeError("no session"))
        monitor, recorder = make_monitor([PriceSourceStage("a", source, "SOL")])

        with pytest.raises(RuntimeError):
            await monitor.start()

        assert not monitor.is_running()
        errors = recorder.of_type(AgentErrorEvent)
        assert errors[0].critical is True
