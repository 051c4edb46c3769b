"""Tests for the event bus and the agent bus port."""
import asyncio
import pytest
from datetime import datetime, timezone

from crossarb.core.agent import Agent, BusPort
from crossarb.core.event_bus import EventBus
from crossarb.events import AgentErrorEvent, PriceUpdate, Topic, TradeCompleted
from crossarb.infrastructure.error_handling import BusNotAttachedError
from crossarb.models import Chain
from helpers import make_quote

NOW = datetime(2024, 1, 1, tzinfo=timezone.utc)


def price_event(price: float = 100.0) -> PriceUpdate:
    return PriceUpdate(source="test", quote=make_quote(Chain.SOLANA, price, NOW))


class TestEventBus:
    """Test suite for topic routing and handler isolation."""

    @pytest.fixture
    def bus(self):
        return EventBus()

    @pytest.mark.asyncio
    async def test_sync_handlers_run_in_subscription_order(self, bus):
        calls = []
        bus.subscribe(Topic.PRICE_UPDATE, lambda e: calls.append("first"))
        bus.subscribe(Topic.PRICE_UPDATE, lambda e: calls.append("second"))

        bus.publish(price_event())

        assert calls == ["first", "second"]

    @pytest.mark.asyncio
    async def test_only_matching_topic_is_delivered(self, bus):
        received = []
        bus.subscribe(Topic.TRADE_COMPLETE, received.append)

        bus.publish(price_event())

        assert received == []

    @pytest.mark.asyncio
    async def test_failing_handler_does_not_block_others(self, bus):
        received = []

        def broken(event):
            raise RuntimeError("boom")

        bus.subscribe(Topic.PRICE_UPDATE, broken)
        bus.subscribe(Topic.PRICE_UPDATE, received.append)

        bus.publish(price_event(1.0))
        bus.publish(price_event(2.0))

        assert [e.price for e in received] == [1.0, 2.0]
        assert bus.handler_errors == 2

    @pytest.mark.asyncio
    async def test_async_handler_is_not_awaited_by_publish(self, bus):
        received = []

        async def handler(event):
            await asyncio.sleep(0)
            received.append(event)

        bus.subscribe(Topic.PRICE_UPDATE, handler)
        bus.publish(price_event())

        assert received == []
        assert bus.pending_tasks == 1

        await bus.drain()
        assert len(received) == 1
        assert bus.pending_tasks == 0

    @pytest.mark.asyncio
    async def test_async_handler_failure_is_isolated(self, bus):
        received = []

        async def broken(event):
            raise RuntimeError("async boom")

        async def healthy(event):
            received.append(event)

        bus.subscribe(Topic.PRICE_UPDATE, broken)
        bus.subscribe(Topic.PRICE_UPDATE, healthy)

        bus.publish(price_event())
        await bus.drain()

        assert len(received) == 1
        assert bus.handler_errors == 1

    def test_duplicate_subscription_is_ignored(self, bus):
        handler = lambda e: None
        bus.subscribe(Topic.PRICE_UPDATE, handler)
        bus.subscribe(Topic.PRICE_UPDATE, handler)

        assert bus.subscriber_count(Topic.PRICE_UPDATE) == 1

    def test_unsubscribe(self, bus):
        handler = lambda e: None
        bus.subscribe(Topic.PRICE_UPDATE, handler)

        assert bus.unsubscribe(Topic.PRICE_UPDATE, handler) is True
        assert bus.unsubscribe(Topic.PRICE_UPDATE, handler) is False
        assert bus.subscriber_count(Topic.PRICE_UPDATE) == 0

    def test_publish_without_subscribers(self, bus):
        bus.publish(price_event())
        assert bus.published_count == 1

    def test_clear_removes_all_subscribers(self, bus):
        bus.subscribe(Topic.PRICE_UPDATE, lambda e: None)
        bus.subscribe(Topic.AGENT_ERROR, lambda e: None)

        bus.clear()

        assert all(bus.subscriber_count(topic) == 0 for topic in Topic)


class TestBusPort:
    """Test suite for the agent side of the bus."""

    def test_publish_without_bus_raises(self):
        port = BusPort("LONELY")

        with pytest.raises(BusNotAttachedError):
            port.publish(price_event())

    def test_unsubscribe_without_bus_is_noop(self):
        port = BusPort("LONELY")
        port.unsubscribe(Topic.PRICE_UPDATE, lambda e: None)
        assert not port.attached

    def test_report_error_publishes_agent_error(self):
        bus = EventBus()
        received = []
        bus.subscribe(Topic.AGENT_ERROR, received.append)

        port = BusPort("SOLANA_MONITOR")
        port.attach(bus)
        port.report_error(ValueError("bad price"), critical=True, context="poll")

        assert len(received) == 1
        event = received[0]
        assert isinstance(event, AgentErrorEvent)
        assert event.source == "SOLANA_MONITOR"
        assert event.error == "bad price"
        assert event.error_type == "ValueError"
        assert event.critical is True
        assert event.context == "poll"

    def test_agents_satisfy_protocol(self):
        from crossarb.core.arbitrage_detector import ArbitrageDetector
        from crossarb.config import MonitoringConfig, TradingConfig

        detector = ArbitrageDetector(TradingConfig(), MonitoringConfig())
        assert isinstance(detector, Agent)

    def test_event_topics_are_fixed_per_type(self):
        assert PriceUpdate.topic == Topic.PRICE_UPDATE
        assert TradeCompleted.topic == Topic.TRADE_COMPLETE
        assert Topic.ARBITRAGE_OPPORTUNITY.value == "arbitrage:opportunity"
