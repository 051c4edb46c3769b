"""Shared test doubles."""
from datetime import datetime, timedelta, timezone

from crossarb.config import AgentConfig, Config, MonitoringConfig, TradingConfig
from crossarb.events import Topic
from crossarb.models import Chain, Opportunity, PriceQuote
from crossarb.venues.base import ChainPriceSource, Clock, SourceQuote


class FakeClock(Clock):
    """Clock the test moves by hand."""

    def __init__(self, start: datetime = None):
        self.current = start or datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)

    def now(self) -> datetime:
        return self.current

    def advance(self, seconds: float):
        self.current += timedelta(seconds=seconds)


class StubPriceSource(ChainPriceSource):
    """Returns queued prices; an Exception in the queue is raised instead."""

    def __init__(self, *responses, name: str = "stub"):
        self.name = name
        self.responses = list(responses)
        self.calls = []
        self.initialized = False

    async def initialize(self):
        self.initialized = True

    async def quote(self, asset: str) -> SourceQuote:
        self.calls.append(asset)
        response = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(response, Exception):
            raise response
        return SourceQuote(price=response, metadata={'source': self.name})


class Recorder:
    """Collects every event published on the given topics."""

    def __init__(self, bus, *topics: Topic):
        self.events = []
        for topic in topics:
            bus.subscribe(topic, self.events.append)

    def of_type(self, event_type):
        return [e for e in self.events if isinstance(e, event_type)]


def make_config(dry_run: bool = True, **trading) -> Config:
    trading_values = dict(
        min_profit_percentage=1.5,
        max_trade_size_usd=1000.0,
        trade_size_usd=1000.0,
        max_slippage_percentage=0.5,
    )
    trading_values.update(trading)
    return Config(
        dry_run=dry_run,
        trading=TradingConfig(**trading_values),
        monitoring=MonitoringConfig(interval_seconds=0.01, allow_proxy_fallback=False),
        agents=AgentConfig(retry_attempts=3, retry_delay_seconds=0.0, balance_refresh_seconds=0),
    )


def make_quote(chain: Chain, price: float, sourced_at: datetime, venue: str = "stub") -> PriceQuote:
    return PriceQuote(chain=chain, price=price, venue=venue, sourced_at=sourced_at)


def make_opportunity(
    buy_price: float = 100.0,
    sell_price: float = 103.0,
    trade_size_usd: float = 1000.0,
    timestamp: datetime = None,
) -> Opportunity:
    diff = sell_price - buy_price
    return Opportunity(
        buy_venue=Chain.SOLANA,
        sell_venue=Chain.ETHEREUM,
        buy_price=buy_price,
        sell_price=sell_price,
        profit_percentage=diff / buy_price * 100,
        price_diff=diff,
        trade_size_usd=trade_size_usd,
        profit_usd=diff * (trade_size_usd / buy_price),
        timestamp=timestamp or datetime(2024, 1, 1, tzinfo=timezone.utc),
    )
