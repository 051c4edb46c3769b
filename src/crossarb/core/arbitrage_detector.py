"""Detects cross-venue price discrepancies from the monitors' price updates."""
from datetime import datetime
from typing import Dict, Optional, Tuple

from crossarb.config import MonitoringConfig, TradingConfig
from crossarb.core.agent import BusPort
from crossarb.core.event_bus import EventBus
from crossarb.core.validation import validate_opportunity
from crossarb.events import OpportunityDetected, OpportunitySkipped, PriceUpdate, Topic
from crossarb.models import Chain, Opportunity, VenueSnapshot
from crossarb.venues.base import Clock, SystemClock

STALE_DATA = "stale data"


class ArbitrageDetector:
    """Keeps the latest snapshot per venue and evaluates the spread on every update."""

    def __init__(
        self,
        trading: TradingConfig,
        monitoring: MonitoringConfig,
        venues: Tuple[Chain, Chain] = (Chain.SOLANA, Chain.ETHEREUM),
        clock: Optional[Clock] = None,
        name: str = "ARBITRAGE_DETECTOR",
    ):
        self.name = name
        self.trading = trading
        self.monitoring = monitoring
        self.venues = venues
        self.clock = clock or SystemClock()
        self.port = BusPort(name)
        self.log = self.port.log

        self.snapshots: Dict[Chain, Optional[VenueSnapshot]] = {venue: None for venue in venues}
        self.opportunity_count = 0
        self.skipped_count = 0
        self.last_opportunity_time: Optional[datetime] = None
        self.last_opportunity: Optional[Opportunity] = None
        self._running = False

    def attach_bus(self, bus: EventBus):
        self.port.attach(bus)

    def is_running(self) -> bool:
        return self._running

    async def start(self):
        self.port.subscribe(Topic.PRICE_UPDATE, self.handle_price_update)
        self._running = True
        self.log.info("Arbitrage detector started")

    async def stop(self):
        self.port.unsubscribe(Topic.PRICE_UPDATE, self.handle_price_update)
        self._running = False
        self.log.info("Arbitrage detector stopped")

    def handle_price_update(self, event: PriceUpdate):
        """Store the snapshot, then evaluate if both venues are known."""
        if event.chain not in self.snapshots:
            self.log.debug(f"Ignoring price for unmonitored chain {event.chain.value}")
            return

        self.snapshots[event.chain] = event.quote

        if all(snapshot is not None for snapshot in self.snapshots.values()):
            self.check_arbitrage_opportunity()

    def check_arbitrage_opportunity(self) -> Optional[Opportunity]:
        """Evaluate current snapshots; returns the opportunity if one was published."""
        try:
            return self._evaluate()
        except Exception as e:
            self.log.error(f"Arbitrage check failed: {e}")
            self.port.report_error(e, critical=False, context="check arbitrage")
            return None

    def _evaluate(self) -> Optional[Opportunity]:
        now = self.clock.now()
        first, second = (self.snapshots[venue] for venue in self.venues)

        stale = tuple(
            snapshot.chain for snapshot in (first, second)
            if snapshot.age_seconds(now) > self.monitoring.stale_after_seconds
        )
        if stale:
            names = ", ".join(chain.value for chain in stale)
            self.log.info(f"{names} price data is stale, skipping check")
            self._skip([f"{STALE_DATA}: {names}"], now, stale_venues=stale)
            return None

        opportunity = self.build_opportunity(first, second, now)
        validation = validate_opportunity(opportunity, self.trading, self.monitoring)

        if not validation.valid:
            self.log.info(
                f"Opportunity found but not profitable "
                f"({opportunity.profit_percentage:.2f}%): {validation.reason}"
            )
            self._skip(validation.errors, now, opportunity=opportunity)
            return None

        self.opportunity_count += 1
        self.last_opportunity_time = now
        self.last_opportunity = opportunity

        self.log.success(f"Arbitrage opportunity #{self.opportunity_count}: {opportunity}")
        self.port.publish(OpportunityDetected(
            source=self.name,
            opportunity=opportunity,
            sequence=self.opportunity_count,
        ))
        return opportunity

    def build_opportunity(self, a: VenueSnapshot, b: VenueSnapshot, now: datetime) -> Opportunity:
        """Lower price is the buy side; gross profit uses the configured notional."""
        price_diff = abs(a.price - b.price)
        lower_price = min(a.price, b.price)
        profit_percentage = price_diff / lower_price * 100

        buy, sell = (a, b) if a.price < b.price else (b, a)

        trade_size = self.trading.trade_size_usd
        profit_usd = (sell.price - buy.price) * (trade_size / buy.price)

        return Opportunity(
            buy_venue=buy.chain,
            sell_venue=sell.chain,
            buy_price=buy.price,
            sell_price=sell.price,
            profit_percentage=profit_percentage,
            price_diff=price_diff,
            trade_size_usd=trade_size,
            profit_usd=profit_usd,
            timestamp=now,
            buy_source=buy.venue,
            sell_source=sell.venue,
        )

    def _skip(self, reasons, now: datetime, opportunity: Opportunity = None, stale_venues=()):
        self.skipped_count += 1
        self.port.publish(OpportunitySkipped(
            source=self.name,
            reasons=tuple(reasons),
            timestamp=now,
            opportunity=opportunity,
            stale_venues=tuple(stale_venues),
        ))

    def current_spread(self) -> Optional[dict]:
        """Spread between the latest snapshots, regardless of freshness."""
        first, second = (self.snapshots[venue] for venue in self.venues)
        if first is None or second is None:
            return None

        price_diff = abs(first.price - second.price)
        return {
            f"{first.chain.value}_price": first.price,
            f"{second.chain.value}_price": second.price,
            'price_diff': price_diff,
            'spread_percentage': price_diff / min(first.price, second.price) * 100,
        }

    def get_stats(self) -> dict:
        return {
            'opportunity_count': self.opportunity_count,
            'skipped_count': self.skipped_count,
            'last_opportunity_time': self.last_opportunity_time,
            'current_spread': self.current_spread(),
        }
