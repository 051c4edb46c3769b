"""Polls venue price sources for one chain and publishes price updates."""
import asyncio
from collections import deque
from dataclasses import dataclass
from datetime import timedelta
from typing import Deque, List, Optional, Sequence, Tuple

from crossarb.config import AgentConfig, MonitoringConfig
from crossarb.core.agent import BusPort
from crossarb.core.event_bus import EventBus
from crossarb.core.validation import validate_price
from crossarb.events import PriceUpdate
from crossarb.infrastructure.error_handling import (
    CrossArbError, RetryableOperation, is_network_error,
)
from crossarb.models import Chain, MonitorRole, PriceQuote
from crossarb.venues.base import ChainPriceSource, Clock, SourceQuote, SystemClock


class PriceUnavailableError(CrossArbError):
    """No source produced a valid price this tick."""


@dataclass(frozen=True)
class PriceSourceStage:
    """One source in a monitor's acquisition plan."""
    label: str
    source: ChainPriceSource
    asset: str
    # quotes a correlated pair rather than the reference asset itself
    proxy: bool = False


@dataclass(frozen=True)
class _Candidate:
    stage: PriceSourceStage
    price: float
    quote: SourceQuote
    fallback_level: int


class PriceMonitor:
    """
    Price acquisition agent for one chain.

    Every tick the primary stages are queried concurrently, each with its own
    retry budget. Only when all primaries fail is the fallback chain walked,
    one attempt per stage, stopping at the first valid price. When several
    primaries answer, the monitor's role picks the winner: a buy-side monitor
    keeps the lowest price, a sell-side monitor the highest.
    """

    def __init__(
        self,
        name: str,
        chain: Chain,
        role: MonitorRole,
        primaries: Sequence[PriceSourceStage],
        fallbacks: Sequence[PriceSourceStage] = (),
        monitoring: Optional[MonitoringConfig] = None,
        agents: Optional[AgentConfig] = None,
        clock: Optional[Clock] = None,
        retry: Optional[RetryableOperation] = None,
    ):
        if not primaries:
            raise ValueError("PriceMonitor needs at least one primary source")

        self.name = name
        self.chain = chain
        self.role = role
        self.primaries = list(primaries)
        self.fallbacks = list(fallbacks)
        self.monitoring = monitoring or MonitoringConfig()
        agents = agents or AgentConfig()
        self.clock = clock or SystemClock()
        self.port = BusPort(name)
        self.log = self.port.log
        self.retry = retry or RetryableOperation(
            attempts=agents.retry_attempts,
            base_delay=agents.retry_delay_seconds,
            on_exhausted=self._on_retry_exhausted,
        )

        self.latest_quote: Optional[PriceQuote] = None
        self.price_history: Deque[PriceQuote] = deque(maxlen=self.monitoring.price_history_size)
        self.polls = 0
        self.updates = 0
        self.misses = 0
        self._running = False
        self._task: Optional[asyncio.Task] = None

    # agent capability

    def attach_bus(self, bus: EventBus):
        self.port.attach(bus)

    def is_running(self) -> bool:
        return self._running

    async def start(self):
        """Initialise sources and start polling."""
        self._running = True
        self.log.info(f"Starting {self.chain.value} price monitor ({self.role.value} side)")

        try:
            for stage in self.primaries + self.fallbacks:
                await stage.source.initialize()
        except Exception as e:
            self._running = False
            self.log.error(f"Source initialisation failed: {e}")
            self.port.report_error(e, critical=True, context="start")
            raise

        self._task = asyncio.create_task(self._run_loop())
        self.log.info(f"Price monitoring started (interval: {self.monitoring.interval_seconds}s)")

    async def stop(self):
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        self.log.info("Price monitor stopped")

    async def _run_loop(self):
        while self._running:
            try:
                await self.poll()
            except Exception as e:
                # a bad tick must never kill the loop
                self.log.error(f"Unexpected error while polling: {e}")
                self.port.report_error(e, critical=False, context="poll")

            await asyncio.sleep(self.monitoring.interval_seconds)

    # acquisition

    async def poll(self) -> Optional[PriceQuote]:
        """Acquire one price and publish it; None when every source failed."""
        self.polls += 1

        candidates, primary_errors = await self._query_primaries()

        if not candidates:
            self._log_primary_failure(primary_errors)
            fallback = await self._walk_fallbacks()
            if fallback is not None:
                candidates = [fallback]

        if not candidates:
            self.misses += 1
            error = PriceUnavailableError(
                f"No price available from any {self.chain.value} source"
            )
            self.log.error(str(error))
            self.port.report_error(error, critical=False, context="poll")
            return None

        best = self.select_best(candidates)
        return self._publish(best)

    async def _query_primaries(self) -> Tuple[List[_Candidate], List[Tuple[PriceSourceStage, BaseException]]]:
        results = await asyncio.gather(
            *(self._fetch_primary(stage) for stage in self.primaries),
            return_exceptions=True,
        )

        candidates = []
        errors = []
        for stage, result in zip(self.primaries, results):
            if isinstance(result, BaseException):
                errors.append((stage, result))
            else:
                candidates.append(result)
        return candidates, errors

    async def _fetch_primary(self, stage: PriceSourceStage) -> _Candidate:
        quote = await self.retry.run(
            lambda: stage.source.quote(stage.asset), context=f"{stage.label} price fetch"
        )
        # a bad value is not transient, so it is checked once outside the retry
        return self._validated(stage, quote, fallback_level=0)

    async def _walk_fallbacks(self) -> Optional[_Candidate]:
        for level, stage in enumerate(self.fallbacks, start=1):
            if stage.proxy and not self.monitoring.allow_proxy_fallback:
                self.log.debug(f"Skipping proxy fallback {stage.label}")
                continue

            try:
                quote = await stage.source.quote(stage.asset)
                candidate = self._validated(stage, quote, fallback_level=level)
                self.log.info(f"Using fallback {stage.label}: {candidate.price:.6f}")
                return candidate
            except Exception as e:
                if is_network_error(e):
                    self.log.warning(f"Network error: could not reach {stage.label} fallback ({e})")
                else:
                    self.log.error(f"Fallback {stage.label} failed: {e}")
        return None

    def _validated(self, stage: PriceSourceStage, quote: SourceQuote, fallback_level: int) -> _Candidate:
        price = validate_price(
            quote.price, stage.label, self.monitoring.min_price, self.monitoring.max_price
        )
        return _Candidate(stage=stage, price=price, quote=quote, fallback_level=fallback_level)

    def _log_primary_failure(self, errors: List[Tuple[PriceSourceStage, BaseException]]):
        for stage, error in errors:
            if is_network_error(error):
                self.log.warning(f"Network error: could not reach {stage.label} ({error})")
            else:
                self.log.error(f"{stage.label} failed: {error}")

    def select_best(self, candidates: Sequence[_Candidate]) -> _Candidate:
        """Lowest price for the buy side, highest for the sell side."""
        if self.role == MonitorRole.BUY:
            return min(candidates, key=lambda c: c.price)
        return max(candidates, key=lambda c: c.price)

    def _publish(self, candidate: _Candidate) -> PriceQuote:
        sourced_at = self.clock.now()
        if self.latest_quote and sourced_at < self.latest_quote.sourced_at:
            # clock went backwards; keep acquisition time monotonic
            sourced_at = self.latest_quote.sourced_at

        metadata = dict(candidate.quote.metadata)
        if candidate.fallback_level:
            metadata['fallback'] = True
        if candidate.stage.proxy:
            metadata['proxy'] = True

        quote = PriceQuote(
            chain=self.chain,
            price=candidate.price,
            venue=candidate.stage.label,
            sourced_at=sourced_at,
            metadata=metadata,
            fallback_level=candidate.fallback_level,
        )

        self.latest_quote = quote
        self.price_history.append(quote)
        self.updates += 1

        self.port.publish(PriceUpdate(source=self.name, quote=quote))
        self.log.debug(f"{self.chain.value.upper()} price: ${quote.price:.6f} via {quote.venue}")
        return quote

    def _on_retry_exhausted(self, error: BaseException, context: str):
        self.port.report_error(error, critical=False, context=context)

    # read-only views

    def average_price(self, window_seconds: float = 60.0) -> Optional[float]:
        """Mean of the prices acquired within the last window_seconds."""
        cutoff = self.clock.now() - timedelta(seconds=window_seconds)
        recent = [q.price for q in self.price_history if q.sourced_at >= cutoff]
        if not recent:
            return None
        return sum(recent) / len(recent)

    def get_stats(self) -> dict:
        return {
            'chain': self.chain.value,
            'role': self.role.value,
            'polls': self.polls,
            'updates': self.updates,
            'misses': self.misses,
            'latest_price': self.latest_quote.price if self.latest_quote else None,
            'latest_venue': self.latest_quote.venue if self.latest_quote else None,
        }
