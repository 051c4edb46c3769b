"""Trade execution engine for cross-venue arbitrage opportunities."""
import asyncio
import dataclasses
import time
from typing import Dict, List, Optional, Union

from crossarb.config import Config
from crossarb.core.agent import BusPort
from crossarb.core.event_bus import EventBus
from crossarb.core.validation import validate_balance, validate_gas_costs, validate_slippage
from crossarb.events import (
    BalanceUpdate, OpportunityDetected, OpportunitySkipped, Topic, TradeCompleted,
)
from crossarb.infrastructure.error_handling import (
    InsufficientBalanceError, ProfitabilityError, TradeInProgressError,
    TradeLegError, TradingPausedError,
)
from crossarb.models import (
    Chain, GasEstimate, LegFee, LegResult, Opportunity, TradeResult, TradeSide,
)
from crossarb.venues.base import ChainTradeSource, Clock, CustodialExchangeSource, SystemClock

TradeVenue = Union[ChainTradeSource, CustodialExchangeSource]

TRADING_PAUSED = "trading paused"
TRADE_IN_FLIGHT = "trade already in flight"


class TradeExecutor:
    """
    Executes buy-then-sell arbitrage trades, one at a time.

    The executing flag is checked and set before the first await, which is
    what makes it a single-flight guard under cooperative scheduling.
    Opportunities arriving while paused or busy are discarded, not queued.
    """

    def __init__(
        self,
        venues: Dict[Chain, TradeVenue],
        config: Config,
        clock: Optional[Clock] = None,
        name: str = "TRADE_EXECUTOR",
    ):
        """Initialise trade executor."""
        self.name = name
        self.venues = venues
        self.config = config
        self.trading = config.trading
        self.dry_run = config.dry_run
        self.clock = clock or SystemClock()
        self.port = BusPort(name)
        self.log = self.port.log

        self.executing = False
        self.paused = False
        self.trade_history: List[TradeResult] = []
        self.discarded_count = 0
        self.last_balances: Dict[str, Dict[str, float]] = {}
        self._running = False
        self._balance_task: Optional[asyncio.Task] = None

    # agent capability

    def attach_bus(self, bus: EventBus):
        self.port.attach(bus)

    def is_running(self) -> bool:
        return self._running

    async def start(self):
        """Initialise venue clients and start listening for opportunities."""
        try:
            for venue in self.venues.values():
                await venue.initialize()
            self.log.info("Trading venues initialised")
        except Exception as e:
            self.log.error(f"Venue initialisation failed: {e}")
            self.port.report_error(e, critical=True, context="initialization")
            raise

        self.port.subscribe(Topic.ARBITRAGE_OPPORTUNITY, self.handle_opportunity)
        self._running = True

        if self.dry_run:
            self.log.warning("DRY RUN MODE ENABLED - no real trades will be executed")

        interval = self.config.agents.balance_refresh_seconds
        if interval > 0:
            self._balance_task = asyncio.create_task(self._balance_loop(interval))

        self.log.info("Trade executor started")

    async def stop(self):
        self.port.unsubscribe(Topic.ARBITRAGE_OPPORTUNITY, self.handle_opportunity)
        self._running = False
        if self._balance_task:
            self._balance_task.cancel()
            try:
                await self._balance_task
            except asyncio.CancelledError:
                pass
            self._balance_task = None
        self.log.info("Trade executor stopped")

    # operator controls

    def pause(self):
        """Emergency stop: block new trades; an in-flight trade still completes."""
        self.paused = True
        self.log.warning("TRADING PAUSED BY OPERATOR")

    def resume(self):
        self.paused = False
        self.log.info("Trading resumed")

    # automatic path

    async def handle_opportunity(self, event: OpportunityDetected):
        """React to a detected opportunity."""
        opportunity = event.opportunity

        if self.paused:
            self.log.warning("Trade skipped: trading is paused")
            self._discard(opportunity, TRADING_PAUSED)
            return

        if self.executing:
            self.log.warning("Trade skipped: another trade is in progress")
            self._discard(opportunity, TRADE_IN_FLIGHT)
            return

        self.executing = True
        try:
            await self._run_trade(opportunity, manual=False, override_profit_gate=False)
        finally:
            self.executing = False

    def _discard(self, opportunity: Opportunity, reason: str):
        self.discarded_count += 1
        self.port.publish(OpportunitySkipped(
            source=self.name,
            reasons=(reason,),
            timestamp=self.clock.now(),
            opportunity=opportunity,
        ))

    # manual path

    async def manual_trade(
        self,
        opportunity: Opportunity,
        trade_size_usd: float,
        override_profit_gate: bool = False,
    ) -> TradeResult:
        """Operator-triggered trade with an explicit size."""
        if self.paused:
            raise TradingPausedError("Trading is paused")
        if self.executing:
            raise TradeInProgressError("Another trade is currently in progress")

        self.executing = True
        try:
            sized = dataclasses.replace(
                opportunity,
                trade_size_usd=trade_size_usd,
                profit_usd=(opportunity.sell_price - opportunity.buy_price)
                * (trade_size_usd / opportunity.buy_price),
            )
            self.log.info(f"STARTING MANUAL TRADE: {trade_size_usd} USD")
            return await self._run_trade(
                sized, manual=True, override_profit_gate=override_profit_gate
            )
        finally:
            self.executing = False

    # execution

    async def _run_trade(
        self, opportunity: Opportunity, manual: bool, override_profit_gate: bool
    ) -> TradeResult:
        """Run the execution sequence and always publish its outcome."""
        start = time.perf_counter()
        gas: Optional[GasEstimate] = None
        legs: Dict[str, LegResult] = {}

        try:
            gas = await self.estimate_gas_costs(opportunity)
            net_profit = self._check_profitability(opportunity, gas, override_profit_gate)
            await self.check_balances(opportunity)
            result = await self._execute_legs(opportunity, gas, net_profit, legs, start, manual)
        except Exception as e:
            self.log.error(f"Trade failed: {e}")
            result = TradeResult(
                success=False,
                opportunity=opportunity,
                completed_at=self.clock.now(),
                buy_result=legs.get("buy"),
                sell_result=legs.get("sell"),
                gas_estimate=gas,
                net_profit_usd=0.0,
                execution_time_ms=(time.perf_counter() - start) * 1000,
                error=str(e) or e.__class__.__name__,
                manual=manual,
                dry_run=self.dry_run,
            )

        self.trade_history.append(result)
        self.port.publish(TradeCompleted(source=self.name, result=result))
        return result

    def _check_profitability(
        self, opportunity: Opportunity, gas: GasEstimate, override_profit_gate: bool
    ) -> float:
        check = validate_gas_costs(
            opportunity.profit_usd, gas.total_usd, self.trading.min_net_profit_ratio
        )
        if check.valid:
            return check.net_profit

        if override_profit_gate:
            self.log.warning(f"Profit gate overridden by operator: {check.reason}")
            return check.net_profit

        raise ProfitabilityError(f"Trade not profitable after gas: {check.reason}")

    async def _execute_legs(
        self,
        opportunity: Opportunity,
        gas: GasEstimate,
        net_profit: float,
        legs: Dict[str, LegResult],
        start: float,
        manual: bool,
    ) -> TradeResult:
        buy_result = await self.execute_leg(opportunity, TradeSide.BUY)
        legs["buy"] = buy_result
        self.log.info(
            f"Buy leg on {opportunity.buy_venue.value}: {opportunity.token_amount:.6f} units "
            f"(tx {buy_result.tx_id})"
        )
        if not buy_result.success:
            raise TradeLegError(f"Buy trade failed on {opportunity.buy_venue.value}")

        sell_result = await self.execute_leg(opportunity, TradeSide.SELL)
        legs["sell"] = sell_result
        self.log.info(f"Sell leg on {opportunity.sell_venue.value} (tx {sell_result.tx_id})")
        if not sell_result.success:
            raise TradeLegError(f"Sell trade failed on {opportunity.sell_venue.value}")

        elapsed_ms = (time.perf_counter() - start) * 1000
        self.log.success(
            f"Arbitrage completed! Net profit: ${net_profit:.2f} in {elapsed_ms:.0f}ms"
        )

        return TradeResult(
            success=True,
            opportunity=opportunity,
            completed_at=self.clock.now(),
            buy_result=buy_result,
            sell_result=sell_result,
            gas_estimate=gas,
            net_profit_usd=net_profit,
            execution_time_ms=elapsed_ms,
            manual=manual,
            dry_run=self.dry_run,
        )

    async def estimate_gas_costs(self, opportunity: Opportunity) -> GasEstimate:
        """Fresh fee estimate for both legs."""
        buy_leg = await self._estimate_leg_fee(opportunity.buy_venue, opportunity.trade_size_usd)
        sell_leg = await self._estimate_leg_fee(
            opportunity.sell_venue, opportunity.token_amount * opportunity.sell_price
        )
        gas = GasEstimate(buy_leg=buy_leg, sell_leg=sell_leg)
        self.log.info(f"Gas costs estimated: ${gas.total_usd:.4f}")
        return gas

    async def _estimate_leg_fee(self, chain: Chain, notional_usd: float) -> LegFee:
        venue = self._venue(chain)

        if isinstance(venue, ChainTradeSource):
            fee = await venue.estimate_fee()
            return LegFee(chain=chain, native_fee=fee.native_fee, usd_fee=fee.usd_fee)

        # custodial venues charge a taker fee on notional instead of gas
        fee_usd = venue.taker_fee_rate(self.config.exchange.pair) * notional_usd
        return LegFee(chain=chain, native_fee=fee_usd, usd_fee=fee_usd)

    async def check_balances(self, opportunity: Opportunity):
        """The buy venue must hold at least the minimum operating balance."""
        if self.dry_run:
            self.log.info("[DRY RUN] Skipping balance check")
            return

        venue = self._venue(opportunity.buy_venue)
        if isinstance(venue, ChainTradeSource):
            asset = "native"
            available = await venue.balance()
        else:
            asset = self.config.exchange.quote_asset
            available = await venue.account_balance(asset)

        self.log.info(f"{opportunity.buy_venue.value} balance: {available} {asset}")

        check = validate_balance(self.trading.min_buy_balance, available, asset)
        if not check.valid:
            raise InsufficientBalanceError(
                f"Insufficient balance on {opportunity.buy_venue.value}: {check.reason}"
            )
        if check.warning:
            self.log.warning(check.warning)

    async def execute_leg(self, opportunity: Opportunity, side: TradeSide) -> LegResult:
        """Place one leg on the venue for that side."""
        chain = opportunity.buy_venue if side == TradeSide.BUY else opportunity.sell_venue
        venue = self._venue(chain)
        token_amount = opportunity.token_amount
        slippage_bps = int(self.trading.max_slippage_percentage * 100)

        if isinstance(venue, ChainTradeSource):
            solana = self.config.solana
            if side == TradeSide.BUY:
                swap = await venue.execute_swap(
                    solana.quote_mint, solana.token_mint, opportunity.trade_size_usd, slippage_bps
                )
            else:
                swap = await venue.execute_swap(
                    solana.token_mint, solana.quote_mint, token_amount, slippage_bps
                )
            return LegResult(
                success=swap.success,
                chain=chain,
                side=side,
                tx_id=swap.tx_id,
                amount=token_amount,
                amount_out=swap.amount_out,
                status="confirmed" if swap.success else "failed",
                dry_run=swap.dry_run,
            )

        pair = self.config.exchange.pair
        order = await venue.place_market_order(pair, side, token_amount)

        if order.average:
            expected = opportunity.buy_price if side == TradeSide.BUY else opportunity.sell_price
            slippage = validate_slippage(
                expected, order.average, self.trading.max_slippage_percentage
            )
            if not slippage.valid:
                self.log.warning(slippage.reason)

        return LegResult(
            success=order.accepted,
            chain=chain,
            side=side,
            tx_id=order.order_id,
            amount=token_amount,
            amount_out=order.filled,
            status=order.status,
            dry_run=order.dry_run,
        )

    def _venue(self, chain: Chain) -> TradeVenue:
        try:
            return self.venues[chain]
        except KeyError:
            raise TradeLegError(f"No trading venue configured for {chain.value}")

    # balances

    async def _balance_loop(self, interval: float):
        while self._running:
            await self.refresh_balances()
            await asyncio.sleep(interval)

    async def refresh_balances(self) -> Dict[str, Dict[str, float]]:
        """Fetch balances from every venue and publish balance:update."""
        balances: Dict[str, Dict[str, float]] = {}

        for chain, venue in self.venues.items():
            try:
                if isinstance(venue, ChainTradeSource):
                    balances[chain.value] = {"native": await venue.balance()}
                else:
                    quote_asset = self.config.exchange.quote_asset
                    base_asset = self.config.exchange.pair.split("/")[0]
                    balances[chain.value] = {
                        base_asset: await venue.account_balance(base_asset),
                        quote_asset: await venue.account_balance(quote_asset),
                    }
            except Exception as e:
                self.log.error(f"Failed to fetch {chain.value} balance: {e}")

        self.last_balances = balances
        self.port.publish(BalanceUpdate(
            source=self.name, timestamp=self.clock.now(), balances=balances
        ))
        return balances

    # statistics

    def get_stats(self) -> dict:
        """Get execution statistics."""
        total = len(self.trade_history)
        successful = [t for t in self.trade_history if t.success]
        total_profit = sum(t.net_profit_usd for t in successful)

        return {
            'total_trades': total,
            'successful_trades': len(successful),
            'failed_trades': total - len(successful),
            'total_profit': total_profit,
            'avg_profit': total_profit / len(successful) if successful else 0.0,
            'success_rate': len(successful) / total * 100 if total else 0.0,
            'discarded_opportunities': self.discarded_count,
            'paused': self.paused,
            'executing': self.executing,
        }
