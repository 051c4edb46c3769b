#!/usr/bin/env python3
"""Main entry point for the crossarb cross-venue arbitrage bot."""
import asyncio
import signal
import sys
from pathlib import Path
from typing import Optional
from loguru import logger

from crossarb.config import Config, load_config
from crossarb.core.arbitrage_detector import ArbitrageDetector
from crossarb.core.orchestrator import Orchestrator
from crossarb.core.price_monitor import PriceMonitor, PriceSourceStage
from crossarb.core.trade_executor import TradeExecutor
from crossarb.core.validation import validate_trade_size
from crossarb.infrastructure.error_handling import (
    ConfigurationError, NoOpportunityError,
)
from crossarb.models import Chain, MonitorRole, TradeResult
from crossarb.monitoring.console import StatsConsole
from crossarb.venues.ccxt_exchange import CcxtExchange, ExchangeSpotPriceSource
from crossarb.venues.http_sources import CoinGeckoPriceSource, JupiterPriceSource
from crossarb.venues.paper import PaperChainTrader

STATS_INTERVAL_SECONDS = 300


def configure_logging(config: Config):
    """Console sink plus a rotating file sink."""
    logger.remove()
    logger.add(sys.stderr, level=config.log_level)

    Path(config.log_dir).mkdir(parents=True, exist_ok=True)
    logger.add(
        f"{config.log_dir}/crossarb_{{time}}.log",
        rotation="1 day",
        retention="7 days",
        level=config.log_level,
    )


class CrossArbBot:
    """Wires venues and agents together and exposes operator controls."""

    def __init__(self, config: Config):
        """Initialise the bot."""
        self.config = config
        self.running = False
        self._stop_event: Optional[asyncio.Event] = None

        self.orchestrator = Orchestrator(config.agents)
        self.console = StatsConsole()
        self.console.attach(self.orchestrator.bus)

        # venues
        self.exchange = CcxtExchange(config.exchange, dry_run=config.dry_run)
        self.exchange_prices = ExchangeSpotPriceSource(self.exchange)
        self.jupiter = JupiterPriceSource(config.solana)
        self.coingecko = CoinGeckoPriceSource()
        self.chain_trader = self._build_chain_trader()

        # agents
        self.solana_monitor = PriceMonitor(
            name="SOLANA_MONITOR",
            chain=Chain.SOLANA,
            role=MonitorRole.BUY,
            primaries=[PriceSourceStage("jupiter", self.jupiter, config.solana.token_mint)],
            fallbacks=[
                PriceSourceStage("coingecko", self.coingecko, config.solana.coingecko_asset_id),
                PriceSourceStage(
                    f"{self.exchange.name} {config.exchange.fallback_pair}",
                    self.exchange_prices,
                    config.exchange.fallback_pair,
                    proxy=True,
                ),
            ],
            monitoring=config.monitoring,
            agents=config.agents,
        )
        self.ethereum_monitor = PriceMonitor(
            name="ETHEREUM_MONITOR",
            chain=Chain.ETHEREUM,
            role=MonitorRole.SELL,
            primaries=[
                PriceSourceStage(
                    f"{self.exchange.name} {config.exchange.pair}",
                    self.exchange_prices,
                    config.exchange.pair,
                ),
            ],
            fallbacks=[
                PriceSourceStage("coingecko", self.coingecko, config.solana.coingecko_asset_id),
            ],
            monitoring=config.monitoring,
            agents=config.agents,
        )
        self.detector = ArbitrageDetector(config.trading, config.monitoring)
        self.executor = TradeExecutor(
            venues={Chain.SOLANA: self.chain_trader, Chain.ETHEREUM: self.exchange},
            config=config,
        )

        for agent in (self.solana_monitor, self.ethereum_monitor, self.detector, self.executor):
            self.orchestrator.register(agent.name, agent)

    def _build_chain_trader(self) -> PaperChainTrader:
        if not self.config.dry_run:
            # signing and submitting swaps is not implemented here
            raise ConfigurationError(
                "Live mode requires an on-chain signer for the Solana leg; only paper trading is available"
            )
        return PaperChainTrader(
            self.config.solana,
            native_price_source=self.coingecko,
            price_lookup=self.jupiter,
        )

    # operator controls

    def pause_trading(self):
        self.executor.pause()

    def resume_trading(self):
        self.executor.resume()

    def is_trading_paused(self) -> bool:
        return self.executor.paused

    async def manual_trade(self, trade_size_usd: float, override_profit_gate: bool = False) -> TradeResult:
        """Execute the most recently detected opportunity at the given size."""
        opportunity = self.detector.last_opportunity
        if opportunity is None:
            raise NoOpportunityError("No arbitrage opportunity has been detected yet")

        check = validate_trade_size(trade_size_usd, self.config.trading.max_trade_size_usd)
        if not check.valid:
            raise ValueError(check.reason)

        return await self.executor.manual_trade(
            opportunity, trade_size_usd, override_profit_gate=override_profit_gate
        )

    def get_stats(self) -> dict:
        status = self.orchestrator.get_status()
        return {
            'dry_run': self.config.dry_run,
            'paused': self.executor.paused,
            'prices': {
                Chain.SOLANA.value: self.solana_monitor.get_stats()['latest_price'],
                Chain.ETHEREUM.value: self.ethereum_monitor.get_stats()['latest_price'],
            },
            'detector': self.detector.get_stats(),
            'executor': self.executor.get_stats(),
            'agents': status['agents'],
            'errors': status['errors'],
            'uptime_seconds': status['uptime_seconds'],
        }

    # lifecycle

    async def stats_loop(self):
        while self.running:
            await asyncio.sleep(STATS_INTERVAL_SECONDS)
            self.console.print_stats(self.get_stats())

    async def run(self):
        """Run the bot until shutdown is requested."""
        self.running = True
        self._stop_event = asyncio.Event()

        mode = "DRY RUN" if self.config.dry_run else "LIVE TRADING"
        logger.warning(f"Mode: {mode}")
        logger.info(f"Exchange: {self.config.exchange.name} ({self.config.exchange.pair})")
        logger.info(f"Min Profit Threshold: {self.config.trading.min_profit_percentage}%")
        logger.info(f"Trade Size: ${self.config.trading.trade_size_usd}")

        stats_task = None
        try:
            await self.orchestrator.start_all()
            logger.success("Crossarb is running")

            stats_task = asyncio.create_task(self.stats_loop())
            await self._stop_event.wait()
        except Exception as e:
            logger.error(f"Fatal error: {e}")
            raise
        finally:
            if stats_task:
                stats_task.cancel()
            await self.shutdown()

    def request_shutdown(self):
        logger.info("Received shutdown signal")
        if self._stop_event is not None:
            self._stop_event.set()

    async def shutdown(self):
        """Graceful shutdown."""
        if not self.running:
            return
        self.running = False
        logger.info("Shutting down crossarb...")

        await self.orchestrator.shutdown()

        for venue in (self.jupiter, self.coingecko, self.exchange):
            try:
                await venue.close()
            except Exception as e:
                logger.error(f"Error closing {venue.name}: {e}")

        self.console.console.print("\n[bold cyan]Final Statistics:[/]")
        self.console.print_stats(self.get_stats())

        logger.success("Shutdown complete")


async def main():
    """Main entry point."""
    config = load_config()
    configure_logging(config)

    bot = CrossArbBot(config)

    # handles ctrl+c and kill signals gracefully
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, bot.request_shutdown)

    await bot.run()


def run():
    """Console script entry point."""
    asyncio.run(main())


if __name__ == "__main__":
    run()
