"""Custodial exchange client backed by CCXT."""
import asyncio
from typing import Dict, Optional
from loguru import logger
import ccxt

from crossarb.config import ExchangeConfig
from crossarb.models import TradeSide
from crossarb.venues.base import ChainPriceSource, CustodialExchangeSource, OrderResult, SourceQuote

DEFAULT_TAKER_FEE = 0.001


class CcxtExchange(CustodialExchangeSource):
    """Handles all custodial exchange interactions."""

    def __init__(self, config: ExchangeConfig, dry_run: bool = True):
        """Initialise exchange client."""
        self.config = config
        self.dry_run = dry_run
        self.name = config.name
        self.exchange = None
        self.markets: Dict[str, dict] = {}
        self._paper_orders = 0
        self._initialize_exchange()

    def _initialize_exchange(self):
        """Initialise CCXT exchange instance."""
        try:
            exchange_class = getattr(ccxt, self.config.name)
            self.exchange = exchange_class({
                'apiKey': self.config.api_key,
                'secret': self.config.api_secret,
                'enableRateLimit': True,
                'options': {
                    'defaultType': 'spot',
                }
            })

            if self.config.testnet:
                try:
                    self.exchange.set_sandbox_mode(True)
                    logger.info(f"{self.name} client initialised in TESTNET mode")
                except Exception as e:
                    logger.info(f"{self.name} has no testnet, staying in LIVE mode ({e})")
            elif not self.dry_run:
                logger.warning(f"{self.name} client initialised in LIVE mode")

        except Exception as e:
            logger.error(f"Failed to initialise exchange {self.config.name}: {e}")
            raise

    async def initialize(self):
        """Load markets once; needed for fee lookups."""
        if self.markets:
            return
        self.markets = await asyncio.to_thread(self.exchange.load_markets)
        logger.info(f"Loaded {len(self.markets)} markets from {self.name}")

    async def price(self, pair: str) -> float:
        """Mid price from the ticker, last trade if the book side is missing."""
        ticker = await asyncio.to_thread(self.exchange.fetch_ticker, pair)

        bid = ticker.get('bid')
        ask = ticker.get('ask')
        if bid and ask:
            return (float(bid) + float(ask)) / 2

        last = ticker.get('last')
        if last is None:
            raise ValueError(f"No usable price in {self.name} ticker for {pair}")
        return float(last)

    async def account_balance(self, asset: str) -> float:
        """Get available balance for an asset."""
        balance = await asyncio.to_thread(self.exchange.fetch_balance)
        return float(balance.get(asset, {}).get('free') or 0)

    async def place_market_order(self, pair: str, side: TradeSide, quantity: float) -> OrderResult:
        """Execute a market order, or simulate one in dry-run mode."""
        if self.dry_run:
            self._paper_orders += 1
            logger.info(f"[PAPER] {side.value.upper()} {quantity:.6f} {pair} on {self.name}")
            return OrderResult(
                order_id=f"paper-{self._paper_orders}",
                status='closed',
                filled=quantity,
                dry_run=True,
            )

        try:
            if side == TradeSide.BUY:
                order = await asyncio.to_thread(
                    self.exchange.create_market_buy_order, pair, quantity
                )
            else:
                order = await asyncio.to_thread(
                    self.exchange.create_market_sell_order, pair, quantity
                )
        except Exception as e:
            logger.error(f"Order failed on {self.name}: {side.value} {quantity} {pair}: {e}")
            raise

        logger.info(f"Order placed: {order.get('id')} - {side.value} {quantity} {pair}")
        return OrderResult(
            order_id=str(order.get('id')),
            status=str(order.get('status') or 'open'),
            filled=_as_float(order.get('filled')),
            average=_as_float(order.get('average')),
        )

    def taker_fee_rate(self, pair: str) -> float:
        """Get taker fee for a pair."""
        market = self.markets.get(pair)
        if market and market.get('taker') is not None:
            return float(market['taker'])
        return DEFAULT_TAKER_FEE

    async def close(self):
        """Close exchange connection."""
        if self.exchange and hasattr(self.exchange, 'close'):
            try:
                self.exchange.close()
            except Exception as e:
                logger.debug(f"Error closing exchange: {e}")
        logger.info(f"{self.name} connection closed")


class ExchangeSpotPriceSource(ChainPriceSource):
    """Presents an exchange ticker as a price source (asset is the pair)."""

    def __init__(self, exchange: CustodialExchangeSource):
        self.exchange = exchange
        self.name = exchange.name

    async def initialize(self):
        await self.exchange.initialize()

    async def quote(self, asset: str) -> SourceQuote:
        price = await self.exchange.price(asset)
        return SourceQuote(price=price, metadata={'pair': asset, 'exchange': self.exchange.name})


def _as_float(value) -> Optional[float]:
    return float(value) if value is not None else None
