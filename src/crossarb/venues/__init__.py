"""Venue interfaces and concrete price and trading sources."""

from .base import (
    ChainPriceSource,
    ChainTradeSource,
    CustodialExchangeSource,
    Clock,
    SystemClock,
)
from .ccxt_exchange import CcxtExchange, ExchangeSpotPriceSource
from .http_sources import JupiterPriceSource, CoinGeckoPriceSource
from .paper import PaperChainTrader

__all__ = [
    "ChainPriceSource",
    "ChainTradeSource",
    "CustodialExchangeSource",
    "Clock",
    "SystemClock",
    "CcxtExchange",
    "ExchangeSpotPriceSource",
    "JupiterPriceSource",
    "CoinGeckoPriceSource",
    "PaperChainTrader",
]
