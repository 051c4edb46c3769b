"""
Crossarb - Cross-venue arbitrage between a Solana DEX aggregator and a custodial exchange.
"""

from .config import Config, load_config
from .models import Chain, MonitorRole, Opportunity, PriceQuote, TradeResult, TradeSide

__version__ = "1.0.0"
__all__ = [
    "Config",
    "load_config",
    "Chain",
    "MonitorRole",
    "Opportunity",
    "PriceQuote",
    "TradeResult",
    "TradeSide",
]
