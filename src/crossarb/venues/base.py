"""
Capability interfaces for price and trading venues.

The core only talks to venues through these contracts; chain RPC and
exchange signing details live in the concrete implementations.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from crossarb.models import TradeSide


@dataclass
class SourceQuote:
    """Raw price from a source, before monitor validation."""
    price: float
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class FeeQuote:
    """Network fee for one on-chain transaction."""
    native_fee: float
    usd_fee: float


@dataclass
class SwapResult:
    success: bool
    tx_id: Optional[str] = None
    amount_out: Optional[float] = None
    dry_run: bool = False


@dataclass
class OrderResult:
    order_id: str
    status: str
    filled: Optional[float] = None
    average: Optional[float] = None
    dry_run: bool = False

    @property
    def accepted(self) -> bool:
        return self.status.lower() not in {"rejected", "canceled", "cancelled", "expired"}


class VenueLifecycle:
    """Async setup/teardown hooks; implementations must be idempotent."""

    async def initialize(self) -> None:
        return None

    async def close(self) -> None:
        return None


class ChainPriceSource(VenueLifecycle, ABC):
    """Something that can quote an asset price."""

    name: str = "unknown"

    @abstractmethod
    async def quote(self, asset: str) -> SourceQuote:
        """Return the current price of asset; raise on network or venue errors."""


class ChainTradeSource(VenueLifecycle, ABC):
    """An on-chain trading venue (wallet + swap router)."""

    name: str = "unknown"

    @abstractmethod
    async def balance(self, account: Optional[str] = None) -> float:
        """Native balance of account (or the configured wallet)."""

    @abstractmethod
    async def estimate_fee(self) -> FeeQuote:
        """Fee for one swap transaction at current network conditions."""

    @abstractmethod
    async def execute_swap(
        self, from_asset: str, to_asset: str, amount: float, max_slippage_bps: int
    ) -> SwapResult:
        """Swap amount of from_asset (human units) into to_asset."""


class CustodialExchangeSource(VenueLifecycle, ABC):
    """A custodial exchange account."""

    name: str = "unknown"

    @abstractmethod
    async def price(self, pair: str) -> float:
        """Last traded / mid price for pair."""

    @abstractmethod
    async def account_balance(self, asset: str) -> float:
        """Free balance of asset."""

    @abstractmethod
    async def place_market_order(self, pair: str, side: TradeSide, quantity: float) -> OrderResult:
        """Submit a market order."""

    def taker_fee_rate(self, pair: str) -> float:
        """Fraction of notional charged per fill; zero when the venue charges none."""
        return 0.0


class Clock(ABC):
    """Time source for staleness and ordering."""

    @abstractmethod
    def now(self) -> datetime:
        ...


class SystemClock(Clock):
    """Wall-clock time in UTC."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)
