"""Data models for cross-venue arbitrage."""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping, Optional


class Chain(Enum):
    """Chain a venue settles on."""
    SOLANA = "solana"
    ETHEREUM = "ethereum"


class MonitorRole(Enum):
    """Which side of the pair a price monitor feeds."""
    BUY = "buy"  # lowest price wins
    SELL = "sell"  # highest price wins


class TradeSide(Enum):
    """Order side enumeration."""
    BUY = "buy"
    SELL = "sell"


class AgentStatus(Enum):
    """Lifecycle states tracked by the orchestrator."""
    REGISTERED = "registered"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"
    STOPPED = "stopped"
    FAILED = "failed"


def _freeze(metadata: Optional[Mapping[str, Any]]) -> Mapping[str, Any]:
    return MappingProxyType(dict(metadata or {}))


@dataclass(frozen=True)
class PriceQuote:
    """A validated price observed by a monitor. Superseded, never mutated."""
    chain: Chain
    price: float
    venue: str
    sourced_at: datetime
    metadata: Mapping[str, Any] = field(default_factory=dict)
    fallback_level: int = 0  # 0 = primary source

    def __post_init__(self):
        object.__setattr__(self, "metadata", _freeze(self.metadata))

    @property
    def is_fallback(self) -> bool:
        return self.fallback_level > 0

    def age_seconds(self, now: datetime) -> float:
        """How stale this quote is relative to now."""
        return (now - self.sourced_at).total_seconds()


# the detector keeps exactly the latest quote per chain
VenueSnapshot = PriceQuote


@dataclass(frozen=True)
class Opportunity:
    """A detected price discrepancy between the two venues."""
    buy_venue: Chain
    sell_venue: Chain
    buy_price: float
    sell_price: float
    profit_percentage: float
    price_diff: float
    trade_size_usd: float
    profit_usd: float
    timestamp: datetime
    buy_source: str = ""
    sell_source: str = ""

    @property
    def token_amount(self) -> float:
        """Units of the asset bought with the trade notional."""
        return self.trade_size_usd / self.buy_price if self.buy_price > 0 else 0.0

    def __str__(self) -> str:
        return (
            f"BUY {self.buy_venue.value} @ {self.buy_price:.6f} -> "
            f"SELL {self.sell_venue.value} @ {self.sell_price:.6f} | "
            f"Profit: {self.profit_percentage:.4f}% (${self.profit_usd:.2f})"
        )


@dataclass(frozen=True)
class LegFee:
    """Estimated cost of one leg."""
    chain: Chain
    native_fee: float
    usd_fee: float


@dataclass(frozen=True)
class GasEstimate:
    """Fee estimate for both legs, computed fresh per trade attempt."""
    buy_leg: LegFee
    sell_leg: LegFee

    @property
    def total_usd(self) -> float:
        return self.buy_leg.usd_fee + self.sell_leg.usd_fee


@dataclass(frozen=True)
class LegResult:
    """Normalised outcome of one executed leg."""
    success: bool
    chain: Chain
    side: TradeSide
    tx_id: Optional[str] = None
    amount: float = 0.0
    amount_out: Optional[float] = None
    status: str = ""
    dry_run: bool = False


@dataclass(frozen=True)
class TradeResult:
    """Outcome of one trade attempt (success or failure)."""
    success: bool
    opportunity: Opportunity
    completed_at: datetime
    buy_result: Optional[LegResult] = None
    sell_result: Optional[LegResult] = None
    gas_estimate: Optional[GasEstimate] = None
    net_profit_usd: float = 0.0
    execution_time_ms: float = 0.0
    error: str = ""
    manual: bool = False
    dry_run: bool = False


@dataclass
class AgentRecord:
    """Registry entry owned by the orchestrator."""
    name: str
    agent: Any
    status: AgentStatus = AgentStatus.REGISTERED
    last_health_check: Optional[datetime] = None
    last_error: str = ""

    def to_dict(self) -> dict:
        return {
            "status": self.status.value,
            "last_health_check": self.last_health_check.isoformat() if self.last_health_check else None,
            "last_error": self.last_error or None,
        }
