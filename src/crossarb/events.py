"""Typed events carried by the event bus, one dataclass per topic."""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import ClassVar, Dict, Optional, Tuple, Union

from crossarb.models import Chain, Opportunity, PriceQuote, TradeResult


class Topic(Enum):
    """Event topics."""
    PRICE_UPDATE = "price:update"
    ARBITRAGE_OPPORTUNITY = "arbitrage:opportunity"
    ARBITRAGE_SKIPPED = "arbitrage:skipped"
    TRADE_COMPLETE = "trade:complete"
    AGENT_ERROR = "agent:error"
    BALANCE_UPDATE = "balance:update"


@dataclass(frozen=True)
class PriceUpdate:
    topic: ClassVar[Topic] = Topic.PRICE_UPDATE
    source: str
    quote: PriceQuote

    @property
    def chain(self) -> Chain:
        return self.quote.chain

    @property
    def price(self) -> float:
        return self.quote.price


@dataclass(frozen=True)
class OpportunityDetected:
    topic: ClassVar[Topic] = Topic.ARBITRAGE_OPPORTUNITY
    source: str
    opportunity: Opportunity
    sequence: int


@dataclass(frozen=True)
class OpportunitySkipped:
    """A discarded evaluation or opportunity, always with reasons."""
    topic: ClassVar[Topic] = Topic.ARBITRAGE_SKIPPED
    source: str
    reasons: Tuple[str, ...]
    timestamp: datetime
    opportunity: Optional[Opportunity] = None
    stale_venues: Tuple[Chain, ...] = ()


@dataclass(frozen=True)
class TradeCompleted:
    topic: ClassVar[Topic] = Topic.TRADE_COMPLETE
    source: str
    result: TradeResult

    @property
    def success(self) -> bool:
        return self.result.success


@dataclass(frozen=True)
class AgentErrorEvent:
    topic: ClassVar[Topic] = Topic.AGENT_ERROR
    source: str
    error: str
    error_type: str
    critical: bool
    timestamp: datetime
    context: str = ""


@dataclass(frozen=True)
class BalanceUpdate:
    topic: ClassVar[Topic] = Topic.BALANCE_UPDATE
    source: str
    timestamp: datetime
    balances: Dict[str, Dict[str, float]] = field(default_factory=dict)


Event = Union[
    PriceUpdate,
    OpportunityDetected,
    OpportunitySkipped,
    TradeCompleted,
    AgentErrorEvent,
    BalanceUpdate,
]
