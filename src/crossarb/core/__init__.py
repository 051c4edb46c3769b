"""Core agents: event bus, price monitors, detector, executor and orchestrator."""

from .event_bus import EventBus
from .agent import Agent, BusPort
from .price_monitor import PriceMonitor, PriceSourceStage
from .arbitrage_detector import ArbitrageDetector
from .trade_executor import TradeExecutor
from .orchestrator import Orchestrator

__all__ = [
    "EventBus",
    "Agent",
    "BusPort",
    "PriceMonitor",
    "PriceSourceStage",
    "ArbitrageDetector",
    "TradeExecutor",
    "Orchestrator",
]
