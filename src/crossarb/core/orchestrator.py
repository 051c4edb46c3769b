"""Agent registry, lifecycle and supervision."""
import asyncio
from datetime import datetime, timezone
from typing import Dict, Optional
from loguru import logger

from crossarb.config import AgentConfig
from crossarb.core.agent import Agent
from crossarb.core.event_bus import EventBus
from crossarb.events import (
    AgentErrorEvent, BalanceUpdate, OpportunityDetected, OpportunitySkipped,
    PriceUpdate, Topic, TradeCompleted,
)
from crossarb.infrastructure.error_handling import (
    AgentRegistrationError, AgentStartupError, ErrorTracker,
)
from crossarb.models import AgentRecord, AgentStatus


class Orchestrator:
    """
    Owns the event bus and every registered agent.

    Agents are started concurrently and supervised passively: errors are
    counted, critical ones mark the agent failed, and a periodic liveness
    check catches agents that stopped on their own. Nothing is restarted.
    """

    def __init__(self, agents: Optional[AgentConfig] = None, bus: Optional[EventBus] = None):
        self.bus = bus or EventBus()
        self.settings = agents or AgentConfig()
        self.agents: Dict[str, AgentRecord] = {}
        self.error_tracker = ErrorTracker()
        self.start_time: Optional[datetime] = None
        self.log = logger.bind(agent="ORCHESTRATOR")
        self._health_task: Optional[asyncio.Task] = None

        self._setup_event_handlers()

    # registry

    def register(self, name: str, agent: Agent) -> AgentRecord:
        """Add an agent to the registry and give it the bus."""
        if name in self.agents:
            raise AgentRegistrationError(f"Agent {name} already registered")

        agent.attach_bus(self.bus)
        record = AgentRecord(name=name, agent=agent)
        self.agents[name] = record
        self.log.info(f"Registered agent: {name}")
        return record

    def _record(self, name: str) -> AgentRecord:
        try:
            return self.agents[name]
        except KeyError:
            raise AgentRegistrationError(f"Agent {name} not found")

    # lifecycle

    async def start_agent(self, name: str):
        record = self._record(name)
        record.status = AgentStatus.STARTING
        self.log.info(f"Starting agent: {name}")

        try:
            await record.agent.start()
        except Exception as e:
            record.status = AgentStatus.FAILED
            record.last_error = str(e)
            self.log.error(f"Failed to start agent {name}: {e}")
            raise

        record.status = AgentStatus.RUNNING
        record.last_health_check = datetime.now(timezone.utc)
        self.log.success(f"Agent {name} started")

    async def stop_agent(self, name: str):
        record = self._record(name)
        record.status = AgentStatus.STOPPING

        try:
            await record.agent.stop()
            record.status = AgentStatus.STOPPED
            self.log.info(f"Agent {name} stopped")
        except Exception as e:
            record.status = AgentStatus.FAILED
            record.last_error = str(e)
            self.log.error(f"Error stopping agent {name}: {e}")

    async def start_all(self):
        """Start every agent; raises AgentStartupError listing the failures."""
        self.log.info("Starting all agents...")
        self.start_time = datetime.now(timezone.utc)

        names = list(self.agents)
        results = await asyncio.gather(
            *(self.start_agent(name) for name in names),
            return_exceptions=True,
        )

        failures = {
            name: result for name, result in zip(names, results)
            if isinstance(result, BaseException)
        }

        self._start_health_check()

        if failures:
            raise AgentStartupError(failures)

        self.log.success("All agents started successfully")

    async def stop_all(self):
        self.log.info("Stopping all agents...")
        self._stop_health_check()

        await asyncio.gather(
            *(self.stop_agent(name) for name, record in self.agents.items()
              if record.status not in (AgentStatus.REGISTERED, AgentStatus.STOPPED)),
        )
        self.log.info("All agents stopped")

    async def shutdown(self):
        """Stop agents, let in-flight handlers finish, then drop subscribers."""
        self.log.info("Shutting down orchestrator...")
        await self.stop_all()
        await self.bus.drain()
        self.bus.clear()
        self.log.success("Orchestrator shutdown complete")

    # supervision

    def _start_health_check(self):
        if self._health_task is None and self.settings.health_check_interval_seconds > 0:
            self._health_task = asyncio.create_task(self._health_loop())

    def _stop_health_check(self):
        if self._health_task is not None:
            self._health_task.cancel()
            self._health_task = None

    async def _health_loop(self):
        while True:
            await asyncio.sleep(self.settings.health_check_interval_seconds)
            self.check_health()

    def check_health(self):
        """Mark running agents that no longer report running as failed."""
        now = datetime.now(timezone.utc)
        for name, record in self.agents.items():
            if record.status != AgentStatus.RUNNING:
                continue

            if record.agent.is_running():
                record.last_health_check = now
            else:
                record.status = AgentStatus.FAILED
                record.last_error = "agent stopped running"
                self.log.warning(f"Agent {name} is not running")

    def _setup_event_handlers(self):
        self.bus.subscribe(Topic.PRICE_UPDATE, self._on_price_update)
        self.bus.subscribe(Topic.ARBITRAGE_OPPORTUNITY, self._on_opportunity)
        self.bus.subscribe(Topic.ARBITRAGE_SKIPPED, self._on_skipped)
        self.bus.subscribe(Topic.TRADE_COMPLETE, self._on_trade_complete)
        self.bus.subscribe(Topic.AGENT_ERROR, self._on_agent_error)
        self.bus.subscribe(Topic.BALANCE_UPDATE, self._on_balance_update)

    def _on_price_update(self, event: PriceUpdate):
        self.log.debug(f"{event.chain.value} price update: {event.price:.6f} ({event.quote.venue})")

    def _on_opportunity(self, event: OpportunityDetected):
        self.log.info(f"Opportunity #{event.sequence} detected: {event.opportunity}")

    def _on_skipped(self, event: OpportunitySkipped):
        self.log.debug(f"Opportunity skipped by {event.source}: {'; '.join(event.reasons)}")

    def _on_trade_complete(self, event: TradeCompleted):
        result = event.result
        if result.success:
            self.log.success(f"Trade completed: net profit ${result.net_profit_usd:.2f}")
        else:
            self.log.error(f"Trade failed: {result.error}")

    def _on_balance_update(self, event: BalanceUpdate):
        self.log.debug(f"Balances: {event.balances}")

    def _on_agent_error(self, event: AgentErrorEvent):
        self.error_tracker.record_error(
            event.source, event.error_type, event.error, critical=event.critical
        )

        record = self.agents.get(event.source)
        if record is not None:
            record.last_error = event.error

        if event.critical:
            self.log.error(f"Critical error in {event.source}: {event.error}")
            if record is not None:
                record.status = AgentStatus.FAILED
        else:
            self.log.warning(f"Error in {event.source} ({event.context}): {event.error}")

    # views

    def get_status(self) -> dict:
        uptime = (
            (datetime.now(timezone.utc) - self.start_time).total_seconds()
            if self.start_time else 0.0
        )
        return {
            'uptime_seconds': uptime,
            'agents': {name: record.to_dict() for name, record in self.agents.items()},
            'errors': self.error_tracker.get_error_stats(),
        }
