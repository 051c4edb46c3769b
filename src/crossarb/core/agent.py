"""Agent capability and the bus port agents use to talk to each other."""
from datetime import datetime, timezone
from typing import Optional, Protocol, runtime_checkable
from loguru import logger

from crossarb.core.event_bus import EventBus, Handler
from crossarb.events import AgentErrorEvent, Event, Topic
from crossarb.infrastructure.error_handling import BusNotAttachedError


@runtime_checkable
class Agent(Protocol):
    """What the orchestrator needs from every agent."""

    name: str

    def attach_bus(self, bus: EventBus) -> None:
        ...

    async def start(self) -> None:
        ...

    async def stop(self) -> None:
        ...

    def is_running(self) -> bool:
        ...


class BusPort:
    """An agent's connection to the event bus."""

    def __init__(self, owner: str):
        self.owner = owner
        self.bus: Optional[EventBus] = None
        self.log = logger.bind(agent=owner)

    def attach(self, bus: EventBus):
        self.bus = bus

    @property
    def attached(self) -> bool:
        return self.bus is not None

    def _require_bus(self) -> EventBus:
        if self.bus is None:
            raise BusNotAttachedError(f"Event bus not set for agent {self.owner}")
        return self.bus

    def publish(self, event: Event):
        self._require_bus().publish(event)

    def subscribe(self, topic: Topic, handler: Handler):
        self._require_bus().subscribe(topic, handler)

    def unsubscribe(self, topic: Topic, handler: Handler):
        if self.bus is not None:
            self.bus.unsubscribe(topic, handler)

    def report_error(self, error: BaseException, critical: bool = False, context: str = ""):
        """Publish an agent:error event for the orchestrator and observers."""
        self.publish(AgentErrorEvent(
            source=self.owner,
            error=str(error) or error.__class__.__name__,
            error_type=error.__class__.__name__,
            critical=critical,
            timestamp=datetime.now(timezone.utc),
            context=context,
        ))
