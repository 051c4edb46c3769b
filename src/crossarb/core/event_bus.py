"""In-process publish/subscribe bus connecting the agents."""
import asyncio
import inspect
from typing import Any, Callable, Dict, List, Set
from loguru import logger

from crossarb.events import Event, Topic

Handler = Callable[[Any], Any]


class EventBus:
    """
    Topic-routed publish/subscribe channel.

    Plain handlers run synchronously inside publish(); coroutine handlers are
    scheduled as independent tasks in subscription order and are not awaited.
    A failing handler never affects the other subscribers or later events.
    Nothing is persisted: late subscribers do not see past events.
    """

    def __init__(self):
        self._subscribers: Dict[Topic, List[Handler]] = {topic: [] for topic in Topic}
        self._pending: Set[asyncio.Task] = set()
        self.published_count = 0
        self.handler_errors = 0

    def subscribe(self, topic: Topic, handler: Handler):
        """Register a handler for a topic."""
        if handler not in self._subscribers[topic]:
            self._subscribers[topic].append(handler)

    def unsubscribe(self, topic: Topic, handler: Handler) -> bool:
        """Remove a handler; returns False if it was not subscribed."""
        try:
            self._subscribers[topic].remove(handler)
            return True
        except ValueError:
            return False

    def subscriber_count(self, topic: Topic) -> int:
        return len(self._subscribers[topic])

    def publish(self, event: Event):
        """Deliver an event to every current subscriber of its topic."""
        topic = event.topic
        self.published_count += 1

        # snapshot so handlers may (un)subscribe while we iterate
        for handler in list(self._subscribers[topic]):
            try:
                if inspect.iscoroutinefunction(handler):
                    self._schedule(handler, event)
                else:
                    result = handler(event)
                    if inspect.isawaitable(result):
                        self._schedule_awaitable(result, handler)
            except Exception as e:
                self.handler_errors += 1
                logger.opt(exception=e).error(
                    f"Handler {_handler_name(handler)} failed on {topic.value}: {e}"
                )

    def _schedule(self, handler: Handler, event: Event):
        self._schedule_awaitable(handler(event), handler)

    def _schedule_awaitable(self, awaitable, handler: Handler):
        task = asyncio.ensure_future(awaitable)
        self._pending.add(task)
        task.add_done_callback(lambda t: self._on_task_done(t, handler))

    def _on_task_done(self, task: asyncio.Task, handler: Handler):
        self._pending.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            self.handler_errors += 1
            logger.opt(exception=error).error(
                f"Async handler {_handler_name(handler)} failed: {error}"
            )

    @property
    def pending_tasks(self) -> int:
        return len(self._pending)

    async def drain(self):
        """Wait until every scheduled handler task has finished."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    def clear(self):
        """Remove every subscriber."""
        for handlers in self._subscribers.values():
            handlers.clear()


def _handler_name(handler: Handler) -> str:
    return getattr(handler, "__qualname__", repr(handler))
