"""
Event Bus - Topic-based pub/sub that decouples side effects from the engine.

The executor, the registries and node plugins emit events; UIs, metrics and
loggers subscribe. Emitting never blocks and never re-enters the emitter:
delivery is scheduled on the running event loop after the current
synchronous unit of work finishes.
"""

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import Any

from flowengine.errors import WaitTimeoutError

logger = logging.getLogger(__name__)


class Topic(StrEnum):
    """Topics emitted by the engine and its registries."""

    # Node execution lifecycle
    NODE_EXECUTION_STARTED = "node.execution.started"
    NODE_EXECUTION_COMPLETED = "node.execution.completed"
    NODE_EXECUTION_FAILED = "node.execution.failed"

    # Flow execution lifecycle
    FLOW_EXECUTION_STARTED = "flow.execution.started"
    FLOW_EXECUTION_COMPLETED = "flow.execution.completed"
    FLOW_EXECUTION_FAILED = "flow.execution.failed"

    # Plugin registry
    NODE_PLUGIN_REGISTERED = "node.plugin.registered"
    NODE_PLUGIN_UNREGISTERED = "node.plugin.unregistered"
    NODE_PLUGIN_TOGGLED = "node.plugin.toggled"

    # Variable registry
    VARIABLES_SCHEMA_REGISTERED = "variables.schema.registered"
    VARIABLES_RUNTIME_REGISTERED = "variables.runtime.registered"
    VARIABLES_RUNTIME_INVALIDATED = "variables.runtime.invalidated"
    VARIABLES_RUNTIME_CLEARED = "variables.runtime.cleared"

    # Node-internal progress
    LOOP_ITERATION_STARTED = "loop.iteration.started"
    LOOP_ITERATION_COMPLETED = "loop.iteration.completed"
    DELAY_WAITING = "delay.waiting"


@dataclass
class FlowEvent:
    """An event delivered to subscribers."""

    topic: str
    data: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "topic": str(self.topic),
            "data": self.data,
            "timestamp": self.timestamp.isoformat(),
        }


# Handlers may be plain callables or coroutine functions
EventHandler = Callable[[FlowEvent], Awaitable[None] | None]


@dataclass
class Subscription:
    """A subscription to one topic."""

    id: str
    topic: str
    handler: EventHandler
    once: bool = False


class EventBus:
    """
    Topic pub/sub bus with deferred delivery.

    Features:
    - ``on``/``once``/``off`` subscriptions, handlers fire in subscription order
    - Handler failures are isolated and logged
    - ``wait_for`` with timeout
    - Bounded event history for debugging
    - Explicit lifecycle: ``drain()``/``close()`` at shutdown

    Example:
        bus = EventBus()

        def on_failed(event: FlowEvent):
            print(f"Run failed: {event.data['error']}")

        unsubscribe = bus.on(Topic.FLOW_EXECUTION_FAILED, on_failed)
        bus.emit(Topic.FLOW_EXECUTION_FAILED, {"error": "boom"})
        await bus.drain()
        unsubscribe()
    """

    def __init__(self, max_history: int = 1000):
        """
        Initialize event bus.

        Args:
            max_history: Maximum events to keep in history
        """
        self._subscriptions: dict[str, list[Subscription]] = {}
        self._event_history: list[FlowEvent] = []
        self._max_history = max_history
        self._subscription_counter = 0
        self._pending: set[asyncio.Future] = set()
        self._closed = False

    # === SUBSCRIPTION ===

    def on(self, topic: str, handler: EventHandler) -> Callable[[], bool]:
        """
        Subscribe ``handler`` to ``topic``.

        Returns:
            A callable that removes this subscription.
        """
        subscription = self._add(topic, handler, once=False)
        return lambda: self._remove(subscription)

    def once(self, topic: str, handler: EventHandler) -> Callable[[], bool]:
        """Subscribe for the next event on ``topic`` only."""
        subscription = self._add(topic, handler, once=True)
        return lambda: self._remove(subscription)

    def off(self, topic: str, handler: EventHandler) -> bool:
        """Remove the first subscription of ``handler`` on ``topic``."""
        for subscription in self._subscriptions.get(topic, []):
            if subscription.handler is handler:
                return self._remove(subscription)
        return False

    def remove_all_listeners(self, topic: str | None = None) -> None:
        """Drop every subscription, or only those on ``topic``."""
        if topic is None:
            self._subscriptions.clear()
        else:
            self._subscriptions.pop(topic, None)

    def _add(self, topic: str, handler: EventHandler, once: bool) -> Subscription:
        self._subscription_counter += 1
        subscription = Subscription(
            id=f"sub_{self._subscription_counter}",
            topic=str(topic),
            handler=handler,
            once=once,
        )
        self._subscriptions.setdefault(subscription.topic, []).append(subscription)
        logger.debug(f"Subscription {subscription.id} registered for {subscription.topic}")
        return subscription

    def _remove(self, subscription: Subscription) -> bool:
        subscriptions = self._subscriptions.get(subscription.topic)
        if not subscriptions or subscription not in subscriptions:
            return False
        subscriptions.remove(subscription)
        if not subscriptions:
            del self._subscriptions[subscription.topic]
        logger.debug(f"Subscription {subscription.id} removed")
        return True

    # === PUBLISHING ===

    def emit(self, topic: str, data: dict[str, Any] | None = None) -> FlowEvent:
        """
        Publish an event to all current subscribers of ``topic``.

        Subscribers are captured now; delivery happens on
        the next turn of the running event loop, or inline when no loop runs.
        Inline delivery re-enters the caller: handlers run before ``emit``
        returns, so a handler that emits or subscribes does so mid-call. This
        only happens outside a loop, e.g. plugin registration at startup.
        """
        event = FlowEvent(topic=str(topic), data=dict(data or {}))

        self._event_history.append(event)
        if len(self._event_history) > self._max_history:
            self._event_history = self._event_history[-self._max_history :]

        if self._closed:
            logger.debug(f"Event bus closed, dropping {event.topic}")
            return event

        subscriptions = list(self._subscriptions.get(event.topic, []))
        if not subscriptions:
            return event

        for subscription in subscriptions:
            if subscription.once:
                self._remove(subscription)

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._deliver(event, subscriptions)
            return event

        marker = loop.create_future()
        self._pending.add(marker)
        loop.call_soon(self._deliver_scheduled, event, subscriptions, marker)
        return event

    def _deliver_scheduled(
        self,
        event: FlowEvent,
        subscriptions: list[Subscription],
        marker: asyncio.Future,
    ) -> None:
        try:
            self._deliver(event, subscriptions)
        finally:
            self._pending.discard(marker)
            if not marker.done():
                marker.set_result(None)

    def _deliver(self, event: FlowEvent, subscriptions: list[Subscription]) -> None:
        """Invoke handlers in subscription order, isolating failures."""
        for subscription in subscriptions:
            try:
                result = subscription.handler(event)
            except Exception as e:
                logger.error(f"Handler error for {event.topic}: {e}", exc_info=True)
                continue

            if inspect.isawaitable(result):
                try:
                    asyncio.get_running_loop()
                except RuntimeError:
                    if inspect.iscoroutine(result):
                        result.close()
                    logger.error(f"Async handler for {event.topic} needs a running event loop")
                    continue
                task = asyncio.ensure_future(result)
                self._pending.add(task)
                task.add_done_callback(lambda t, topic=event.topic: self._task_done(t, topic))

    def _task_done(self, task: asyncio.Future, topic: str) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"Handler error for {topic}: {exc}", exc_info=exc)

    # === QUERY OPERATIONS ===

    def listener_count(self, topic: str) -> int:
        """Number of subscriptions on ``topic``."""
        return len(self._subscriptions.get(str(topic), []))

    def has_listeners(self, topic: str) -> bool:
        return self.listener_count(topic) > 0

    def topics(self) -> list[str]:
        """Topics that currently have at least one subscriber."""
        return list(self._subscriptions)

    def get_history(self, topic: str | None = None, limit: int = 100) -> list[FlowEvent]:
        """
        Get event history with optional filtering.

        Args:
            topic: Filter by topic
            limit: Maximum events to return

        Returns:
            List of matching events (most recent first)
        """
        events = self._event_history[::-1]
        if topic:
            events = [e for e in events if e.topic == topic]
        return events[:limit]

    def get_stats(self) -> dict:
        """Get event bus statistics."""
        topic_counts: dict[str, int] = {}
        for event in self._event_history:
            topic_counts[event.topic] = topic_counts.get(event.topic, 0) + 1

        return {
            "total_events": len(self._event_history),
            "subscriptions": sum(len(subs) for subs in self._subscriptions.values()),
            "events_by_topic": topic_counts,
            "pending_deliveries": len(self._pending),
        }

    # === WAITING OPERATIONS ===

    async def wait_for(self, topic: str, timeout: float | None = None) -> FlowEvent:
        """
        Wait for the next event on ``topic``.

        Args:
            topic: Topic to wait for
            timeout: Maximum time to wait (seconds), None waits forever

        Raises:
            WaitTimeoutError: if no event arrives within ``timeout``
        """
        loop = asyncio.get_running_loop()
        received: asyncio.Future[FlowEvent] = loop.create_future()

        def handler(event: FlowEvent) -> None:
            if not received.done():
                received.set_result(event)

        unsubscribe = self.once(topic, handler)
        try:
            if timeout is None:
                return await received
            try:
                return await asyncio.wait_for(received, timeout=timeout)
            except TimeoutError:
                raise WaitTimeoutError(
                    f"Event '{topic}' timed out after {int(timeout * 1000)}ms"
                ) from None
        finally:
            unsubscribe()

    # === LIFECYCLE ===

    async def drain(self) -> None:
        """Wait until every scheduled delivery and async handler has finished."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def close(self) -> None:
        """Deliver what is pending, then stop accepting subscribers' deliveries."""
        await self.drain()
        self._closed = True
        self.remove_all_listeners()
