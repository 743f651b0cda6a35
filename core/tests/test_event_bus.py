"""
Tests for EventBus: deferred delivery, subscription lifecycle, failure
isolation, wait_for timeouts and history.
"""

import asyncio

import pytest

from flowengine.errors import WaitTimeoutError
from flowengine.runtime.event_bus import EventBus, FlowEvent, Topic


class TestDelivery:
    @pytest.mark.asyncio
    async def test_emit_is_deferred(self):
        bus = EventBus()
        received = []
        bus.on("demo", lambda e: received.append(e.data["n"]))

        bus.emit("demo", {"n": 1})
        assert received == []

        await bus.drain()
        assert received == [1]

    @pytest.mark.asyncio
    async def test_handlers_fire_in_subscription_order(self):
        bus = EventBus()
        order = []
        bus.on("demo", lambda e: order.append("first"))
        bus.on("demo", lambda e: order.append("second"))
        bus.on("demo", lambda e: order.append("third"))

        bus.emit("demo")
        await bus.drain()

        assert order == ["first", "second", "third"]

    @pytest.mark.asyncio
    async def test_failing_handler_does_not_block_others(self):
        bus = EventBus()
        received = []

        def broken(event):
            raise RuntimeError("handler exploded")

        bus.on("demo", broken)
        bus.on("demo", lambda e: received.append(e.topic))

        bus.emit("demo")
        await bus.drain()

        assert received == ["demo"]

    @pytest.mark.asyncio
    async def test_async_handler_is_awaited_by_drain(self):
        bus = EventBus()
        received = []

        async def slow(event: FlowEvent):
            await asyncio.sleep(0.01)
            received.append(event.data["value"])

        bus.on("demo", slow)
        bus.emit("demo", {"value": "done"})
        await bus.drain()

        assert received == ["done"]

    @pytest.mark.asyncio
    async def test_failing_async_handler_is_isolated(self):
        bus = EventBus()
        received = []

        async def broken(event):
            raise ValueError("async failure")

        bus.on("demo", broken)
        bus.on("demo", lambda e: received.append(True))

        bus.emit("demo")
        await bus.drain()

        assert received == [True]

    def test_emit_without_running_loop_delivers_inline(self):
        bus = EventBus()
        received = []
        bus.on("demo", lambda e: received.append(e.data))

        bus.emit("demo", {"x": 1})

        assert received == [{"x": 1}]

    def test_inline_delivery_reenters_emitter(self):
        bus = EventBus()
        order = []
        bus.on("outer", lambda e: (order.append("outer"), bus.emit("inner")))
        bus.on("inner", lambda e: order.append("inner"))

        bus.emit("outer")
        order.append("returned")

        assert order == ["outer", "inner", "returned"]

    @pytest.mark.asyncio
    async def test_subscribers_captured_at_emit_time(self):
        bus = EventBus()
        received = []

        bus.emit("demo", {"n": 1})
        bus.on("demo", lambda e: received.append(e.data["n"]))
        await bus.drain()

        assert received == []

    @pytest.mark.asyncio
    async def test_topic_enum_and_string_are_equivalent(self):
        bus = EventBus()
        received = []
        bus.on("flow.execution.started", lambda e: received.append(e.topic))

        bus.emit(Topic.FLOW_EXECUTION_STARTED, {})
        await bus.drain()

        assert received == ["flow.execution.started"]


class TestSubscriptions:
    @pytest.mark.asyncio
    async def test_unsubscribe_callable(self):
        bus = EventBus()
        received = []
        unsubscribe = bus.on("demo", lambda e: received.append(1))

        assert unsubscribe() is True
        assert unsubscribe() is False

        bus.emit("demo")
        await bus.drain()
        assert received == []

    @pytest.mark.asyncio
    async def test_once_fires_only_once(self):
        bus = EventBus()
        received = []
        bus.once("demo", lambda e: received.append(e.data["n"]))

        bus.emit("demo", {"n": 1})
        bus.emit("demo", {"n": 2})
        await bus.drain()

        assert received == [1]
        assert bus.listener_count("demo") == 0

    def test_off_removes_handler(self):
        bus = EventBus()

        def handler(event):
            pass

        bus.on("demo", handler)
        assert bus.has_listeners("demo")
        assert bus.off("demo", handler) is True
        assert not bus.has_listeners("demo")
        assert bus.off("demo", handler) is False

    def test_remove_all_listeners(self):
        bus = EventBus()
        bus.on("a", lambda e: None)
        bus.on("b", lambda e: None)

        bus.remove_all_listeners("a")
        assert bus.topics() == ["b"]

        bus.remove_all_listeners()
        assert bus.topics() == []


class TestWaitFor:
    @pytest.mark.asyncio
    async def test_resolves_with_next_event(self):
        bus = EventBus()

        async def emit_later():
            await asyncio.sleep(0.01)
            bus.emit("ready", {"ok": True})

        task = asyncio.create_task(emit_later())
        event = await bus.wait_for("ready", timeout=1.0)
        await task

        assert event.data == {"ok": True}
        assert bus.listener_count("ready") == 0

    @pytest.mark.asyncio
    async def test_times_out(self):
        bus = EventBus()

        with pytest.raises(WaitTimeoutError, match="timed out after 50ms"):
            await bus.wait_for("never", timeout=0.05)

        assert bus.listener_count("never") == 0

    @pytest.mark.asyncio
    async def test_timeout_error_is_a_timeout(self):
        bus = EventBus()

        with pytest.raises(TimeoutError):
            await bus.wait_for("never", timeout=0.01)


class TestHistoryAndLifecycle:
    def test_history_is_bounded_and_most_recent_first(self):
        bus = EventBus(max_history=3)
        for n in range(5):
            bus.emit("demo", {"n": n})

        history = bus.get_history()
        assert [e.data["n"] for e in history] == [4, 3, 2]

    def test_history_filter_by_topic(self):
        bus = EventBus()
        bus.emit("a", {})
        bus.emit("b", {})
        bus.emit("a", {})

        assert len(bus.get_history("a")) == 2
        assert bus.get_stats()["events_by_topic"] == {"a": 2, "b": 1}

    def test_event_to_dict(self):
        event = FlowEvent(topic="demo", data={"k": "v"})
        as_dict = event.to_dict()
        assert as_dict["topic"] == "demo"
        assert as_dict["data"] == {"k": "v"}
        assert "timestamp" in as_dict

    @pytest.mark.asyncio
    async def test_close_delivers_pending_then_stops(self):
        bus = EventBus()
        received = []
        bus.on("demo", lambda e: received.append(e.data["n"]))

        bus.emit("demo", {"n": 1})
        await bus.close()
        bus.emit("demo", {"n": 2})
        await bus.drain()

        assert received == [1]
        assert bus.get_stats()["subscriptions"] == 0
