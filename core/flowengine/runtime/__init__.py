"""Runtime services: event bus and execution log. FlowRuntime lives in flow_runtime."""

from flowengine.runtime.event_bus import EventBus, FlowEvent, Topic
from flowengine.runtime.execution_log import ExecutionLog

__all__ = ["EventBus", "ExecutionLog", "FlowEvent", "Topic"]
