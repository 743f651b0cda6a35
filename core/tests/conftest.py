"""Shared fixtures: a fast engine config and a per-step context factory."""

import pytest

from flowengine.config import EngineConfig
from flowengine.graph.context import ExecutionContext
from flowengine.runtime.event_bus import EventBus
from flowengine.variables.registry import VariableRegistry


@pytest.fixture
def fast_config():
    """Config with short waits so delay and polling tests finish quickly."""
    return EngineConfig(
        model="test-model",
        api_key=None,
        max_delay_ms=200,
        max_wait_ms=300,
        poll_interval_ms=10,
        loop_max_iterations=5,
        loop_iteration_ceiling=10,
    )


@pytest.fixture
def make_context(fast_config):
    def factory(input=None, outputs=None, **overrides) -> ExecutionContext:
        params = {
            "flow_id": "flow-1",
            "node_id": "node-1",
            "execution_id": "exec-1",
            "input": input,
            "outputs": outputs if outputs is not None else {},
            "event_bus": EventBus(),
            "variable_registry": VariableRegistry(),
            "config": fast_config,
        }
        params.update(overrides)
        return ExecutionContext(**params)

    return factory
