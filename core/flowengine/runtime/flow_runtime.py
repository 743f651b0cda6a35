"""
Flow Runtime - Composition root for the engine.

Constructs and owns one EventBus, VariableRegistry, NodeRegistry and
FlowExecutor, wired together explicitly. Build it at application start and
call ``shutdown()`` when done so pending event deliveries are drained.
"""

import logging
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

from flowengine.config import EngineConfig
from flowengine.graph.executor import FlowExecutionResult, FlowExecutor, FlowValidation
from flowengine.nodes.builtin import register_builtin_nodes
from flowengine.nodes.registry import NodeRegistry
from flowengine.runtime.event_bus import EventBus
from flowengine.schemas.execution_log import ExecutionLogEntry
from flowengine.schemas.graph import FlowGraph
from flowengine.variables.registry import VariableRegistry

if TYPE_CHECKING:
    import httpx

    from flowengine.llm.provider import LLMProvider

logger = logging.getLogger(__name__)

LLM_AGENT_TYPE = "llm_agent"


class FlowRuntime:
    """
    Owns the shared engine services.

    Example:
        runtime = FlowRuntime(config=EngineConfig.from_file())
        result = await runtime.run(graph, {"order_id": 42})
        await runtime.shutdown()
    """

    def __init__(
        self,
        config: EngineConfig | None = None,
        llm: "LLMProvider | None" = None,
        http_client: "httpx.AsyncClient | None" = None,
        register_builtins: bool = True,
    ):
        """
        Initialize the runtime.

        Args:
            config: Engine configuration (defaults when omitted)
            llm: LLM provider for llm_agent nodes; when omitted and a model is
                configured, a LiteLLMProvider is created the first time a flow
                with an llm_agent node runs
            http_client: Shared client for http_request nodes
            register_builtins: Register the built-in node plugins
        """
        self._config = config or EngineConfig()
        self._event_bus = EventBus(max_history=self._config.max_event_history)
        self._variable_registry = VariableRegistry(
            event_bus=self._event_bus,
            extraction_options=self._config.extraction,
        )
        self._node_registry = NodeRegistry(
            event_bus=self._event_bus,
            variable_registry=self._variable_registry,
        )
        if register_builtins:
            register_builtin_nodes(self._node_registry)

        # Built on first use by a flow that contains an llm_agent node
        self._create_llm_on_demand = llm is None and bool(self._config.model)

        self._executor = FlowExecutor(
            node_registry=self._node_registry,
            variable_registry=self._variable_registry,
            event_bus=self._event_bus,
            config=self._config,
            llm=llm,
            http_client=http_client,
        )
        self._closed = False

    def _create_llm(self) -> "LLMProvider":
        from flowengine.llm.litellm import LiteLLMProvider

        return LiteLLMProvider(
            model=self._config.model,
            api_key=self._config.api_key,
            api_base=self._config.api_base,
            temperature=self._config.temperature,
        )

    async def run(
        self,
        graph: FlowGraph | dict[str, Any],
        trigger_input: Any = None,
        on_log_entry: Callable[[ExecutionLogEntry], None] | None = None,
    ) -> FlowExecutionResult:
        """Execute a graph (a FlowGraph or its JSON-like dict form)."""
        if self._closed:
            raise RuntimeError("FlowRuntime has been shut down")
        if not isinstance(graph, FlowGraph):
            graph = FlowGraph.model_validate(graph)
        if self._create_llm_on_demand and graph.find_nodes_by_type(LLM_AGENT_TYPE):
            self._executor.llm = self._create_llm()
            self._create_llm_on_demand = False
        return await self._executor.execute(graph, trigger_input, on_log_entry=on_log_entry)

    def validate(self, graph: FlowGraph | dict[str, Any]) -> FlowValidation:
        if not isinstance(graph, FlowGraph):
            graph = FlowGraph.model_validate(graph)
        return self._executor.validate_flow(graph)

    async def shutdown(self) -> None:
        """Drain pending event deliveries and drop all subscriptions."""
        if self._closed:
            return
        self._closed = True
        await self._event_bus.close()
        logger.info("FlowRuntime stopped")

    def get_stats(self) -> dict:
        return {
            "event_bus": self._event_bus.get_stats(),
            "node_registry": self._node_registry.get_stats(),
            "variable_registry": self._variable_registry.get_registry_stats(),
        }

    # === PROPERTIES ===

    @property
    def config(self) -> EngineConfig:
        return self._config

    @property
    def event_bus(self) -> EventBus:
        return self._event_bus

    @property
    def node_registry(self) -> NodeRegistry:
        return self._node_registry

    @property
    def variable_registry(self) -> VariableRegistry:
        return self._variable_registry

    @property
    def executor(self) -> FlowExecutor:
        return self._executor
