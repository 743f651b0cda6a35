"""
Flow Executor - Runs flow graphs.

The executor:
1. Locates the single trigger node
2. Resolves each node's plugin through the NodeRegistry
3. Executes it with a per-step ExecutionContext
4. Records the output (feeding the VariableRegistry)
5. Picks the next node from the node's branching output
6. Returns a FlowExecutionResult with the path, outputs and log
"""

import logging
import time
import uuid
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

import httpx

from flowengine.config import EngineConfig
from flowengine.errors import (
    BranchingError,
    CycleError,
    FlowEngineError,
    PluginExecutionError,
    StructuralError,
)
from flowengine.graph.context import ExecutionContext, NodeExecutionMetadata
from flowengine.graph.safe_eval import SafeEvaluator
from flowengine.llm.provider import LLMProvider
from flowengine.nodes.base import get_connection_requirements, validate_plugin_data
from flowengine.nodes.registry import NodeRegistry
from flowengine.observability import set_trace_context
from flowengine.runtime.event_bus import EventBus, Topic
from flowengine.runtime.execution_log import ExecutionLog
from flowengine.schemas.execution_log import ExecutionLogEntry
from flowengine.schemas.graph import FlowEdge, FlowGraph, FlowNode
from flowengine.variables.registry import VariableRegistry

logger = logging.getLogger(__name__)

TRIGGER_TYPE = "trigger"
END_TYPE = "end"

LOOP_CONTINUE_PORTS = ("continue", "loop")
LOOP_DONE_PORTS = ("done", "main")


@dataclass
class FlowExecutionResult:
    """Result of executing a flow."""

    success: bool
    status: str
    flow_id: str
    execution_id: str
    path: list[str] = field(default_factory=list)  # Node IDs executed, in order
    outputs: dict[str, Any] = field(default_factory=dict)  # node_id -> output
    log: list[ExecutionLogEntry] = field(default_factory=list)
    error: str | None = None
    reached_end: bool = False

    @property
    def final_output(self) -> Any:
        """Output of the last node that ran, None when nothing ran."""
        if not self.path:
            return None
        return self.outputs.get(self.path[-1])


@dataclass
class FlowValidation:
    """Pre-flight check of a graph against the registry."""

    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors


class FlowExecutor:
    """
    Walks a FlowGraph from its trigger node to an end node.

    Runs are serial: each node's ``execute`` is awaited before the next node
    is resolved. Every run owns its output map and log; the registries and
    the event bus are shared.

    Example:
        executor = FlowExecutor(node_registry, variable_registry, event_bus)
        result = await executor.execute(graph, {"user": "ann"}, on_log_entry=print)
    """

    def __init__(
        self,
        node_registry: NodeRegistry,
        variable_registry: VariableRegistry,
        event_bus: EventBus,
        config: EngineConfig | None = None,
        llm: LLMProvider | None = None,
        http_client: httpx.AsyncClient | None = None,
        evaluator: SafeEvaluator | None = None,
    ):
        self.node_registry = node_registry
        self.variable_registry = variable_registry
        self.event_bus = event_bus
        self.config = config or EngineConfig()
        self.llm = llm
        self.http_client = http_client
        self.evaluator = evaluator or SafeEvaluator()
        self.logger = logger

    def validate_flow(self, graph: FlowGraph) -> FlowValidation:
        """
        Check structure, the trigger, plugin availability, node configuration
        and connection counts.

        Too many connections on a port side is an error; too few is a warning,
        since the run can still proceed and stop early.
        """
        validation = FlowValidation(errors=graph.validate_structure())

        triggers = graph.find_nodes_by_type(TRIGGER_TYPE)
        if not triggers:
            validation.errors.append("No trigger node found")
        elif len(triggers) > 1:
            validation.errors.append(
                f"Multiple trigger nodes found: {', '.join(n.id for n in triggers)}"
            )

        for node in graph.nodes:
            plugin = self.node_registry.get(node.type)
            if plugin is None:
                validation.errors.append(
                    f"Node '{node.id}': no enabled plugin for type '{node.type}'"
                )
                continue
            for error in validate_plugin_data(plugin, node.data):
                validation.errors.append(f"Node '{node.id}': {error}")
            self._check_connections(graph, node, plugin, validation)

        if len(triggers) == 1:
            reachable = graph.reachable_from(triggers[0].id)
            for node in graph.nodes:
                if node.id not in reachable:
                    validation.warnings.append(
                        f"Node '{node.id}' is not reachable from the trigger"
                    )
            end_ids = {n.id for n in graph.find_nodes_by_type(END_TYPE)}
            if not end_ids & reachable:
                validation.warnings.append("No end node is reachable from the trigger")

        return validation

    @staticmethod
    def _check_connections(
        graph: FlowGraph, node: FlowNode, plugin: Any, validation: FlowValidation
    ) -> None:
        requirements = get_connection_requirements(plugin)
        counts = (
            ("incoming", len(graph.get_incoming_edges(node.id)),
             requirements.min_inputs, requirements.max_inputs),
            ("outgoing", len(graph.get_outgoing_edges(node.id)),
             requirements.min_outputs, requirements.max_outputs),
        )
        for side, found, minimum, maximum in counts:
            if maximum is not None and found > maximum:
                validation.errors.append(
                    f"Node '{node.id}': allows at most {maximum} {side} connection(s), "
                    f"found {found}"
                )
            elif found < minimum:
                validation.warnings.append(
                    f"Node '{node.id}': expects at least {minimum} {side} connection(s), "
                    f"found {found}"
                )

    async def execute(
        self,
        graph: FlowGraph,
        trigger_input: Any = None,
        on_log_entry: Callable[[ExecutionLogEntry], None] | None = None,
        flow_id: str | None = None,
    ) -> FlowExecutionResult:
        """
        Execute ``graph`` once.

        Args:
            graph: The flow to run
            trigger_input: Payload handed to the trigger node ({} when None)
            on_log_entry: Called synchronously with every log entry, in order
            flow_id: Identifier stamped on events; generated when omitted

        Returns:
            FlowExecutionResult; never raises for engine-level failures
        """
        flow_id = flow_id or str(uuid.uuid4())
        execution_id = str(uuid.uuid4())
        outputs: dict[str, Any] = {}
        path: list[str] = []
        started = time.perf_counter()

        run_log = ExecutionLog(on_entry=on_log_entry)
        run_log.start_run(flow_id, execution_id)
        set_trace_context(flow_id=flow_id, execution_id=execution_id)

        def result(status: str, error: str | None = None, reached_end: bool = False):
            run_log.end_run(status, path=path, error=error or "")
            return FlowExecutionResult(
                success=status != "failed",
                status=status,
                flow_id=flow_id,
                execution_id=execution_id,
                path=list(path),
                outputs=outputs,
                log=run_log.entries,
                error=error,
                reached_end=reached_end,
            )

        try:
            trigger = self._find_trigger(graph)
        except StructuralError as e:
            self.logger.error(f"✗ {e.message}")
            run_log.error(None, e.message)
            self.event_bus.emit(
                Topic.FLOW_EXECUTION_FAILED,
                {"flow_id": flow_id, "execution_id": execution_id, "error": e.message},
            )
            return result("failed", error=e.message)

        self.logger.info(f"🚀 Starting flow execution: {flow_id} ({len(graph.nodes)} nodes)")
        self.logger.info(f"   Entry node: {trigger.id}")
        self.event_bus.emit(
            Topic.FLOW_EXECUTION_STARTED,
            {
                "flow_id": flow_id,
                "execution_id": execution_id,
                "trigger_node_id": trigger.id,
                "total_nodes": len(graph.nodes),
            },
        )

        current: FlowNode | None = trigger
        node_input = trigger_input if trigger_input is not None else {}
        visited: set[str] = set()

        while current is not None:
            node = current
            try:
                if node.id in visited:
                    raise CycleError(node.id, path)
                visited.add(node.id)
                path.append(node.id)

                output = await self._execute_node(
                    graph, node, node_input, outputs, flow_id, execution_id, len(path), run_log
                )
                next_node = self._get_next_node(graph, node, output)
            except FlowEngineError as e:
                message = e.message
                self.logger.error(f"   ✗ Failed: {message}")
                if e.node_id and graph.get_node(e.node_id) is not None:
                    run_log.error(graph.get_node(e.node_id), message)
                elif e.node_id:
                    run_log.error(None, message, node_id=e.node_id)
                else:
                    run_log.error(node, message)
                self.event_bus.emit(
                    Topic.NODE_EXECUTION_FAILED,
                    {
                        "flow_id": flow_id,
                        "execution_id": execution_id,
                        "node_id": e.node_id or node.id,
                        "node_type": node.type,
                        "error": message,
                    },
                )
                self.event_bus.emit(
                    Topic.FLOW_EXECUTION_FAILED,
                    {
                        "flow_id": flow_id,
                        "execution_id": execution_id,
                        "node_id": e.node_id or node.id,
                        "error": message,
                        "path": list(path),
                    },
                )
                return result("failed", error=message)

            run_log.success(node, f"✓ {node.label} completed", output=output)
            self.event_bus.emit(
                Topic.NODE_EXECUTION_COMPLETED,
                {
                    "flow_id": flow_id,
                    "execution_id": execution_id,
                    "node_id": node.id,
                    "node_type": node.type,
                    "output": output,
                },
            )

            if next_node is not None:
                self.logger.info(f"   → Next: {next_node.id}")
            current = next_node
            node_input = output

        last = graph.get_node(path[-1])
        duration_ms = int((time.perf_counter() - started) * 1000)
        reached_end = last is not None and last.type == END_TYPE

        if reached_end:
            self.logger.info(f"✓ Flow completed in {duration_ms}ms ({len(path)} nodes)")
            status = "completed"
        else:
            message = f"⚠ Flow stopped at '{last.label}' without reaching an end node"
            self.logger.warning(message)
            run_log.skipped(last, message)
            status = "incomplete"

        self.event_bus.emit(
            Topic.FLOW_EXECUTION_COMPLETED,
            {
                "flow_id": flow_id,
                "execution_id": execution_id,
                "status": status,
                "path": list(path),
                "reached_end": reached_end,
                "duration_ms": duration_ms,
            },
        )
        return result(status, reached_end=reached_end)

    def _find_trigger(self, graph: FlowGraph) -> FlowNode:
        triggers = graph.find_nodes_by_type(TRIGGER_TYPE)
        if not triggers:
            raise StructuralError("No trigger node found in workflow")
        if len(triggers) > 1:
            raise StructuralError(
                f"Workflow must have exactly one trigger node, found {len(triggers)}"
            )
        return triggers[0]

    async def _execute_node(
        self,
        graph: FlowGraph,
        node: FlowNode,
        node_input: Any,
        outputs: dict[str, Any],
        flow_id: str,
        execution_id: str,
        index: int,
        run_log: ExecutionLog,
    ) -> Any:
        set_trace_context(node_id=node.id)
        self.logger.info(f"▶ Step {index}: {node.label} ({node.type})")
        run_log.processing(node, f"▶ Processing {node.label}...", input=node_input)
        self.event_bus.emit(
            Topic.NODE_EXECUTION_STARTED,
            {
                "flow_id": flow_id,
                "execution_id": execution_id,
                "node_id": node.id,
                "node_type": node.type,
                "input": node_input,
            },
        )

        plugin = self.node_registry.get(node.type)
        if plugin is None:
            raise StructuralError(f"No plugin registered for node type: {node.type}", node_id=node.id)

        context = ExecutionContext(
            flow_id=flow_id,
            node_id=node.id,
            execution_id=execution_id,
            input=node_input,
            outputs=outputs,
            event_bus=self.event_bus,
            variable_registry=self.variable_registry,
            config=self.config,
            evaluator=self.evaluator,
            metadata=NodeExecutionMetadata(
                total_nodes=len(graph.nodes),
                current_node_index=index - 1,
            ),
            logger=logging.getLogger(f"flowengine.nodes.{node.type}"),
            llm=self.llm,
            http_client=self.http_client,
        )

        started = time.perf_counter()
        try:
            output = await plugin.execute(node_input, dict(node.data), context)
        except FlowEngineError as e:
            if e.node_id is None:
                e.node_id = node.id
            raise
        except Exception as e:
            raise PluginExecutionError(
                str(e) or type(e).__name__, node_id=node.id, node_type=node.type
            ) from e

        self.logger.info(
            f"   ✓ Done in {int((time.perf_counter() - started) * 1000)}ms",
            extra={"event": "node_completed", "node_type": node.type},
        )
        context.set_node_output(node.id, output)
        return output

    def _get_next_node(self, graph: FlowGraph, node: FlowNode, output: Any) -> FlowNode | None:
        edge = self._select_edge(graph, node, output)
        if edge is None:
            return None
        target = graph.get_node(edge.target)
        if target is None:
            raise StructuralError(
                f"Edge '{edge.id}' points to missing node '{edge.target}'", node_id=node.id
            )
        return target

    def _select_edge(self, graph: FlowGraph, node: FlowNode, output: Any) -> FlowEdge | None:
        """Pick the outgoing edge for ``output`` according to the node's type."""
        edges = graph.get_outgoing_edges(node.id)
        if not edges:
            return None
        fields = output if isinstance(output, Mapping) else {}

        if node.type == "condition":
            port = "true" if fields.get("condition_result") else "false"
            return self._edge_for_ports(edges, node, (port,))

        if node.type == "switch":
            ports = [str(fields.get("output_path") or "default")]
            index = fields.get("matched_case_index")
            if isinstance(index, int) and index >= 0:
                ports.append(f"case_{index}")
            edge = _find_edge(edges, ports)
            if edge is None and not fields.get("is_default_case"):
                edge = _find_edge(edges, ("default",))
            if edge is None:
                raise BranchingError(
                    f"No outgoing edge for switch port '{ports[0]}'", node_id=node.id
                )
            return edge

        if node.type == "loop":
            if fields.get("loop_continue"):
                edge = _find_edge(edges, LOOP_CONTINUE_PORTS)
                if edge is not None:
                    return edge
            edge = _find_edge(edges, LOOP_DONE_PORTS) or _find_edge(edges, (None,))
            if edge is None and fields.get("loop_continue"):
                raise BranchingError(
                    "Loop node has no 'continue' or 'done' edge", node_id=node.id
                )
            return edge

        return edges[0]

    @staticmethod
    def _edge_for_ports(edges: list[FlowEdge], node: FlowNode, ports: tuple[str, ...]) -> FlowEdge:
        edge = _find_edge(edges, ports)
        if edge is None:
            raise BranchingError(
                f"No outgoing edge for {node.type} port '{ports[0]}'", node_id=node.id
            )
        return edge


def _find_edge(edges: list[FlowEdge], ports) -> FlowEdge | None:
    for edge in edges:
        if edge.port in ports:
            return edge
    return None

