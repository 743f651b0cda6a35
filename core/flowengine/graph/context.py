"""
ExecutionContext - everything a plugin sees while one node runs.

Built by the FlowExecutor for a single step and discarded afterwards. The
output map it exposes belongs to the run, so nodes of the same run share it
while separate runs never do.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any

from flowengine.config import EngineConfig
from flowengine.graph.safe_eval import SafeEvaluator
from flowengine.runtime.event_bus import EventBus
from flowengine.variables.paths import resolve_path
from flowengine.variables.registry import VariableRegistry, substitute_template

if TYPE_CHECKING:
    import httpx

    from flowengine.llm.provider import LLMProvider

_UNRESOLVED = object()


@dataclass
class NodeExecutionMetadata:
    timestamp: datetime = field(default_factory=datetime.now)
    retry_count: int = 0
    total_nodes: int = 0
    current_node_index: int = 0


@dataclass
class ExecutionContext:
    """
    Per-step bundle handed to ``plugin.execute``.

    Services:
    - ``replace_variables``: ``{...}`` template substitution
    - ``evaluate``: sandboxed expression evaluation
    - ``get_node_output``/``set_node_output``: the run's output map
    """

    flow_id: str
    node_id: str
    execution_id: str
    input: Any
    outputs: dict[str, Any]
    event_bus: EventBus
    variable_registry: VariableRegistry | None = None
    config: EngineConfig = field(default_factory=EngineConfig)
    evaluator: SafeEvaluator = field(default_factory=SafeEvaluator)
    metadata: NodeExecutionMetadata = field(default_factory=NodeExecutionMetadata)
    logger: logging.Logger | logging.LoggerAdapter = field(
        default_factory=lambda: logging.getLogger("flowengine.nodes")
    )
    llm: LLMProvider | None = None
    http_client: httpx.AsyncClient | None = None

    # -- output map -----------------------------------------------------

    def get_node_output(self, node_id: str) -> Any:
        return self.outputs.get(node_id)

    def set_node_output(self, node_id: str, output: Any) -> None:
        """Record ``output`` for ``node_id`` and refresh its runtime variables."""
        self.outputs[node_id] = output
        if self.variable_registry is not None:
            self.variable_registry.register_runtime_variables(node_id, output)

    # -- services -------------------------------------------------------

    def replace_variables(self, template: Any, variables: Any = None) -> Any:
        """
        Substitute ``{...}`` placeholders in ``template``.

        ``{node_id.path}`` reads this run's outputs, ``{input.path}`` reads
        ``variables`` (the node input by default), and any other placeholder
        is looked up as a path inside ``variables``. Unresolved placeholders
        are left as written; non-strings are returned unchanged.
        """
        if not isinstance(template, str):
            return template
        scope = self.input if variables is None else variables

        def resolve(body: str) -> Any:
            head, _, rest = body.partition(".")
            if head in self.outputs and rest:
                value = resolve_path(self.outputs[head], rest, default=_UNRESOLVED)
            elif head in self.outputs:
                value = self.outputs[head]
            elif head == "input":
                value = resolve_path(scope, rest, default=_UNRESOLVED) if rest else scope
            else:
                value = resolve_path(scope, body, default=_UNRESOLVED)
            if value is _UNRESOLVED:
                raise LookupError(body)
            return value

        return substitute_template(template, resolve)

    def evaluate(self, expression: str, variables: Mapping[str, Any] | None = None) -> Any:
        """
        Evaluate ``expression`` with ``input`` and ``outputs`` in scope.

        Top-level keys of a mapping input are also exposed as bare names when
        they are valid identifiers.
        """
        scope: dict[str, Any] = {}
        if isinstance(self.input, Mapping):
            scope.update(
                {k: v for k, v in self.input.items() if isinstance(k, str) and k.isidentifier()}
            )
        scope["input"] = self.input
        scope["outputs"] = self.outputs
        if variables:
            scope.update(variables)
        return self.evaluator.evaluate(expression, scope)

    def emit(self, topic: str, data: dict[str, Any] | None = None) -> None:
        """Emit a bus event stamped with this step's ids."""
        payload = {
            "flow_id": self.flow_id,
            "execution_id": self.execution_id,
            "node_id": self.node_id,
        }
        payload.update(data or {})
        self.event_bus.emit(topic, payload)
