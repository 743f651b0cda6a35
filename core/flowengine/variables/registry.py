"""
Variable Registry - the address space of values a node can reference.

Two sources feed it:

- static schemas, declared once per node type by plugins
  (``register_node_output_schema``)
- runtime variables, extracted from each node's latest output
  (``register_runtime_variables``)

For a target node, the registry unions both sources over every node that can
reach the target in the graph. It also parses, validates and substitutes
``{nodeId.path}`` references in text.
"""

import logging
import re
from collections.abc import Callable, Mapping
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any

from flowengine.runtime.event_bus import EventBus, Topic
from flowengine.variables.extractor import ExtractionOptions, VariableExtractor
from flowengine.variables.models import (
    AvailableVariable,
    OutputField,
    ReferenceCheck,
    ReferenceValidation,
    RuntimeVariable,
    VariableReference,
    VariableSource,
)
from flowengine.variables.paths import resolve_path, stringify

if TYPE_CHECKING:
    from flowengine.schemas.graph import FlowGraph

logger = logging.getLogger(__name__)

# {nodeId.path} with dotted segments, [0] indices and ["quoted"] keys
REFERENCE_PATTERN = re.compile(r"\{([a-zA-Z0-9_-]+)\.([a-zA-Z0-9_\[\]\"'.$ -]+)\}")

# Any {...} placeholder, for substitution
PLACEHOLDER_PATTERN = re.compile(r"\{([^{}]+)\}")

_UNRESOLVED = object()


def sort_key(variable: AvailableVariable) -> tuple:
    """Static entries first, then shallower runtime entries, then by address."""
    return (
        0 if variable.source == VariableSource.STATIC else 1,
        variable.depth,
        variable.full_path,
    )


def substitute_template(template: str, resolve: Callable[[str], Any]) -> str:
    """
    Replace every ``{...}`` placeholder using ``resolve``.

    ``resolve`` returns the value for a placeholder body, or raises
    ``LookupError`` when it cannot; unresolved placeholders stay as written.
    """
    if not isinstance(template, str) or "{" not in template:
        return template

    def replace(match: re.Match) -> str:
        try:
            value = resolve(match.group(1).strip())
        except LookupError:
            return match.group(0)
        return stringify(value)

    return PLACEHOLDER_PATTERN.sub(replace, template)


class VariableRegistry:
    """
    Static schemas and runtime variables, scoped by graph reachability.

    Example:
        registry = VariableRegistry(event_bus)
        registry.register_node_output_schema("math", [OutputField(name="result")])
        registry.register_runtime_variables("A", {"out": 5})
        registry.substitute("{A.out} items")  # "5 items"
    """

    def __init__(
        self,
        event_bus: EventBus | None = None,
        extraction_options: ExtractionOptions | None = None,
    ):
        self._event_bus = event_bus
        self._extractor = VariableExtractor(extraction_options)
        self._schemas: dict[str, list[OutputField]] = {}
        self._runtime: dict[str, list[RuntimeVariable]] = {}

    # === STATIC SCHEMAS ===

    def register_node_output_schema(self, node_type: str, schema: list[OutputField]) -> None:
        self._schemas[node_type] = list(schema)
        self._emit(
            Topic.VARIABLES_SCHEMA_REGISTERED,
            {"node_type": node_type, "variable_count": len(schema)},
        )

    def unregister_node_output_schema(self, node_type: str) -> bool:
        return self._schemas.pop(node_type, None) is not None

    def get_node_output_schema(self, node_type: str) -> list[OutputField]:
        return list(self._schemas.get(node_type, []))

    def get_all_node_schemas(self) -> dict[str, list[OutputField]]:
        return {node_type: list(schema) for node_type, schema in self._schemas.items()}

    # === RUNTIME VARIABLES ===

    def register_runtime_variables(self, node_id: str, output: Any) -> list[RuntimeVariable]:
        """
        Replace the runtime variables of ``node_id`` with those found in ``output``.

        A non-composite output invalidates the node's previous variables.
        """
        if not isinstance(output, Mapping | list | tuple):
            self.invalidate_runtime_variables(node_id)
            return []

        variables = self._extractor.extract(output, node_id)
        self._runtime[node_id] = variables

        logger.debug(f"Registered {len(variables)} runtime variables for node '{node_id}'")
        self._emit(
            Topic.VARIABLES_RUNTIME_REGISTERED,
            {
                "node_id": node_id,
                "variable_count": len(variables),
                "max_depth": max((v.depth for v in variables), default=0),
            },
        )
        return variables

    def get_runtime_variables(self, node_id: str) -> list[RuntimeVariable]:
        return list(self._runtime.get(node_id, []))

    def invalidate_runtime_variables(self, node_id: str) -> bool:
        """Drop the runtime variables of a node (deleted, disconnected or re-run)."""
        if self._runtime.pop(node_id, None) is None:
            return False
        self._emit(Topic.VARIABLES_RUNTIME_INVALIDATED, {"node_id": node_id})
        return True

    def clear_all_runtime_variables(self) -> None:
        count = len(self._runtime)
        self._runtime.clear()
        self._emit(Topic.VARIABLES_RUNTIME_CLEARED, {"cleared_nodes": count})

    def are_runtime_variables_fresh(self, node_id: str, max_age: float = 60.0) -> bool:
        """True when the node has runtime variables younger than ``max_age`` seconds."""
        variables = self._runtime.get(node_id)
        if not variables:
            return False
        newest = max(v.extracted_at for v in variables)
        return datetime.now() - newest < timedelta(seconds=max_age)

    # === AVAILABILITY ===

    def find_reachable_nodes(self, target_id: str, graph: "FlowGraph") -> set[str]:
        """Ids of every node with a path of edges leading to ``target_id``."""
        incoming: dict[str, list[str]] = {}
        for edge in graph.edges:
            incoming.setdefault(edge.target, []).append(edge.source)

        reachable: set[str] = set()
        visited: set[str] = set()
        to_visit = [target_id]
        while to_visit:
            current = to_visit.pop()
            if current in visited:
                continue
            visited.add(current)
            for source in incoming.get(current, []):
                reachable.add(source)
                to_visit.append(source)
        return reachable

    def get_available_variables_for_node(
        self,
        target_id: str,
        graph: "FlowGraph",
    ) -> list[AvailableVariable]:
        """Static and runtime variables of every node upstream of ``target_id``."""
        available: list[AvailableVariable] = []

        for node_id in self.find_reachable_nodes(target_id, graph):
            node = graph.get_node(node_id)
            if node is None:
                continue
            label = node.label

            for entry in self._schemas.get(node.type, []):
                available.append(
                    AvailableVariable(
                        node_id=node_id,
                        node_label=label,
                        node_type=node.type,
                        variable_name=entry.name,
                        variable_type=entry.type,
                        description=entry.description,
                        full_path=f"{node_id}.{entry.name}",
                        source=VariableSource.STATIC,
                        example=entry.example,
                    )
                )

            for variable in self._runtime.get(node_id, []):
                available.append(
                    AvailableVariable(
                        node_id=node_id,
                        node_label=label,
                        node_type=node.type,
                        variable_name=variable.name,
                        variable_type=variable.type,
                        description=variable.description,
                        full_path=variable.full_path,
                        source=VariableSource.RUNTIME,
                        example=variable.example,
                        actual_value=variable.actual_value,
                        depth=variable.depth,
                        extracted_at=variable.extracted_at,
                    )
                )

        return sorted(available, key=sort_key)

    def get_suggestions(
        self,
        target_id: str,
        graph: "FlowGraph",
        search_term: str = "",
    ) -> list[AvailableVariable]:
        available = self.get_available_variables_for_node(target_id, graph)
        term = search_term.strip().lower()
        if not term:
            return available
        return [
            v
            for v in available
            if term in v.variable_name.lower()
            or term in v.node_label.lower()
            or term in v.description.lower()
            or term in v.full_path.lower()
        ]

    # === REFERENCES ===

    @staticmethod
    def parse_references(text: str) -> list[VariableReference]:
        """Every ``{nodeId.path}`` reference in ``text``, in order of appearance."""
        if not text:
            return []
        return [
            VariableReference(
                match=match.group(0),
                node_id=match.group(1),
                variable_name=match.group(2),
                full_path=f"{match.group(1)}.{match.group(2)}",
            )
            for match in REFERENCE_PATTERN.finditer(text)
        ]

    def validate_references(
        self,
        text: str,
        available: list[AvailableVariable],
    ) -> ReferenceValidation:
        addresses = {v.full_path for v in available}
        checks = []
        for reference in self.parse_references(text):
            if reference.full_path in addresses:
                checks.append(ReferenceCheck(reference=reference, is_valid=True))
            else:
                checks.append(
                    ReferenceCheck(
                        reference=reference,
                        is_valid=False,
                        error=(
                            f'Variable "{reference.full_path}" is not available '
                            "or has not been executed yet"
                        ),
                    )
                )
        return ReferenceValidation(is_valid=all(c.is_valid for c in checks), checks=checks)

    def substitute(self, template: str, outputs: Mapping[str, Any] | None = None) -> str:
        """
        Resolve ``{nodeId.path}`` placeholders in ``template``.

        With ``outputs`` (node id -> output) paths are resolved against those
        values; otherwise against the registered runtime variables. Anything
        unresolved is left as written.
        """

        def resolve(body: str) -> Any:
            node_id, _, path = body.partition(".")
            if not path:
                raise LookupError(body)
            if outputs is not None:
                if node_id not in outputs:
                    raise LookupError(body)
                value = resolve_path(outputs[node_id], path, default=_UNRESOLVED)
            else:
                value = self._lookup_runtime(node_id, body)
            if value is _UNRESOLVED:
                raise LookupError(body)
            return value

        return substitute_template(template, resolve)

    def _lookup_runtime(self, node_id: str, full_path: str) -> Any:
        for variable in self._runtime.get(node_id, []):
            if variable.full_path == full_path:
                return variable.actual_value
        return _UNRESOLVED

    # === STATS ===

    def get_registry_stats(self) -> dict:
        runtime_counts = {node_id: len(vs) for node_id, vs in self._runtime.items()}
        return {
            "node_types_with_schema": len(self._schemas),
            "static_variables": sum(len(s) for s in self._schemas.values()),
            "nodes_with_runtime_variables": len(self._runtime),
            "runtime_variables": sum(runtime_counts.values()),
            "runtime_variables_by_node": runtime_counts,
            "extraction": self._extractor.get_stats(),
        }

    def _emit(self, topic: Topic, data: dict[str, Any]) -> None:
        if self._event_bus is not None:
            self._event_bus.emit(topic, data)
