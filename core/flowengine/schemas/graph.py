"""
Graph Schema - the node/edge document produced by the visual editor.

Only ``nodes`` and ``edges`` drive execution. ``position`` and ``viewport``
are presentation data and are carried through untouched.
"""

import json
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class FlowNode(BaseModel):
    """
    One configured unit of work.

    Example:
        FlowNode(
            id="check-status",
            type="condition",
            data={"label": "Status OK?", "expression": "input['status'] == 200"},
        )
    """

    id: str
    type: str = Field(description="Node type tag, resolved through the NodeRegistry")
    position: dict[str, float] = Field(default_factory=lambda: {"x": 0.0, "y": 0.0})
    data: dict[str, Any] = Field(default_factory=dict, description="Type-specific configuration")

    model_config = ConfigDict(extra="allow")

    @property
    def label(self) -> str:
        label = self.data.get("label")
        return str(label) if label else self.id


class FlowEdge(BaseModel):
    """
    Directed connection from a node's output port to another node.

    Accepts the editor's camelCase ``sourceHandle``/``targetHandle`` keys.
    """

    id: str
    source: str = Field(description="Source node ID")
    target: str = Field(description="Target node ID")
    source_handle: str | None = Field(
        default=None,
        alias="sourceHandle",
        description="Output port on the source node, e.g. 'true', 'case_0', 'done'",
    )
    target_handle: str | None = Field(default=None, alias="targetHandle")

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    @property
    def port(self) -> str | None:
        """Source port with the editor's ``output_`` prefix removed."""
        if self.source_handle is None:
            return None
        return self.source_handle.removeprefix("output_")


class FlowGraph(BaseModel):
    """A complete flow document."""

    nodes: list[FlowNode] = Field(default_factory=list)
    edges: list[FlowEdge] = Field(default_factory=list)
    viewport: dict[str, Any] | None = None

    model_config = ConfigDict(extra="allow")

    def get_node(self, node_id: str) -> FlowNode | None:
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None

    def get_outgoing_edges(self, node_id: str) -> list[FlowEdge]:
        return [e for e in self.edges if e.source == node_id]

    def get_incoming_edges(self, node_id: str) -> list[FlowEdge]:
        return [e for e in self.edges if e.target == node_id]

    def find_nodes_by_type(self, node_type: str) -> list[FlowNode]:
        return [n for n in self.nodes if n.type == node_type]

    def validate_structure(self) -> list[str]:
        """Check id uniqueness and edge endpoints."""
        errors = []

        seen_ids: set[str] = set()
        for node in self.nodes:
            if node.id in seen_ids:
                errors.append(f"Duplicate node ID: '{node.id}'")
            seen_ids.add(node.id)

        for edge in self.edges:
            if edge.source not in seen_ids:
                errors.append(f"Edge '{edge.id}' references missing source '{edge.source}'")
            if edge.target not in seen_ids:
                errors.append(f"Edge '{edge.id}' references missing target '{edge.target}'")

        return errors

    def reachable_from(self, node_id: str) -> set[str]:
        """Ids reachable by following edges forward from ``node_id`` (inclusive)."""
        reachable: set[str] = set()
        to_visit = [node_id]
        while to_visit:
            current = to_visit.pop()
            if current in reachable:
                continue
            reachable.add(current)
            for edge in self.get_outgoing_edges(current):
                to_visit.append(edge.target)
        return reachable


def load_graph(path: str | Path) -> FlowGraph:
    """Load a flow document from a JSON file."""
    with open(path, encoding="utf-8") as f:
        return FlowGraph.model_validate(json.load(f))
