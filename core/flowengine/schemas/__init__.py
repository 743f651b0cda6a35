"""Schema definitions for flow documents and execution logs."""

from flowengine.schemas.execution_log import ExecutionLogEntry, LogStatus, RunSummary
from flowengine.schemas.graph import FlowEdge, FlowGraph, FlowNode, load_graph

__all__ = [
    "ExecutionLogEntry",
    "FlowEdge",
    "FlowGraph",
    "FlowNode",
    "LogStatus",
    "RunSummary",
    "load_graph",
]
