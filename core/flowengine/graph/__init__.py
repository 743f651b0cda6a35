"""Graph execution: per-step context, expression sandbox and the executor."""

from flowengine.graph.context import ExecutionContext, NodeExecutionMetadata
from flowengine.graph.executor import FlowExecutionResult, FlowExecutor, FlowValidation
from flowengine.graph.safe_eval import SafeEvaluator, safe_eval

__all__ = [
    "ExecutionContext",
    "FlowExecutionResult",
    "FlowExecutor",
    "FlowValidation",
    "NodeExecutionMetadata",
    "SafeEvaluator",
    "safe_eval",
]
