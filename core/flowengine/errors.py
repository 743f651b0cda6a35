"""Error types raised by the flow engine.

Engine-level errors are fatal to a run: the executor converts each one into a
single ``error`` log entry and a ``flow.execution.failed`` event. Extraction
caps and unresolved template references are deliberately not represented
here; both degrade silently.
"""


class FlowEngineError(Exception):
    """Base exception for all flow engine errors."""

    def __init__(self, message: str, node_id: str | None = None):
        super().__init__(message)
        self.message = message
        self.node_id = node_id


class StructuralError(FlowEngineError):
    """The graph cannot be run: missing trigger, dangling edge or unknown node type."""


class CycleError(StructuralError):
    """A node was reached a second time within one run."""

    def __init__(self, node_id: str, path: list[str] | None = None):
        super().__init__(
            f"Infinite loop detected: node '{node_id}' was already executed in this run",
            node_id=node_id,
        )
        self.path = list(path or [])


class PluginExecutionError(FlowEngineError):
    """A node plugin's execute() raised."""

    def __init__(self, message: str, node_id: str, node_type: str | None = None):
        super().__init__(message, node_id=node_id)
        self.node_type = node_type


class BranchingError(FlowEngineError):
    """A branching node has no outgoing route for its result."""


class DuplicateTypeError(FlowEngineError):
    """A plugin with the same type tag is already registered."""

    def __init__(self, node_type: str):
        super().__init__(f"Node type '{node_type}' is already registered")
        self.node_type = node_type


class ExpressionError(FlowEngineError):
    """An expression was rejected by the sandbox or failed to evaluate."""

    def __init__(self, message: str, expression: str | None = None):
        super().__init__(message)
        self.expression = expression


class WaitTimeoutError(FlowEngineError, TimeoutError):
    """A cooperative wait exceeded its deadline."""
