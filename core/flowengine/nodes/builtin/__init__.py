"""Built-in node plugins."""

from flowengine.nodes.builtin.arithmetic import MathNode
from flowengine.nodes.builtin.condition import ConditionNode
from flowengine.nodes.builtin.data_transform import DataTransformNode
from flowengine.nodes.builtin.delay import DelayNode
from flowengine.nodes.builtin.end import EndNode
from flowengine.nodes.builtin.http_request import HttpRequestNode
from flowengine.nodes.builtin.llm_agent import LLMAgentNode
from flowengine.nodes.builtin.loop import LoopNode
from flowengine.nodes.builtin.switch import SwitchNode
from flowengine.nodes.builtin.text import StringNode
from flowengine.nodes.builtin.trigger import TriggerNode
from flowengine.nodes.registry import NodeRegistry

BUILTIN_NODES = (
    TriggerNode,
    LLMAgentNode,
    HttpRequestNode,
    ConditionNode,
    SwitchNode,
    LoopNode,
    DelayNode,
    DataTransformNode,
    EndNode,
    MathNode,
    StringNode,
)


def register_builtin_nodes(registry: NodeRegistry) -> None:
    """Register every built-in plugin that is not registered yet."""
    for node_class in BUILTIN_NODES:
        plugin = node_class()
        if not registry.is_registered(plugin.metadata.type):
            registry.register(plugin)


__all__ = [
    "BUILTIN_NODES",
    "ConditionNode",
    "DataTransformNode",
    "DelayNode",
    "EndNode",
    "HttpRequestNode",
    "LLMAgentNode",
    "LoopNode",
    "MathNode",
    "StringNode",
    "SwitchNode",
    "TriggerNode",
    "register_builtin_nodes",
]
