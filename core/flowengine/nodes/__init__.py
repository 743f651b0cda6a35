"""Node plugin contract and registry."""

from flowengine.nodes.base import (
    ConnectionRequirements,
    NodePlugin,
    PluginCategory,
    PluginMetadata,
)
from flowengine.nodes.registry import NodeRegistry, PluginRegistration, PluginValidation

__all__ = [
    "ConnectionRequirements",
    "NodePlugin",
    "NodeRegistry",
    "PluginCategory",
    "PluginMetadata",
    "PluginRegistration",
    "PluginValidation",
]
