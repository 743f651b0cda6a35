"""
Node plugin contract.

A plugin is any object that provides the members of ``NodePlugin``; no base
class is required. Optional capabilities (``validate_data``,
``get_required_connections``) are looked up with ``getattr`` by the registry
and the executor.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from pydantic import BaseModel, Field

from flowengine.variables.models import OutputField

if TYPE_CHECKING:
    from flowengine.graph.context import ExecutionContext


class PluginCategory(StrEnum):
    TRIGGER = "trigger"
    AI = "ai"
    ACTION = "action"
    LOGIC = "logic"
    DATA = "data"
    UTILITY = "utility"
    TERMINAL = "terminal"


class PluginMetadata(BaseModel):
    """Identity of a node type."""

    type: str = Field(description="Unique type tag used in graph documents")
    name: str
    description: str = ""
    version: str = "1.0.0"
    category: PluginCategory = PluginCategory.UTILITY
    tags: list[str] = Field(default_factory=list)
    author: str = ""


@dataclass(frozen=True)
class ConnectionRequirements:
    """Port counts a node type expects; None means unbounded."""

    min_inputs: int = 1
    max_inputs: int | None = None
    min_outputs: int = 1
    max_outputs: int | None = None


@runtime_checkable
class NodePlugin(Protocol):
    """Executable behaviour bound to a node type.

    ``execute`` receives the previous node's output as ``input``, the node's
    own configuration as ``data`` and a per-step ``ExecutionContext``. It
    returns the node output or raises.
    """

    metadata: PluginMetadata

    def create_default_data(self) -> dict[str, Any]: ...

    async def execute(
        self,
        input: Any,
        data: dict[str, Any],
        context: ExecutionContext,
    ) -> Any: ...

    def get_output_schema(self) -> list[OutputField]: ...


REQUIRED_CAPABILITIES = ("create_default_data", "execute", "get_output_schema")


def validate_plugin_data(plugin: Any, data: dict[str, Any]) -> list[str]:
    """Run the plugin's optional ``validate_data``; [] when it has none."""
    validator = getattr(plugin, "validate_data", None)
    if not callable(validator):
        return []
    return list(validator(data) or [])


def get_connection_requirements(plugin: Any) -> ConnectionRequirements:
    reporter = getattr(plugin, "get_required_connections", None)
    if not callable(reporter):
        return ConnectionRequirements()
    return reporter()
