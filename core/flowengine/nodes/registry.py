"""
Node Registry - catalog of node plugins keyed by type tag.

Registration forwards each plugin's output schema to the VariableRegistry so
the editor can offer static variables before a flow has ever run. Disabled
plugins stay registered but ``get()`` treats them as absent.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from flowengine.errors import DuplicateTypeError
from flowengine.nodes.base import REQUIRED_CAPABILITIES, NodePlugin, PluginMetadata
from flowengine.runtime.event_bus import EventBus, Topic
from flowengine.variables.registry import VariableRegistry

logger = logging.getLogger(__name__)


@dataclass
class PluginRegistration:
    plugin: NodePlugin
    enabled: bool = True
    loaded_at: datetime = field(default_factory=datetime.now)


@dataclass
class PluginValidation:
    """Diagnostic result for one registration."""

    type: str
    errors: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors


class NodeRegistry:
    """
    Type tag -> plugin registrations.

    Example:
        registry = NodeRegistry(event_bus, variable_registry)
        registry.register(ConditionNode())
        plugin = registry.get("condition")
    """

    def __init__(
        self,
        event_bus: EventBus | None = None,
        variable_registry: VariableRegistry | None = None,
    ):
        self._event_bus = event_bus
        self._variable_registry = variable_registry
        self._registrations: dict[str, PluginRegistration] = {}

    def register(self, plugin: NodePlugin) -> PluginRegistration:
        """
        Register a plugin under ``plugin.metadata.type``.

        Raises:
            DuplicateTypeError: if the type tag is already registered
        """
        node_type = plugin.metadata.type
        if node_type in self._registrations:
            raise DuplicateTypeError(node_type)

        registration = PluginRegistration(plugin=plugin)
        self._registrations[node_type] = registration

        schema_getter = getattr(plugin, "get_output_schema", None)
        if self._variable_registry is not None and callable(schema_getter):
            self._variable_registry.register_node_output_schema(node_type, schema_getter())

        logger.info(f"Registered node plugin: {node_type} (v{plugin.metadata.version})")
        self._emit(
            Topic.NODE_PLUGIN_REGISTERED,
            {"type": node_type, "name": plugin.metadata.name, "version": plugin.metadata.version},
        )
        return registration

    def unregister(self, node_type: str) -> bool:
        if self._registrations.pop(node_type, None) is None:
            return False
        if self._variable_registry is not None:
            self._variable_registry.unregister_node_output_schema(node_type)
        logger.info(f"Unregistered node plugin: {node_type}")
        self._emit(Topic.NODE_PLUGIN_UNREGISTERED, {"type": node_type})
        return True

    def get(self, node_type: str) -> NodePlugin | None:
        """The plugin for ``node_type``, or None when absent or disabled."""
        registration = self._registrations.get(node_type)
        if registration is None or not registration.enabled:
            return None
        return registration.plugin

    def set_enabled(self, node_type: str, enabled: bool) -> bool:
        registration = self._registrations.get(node_type)
        if registration is None:
            return False
        registration.enabled = enabled
        self._emit(Topic.NODE_PLUGIN_TOGGLED, {"type": node_type, "enabled": enabled})
        return True

    def is_registered(self, node_type: str) -> bool:
        return node_type in self._registrations

    def get_registration(self, node_type: str) -> PluginRegistration | None:
        return self._registrations.get(node_type)

    def get_all_types(self) -> list[str]:
        return list(self._registrations)

    def get_all_plugins(self, include_disabled: bool = False) -> list[NodePlugin]:
        return [
            r.plugin for r in self._registrations.values() if include_disabled or r.enabled
        ]

    def get_by_category(self, category: str) -> list[NodePlugin]:
        return [p for p in self.get_all_plugins() if p.metadata.category == category]

    def get_metadata(self, node_type: str) -> PluginMetadata | None:
        registration = self._registrations.get(node_type)
        return registration.plugin.metadata if registration else None

    def validate_all(self) -> list[PluginValidation]:
        """Check every registration for missing capabilities. Never raises."""
        results = []
        for node_type, registration in self._registrations.items():
            plugin = registration.plugin
            errors = []

            metadata = getattr(plugin, "metadata", None)
            if metadata is None:
                errors.append("Missing metadata")
            else:
                if not str(getattr(metadata, "name", "") or "").strip():
                    errors.append("Missing plugin name")
                if not str(getattr(metadata, "version", "") or "").strip():
                    errors.append("Missing plugin version")

            for capability in REQUIRED_CAPABILITIES:
                if not callable(getattr(plugin, capability, None)):
                    errors.append(f"Missing {capability} method")

            results.append(PluginValidation(type=node_type, errors=errors))
            if errors:
                logger.warning(f"Plugin '{node_type}' failed validation: {errors}")
        return results

    def get_stats(self) -> dict[str, Any]:
        by_category: dict[str, int] = {}
        for registration in self._registrations.values():
            category = str(registration.plugin.metadata.category)
            by_category[category] = by_category.get(category, 0) + 1
        enabled = sum(1 for r in self._registrations.values() if r.enabled)
        return {
            "total_plugins": len(self._registrations),
            "enabled_plugins": enabled,
            "disabled_plugins": len(self._registrations) - enabled,
            "plugins_by_category": by_category,
        }

    def _emit(self, topic: Topic, data: dict[str, Any]) -> None:
        if self._event_bus is not None:
            self._event_bus.emit(topic, data)
