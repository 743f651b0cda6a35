"""Trigger node: entry point of every flow."""

from typing import Any

from flowengine.graph.context import ExecutionContext
from flowengine.nodes.base import ConnectionRequirements, PluginCategory, PluginMetadata
from flowengine.nodes.builtin.common import now_iso, passthrough
from flowengine.variables.models import OutputField, VariableType

TRIGGER_TYPES = ("manual", "webhook", "schedule", "email", "api", "file", "database")


class TriggerNode:
    """Passes the trigger payload through and stamps trigger metadata on it."""

    metadata = PluginMetadata(
        type="trigger",
        name="Trigger",
        description="Starts the workflow",
        category=PluginCategory.TRIGGER,
        tags=["trigger", "start", "entry"],
    )

    def create_default_data(self) -> dict[str, Any]:
        return {"label": "Trigger", "trigger_type": "manual"}

    def validate_data(self, data: dict[str, Any]) -> list[str]:
        trigger_type = data.get("trigger_type")
        if not trigger_type:
            return ["Trigger type is required"]
        if trigger_type not in TRIGGER_TYPES:
            return [f"Invalid trigger type: {trigger_type}"]
        return []

    def get_required_connections(self) -> ConnectionRequirements:
        return ConnectionRequirements(min_inputs=0, max_inputs=0, min_outputs=1)

    def get_output_schema(self) -> list[OutputField]:
        return [
            OutputField(
                name="trigger_info",
                type=VariableType.STRING,
                description="Description of what triggered the workflow",
                example="Triggered by manual",
            ),
            OutputField(
                name="trigger_timestamp",
                type=VariableType.STRING,
                description="ISO timestamp when the trigger fired",
                example="2024-01-01T12:00:00+00:00",
            ),
            OutputField(
                name="trigger_type",
                type=VariableType.STRING,
                description="Kind of trigger",
                example="manual",
            ),
            OutputField(
                name="execution_id",
                type=VariableType.STRING,
                description="Id of this run",
                example="exec_3f2a9c1d4b5e",
            ),
        ]

    async def execute(self, input: Any, data: dict[str, Any], context: ExecutionContext) -> Any:
        trigger_type = data.get("trigger_type") or "manual"
        context.logger.info(f"Trigger activated: {trigger_type}")
        return passthrough(
            input if input is not None else {},
            trigger_info=f"Triggered by {trigger_type}",
            trigger_timestamp=now_iso(),
            trigger_type=trigger_type,
            workflow_id=context.flow_id,
            execution_id=context.execution_id,
        )
