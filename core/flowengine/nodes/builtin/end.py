"""End node: terminal step that reports the final message."""

from typing import Any

from flowengine.graph.context import ExecutionContext
from flowengine.nodes.base import ConnectionRequirements, PluginCategory, PluginMetadata
from flowengine.nodes.builtin.common import now_iso, passthrough
from flowengine.variables.models import OutputField, VariableType

FINAL_STATUSES = ("completed", "failed", "cancelled")


class EndNode:
    metadata = PluginMetadata(
        type="end",
        name="End",
        description="Ends the workflow with a final message",
        category=PluginCategory.TERMINAL,
        tags=["end", "finish", "terminal"],
    )

    def create_default_data(self) -> dict[str, Any]:
        return {"label": "End", "message": "Workflow completed", "final_status": "completed"}

    def validate_data(self, data: dict[str, Any]) -> list[str]:
        errors = []
        if not str(data.get("message", "")).strip():
            errors.append("End message is required")
        status = data.get("final_status", "completed")
        if status not in FINAL_STATUSES:
            errors.append(f"Invalid final status: {status}")
        return errors

    def get_required_connections(self) -> ConnectionRequirements:
        return ConnectionRequirements(min_inputs=1, min_outputs=0, max_outputs=0)

    def get_output_schema(self) -> list[OutputField]:
        return [
            OutputField(
                name="end_message",
                type=VariableType.STRING,
                description="Final message with variables substituted",
                example="Processed 3 orders",
            ),
            OutputField(
                name="workflow_complete",
                type=VariableType.BOOLEAN,
                description="Always true once the end node runs",
                example=True,
            ),
            OutputField(
                name="final_status",
                type=VariableType.STRING,
                description="Reported status of the workflow",
                example="completed",
            ),
            OutputField(
                name="completed_at",
                type=VariableType.STRING,
                description="ISO timestamp of completion",
                example="2024-01-01T12:00:05+00:00",
            ),
        ]

    async def execute(self, input: Any, data: dict[str, Any], context: ExecutionContext) -> Any:
        message = context.replace_variables(data.get("message", "Workflow completed"))
        context.logger.info(f"Workflow ended: {message}")
        return passthrough(
            input,
            end_message=message,
            workflow_complete=True,
            final_status=data.get("final_status", "completed"),
            workflow_result=input,
            completed_at=now_iso(),
        )
