"""Condition node: evaluate a boolean expression and route true/false."""

import time
from typing import Any

from flowengine.graph.context import ExecutionContext
from flowengine.nodes.base import ConnectionRequirements, PluginCategory, PluginMetadata
from flowengine.nodes.builtin.common import now_iso, passthrough
from flowengine.variables.models import OutputField, VariableType


class ConditionNode:
    """
    Evaluates ``expression`` against the input.

    Evaluation errors propagate so a broken expression stops the run instead
    of silently taking the false branch.
    """

    metadata = PluginMetadata(
        type="condition",
        name="Condition",
        description="Routes to the true or false branch",
        category=PluginCategory.LOGIC,
        tags=["condition", "if", "branch"],
    )

    def create_default_data(self) -> dict[str, Any]:
        return {"label": "Condition", "expression": "input.get('status') == 'ok'"}

    def validate_data(self, data: dict[str, Any]) -> list[str]:
        if not str(data.get("expression", "")).strip():
            return ["Condition expression is required"]
        return []

    def get_required_connections(self) -> ConnectionRequirements:
        return ConnectionRequirements(min_inputs=1, min_outputs=1, max_outputs=2)

    def get_output_schema(self) -> list[OutputField]:
        return [
            OutputField(
                name="condition_result",
                type=VariableType.BOOLEAN,
                description="Result of the condition",
                example=True,
            ),
            OutputField(
                name="condition_expression",
                type=VariableType.STRING,
                description="Expression after variable substitution",
                example="input['score'] > 0.5",
            ),
            OutputField(
                name="branch_path",
                type=VariableType.STRING,
                description="Port taken: 'true' or 'false'",
                example="true",
            ),
            OutputField(
                name="evaluation_duration",
                type=VariableType.NUMBER,
                description="Evaluation time in milliseconds",
                example=0.4,
            ),
        ]

    async def execute(self, input: Any, data: dict[str, Any], context: ExecutionContext) -> Any:
        expression = str(data.get("expression", "")).strip()
        if not expression:
            raise ValueError("Condition expression is required")

        processed = context.replace_variables(expression)
        started = time.perf_counter()
        result = bool(context.evaluate(processed))
        duration_ms = round((time.perf_counter() - started) * 1000, 3)

        branch = "true" if result else "false"
        context.logger.info(f"Condition '{processed}' evaluated to {result}")
        return passthrough(
            input,
            condition_result=result,
            condition_expression=processed,
            evaluated_at=now_iso(),
            evaluation_duration=duration_ms,
            branch_path=branch,
        )
