"""String node: simple text operations."""

from typing import Any

from flowengine.graph.context import ExecutionContext
from flowengine.nodes.base import PluginCategory, PluginMetadata
from flowengine.nodes.builtin.common import now_iso, passthrough
from flowengine.variables.models import OutputField, VariableType

STRING_OPERATIONS = ("prefix", "suffix", "upper", "lower", "trim")


class StringNode:
    metadata = PluginMetadata(
        type="string",
        name="String",
        description="Adds a prefix or suffix, or changes case",
        category=PluginCategory.UTILITY,
        tags=["string", "text"],
    )

    def create_default_data(self) -> dict[str, Any]:
        return {"label": "String", "operation": "prefix", "value": "", "text": "{input_string}"}

    def validate_data(self, data: dict[str, Any]) -> list[str]:
        if data.get("operation", "prefix") not in STRING_OPERATIONS:
            return [f"Unsupported string operation: {data.get('operation')}"]
        return []

    def get_output_schema(self) -> list[OutputField]:
        return [
            OutputField(
                name="processed_string",
                type=VariableType.STRING,
                description="Result text",
                example="Hello, Ann",
            ),
            OutputField(
                name="original_string",
                type=VariableType.STRING,
                description="Text before the operation",
                example="Ann",
            ),
            OutputField(
                name="string_length",
                type=VariableType.NUMBER,
                description="Length of the result",
                example=10,
            ),
        ]

    async def execute(self, input: Any, data: dict[str, Any], context: ExecutionContext) -> Any:
        operation = data.get("operation", "prefix")
        original = str(context.replace_variables(str(data.get("text", ""))))
        value = str(context.replace_variables(str(data.get("value", ""))))

        if operation == "prefix":
            processed = f"{value}{original}"
        elif operation == "suffix":
            processed = f"{original}{value}"
        elif operation == "upper":
            processed = original.upper()
        elif operation == "lower":
            processed = original.lower()
        elif operation == "trim":
            processed = original.strip()
        else:
            raise ValueError(f"Unsupported string operation: {operation}")

        context.logger.info(f'String processed: "{original}" -> "{processed}"')
        return passthrough(
            input,
            processed_string=processed,
            original_string=original,
            string_length=len(processed),
            processed_at=now_iso(),
        )
