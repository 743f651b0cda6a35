"""Switch node: multi-way routing on the value of an expression."""

from typing import Any

from flowengine.errors import BranchingError
from flowengine.graph.context import ExecutionContext
from flowengine.nodes.base import ConnectionRequirements, PluginCategory, PluginMetadata
from flowengine.nodes.builtin.common import passthrough
from flowengine.variables.models import OutputField, VariableType
from flowengine.variables.paths import stringify

DEFAULT_PORT = "default"


class SwitchNode:
    """
    Compares the stringified expression value with each case value.

    The matched case's value is the output port. Without a match the
    ``default`` port is used when ``default_case`` is set; otherwise the node
    raises BranchingError.
    """

    metadata = PluginMetadata(
        type="switch",
        name="Switch",
        description="Routes to one of several cases",
        category=PluginCategory.LOGIC,
        tags=["switch", "case", "branch"],
    )

    def create_default_data(self) -> dict[str, Any]:
        return {
            "label": "Switch",
            "expression": "input.get('type')",
            "cases": [
                {"value": "a", "label": "Case A"},
                {"value": "b", "label": "Case B"},
            ],
            "default_case": True,
        }

    def validate_data(self, data: dict[str, Any]) -> list[str]:
        errors = []
        if not str(data.get("expression", "")).strip():
            errors.append("Switch expression is required")
        cases = data.get("cases") or []
        if not cases and not data.get("default_case"):
            errors.append("At least one case or a default case is required")
        seen: set[str] = set()
        for i, case in enumerate(cases):
            value = str(case.get("value", ""))
            if not value:
                errors.append(f"Case {i + 1} has no value")
            elif value in seen:
                errors.append(f"Duplicate case value: {value}")
            seen.add(value)
        return errors

    def get_required_connections(self) -> ConnectionRequirements:
        return ConnectionRequirements(min_inputs=1, min_outputs=1)

    def get_output_schema(self) -> list[OutputField]:
        return [
            OutputField(
                name="switch_value",
                type=VariableType.STRING,
                description="Evaluated expression as a string",
                example="premium",
            ),
            OutputField(
                name="matched_case",
                type=VariableType.OBJECT,
                description="The matched case, null on default",
                example={"value": "premium", "label": "Premium"},
            ),
            OutputField(
                name="matched_case_index",
                type=VariableType.NUMBER,
                description="Index of the matched case, -1 on default",
                example=0,
            ),
            OutputField(
                name="output_path",
                type=VariableType.STRING,
                description="Output port taken",
                example="premium",
            ),
            OutputField(
                name="is_default_case",
                type=VariableType.BOOLEAN,
                description="True when no case matched",
                example=False,
            ),
        ]

    async def execute(self, input: Any, data: dict[str, Any], context: ExecutionContext) -> Any:
        expression = str(data.get("expression", "")).strip()
        if not expression:
            raise ValueError("Switch expression is required")

        value = stringify(context.evaluate(context.replace_variables(expression)))
        cases = [
            {
                "value": str(context.replace_variables(str(c.get("value", "")))),
                "label": c.get("label", ""),
            }
            for c in data.get("cases") or []
        ]

        matched_index = next((i for i, c in enumerate(cases) if c["value"] == value), -1)
        if matched_index >= 0:
            matched_case: dict[str, Any] | None = cases[matched_index]
            output_path = cases[matched_index]["value"]
            context.logger.info(f"Switch matched case '{matched_case['label'] or output_path}'")
        elif data.get("default_case"):
            matched_case = None
            output_path = DEFAULT_PORT
            context.logger.info(f"No case matched '{value}', using default")
        else:
            raise BranchingError(
                f'No matching case found for value "{value}" and no default case configured',
                node_id=context.node_id,
            )

        return passthrough(
            input,
            switch_value=value,
            switch_expression=expression,
            matched_case=matched_case,
            matched_case_index=matched_index,
            output_path=output_path,
            is_default_case=matched_case is None,
            available_cases=cases,
        )
