"""Math node: one arithmetic operation on two operands."""

import operator
from collections.abc import Callable
from typing import Any

from flowengine.graph.context import ExecutionContext
from flowengine.nodes.base import PluginCategory, PluginMetadata
from flowengine.nodes.builtin.common import passthrough
from flowengine.variables.models import OutputField, VariableType
from flowengine.variables.paths import resolve_path

OPERATIONS: dict[str, Callable[[float, float], float]] = {
    "+": operator.add,
    "-": operator.sub,
    "*": operator.mul,
    "/": operator.truediv,
}


class MathNode:
    """
    Computes ``operand_a <operation> operand_b``.

    Each operand is a number, a numeric string, a ``{...}`` template, or,
    with ``use_variables``, a path into the input named by
    ``operand_a_variable``/``operand_b_variable``.
    """

    metadata = PluginMetadata(
        type="math",
        name="Math",
        description="Performs +, -, * or / on two numbers",
        category=PluginCategory.UTILITY,
        tags=["math", "arithmetic", "numbers"],
    )

    def create_default_data(self) -> dict[str, Any]:
        return {
            "label": "Math",
            "operation": "+",
            "operand_a": 0,
            "operand_b": 0,
            "use_variables": False,
            "operand_a_variable": "",
            "operand_b_variable": "",
        }

    def validate_data(self, data: dict[str, Any]) -> list[str]:
        errors = []
        if data.get("operation") not in OPERATIONS:
            errors.append(f"Unsupported operation: {data.get('operation')}")
        if data.get("use_variables"):
            if not data.get("operand_a_variable") and "operand_a" not in data:
                errors.append("Operand A needs a variable or a value")
            if not data.get("operand_b_variable") and "operand_b" not in data:
                errors.append("Operand B needs a variable or a value")
        return errors

    def get_output_schema(self) -> list[OutputField]:
        return [
            OutputField(
                name="result",
                type=VariableType.NUMBER,
                description="Result of the operation",
                example=42,
            ),
            OutputField(
                name="expression",
                type=VariableType.STRING,
                description="Human-readable calculation",
                example="40 + 2 = 42",
            ),
        ]

    async def execute(self, input: Any, data: dict[str, Any], context: ExecutionContext) -> Any:
        operation = data.get("operation", "+")
        if operation not in OPERATIONS:
            raise ValueError(f"Unsupported operation: {operation}")

        a = self._operand("a", input, data, context)
        b = self._operand("b", input, data, context)
        if operation == "/" and b == 0:
            raise ZeroDivisionError("Division by zero is not allowed")

        result = OPERATIONS[operation](a, b)
        if operation == "/" and isinstance(a, int) and isinstance(b, int) and a % b == 0:
            result = a // b
        expression = f"{a} {operation} {b} = {result}"
        context.logger.info(f"Math operation completed: {expression}")
        return passthrough(
            input,
            result=result,
            operation=operation,
            operand_a=a,
            operand_b=b,
            expression=expression,
        )

    @staticmethod
    def _operand(name: str, input: Any, data: dict[str, Any], context: ExecutionContext) -> float:
        value = data.get(f"operand_{name}", 0)
        variable = data.get(f"operand_{name}_variable")
        if data.get("use_variables") and variable:
            found = resolve_path(input, variable)
            if found is not None:
                value = found
        value = context.replace_variables(value)
        return _to_number(value, name)


def _to_number(value: Any, name: str) -> float:
    if isinstance(value, bool):
        raise TypeError(f"Operand {name.upper()} must be a number, got a boolean")
    if isinstance(value, int | float):
        return value
    try:
        text = str(value).strip()
        return int(text) if text.lstrip("-").isdigit() else float(text)
    except ValueError:
        raise TypeError(f"Operand {name.upper()} is not a number: {value!r}") from None
