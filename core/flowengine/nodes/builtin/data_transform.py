"""Data transform node: reshape the input with an expression."""

import csv
import io
import json
import time
from collections.abc import Mapping
from typing import Any

from flowengine.graph.context import ExecutionContext
from flowengine.nodes.base import PluginCategory, PluginMetadata
from flowengine.nodes.builtin.common import passthrough
from flowengine.variables.models import OutputField, VariableType
from flowengine.variables.paths import resolve_path

TRANSFORM_TYPES = ("extract", "format", "parse", "filter", "custom")
OUTPUT_FORMATS = ("json", "text", "csv", "array")

_MISSING = object()


class DataTransformNode:
    """
    Applies ``expression`` to the input (or to ``source``, a path inside it).

    - extract / format / custom: evaluate with ``data`` and ``input`` in scope
    - parse: JSON-decode string data, otherwise evaluate the expression
    - filter: keep list items where the expression holds (``item``,
      ``index``) or mapping entries (``value``, ``key``)

    The result is then rendered as json (unchanged), text, csv or array.
    """

    metadata = PluginMetadata(
        type="data_transform",
        name="Data Transform",
        description="Extracts, filters or reformats data",
        category=PluginCategory.DATA,
        tags=["transform", "map", "filter", "parse"],
    )

    def create_default_data(self) -> dict[str, Any]:
        return {
            "label": "Transform",
            "transform_type": "extract",
            "expression": "data",
            "source": "",
            "output_format": "json",
        }

    def validate_data(self, data: dict[str, Any]) -> list[str]:
        errors = []
        transform_type = data.get("transform_type")
        if transform_type not in TRANSFORM_TYPES:
            errors.append(f"Unknown transform type: {transform_type}")
        if transform_type != "parse" and not str(data.get("expression", "")).strip():
            errors.append("Transform expression is required")
        output_format = data.get("output_format", "json")
        if output_format not in OUTPUT_FORMATS:
            errors.append(f"Unknown output format: {output_format}")
        return errors

    def get_output_schema(self) -> list[OutputField]:
        return [
            OutputField(
                name="transformed_data",
                type=VariableType.ANY,
                description="Result of the transformation",
                example={"name": "Ann"},
            ),
            OutputField(
                name="original_data",
                type=VariableType.ANY,
                description="Input before transformation",
                example={"user": {"name": "Ann"}},
            ),
            OutputField(
                name="transform_success",
                type=VariableType.BOOLEAN,
                description="True when the transform ran",
                example=True,
            ),
        ]

    async def execute(self, input: Any, data: dict[str, Any], context: ExecutionContext) -> Any:
        transform_type = data.get("transform_type", "extract")
        if transform_type not in TRANSFORM_TYPES:
            raise ValueError(f"Unknown transform type: {transform_type}")

        source = str(data.get("source") or "").strip()
        target = input
        if source:
            target = resolve_path(input, source, default=_MISSING)
            if target is _MISSING:
                raise KeyError(f"Source path '{source}' not found in input")

        expression = str(data.get("expression") or "").strip()
        started = time.perf_counter()

        if transform_type == "parse":
            result = self._parse(target, expression, context)
        elif transform_type == "filter":
            result = self._filter(target, expression, context)
        else:
            if not expression:
                raise ValueError("Transform expression is required")
            result = context.evaluate(expression, {"data": target})

        formatted = format_output(result, data.get("output_format", "json"))
        duration_ms = round((time.perf_counter() - started) * 1000, 3)
        context.logger.info(f"Data transformation completed: {transform_type}")

        return passthrough(
            input,
            transformed_data=formatted,
            original_data=input,
            transform_type=transform_type,
            transform_success=True,
            transform_stats={
                "input_type": type(target).__name__,
                "output_type": type(formatted).__name__,
                "duration_ms": duration_ms,
            },
        )

    @staticmethod
    def _parse(target: Any, expression: str, context: ExecutionContext) -> Any:
        if isinstance(target, str):
            try:
                return json.loads(target)
            except json.JSONDecodeError:
                if not expression:
                    raise
        if not expression:
            raise ValueError("Parse expression is required for non-JSON input")
        return context.evaluate(expression, {"data": target})

    @staticmethod
    def _filter(target: Any, expression: str, context: ExecutionContext) -> Any:
        if not expression:
            raise ValueError("Filter expression is required")
        if isinstance(target, list | tuple):
            return [
                item
                for index, item in enumerate(target)
                if context.evaluate(expression, {"item": item, "index": index, "data": target})
            ]
        if isinstance(target, Mapping):
            return {
                key: value
                for key, value in target.items()
                if context.evaluate(expression, {"value": value, "key": key, "data": target})
            }
        raise TypeError("Filter transform requires input to be an array or object")


def format_output(value: Any, output_format: str | None) -> Any:
    if not output_format or output_format == "json":
        return value
    if output_format == "text":
        return value if isinstance(value, str) else json.dumps(value, indent=2, default=str)
    if output_format == "array":
        return list(value) if isinstance(value, list | tuple) else [value]
    if output_format == "csv":
        return to_csv(value)
    raise ValueError(f"Unknown output format: {output_format}")


def to_csv(rows: Any) -> str:
    """Render a list of mappings as CSV, header taken from the first row."""
    if not isinstance(rows, list | tuple):
        raise TypeError("CSV format requires array input")
    if not rows:
        return ""
    if not isinstance(rows[0], Mapping):
        raise TypeError("CSV format requires an array of objects")

    headers = list(rows[0].keys())
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(headers)
    for row in rows:
        writer.writerow(["" if row.get(h) is None else row.get(h) for h in headers])
    return buffer.getvalue().rstrip("\n")
