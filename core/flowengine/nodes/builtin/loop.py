"""Loop node: expand an array into per-item iteration inputs."""

from typing import Any

from flowengine.graph.context import ExecutionContext
from flowengine.nodes.base import ConnectionRequirements, PluginCategory, PluginMetadata
from flowengine.nodes.builtin.common import coerce_int, passthrough
from flowengine.runtime.event_bus import Topic
from flowengine.variables.models import OutputField, VariableType


class LoopNode:
    """
    Evaluates ``iterate_over`` to a list and emits one iteration record per
    item, capped at ``max_iterations``.

    The node does not re-run downstream nodes per item. It returns every
    iteration in ``loop_results`` and routes once: ``continue`` when there
    were items, ``done`` when the list was empty.
    """

    metadata = PluginMetadata(
        type="loop",
        name="Loop",
        description="Iterates over an array",
        category=PluginCategory.LOGIC,
        tags=["loop", "iterate", "foreach"],
    )

    def create_default_data(self) -> dict[str, Any]:
        return {
            "label": "Loop",
            "iterate_over": "input.get('items', [])",
            "item_variable": "item",
            "max_iterations": 100,
        }

    def validate_data(self, data: dict[str, Any]) -> list[str]:
        errors = []
        if not str(data.get("iterate_over", "")).strip():
            errors.append("Iterate-over expression is required")
        item_variable = str(data.get("item_variable", "item"))
        if not item_variable.isidentifier():
            errors.append(f"Invalid item variable name: {item_variable}")
        max_iterations = data.get("max_iterations", 100)
        if not isinstance(max_iterations, int) or not 1 <= max_iterations <= 1000:
            errors.append("Max iterations must be between 1 and 1000")
        return errors

    def get_required_connections(self) -> ConnectionRequirements:
        return ConnectionRequirements(min_inputs=1, min_outputs=1, max_outputs=2)

    def get_output_schema(self) -> list[OutputField]:
        return [
            OutputField(
                name="loop_results",
                type=VariableType.ARRAY,
                description="One record per iteration (index, item, iteration_input)",
                example=[{"index": 0, "item": "a"}],
            ),
            OutputField(
                name="loop_iterations",
                type=VariableType.NUMBER,
                description="Number of iterations performed",
                example=3,
            ),
            OutputField(
                name="loop_completed",
                type=VariableType.BOOLEAN,
                description="True once every iteration was produced",
                example=True,
            ),
            OutputField(
                name="last_iteration",
                type=VariableType.OBJECT,
                description="Record of the last iteration",
                example={"index": 2, "item": "c"},
            ),
        ]

    async def execute(self, input: Any, data: dict[str, Any], context: ExecutionContext) -> Any:
        iterate_over = str(data.get("iterate_over", "")).strip()
        if not iterate_over:
            raise ValueError("Iterate-over expression is required")

        items = context.evaluate(iterate_over)
        if isinstance(items, tuple):
            items = list(items)
        if not isinstance(items, list):
            raise TypeError(
                f'Loop target "{iterate_over}" is not an array. Got: {type(items).__name__}'
            )

        ceiling = context.config.loop_iteration_ceiling
        max_iterations = coerce_int(data.get("max_iterations"), context.config.loop_max_iterations)
        max_iterations = max(1, min(max_iterations, ceiling))
        selected = items[:max_iterations]
        if len(items) > max_iterations:
            context.logger.warning(
                f"Loop truncated from {len(items)} to {max_iterations} iterations"
            )

        item_variable = data.get("item_variable") or "item"
        total = len(selected)
        results = []
        for index, item in enumerate(selected):
            context.emit(
                Topic.LOOP_ITERATION_STARTED,
                {"iteration": index + 1, "total": total, "item": item},
            )
            is_first = index == 0
            is_last = index == total - 1
            progress = round((index + 1) / total * 100, 2)
            results.append(
                {
                    "index": index,
                    "iteration_number": index + 1,
                    "item": item,
                    "iteration_input": passthrough(
                        input,
                        **{item_variable: item},
                        loop_index=index,
                        loop_total=total,
                        loop_progress=progress,
                        is_first=is_first,
                        is_last=is_last,
                    ),
                    "is_first": is_first,
                    "is_last": is_last,
                    "progress": progress,
                }
            )
            context.emit(Topic.LOOP_ITERATION_COMPLETED, {"iteration": index + 1, "total": total})

        context.logger.info(f"Loop completed: {total} iterations")
        return passthrough(
            input,
            loop_results=results,
            loop_iterations=total,
            loop_completed=True,
            loop_continue=total > 0,
            first_iteration=results[0] if results else None,
            last_iteration=results[-1] if results else None,
            original_array=items,
            loop_stats={
                "total_items": len(items),
                "processed_items": total,
                "truncated": len(items) > total,
                "max_iterations": max_iterations,
            },
        )
