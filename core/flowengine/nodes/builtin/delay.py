"""Delay node: fixed, expression-computed or condition-polling waits."""

import asyncio
import time
from typing import Any

from flowengine.errors import WaitTimeoutError
from flowengine.graph.context import ExecutionContext
from flowengine.nodes.base import PluginCategory, PluginMetadata
from flowengine.nodes.builtin.common import passthrough
from flowengine.runtime.event_bus import Topic
from flowengine.variables.models import OutputField, VariableType

DELAY_TYPES = ("fixed", "dynamic", "until")


class DelayNode:
    """
    Pauses the flow.

    - ``fixed``: sleep ``duration_ms`` (0..max_delay_ms, rejected outside)
    - ``dynamic``: sleep the value of ``duration_expression``, capped at
      max_delay_ms with a warning
    - ``until``: poll ``until_condition`` every poll interval until it is
      true; ``elapsed_ms`` is in scope. Raises WaitTimeoutError after
      ``timeout_ms`` (at most max_wait_ms).
    """

    metadata = PluginMetadata(
        type="delay",
        name="Delay",
        description="Waits before continuing",
        category=PluginCategory.UTILITY,
        tags=["delay", "wait", "sleep"],
    )

    def create_default_data(self) -> dict[str, Any]:
        return {"label": "Delay", "delay_type": "fixed", "duration_ms": 1000}

    def validate_data(self, data: dict[str, Any]) -> list[str]:
        errors = []
        delay_type = data.get("delay_type", "fixed")
        if delay_type not in DELAY_TYPES:
            errors.append(f"Unknown delay type: {delay_type}")
        elif delay_type == "fixed":
            duration = data.get("duration_ms")
            if not isinstance(duration, int | float) or duration < 0:
                errors.append("Duration must be a non-negative number of milliseconds")
        elif delay_type == "dynamic" and not str(data.get("duration_expression", "")).strip():
            errors.append("Duration expression is required for dynamic delay")
        elif delay_type == "until" and not str(data.get("until_condition", "")).strip():
            errors.append("Until condition is required for conditional delay")
        return errors

    def get_output_schema(self) -> list[OutputField]:
        return [
            OutputField(
                name="delay_completed",
                type=VariableType.BOOLEAN,
                description="True once the wait finished",
                example=True,
            ),
            OutputField(
                name="expected_delay",
                type=VariableType.NUMBER,
                description="Planned wait in milliseconds",
                example=1000,
            ),
            OutputField(
                name="actual_wait_time",
                type=VariableType.NUMBER,
                description="Measured wait in milliseconds",
                example=1002,
            ),
        ]

    async def execute(self, input: Any, data: dict[str, Any], context: ExecutionContext) -> Any:
        delay_type = data.get("delay_type", "fixed")
        started = time.monotonic()

        if delay_type == "fixed":
            expected = await self._fixed(data, context)
        elif delay_type == "dynamic":
            expected = await self._dynamic(data, context)
        elif delay_type == "until":
            expected = await self._until(data, context)
        else:
            raise ValueError(f"Unknown delay type: {delay_type}")

        waited_ms = int((time.monotonic() - started) * 1000)
        context.logger.info(f"Delay completed: {waited_ms}ms")
        return passthrough(
            input,
            delay_completed=True,
            delay_type=delay_type,
            expected_delay=expected,
            actual_wait_time=waited_ms,
            delay_stats={
                "delay_type": delay_type,
                "expected_ms": expected,
                "actual_ms": waited_ms,
                "drift_ms": waited_ms - expected,
            },
        )

    async def _fixed(self, data: dict[str, Any], context: ExecutionContext) -> int:
        duration = data.get("duration_ms", 1000)
        max_delay = context.config.max_delay_ms
        if not isinstance(duration, int | float) or not 0 <= duration <= max_delay:
            raise ValueError(f"Fixed delay must be between 0 and {max_delay}ms, got {duration!r}")
        context.logger.info(f"Fixed delay: {duration}ms")
        await asyncio.sleep(duration / 1000)
        return int(duration)

    async def _dynamic(self, data: dict[str, Any], context: ExecutionContext) -> int:
        expression = str(data.get("duration_expression", "")).strip()
        if not expression:
            raise ValueError("Duration expression is required for dynamic delay")

        value = context.evaluate(context.replace_variables(expression))
        if isinstance(value, bool) or not isinstance(value, int | float) or value < 0:
            raise ValueError(f"Invalid dynamic delay value: {value!r}. Must be a positive number.")

        max_delay = context.config.max_delay_ms
        duration = min(value, max_delay)
        if value > max_delay:
            context.logger.warning(f"Dynamic delay capped from {value}ms to {max_delay}ms")

        context.logger.info(f"Dynamic delay: {duration}ms (expression: {expression})")
        await asyncio.sleep(duration / 1000)
        return int(duration)

    async def _until(self, data: dict[str, Any], context: ExecutionContext) -> int:
        condition = str(data.get("until_condition", "")).strip()
        if not condition:
            raise ValueError("Until condition is required for conditional delay")

        max_wait = min(data.get("timeout_ms") or context.config.max_wait_ms, context.config.max_wait_ms)
        interval = context.config.poll_interval_ms
        started = time.monotonic()

        context.logger.info(f"Conditional delay: waiting until {condition}")
        while True:
            elapsed = int((time.monotonic() - started) * 1000)
            if context.evaluate(condition, {"elapsed_ms": elapsed}):
                context.logger.info(f"Condition met after {elapsed}ms")
                return elapsed
            if elapsed >= max_wait:
                raise WaitTimeoutError(
                    f"Conditional delay timed out after {max_wait}ms", node_id=context.node_id
                )
            context.emit(
                Topic.DELAY_WAITING,
                {"elapsed": elapsed, "condition": condition, "timeout": max_wait},
            )
            await asyncio.sleep(min(interval, max(max_wait - elapsed, 0)) / 1000)
