"""LLM agent node: send a templated prompt to the configured LLM provider."""

import json
from typing import Any

from flowengine.graph.context import ExecutionContext
from flowengine.nodes.base import PluginCategory, PluginMetadata
from flowengine.nodes.builtin.common import now_iso, passthrough
from flowengine.variables.models import OutputField, VariableType


class LLMAgentNode:
    """
    Substitutes variables into ``prompt`` and calls ``context.llm``.

    A JSON reply is parsed into ``llm_response``; any other reply becomes
    ``{"text": ..., "raw": ...}``. Provider failures are returned as an
    error-shaped output so the flow can branch on them; a missing provider
    or empty prompt is a configuration error and raises.
    """

    metadata = PluginMetadata(
        type="llm_agent",
        name="LLM Agent",
        description="Generates text with a language model",
        category=PluginCategory.AI,
        tags=["llm", "ai", "prompt"],
    )

    def create_default_data(self) -> dict[str, Any]:
        return {
            "label": "LLM Agent",
            "prompt": "Summarize: {input}",
            "system_prompt": "",
            "model": "",
            "temperature": 0.7,
            "max_tokens": 1000,
        }

    def validate_data(self, data: dict[str, Any]) -> list[str]:
        errors = []
        if not str(data.get("prompt", "")).strip():
            errors.append("Prompt is required")
        temperature = data.get("temperature", 0.7)
        if not isinstance(temperature, int | float) or not 0 <= temperature <= 2:
            errors.append("Temperature must be between 0 and 2")
        max_tokens = data.get("max_tokens", 1000)
        if not isinstance(max_tokens, int) or max_tokens < 1:
            errors.append("Max tokens must be a positive integer")
        return errors

    def get_output_schema(self) -> list[OutputField]:
        return [
            OutputField(
                name="llm_text",
                type=VariableType.STRING,
                description="Raw text returned by the model",
                example="The order ships tomorrow.",
            ),
            OutputField(
                name="llm_response",
                type=VariableType.OBJECT,
                description="Parsed JSON reply, or {text, raw}",
                example={"text": "The order ships tomorrow."},
            ),
            OutputField(
                name="llm_metadata",
                type=VariableType.OBJECT,
                description="Model, prompt and response sizes, token usage",
                example={"model": "gpt-4o-mini", "prompt_length": 42},
            ),
        ]

    async def execute(self, input: Any, data: dict[str, Any], context: ExecutionContext) -> Any:
        if context.llm is None:
            raise RuntimeError("No LLM provider configured")
        prompt = context.replace_variables(str(data.get("prompt", "")))
        if not prompt.strip():
            raise ValueError("Prompt is required")

        model = data.get("model") or context.config.model
        context.logger.info(f"Sending prompt to LLM ({len(prompt)} chars, model={model})")

        try:
            response = await context.llm.acomplete(
                messages=[{"role": "user", "content": prompt}],
                system=context.replace_variables(str(data.get("system_prompt") or "")),
                max_tokens=data.get("max_tokens") or context.config.max_tokens,
                temperature=data.get("temperature", context.config.temperature),
                model=model,
            )
        except Exception as e:
            context.logger.error(f"LLM Agent execution failed: {e}")
            return passthrough(
                input,
                llm_response={"error": True, "error_message": str(e)},
                llm_text="",
                llm_metadata={"model": model, "error": str(e), "failed_at": now_iso()},
            )

        text = response.content
        try:
            parsed = json.loads(text)
        except (json.JSONDecodeError, TypeError):
            parsed = {"text": text, "raw": text}

        context.logger.info(f"LLM response received ({len(text)} chars)")
        return passthrough(
            input,
            llm_response=parsed,
            llm_text=text,
            llm_metadata={
                "model": response.model or model,
                "prompt_length": len(prompt),
                "response_length": len(text),
                "input_tokens": response.input_tokens,
                "output_tokens": response.output_tokens,
                "processed_at": now_iso(),
            },
        )
