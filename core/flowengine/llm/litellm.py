"""LiteLLM-backed provider: one interface for OpenAI, Anthropic, Ollama and others."""

import logging
from typing import Any

import litellm

from flowengine.llm.provider import LLMProvider, LLMResponse

logger = logging.getLogger(__name__)


class LiteLLMProvider(LLMProvider):
    """
    LLM provider using LiteLLM's completion API.

    Example:
        llm = LiteLLMProvider(model="gpt-4o-mini")
        response = await llm.acomplete([{"role": "user", "content": "Hi"}])
    """

    def __init__(
        self,
        model: str = "gpt-4o-mini",
        api_key: str | None = None,
        api_base: str | None = None,
        temperature: float = 0.7,
        timeout: float | None = 60.0,
    ):
        self.model = model
        self.api_key = api_key
        self.api_base = api_base
        self.temperature = temperature
        self.timeout = timeout

    def _build_kwargs(
        self,
        messages: list[dict[str, Any]],
        system: str,
        max_tokens: int,
        temperature: float | None,
        model: str | None,
        json_mode: bool,
    ) -> dict[str, Any]:
        full_messages = list(messages)
        if system:
            full_messages.insert(0, {"role": "system", "content": system})

        kwargs: dict[str, Any] = {
            "model": model or self.model,
            "messages": full_messages,
            "max_tokens": max_tokens,
            "temperature": self.temperature if temperature is None else temperature,
        }
        if self.api_key:
            kwargs["api_key"] = self.api_key
        if self.api_base:
            kwargs["api_base"] = self.api_base
        if self.timeout:
            kwargs["timeout"] = self.timeout
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}
        return kwargs

    @staticmethod
    def _to_response(response: Any, model: str) -> LLMResponse:
        choice = response.choices[0]
        usage = getattr(response, "usage", None)
        return LLMResponse(
            content=choice.message.content or "",
            model=getattr(response, "model", None) or model,
            input_tokens=getattr(usage, "prompt_tokens", 0) or 0,
            output_tokens=getattr(usage, "completion_tokens", 0) or 0,
            stop_reason=choice.finish_reason or "",
            raw_response=response,
        )

    def complete(
        self,
        messages: list[dict[str, Any]],
        system: str = "",
        max_tokens: int = 1024,
        temperature: float | None = None,
        model: str | None = None,
        json_mode: bool = False,
    ) -> LLMResponse:
        kwargs = self._build_kwargs(messages, system, max_tokens, temperature, model, json_mode)
        logger.debug(f"LLM completion request: model={kwargs['model']}")
        response = litellm.completion(**kwargs)
        return self._to_response(response, kwargs["model"])

    async def acomplete(
        self,
        messages: list[dict[str, Any]],
        system: str = "",
        max_tokens: int = 1024,
        temperature: float | None = None,
        model: str | None = None,
        json_mode: bool = False,
    ) -> LLMResponse:
        kwargs = self._build_kwargs(messages, system, max_tokens, temperature, model, json_mode)
        logger.debug(f"LLM async completion request: model={kwargs['model']}")
        response = await litellm.acompletion(**kwargs)
        return self._to_response(response, kwargs["model"])
