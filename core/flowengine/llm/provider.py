"""LLM Provider abstraction for pluggable LLM backends."""

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any


@dataclass
class LLMResponse:
    """Response from an LLM call."""

    content: str
    model: str
    input_tokens: int = 0
    output_tokens: int = 0
    stop_reason: str = ""
    raw_response: Any = None


class LLMProvider(ABC):
    """
    Abstract LLM provider - plug in any LLM backend.

    The llm_agent node only depends on this interface; tests pass a fake.
    """

    @abstractmethod
    def complete(
        self,
        messages: list[dict[str, Any]],
        system: str = "",
        max_tokens: int = 1024,
        temperature: float | None = None,
        model: str | None = None,
        json_mode: bool = False,
    ) -> LLMResponse:
        """
        Generate a completion from the LLM.

        Args:
            messages: Conversation history [{role: "user"|"assistant", content: str}]
            system: System prompt
            max_tokens: Maximum tokens to generate
            temperature: Sampling temperature, None for the provider default
            model: Override the provider's model for this call
            json_mode: If True, request structured JSON output

        Returns:
            LLMResponse with content and metadata
        """

    async def acomplete(
        self,
        messages: list[dict[str, Any]],
        system: str = "",
        max_tokens: int = 1024,
        temperature: float | None = None,
        model: str | None = None,
        json_mode: bool = False,
    ) -> LLMResponse:
        """
        Async completion.

        Default implementation runs ``complete()`` in a worker thread.
        Subclasses SHOULD override with a native async call.
        """
        return await asyncio.to_thread(
            self.complete,
            messages=messages,
            system=system,
            max_tokens=max_tokens,
            temperature=temperature,
            model=model,
            json_mode=json_mode,
        )
