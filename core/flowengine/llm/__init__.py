"""LLM provider abstraction."""

from flowengine.llm.provider import LLMProvider, LLMResponse

__all__ = ["LLMProvider", "LLMResponse"]
