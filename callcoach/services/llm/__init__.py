from callcoach.services.llm.base import BaseLLMProvider, LLMProvider, LLMProviderError, LLMResponse
from callcoach.services.llm.anthropic_provider import AnthropicProvider
from callcoach.services.llm.openai_provider import OpenAIProvider

__all__ = [
    "BaseLLMProvider",
    "LLMProvider",
    "LLMProviderError",
    "LLMResponse",
    "AnthropicProvider",
    "OpenAIProvider",
]
