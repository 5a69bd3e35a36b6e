from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field


class LLMProviderError(RuntimeError):
    pass


@dataclass
class LLMResponse:
    text: str
    model: str = ""
    usage: dict = field(default_factory=dict)


class LLMProvider(ABC):
    @abstractmethod
    def complete(
        self,
        prompt: str,
        *,
        system_prompt: str | None = None,
        temperature: float = 0.7,
        max_tokens: int = 2048,
        timeout: int = 120,
    ) -> LLMResponse:
        """Send one prompt and return the response text."""
        raise NotImplementedError


class BaseLLMProvider(LLMProvider):
    """Shared response handling for HTTP-backed providers.

    Subclasses only need to implement _call_api() for their specific API.
    """

    def __init__(self, logger_name: str = "callcoach.llm") -> None:
        self._logger = logging.getLogger(logger_name)

    @abstractmethod
    def _call_api(
        self,
        prompt: str,
        temperature: float,
        max_tokens: int,
        timeout: int,
        system_prompt: str | None = None,
    ) -> LLMResponse:
        """Make an API call and return the raw response.

        Args:
            prompt: The user prompt to send
            temperature: Sampling temperature (0.0-1.0)
            max_tokens: Upper bound on generated tokens
            timeout: Request timeout in seconds
            system_prompt: Optional system prompt
        """
        raise NotImplementedError

    @staticmethod
    def strip_markdown_code_blocks(text: str) -> str:
        """Remove markdown code block wrappers from text."""
        text = text.strip()
        if not text.startswith("```"):
            return text

        lines = text.split("\n")
        kept = []
        for line in lines:
            if line.startswith("```"):
                continue
            kept.append(line)
        return "\n".join(kept).strip()

    def complete(
        self,
        prompt: str,
        *,
        system_prompt: str | None = None,
        temperature: float = 0.7,
        max_tokens: int = 2048,
        timeout: int = 120,
    ) -> LLMResponse:
        if not prompt.strip():
            raise LLMProviderError("Prompt is empty")
        response = self._call_api(prompt, temperature, max_tokens, timeout, system_prompt)
        self._logger.info(
            "LLM response received model=%s chars=%d usage=%s",
            response.model,
            len(response.text),
            response.usage,
        )
        return response
