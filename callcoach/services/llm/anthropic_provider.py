from __future__ import annotations

import requests

from callcoach.services.llm.base import BaseLLMProvider, LLMProviderError, LLMResponse

ANTHROPIC_VERSION = "2023-06-01"


class AnthropicProvider(BaseLLMProvider):
    """LLM provider for the Anthropic Messages API."""

    def __init__(self, api_key: str, model: str, base_url: str = "https://api.anthropic.com") -> None:
        super().__init__(logger_name="callcoach.llm.anthropic")
        self._api_key = api_key
        self._model = model
        self._base_url = base_url.rstrip("/")

    def _call_api(
        self,
        prompt: str,
        temperature: float,
        max_tokens: int,
        timeout: int,
        system_prompt: str | None = None,
    ) -> LLMResponse:
        request_body = {
            "model": self._model,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "messages": [{"role": "user", "content": prompt}],
        }
        if system_prompt:
            request_body["system"] = system_prompt

        try:
            response = requests.post(
                f"{self._base_url}/v1/messages",
                headers={
                    "x-api-key": self._api_key,
                    "anthropic-version": ANTHROPIC_VERSION,
                    "content-type": "application/json",
                },
                json=request_body,
                timeout=timeout,
            )
        except requests.RequestException as exc:
            raise LLMProviderError("Failed to reach Anthropic") from exc

        if response.status_code != 200:
            raise LLMProviderError(f"Anthropic error: {response.status_code}")

        data = response.json()
        content_blocks = data.get("content", [])
        texts = [
            block.get("text", "") for block in content_blocks
            if isinstance(block, dict) and block.get("type", "text") == "text"
        ]
        if not texts:
            raise LLMProviderError("Anthropic response missing content")

        usage = data.get("usage") or {}
        return LLMResponse(
            text="".join(texts).strip(),
            model=str(data.get("model") or self._model),
            usage={
                "input_tokens": usage.get("input_tokens"),
                "output_tokens": usage.get("output_tokens"),
            },
        )
