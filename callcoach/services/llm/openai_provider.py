from __future__ import annotations

import requests

from callcoach.services.llm.base import BaseLLMProvider, LLMProviderError, LLMResponse

DEFAULT_SYSTEM_PROMPT = "You are a helpful assistant."


class OpenAIProvider(BaseLLMProvider):
    """Chat-completions provider for OpenAI and compatible gateways."""

    def __init__(self, api_key: str, model: str, base_url: str = "https://api.openai.com") -> None:
        super().__init__(logger_name="callcoach.llm.openai")
        self._api_key = api_key
        self._model = model
        self._base_url = base_url.rstrip("/")

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
        }

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
            "messages": [
                {"role": "system", "content": system_prompt or DEFAULT_SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        try:
            response = requests.post(
                f"{self._base_url}/v1/chat/completions",
                headers=self._headers(),
                json=request_body,
                timeout=timeout,
            )
        except requests.RequestException as exc:
            raise LLMProviderError("Failed to reach OpenAI") from exc

        if response.status_code != 200:
            raise LLMProviderError(f"OpenAI error: {response.status_code}")

        data = response.json()
        choices = data.get("choices") or []
        if not choices:
            raise LLMProviderError("OpenAI response missing choices")

        message = choices[0].get("message") or {}
        usage = data.get("usage") or {}
        return LLMResponse(
            text=str(message.get("content") or "").strip(),
            model=str(data.get("model") or self._model),
            usage={
                "input_tokens": usage.get("prompt_tokens"),
                "output_tokens": usage.get("completion_tokens"),
            },
        )
