from __future__ import annotations

import logging
from typing import Any, Optional

import requests

from callcoach.context import AppContext

DEFAULT_BOT_NAME = "Sales Coach AI"
WEBHOOK_EVENTS = [
    "bot.status_change",
    "transcript.partial",
    "transcript.complete",
    "call.ended",
]


class RecallAPIError(RuntimeError):
    def __init__(self, message: str, status_code: Optional[int] = None, details: Any = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.details = details


class RecallClient:
    """Thin client for the meeting-bot REST API."""

    def __init__(self, ctx: AppContext, timeout: int = 30) -> None:
        self._ctx = ctx
        self._timeout = timeout
        self._logger = logging.getLogger("callcoach.recall")

    @property
    def configured(self) -> bool:
        return bool(self._ctx.recall_api_key)

    @property
    def _base_url(self) -> str:
        return self._ctx.recall_base_url

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Token {self._ctx.recall_api_key}",
            "Accept": "application/json",
            "Content-Type": "application/json",
        }

    @staticmethod
    def _decode(response: requests.Response) -> Any:
        try:
            return response.json()
        except ValueError:
            return {"raw": response.text[:500]}

    def create_bot(self, meeting_url: str, webhook_url: str, bot_name: Optional[str] = None) -> dict:
        bot_config = {
            "meeting_url": meeting_url,
            "bot_name": bot_name or DEFAULT_BOT_NAME,
            "recording_config": {
                "transcript": {
                    "provider": {
                        "recallai_streaming": {
                            "mode": "prioritize_low_latency",
                            "language_code": "en",
                        }
                    }
                }
            },
            "webhook": {"url": webhook_url, "events": list(WEBHOOK_EVENTS)},
            "automatic_leave": {
                "waiting_room_timeout": 600,
                "noone_joined_timeout": 300,
            },
        }
        self._logger.info("Creating bot meeting_url=%s webhook_url=%s", meeting_url, webhook_url)
        try:
            response = requests.post(
                f"{self._base_url}/api/v1/bot",
                headers=self._headers(),
                json=bot_config,
                timeout=self._timeout,
            )
        except requests.RequestException as exc:
            raise RecallAPIError("Failed to reach Recall.ai") from exc

        data = self._decode(response)
        if not response.ok:
            message = data.get("message") if isinstance(data, dict) else None
            raise RecallAPIError(
                message or "Recall.ai API error",
                status_code=response.status_code,
                details=data,
            )
        if not isinstance(data, dict) or not data.get("id"):
            raise RecallAPIError("Recall.ai response missing bot id", status_code=502, details=data)
        self._logger.info("Bot created bot_id=%s", data.get("id"))
        return data

    def fetch_transcript(self, bot_id: str) -> list[dict]:
        """Finalized transcript segments for a bot; empty when the body has none."""
        try:
            response = requests.get(
                f"{self._base_url}/api/v1/bot/{bot_id}/transcript",
                headers=self._headers(),
                timeout=self._timeout,
            )
        except requests.RequestException as exc:
            raise RecallAPIError("Failed to reach Recall.ai") from exc

        if not response.ok:
            raise RecallAPIError(
                f"Failed to fetch transcript: {response.status_code}",
                status_code=response.status_code,
                details=self._decode(response),
            )

        data = self._decode(response)
        if not isinstance(data, dict):
            return []
        segments = data.get("segments")
        if not isinstance(segments, list):
            return []
        return [segment for segment in segments if isinstance(segment, dict)]
