from __future__ import annotations

import threading
from typing import Optional

import pytest

from callcoach.context import AppContext
from callcoach.services.background_tasks import BackgroundTaskRunner
from callcoach.services.llm import LLMProvider, LLMProviderError, LLMResponse
from callcoach.services.prompt_config import PromptConfigStore
from callcoach.services.recall_client import RecallAPIError
from callcoach.services.session_store import SessionStore


class FakeProvider(LLMProvider):
    def __init__(self, text: str = '{"tip": {"insight": "ask about budget"}}', error: Optional[Exception] = None) -> None:
        self.text = text
        self.error = error
        self.calls: list[dict] = []
        self._lock = threading.Lock()

    def complete(self, prompt, *, system_prompt=None, temperature=0.7, max_tokens=2048, timeout=120):
        with self._lock:
            self.calls.append({"prompt": prompt, "system_prompt": system_prompt, "max_tokens": max_tokens})
        if self.error is not None:
            raise self.error
        return LLMResponse(text=self.text, model="fake-model", usage={"input_tokens": 1, "output_tokens": 1})


class RecordingTrigger:
    def __init__(self) -> None:
        self.calls: list[tuple[list, object]] = []

    def trigger(self, segments, context) -> None:
        self.calls.append((list(segments), context))


class FakeRecallClient:
    def __init__(self, segments: Optional[list[dict]] = None, error: Optional[Exception] = None, configured: bool = True) -> None:
        self.segments = segments or []
        self.error = error
        self.configured = configured
        self.fetched: list[str] = []
        self.created: list[dict] = []
        self.bot = {"id": "bot-123", "join_at": "2026-01-01T10:00:00Z", "status_changes": [{"code": "ready"}]}

    def fetch_transcript(self, bot_id: str) -> list[dict]:
        self.fetched.append(bot_id)
        if self.error is not None:
            raise self.error
        return list(self.segments)

    def create_bot(self, meeting_url: str, webhook_url: str, bot_name: Optional[str] = None) -> dict:
        self.created.append({"meeting_url": meeting_url, "webhook_url": webhook_url, "bot_name": bot_name})
        if self.error is not None:
            raise self.error
        return dict(self.bot)


@pytest.fixture
def ctx(tmp_path) -> AppContext:
    return AppContext(cwd=str(tmp_path), data_dir=str(tmp_path / "data"), environ={})


@pytest.fixture
def store() -> SessionStore:
    return SessionStore()


@pytest.fixture
def runner():
    task_runner = BackgroundTaskRunner()
    yield task_runner
    task_runner.join_all(timeout=5)


@pytest.fixture
def prompt_store(ctx) -> PromptConfigStore:
    return PromptConfigStore.from_dir(ctx.prompts_dir)


@pytest.fixture
def fake_provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def trigger() -> RecordingTrigger:
    return RecordingTrigger()


@pytest.fixture
def recall_error() -> RecallAPIError:
    return RecallAPIError("boom", status_code=503, details={"message": "boom"})


@pytest.fixture
def provider_error() -> LLMProviderError:
    return LLMProviderError("Anthropic error: 529")


def transcript_payload(meeting_id: str, text: str, speaker: str = "Rep", event: str = "transcript.data") -> dict:
    return {
        "event": event,
        "data": {
            "bot": {"id": meeting_id},
            "data": {
                "words": [{"text": word} for word in text.split()],
                "participant": {"id": 1, "name": speaker},
            },
        },
    }


class GatedProvider(FakeProvider):
    """Blocks every completion until ``release`` is set."""

    def __init__(self, text: str = '{"tip": {"insight": "slow down"}}') -> None:
        super().__init__(text=text)
        self.release = threading.Event()
        self.waiting = threading.Semaphore(0)

    def complete(self, prompt, *, system_prompt=None, temperature=0.7, max_tokens=2048, timeout=120):
        self.waiting.release()
        if not self.release.wait(timeout=10):
            raise LLMProviderError("gate never opened")
        return super().complete(prompt, system_prompt=system_prompt, temperature=temperature, max_tokens=max_tokens, timeout=timeout)
