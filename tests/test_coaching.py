from __future__ import annotations

import pytest

from callcoach.context import AppContext
from callcoach.services.coaching import (
    FALLBACK_COACHING,
    AnalysisContext,
    CoachingService,
    coaching_from_response,
    extract_json_object,
    format_transcript,
    render_user_prompt,
)
from callcoach.services.llm import AnthropicProvider, LLMProviderError, OpenAIProvider
from callcoach.services.session_store import TranscriptSegment
from conftest import FakeProvider


def _segments(*pairs: tuple[str, str]) -> list[TranscriptSegment]:
    return [TranscriptSegment(text=text, speaker=speaker) for speaker, text in pairs]


def _service(ctx, prompt_store, store, runner, provider=None) -> CoachingService:
    factory = (lambda: provider) if provider is not None else None
    return CoachingService(ctx, prompt_store, store, runner, provider_factory=factory)


def test_format_transcript_keeps_order() -> None:
    segments = _segments(("Rep", "How's your infra today?"), ("Customer", "It's a mess"))
    assert format_transcript(segments) == "Rep: How's your infra today?\nCustomer: It's a mess"


def test_render_user_prompt_replaces_every_placeholder() -> None:
    template = "{{MEETING_ID}} | {{PARTICIPANTS}} | {{DURATION}}\n{{TRANSCRIPT}}\n{{MEETING_ID}}"
    rendered = render_user_prompt(template, "Rep: hi", AnalysisContext("m-1", ["Customer", "Rep"], "3m 2s"))
    assert rendered == "m-1 | Customer, Rep | 3m 2s\nRep: hi\nm-1"


def test_render_user_prompt_keeps_transcript_verbatim() -> None:
    transcript = "Rep: our id is {{MEETING_ID}} and it took {{DURATION}}"
    rendered = render_user_prompt("T={{TRANSCRIPT}} M={{MEETING_ID}}", transcript, AnalysisContext("m-9", duration="4m"))
    assert rendered == "T=Rep: our id is {{MEETING_ID}} and it took {{DURATION}} M=m-9"


def test_render_user_prompt_leaves_unknown_tokens_alone() -> None:
    assert render_user_prompt("{{SPEAKER}} {{TRANSCRIPT}}", "x", AnalysisContext("m-1")) == "{{SPEAKER}} x"


def test_render_user_prompt_defaults_to_unknown() -> None:
    rendered = render_user_prompt("{{PARTICIPANTS}}/{{DURATION}}", "", AnalysisContext("m-1"))
    assert rendered == "Unknown/Unknown"


@pytest.mark.parametrize(
    "text",
    [
        '{"tip": "x"}',
        'Sure! Here you go:\n```json\n{"tip": "x"}\n```\nGood luck.',
        '```\n{"tip": "x"}\n```',
        'Analysis follows {"tip": "x"} and that is all',
    ],
)
def test_extract_json_object_tolerates_wrapping(text: str) -> None:
    assert extract_json_object(text) == {"tip": "x"}


@pytest.mark.parametrize("text", ["", "no json here", "[1, 2, 3]", "{not json}"])
def test_extract_json_object_rejects_non_objects(text: str) -> None:
    assert extract_json_object(text) is None


def test_fallback_is_a_fresh_copy() -> None:
    data, is_fallback = coaching_from_response("I cannot help with that")
    assert is_fallback is True
    assert data == FALLBACK_COACHING
    data["phase"]["stage"] = "changed"
    assert FALLBACK_COACHING["phase"]["stage"] == "Qualification"


def test_generate_uses_current_prompts(ctx, prompt_store, store, runner) -> None:
    provider = FakeProvider()
    prompt_store.set("Be terse.", "Meeting {{MEETING_ID}}:\n{{TRANSCRIPT}}")
    service = _service(ctx, prompt_store, store, runner, provider)

    result = service.generate(_segments(("Rep", "hello")), AnalysisContext("m-1", ["Rep"]))

    assert result.data == {"tip": {"insight": "ask about budget"}}
    assert provider.calls[0]["system_prompt"] == "Be terse."
    assert provider.calls[0]["prompt"] == "Meeting m-1:\nRep: hello"
    assert provider.calls[0]["max_tokens"] == 2048


def test_generate_substitutes_fallback_for_prose(ctx, prompt_store, store, runner) -> None:
    service = _service(ctx, prompt_store, store, runner, FakeProvider(text="Great call so far!"))
    result = service.generate(_segments(("Rep", "hello")), AnalysisContext("m-1"))
    assert result.data == FALLBACK_COACHING


def test_generate_returns_none_on_provider_failure(ctx, prompt_store, store, runner, provider_error) -> None:
    service = _service(ctx, prompt_store, store, runner, FakeProvider(error=provider_error))
    assert service.generate(_segments(("Rep", "hello")), AnalysisContext("m-1")) is None

    service = _service(ctx, prompt_store, store, runner, FakeProvider(error=RuntimeError("socket closed")))
    assert service.generate(_segments(("Rep", "hello")), AnalysisContext("m-1")) is None


def test_generate_with_no_segments(ctx, prompt_store, store, runner, fake_provider) -> None:
    service = _service(ctx, prompt_store, store, runner, fake_provider)
    assert service.generate([], AnalysisContext("m-1")) is None
    assert fake_provider.calls == []


def test_trigger_appends_result_in_background(ctx, prompt_store, store, runner, fake_provider) -> None:
    service = _service(ctx, prompt_store, store, runner, fake_provider)
    task = service.trigger(_segments(("Rep", "hello"), ("Customer", "hi")), AnalysisContext("m-1"))

    assert task.join(timeout=5)
    assert task.error is None
    coaching = store.latest_coaching("m-1", 5)
    assert len(coaching) == 1
    assert coaching[0].data["tip"]["insight"] == "ask about budget"


def test_trigger_failure_appends_nothing(ctx, prompt_store, store, runner, provider_error) -> None:
    service = _service(ctx, prompt_store, store, runner, FakeProvider(error=provider_error))
    store.get_or_create("m-1")
    task = service.trigger(_segments(("Rep", "hello")), AnalysisContext("m-1"))

    assert task.join(timeout=5)
    assert store.latest_coaching("m-1", 5) == []


def test_analyze_segment_returns_parsed_insight(ctx, prompt_store, store, runner) -> None:
    provider = FakeProvider(text='{"tip": "Ask why", "category": "questioning", "sentiment": "neutral"}')
    service = _service(ctx, prompt_store, store, runner, provider)

    insight = service.analyze_segment("We already have a vendor", "Customer")

    assert insight["category"] == "questioning"
    assert "Customer" in provider.calls[0]["prompt"]
    assert provider.calls[0]["max_tokens"] == 200


def test_analyze_segment_rejects_prose_and_empty_text(ctx, prompt_store, store, runner) -> None:
    service = _service(ctx, prompt_store, store, runner, FakeProvider(text="no idea"))
    with pytest.raises(LLMProviderError):
        service.analyze_segment("hello", "Rep")
    with pytest.raises(LLMProviderError):
        service.analyze_segment("   ", "Rep")


def test_provider_selection_from_environment(tmp_path, prompt_store, store, runner) -> None:
    ctx = AppContext(
        cwd=str(tmp_path),
        data_dir=str(tmp_path / "data"),
        environ={"COACHING_MODEL": "openai:gpt-4o-mini", "OPENAI_API_KEY": "sk-test"},
    )
    provider = CoachingService(ctx, prompt_store, store, runner)._get_provider()
    assert isinstance(provider, OpenAIProvider)
    assert provider._model == "gpt-4o-mini"

    ctx = AppContext(cwd=str(tmp_path), data_dir=str(tmp_path / "data"), environ={"CLAUDE_API_KEY": "sk-ant"})
    provider = CoachingService(ctx, prompt_store, store, runner)._get_provider()
    assert isinstance(provider, AnthropicProvider)


@pytest.mark.parametrize(
    "environ",
    [
        {},
        {"COACHING_MODEL": "openai:gpt-4o"},
        {"COACHING_MODEL": "mystery:model-1", "ANTHROPIC_API_KEY": "k"},
        {"COACHING_MODEL": "no-colon", "ANTHROPIC_API_KEY": "k"},
    ],
)
def test_provider_selection_errors(tmp_path, prompt_store, store, runner, environ) -> None:
    ctx = AppContext(cwd=str(tmp_path), data_dir=str(tmp_path / "data"), environ=environ)
    with pytest.raises(LLMProviderError):
        CoachingService(ctx, prompt_store, store, runner)._get_provider()


def test_missing_key_is_logged_not_raised_from_trigger(ctx, prompt_store, store, runner) -> None:
    service = CoachingService(ctx, prompt_store, store, runner)
    task = service.trigger(_segments(("Rep", "hello")), AnalysisContext("m-1"))
    assert task.join(timeout=5)
    assert task.error is None
    assert store.latest_coaching("m-1", 5) == []
