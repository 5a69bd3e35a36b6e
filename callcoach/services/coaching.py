from __future__ import annotations

import copy
import json
import logging
import re
from dataclasses import dataclass, field
from typing import Callable, Optional, Sequence

from callcoach.context import AppContext
from callcoach.services.background_tasks import BackgroundTask, BackgroundTaskRunner
from callcoach.services.llm import (
    AnthropicProvider,
    BaseLLMProvider,
    LLMProvider,
    LLMProviderError,
    OpenAIProvider,
)
from callcoach.services.prompt_config import PromptConfigStore
from callcoach.services.session_store import (
    UNKNOWN_SPEAKER,
    CoachingResult,
    SessionStore,
    TranscriptSegment,
)

UNKNOWN = "Unknown"
COACHING_MAX_TOKENS = 2048
COACHING_TEMPERATURE = 0.7

# Returned whenever the model answers with something that is not a JSON object.
FALLBACK_COACHING: dict = {
    "phase": {
        "methodology": "BANT",
        "stage": "Qualification",
        "context": "Early stage qualification for Colombian AWS prospect",
    },
    "action": {
        "script": "Cuéntame más sobre tu proceso actual y los desafíos que enfrentas con la infraestructura",
        "language": "ES",
    },
    "tip": {
        "insight": "Build rapport through active listening and cultural understanding",
        "rationale": "Colombian deals are relationship-driven, trust must come first",
        "language": "EN",
    },
    "risk": {
        "warning": "Insufficient discovery may lead to misalignment",
        "consequence": "Wrong solution proposed",
        "language": "EN",
    },
    "metrics": {
        "discovery": 30,
        "pain_quantified": 20,
        "dm_engagement": 40,
        "stakeholders": 1,
        "alignment": 35,
    },
    "next": {
        "action": "Ask about budget and decision timeline",
        "timeline": "immediate",
    },
}

SEGMENT_SYSTEM_PROMPT = (
    "You are a sales coach providing brief real-time insights about sales conversations. "
    "Always respond with only a JSON object containing a single coaching tip."
)

SEGMENT_USER_PROMPT = (
    "Analyze this statement from a {speaker}:\n\n"
    "\"{text}\"\n\n"
    "Respond with a JSON object:\n"
    "{{\n"
    "  \"tip\": \"Brief actionable tip\",\n"
    "  \"category\": \"questioning|active_listening|objection_handling|rapport_building|closing|other\",\n"
    "  \"sentiment\": \"positive|neutral|negative\"\n"
    "}}"
)

_FENCED_OBJECT = re.compile(r"```(?:json)?\s*(\{.*\})\s*```", re.DOTALL)
_BARE_OBJECT = re.compile(r"(\{.*\})", re.DOTALL)
_PLACEHOLDER = re.compile(r"\{\{(TRANSCRIPT|MEETING_ID|PARTICIPANTS|DURATION)\}\}")


@dataclass
class AnalysisContext:
    meeting_id: str
    participants: list[str] = field(default_factory=list)
    duration: Optional[str] = None


def format_transcript(segments: Sequence[TranscriptSegment]) -> str:
    return "\n".join(f"{s.speaker or UNKNOWN_SPEAKER}: {s.text}" for s in segments)


def render_user_prompt(template: str, transcript: str, context: AnalysisContext) -> str:
    """Fill the template's placeholders in one pass; substituted text is never rescanned."""
    replacements = {
        "TRANSCRIPT": transcript,
        "MEETING_ID": context.meeting_id or UNKNOWN,
        "PARTICIPANTS": ", ".join(context.participants) or UNKNOWN,
        "DURATION": str(context.duration) if context.duration else UNKNOWN,
    }
    return _PLACEHOLDER.sub(lambda match: replacements[match.group(1)], template)


def extract_json_object(text: str) -> Optional[dict]:
    """Pull one JSON object out of free text, tolerating markdown fences and prose.

    Returns None when nothing parses to an object.
    """
    if not text:
        return None
    candidates = []
    for pattern in (_FENCED_OBJECT, _BARE_OBJECT):
        match = pattern.search(text)
        if match:
            candidates.append(match.group(1))
    candidates.append(BaseLLMProvider.strip_markdown_code_blocks(text))
    for candidate in candidates:
        try:
            parsed = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        if isinstance(parsed, dict):
            return parsed
    return None


def coaching_from_response(text: str, logger: Optional[logging.Logger] = None) -> tuple[dict, bool]:
    """Parsed coaching dict and whether the fixed fallback was substituted."""
    parsed = extract_json_object(text)
    if parsed is not None:
        return parsed, False
    if logger:
        logger.warning("Non-JSON coaching response, using fallback: %s", text[:300])
    return copy.deepcopy(FALLBACK_COACHING), True


class CoachingService:
    """Generates coaching for a transcript window using the selected LLM.

    ``trigger`` is fire-and-forget: the LLM call runs on a background task
    and its result is appended to the session afterwards.
    """

    def __init__(
        self,
        ctx: AppContext,
        prompt_store: PromptConfigStore,
        session_store: SessionStore,
        runner: BackgroundTaskRunner,
        provider_factory: Optional[Callable[[], LLMProvider]] = None,
    ) -> None:
        self._ctx = ctx
        self._prompts = prompt_store
        self._store = session_store
        self._runner = runner
        self._provider_factory = provider_factory or self._get_provider
        self._logger = logging.getLogger("callcoach.coaching")

    def _get_selected_model(self) -> tuple[str, str]:
        selected = self._ctx.selected_model
        # Format is "provider:model_id" (e.g., "anthropic:claude-sonnet-4-5")
        if ":" not in selected:
            raise LLMProviderError(f"Invalid model format '{selected}'. Expected 'provider:model_id'.")
        provider, model_id = selected.split(":", 1)
        return provider.lower(), model_id

    def _get_provider(self) -> LLMProvider:
        provider_name, model_id = self._get_selected_model()
        provider_config = self._ctx.provider_config(provider_name)
        api_key = provider_config.get("api_key", "")
        base_url = provider_config.get("base_url", "")

        if provider_name == "anthropic":
            if not api_key:
                raise LLMProviderError("Missing Anthropic API key (ANTHROPIC_API_KEY or CLAUDE_API_KEY).")
            if base_url:
                return AnthropicProvider(api_key=api_key, model=model_id, base_url=base_url)
            return AnthropicProvider(api_key=api_key, model=model_id)

        if provider_name == "openai":
            if not api_key:
                raise LLMProviderError("Missing OpenAI API key (OPENAI_API_KEY).")
            if base_url:
                return OpenAIProvider(api_key=api_key, model=model_id, base_url=base_url)
            return OpenAIProvider(api_key=api_key, model=model_id)

        raise LLMProviderError(f"Unknown provider: {provider_name}")

    def generate(self, segments: Sequence[TranscriptSegment], context: AnalysisContext) -> Optional[CoachingResult]:
        """Run one coaching call.

        Returns a CoachingResult (parsed or fallback) once the model answered,
        or None when the call itself failed.
        """
        if not segments:
            self._logger.error("No transcripts provided for coaching meeting_id=%s", context.meeting_id)
            return None

        transcript = format_transcript(segments)
        prompts = self._prompts.get()
        user_prompt = render_user_prompt(prompts.user_prompt, transcript, context)
        self._logger.info(
            "Generating coaching meeting_id=%s segments=%d prompts=%s",
            context.meeting_id,
            len(segments),
            "default" if prompts.is_default else "custom",
        )

        try:
            provider = self._provider_factory()
            response = provider.complete(
                user_prompt,
                system_prompt=prompts.system_prompt,
                temperature=COACHING_TEMPERATURE,
                max_tokens=COACHING_MAX_TOKENS,
            )
        except LLMProviderError as exc:
            self._logger.error("Coaching call failed meeting_id=%s: %s", context.meeting_id, exc)
            return None
        except Exception as exc:
            self._logger.exception(
                "Coaching call crashed meeting_id=%s participants=%d segments=%d: %s",
                context.meeting_id,
                len(context.participants),
                len(segments),
                exc,
            )
            return None

        data, is_fallback = coaching_from_response(response.text, self._logger)
        self._logger.info(
            "Coaching generated meeting_id=%s model=%s fallback=%s",
            context.meeting_id,
            response.model,
            is_fallback,
        )
        return CoachingResult(data=data)

    def _generate_and_store(self, segments: Sequence[TranscriptSegment], context: AnalysisContext) -> None:
        result = self.generate(segments, context)
        if result is None:
            return
        self._store.append_coaching(context.meeting_id, result)

    def trigger(self, segments: Sequence[TranscriptSegment], context: AnalysisContext) -> BackgroundTask:
        return self._runner.submit(
            f"coaching-{context.meeting_id}",
            self._generate_and_store,
            list(segments),
            context,
        )

    def analyze_segment(self, text: str, speaker: str) -> dict:
        """Quick single-statement insight; raises LLMProviderError on any failure."""
        if not text.strip():
            raise LLMProviderError("Text is empty")
        provider = self._provider_factory()
        response = provider.complete(
            SEGMENT_USER_PROMPT.format(speaker=speaker or UNKNOWN, text=text),
            system_prompt=SEGMENT_SYSTEM_PROMPT,
            temperature=0.5,
            max_tokens=200,
            timeout=30,
        )
        parsed = extract_json_object(response.text)
        if parsed is None:
            raise LLMProviderError(f"Non-JSON segment insight: {response.text[:200]}")
        return parsed
