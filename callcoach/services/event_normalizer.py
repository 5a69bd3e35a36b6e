"""Normalize meeting-bot webhook deliveries into one canonical event shape.

The provider sends several payload shapes (status webhooks, realtime
endpoint transcript pushes, legacy call events).  Each piece of the
canonical event is resolved by an ordered list of extraction rules over the
raw JSON tree; the first rule that yields a usable value wins.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Optional

from callcoach.services.session_store import UNKNOWN_SPEAKER

_logger = logging.getLogger("callcoach.normalizer")


class EventKind(Enum):
    TRANSCRIPT_PARTIAL = "transcript-partial"
    TRANSCRIPT_FINAL = "transcript-final"
    TRANSCRIPT_DONE = "transcript-done"
    BOT_ACTIVATED = "bot-activated"
    BOT_ENDED = "bot-ended"
    UNRECOGNIZED = "unrecognized"


EVENT_KINDS: dict[str, EventKind] = {
    "transcript.data": EventKind.TRANSCRIPT_FINAL,
    "transcript.complete": EventKind.TRANSCRIPT_FINAL,
    "transcript.partial_data": EventKind.TRANSCRIPT_PARTIAL,
    "transcript.partial": EventKind.TRANSCRIPT_PARTIAL,
    "transcript.done": EventKind.TRANSCRIPT_DONE,
    "bot.in_call_not_recording": EventKind.BOT_ACTIVATED,
    "bot.in_call_recording": EventKind.BOT_ACTIVATED,
    "bot.recording_permission_allowed": EventKind.BOT_ACTIVATED,
    "call.started": EventKind.BOT_ACTIVATED,
    "bot.joined_call": EventKind.BOT_ACTIVATED,
    "bot.call_ended": EventKind.BOT_ENDED,
    "bot.done": EventKind.BOT_ENDED,
    "bot.fatal": EventKind.BOT_ENDED,
    "call.ended": EventKind.BOT_ENDED,
    "bot.left_call": EventKind.BOT_ENDED,
}

# Envelope event whose real status lives at data.status.code
STATUS_CHANGE_EVENT = "bot.status_change"

# Candidate locations of the meeting identifier, highest priority first.
MEETING_ID_PATHS: tuple[tuple[str, ...], ...] = (
    ("meeting_id",),
    ("bot_id",),
    ("data", "bot_id"),
    ("data", "id"),
    ("data", "meeting_id"),
    ("data", "bot", "id"),
    ("id",),
)

EVENT_NAME_PATHS: tuple[tuple[str, ...], ...] = (
    ("type",),
    ("event_type",),
    ("event",),
)


class EventNormalizationError(ValueError):
    """Raised when a payload carries no usable meeting identifier."""

    def __init__(self, message: str, available_fields: list[str], data_fields: Optional[list[str]]) -> None:
        super().__init__(message)
        self.available_fields = available_fields
        self.data_fields = data_fields


@dataclass(frozen=True)
class CanonicalEvent:
    meeting_id: str
    kind: EventKind
    raw_event_name: Optional[str]
    text: str = ""
    speaker: str = UNKNOWN_SPEAKER
    metadata: dict = field(default_factory=dict)
    word_count: int = 0
    transcript_id: Optional[str] = None

    @property
    def is_transcript(self) -> bool:
        return self.kind in (EventKind.TRANSCRIPT_PARTIAL, EventKind.TRANSCRIPT_FINAL)


def dig(tree: Any, path: tuple[str, ...]) -> Any:
    """Walk nested dicts along ``path``; any missing or non-dict hop yields None."""
    node = tree
    for key in path:
        if not isinstance(node, dict):
            return None
        node = node.get(key)
    return node


def _as_identifier(value: Any) -> Optional[str]:
    # bool is an int subclass; never treat true/false as an id
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return str(value)
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def resolve_meeting_id(payload: dict) -> Optional[str]:
    for path in MEETING_ID_PATHS:
        meeting_id = _as_identifier(dig(payload, path))
        if meeting_id:
            return meeting_id
    return None


def resolve_event_name(payload: dict) -> Optional[str]:
    for path in EVENT_NAME_PATHS:
        value = dig(payload, path)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def classify(event_name: Optional[str], payload: dict) -> EventKind:
    if not event_name:
        return EventKind.UNRECOGNIZED
    if event_name == STATUS_CHANGE_EVENT:
        code = dig(payload, ("data", "status", "code"))
        if isinstance(code, str) and code:
            return EVENT_KINDS.get(f"bot.{code}", EventKind.UNRECOGNIZED)
        return EventKind.UNRECOGNIZED
    return EVENT_KINDS.get(event_name, EventKind.UNRECOGNIZED)


# ── Transcript text rules ──────────────────────────────────────────────
# Each rule returns (text, word_count) or None when it does not apply.

TextRule = Callable[[dict], Optional[tuple[str, int]]]


def text_from_words(payload: dict) -> Optional[tuple[str, int]]:
    words = dig(payload, ("data", "data", "words"))
    if not isinstance(words, list) or not words:
        return None
    parts = [
        str(word.get("text")) for word in words
        if isinstance(word, dict) and word.get("text") is not None
    ]
    return " ".join(parts), len(words)


def text_from_nested_text(payload: dict) -> Optional[tuple[str, int]]:
    text = dig(payload, ("data", "data", "text"))
    if isinstance(text, str):
        return text, len(text.split())
    return None


def text_from_transcript_field(payload: dict) -> Optional[tuple[str, int]]:
    transcript = payload.get("transcript")
    if isinstance(transcript, dict):
        transcript = transcript.get("text")
    if isinstance(transcript, str):
        return transcript, len(transcript.split())
    return None


TEXT_RULES: tuple[TextRule, ...] = (
    text_from_words,
    text_from_nested_text,
    text_from_transcript_field,
)

SPEAKER_PATHS: tuple[tuple[str, ...], ...] = (
    ("data", "data", "participant", "name"),
    ("speaker",),
)


def extract_text(payload: dict) -> tuple[str, int]:
    for rule in TEXT_RULES:
        result = rule(payload)
        if result is not None and result[0].strip():
            return result[0].strip(), result[1]
    return "", 0


def extract_speaker(payload: dict) -> str:
    for path in SPEAKER_PATHS:
        value = dig(payload, path)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return UNKNOWN_SPEAKER


def normalize(payload: dict) -> CanonicalEvent:
    """Map a decoded webhook body to a CanonicalEvent.

    Unknown event names are not an error: they come back as
    ``EventKind.UNRECOGNIZED`` so newer provider events never break intake.
    """
    meeting_id = resolve_meeting_id(payload)
    if not meeting_id:
        data = payload.get("data")
        raise EventNormalizationError(
            "Missing meeting_id or bot_id",
            available_fields=list(payload.keys()),
            data_fields=list(data.keys()) if isinstance(data, dict) else None,
        )

    event_name = resolve_event_name(payload)
    kind = classify(event_name, payload)
    metadata = payload.get("metadata")
    metadata = dict(metadata) if isinstance(metadata, dict) else {}

    if kind is EventKind.UNRECOGNIZED:
        _logger.info("Unrecognized event ignored: meeting_id=%s event=%s", meeting_id, event_name)
        return CanonicalEvent(meeting_id=meeting_id, kind=kind, raw_event_name=event_name, metadata=metadata)

    text, word_count = ("", 0)
    speaker = UNKNOWN_SPEAKER
    if kind in (EventKind.TRANSCRIPT_PARTIAL, EventKind.TRANSCRIPT_FINAL):
        text, word_count = extract_text(payload)
        speaker = extract_speaker(payload)

    transcript_id = _as_identifier(dig(payload, ("data", "transcript", "id")))
    return CanonicalEvent(
        meeting_id=meeting_id,
        kind=kind,
        raw_event_name=event_name,
        text=text,
        speaker=speaker,
        metadata=metadata,
        word_count=word_count,
        transcript_id=transcript_id,
    )
