from __future__ import annotations

import pytest

from callcoach.services.event_normalizer import (
    EventKind,
    EventNormalizationError,
    classify,
    extract_speaker,
    extract_text,
    normalize,
    resolve_event_name,
    resolve_meeting_id,
    text_from_nested_text,
    text_from_transcript_field,
    text_from_words,
)
from conftest import transcript_payload


@pytest.mark.parametrize(
    "payload",
    [
        {"meeting_id": "m-1"},
        {"bot_id": "m-1"},
        {"data": {"bot_id": "m-1"}},
        {"data": {"id": "m-1"}},
        {"data": {"meeting_id": "m-1"}},
        {"data": {"bot": {"id": "m-1"}}},
        {"id": "m-1"},
    ],
)
def test_meeting_id_resolves_from_every_candidate_location(payload: dict) -> None:
    assert resolve_meeting_id(payload) == "m-1"


def test_meeting_id_priority_order() -> None:
    payload = {
        "id": "top-id",
        "bot_id": "bot",
        "meeting_id": "meeting",
        "data": {"bot_id": "data-bot", "bot": {"id": "nested"}},
    }
    assert resolve_meeting_id(payload) == "meeting"

    del payload["meeting_id"]
    assert resolve_meeting_id(payload) == "bot"

    del payload["bot_id"]
    assert resolve_meeting_id(payload) == "data-bot"

    del payload["data"]["bot_id"]
    assert resolve_meeting_id(payload) == "nested"

    del payload["data"]
    assert resolve_meeting_id(payload) == "top-id"


def test_meeting_id_skips_empty_and_non_scalar_values() -> None:
    assert resolve_meeting_id({"meeting_id": "  ", "bot_id": "b-2"}) == "b-2"
    assert resolve_meeting_id({"meeting_id": True, "data": {"id": 42}}) == "42"
    assert resolve_meeting_id({"data": "not-an-object", "id": {"x": 1}}) is None


def test_missing_meeting_id_reports_fields_in_payload_order() -> None:
    with pytest.raises(EventNormalizationError) as excinfo:
        normalize({"type": "transcript.data", "data": {"words": [], "audio": None}, "extra": 1})
    assert excinfo.value.available_fields == ["type", "data", "extra"]
    assert excinfo.value.data_fields == ["words", "audio"]


def test_missing_meeting_id_without_data_object() -> None:
    with pytest.raises(EventNormalizationError) as excinfo:
        normalize({"type": "bot.done"})
    assert excinfo.value.data_fields is None


def test_event_name_lookup_order() -> None:
    assert resolve_event_name({"type": "a", "event_type": "b", "event": "c"}) == "a"
    assert resolve_event_name({"event_type": "b", "event": "c"}) == "b"
    assert resolve_event_name({"event": "c"}) == "c"
    assert resolve_event_name({}) is None


@pytest.mark.parametrize(
    ("name", "kind"),
    [
        ("transcript.data", EventKind.TRANSCRIPT_FINAL),
        ("transcript.partial_data", EventKind.TRANSCRIPT_PARTIAL),
        ("transcript.done", EventKind.TRANSCRIPT_DONE),
        ("bot.in_call_recording", EventKind.BOT_ACTIVATED),
        ("call.started", EventKind.BOT_ACTIVATED),
        ("bot.fatal", EventKind.BOT_ENDED),
        ("bot.left_call", EventKind.BOT_ENDED),
        ("bot.something_new", EventKind.UNRECOGNIZED),
        (None, EventKind.UNRECOGNIZED),
    ],
)
def test_event_table(name, kind) -> None:
    assert classify(name, {}) is kind


def test_status_change_uses_nested_code() -> None:
    payload = {"event": "bot.status_change", "data": {"bot_id": "b", "status": {"code": "call_ended"}}}
    assert classify("bot.status_change", payload) is EventKind.BOT_ENDED
    assert classify("bot.status_change", {"data": {}}) is EventKind.UNRECOGNIZED


def test_unknown_event_is_accepted_not_rejected() -> None:
    event = normalize({"bot_id": "b-1", "event": "bot.output_log", "data": {"x": 1}})
    assert event.kind is EventKind.UNRECOGNIZED
    assert event.raw_event_name == "bot.output_log"
    assert event.meeting_id == "b-1"


def test_transcript_event_extracts_words_and_speaker() -> None:
    event = normalize(transcript_payload("bot-9", "How's your infra today?", speaker="Rep"))
    assert event.meeting_id == "bot-9"
    assert event.kind is EventKind.TRANSCRIPT_FINAL
    assert event.text == "How's your infra today?"
    assert event.speaker == "Rep"
    assert event.word_count == 4


def test_speaker_defaults_to_unknown() -> None:
    payload = transcript_payload("bot-9", "hello there")
    del payload["data"]["data"]["participant"]
    assert extract_speaker(payload) == "Unknown"
    assert extract_speaker({"speaker": "Alex", "data": {}}) == "Alex"


def test_text_rules_are_independent() -> None:
    words_payload = {"data": {"data": {"words": [{"text": "a"}, {"text": "b"}, {"nope": 1}]}}}
    assert text_from_words(words_payload) == ("a b", 3)
    assert text_from_words({"data": {"data": {"words": []}}}) is None

    assert text_from_nested_text({"data": {"data": {"text": "one two"}}}) == ("one two", 2)
    assert text_from_nested_text({}) is None

    assert text_from_transcript_field({"transcript": "plain"}) == ("plain", 1)
    assert text_from_transcript_field({"transcript": {"text": "nested words"}}) == ("nested words", 2)
    assert text_from_transcript_field({"transcript": 7}) is None


def test_whitespace_words_yield_empty_text() -> None:
    payload = {"data": {"data": {"words": [{"text": " "}, {"text": ""}]}}}
    assert extract_text(payload) == ("", 0)


def test_metadata_and_transcript_id_pass_through() -> None:
    event = normalize(
        {
            "event": "transcript.done",
            "metadata": {"duration": "4m"},
            "data": {"bot": {"id": "b-3"}, "transcript": {"id": "tr-1"}},
        }
    )
    assert event.kind is EventKind.TRANSCRIPT_DONE
    assert event.metadata == {"duration": "4m"}
    assert event.transcript_id == "tr-1"
