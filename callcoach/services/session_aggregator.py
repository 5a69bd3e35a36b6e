"""
Apply canonical webhook events to the session store.

Rules per event, in order:
1. resolve or create the session (unrecognized events stop before this)
2. transcript fragments: drop empty text, otherwise append a segment
3. after a finalized append: when the last WINDOW_SIZE segments (partial or
   final) number at least MIN_WINDOW_SIZE, dispatch coaching for that window
4. transcript-done: best-effort fetch of the finalized transcript
5. bot-activated: pending/active -> active (never out of ended)
6. bot-ended: -> ended

Coaching is re-dispatched on every qualifying append; there is no cooldown.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Optional, Protocol, Sequence

from callcoach.services.coaching import AnalysisContext
from callcoach.services.event_normalizer import CanonicalEvent, EventKind
from callcoach.services.recall_client import RecallAPIError
from callcoach.services.session_store import (
    SessionStore,
    TranscriptSegment,
    utc_now,
)

WINDOW_SIZE = 5
MIN_WINDOW_SIZE = 3
BACKFILL_SOURCE = "transcript.done"


class AnalysisTrigger(Protocol):
    def trigger(self, segments: Sequence[TranscriptSegment], context: AnalysisContext) -> object:
        ...


class TranscriptSource(Protocol):
    def fetch_transcript(self, bot_id: str) -> list[dict]:
        ...


def format_duration(seconds: float) -> str:
    seconds = max(0, int(seconds))
    minutes, secs = divmod(seconds, 60)
    return f"{minutes}m {secs}s"


def segment_timestamp(start: object) -> datetime:
    """Provider start time (epoch seconds) when usable, otherwise now."""
    if isinstance(start, (int, float)) and not isinstance(start, bool):
        try:
            return datetime.fromtimestamp(start, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            pass
    return utc_now()


def backfill_segments(raw_segments: list[dict]) -> list[TranscriptSegment]:
    segments: list[TranscriptSegment] = []
    for index, raw in enumerate(raw_segments):
        text = str(raw.get("text") or "").strip()
        if not text:
            continue
        speaker = raw.get("speaker") or f"Speaker {raw.get('speaker_id') or index + 1}"
        metadata = dict(raw)
        metadata["source"] = BACKFILL_SOURCE
        segments.append(
            TranscriptSegment(
                text=text,
                speaker=str(speaker),
                is_partial=False,
                metadata=metadata,
                timestamp=segment_timestamp(raw.get("start")),
            )
        )
    return segments


class SessionAggregator:
    def __init__(
        self,
        store: SessionStore,
        analysis_trigger: AnalysisTrigger,
        transcript_source: Optional[TranscriptSource] = None,
    ) -> None:
        self._store = store
        self._trigger = analysis_trigger
        self._transcripts = transcript_source
        self._logger = logging.getLogger("callcoach.aggregator")

    def apply(self, event: CanonicalEvent) -> None:
        if event.kind is EventKind.UNRECOGNIZED:
            self._logger.info(
                "Event ignored meeting_id=%s event=%s", event.meeting_id, event.raw_event_name
            )
            return

        self._store.get_or_create(event.meeting_id)

        if event.is_transcript:
            self._apply_transcript(event)
        elif event.kind is EventKind.TRANSCRIPT_DONE:
            self._backfill(event)
        elif event.kind is EventKind.BOT_ACTIVATED:
            status = self._store.activate(event.meeting_id)
            self._logger.info("Bot activated meeting_id=%s status=%s", event.meeting_id, status.value)
        elif event.kind is EventKind.BOT_ENDED:
            self._store.end(event.meeting_id)
            self._logger.info("Bot ended meeting_id=%s", event.meeting_id)

    def _apply_transcript(self, event: CanonicalEvent) -> None:
        text = event.text.strip()
        if not text:
            self._logger.debug("Skipping empty transcript meeting_id=%s", event.meeting_id)
            return

        is_partial = event.kind is EventKind.TRANSCRIPT_PARTIAL
        metadata = dict(event.metadata)
        metadata.update(
            {
                "event_type": event.raw_event_name,
                "word_count": event.word_count,
                "is_partial": is_partial,
            }
        )
        segment = TranscriptSegment(
            text=text,
            speaker=event.speaker,
            is_partial=is_partial,
            metadata=metadata,
        )
        transcripts = self._store.append_transcript(event.meeting_id, segment)
        self._logger.info(
            "Stored transcript segment meeting_id=%s words=%d partial=%s",
            event.meeting_id,
            event.word_count,
            is_partial,
        )
        if is_partial:
            return

        window = transcripts[-WINDOW_SIZE:]
        if len(window) < MIN_WINDOW_SIZE:
            return
        context = AnalysisContext(
            meeting_id=event.meeting_id,
            participants=self._store.participants(event.meeting_id),
            duration=self._duration(event),
        )
        self._trigger.trigger(window, context)

    def _duration(self, event: CanonicalEvent) -> Optional[str]:
        duration = event.metadata.get("duration")
        if duration not in (None, ""):
            return str(duration)
        session = self._store.get(event.meeting_id)
        if session is None:
            return None
        return format_duration((utc_now() - session.created_at).total_seconds())

    def _backfill(self, event: CanonicalEvent) -> None:
        self._logger.info(
            "Transcript completed meeting_id=%s transcript_id=%s", event.meeting_id, event.transcript_id
        )
        if self._transcripts is None:
            self._logger.warning("No transcript source configured; skipping backfill")
            return
        try:
            raw_segments = self._transcripts.fetch_transcript(event.meeting_id)
        except RecallAPIError as exc:
            self._logger.error(
                "Transcript fetch failed meeting_id=%s status=%s: %s",
                event.meeting_id,
                exc.status_code,
                exc,
            )
            return
        except Exception as exc:
            self._logger.exception("Transcript fetch crashed meeting_id=%s: %s", event.meeting_id, exc)
            return

        added = self._store.extend_transcripts(event.meeting_id, backfill_segments(raw_segments))
        self._logger.info("Stored %d backfilled segments meeting_id=%s", added, event.meeting_id)
