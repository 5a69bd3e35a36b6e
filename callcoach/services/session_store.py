"""In-memory store of meeting sessions.

Sessions live for the lifetime of the process only; nothing is evicted and
nothing is persisted.  A restart is the only cleanup.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Iterable, Optional

UNKNOWN_SPEAKER = "Unknown"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class SessionStatus(Enum):
    PENDING = "pending"
    ACTIVE = "active"
    ENDED = "ended"


@dataclass
class TranscriptSegment:
    text: str
    speaker: str = UNKNOWN_SPEAKER
    is_partial: bool = False
    metadata: dict = field(default_factory=dict)
    timestamp: datetime = field(default_factory=utc_now)

    def to_dict(self) -> dict:
        return {
            "text": self.text,
            "speaker": self.speaker,
            "is_partial": self.is_partial,
            "metadata": dict(self.metadata),
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass
class CoachingResult:
    """LLM output stored verbatim; only ``timestamp`` is added on top."""

    data: dict
    timestamp: datetime = field(default_factory=utc_now)

    def to_dict(self) -> dict:
        result = dict(self.data)
        result["timestamp"] = self.timestamp.isoformat()
        return result


@dataclass
class Session:
    meeting_id: str
    status: SessionStatus = SessionStatus.PENDING
    transcripts: list[TranscriptSegment] = field(default_factory=list)
    coaching: list[CoachingResult] = field(default_factory=list)
    participants: set[str] = field(default_factory=set)
    created_at: datetime = field(default_factory=utc_now)
    last_updated_at: datetime = field(default_factory=utc_now)

    def to_dict(self) -> dict:
        return {
            "meeting_id": self.meeting_id,
            "status": self.status.value,
            "transcripts": [s.to_dict() for s in self.transcripts],
            "coaching": [c.to_dict() for c in self.coaching],
            "participants": sorted(self.participants),
            "created_at": self.created_at.isoformat(),
            "last_updated_at": self.last_updated_at.isoformat(),
        }


class SessionStore:
    """Owns every Session; all mutation goes through these methods under one lock."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._sessions: dict[str, Session] = {}
        self._logger = logging.getLogger("callcoach.sessions")
        self._trace = logging.getLogger("callcoach.trace")

    def _trace_log(self, stage: str, **fields) -> None:
        payload = " ".join(f"{k}={fields[k]!r}" for k in sorted(fields.keys()))
        self._trace.info("TRACE stage=%s ts=%s %s", stage, utc_now().isoformat(), payload)

    def _touch(self, session: Session) -> None:
        session.last_updated_at = utc_now()

    def get_or_create(self, meeting_id: str) -> Session:
        with self._lock:
            session = self._sessions.get(meeting_id)
            if session is None:
                session = Session(meeting_id=meeting_id)
                self._sessions[meeting_id] = session
                self._logger.info("Session created: meeting_id=%s", meeting_id)
                self._trace_log("session_create", meeting_id=meeting_id)
            return session

    def get(self, meeting_id: str) -> Optional[Session]:
        with self._lock:
            return self._sessions.get(meeting_id)

    def list_sessions(self) -> list[dict]:
        with self._lock:
            return [
                {
                    "meeting_id": s.meeting_id,
                    "status": s.status.value,
                    "transcript_count": len(s.transcripts),
                    "coaching_count": len(s.coaching),
                    "last_updated_at": s.last_updated_at.isoformat(),
                }
                for s in self._sessions.values()
            ]

    def append_transcript(self, meeting_id: str, segment: TranscriptSegment) -> list[TranscriptSegment]:
        """Append one segment and return a snapshot of the session's transcript log."""
        with self._lock:
            session = self.get_or_create(meeting_id)
            session.transcripts.append(segment)
            if segment.speaker:
                session.participants.add(segment.speaker)
            self._touch(session)
            self._trace_log(
                "transcript_append",
                meeting_id=meeting_id,
                is_partial=segment.is_partial,
                text_len=len(segment.text),
                count=len(session.transcripts),
            )
            return list(session.transcripts)

    def extend_transcripts(self, meeting_id: str, segments: Iterable[TranscriptSegment]) -> int:
        with self._lock:
            session = self.get_or_create(meeting_id)
            added = 0
            for segment in segments:
                session.transcripts.append(segment)
                if segment.speaker:
                    session.participants.add(segment.speaker)
                added += 1
            if added:
                self._touch(session)
            self._trace_log("transcript_extend", meeting_id=meeting_id, added=added)
            return added

    def append_coaching(self, meeting_id: str, result: CoachingResult) -> None:
        with self._lock:
            session = self.get_or_create(meeting_id)
            session.coaching.append(result)
            self._touch(session)
            self._trace_log("coaching_append", meeting_id=meeting_id, count=len(session.coaching))

    def activate(self, meeting_id: str) -> SessionStatus:
        """Move a session to ``active`` unless it already ended."""
        with self._lock:
            session = self.get_or_create(meeting_id)
            prev_status = session.status
            if session.status is not SessionStatus.ENDED:
                session.status = SessionStatus.ACTIVE
            self._touch(session)
            self._trace_log(
                "status_activate",
                meeting_id=meeting_id,
                prev_status=prev_status.value,
                new_status=session.status.value,
            )
            return session.status

    def end(self, meeting_id: str) -> SessionStatus:
        with self._lock:
            session = self.get_or_create(meeting_id)
            prev_status = session.status
            session.status = SessionStatus.ENDED
            self._touch(session)
            self._trace_log("status_end", meeting_id=meeting_id, prev_status=prev_status.value)
            return session.status

    def participants(self, meeting_id: str) -> list[str]:
        with self._lock:
            session = self._sessions.get(meeting_id)
            return sorted(session.participants) if session else []

    def recent_transcripts(self, meeting_id: str, limit: int) -> list[TranscriptSegment]:
        """Up to ``limit`` most recent segments, most recent first."""
        with self._lock:
            session = self._sessions.get(meeting_id)
            if session is None or limit <= 0:
                return []
            return list(reversed(session.transcripts[-limit:]))

    def latest_coaching(self, meeting_id: str, limit: int) -> list[CoachingResult]:
        """Up to ``limit`` most recent coaching results, most recent first."""
        with self._lock:
            session = self._sessions.get(meeting_id)
            if session is None or limit <= 0:
                return []
            return list(reversed(session.coaching[-limit:]))

    def snapshot(self, meeting_id: str) -> Optional[dict[str, Any]]:
        with self._lock:
            session = self._sessions.get(meeting_id)
            return session.to_dict() if session else None

