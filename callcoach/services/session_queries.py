"""Read-only projections of session state for the dashboard."""

from __future__ import annotations

from typing import Optional

from callcoach.services.session_store import SessionStore, utc_now

DEFAULT_COACHING_LIMIT = 5
DEFAULT_TRANSCRIPT_LIMIT = 10


class SessionQueries:
    def __init__(self, store: SessionStore) -> None:
        self._store = store

    def full_session(self, meeting_id: str) -> Optional[dict]:
        """Whole session, or None when the meeting is unknown."""
        return self._store.snapshot(meeting_id)

    def latest_slice(
        self,
        meeting_id: str,
        coaching_limit: int = DEFAULT_COACHING_LIMIT,
        transcript_limit: int = DEFAULT_TRANSCRIPT_LIMIT,
    ) -> dict:
        """Newest coaching and transcripts, most recent first.

        Unlike full_session this never reports a missing meeting: an unknown
        id yields empty lists, since the dashboard starts polling before the
        first webhook arrives.
        """
        coaching = self._store.latest_coaching(meeting_id, coaching_limit)
        transcripts = self._store.recent_transcripts(meeting_id, transcript_limit)
        return {
            "meeting_id": meeting_id,
            "coaching": [c.to_dict() for c in coaching],
            "transcripts": [t.to_dict() for t in transcripts],
            "last_update": utc_now().isoformat(),
        }

    def list_sessions(self) -> list[dict]:
        return self._store.list_sessions()
