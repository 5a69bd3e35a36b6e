import logging
from typing import Optional

from fastapi import APIRouter, HTTPException, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from callcoach.services.coaching import CoachingService
from callcoach.services.llm import LLMProviderError
from callcoach.services.session_queries import (
    DEFAULT_COACHING_LIMIT,
    DEFAULT_TRANSCRIPT_LIMIT,
    SessionQueries,
)


class AnalyzeSegmentRequest(BaseModel):
    text: Optional[str] = None
    speaker: Optional[str] = None


def create_coaching_router(queries: SessionQueries, coaching_service: CoachingService) -> APIRouter:
    router = APIRouter()
    logger = logging.getLogger("callcoach.api.coaching")

    @router.get("/api/sessions")
    def list_sessions() -> dict:
        return {"success": True, "data": queries.list_sessions()}

    @router.get("/api/coaching/{meeting_id}")
    def get_coaching(
        meeting_id: str,
        latest: bool = Query(False, description="Return only the newest coaching and transcripts"),
    ):
        if latest:
            return {
                "success": True,
                "data": queries.latest_slice(
                    meeting_id, DEFAULT_COACHING_LIMIT, DEFAULT_TRANSCRIPT_LIMIT
                ),
            }

        session = queries.full_session(meeting_id)
        if session is None:
            logger.info("No data found for meeting %s", meeting_id)
            return JSONResponse(status_code=404, content={"error": "Meeting not found"})
        return {"success": True, "data": session}

    @router.post("/api/coaching/analyze")
    def analyze_segment(payload: AnalyzeSegmentRequest) -> dict:
        text = (payload.text or "").strip()
        if not text:
            raise HTTPException(status_code=400, detail="text must be a non-empty string")
        try:
            insight = coaching_service.analyze_segment(text, payload.speaker or "")
        except LLMProviderError as exc:
            logger.warning("Segment analysis failed: %s", exc)
            raise HTTPException(status_code=502, detail=str(exc)) from exc
        return {"success": True, "data": insight}

    return router
