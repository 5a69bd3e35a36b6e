import logging
from typing import Optional

from fastapi import APIRouter, HTTPException
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from callcoach.context import AppContext
from callcoach.services.recall_client import RecallAPIError, RecallClient
from callcoach.services.session_store import SessionStore


class CreateBotRequest(BaseModel):
    meeting_url: Optional[str] = None
    bot_name: Optional[str] = None


def create_bot_router(ctx: AppContext, recall_client: RecallClient, store: SessionStore) -> APIRouter:
    router = APIRouter()
    logger = logging.getLogger("callcoach.api.bot")

    @router.post("/api/bot/create")
    def create_bot(payload: CreateBotRequest):
        meeting_url = (payload.meeting_url or "").strip()
        if not meeting_url:
            raise HTTPException(status_code=400, detail="meeting_url is required")
        if not recall_client.configured:
            raise HTTPException(status_code=500, detail="RECALL_API_KEY not configured")

        webhook_url = f"{ctx.app_url}/api/webhook/recall"
        try:
            bot = recall_client.create_bot(meeting_url, webhook_url, payload.bot_name)
        except RecallAPIError as exc:
            logger.error("Bot creation failed status=%s: %s", exc.status_code, exc)
            return JSONResponse(
                status_code=exc.status_code or 502,
                content={"error": "Failed to create bot", "message": str(exc), "details": exc.details},
            )

        bot_id = str(bot["id"])
        # Register the session now so the dashboard sees it before the first webhook
        store.get_or_create(bot_id)
        status_changes = bot.get("status_changes") or []
        status = "created"
        if status_changes and isinstance(status_changes[0], dict):
            status = status_changes[0].get("code") or status

        return {
            "success": True,
            "message": "Bot created successfully",
            "data": {
                "bot_id": bot_id,
                "meeting_id": bot_id,
                "status": status,
                "join_url": bot.get("join_at"),
                "webhook_url": webhook_url,
                "dashboard_url": f"{ctx.app_url}/dashboard/{bot_id}",
            },
        }

    return router
