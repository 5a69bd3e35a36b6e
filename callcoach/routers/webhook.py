import asyncio
import logging

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from callcoach.context import AppContext
from callcoach.services.debug_logging import dbg
from callcoach.services.event_normalizer import EventNormalizationError, normalize
from callcoach.services.session_aggregator import SessionAggregator
from callcoach.services.webhook_auth import (
    InvalidPayloadError,
    Verifier,
    WebhookAuthError,
    authenticate,
    svix_verify,
)


def create_webhook_router(
    ctx: AppContext,
    aggregator: SessionAggregator,
    verifier: Verifier = svix_verify,
) -> APIRouter:
    router = APIRouter()
    logger = logging.getLogger("callcoach.webhook")

    @router.post("/api/webhook/recall")
    async def recall_webhook(request: Request):
        # Raw body is needed as-is for signature verification
        raw_body = (await request.body()).decode("utf-8", errors="replace")

        try:
            payload, signed = authenticate(raw_body, request.headers, ctx.webhook_secret, verifier)
        except WebhookAuthError as exc:
            logger.error("Invalid webhook signature: %s", exc)
            return JSONResponse(status_code=401, content={"error": "Invalid signature"})
        except InvalidPayloadError as exc:
            logger.warning("Rejected webhook body: %s", exc)
            return JSONResponse(status_code=400, content={"error": str(exc)})

        dbg(
            logger,
            location="routers/webhook.py:recall_webhook",
            message="webhook payload received",
            data={"signed": signed, "payload": payload},
        )

        try:
            event = normalize(payload)
        except EventNormalizationError as exc:
            logger.error(
                "Missing meeting id in webhook payload fields=%s data_fields=%s",
                exc.available_fields,
                exc.data_fields,
            )
            return JSONResponse(
                status_code=400,
                content={
                    "error": str(exc),
                    "available_fields": exc.available_fields,
                    "data_fields": exc.data_fields,
                },
            )

        logger.info(
            "Received webhook meeting_id=%s event=%s kind=%s",
            event.meeting_id,
            event.raw_event_name,
            event.kind.value,
        )

        try:
            # May block on the transcript backfill fetch; keep it off the event loop
            await asyncio.to_thread(aggregator.apply, event)
        except Exception as exc:
            logger.exception("Error processing webhook meeting_id=%s: %s", event.meeting_id, exc)
            return JSONResponse(
                status_code=500,
                content={"error": "Internal server error", "message": str(exc)},
            )

        return {
            "success": True,
            "message": "Webhook processed successfully",
            "meeting_id": event.meeting_id,
            "event": event.raw_event_name,
        }

    return router
