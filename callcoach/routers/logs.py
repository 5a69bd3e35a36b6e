import logging
import os
from typing import Optional

from fastapi import APIRouter
from pydantic import BaseModel

from callcoach.context import AppContext

ERROR_MARKERS = ("error", "exception", "traceback")
MAX_ERROR_LINES = 200


class ClientLogRequest(BaseModel):
    level: str = "error"
    message: str
    context: dict = {}


def _latest_server_log(logs_dir: str) -> Optional[str]:
    if not os.path.isdir(logs_dir):
        return None
    candidates = [
        os.path.join(logs_dir, name)
        for name in os.listdir(logs_dir)
        if name.startswith("server_") and name.endswith(".log")
    ]
    return max(candidates, key=os.path.getmtime) if candidates else None


def _looks_like_error(line: str) -> bool:
    lowered = line.lower()
    return any(marker in lowered for marker in ERROR_MARKERS)


def create_logs_router(ctx: AppContext) -> APIRouter:
    router = APIRouter()
    logger = logging.getLogger("callcoach.client")

    @router.get("/api/logs/errors")
    def error_log() -> dict:
        """Tail of error-looking lines from the newest server log."""
        path = _latest_server_log(ctx.logs_dir)
        if path is None:
            return {"lines": []}
        try:
            with open(path, "r", encoding="utf-8") as log_file:
                matched = [line.rstrip("\n") for line in log_file if _looks_like_error(line)]
        except OSError as exc:
            logger.warning("Could not read server log %s: %s", path, exc)
            return {"lines": []}
        return {"lines": matched[-MAX_ERROR_LINES:]}

    @router.post("/api/logs/client")
    def client_log(payload: ClientLogRequest) -> dict:
        """Relay a dashboard-side message into the server log."""
        level = {"warning": logging.WARNING, "info": logging.INFO}.get(payload.level.lower(), logging.ERROR)
        if payload.context:
            logger.log(level, "[dashboard] %s | context=%s", payload.message, payload.context)
        else:
            logger.log(level, "[dashboard] %s", payload.message)
        return {"status": "ok"}

    return router
