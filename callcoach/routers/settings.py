import logging
from typing import Optional

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, ConfigDict, Field

from callcoach.services.prompt_config import PromptConfigStore

_logger = logging.getLogger("callcoach.settings")


class PromptSettingsRequest(BaseModel):
    # Accepts snake_case or camelCase keys
    model_config = ConfigDict(populate_by_name=True)

    system_prompt: Optional[str] = Field(default=None, alias="systemPrompt")
    user_prompt: Optional[str] = Field(default=None, alias="userPrompt")


def create_settings_router(prompt_store: PromptConfigStore) -> APIRouter:
    router = APIRouter()

    @router.get("/api/settings/prompt")
    def get_prompt_settings() -> dict:
        return prompt_store.get().to_dict()

    @router.post("/api/settings/prompt")
    def update_prompt_settings(payload: PromptSettingsRequest) -> dict:
        try:
            config = prompt_store.set(payload.system_prompt, payload.user_prompt)
        except ValueError as exc:
            _logger.warning("Rejected prompt update: %s", exc)
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        return {"success": True, "message": "Prompts updated successfully", **config.to_dict()}

    @router.delete("/api/settings/prompt")
    def reset_prompt_settings() -> dict:
        config = prompt_store.reset()
        return {"success": True, "message": "Prompts reset to default", **config.to_dict()}

    return router
