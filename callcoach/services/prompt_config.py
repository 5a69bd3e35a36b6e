from __future__ import annotations

import logging
import os
import threading
from dataclasses import dataclass
from typing import Optional

SYSTEM_PROMPT_FILE = "coaching_system_prompt.txt"
USER_PROMPT_FILE = "coaching_user_prompt.txt"


@dataclass(frozen=True)
class PromptConfiguration:
    system_prompt: str
    user_prompt: str
    is_default: bool = False

    def to_dict(self) -> dict:
        return {
            "system_prompt": self.system_prompt,
            "user_prompt": self.user_prompt,
            "is_default": self.is_default,
        }


def load_default_prompts(prompts_dir: str) -> tuple[str, str]:
    prompts = []
    for name in (SYSTEM_PROMPT_FILE, USER_PROMPT_FILE):
        path = os.path.join(prompts_dir, name)
        with open(path, "r", encoding="utf-8") as f:
            prompts.append(f.read().strip())
    return prompts[0], prompts[1]


class PromptConfigStore:
    """Process-wide coaching prompt pair: built-in defaults, overridable, resettable.

    There is no per-session override; the analysis trigger reads whatever is
    current at call time.  Last write wins.
    """

    def __init__(self, default_system_prompt: str, default_user_prompt: str) -> None:
        self._lock = threading.Lock()
        self._default = PromptConfiguration(default_system_prompt, default_user_prompt, is_default=True)
        self._custom: Optional[PromptConfiguration] = None
        self._logger = logging.getLogger("callcoach.prompts")

    @classmethod
    def from_dir(cls, prompts_dir: str) -> "PromptConfigStore":
        return cls(*load_default_prompts(prompts_dir))

    def get(self) -> PromptConfiguration:
        with self._lock:
            return self._custom or self._default

    def set(self, system_prompt: object, user_prompt: object) -> PromptConfiguration:
        if not isinstance(system_prompt, str) or not system_prompt.strip():
            raise ValueError("System prompt must be a non-empty string")
        if not isinstance(user_prompt, str) or not user_prompt.strip():
            raise ValueError("User prompt must be a non-empty string")
        config = PromptConfiguration(system_prompt, user_prompt, is_default=False)
        with self._lock:
            self._custom = config
        self._logger.info(
            "Custom prompts saved system_len=%d user_len=%d", len(system_prompt), len(user_prompt)
        )
        return config

    def reset(self) -> PromptConfiguration:
        with self._lock:
            self._custom = None
        self._logger.info("Prompts reset to default")
        return self._default
