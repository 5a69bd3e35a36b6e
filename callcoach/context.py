"""Application context: runtime paths and settings.

Every service and router receives this object instead of individual path
strings or environment lookups.  Settings are read from ``config.json`` on
every access and may be overridden by environment variables, so editing the
file takes effect without restarting the server.
"""

from __future__ import annotations

import json
import logging
import os
import threading
from typing import Any, Optional

DEFAULT_RECALL_BASE_URL = "https://us-west-2.recall.ai"
DEFAULT_APP_URL = "http://localhost:8000"
DEFAULT_SELECTED_MODEL = "anthropic:claude-sonnet-4-5-20250929"

# Environment variables that override provider API keys, first match wins.
_PROVIDER_KEY_ENV = {
    "anthropic": ("ANTHROPIC_API_KEY", "CLAUDE_API_KEY"),
    "openai": ("OPENAI_API_KEY",),
}


class AppContext:
    """Holds runtime directories and resolves settings for the application."""

    def __init__(
        self,
        *,
        cwd: str,
        data_dir: str,
        config_path: Optional[str] = None,
        environ: Optional[dict[str, str]] = None,
    ) -> None:
        self._lock = threading.Lock()
        self._cwd = cwd
        self._data_dir = data_dir
        self._config_path = config_path or os.path.join(data_dir, "config.json")
        self._environ = environ if environ is not None else os.environ
        self._logger = logging.getLogger("callcoach.config")
        # Static paths derived from the package location
        self._app_dir = os.path.dirname(__file__)

    # ── Paths ──────────────────────────────────────────────────────────

    @property
    def cwd(self) -> str:
        return self._cwd

    @property
    def data_dir(self) -> str:
        with self._lock:
            return self._data_dir

    @property
    def config_path(self) -> str:
        return self._config_path

    @property
    def prompts_dir(self) -> str:
        return os.path.join(self._app_dir, "prompts")

    @property
    def logs_dir(self) -> str:
        return os.path.join(self._cwd, "logs")

    def ensure_dirs(self) -> None:
        """Create all required directories if they don't exist."""
        for d in (self.data_dir, self.logs_dir):
            os.makedirs(d, exist_ok=True)

    # ── Config file ────────────────────────────────────────────────────

    def read_config(self) -> dict:
        """Read config from file, returning empty dict if missing or unreadable."""
        if not os.path.exists(self._config_path):
            return {}
        try:
            with open(self._config_path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as exc:
            self._logger.warning("Failed to read config: %s error=%s", self._config_path, exc)
            return {}
        return data if isinstance(data, dict) else {}

    def _env(self, *names: str) -> Optional[str]:
        for name in names:
            value = self._environ.get(name)
            if value:
                return value
        return None

    def _section(self, name: str) -> dict:
        section = self.read_config().get(name, {})
        return section if isinstance(section, dict) else {}

    # ── Meeting bot provider ───────────────────────────────────────────

    @property
    def recall_api_key(self) -> str:
        return self._env("RECALL_API_KEY") or str(self._section("recall").get("api_key") or "")

    @property
    def recall_base_url(self) -> str:
        value = self._env("RECALL_API_BASE") or self._section("recall").get("base_url")
        return str(value or DEFAULT_RECALL_BASE_URL).rstrip("/")

    @property
    def webhook_secret(self) -> str:
        return self._env("RECALL_WEBHOOK_SECRET") or str(
            self._section("recall").get("webhook_secret") or ""
        )

    @property
    def app_url(self) -> str:
        value = self._env("APP_URL") or self.read_config().get("app_url")
        return str(value or DEFAULT_APP_URL).rstrip("/")

    # ── LLM selection ──────────────────────────────────────────────────

    @property
    def selected_model(self) -> str:
        """Selected model in ``provider:model_id`` form."""
        value = self._env("COACHING_MODEL") or self._section("models").get("selected_model")
        return str(value or DEFAULT_SELECTED_MODEL)

    def provider_config(self, provider_name: str) -> dict[str, Any]:
        """Provider settings (api_key, base_url) with environment overrides applied."""
        providers = self._section("providers")
        config = providers.get(provider_name, {})
        config = dict(config) if isinstance(config, dict) else {}
        env_key = self._env(*_PROVIDER_KEY_ENV.get(provider_name, ()))
        if env_key:
            config["api_key"] = env_key
        return config
