from __future__ import annotations

import json
import logging
import time
from typing import Any, Optional

REDACTED = "***"
SENSITIVE_KEY_PARTS = ("secret", "token", "api_key", "apikey", "password", "signature", "authorization")


def redact(value: Any) -> Any:
    """Copy of ``value`` with credential-looking keys masked at any depth."""
    if isinstance(value, dict):
        return {
            key: REDACTED
            if any(part in str(key).lower() for part in SENSITIVE_KEY_PARTS)
            else redact(item)
            for key, item in value.items()
        }
    if isinstance(value, list):
        return [redact(item) for item in value]
    return value


def dbg(
    logger: Optional[logging.Logger],
    *,
    location: str,
    message: str,
    data: dict[str, Any],
) -> None:
    """One compact JSON diagnostic line at DEBUG, with credential fields masked.

    Only the file handler records DEBUG, so these never reach the console.
    """
    if logger is None:
        logger = logging.getLogger("callcoach.debug")
    if not logger.isEnabledFor(logging.DEBUG):
        return
    payload = {
        "ts": int(time.time() * 1000),
        "location": location,
        "message": message,
        "data": redact(data),
    }
    logger.debug("DBG %s", json.dumps(payload, separators=(",", ":"), ensure_ascii=False, default=str))
