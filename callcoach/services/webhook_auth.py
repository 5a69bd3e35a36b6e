"""Signature verification for inbound webhook deliveries.

Status webhooks are signed by the provider (svix headers).  Realtime
endpoint deliveries carry no signature at all, so a request without the
svix header triplet is accepted unsigned even when a secret is configured.
That also means a caller can skip verification by omitting the headers;
this is a known, accepted trust boundary (see DESIGN.md).
"""

from __future__ import annotations

import json
import logging
from typing import Any, Callable, Mapping, Optional

from svix.webhooks import Webhook, WebhookVerificationError

SIGNATURE_HEADERS = ("svix-id", "svix-timestamp", "svix-signature")

# verify(raw_body, headers, secret) -> decoded payload, raising on a bad signature
Verifier = Callable[[str, dict[str, str], str], Any]

_logger = logging.getLogger("callcoach.webhook.auth")


class WebhookAuthError(RuntimeError):
    pass


class InvalidPayloadError(ValueError):
    pass


def svix_verify(raw_body: str, headers: dict[str, str], secret: str) -> Any:
    try:
        return Webhook(secret).verify(raw_body, headers)
    except WebhookVerificationError as exc:
        raise WebhookAuthError(str(exc)) from exc


def signature_headers(headers: Mapping[str, str]) -> Optional[dict[str, str]]:
    """The svix header triplet, or None unless all three are present."""
    picked = {name: headers.get(name) for name in SIGNATURE_HEADERS}
    if all(picked.values()):
        return {name: str(value) for name, value in picked.items()}
    return None


def _decode(raw_body: str) -> dict:
    try:
        payload = json.loads(raw_body)
    except json.JSONDecodeError as exc:
        raise InvalidPayloadError("Invalid JSON payload") from exc
    if not isinstance(payload, dict):
        raise InvalidPayloadError("Invalid JSON payload")
    return payload


def authenticate(
    raw_body: str,
    headers: Mapping[str, str],
    secret: str,
    verifier: Verifier = svix_verify,
) -> tuple[dict, bool]:
    """Verify (when applicable) and decode a webhook body.

    Returns ``(payload, signed)``.  Raises WebhookAuthError on a failed
    signature and InvalidPayloadError when the body is not a JSON object.
    """
    signed = signature_headers(headers)
    if secret and signed:
        try:
            payload = verifier(raw_body, signed, secret)
        except WebhookAuthError:
            raise
        except Exception as exc:
            raise WebhookAuthError(str(exc)) from exc
        if not isinstance(payload, dict):
            raise InvalidPayloadError("Invalid JSON payload")
        _logger.info("Webhook signature verified")
        return payload, True

    payload = _decode(raw_body)
    _logger.info("Webhook accepted without signature (realtime endpoint delivery)")
    return payload, False
