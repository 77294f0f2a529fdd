# service/webhook.py
from __future__ import annotations

import os
import time
from collections.abc import Iterable

import requests

DEFAULT_TIMEOUT = 30.0
DEFAULT_RETRY_AFTER = 1.5
DEFAULT_MESSAGE_DELAY = 0.35

# ---- Errors -----------------------------------------------------------------


class WebhookSendError(RuntimeError):
    """Raised when a webhook message cannot be delivered."""


# ---- Env / Settings ----------------------------------------------------------


def resolve_webhook_url(url: str | None = None) -> str | None:
    """Explicit URL first, then DISCORD_WEBHOOK_URL."""
    for candidate in (url, os.getenv("DISCORD_WEBHOOK_URL")):
        if candidate and candidate.strip():
            return candidate.strip()
    return None


# ---- Helpers ----------------------------------------------------------------


def _retry_after_seconds(resp: requests.Response) -> float:
    try:
        body = resp.json()
    except ValueError:
        return DEFAULT_RETRY_AFTER
    value = body.get("retry_after") if isinstance(body, dict) else None
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    return DEFAULT_RETRY_AFTER


def _post(url: str, content: str, timeout: float) -> requests.Response:
    try:
        return requests.post(
            url,
            json={"content": content},
            headers={"Content-Type": "application/json"},
            timeout=timeout,
        )
    except requests.RequestException as e:
        raise WebhookSendError(f"Webhook request failed: {e}") from e


# ---- Public API --------------------------------------------------------------


def post_message(url: str, content: str, *, timeout: float = DEFAULT_TIMEOUT) -> None:
    """
    Post one message. On HTTP 429 wait `retry_after` seconds and retry exactly once.

    Raises:
        WebhookSendError on any failure (connection/HTTP status/validation).
    """
    if not url or not url.strip():
        raise WebhookSendError("No webhook URL.")
    if not content or not content.strip():
        raise WebhookSendError("Missing message content.")

    resp = _post(url, content, timeout)
    if resp.status_code == 429:
        time.sleep(_retry_after_seconds(resp))
        resp = _post(url, content, timeout)

    if resp.status_code >= 400:
        raise WebhookSendError(f"Webhook returned HTTP {resp.status_code}")


def post_messages(
    url: str,
    messages: Iterable[str],
    *,
    delay_seconds: float = DEFAULT_MESSAGE_DELAY,
    timeout: float = DEFAULT_TIMEOUT,
) -> int:
    """Post messages in order with a short pause after each. Returns the count sent."""
    sent = 0
    for content in messages:
        post_message(url, content, timeout=timeout)
        sent += 1
        if delay_seconds > 0:
            time.sleep(delay_seconds)
    return sent
