"""Transactional email sender (Resend).

Used for executor invitations. Callers treat a failed send as non-fatal:
the error is logged and surfaced as "not sent", never retried by the caller.
"""

from __future__ import annotations

import html as html_module
import logging
import re

import httpx

from everease.core.config import settings
from everease.core.exceptions import ConfigurationError, DependencyError
from everease.services.http_service import DEFAULT_RETRY_STATUSES, request_with_retries

logger = logging.getLogger(__name__)

RESEND_SEND_URL = "https://api.resend.com/emails"
RESEND_MAX_ATTEMPTS = 3
RESEND_RETRY_BASE_DELAY = 0.5
RESEND_RETRY_MAX_DELAY = 4.0
RESEND_TIMEOUT_SECONDS = 20.0


def html_to_text(content: str) -> str:
    """Convert HTML into readable text for the plain-text alternative."""
    text = re.sub(r"<(script|style)[^>]*>.*?</\1>", "", content, flags=re.DOTALL | re.I)
    text = re.sub(r"<br\s*/?>", "\n", text, flags=re.I)
    text = re.sub(r"<[^>]+>", " ", text)
    text = re.sub(r"[ \t]+", " ", text).strip()
    return html_module.unescape(text)


def _error_detail(response: httpx.Response) -> str | None:
    try:
        data = response.json()
    except ValueError:
        return None
    if isinstance(data, dict):
        return data.get("message") or data.get("error")
    return None


async def send(
    to: str,
    subject: str,
    html: str,
    text: str | None = None,
    *,
    idempotency_key: str | None = None,
) -> dict[str, str | None]:
    """
    Send one email.

    Returns:
        {"message_id": "..."}

    Raises:
        ConfigurationError: RESEND_API_KEY / EMAIL_FROM not set
        DependencyError: provider rejected the message or is unreachable
    """
    if not settings.RESEND_API_KEY:
        raise ConfigurationError("Email sender not configured (missing RESEND_API_KEY)")
    if not settings.EMAIL_FROM:
        raise ConfigurationError("Email sender not configured (missing EMAIL_FROM)")

    payload: dict[str, object] = {
        "from": settings.EMAIL_FROM,
        "to": [to],
        "subject": subject,
        "html": html,
        "text": text or html_to_text(html),
    }
    headers = {
        "Authorization": f"Bearer {settings.RESEND_API_KEY}",
        "Content-Type": "application/json",
    }
    if idempotency_key:
        headers["Idempotency-Key"] = idempotency_key

    async with httpx.AsyncClient(timeout=RESEND_TIMEOUT_SECONDS) as client:

        async def request_fn() -> httpx.Response:
            return await client.post(RESEND_SEND_URL, headers=headers, json=payload)

        response = await request_with_retries(
            request_fn,
            service="Email provider",
            max_attempts=RESEND_MAX_ATTEMPTS,
            base_delay=RESEND_RETRY_BASE_DELAY,
            max_delay=RESEND_RETRY_MAX_DELAY,
            retry_statuses=DEFAULT_RETRY_STATUSES,
        )

    if 200 <= response.status_code < 300:
        data = response.json()
        message_id = data.get("id") if isinstance(data, dict) else None
        if not message_id:
            raise DependencyError("Email provider returned success without message id")
        return {"message_id": message_id}

    # 409 is an idempotency replay: the message already went out.
    if response.status_code == 409 and idempotency_key:
        logger.info("Email send replayed for idempotency key")
        return {"message_id": None}

    detail = _error_detail(response) or f"HTTP {response.status_code}"
    raise DependencyError(f"Email provider rejected message: {detail}")
