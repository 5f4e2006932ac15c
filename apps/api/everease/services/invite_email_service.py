"""Executor invitation email.

Sending is best-effort: the invitation row already exists and stays usable
when the mail collaborator is missing or fails.
"""

import html
import logging
from datetime import datetime
from urllib.parse import urlencode

from everease.core.config import settings
from everease.core.exceptions import ConfigurationError, DependencyError
from everease.services import audit_service, email_service
from everease.utils.datetime_parsing import describe_expiry

logger = logging.getLogger(__name__)

ACCEPT_PATH = "/executor/accept-invitation"


def build_accept_url(token: str, base_url: str | None = None) -> str:
    """Build the invitation acceptance URL (token passed verbatim)."""
    base = (base_url or settings.APP_ORIGIN).rstrip("/")
    return f"{base}{ACCEPT_PATH}?{urlencode({'token': token})}"


def _build_invite_text(
    executor_name: str,
    planner_name: str | None,
    accept_url: str,
    expires_text: str | None,
) -> str:
    """Build plain text email body for invite."""
    inviter_text = f"{planner_name} has" if planner_name else "Someone who trusts you has"
    expiry_text = f"\nThis invitation expires {expires_text}.\n" if expires_text else ""

    return f"""Hello {executor_name},

{inviter_text} named you as an executor on Ever Ease.

As an executor you will be able to help carry out their final wishes. Access to
their documents is only unlocked after their passing has been verified.

Accept your invitation here:
{accept_url}
{expiry_text}
If you didn't expect this invitation, you can safely ignore this email.
"""


def _build_invite_html(
    executor_name: str,
    planner_name: str | None,
    accept_url: str,
    expires_text: str | None,
) -> str:
    inviter = html.escape(planner_name) if planner_name else "Someone who trusts you"
    expires_block = (
        f"<p>This invitation expires {html.escape(expires_text)}.</p>" if expires_text else ""
    )
    return (
        f"<p>Hello {html.escape(executor_name)},</p>"
        f"<p>{inviter} has named you as an executor on Ever Ease.</p>"
        "<p>Access to their documents is only unlocked after their passing has been verified.</p>"
        f'<p><a href="{html.escape(accept_url, quote=True)}">Accept invitation</a></p>'
        f"{expires_block}"
        "<p>If you didn't expect this invitation, you can safely ignore this email.</p>"
    )


async def send_invite_email(
    *,
    executor_email: str,
    executor_name: str,
    token: str,
    expires_at: datetime | None,
    planner_name: str | None = None,
    idempotency_key: str | None = None,
) -> dict:
    """
    Send the invitation email to the executor.

    Returns:
        {"success": True, "message_id": "..."} or {"success": False, "error": "..."}
    """
    accept_url = build_accept_url(token)
    expires_text = describe_expiry(expires_at)
    subject = (
        f"{planner_name} named you as an executor"
        if planner_name
        else "You've been named as an executor"
    )

    try:
        result = await email_service.send(
            to=executor_email,
            subject=subject,
            html=_build_invite_html(executor_name, planner_name, accept_url, expires_text),
            text=_build_invite_text(executor_name, planner_name, accept_url, expires_text),
            idempotency_key=idempotency_key,
        )
    except (ConfigurationError, DependencyError) as e:
        logger.warning(
            "Invitation email to %s not sent: %s",
            audit_service.hash_email(executor_email),
            e.message,
        )
        return {"success": False, "error": e.message}

    logger.info("Sent invitation email to %s", audit_service.hash_email(executor_email))
    return {"success": True, "message_id": result.get("message_id")}
