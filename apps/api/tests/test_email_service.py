"""Tests for outbound email and the invitation message."""
from datetime import datetime, timedelta, timezone

import httpx
import pytest

from everease.core.config import settings
from everease.core.exceptions import ConfigurationError, DependencyError
from everease.services import email_service, invite_email_service


@pytest.fixture
def mail_configured(monkeypatch):
    monkeypatch.setattr(settings, "RESEND_API_KEY", "re_test_key")
    monkeypatch.setattr(settings, "EMAIL_FROM", "Ever Ease <noreply@everease.app>")


@pytest.fixture
def provider(monkeypatch):
    """Replace the retrying HTTP call with canned provider responses."""
    calls = []
    responses = []

    async def fake_request_with_retries(request_fn, **kwargs):
        calls.append(kwargs)
        return responses.pop(0)

    monkeypatch.setattr(email_service, "request_with_retries", fake_request_with_retries)
    return calls, responses


def _response(status_code: int, body: dict) -> httpx.Response:
    return httpx.Response(status_code, json=body, request=httpx.Request("POST", email_service.RESEND_SEND_URL))


@pytest.mark.asyncio
async def test_send_requires_configuration():
    with pytest.raises(ConfigurationError):
        await email_service.send("erin@example.com", "Hi", "<p>Hi</p>")


@pytest.mark.asyncio
async def test_send_returns_message_id(mail_configured, provider):
    calls, responses = provider
    responses.append(_response(200, {"id": "msg_123"}))

    result = await email_service.send("erin@example.com", "Hi", "<p>Hi</p>", idempotency_key="key-1")

    assert result == {"message_id": "msg_123"}
    assert calls[0]["service"] == "Email provider"


@pytest.mark.asyncio
async def test_send_idempotent_replay_is_success(mail_configured, provider):
    _, responses = provider
    responses.append(_response(409, {"message": "duplicate"}))

    result = await email_service.send("erin@example.com", "Hi", "<p>Hi</p>", idempotency_key="key-1")
    assert result == {"message_id": None}


@pytest.mark.asyncio
async def test_send_rejection_raises_dependency_error(mail_configured, provider):
    _, responses = provider
    responses.append(_response(422, {"message": "Invalid `to` field"}))

    with pytest.raises(DependencyError) as exc_info:
        await email_service.send("not-an-email", "Hi", "<p>Hi</p>")
    assert "Invalid `to` field" in exc_info.value.message


@pytest.mark.asyncio
async def test_send_success_without_id_is_an_error(mail_configured, provider):
    _, responses = provider
    responses.append(_response(200, {}))

    with pytest.raises(DependencyError):
        await email_service.send("erin@example.com", "Hi", "<p>Hi</p>")


def test_html_to_text():
    text = email_service.html_to_text("<p>Hello&nbsp;<b>Erin</b></p><br/><style>p{}</style>Bye")
    assert "Hello" in text
    assert "Erin" in text
    assert "p{}" not in text
    assert "<" not in text


# =============================================================================
# Invitation email
# =============================================================================

def test_accept_url_carries_token_verbatim():
    url = invite_email_service.build_accept_url("abc-DEF_123", base_url="https://app.everease.test/")
    assert url == "https://app.everease.test/executor/accept-invitation?token=abc-DEF_123"


@pytest.mark.asyncio
async def test_invite_email_content(mailbox):
    expires_at = datetime.now(timezone.utc) + timedelta(days=7, hours=1)

    result = await invite_email_service.send_invite_email(
        executor_email="erin@example.com",
        executor_name="Erin <Executor>",
        token="tok-123",
        expires_at=expires_at,
        planner_name="Pat Planner",
        idempotency_key="executor-invite/1",
    )

    assert result == {"success": True, "message_id": "msg-1"}
    sent = mailbox.sent[0]
    assert sent.subject == "Pat Planner named you as an executor"
    assert sent.idempotency_key == "executor-invite/1"
    assert "accept-invitation?token=tok-123" in sent.text
    assert "in 7 days" in sent.text
    assert "Erin &lt;Executor&gt;" in sent.html


@pytest.mark.asyncio
async def test_invite_email_without_planner_name(mailbox):
    await invite_email_service.send_invite_email(
        executor_email="erin@example.com",
        executor_name="Erin",
        token="tok-123",
        expires_at=None,
    )
    sent = mailbox.sent[0]
    assert sent.subject == "You've been named as an executor"
    assert "Someone who trusts you" in sent.text
    assert "expires" not in sent.text


@pytest.mark.asyncio
async def test_invite_email_failure_reported_not_raised(mailbox):
    mailbox.fail_with = DependencyError("Email provider is unreachable")

    result = await invite_email_service.send_invite_email(
        executor_email="erin@example.com",
        executor_name="Erin",
        token="tok-123",
        expires_at=None,
    )

    assert result == {"success": False, "error": "Email provider is unreachable"}
