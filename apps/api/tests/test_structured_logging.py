"""Tests for structured logging helpers."""

import pytest

from everease.core.structured_logging import build_log_context


def test_build_log_context_includes_only_provided_fields():
    context = build_log_context(
        identity_id="identity-1",
        planner_id="planner-1",
        request_id="req-1",
        route="/executors/{executor_id}",
        method="POST",
        status_code=0,
    )

    assert context == {
        "identity_id": "identity-1",
        "planner_id": "planner-1",
        "request_id": "req-1",
        "route": "/executors/{executor_id}",
        "method": "POST",
        "status_code": 0,
    }


def test_build_log_context_ignores_empty_fields():
    context = build_log_context(identity_id="", executor_id=None, request_id="req-1")

    assert context == {"request_id": "req-1"}


@pytest.mark.asyncio
async def test_requests_get_request_id(client):
    response = await client.get("/invitations/unknown", headers={"X-Request-ID": "req-42"})
    assert response.headers["X-Request-ID"] == "req-42"

    generated = await client.get("/invitations/unknown")
    assert len(generated.headers["X-Request-ID"]) == 32
